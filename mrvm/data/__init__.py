"""Data structures and matrix assembly for MRVM."""

from .formats import RasterGrid, AssembledMatrices, AssemblyIssue, DEFAULT_NODATA
from .assembly import ItemMatrixAssembler

__all__ = [
    "RasterGrid",
    "AssembledMatrices",
    "AssemblyIssue",
    "DEFAULT_NODATA",
    "ItemMatrixAssembler",
]
