"""Raster I/O for MRVM."""

from .raster import RasterGrid, save_raster, load_raster

__all__ = ["RasterGrid", "save_raster", "load_raster"]
