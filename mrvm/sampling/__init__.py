"""Spatial sampling of raster items."""

from .bootstrap import (
    RasterBootstrap,
    BootstrapLayout,
    RandomCenterStrategy,
    GridCenterStrategy,
    window_offsets
)

__all__ = [
    "RasterBootstrap",
    "BootstrapLayout",
    "RandomCenterStrategy",
    "GridCenterStrategy",
    "window_offsets",
]
