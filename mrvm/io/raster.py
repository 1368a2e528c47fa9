"""GeoTIFF reading and writing for raster grids."""

from typing import Optional, Sequence

import numpy as np
import rasterio
from rasterio.crs import CRS

from ..data.formats import RasterGrid

__all__ = ["RasterGrid", "save_raster", "load_raster"]


def save_raster(
    grid: RasterGrid,
    file_path: str,
    layers: Optional[Sequence[int]] = None
) -> None:
    """
    Write layers of a grid as bands of a GeoTIFF.

    Layer names become band descriptions, so a grid read back with
    :func:`load_raster` keeps them. Forecast grids are written the same
    way as training grids.

    Parameters:
        grid: Grid to write
        file_path: Output file path
        layers: Layer indices to write, all layers when None
    """
    selected = list(range(grid.n_layers)) if layers is None else list(layers)
    for layer in selected:
        if not 0 <= layer < grid.n_layers:
            raise ValueError(f"Layer {layer} outside grid with {grid.n_layers} layers")

    bands = np.asarray(grid.data, dtype=np.float64)[selected]
    crs = CRS.from_user_input(grid.crs) if grid.crs else None

    with rasterio.open(
        file_path,
        'w',
        driver='GTiff',
        height=grid.height,
        width=grid.width,
        count=len(selected),
        dtype=bands.dtype,
        crs=crs,
        transform=grid.transform,
        nodata=grid.nodata
    ) as dst:
        dst.write(bands)
        if grid.layer_names:
            for band, layer in enumerate(selected, start=1):
                dst.set_band_description(band, grid.layer_names[layer])


def load_raster(file_path: str) -> RasterGrid:
    """Every band of a GeoTIFF as one layer of a RasterGrid."""
    return RasterGrid.from_multiband(file_path)
