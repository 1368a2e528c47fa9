"""Core data structures for MRVM."""

from dataclasses import dataclass
from typing import List, NamedTuple, Optional, Tuple

import jax.numpy as jnp
import numpy as np
from jaxtyping import Array, Float

DEFAULT_NODATA = -9999.0


@dataclass
class RasterGrid:
    """
    Stack of co-registered raster layers sharing one georeference.

    Each layer is one logical value of a raster item (for example one
    time step). Cell (row, col) maps to map coordinates through the
    affine transform.

    Attributes:
        data: Array of shape (n_layers, height, width)
        transform: Affine transformation (from rasterio)
        crs: Coordinate reference system
        nodata: No-data value
        layer_names: Optional names of the layers
    """
    data: Float[Array, "n_layers height width"]
    transform: 'rasterio.Affine'  # type: ignore
    crs: str = ""
    nodata: Optional[float] = None
    layer_names: Optional[List[str]] = None

    def __post_init__(self):
        self.data = jnp.asarray(self.data, dtype=jnp.float64)
        if self.data.ndim == 2:
            self.data = self.data[None, :, :]
        if self.data.ndim != 3:
            raise ValueError("Raster data must be 2D or 3D")

    @property
    def n_layers(self) -> int:
        """Number of layers in the grid."""
        return self.data.shape[0]

    @property
    def height(self) -> int:
        """Height of the raster in pixels."""
        return self.data.shape[1]

    @property
    def width(self) -> int:
        """Width of the raster in pixels."""
        return self.data.shape[2]

    @property
    def shape(self) -> Tuple[int, int]:
        """(height, width) of one layer."""
        return self.height, self.width

    def layer_valid_mask(self, layer: int) -> np.ndarray:
        """Boolean (height, width) mask of usable cells in one layer."""
        values = np.asarray(self.data[layer])
        mask = np.isfinite(values)
        if self.nodata is not None:
            mask &= values != self.nodata
        return mask

    def valid_mask(self) -> np.ndarray:
        """Boolean (height, width) mask of cells usable in every layer."""
        mask = np.ones(self.shape, dtype=bool)
        for layer in range(self.n_layers):
            mask &= self.layer_valid_mask(layer)
        return mask

    def in_bounds(self, index: Tuple[int, int]) -> bool:
        """Whether a (row, col) index lies inside the grid."""
        row, col = index
        return 0 <= row < self.height and 0 <= col < self.width

    def is_valid(self, index: Tuple[int, int], layer: Optional[int] = None) -> bool:
        """
        Whether a cell is inside the grid and holds data.

        Parameters:
            index: (row, col) cell index
            layer: Layer to test; all layers when None
        """
        if not self.in_bounds(index):
            return False
        mask = self.valid_mask() if layer is None else self.layer_valid_mask(layer)
        return bool(mask[index[0], index[1]])

    def coordinates(self, index: Tuple[int, int]) -> Tuple[float, float]:
        """Map coordinates (x, y) of a cell centre."""
        import rasterio

        x, y = rasterio.transform.xy(self.transform, index[0], index[1])
        return float(x), float(y)

    def cell_index(self, point: Tuple[float, float]) -> Tuple[int, int]:
        """(row, col) of the cell containing map point (x, y)."""
        import rasterio

        row, col = rasterio.transform.rowcol(self.transform, point[0], point[1])
        return int(row), int(col)

    def contains(self, point: Tuple[float, float]) -> bool:
        """Whether map point (x, y) falls inside the grid extent."""
        return self.in_bounds(self.cell_index(point))

    def cell_size(self) -> Tuple[float, float]:
        """Absolute (x, y) pixel size in map units."""
        return abs(self.transform.a), abs(self.transform.e)

    def empty_like(self, n_layers: int = 1) -> 'RasterGrid':
        """
        New grid with the same georeference, filled with no-data.

        Parameters:
            n_layers: Number of layers to allocate
        """
        nodata = self.nodata if self.nodata is not None else DEFAULT_NODATA
        return RasterGrid(
            data=jnp.full((n_layers, self.height, self.width), nodata),
            transform=self.transform,
            crs=self.crs,
            nodata=nodata
        )

    def ensure_layers(self, n_layers: int) -> None:
        """Grow the stack with no-data layers until it has n_layers."""
        missing = n_layers - self.n_layers
        if missing <= 0:
            return
        nodata = self.nodata if self.nodata is not None else DEFAULT_NODATA
        if self.nodata is None:
            self.nodata = nodata
        pad = jnp.full((missing, self.height, self.width), nodata)
        self.data = jnp.concatenate([self.data, pad], axis=0)

    @classmethod
    def from_files(cls, file_paths: List[str]) -> 'RasterGrid':
        """
        Load one layer from each single-band raster.

        Parameters:
            file_paths: List of paths to raster files

        Returns:
            RasterGrid object
        """
        import rasterio

        with rasterio.open(file_paths[0]) as src:
            transform = src.transform
            crs = src.crs.to_string() if src.crs else ""
            nodata = src.nodata

        layers = []
        for file_path in file_paths:
            with rasterio.open(file_path) as src:
                layers.append(src.read(1))

        return cls(
            data=jnp.array(np.stack(layers, axis=0)),
            transform=transform,
            crs=crs,
            nodata=nodata,
            layer_names=[str(p) for p in file_paths]
        )

    @classmethod
    def from_multiband(cls, file_path: str) -> 'RasterGrid':
        """
        Load every band of a multi-band raster as a layer.

        Parameters:
            file_path: Path to multi-band raster file

        Returns:
            RasterGrid object
        """
        import rasterio

        with rasterio.open(file_path) as src:
            data = jnp.array(src.read())
            transform = src.transform
            crs = src.crs.to_string() if src.crs else ""
            nodata = src.nodata
            layer_names = [
                src.descriptions[i] if src.descriptions and src.descriptions[i]
                else f"band_{i+1}"
                for i in range(src.count)
            ]

        return cls(
            data=data,
            transform=transform,
            crs=crs,
            nodata=nodata,
            layer_names=layer_names
        )

    def save(self, file_path: str, layers: Optional[List[int]] = None) -> None:
        """
        Save layers to a multi-band GeoTIFF.

        Parameters:
            file_path: Output file path
            layers: Layer indices to write, all layers when None
        """
        from ..io.raster import save_raster
        save_raster(self, file_path, layers)


class AssemblyIssue(NamedTuple):
    """A per-row domain problem found while assembling matrices."""
    item: str
    value_index: int
    row: int  # physical row inside the assembled matrix
    reason: str


class AssembledMatrices(NamedTuple):
    """Row-aligned feature and target matrices."""
    features: Float[Array, "rows d"]
    targets: Optional[Float[Array, "rows v"]]
    rows_per_value: int
    row_mask: np.ndarray        # True for rows usable in training/regression
    value_index: np.ndarray     # logical value index of each physical row
    issues: Tuple[AssemblyIssue, ...] = ()

    @property
    def n_rows(self) -> int:
        """Number of physical rows."""
        return int(self.features.shape[0])

    @property
    def n_values(self) -> int:
        """Number of logical samples."""
        return self.n_rows // max(self.rows_per_value, 1)

    def valid_features(self) -> Float[Array, "valid d"]:
        """Feature rows not masked out by domain errors."""
        return self.features[jnp.asarray(self.row_mask)]

    def valid_targets(self) -> Optional[Float[Array, "valid v"]]:
        """Target rows not masked out by domain errors."""
        if self.targets is None:
            return None
        return self.targets[jnp.asarray(self.row_mask)]
