"""Raster-backed items sampled through bootstrap windows."""

from typing import TYPE_CHECKING, Any, Dict, Optional, Tuple

import jax.numpy as jnp
import numpy as np
from jaxtyping import Array, Float

from .base import BaseItem, IOType, ItemKind, ValueType
from .values import CategoryMap
from ..data.formats import DEFAULT_NODATA, RasterGrid
from ..errors import MissingBootstrapError, NoDataError, ShapeError, UnresolvedCategoryError

if TYPE_CHECKING:
    from ..sampling.bootstrap import BootstrapLayout, RasterBootstrap


class RasterCapable:
    """
    Raster behaviour shared by real and categorical raster items.

    Layer ``k`` of the training grid is logical training value ``k``;
    the forecast grid works the same way. Physical rows of one value are
    the neighbour cells of every bootstrap window, in layout order. The
    item only keeps a reference to its sampler and the scheme key, the
    layout itself is owned by the sampler.
    """

    name: str
    io_type: IOType

    def _init_raster(
        self,
        training_grid: Optional[RasterGrid],
        forecast_grid: Optional[RasterGrid]
    ) -> None:
        if training_grid is not None and forecast_grid is not None:
            if training_grid.shape != forecast_grid.shape:
                raise ShapeError(
                    "Training and forecast grids must share a shape",
                    item=self.name,
                    expected=training_grid.shape,
                    actual=forecast_grid.shape
                )
        self.training_grid = training_grid
        self.forecast_grid = forecast_grid
        self.uncertainty_grid: Optional[RasterGrid] = None
        if forecast_grid is not None and self.io_type is IOType.OUTPUT:
            self.uncertainty_grid = forecast_grid.empty_like(forecast_grid.n_layers)
        self._bootstrap: Optional["RasterBootstrap"] = None
        self._scheme: Optional[str] = None

    # Georeference

    @property
    def reference_grid(self) -> RasterGrid:
        """Grid that defines the georeference of this item."""
        grid = self.training_grid if self.training_grid is not None else self.forecast_grid
        if grid is None:
            raise ShapeError("Raster item has no grid", item=self.name)
        return grid

    def contains(self, point: Tuple[float, float]) -> bool:
        return self.reference_grid.contains(point)

    def is_valid(self, index: Tuple[int, int]) -> bool:
        return self.reference_grid.is_valid(index)

    def coordinates(self, index: Tuple[int, int]) -> Tuple[float, float]:
        return self.reference_grid.coordinates(index)

    def cell_index(self, point: Tuple[float, float]) -> Tuple[int, int]:
        return self.reference_grid.cell_index(point)

    def sampling_mask(self) -> np.ndarray:
        """Cells usable for bootstrap windows (valid in every training layer)."""
        return self.reference_grid.valid_mask()

    # Bootstrap windows

    def assign_bootstrap(self, bootstrap: "RasterBootstrap", scheme: str) -> None:
        """Point this item at a layout owned by ``bootstrap``."""
        self._bootstrap = bootstrap
        self._scheme = scheme

    def clear_bootstrap(self) -> None:
        self._bootstrap = None
        self._scheme = None

    @property
    def bootstrap(self) -> Optional["RasterBootstrap"]:
        return self._bootstrap

    @property
    def scheme(self) -> Optional[str]:
        return self._scheme

    @property
    def layout(self) -> "BootstrapLayout":
        """Layout of the assigned sampling windows."""
        if self._bootstrap is None or self._scheme is None:
            raise MissingBootstrapError("Raster item has no sampling windows", item=self.name)
        layout = self._bootstrap.layout(self._scheme)
        if layout is None:
            raise MissingBootstrapError(
                f"Sampling scheme {self._scheme!r} has not been sampled", item=self.name
            )
        if layout.shape != self.reference_grid.shape:
            raise ShapeError(
                "Sampling layout does not match the raster",
                item=self.name,
                expected=layout.shape,
                actual=self.reference_grid.shape
            )
        return layout

    @property
    def include_distance(self) -> bool:
        """Distance-from-centre column, inputs only."""
        return (
            self.io_type is IOType.INPUT
            and self._bootstrap is not None
            and self._bootstrap.include_distance
        )

    def num_rows_per_value(self) -> int:
        return self.layout.n_rows

    def column_count(self) -> int:
        return 2 if self.include_distance else 1

    def num_training_values(self) -> int:
        return 0 if self.training_grid is None else self.training_grid.n_layers

    def num_forecast_values(self) -> int:
        return 0 if self.forecast_grid is None else self.forecast_grid.n_layers

    def _encode(self, values: np.ndarray) -> np.ndarray:
        """Map raw cell values to model features."""
        return values

    def _decode(self, values: np.ndarray) -> np.ndarray:
        """Map model outputs back to cell values."""
        return values

    def _window_block(
        self,
        grid: Optional[RasterGrid],
        index: int,
        strict: bool
    ) -> Float[Array, "rows cols"]:
        if grid is None:
            raise ShapeError("Raster item has no grid for this value", item=self.name)
        layout = self.layout
        values = np.asarray(grid.data[index])[layout.rows, layout.cols]
        valid = grid.layer_valid_mask(index)[layout.rows, layout.cols]
        if strict and not valid.all():
            row = int(np.flatnonzero(~valid)[0])
            raise NoDataError("No-data cell inside a sampling window", self.name, row)

        features = np.where(valid, values, np.nan)
        features = self._encode(features)
        if strict and not np.all(np.isfinite(features)):
            row = int(np.flatnonzero(~np.isfinite(features))[0])
            raise UnresolvedCategoryError("Class was not observed in training", self.name, row)

        columns = [features]
        if self.include_distance:
            columns.append(layout.distances)
        return jnp.asarray(np.column_stack(columns), dtype=jnp.float64)

    def training_values(self, index: int, strict: bool = False) -> Float[Array, "rows cols"]:
        return self._window_block(self.training_grid, index, strict)

    def forecast_values(self, index: int, strict: bool = False) -> Float[Array, "rows cols"]:
        return self._window_block(self.forecast_grid, index, strict)

    def set_forecast_values(self, index: int, values, uncertainty) -> None:
        """
        Fold window rows back into one forecast layer.

        Cells covered by several windows receive the mean prediction and
        the root of the mean variance; cells outside every window stay
        no-data.
        """
        layout = self.layout
        pred = np.asarray(values, dtype=np.float64).reshape(layout.n_rows, -1)[:, 0]
        std = np.asarray(uncertainty, dtype=np.float64).reshape(layout.n_rows, -1)[:, 0]
        finite = np.isfinite(pred)

        shape = self.reference_grid.shape
        sums = np.zeros(shape)
        variances = np.zeros(shape)
        counts = np.zeros(shape)
        cells = (layout.rows[finite], layout.cols[finite])
        np.add.at(sums, cells, pred[finite])
        np.add.at(variances, cells, np.nan_to_num(std[finite]) ** 2)
        np.add.at(counts, cells, 1.0)
        covered = counts > 0

        if self.forecast_grid is None:
            self.forecast_grid = self.reference_grid.empty_like(index + 1)
        if self.uncertainty_grid is None:
            self.uncertainty_grid = self.reference_grid.empty_like(index + 1)
        self.forecast_grid.ensure_layers(index + 1)
        self.uncertainty_grid.ensure_layers(index + 1)

        nodata = self.forecast_grid.nodata
        if nodata is None:
            nodata = self.forecast_grid.nodata = DEFAULT_NODATA
        layer = np.full(shape, nodata, dtype=np.float64)
        layer[covered] = self._decode(sums[covered] / counts[covered])
        ulayer = np.full(shape, self.uncertainty_grid.nodata or DEFAULT_NODATA, dtype=np.float64)
        ulayer[covered] = np.sqrt(variances[covered] / counts[covered])

        self.forecast_grid.data = self.forecast_grid.data.at[index].set(layer)
        self.uncertainty_grid.data = self.uncertainty_grid.data.at[index].set(ulayer)

    def clear_forecasts(self) -> None:
        if self.io_type is IOType.OUTPUT:
            self.forecast_grid = None
            self.uncertainty_grid = None


class RealRasterItem(RasterCapable, BaseItem):
    """
    Real-valued raster variable.

    Parameters:
        name: Item name
        io_type: Input or Output
        training_grid: Layers used as training values
        forecast_grid: Layers used as forecast values (inputs)
        properties: Free-form metadata
    """

    kind = ItemKind.REAL_RASTER
    value_type = ValueType.REAL

    def __init__(
        self,
        name: str,
        io_type: IOType = IOType.INPUT,
        training_grid: Optional[RasterGrid] = None,
        forecast_grid: Optional[RasterGrid] = None,
        properties: Optional[Dict[str, Any]] = None
    ):
        BaseItem.__init__(self, name, io_type, properties)
        self._init_raster(training_grid, forecast_grid)


class CategoricalRasterItem(RasterCapable, BaseItem):
    """
    Categorical raster variable holding integer class codes.

    The model sees the compact index of each class code observed in the
    valid training cells.

    Parameters:
        name: Item name
        io_type: Input or Output
        training_grid: Layers of class codes used as training values
        forecast_grid: Layers of class codes used as forecast values
        categories: Optional label -> class code mapping
        properties: Free-form metadata
    """

    kind = ItemKind.CATEGORICAL_RASTER
    value_type = ValueType.CATEGORICAL

    def __init__(
        self,
        name: str,
        io_type: IOType = IOType.INPUT,
        training_grid: Optional[RasterGrid] = None,
        forecast_grid: Optional[RasterGrid] = None,
        categories: Optional[Dict[str, int]] = None,
        properties: Optional[Dict[str, Any]] = None
    ):
        BaseItem.__init__(self, name, io_type, properties)
        self._init_raster(training_grid, forecast_grid)
        self.category_map = CategoryMap(categories)
        self.category_map.fit_classes(self._observed_classes())

    def _observed_classes(self):
        if self.training_grid is None:
            return []
        codes = set()
        for layer in range(self.training_grid.n_layers):
            values = np.asarray(self.training_grid.data[layer])
            mask = self.training_grid.layer_valid_mask(layer)
            codes.update(np.unique(np.rint(values[mask])).astype(int).tolist())
        return sorted(codes)

    @property
    def categories(self) -> Dict[str, int]:
        return self.category_map.to_dict()

    def _encode(self, values: np.ndarray) -> np.ndarray:
        lookup = self.category_map.index_by_class
        encoded = np.full(values.shape, np.nan)
        for i, value in enumerate(values):
            if np.isfinite(value):
                encoded[i] = lookup.get(int(np.rint(value)), np.nan)
        return encoded

    def _decode(self, values: np.ndarray) -> np.ndarray:
        return np.array(
            [self.category_map.class_of_index(v) for v in values], dtype=np.float64
        )
