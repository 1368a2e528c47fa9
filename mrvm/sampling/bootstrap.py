"""Raster bootstrap sampling windows."""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple, Union

import jax.random as random
import numpy as np

from ..errors import ConfigurationError, ShapeError
from ..items.raster import RasterCapable

logger = logging.getLogger(__name__)

CenterStrategy = Callable[[np.ndarray, int], np.ndarray]


class RandomCenterStrategy:
    """
    Uniform random window centres without replacement.

    The same seed and valid-cell set always give the same centres,
    returned in row-major order.

    Parameters:
        seed: Random seed for reproducibility
    """

    def __init__(self, seed: int = 0):
        self.seed = seed

    def __call__(self, valid_cells: np.ndarray, num_windows: int) -> np.ndarray:
        n = valid_cells.shape[0]
        count = min(num_windows, n)
        key = random.PRNGKey(self.seed)
        chosen = random.choice(key, n, shape=(count,), replace=False)
        return valid_cells[np.sort(np.asarray(chosen))]


class GridCenterStrategy:
    """Window centres evenly spaced along the row-major valid-cell list."""

    def __call__(self, valid_cells: np.ndarray, num_windows: int) -> np.ndarray:
        n = valid_cells.shape[0]
        count = min(num_windows, n)
        # Midpoints of count equal strata
        positions = np.floor((np.arange(count) + 0.5) * n / count).astype(int)
        return valid_cells[np.unique(positions)]


_STRATEGIES = {
    "random": RandomCenterStrategy,
    "grid": GridCenterStrategy,
}


@dataclass(frozen=True)
class BootstrapLayout:
    """
    Window centres and ordered neighbour cells of one sampling scheme.

    Attributes:
        scheme: Scheme key the layout is stored under
        shape: (height, width) of the sampled rasters
        centers: Window centres, shape (n_windows, 2) as (row, col)
        neighbors: Per window, the ordered (row, col) neighbour cells
        neighbor_distances: Per window, neighbour distance from the centre
            in map units
    """
    scheme: str
    shape: Tuple[int, int]
    centers: np.ndarray
    neighbors: Tuple[np.ndarray, ...]
    neighbor_distances: Tuple[np.ndarray, ...]

    @property
    def n_windows(self) -> int:
        return int(self.centers.shape[0])

    @property
    def n_rows(self) -> int:
        """Physical rows per logical value (all neighbours of all windows)."""
        return int(sum(n.shape[0] for n in self.neighbors))

    @property
    def rows(self) -> np.ndarray:
        return np.concatenate([n[:, 0] for n in self.neighbors]).astype(int)

    @property
    def cols(self) -> np.ndarray:
        return np.concatenate([n[:, 1] for n in self.neighbors]).astype(int)

    @property
    def distances(self) -> np.ndarray:
        return np.concatenate(self.neighbor_distances)

    @property
    def window_of_row(self) -> np.ndarray:
        """Window number of each physical row."""
        return np.concatenate([
            np.full(n.shape[0], w, dtype=int) for w, n in enumerate(self.neighbors)
        ])


def window_offsets(radius: int, transform=None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Cell offsets of a square window, nearest first.

    Offsets are ordered by Euclidean distance from the centre (map units
    when a transform is given), ties broken by row-major order of the
    target cell.

    Parameters:
        radius: Window radius in cells
        transform: Optional affine transform for map-unit distances

    Returns:
        Tuple of (offsets (k, 2) as (dr, dc), distances (k,))
    """
    dr, dc = np.meshgrid(
        np.arange(-radius, radius + 1),
        np.arange(-radius, radius + 1),
        indexing="ij"
    )
    dr = dr.ravel()
    dc = dc.ravel()
    if transform is None:
        dist = np.hypot(dr, dc).astype(np.float64)
    else:
        dx = transform.a * dc + transform.b * dr
        dy = transform.d * dc + transform.e * dr
        dist = np.hypot(dx, dy)
    order = np.lexsort((dc, dr, np.round(dist, 9)))
    return np.column_stack([dr[order], dc[order]]), dist[order]


class RasterBootstrap:
    """
    Chooses sampling windows shared by a set of raster items.

    Window centres are drawn from the cells that hold data in every
    registered item. Each window lists every valid cell within
    ``window_size`` cells of its centre, nearest first. The resulting
    layout is stored under ``scheme`` and every registered item is
    pointed at it, so all items produce column-aligned features.

    Parameters:
        num_windows: Number of sampling windows
        window_size: Window radius in cells
        include_distance: Append distance-from-centre as a feature column
        center_strategy: "random", "grid" or a callable
            ``(valid_cells, num_windows) -> centres``
        seed: Seed for the random strategy
        scheme: Key the layout is stored under
    """

    def __init__(
        self,
        num_windows: int = 10,
        window_size: int = 1,
        include_distance: bool = False,
        center_strategy: Union[str, CenterStrategy] = "random",
        seed: int = 0,
        scheme: str = "default"
    ):
        self.num_windows = num_windows
        self.window_size = window_size
        self.include_distance = include_distance
        self.seed = seed
        self.center_strategy = center_strategy
        self.scheme = scheme
        self._raster_items: Dict[str, RasterCapable] = {}
        self._layouts: Dict[str, BootstrapLayout] = {}

    @property
    def num_windows(self) -> int:
        return self._num_windows

    @num_windows.setter
    def num_windows(self, value: int) -> None:
        if int(value) < 1:
            raise ConfigurationError("num_windows must be at least 1")
        self._num_windows = int(value)

    @property
    def window_size(self) -> int:
        return self._window_size

    @window_size.setter
    def window_size(self, value: int) -> None:
        if int(value) < 1:
            raise ConfigurationError("window_size must be at least 1")
        self._window_size = int(value)

    @property
    def center_strategy(self) -> CenterStrategy:
        return self._center_strategy

    @center_strategy.setter
    def center_strategy(self, value: Union[str, CenterStrategy]) -> None:
        if isinstance(value, str):
            if value not in _STRATEGIES:
                raise ConfigurationError(f"Unknown center strategy: {value!r}")
            factory = _STRATEGIES[value]
            value = factory(self.seed) if factory is RandomCenterStrategy else factory()
        elif not callable(value):
            raise ConfigurationError("center_strategy must be a name or a callable")
        self._center_strategy = value

    # Registered items

    @property
    def raster_items(self) -> List[RasterCapable]:
        return list(self._raster_items.values())

    def add_raster_item(self, item: RasterCapable) -> None:
        if not isinstance(item, RasterCapable):
            raise TypeError(f"{item!r} is not a raster item")
        self._raster_items[item.name] = item

    def remove_raster_item(self, item: Union[RasterCapable, str]) -> bool:
        name = item if isinstance(item, str) else item.name
        removed = self._raster_items.pop(name, None)
        if removed is None:
            return False
        if removed.bootstrap is self:
            removed.clear_bootstrap()
        return True

    # Sampling

    def shared_valid_mask(self) -> np.ndarray:
        """Cells that hold data in every registered item."""
        if not self._raster_items:
            raise ShapeError("No raster items registered with the sampler")
        items = self.raster_items
        shape = items[0].reference_grid.shape
        mask = np.ones(shape, dtype=bool)
        for item in items:
            if item.reference_grid.shape != shape:
                raise ShapeError(
                    "Raster items sampled together must share a grid shape",
                    item=item.name,
                    expected=shape,
                    actual=item.reference_grid.shape
                )
            mask &= item.sampling_mask()
        return mask

    def sample_rasters(self) -> BootstrapLayout:
        """
        Choose window centres and neighbour lists for the current items.

        Returns:
            The layout stored under ``self.scheme``
        """
        mask = self.shared_valid_mask()
        valid_cells = np.argwhere(mask)  # row-major
        if valid_cells.shape[0] == 0:
            raise ShapeError("Registered raster items share no valid cells")

        centers = np.asarray(self.center_strategy(valid_cells, self.num_windows), dtype=int)
        centers = centers.reshape(-1, 2)
        reference = self.raster_items[0].reference_grid
        offsets, offset_dist = window_offsets(self.window_size, reference.transform)
        height, width = mask.shape

        neighbors = []
        distances = []
        for row, col in centers:
            cells = offsets + np.array([row, col])
            inside = (
                (cells[:, 0] >= 0) & (cells[:, 0] < height)
                & (cells[:, 1] >= 0) & (cells[:, 1] < width)
            )
            keep = inside.copy()
            keep[inside] = mask[cells[inside, 0], cells[inside, 1]]
            neighbors.append(cells[keep])
            distances.append(offset_dist[keep])

        layout = BootstrapLayout(
            scheme=self.scheme,
            shape=(height, width),
            centers=centers,
            neighbors=tuple(neighbors),
            neighbor_distances=tuple(distances)
        )
        self._layouts[self.scheme] = layout
        logger.info(
            "Sampled %d windows (%d rows per value) over %d valid cells",
            layout.n_windows, layout.n_rows, valid_cells.shape[0]
        )
        return layout

    def set_raster_item_locations(self) -> None:
        """Point every registered item at the current layout."""
        if self.scheme not in self._layouts:
            self.sample_rasters()
        for item in self._raster_items.values():
            item.assign_bootstrap(self, self.scheme)

    def layout(self, scheme: Optional[str] = None) -> Optional[BootstrapLayout]:
        return self._layouts.get(scheme or self.scheme)

    def window_locations(self) -> Dict[str, np.ndarray]:
        """Window centres seen by each registered item."""
        layout = self.layout()
        if layout is None:
            return {}
        return {name: layout.centers.copy() for name in self._raster_items}

    def sample_location_indexes(self) -> Dict[str, List[np.ndarray]]:
        """Ordered neighbour cells per window for each registered item."""
        layout = self.layout()
        if layout is None:
            return {}
        return {
            name: [n.copy() for n in layout.neighbors] for name in self._raster_items
        }
