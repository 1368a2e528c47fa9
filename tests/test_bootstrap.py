"""Tests for raster bootstrap sampling."""

import pytest
import numpy as np

from mrvm.data.assembly import ItemMatrixAssembler
from mrvm.data.simulation import simulated_raster_grid
from mrvm.errors import ConfigurationError, NoDataError, ShapeError
from mrvm.items.base import IOType
from mrvm.items.raster import RealRasterItem
from mrvm.items.values import RealItem
from mrvm.sampling import GridCenterStrategy, RandomCenterStrategy, RasterBootstrap, window_offsets


def test_window_offsets_nearest_first():
    """Offsets are ordered by distance, ties in row-major order."""
    offsets, distances = window_offsets(1)
    expected = [
        (0, 0),
        (-1, 0), (0, -1), (0, 1), (1, 0),
        (-1, -1), (-1, 1), (1, -1), (1, 1),
    ]
    assert [tuple(o) for o in offsets] == expected
    assert np.allclose(distances, [0.0] + [1.0] * 4 + [np.sqrt(2.0)] * 4)


def test_window_offsets_use_map_units():
    """Distances are measured in map units of the transform."""
    grid = simulated_raster_grid(cols=5, rows=5, cell_size=30.0)
    _, distances = window_offsets(2, grid.transform)
    assert distances[0] == 0.0
    assert np.isclose(distances[1], 30.0)
    assert np.isclose(distances[-1], np.hypot(60.0, 60.0))
    assert np.all(np.diff(distances) >= 0)


def test_sampling_is_deterministic(raster_grid):
    """The same seed and items give the same layout."""
    layouts = []
    for _ in range(2):
        sampler = RasterBootstrap(num_windows=5, window_size=2, seed=3)
        sampler.add_raster_item(RealRasterItem("x", training_grid=raster_grid))
        layouts.append(sampler.sample_rasters())

    first, second = layouts
    assert np.array_equal(first.centers, second.centers)
    assert first.n_rows == second.n_rows
    for a, b in zip(first.neighbors, second.neighbors):
        assert np.array_equal(a, b)


def test_window_contents(raster_grid, fixed_centers):
    """Each window lists its valid in-bounds cells, centre first."""
    sampler = RasterBootstrap(window_size=1, center_strategy=fixed_centers((0, 0), (2, 2)))
    sampler.add_raster_item(RealRasterItem("x", training_grid=raster_grid))
    layout = sampler.sample_rasters()

    corner, inner = layout.neighbors
    # Corner window is clipped to the grid
    assert [tuple(c) for c in corner] == [(0, 0), (0, 1), (1, 0), (1, 1)]
    # (3, 3) holds no data and is left out
    assert len(inner) == 8
    assert tuple(inner[0]) == (2, 2)
    assert (3, 3) not in [tuple(c) for c in inner]

    assert layout.n_windows == 2
    assert layout.n_rows == 12
    assert np.array_equal(layout.window_of_row, [0] * 4 + [1] * 8)
    assert layout.distances.shape == (12,)


def test_centers_avoid_nodata(raster_grid):
    """Window centres are valid in every registered item."""
    sampler = RasterBootstrap(num_windows=50, seed=1)
    sampler.add_raster_item(RealRasterItem("x", training_grid=raster_grid))
    layout = sampler.sample_rasters()
    mask = raster_grid.valid_mask()
    assert layout.n_windows == 50
    assert len({tuple(c) for c in layout.centers}) == 50
    assert all(mask[r, c] for r, c in layout.centers)


def test_num_windows_capped_by_valid_cells():
    """Asking for more windows than valid cells samples every cell once."""
    grid = simulated_raster_grid(cols=3, rows=2)
    sampler = RasterBootstrap(num_windows=100, window_size=1)
    sampler.add_raster_item(RealRasterItem("x", training_grid=grid))
    assert sampler.sample_rasters().n_windows == 6


def test_grid_strategy_spreads_centers():
    """Grid centres are evenly spaced along the valid cells."""
    cells = np.argwhere(np.ones((10, 10), dtype=bool))
    centers = GridCenterStrategy()(cells, 4)
    assert [tuple(c) for c in centers] == [(1, 2), (3, 7), (6, 2), (8, 7)]


def test_random_strategy_sorted_without_replacement():
    """Random centres are distinct and in row-major order."""
    cells = np.argwhere(np.ones((6, 6), dtype=bool))
    centers = RandomCenterStrategy(seed=5)(cells, 10)
    flat = centers[:, 0] * 6 + centers[:, 1]
    assert len(set(flat.tolist())) == 10
    assert np.all(np.diff(flat) > 0)


def test_layout_broadcast_to_items(raster_items, bootstrap):
    """Every registered item sees the same windows."""
    x, y = raster_items
    bootstrap.add_raster_item(x)
    bootstrap.add_raster_item(y)
    bootstrap.set_raster_item_locations()

    assert x.layout is y.layout
    assert x.num_rows_per_value() == y.num_rows_per_value() == 36
    locations = bootstrap.window_locations()
    assert np.array_equal(locations["x"], locations["y"])
    assert set(bootstrap.sample_location_indexes()) == {"x", "y"}


def test_include_distance_column(raster_items, bootstrap):
    """Inputs get a distance column, outputs do not."""
    x, y = raster_items
    bootstrap.include_distance = True
    bootstrap.add_raster_item(x)
    bootstrap.add_raster_item(y)
    bootstrap.set_raster_item_locations()

    assert x.column_count() == 2
    assert y.column_count() == 1
    block = np.asarray(x.training_values(0))
    assert block.shape == (36, 2)
    assert np.allclose(block[:, 1], x.layout.distances)


def test_remove_item_clears_windows(raster_items, bootstrap):
    """Removed items lose their windows."""
    x, _ = raster_items
    bootstrap.add_raster_item(x)
    bootstrap.set_raster_item_locations()
    assert bootstrap.remove_raster_item("x")
    assert x.bootstrap is None
    assert not bootstrap.remove_raster_item("x")


def test_non_raster_item_rejected(bootstrap):
    """Only raster items can be sampled."""
    with pytest.raises(TypeError):
        bootstrap.add_raster_item(RealItem("x", training=[1.0]))


def test_mismatched_grids_rejected(raster_grid, bootstrap):
    """Items sampled together must share a grid shape."""
    bootstrap.add_raster_item(RealRasterItem("a", training_grid=raster_grid))
    bootstrap.add_raster_item(RealRasterItem("b", training_grid=simulated_raster_grid(cols=8, rows=8)))
    with pytest.raises(ShapeError):
        bootstrap.sample_rasters()


def test_no_items_rejected(bootstrap):
    """Sampling without items is a shape error."""
    with pytest.raises(ShapeError):
        bootstrap.sample_rasters()


@pytest.mark.parametrize("kwargs", [
    {"num_windows": 0},
    {"window_size": 0},
    {"center_strategy": "stratified"},
    {"center_strategy": 42},
])
def test_invalid_sampler_configuration(kwargs):
    """Invalid sampler settings raise ConfigurationError."""
    with pytest.raises(ConfigurationError):
        RasterBootstrap(**kwargs)


def test_unsampled_layout_is_empty(raster_grid):
    """Registered items have no windows until the sampler runs."""
    sampler = RasterBootstrap()
    item = RealRasterItem("y", IOType.OUTPUT, training_grid=raster_grid)
    sampler.add_raster_item(item)
    assert sampler.layout() is None
    assert sampler.window_locations() == {}


@pytest.fixture
def forecast_hole_item(fixed_centers):
    """Item whose forecast layer has a no-data cell right of the window centre."""
    training = simulated_raster_grid(cols=6, rows=6, n_layers=1, seed=3)
    forecast = simulated_raster_grid(cols=6, rows=6, n_layers=1, nodata_cells=[(2, 3)], seed=4)
    item = RealRasterItem("x", training_grid=training, forecast_grid=forecast)
    sampler = RasterBootstrap(window_size=1, center_strategy=fixed_centers((2, 2)))
    sampler.add_raster_item(item)
    sampler.set_raster_item_locations()
    return item


def test_forecast_nodata_in_window_is_masked(forecast_hole_item):
    """A no-data forecast cell yields a NaN row when lenient."""
    block = np.asarray(forecast_hole_item.forecast_values(0))
    assert block.shape == (9, 1)
    # Offset (0, 1) is the fourth neighbour
    assert np.isnan(block[3, 0])
    assert np.isfinite(np.delete(block[:, 0], 3)).all()

    matrices = ItemMatrixAssembler([forecast_hole_item]).assemble(training=False)
    assert int(matrices.row_mask.sum()) == 8
    assert not matrices.row_mask[3]
    assert [(issue.item, issue.row) for issue in matrices.issues] == [("x", 3)]


def test_forecast_nodata_in_window_strict(forecast_hole_item):
    """Strict access reports the no-data cell."""
    with pytest.raises(NoDataError) as info:
        forecast_hole_item.forecast_values(0, strict=True)
    assert info.value.item == "x"
    assert info.value.row == 3

    with pytest.raises(NoDataError):
        ItemMatrixAssembler([forecast_hole_item], strict=True).assemble(training=False)
