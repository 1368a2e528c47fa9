"""Shared fixtures for tests."""

import pytest
import jax.numpy as jnp
import jax.random as random
import numpy as np

from mrvm.data.formats import RasterGrid
from mrvm.data.simulation import simulated_raster_grid, sparse_kernel_dataset
from mrvm.items.base import IOType
from mrvm.items.raster import RealRasterItem
from mrvm.kernels.kernel import Kernel
from mrvm.models.rvm import RVMTrainer, SparseModel
from mrvm.sampling.bootstrap import RasterBootstrap


@pytest.fixture
def rng_key():
    """Random number generator key."""
    return random.PRNGKey(42)


@pytest.fixture
def sample_data_2d(rng_key):
    """Non-negative sample data, safe for every kernel family."""
    key1, key2 = random.split(rng_key)
    X = random.uniform(key1, (10, 3))
    Y = random.uniform(key2, (8, 3))
    return X, Y


@pytest.fixture
def offset_data():
    """Non-integer rows far from the origin, prone to cancellation."""
    return random.normal(random.PRNGKey(1), (50, 4)) * 3.7 + 11.3


@pytest.fixture
def gaussian_kernel():
    """Gaussian kernel with unit length scale."""
    return Kernel("gaussian", length_scale=1.0)


@pytest.fixture
def sparse_dataset(gaussian_kernel):
    """Noise-free targets generated by rows 5, 15 and 25."""
    return sparse_kernel_dataset(gaussian_kernel)


@pytest.fixture
def trained_model(gaussian_kernel, sparse_dataset):
    """Sparse model trained on the sparse dataset."""
    trainer = RVMTrainer(gaussian_kernel, n_workers=2)
    result = trainer.fit(sparse_dataset.X, sparse_dataset.T)
    return SparseModel.from_fit(gaussian_kernel, sparse_dataset.X, result)


@pytest.fixture
def raster_grid():
    """20x20 grid with two layers and one no-data cell."""
    return simulated_raster_grid(cols=20, rows=20, n_layers=2, nodata_cells=[(3, 3)], seed=7)


@pytest.fixture
def fixed_centers():
    """Factory of centre strategies that always return the given (row, col) cells."""
    def make(*centers):
        def strategy(valid_cells, num_windows):
            return np.asarray(centers, dtype=int)
        return strategy
    return make


@pytest.fixture
def raster_items(raster_grid):
    """Input and output raster items on the same grid, output = 2 x input + 1."""
    output_grid = simulated_raster_grid(cols=20, rows=20, n_layers=2, nodata_cells=[(3, 3)], seed=7)
    output_grid.data = jnp.where(
        raster_grid.data == raster_grid.nodata, raster_grid.nodata, 2.0 * raster_grid.data + 1.0
    )
    forecast_grid = RasterGrid(
        data=raster_grid.data[1:], transform=raster_grid.transform, nodata=raster_grid.nodata
    )
    x = RealRasterItem("x", IOType.INPUT, training_grid=raster_grid, forecast_grid=forecast_grid)
    y = RealRasterItem("y", IOType.OUTPUT, training_grid=output_grid)
    return x, y


@pytest.fixture
def bootstrap():
    """Sampler with four evenly spaced 3x3 windows."""
    return RasterBootstrap(num_windows=4, window_size=1, center_strategy="grid")
