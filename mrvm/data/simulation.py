"""Data simulation functions for testing and examples."""

from typing import NamedTuple, Optional, Sequence

import jax.numpy as jnp
import numpy as np
from jaxtyping import Array, Float
from rasterio.transform import from_bounds
from scipy.ndimage import gaussian_filter

from .formats import DEFAULT_NODATA, RasterGrid
from ..kernels.kernel import Kernel


class SparseDataset(NamedTuple):
    """Synthetic regression data generated by a few known basis functions."""
    X: Float[Array, "n d"]
    T: Float[Array, "n v"]
    relevant: np.ndarray
    weights: Float[Array, "k v"]


def sparse_kernel_dataset(
    kernel: Kernel,
    n: int = 30,
    relevant: Sequence[int] = (5, 15, 25),
    weights: Optional[Sequence[Sequence[float]]] = None,
    noise_sd: float = 0.0,
    seed: int = 42
) -> SparseDataset:
    """
    Targets that are an exact kernel expansion over a few training rows.

    Features are the integers ``0..n-1`` as one column, so each row is a
    distinct candidate basis.

    Parameters:
        kernel: Kernel of the generating function
        n: Number of rows
        relevant: Rows whose kernel columns generate the targets
        weights: Weight of each relevant row, shape (k, v); defaults to
            one output cycling through 1.0, -0.8, 0.6
        noise_sd: Standard deviation of added Gaussian noise
        seed: Random seed for the noise

    Returns:
        SparseDataset
    """
    relevant = np.asarray(relevant, dtype=int)
    if weights is None:
        weights = np.resize([1.0, -0.8, 0.6], len(relevant))[:, None]
    W = jnp.asarray(weights, dtype=jnp.float64)
    if W.ndim == 1:
        W = W[:, None]

    X = jnp.arange(n, dtype=jnp.float64)[:, None]
    T = kernel(X, X[relevant]) @ W
    if noise_sd > 0:
        np.random.seed(seed)
        T = T + noise_sd * jnp.asarray(np.random.randn(*T.shape))
    return SparseDataset(X=X, T=T, relevant=relevant, weights=W)


def gaussian_field(
    cols: int,
    rows: int,
    autocorr_range: float = 20.0,
    seed: Optional[int] = None
) -> np.ndarray:
    """
    Generate a spatially autocorrelated Gaussian random field.

    Random noise is smoothed with a Gaussian filter of width
    ``autocorr_range / 3`` and rescaled to [0, 1].

    Parameters:
        cols: Number of columns in the output raster
        rows: Number of rows in the output raster
        autocorr_range: Spatial autocorrelation range in cells
        seed: Random seed for reproducibility

    Returns:
        2D numpy array of shape (rows, cols) with values in [0, 1]
    """
    if seed is not None:
        np.random.seed(seed)

    noise = np.random.rand(rows, cols)
    field = gaussian_filter(noise, sigma=autocorr_range / 3.0)

    min_val = np.min(field)
    max_val = np.max(field)
    if max_val > min_val:
        return (field - min_val) / (max_val - min_val)
    return field


def simulated_raster_grid(
    cols: int = 20,
    rows: int = 20,
    n_layers: int = 1,
    autocorr_range: float = 6.0,
    cell_size: float = 1.0,
    nodata_cells: Sequence[tuple] = (),
    seed: int = 42
) -> RasterGrid:
    """
    Create a grid of smooth random layers for testing.

    Parameters:
        cols: Number of columns
        rows: Number of rows
        n_layers: Number of layers (logical values)
        autocorr_range: Smoothness of each layer in cells
        cell_size: Pixel size in map units
        nodata_cells: (row, col) cells set to no-data in every layer
        seed: Random seed

    Returns:
        RasterGrid with values in [0, 1]
    """
    layers = np.stack([
        gaussian_field(cols, rows, autocorr_range, seed=seed + k) for k in range(n_layers)
    ])
    for row, col in nodata_cells:
        layers[:, row, col] = DEFAULT_NODATA

    transform = from_bounds(0, 0, cols * cell_size, rows * cell_size, cols, rows)
    return RasterGrid(
        data=jnp.asarray(layers),
        transform=transform,
        crs="EPSG:3857",
        nodata=DEFAULT_NODATA,
        layer_names=[f"layer{k+1}" for k in range(n_layers)]
    )
