"""Forecasting with a frozen sparse model."""

import logging
from typing import Tuple

import jax.numpy as jnp
from jax import jit
from jaxtyping import Array, Float
from tqdm import tqdm

from ..errors import ShapeError
from ..models.rvm import SparseModel

logger = logging.getLogger(__name__)


@jit
def _predict_batch(
    K: Float[Array, "b m"],
    sigma: Float[Array, "m m"],
    mu: Float[Array, "m v"],
    noise: Float[Array, "v"]
) -> Tuple[Float[Array, "b v"], Float[Array, "b v"]]:
    mean = K @ mu
    spread = jnp.maximum(jnp.sum((K @ sigma) * K, axis=1), 0.0)
    var = noise[None, :] * (1.0 + spread[:, None])
    return mean, jnp.sqrt(var)


class RegressionEngine:
    """
    Predictive mean and uncertainty of a trained sparse model.

    The mean is ``K(X, X_rv) Mu``; the variance of output ``v`` is
    ``Omega_vv (1 + k Sigma k')`` for the kernel row ``k``. The engine
    holds no mutable state, so repeated calls give identical results.

    Parameters:
        model: Frozen sparse model
        batch_size: Forecast rows per kernel evaluation
        show_progress: Whether to show a progress bar over batches
    """

    def __init__(self, model: SparseModel, batch_size: int = 1000, show_progress: bool = False):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.model = model
        self.batch_size = batch_size
        self.show_progress = show_progress
        self._noise = jnp.diag(model.omega)

    def predict(self, X: Float[Array, "n d"]) -> Tuple[Float[Array, "n v"], Float[Array, "n v"]]:
        """
        Predict forecast rows.

        Parameters:
            X: Forecast features with the training feature width

        Returns:
            Tuple of (mean, standard deviation), each of shape (n, v)
        """
        X = jnp.atleast_2d(jnp.asarray(X, dtype=jnp.float64))
        width = self.model.relevant_features.shape[1]
        if X.shape[1] != width:
            raise ShapeError("Forecast features have the wrong width", expected=width, actual=X.shape[1])

        n = X.shape[0]
        if n == 0:
            empty = jnp.zeros((0, self.model.n_outputs))
            return empty, empty

        means, stds = [], []
        iterator = range(0, n, self.batch_size)
        if self.show_progress:
            iterator = tqdm(iterator, desc="Predicting")

        for start in iterator:
            batch = X[start:start + self.batch_size]
            K = self.model.kernel(batch, self.model.relevant_features)
            mean, std = _predict_batch(K, self.model.sigma, self.model.mu, self._noise)
            means.append(mean)
            stds.append(std)

        logger.debug("Predicted %d rows in %d batches", n, len(means))
        return jnp.concatenate(means), jnp.concatenate(stds)

    def predict_mean(self, X: Float[Array, "n d"]) -> Float[Array, "n v"]:
        """Predictive mean only."""
        return self.predict(X)[0]
