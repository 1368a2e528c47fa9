"""Training-fit diagnostics."""

from typing import List, Optional

import jax.numpy as jnp
import numpy as np
import pandas as pd
from jaxtyping import Array, Float
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score

from ..models.utils import corrcov


def fit_metrics(
    targets: Float[Array, "n v"],
    predictions: Float[Array, "n v"],
    names: Optional[List[str]] = None
) -> pd.DataFrame:
    """
    Per-output goodness of fit.

    Parameters:
        targets: Observed values
        predictions: Predicted values
        names: Output column names

    Returns:
        DataFrame indexed by output with R2, RMSE and MAE columns
    """
    targets = np.atleast_2d(np.asarray(targets, dtype=np.float64))
    predictions = np.atleast_2d(np.asarray(predictions, dtype=np.float64))
    if targets.shape != predictions.shape:
        raise ValueError("targets and predictions must have the same shape")
    if names is None:
        names = [f"output_{j}" for j in range(targets.shape[1])]

    rows = []
    for j, name in enumerate(names):
        obs = targets[:, j]
        pred = predictions[:, j]
        keep = np.isfinite(obs) & np.isfinite(pred)
        obs, pred = obs[keep], pred[keep]
        rows.append({
            'output': name,
            'n': int(keep.sum()),
            'r2': float(r2_score(obs, pred)) if obs.size > 1 else np.nan,
            'rmse': float(np.sqrt(mean_squared_error(obs, pred))) if obs.size else np.nan,
            'mae': float(mean_absolute_error(obs, pred)) if obs.size else np.nan,
        })
    return pd.DataFrame(rows).set_index('output')


def noise_correlation(
    omega: Float[Array, "v v"],
    names: Optional[List[str]] = None
) -> pd.DataFrame:
    """Correlation matrix of the output noise covariance as a DataFrame."""
    corr = np.asarray(corrcov(jnp.asarray(omega)))
    if names is None:
        names = [f"output_{j}" for j in range(corr.shape[0])]
    return pd.DataFrame(corr, index=names, columns=names)
