"""Tests for diagnostics and environment helpers."""

import logging

import jax.numpy as jnp
import numpy as np

from mrvm.utils import fit_metrics, get_device_info, noise_correlation, setup_logging


def test_fit_metrics_perfect_fit():
    """A perfect fit has R2 of one and zero errors."""
    targets = np.column_stack([np.arange(5.0), np.arange(5.0) ** 2])
    metrics = fit_metrics(targets, targets, names=["a", "b"])
    assert list(metrics.index) == ["a", "b"]
    assert np.allclose(metrics["r2"], 1.0)
    assert np.allclose(metrics["rmse"], 0.0)
    assert np.allclose(metrics["mae"], 0.0)


def test_fit_metrics_ignores_masked_rows():
    """NaN rows are left out of the metrics."""
    targets = np.array([[1.0], [2.0], [np.nan], [4.0]])
    predictions = np.array([[1.0], [3.0], [0.0], [4.0]])
    metrics = fit_metrics(targets, predictions)
    assert metrics.loc["output_0", "n"] == 3
    assert np.isclose(metrics.loc["output_0", "mae"], 1.0 / 3.0)


def test_noise_correlation_labels():
    """Noise correlation is labelled by output."""
    frame = noise_correlation(jnp.array([[1.0, 0.5], [0.5, 4.0]]), names=["y1", "y2"])
    assert list(frame.columns) == ["y1", "y2"]
    assert np.isclose(frame.loc["y1", "y2"], 0.25)


def test_device_info():
    """Device info reports the backend and x64 mode."""
    info = get_device_info()
    assert info['device_count'] >= 1
    assert info['x64_enabled']


def test_setup_logging():
    """The package logger gets a single handler."""
    logger = setup_logging("DEBUG")
    setup_logging("DEBUG")
    assert logger.name == "mrvm"
    assert logger.level == logging.DEBUG
    assert len(logger.handlers) == 1
