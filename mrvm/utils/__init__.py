"""Utility functions for logging, devices, persistence and diagnostics."""

from .gpu import check_gpu_available, get_device_info
from .logs import setup_logging
from .serialization import save_model, load_model
from .validation import fit_metrics, noise_correlation

__all__ = [
    "check_gpu_available",
    "get_device_info",
    "setup_logging",
    "save_model",
    "load_model",
    "fit_metrics",
    "noise_correlation",
]
