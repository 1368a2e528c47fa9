"""Regression with trained sparse models."""

from .regression import RegressionEngine

__all__ = ["RegressionEngine"]
