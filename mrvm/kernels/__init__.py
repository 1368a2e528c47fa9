"""Kernel implementations for MRVM."""

from .base import SimilarityKernel
from .functions import distance_squared
from .kernel import Kernel, KernelType

__all__ = [
    "SimilarityKernel",
    "Kernel",
    "KernelType",
    "distance_squared",
]
