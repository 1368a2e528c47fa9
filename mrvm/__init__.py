"""
MRVM - Multivariate Relevance Vector Machine

A Python/JAX implementation of sparse Bayesian kernel regression over
scalar, categorical, array and raster-backed variables.
"""

import jax

# The marginal-likelihood recursion works with very small noise variances.
jax.config.update("jax_enable_x64", True)

__version__ = "0.1.0"

# Errors and configuration
from .errors import (
    MRVMError,
    ConfigurationError,
    ShapeError,
    MissingBootstrapError,
    DomainError,
    UnresolvedCategoryError,
    NoDataError,
    ModelStateError,
)
from .config import MRVMConfig, Mode, Algorithm

# Kernels
from .kernels.kernel import Kernel, KernelType

# Items
from .items.base import IOType, ValueType, ItemKind, Item
from .items.values import RealItem, RealArrayItem, CategoricalItem, CategoryMap
from .items.raster import RealRasterItem, CategoricalRasterItem
from .data.formats import RasterGrid, AssembledMatrices, AssemblyIssue

# Sampling and assembly
from .sampling.bootstrap import (
    RasterBootstrap,
    BootstrapLayout,
    RandomCenterStrategy,
    GridCenterStrategy,
)
from .data.assembly import ItemMatrixAssembler

# Models
from .models.rvm import RVMTrainer, RVMFitResult, SparseModel

# Prediction
from .prediction.regression import RegressionEngine

# High-level API
from .api import MRVM

__all__ = [
    "__version__",
    # Errors and configuration
    "MRVMError",
    "ConfigurationError",
    "ShapeError",
    "MissingBootstrapError",
    "DomainError",
    "UnresolvedCategoryError",
    "NoDataError",
    "ModelStateError",
    "MRVMConfig",
    "Mode",
    "Algorithm",
    # Kernels
    "Kernel",
    "KernelType",
    # Items
    "IOType",
    "ValueType",
    "ItemKind",
    "Item",
    "RealItem",
    "RealArrayItem",
    "CategoricalItem",
    "CategoryMap",
    "RealRasterItem",
    "CategoricalRasterItem",
    "RasterGrid",
    "AssembledMatrices",
    "AssemblyIssue",
    # Sampling and assembly
    "RasterBootstrap",
    "BootstrapLayout",
    "RandomCenterStrategy",
    "GridCenterStrategy",
    "ItemMatrixAssembler",
    # Models
    "RVMTrainer",
    "RVMFitResult",
    "SparseModel",
    # Prediction
    "RegressionEngine",
    # High-level API
    "MRVM",
]
