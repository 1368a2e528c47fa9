"""Model implementations for MRVM."""

from .rvm import RVMTrainer, RVMFitResult, SparseModel, StepResult
from .utils import Action, CandidateFactors, corrcov

__all__ = [
    "RVMTrainer",
    "RVMFitResult",
    "SparseModel",
    "StepResult",
    "Action",
    "CandidateFactors",
    "corrcov",
]
