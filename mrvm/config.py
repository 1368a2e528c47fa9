"""Project-level configuration for MRVM training and regression."""

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Optional, Union

from .errors import ConfigurationError
from .kernels.kernel import Kernel, KernelType


class Mode(Enum):
    """What :meth:`MRVM.start` runs."""
    TRAINING_AND_REGRESSION = "training_and_regression"
    TRAINING = "training"
    REGRESSION = "regression"


class Algorithm(Enum):
    """Initial active set of the training loop."""
    MRVM = "mrvm"    # every candidate starts active
    FMRVM = "fmrvm"  # single seed basis, grown greedily


def _parse_enum(enum_cls, value, field_name: str):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        key = value.strip().lower()
        for member in enum_cls:
            if key in (member.value, member.name.lower()):
                return member
    raise ConfigurationError(f"Unknown {field_name}: {value!r}")


@dataclass
class MRVMConfig:
    """
    Plain configuration fields consumed by training and regression.

    Parameters:
        max_iterations: Iteration budget of the training loop
        tolerance: Convergence threshold on the relative alpha change
        mode: Training, Regression or TrainingAndRegression
        algorithm: ``mrvm`` (full initial basis) or ``fmrvm`` (single seed)
        kernel_type: Kernel family (enum member or name)
        length_scale: Kernel length scale
        polynomial_power: Power for the polynomial kernels
        use_bias: Add a constant bias to kernel values
        n_workers: Worker count for the parallel candidate scan
        noise_floor: Relative floor on the noise covariance diagonal
        batch_size: Forecast rows per regression batch
        strict: Raise on per-row domain errors instead of skipping rows
        verbose: Log every iteration and show progress bars
        matrix_output_file: Optional CSV path for the assembled matrices
    """
    max_iterations: int = 1000
    tolerance: float = 0.01
    mode: Union[Mode, str] = Mode.TRAINING_AND_REGRESSION
    algorithm: Union[Algorithm, str] = Algorithm.FMRVM
    kernel_type: Union[KernelType, str] = KernelType.GAUSSIAN
    length_scale: float = 1000.0
    polynomial_power: float = 2.0
    use_bias: bool = False
    n_workers: int = 4
    noise_floor: float = 1e-6
    batch_size: int = 1000
    strict: bool = False
    verbose: bool = False
    matrix_output_file: Optional[str] = None

    def __post_init__(self):
        self.mode = _parse_enum(Mode, self.mode, "mode")
        self.algorithm = _parse_enum(Algorithm, self.algorithm, "algorithm")
        self.kernel_type = KernelType.parse(self.kernel_type)

        if self.max_iterations < 1:
            raise ConfigurationError("max_iterations must be at least 1")
        if self.tolerance <= 0:
            raise ConfigurationError("tolerance must be positive")
        if self.length_scale <= 0:
            raise ConfigurationError("length_scale must be positive")
        if self.polynomial_power <= 0:
            raise ConfigurationError("polynomial_power must be positive")
        if self.n_workers < 1:
            raise ConfigurationError("n_workers must be at least 1")
        if self.noise_floor < 0:
            raise ConfigurationError("noise_floor must be non-negative")
        if self.batch_size < 1:
            raise ConfigurationError("batch_size must be at least 1")

    def build_kernel(self) -> Kernel:
        """Kernel instance described by this configuration."""
        return Kernel(
            kernel_type=self.kernel_type,
            length_scale=self.length_scale,
            polynomial_power=self.polynomial_power,
            use_bias=self.use_bias
        )

    def to_dict(self) -> dict:
        """JSON-compatible dict of all fields."""
        state = asdict(self)
        state["mode"] = self.mode.value
        state["algorithm"] = self.algorithm.value
        state["kernel_type"] = self.kernel_type.value
        return state

    @classmethod
    def from_dict(cls, state: dict) -> "MRVMConfig":
        """
        Build a configuration from a plain dict.

        Unknown keys raise :class:`ConfigurationError`.
        """
        known = set(cls.__dataclass_fields__)
        unknown = set(state) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")
        return cls(**state)
