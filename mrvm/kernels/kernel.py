"""Kernel evaluator over a closed set of kernel families."""

from enum import Enum
from typing import Optional, Union

import jax.numpy as jnp
from jax import vmap
from jaxtyping import Array, Float

from . import functions as F
from ..errors import ConfigurationError, ShapeError


class KernelType(Enum):
    """Supported kernel families."""
    GAUSSIAN = "gaussian"
    LAPLACE = "laplace"
    POLYNOMIAL = "polynomial"
    HOMOGENEOUS_POLYNOMIAL = "homogeneous_polynomial"
    SPLINE = "spline"
    CAUCHY = "cauchy"
    CUBIC = "cubic"
    DISTANCE = "distance"
    THIN_PLATE_SPLINE = "thin_plate_spline"
    BUBBLE = "bubble"

    @classmethod
    def parse(cls, value: Union["KernelType", str]) -> "KernelType":
        """
        Resolve a kernel family from an enum member or its name.

        Names are matched case-insensitively; spaces and dashes are
        treated as underscores.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            key = value.strip().lower().replace(" ", "_").replace("-", "_")
            for member in cls:
                if key in (member.value, member.name.lower()):
                    return member
        raise ConfigurationError(f"Unknown kernel type: {value!r}")


# Families whose value ignores the length scale
_SCALE_FREE = {KernelType.CUBIC, KernelType.DISTANCE, KernelType.THIN_PLATE_SPLINE}

# Families that never receive the bias term
_NO_BIAS = {KernelType.DISTANCE, KernelType.BUBBLE}


class Kernel:
    """
    Pairwise similarity under a selectable kernel family.

    The kernel is a pure function object: it carries hyperparameters only,
    never per-model state.

    Parameters:
        kernel_type: Kernel family (enum member or name)
        length_scale: Length scale l (must be positive)
        polynomial_power: Power p for the polynomial families
        use_bias: Add a constant 1 to every entry (not for Distance/Bubble)
    """

    def __init__(
        self,
        kernel_type: Union[KernelType, str] = KernelType.GAUSSIAN,
        length_scale: float = 1000.0,
        polynomial_power: float = 2.0,
        use_bias: bool = False
    ):
        self._kernel_type = KernelType.parse(kernel_type)
        if length_scale <= 0:
            raise ConfigurationError("length_scale must be positive")
        if polynomial_power <= 0:
            raise ConfigurationError("polynomial_power must be positive")
        self._length_scale = float(length_scale)
        self._polynomial_power = float(polynomial_power)
        self._use_bias = bool(use_bias)

    @property
    def kernel_type(self) -> KernelType:
        """Kernel family."""
        return self._kernel_type

    @property
    def length_scale(self) -> float:
        """Kernel length scale."""
        return self._length_scale

    @property
    def sigma(self) -> float:
        """Alias of the length scale."""
        return self._length_scale

    @property
    def polynomial_power(self) -> float:
        """Power for the polynomial families."""
        return self._polynomial_power

    @property
    def use_bias(self) -> bool:
        """Whether a constant bias is added to kernel values."""
        return self._use_bias

    def __call__(
        self,
        X: Float[Array, "n d"],
        Y: Optional[Float[Array, "m d"]] = None
    ) -> Float[Array, "n m"]:
        """
        Compute the kernel matrix between X and Y.

        Passing the same matrix twice (or omitting Y) evaluates K(X, X),
        whose distance-based diagonal is exact.

        Parameters:
            X: First set of points, shape (n, d)
            Y: Second set of points, shape (m, d); defaults to X

        Returns:
            Kernel matrix of shape (n, m)
        """
        same = Y is None or Y is X
        X = jnp.atleast_2d(jnp.asarray(X, dtype=jnp.float64))
        Y = X if same else jnp.atleast_2d(jnp.asarray(Y, dtype=jnp.float64))
        if X.shape[1] != Y.shape[1]:
            raise ShapeError(
                "Kernel inputs must share the feature width",
                expected=X.shape[1],
                actual=Y.shape[1]
            )
        return self._with_bias(self._evaluate(X, Y, same))

    evaluate = __call__

    def diagonal(self, X: Float[Array, "n d"]) -> Float[Array, "n"]:
        """
        Diagonal of K(X, X).

        Parameters:
            X: Input points, shape (n, d)

        Returns:
            Diagonal values, shape (n,)
        """
        X = jnp.atleast_2d(jnp.asarray(X, dtype=jnp.float64))
        return vmap(
            lambda x: self._with_bias(self._evaluate(x[None, :], x[None, :], True))[0, 0]
        )(X)

    def _with_bias(self, K):
        if self._use_bias and self._kernel_type not in _NO_BIAS:
            return K + 1.0
        return K

    def _evaluate(self, X, Y, same=False):
        t = self._kernel_type
        l = self._length_scale
        p = self._polynomial_power
        if t is KernelType.GAUSSIAN:
            return F.gaussian(X, Y, l, same=same)
        if t is KernelType.LAPLACE:
            return F.laplace(X, Y, l, same=same)
        if t is KernelType.POLYNOMIAL:
            return F.polynomial(X, Y, l, p)
        if t is KernelType.HOMOGENEOUS_POLYNOMIAL:
            return F.homogeneous_polynomial(X, Y, l, p)
        if t is KernelType.SPLINE:
            return F.spline(X, Y, l)
        if t is KernelType.CAUCHY:
            return F.cauchy(X, Y, l, same=same)
        if t is KernelType.CUBIC:
            return F.cubic(X, Y, same=same)
        if t is KernelType.DISTANCE:
            return F.distance(X, Y, same=same)
        if t is KernelType.THIN_PLATE_SPLINE:
            return F.thin_plate_spline(X, Y, same=same)
        if t is KernelType.BUBBLE:
            return F.bubble(X, Y, l, same=same)
        raise ConfigurationError(f"Unsupported kernel type: {t}")

    def to_dict(self) -> dict:
        """Plain-dict description of the kernel hyperparameters."""
        return {
            "kernel_type": self._kernel_type.value,
            "length_scale": self._length_scale,
            "polynomial_power": self._polynomial_power,
            "use_bias": self._use_bias,
        }

    @classmethod
    def from_dict(cls, state: dict) -> "Kernel":
        """Rebuild a kernel from :meth:`to_dict` output."""
        return cls(**state)

    def __repr__(self) -> str:
        extra = f", power={self._polynomial_power}" if "polynomial" in self._kernel_type.value else ""
        scale = "" if self._kernel_type in _SCALE_FREE else f", length_scale={self._length_scale}"
        return (
            f"Kernel({self._kernel_type.value}{scale}{extra}, use_bias={self._use_bias})"
        )
