"""Kernel protocol shared by the training and regression engines."""

from typing import Protocol, runtime_checkable
from jaxtyping import Array, Float


@runtime_checkable
class SimilarityKernel(Protocol):
    """
    What the trainer and the regression engine need from a kernel.

    Rows of the design matrix are ``K(x_i, .)`` over the training rows;
    the regression engine only evaluates forecast rows against the
    relevant vectors. Persistence goes through ``to_dict``.
    """

    def __call__(
        self,
        X: Float[Array, "n d"],
        Y: Float[Array, "m d"]
    ) -> Float[Array, "n m"]:
        """
        Kernel matrix between two row sets of equal width.

        Parameters:
            X: Rows of the first set, shape (n, d)
            Y: Rows of the second set, shape (m, d)

        Returns:
            Matrix of shape (n, m), bias term included
        """
        ...

    def diagonal(self, X: Float[Array, "n d"]) -> Float[Array, "n"]:
        """Self-similarity ``K(x_i, x_i)`` of each row."""
        ...

    @property
    def use_bias(self) -> bool:
        ...

    def to_dict(self) -> dict:
        ...
