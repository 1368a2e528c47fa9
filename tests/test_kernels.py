"""Tests for kernel families and the kernel evaluator."""

import pytest
import jax.numpy as jnp

from mrvm.errors import ConfigurationError, ShapeError
from mrvm.kernels.base import SimilarityKernel
from mrvm.kernels.kernel import Kernel, KernelType


@pytest.mark.parametrize("kernel_type", list(KernelType))
def test_kernels_are_symmetric(kernel_type, sample_data_2d):
    """K(X, X) should be symmetric for every family."""
    X, _ = sample_data_2d
    K = Kernel(kernel_type, length_scale=2.0)(X, X)
    assert K.shape == (10, 10)
    assert jnp.all(jnp.isfinite(K))
    assert jnp.allclose(K, K.T, atol=1e-10)


@pytest.mark.parametrize("kernel_type", list(KernelType))
def test_kernel_shape(kernel_type, sample_data_2d):
    """K(X, Y) has one row per X point and one column per Y point."""
    X, Y = sample_data_2d
    K = Kernel(kernel_type, length_scale=2.0)(X, Y)
    assert K.shape == (10, 8)


def test_gaussian_self_similarity(gaussian_kernel, offset_data):
    """Gaussian kernel diagonal is exactly one, even far from the origin."""
    K = gaussian_kernel(offset_data, offset_data)
    assert jnp.all(jnp.diag(K) == 1.0)
    assert jnp.all(gaussian_kernel.diagonal(offset_data) == 1.0)
    assert jnp.all(gaussian_kernel(offset_data) == K)


def test_gaussian_value():
    """exp(-d^2 / (2 l^2)) for a known pair."""
    kernel = Kernel("gaussian", length_scale=2.0)
    K = kernel(jnp.array([[0.0, 0.0]]), jnp.array([[3.0, 4.0]]))
    assert jnp.allclose(K[0, 0], jnp.exp(-25.0 / 8.0))


def test_laplace_and_cauchy_values():
    """Laplace and Cauchy values for a distance of 5."""
    x = jnp.array([[0.0, 0.0]])
    y = jnp.array([[3.0, 4.0]])
    assert jnp.allclose(Kernel("laplace", length_scale=5.0)(x, y)[0, 0], jnp.exp(-1.0))
    assert jnp.allclose(Kernel("cauchy", length_scale=5.0)(x, y)[0, 0], 0.5)


def test_polynomial_values():
    """Polynomial families for a known inner product."""
    x = jnp.array([[1.0, 2.0]])
    y = jnp.array([[3.0, 1.0]])  # <x, y> = 5
    poly = Kernel("polynomial", length_scale=5.0, polynomial_power=3.0)
    homogeneous = Kernel("homogeneous_polynomial", length_scale=5.0, polynomial_power=3.0)
    assert jnp.allclose(poly(x, y)[0, 0], 8.0)
    assert jnp.allclose(homogeneous(x, y)[0, 0], 1.0)


def test_distance_diagonal_is_zero(offset_data):
    """Distance kernel is exactly zero on the diagonal and negative elsewhere."""
    K = Kernel("distance")(offset_data, offset_data)
    assert jnp.all(jnp.diag(K) == 0.0)
    assert jnp.all(Kernel("distance").diagonal(offset_data) == 0.0)
    off_diagonal = K[~jnp.eye(50, dtype=bool)]
    assert jnp.all(off_diagonal < 0)


def test_cubic_value():
    """||x - y||^3."""
    K = Kernel("cubic")(jnp.array([[0.0, 0.0]]), jnp.array([[3.0, 4.0]]))
    assert jnp.allclose(K[0, 0], 125.0)


def test_thin_plate_spline_zero_at_coincident_points(sample_data_2d):
    """Thin plate spline is defined as zero where x == y."""
    X, _ = sample_data_2d
    K = Kernel("thin_plate_spline")(X, X)
    assert jnp.all(jnp.isfinite(K))
    assert jnp.allclose(jnp.diag(K), 0.0)


def test_bubble_is_indicator():
    """Bubble kernel is 1 inside the length scale and 0 outside."""
    kernel = Kernel("bubble", length_scale=1.5)
    X = jnp.array([[0.0], [1.0], [2.0]])
    K = kernel(X, X)
    expected = jnp.array([
        [1.0, 1.0, 0.0],
        [1.0, 1.0, 1.0],
        [0.0, 1.0, 1.0],
    ])
    assert jnp.array_equal(K, expected)


def test_bias_term(sample_data_2d):
    """Bias adds one, except for the distance and bubble families."""
    X, Y = sample_data_2d
    plain = Kernel("gaussian", length_scale=1.0)(X, Y)
    biased = Kernel("gaussian", length_scale=1.0, use_bias=True)(X, Y)
    assert jnp.allclose(biased, plain + 1.0)

    assert jnp.allclose(Kernel("distance", use_bias=True)(X, Y), Kernel("distance")(X, Y))


def test_width_mismatch_raises(gaussian_kernel):
    """Inputs with different feature widths are rejected."""
    with pytest.raises(ShapeError):
        gaussian_kernel(jnp.ones((3, 2)), jnp.ones((4, 3)))


def test_kernel_type_parsing():
    """Names are matched case-insensitively."""
    assert KernelType.parse("Gaussian") is KernelType.GAUSSIAN
    assert KernelType.parse("thin-plate spline") is KernelType.THIN_PLATE_SPLINE
    assert KernelType.parse(KernelType.BUBBLE) is KernelType.BUBBLE


@pytest.mark.parametrize("kwargs", [
    {"kernel_type": "rbf-ish"},
    {"length_scale": 0.0},
    {"length_scale": -1.0},
    {"polynomial_power": 0.0},
])
def test_invalid_kernel_configuration(kwargs):
    """Unknown families and non-positive hyperparameters are configuration errors."""
    with pytest.raises(ConfigurationError):
        Kernel(**kwargs)


def test_kernel_round_trip():
    """to_dict/from_dict preserve the hyperparameters."""
    kernel = Kernel("polynomial", length_scale=3.0, polynomial_power=4.0, use_bias=True)
    restored = Kernel.from_dict(kernel.to_dict())
    assert restored.kernel_type is KernelType.POLYNOMIAL
    assert restored.length_scale == 3.0
    assert restored.sigma == 3.0
    assert restored.polynomial_power == 4.0
    assert restored.use_bias


def test_kernel_satisfies_protocol(gaussian_kernel):
    """Kernel implements the SimilarityKernel protocol."""
    assert isinstance(gaussian_kernel, SimilarityKernel)
