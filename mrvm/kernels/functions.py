"""
Pairwise kernel families.

All functions take two row-aligned feature matrices and return the
(n1, n2) similarity matrix. They are jitted and vectorised, so every
entry is computed independently on the active JAX device.

Families built on squared distances take a static ``same`` flag: when
both arguments are one matrix the diagonal distances are exactly zero.
"""

from functools import partial

import jax.numpy as jnp
from jax import jit
from jaxtyping import Array, Float


@partial(jit, static_argnames=("same",))
def distance_squared(
    X: Float[Array, "n d"],
    Y: Float[Array, "m d"],
    same: bool = False
) -> Float[Array, "n m"]:
    """
    Pairwise squared Euclidean distances.

    Uses the identity ||x - y||² = ||x||² + ||y||² - 2<x, y> so no
    (n, m, d) tensor is formed. Cancellation can leave tiny negative
    values, which are clamped to zero.

    Parameters:
        X: First set of points, shape (n, d)
        Y: Second set of points, shape (m, d)
        same: Y is X, so the diagonal is set to exactly zero

    Returns:
        Squared distances of shape (n, m)
    """
    X_sqnorm = jnp.sum(X ** 2, axis=1, keepdims=True)  # (n, 1)
    Y_sqnorm = jnp.sum(Y ** 2, axis=1, keepdims=True)  # (m, 1)
    sq_distances = X_sqnorm + Y_sqnorm.T - 2 * jnp.dot(X, Y.T)
    sq_distances = jnp.maximum(sq_distances, 0.0)
    if same:
        # Cancellation residue on coincident rows
        sq_distances = sq_distances.at[jnp.diag_indices(X.shape[0])].set(0.0)
    return sq_distances


@partial(jit, static_argnames=("same",))
def gaussian(X, Y, length_scale, same=False):
    """k(x, y) = exp(-||x - y||² / (2 l²))"""
    return jnp.exp(-distance_squared(X, Y, same) / (2 * length_scale ** 2))


@partial(jit, static_argnames=("same",))
def laplace(X, Y, length_scale, same=False):
    """k(x, y) = exp(-||x - y|| / l)"""
    return jnp.exp(-jnp.sqrt(distance_squared(X, Y, same)) / length_scale)


@jit
def polynomial(X, Y, length_scale, power):
    """k(x, y) = (<x, y> / l + 1)^p"""
    return (jnp.dot(X, Y.T) / length_scale + 1.0) ** power


@jit
def homogeneous_polynomial(X, Y, length_scale, power):
    """k(x, y) = (<x, y> / l)^p"""
    return (jnp.dot(X, Y.T) / length_scale) ** power


@jit
def spline(X, Y, length_scale):
    """
    Linear spline kernel summed over dimensions.

    For each dimension, with u = x / l, v = y / l and m = min(u, v):

        k_d = 1 + uv + uv m - (u + v) / 2 m² + m³ / 3
    """
    U = X[:, None, :] / length_scale  # (n, 1, d)
    V = Y[None, :, :] / length_scale  # (1, m, d)
    UV = U * V
    M = jnp.minimum(U, V)
    terms = 1.0 + UV + UV * M - (U + V) / 2.0 * M ** 2 + M ** 3 / 3.0
    return jnp.sum(terms, axis=2)


@partial(jit, static_argnames=("same",))
def cauchy(X, Y, length_scale, same=False):
    """k(x, y) = 1 / (1 + ||x - y||² / l²)"""
    return 1.0 / (1.0 + distance_squared(X, Y, same) / length_scale ** 2)


@partial(jit, static_argnames=("same",))
def cubic(X, Y, same=False):
    """k(x, y) = ||x - y||³"""
    d2 = distance_squared(X, Y, same)
    return d2 * jnp.sqrt(d2)


@partial(jit, static_argnames=("same",))
def distance(X, Y, same=False):
    """k(x, y) = -||x - y||"""
    return -jnp.sqrt(distance_squared(X, Y, same))


@partial(jit, static_argnames=("same",))
def thin_plate_spline(X, Y, same=False):
    """k(x, y) = ||x - y||² log ||x - y||, zero where x == y."""
    d2 = distance_squared(X, Y, same)
    safe = jnp.where(d2 > 0, d2, 1.0)
    return jnp.where(d2 > 0, 0.5 * d2 * jnp.log(safe), 0.0)


@partial(jit, static_argnames=("same",))
def bubble(X, Y, length_scale, same=False):
    """k(x, y) = 1 if ||x - y|| <= l else 0"""
    d2 = distance_squared(X, Y, same)
    return jnp.where(d2 <= length_scale ** 2, 1.0, 0.0)
