"""Closed-form pieces of the fast marginal-likelihood recursion."""

from enum import IntEnum
from typing import NamedTuple, Tuple

import jax.numpy as jnp
from jax import jit
from jax.scipy.linalg import solve
from jaxtyping import Array, Bool, Float, Int


# Relative sparsity below which a candidate counts as spanned by the active set
_ALIGNMENT_TOL = 1e-6


class Action(IntEnum):
    """Candidate action of one training iteration."""
    NONE = 0
    ADD = 1
    REESTIMATE = 2
    DELETE = 3


class CandidateFactors(NamedTuple):
    """Per-candidate quantities of one scan."""
    S: Float[Array, "n"]                   # sparsity factor, all bases included
    Q: Float[Array, "n v"]                 # quality factor, all bases included
    theta: Float[Array, "n"]
    alpha_new: Float[Array, "n"]           # inf where theta <= 0
    action: Int[Array, "n"]
    delta_l: Float[Array, "n"]             # -inf where no action applies
    relative_change: Float[Array, "n"]     # nan except for re-estimates


def quadratic_rows(
    X: Float[Array, "n v"],
    M: Float[Array, "v v"]
) -> Float[Array, "n"]:
    """Row-wise quadratic form x' M x."""
    return jnp.einsum("nv,vw,nw->n", X, M, X)


@jit
def basis_factors(
    gram_diag: Float[Array, "n"],
    gram_active: Float[Array, "n m"],
    phi_t: Float[Array, "n v"],
    sigma: Float[Array, "m m"],
    mu: Float[Array, "m v"]
) -> Tuple[Float[Array, "n"], Float[Array, "n v"]]:
    """
    Sparsity and quality factors with every active basis included.

    Parameters:
        gram_diag: Diagonal of Phi' Phi for the candidates
        gram_active: Phi' Phi restricted to candidate rows, active columns
        phi_t: Phi' T for the candidates
        sigma: Posterior weight covariance of the active set
        mu: Posterior weight mean of the active set

    Returns:
        Tuple of (S, Q)
    """
    S = gram_diag - jnp.sum((gram_active @ sigma) * gram_active, axis=1)
    Q = phi_t - gram_active @ mu
    return S, Q


@jit
def evaluate_candidates(
    alpha: Float[Array, "n"],
    S: Float[Array, "n"],
    Q: Float[Array, "n v"],
    omega_inv: Float[Array, "v v"],
    gram_diag: Float[Array, "n"],
    can_delete: Bool[Array, ""]
) -> CandidateFactors:
    """
    Classify candidates and score each action by its likelihood gain.

    Active candidates (finite alpha) have their own contribution removed
    from S and Q before the optimal precision is computed. All outputs
    share the precisions, so the quality is measured through the inverse
    noise covariance and compared against ``V`` times the sparsity.

    Parameters:
        alpha: Current precisions, inf for inactive candidates
        S: Sparsity factors from :func:`basis_factors`
        Q: Quality factors from :func:`basis_factors`
        omega_inv: Inverse noise covariance
        gram_diag: Diagonal of Phi' Phi, to detect candidates already
            spanned by the active set
        can_delete: False when only one basis is active

    Returns:
        CandidateFactors for the given candidates
    """
    V = Q.shape[1]
    active = jnp.isfinite(alpha)
    safe_alpha = jnp.where(active, alpha, 1.0)
    gap = jnp.where(active, safe_alpha - S, 1.0)

    s = jnp.where(active, safe_alpha * S / gap, S)
    q = jnp.where(active[:, None], (safe_alpha / gap)[:, None] * Q, Q)
    q2 = quadratic_rows(q, omega_inv)
    big_q2 = quadratic_rows(Q, omega_inv)

    theta = q2 / V - s
    # Inactive candidates that the active set already spans cannot be added
    aligned = ~active & (S <= _ALIGNMENT_TOL * gram_diag)
    positive = (theta > 0) & ~aligned
    alpha_new = jnp.where(positive, s ** 2 / jnp.where(positive, theta, 1.0), jnp.inf)

    action = jnp.where(
        positive & ~active, int(Action.ADD),
        jnp.where(
            positive & active, int(Action.REESTIMATE),
            jnp.where(active & can_delete, int(Action.DELETE), int(Action.NONE))
        )
    )

    # Adding: precision moves from infinity to alpha_new
    safe_S = jnp.maximum(S, 1e-300)
    ratio = jnp.where(action == int(Action.ADD), big_q2 / (V * safe_S), 1.0)
    dl_add = 0.5 * (big_q2 / safe_S - V - V * jnp.log(ratio))

    # Re-estimating or deleting: 1/alpha moves by delta
    delta = jnp.where(positive, 1.0 / alpha_new, 0.0) - 1.0 / safe_alpha
    arg = 1.0 + S * delta
    safe_arg = jnp.where(arg > 0, arg, 1.0)
    dl_change = 0.5 * (delta * big_q2 / safe_arg - V * jnp.log(safe_arg))

    changing = (action == int(Action.REESTIMATE)) | (action == int(Action.DELETE))
    delta_l = jnp.where(
        action == int(Action.ADD), dl_add,
        jnp.where(changing & (arg > 0), dl_change, -jnp.inf)
    )
    relative_change = jnp.where(
        action == int(Action.REESTIMATE),
        jnp.abs(alpha_new - safe_alpha) / safe_alpha,
        jnp.nan
    )
    return CandidateFactors(S, Q, theta, alpha_new, action, delta_l, relative_change)


def initial_alpha(
    S: Float[Array, "n"],
    Q: Float[Array, "n v"],
    omega_inv: Float[Array, "v v"]
) -> Float[Array, "n"]:
    """
    Starting precision of a basis from its unexplained factors.

    Falls back to S where the quality does not exceed the noise level.
    """
    V = Q.shape[1]
    q2 = quadratic_rows(Q, omega_inv)
    excess = q2 - V * S
    return jnp.where(excess > 0, V * S ** 2 / jnp.where(excess > 0, excess, 1.0), S)


def full_posterior(
    gram_active: Float[Array, "m m"],
    alpha: Float[Array, "m"],
    phi_t: Float[Array, "m v"]
) -> Tuple[Float[Array, "m m"], Float[Array, "m v"]]:
    """
    Posterior weight covariance and mean recomputed from scratch.

    Parameters:
        gram_active: Phi_B' Phi_B
        alpha: Precisions of the active bases
        phi_t: Phi_B' T

    Returns:
        Tuple of (Sigma, Mu)
    """
    H = gram_active + jnp.diag(alpha)
    sigma = solve(H, jnp.eye(H.shape[0]), assume_a='pos')
    sigma = 0.5 * (sigma + sigma.T)
    return sigma, sigma @ phi_t


def noise_covariance(
    tt: Float[Array, "v v"],
    phi_t: Float[Array, "m v"],
    mu: Float[Array, "m v"],
    n: int,
    floor: float
) -> Float[Array, "v v"]:
    """
    Noise covariance estimate ``(T'T - (Phi_B'T)' Mu) / N + floor I``.
    """
    omega = (tt - phi_t.T @ mu) / n
    omega = 0.5 * (omega + omega.T)
    return omega + floor * jnp.eye(omega.shape[0])


def corrcov(cov: Float[Array, "v v"]) -> Float[Array, "v v"]:
    """
    Correlation matrix of a covariance matrix.

    Parameters:
        cov: Covariance matrix

    Returns:
        Correlation matrix with a unit diagonal
    """
    std = jnp.sqrt(jnp.clip(jnp.diag(cov), 0.0, None))
    outer = jnp.outer(std, std)
    corr = jnp.where(outer > 0, cov / jnp.where(outer > 0, outer, 1.0), 0.0)
    return corr.at[jnp.diag_indices(cov.shape[0])].set(1.0)
