"""Sparse Bayesian (relevance vector) training with the fast marginal-likelihood recursion."""

import logging
import threading
import warnings
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

import jax.numpy as jnp
import numpy as np
import pandas as pd
from jax.scipy.linalg import solve
from jaxtyping import Array, Float
from tqdm import tqdm

from .utils import (
    Action,
    CandidateFactors,
    basis_factors,
    evaluate_candidates,
    full_posterior,
    initial_alpha,
    noise_covariance,
    quadratic_rows,
)
from ..config import Algorithm
from ..errors import ModelStateError, ShapeError
from ..kernels.base import SimilarityKernel
from ..kernels.kernel import Kernel

logger = logging.getLogger(__name__)

_MIN_NOISE = 1e-12

_HISTORY_COLUMNS = [
    "iteration", "action", "index", "delta_l", "n_active",
    "max_change_alpha", "min_change_alpha",
]


class StepResult(NamedTuple):
    """Outcome of one training iteration."""
    iteration: int
    action: Action
    index: int                # training row the action applied to, -1 if none
    delta_l: float
    n_active: int
    max_change_alpha: float
    min_change_alpha: float
    converged: bool


class RVMFitResult(NamedTuple):
    """Result of RVM training."""
    relevant_vectors: np.ndarray          # training row indices, ascending
    alpha: Float[Array, "m"]              # precision of each relevant vector
    sigma: Float[Array, "m m"]            # posterior weight covariance
    mu: Float[Array, "m v"]               # posterior weight mean
    omega: Float[Array, "v v"]            # noise covariance
    converged: bool
    n_iterations: int
    max_change_alpha: float
    min_change_alpha: float
    log_likelihood_gain: float
    history: pd.DataFrame


class SparseModel(NamedTuple):
    """
    Frozen sparse model consumed by the regression engine.

    Attributes:
        kernel: Kernel the model was trained with
        relevant_features: Feature rows of the relevant vectors
        relevant_vectors: Training row index of each relevant vector
        alpha: Precision of each relevant vector
        sigma: Posterior weight covariance
        mu: Posterior weight mean (one column per output)
        omega: Noise covariance of the outputs
        converged: Whether training met the tolerance
        n_iterations: Iterations spent in training
    """
    kernel: Kernel
    relevant_features: Float[Array, "m d"]
    relevant_vectors: np.ndarray
    alpha: Float[Array, "m"]
    sigma: Float[Array, "m m"]
    mu: Float[Array, "m v"]
    omega: Float[Array, "v v"]
    converged: bool = True
    n_iterations: int = 0

    @property
    def n_relevant(self) -> int:
        return int(self.relevant_vectors.shape[0])

    @property
    def n_outputs(self) -> int:
        return int(self.mu.shape[1])

    @classmethod
    def from_fit(cls, kernel: Kernel, X: Float[Array, "n d"], result: RVMFitResult) -> "SparseModel":
        return cls(
            kernel=kernel,
            relevant_features=jnp.asarray(X)[jnp.asarray(result.relevant_vectors)],
            relevant_vectors=np.asarray(result.relevant_vectors),
            alpha=result.alpha,
            sigma=result.sigma,
            mu=result.mu,
            omega=result.omega,
            converged=result.converged,
            n_iterations=result.n_iterations
        )


class RVMTrainer:
    """
    Multivariate relevance vector machine trainer.

    Every training row is a candidate basis function ``K(., x_i)``. The
    outputs share one precision per basis and have a full noise
    covariance Omega. Each iteration scans all candidates, applies the
    single add, re-estimate or delete with the largest gain in log
    marginal likelihood, and updates the posterior with rank-one
    formulas.

    Parameters:
        kernel: Kernel used to build the design matrix
        tolerance: Convergence threshold on the relative alpha change
        max_iterations: Iteration budget
        noise_floor: Floor on the noise variance, relative to the mean
            target variance
        n_workers: Worker threads for the candidate scan
        verbose: Log every iteration and show a progress bar
    """

    def __init__(
        self,
        kernel: SimilarityKernel,
        tolerance: float = 0.01,
        max_iterations: int = 1000,
        noise_floor: float = 1e-6,
        n_workers: int = 4,
        verbose: bool = False
    ):
        if not isinstance(kernel, SimilarityKernel):
            raise TypeError(f"Expected a kernel, got {type(kernel).__name__}")
        self.kernel = kernel
        self.tolerance = tolerance
        self.max_iterations = max_iterations
        self.noise_floor = noise_floor
        self.n_workers = max(1, int(n_workers))
        self.verbose = verbose

        self._stop = threading.Event()
        self._executor: Optional[ThreadPoolExecutor] = None
        self._initialized = False

    # Setup

    def initialize(
        self,
        X: Float[Array, "n d"],
        T: Float[Array, "n v"],
        algorithm: Algorithm = Algorithm.FMRVM
    ) -> None:
        """
        Precompute the design quantities and the initial active set.

        Parameters:
            X: Training features
            T: Training targets (1-D targets are treated as one column)
            algorithm: ``FMRVM`` starts from the single best basis,
                ``MRVM`` starts with every candidate active
        """
        # A stop requested while the design matrices are built still applies
        self._stop.clear()
        X = jnp.atleast_2d(jnp.asarray(X, dtype=jnp.float64))
        T = jnp.asarray(T, dtype=jnp.float64)
        if T.ndim == 1:
            T = T[:, None]
        if X.shape[0] != T.shape[0]:
            raise ShapeError(
                "Features and targets must have the same number of rows",
                expected=X.shape[0],
                actual=T.shape[0]
            )
        if X.shape[0] == 0:
            raise ShapeError("No training rows")

        self.X = X
        self.T = T
        self.n, self.v = T.shape

        phi = self.kernel(X, X)
        self.gram = phi.T @ phi
        self.gram_diag = jnp.diag(self.gram)
        self.phi_t = phi.T @ T
        self.tt = T.T @ T

        target_var = float(jnp.mean(jnp.var(T, axis=0)))
        self.floor = max(self.noise_floor * target_var, _MIN_NOISE)

        self.alpha = np.full(self.n, np.inf)
        self.active: List[int] = []
        self.iteration = 0
        self.converged = False
        self.max_change_alpha = np.inf
        self.min_change_alpha = np.inf
        self.log_likelihood_gain = 0.0
        self._history: List[Dict[str, Any]] = []

        omega0 = jnp.diag(jnp.maximum(0.1 * jnp.var(T, axis=0), self.floor))
        omega0_inv = jnp.diag(1.0 / jnp.diag(omega0))
        alpha0 = np.asarray(initial_alpha(self.gram_diag, self.phi_t, omega0_inv))

        if Algorithm(algorithm) is Algorithm.MRVM:
            self.active = list(range(self.n))
            self.alpha[:] = alpha0
            self.sigma, self.mu = full_posterior(
                self.gram, jnp.asarray(alpha0), self.phi_t
            )
        else:
            score = quadratic_rows(self.phi_t, omega0_inv) / jnp.maximum(self.gram_diag, 1e-300)
            seed = int(jnp.argmax(score))
            self.active = [seed]
            self.alpha[seed] = alpha0[seed]
            sigma_ii = 1.0 / (alpha0[seed] + float(self.gram_diag[seed]))
            self.sigma = jnp.array([[sigma_ii]])
            self.mu = sigma_ii * self.phi_t[seed][None, :]

        self._update_noise()
        self._initialized = True
        logger.info(
            "Initialized %s training: %d rows, %d outputs, %d active bases",
            Algorithm(algorithm).value, self.n, self.v, len(self.active)
        )

    def _require_initialized(self) -> None:
        if not self._initialized:
            raise ModelStateError("Trainer has not been initialized with training data")

    def _update_noise(self) -> None:
        idx = jnp.asarray(self.active)
        self.omega = noise_covariance(self.tt, self.phi_t[idx], self.mu, self.n, self.floor)

    def _refresh_posterior(self) -> None:
        self.sigma, self.mu = self.posterior_from_scratch()

    # Candidate scan

    def _chunks(self) -> List[np.ndarray]:
        return [c for c in np.array_split(np.arange(self.n), self.n_workers) if c.size]

    def _scan_chunk(self, rows: np.ndarray, omega_inv, can_delete) -> CandidateFactors:
        rows_j = jnp.asarray(rows)
        active = jnp.asarray(self.active)
        S, Q = basis_factors(
            self.gram_diag[rows_j],
            self.gram[jnp.ix_(rows_j, active)],
            self.phi_t[rows_j],
            self.sigma,
            self.mu
        )
        return evaluate_candidates(
            jnp.asarray(self.alpha[rows]), S, Q, omega_inv,
            self.gram_diag[rows_j], jnp.asarray(can_delete)
        )

    def scan(self) -> CandidateFactors:
        """
        Evaluate every candidate against the current posterior.

        The candidates are split into contiguous chunks evaluated on a
        bounded thread pool; the chunks are joined in candidate order.
        """
        self._require_initialized()
        omega_inv = solve(self.omega, jnp.eye(self.v), assume_a='pos')
        can_delete = len(self.active) > 1
        chunks = self._chunks()

        if self._executor is not None and len(chunks) > 1:
            parts = list(self._executor.map(
                lambda rows: self._scan_chunk(rows, omega_inv, can_delete), chunks
            ))
        else:
            parts = [self._scan_chunk(rows, omega_inv, can_delete) for rows in chunks]

        return CandidateFactors(*[
            jnp.concatenate([getattr(p, name) for p in parts], axis=0)
            for name in CandidateFactors._fields
        ])

    # Iteration

    def step(self) -> StepResult:
        """
        Run one iteration: scan, test convergence, apply the best action.

        Returns:
            StepResult; ``converged`` is True when nothing was applied
            because the active set is stable
        """
        self._require_initialized()
        factors = self.scan()
        action = np.asarray(factors.action)
        delta_l = np.asarray(factors.delta_l)
        delta_l = np.where(np.isfinite(delta_l), delta_l, -np.inf)
        changes = np.asarray(factors.relative_change)[action == Action.REESTIMATE]

        self.max_change_alpha = float(changes.max()) if changes.size else 0.0
        self.min_change_alpha = float(changes.min()) if changes.size else 0.0

        pending = np.any((action == Action.ADD) | (action == Action.DELETE))
        if (not pending and self.max_change_alpha < self.tolerance) or np.all(np.isinf(delta_l)):
            self.converged = True
            return self._record(Action.NONE, -1, 0.0, converged=True)

        best = int(np.argmax(delta_l))
        chosen = Action(int(action[best]))
        S = float(factors.S[best])
        Q = factors.Q[best]
        alpha_new = float(factors.alpha_new[best])

        if chosen is Action.ADD:
            self._add_basis(best, alpha_new, S, Q)
        elif chosen is Action.REESTIMATE:
            self._reestimate_basis(best, alpha_new)
        else:
            self._delete_basis(best)

        if not (jnp.all(jnp.isfinite(self.sigma)) and jnp.all(jnp.isfinite(self.mu))):
            warnings.warn(
                f"Non-finite posterior after iteration {self.iteration + 1}; "
                "recomputing it from scratch"
            )
            self._refresh_posterior()

        self._update_noise()
        self.iteration += 1
        self.log_likelihood_gain += float(delta_l[best])
        return self._record(chosen, best, float(delta_l[best]), converged=False)

    def _record(self, action: Action, index: int, delta_l: float, converged: bool) -> StepResult:
        result = StepResult(
            iteration=self.iteration,
            action=action,
            index=index,
            delta_l=delta_l,
            n_active=len(self.active),
            max_change_alpha=self.max_change_alpha,
            min_change_alpha=self.min_change_alpha,
            converged=converged
        )
        if not converged:
            record = result._asdict()
            del record["converged"]
            record["action"] = action.name.lower()
            self._history.append(record)
        log = logger.info if self.verbose else logger.debug
        log(
            "Iteration %d: %s basis %d (dL=%.4g), %d active, alpha change [%.3g, %.3g]",
            result.iteration, action.name.lower(), index, delta_l,
            result.n_active, result.min_change_alpha, result.max_change_alpha
        )
        return result

    # Rank-one posterior updates

    def _add_basis(self, i: int, alpha_i: float, S_i: float, Q_i: Float[Array, "v"]) -> None:
        idx = jnp.asarray(self.active)
        sigma_ii = 1.0 / (alpha_i + S_i)
        comp = self.sigma @ self.gram[idx, i]
        mu_i = sigma_ii * Q_i

        top_left = self.sigma + sigma_ii * jnp.outer(comp, comp)
        off = -sigma_ii * comp
        self.sigma = jnp.block([
            [top_left, off[:, None]],
            [off[None, :], jnp.array([[sigma_ii]])]
        ])
        self.mu = jnp.concatenate([self.mu - jnp.outer(comp, mu_i), mu_i[None, :]], axis=0)
        self.active.append(i)
        self.alpha[i] = alpha_i

    def _reestimate_basis(self, i: int, alpha_new: float) -> None:
        j = self.active.index(i)
        sigma_j = self.sigma[:, j]
        kappa = 1.0 / (self.sigma[j, j] + 1.0 / (alpha_new - self.alpha[i]))
        self.mu = self.mu - kappa * jnp.outer(sigma_j, self.mu[j])
        self.sigma = self.sigma - kappa * jnp.outer(sigma_j, sigma_j)
        self.alpha[i] = alpha_new

    def _delete_basis(self, i: int) -> None:
        j = self.active.index(i)
        sigma_j = self.sigma[:, j]
        sigma_jj = self.sigma[j, j]
        mu = self.mu - jnp.outer(sigma_j / sigma_jj, self.mu[j])
        sigma = self.sigma - jnp.outer(sigma_j, sigma_j) / sigma_jj
        keep = jnp.asarray([k for k in range(len(self.active)) if k != j])
        self.sigma = sigma[jnp.ix_(keep, keep)]
        self.mu = mu[keep]
        self.active.pop(j)
        self.alpha[i] = np.inf

    # Driver

    def request_stop(self) -> None:
        """Ask a running :meth:`fit` to stop at the next iteration boundary."""
        self._stop.set()

    def fit(
        self,
        X: Float[Array, "n d"],
        T: Float[Array, "n v"],
        algorithm: Algorithm = Algorithm.FMRVM
    ) -> RVMFitResult:
        """
        Train until convergence, budget exhaustion or a stop request.

        Parameters:
            X: Training features
            T: Training targets
            algorithm: Initial active set strategy

        Returns:
            RVMFitResult with the relevant vectors and posterior
        """
        self.initialize(X, T, algorithm)
        return self.run()

    def run(self) -> RVMFitResult:
        """
        Iterate from the current state until convergence, budget
        exhaustion or a stop request.

        A stop requested before the call ends the run at once.
        """
        self._require_initialized()
        stopped = False

        with ThreadPoolExecutor(max_workers=self.n_workers) as executor, \
                tqdm(total=self.max_iterations, desc="Training", disable=not self.verbose) as pbar:
            self._executor = executor
            try:
                while self.iteration < self.max_iterations:
                    if self._stop.is_set():
                        stopped = True
                        break
                    result = self.step()
                    if result.converged:
                        break
                    pbar.update(1)
                    pbar.set_postfix(active=result.n_active)
            finally:
                self._executor = None

        if not self.converged:
            if stopped:
                warnings.warn(
                    f"RVM training stopped at iteration {self.iteration} before converging"
                )
            else:
                warnings.warn(f"RVM did not converge in {self.max_iterations} iterations")

        logger.info(
            "Training finished after %d iterations (converged=%s, %d relevant vectors)",
            self.iteration, self.converged, len(self.active)
        )
        return self.result()

    def result(self) -> RVMFitResult:
        """Current state as a fit result, relevant vectors in ascending order."""
        self._require_initialized()
        order = np.argsort(self.active)
        relevant = np.asarray(self.active)[order]
        perm = jnp.asarray(order)
        return RVMFitResult(
            relevant_vectors=relevant,
            alpha=jnp.asarray(self.alpha[relevant]),
            sigma=self.sigma[jnp.ix_(perm, perm)],
            mu=self.mu[perm],
            omega=self.omega,
            converged=self.converged,
            n_iterations=self.iteration,
            max_change_alpha=self.max_change_alpha,
            min_change_alpha=self.min_change_alpha,
            log_likelihood_gain=self.log_likelihood_gain,
            history=pd.DataFrame(self._history, columns=_HISTORY_COLUMNS)
        )

    def posterior_from_scratch(self) -> Tuple[Float[Array, "m m"], Float[Array, "m v"]]:
        """Sigma and Mu of the current active set without incremental updates."""
        self._require_initialized()
        idx = jnp.asarray(self.active)
        return full_posterior(
            self.gram[jnp.ix_(idx, idx)], jnp.asarray(self.alpha[self.active]), self.phi_t[idx]
        )
