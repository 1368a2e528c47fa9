"""Benchmark RVM training and regression."""

import time
import jax.numpy as jnp

from mrvm.config import Algorithm
from mrvm.data.simulation import sparse_kernel_dataset
from mrvm.kernels.kernel import Kernel
from mrvm.models.rvm import RVMTrainer, SparseModel
from mrvm.prediction.regression import RegressionEngine


def benchmark_training(
    n_samples: int = 500,
    n_workers: int = 4,
    algorithm: Algorithm = Algorithm.FMRVM
):
    """Benchmark training on targets generated by a few kernel columns."""
    kernel = Kernel("gaussian", length_scale=1.0)
    relevant = list(range(5, n_samples, max(n_samples // 10, 1)))
    data = sparse_kernel_dataset(kernel, n=n_samples, relevant=relevant, noise_sd=0.01)

    trainer = RVMTrainer(kernel, n_workers=n_workers)
    start = time.time()
    result = trainer.fit(data.X, data.T, algorithm)
    elapsed = time.time() - start

    print(f"{algorithm.value}: {n_samples} rows, {n_workers} workers")
    print(f"Time: {elapsed:.4f} seconds, {result.n_iterations} iterations, "
          f"{len(result.relevant_vectors)} relevant vectors")

    return SparseModel.from_fit(kernel, data.X, result), elapsed


def benchmark_regression(model: SparseModel, n_rows: int = 100000, batch_size: int = 1000):
    """Benchmark forecasting with a trained model."""
    X = jnp.linspace(0.0, float(model.relevant_features.max()), n_rows)[:, None]
    engine = RegressionEngine(model, batch_size=batch_size)

    # Warm up
    engine.predict(X[:batch_size])

    start = time.time()
    mean, std = engine.predict(X)
    mean.block_until_ready()
    elapsed = time.time() - start

    print(f"Regression: {n_rows} rows, batch size {batch_size}")
    print(f"Time: {elapsed:.4f} seconds ({n_rows / elapsed:.2f} rows/second)")

    return elapsed


if __name__ == "__main__":
    print("=" * 60)
    print("RVM Training Benchmark")
    print("=" * 60)

    for n in [100, 250, 500]:
        for workers in [1, 4]:
            model, _ = benchmark_training(n_samples=n, n_workers=workers)
        print("-" * 60)

    benchmark_regression(model)
