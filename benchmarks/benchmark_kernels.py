"""Benchmark kernel computations."""

import time
import jax.random as random
from mrvm.kernels.kernel import Kernel, KernelType


def benchmark_kernel(
    kernel_type: KernelType,
    n_samples: int = 1000,
    n_features: int = 10
):
    """Benchmark one kernel family on an n x n matrix."""
    key = random.PRNGKey(42)
    X = random.uniform(key, (n_samples, n_features))

    kernel = Kernel(kernel_type, length_scale=2.0)

    # Warm up
    kernel(X, X).block_until_ready()

    # Time computation
    start = time.time()
    kernel(X, X).block_until_ready()
    elapsed = time.time() - start

    print(f"{kernel_type.value:>24}: {elapsed:.4f} s, "
          f"{n_samples**2 / elapsed:.2e} kernel evaluations/second")

    return elapsed


def compare_kernel_families():
    """Compare all kernel families across matrix sizes."""
    sizes = [100, 500, 1000, 2000]

    print("=" * 60)
    print("Kernel Family Comparison")
    print("=" * 60)

    for n in sizes:
        print(f"\nSize: {n}x{n}")
        print("-" * 60)
        for kernel_type in KernelType:
            benchmark_kernel(kernel_type, n_samples=n)


if __name__ == "__main__":
    compare_kernel_families()
