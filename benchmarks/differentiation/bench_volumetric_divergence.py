"""Benchmarks for volumetric divergence.

This module compares torchdivergence's volumetric_divergence (autograd and
explicit adjoint) against a baseline assembled from torch.gradient.
"""

from __future__ import annotations

import time
from typing import Any, Callable

import numpy as np
import torch

from torchdivergence.differentiation import (
    volumetric_divergence,
    volumetric_divergence_backward,
)
from torchdivergence.nn import VolumetricDivergence


def benchmark(
    func: Callable,
    *args: Any,
    warmup: int = 3,
    iterations: int = 10,
    **kwargs: Any,
) -> dict[str, float]:
    """Run a simple benchmark on a function.

    Parameters
    ----------
    func : callable
        Function to benchmark.
    *args : Any
        Positional arguments to pass to func.
    warmup : int, optional
        Number of warmup iterations. Default is 3.
    iterations : int, optional
        Number of timed iterations. Default is 10.
    **kwargs : Any
        Keyword arguments to pass to func.

    Returns
    -------
    dict
        Dictionary with timing statistics:
        - 'mean': Mean time in seconds
        - 'std': Standard deviation in seconds
        - 'min': Minimum time in seconds
        - 'max': Maximum time in seconds
    """
    for _ in range(warmup):
        func(*args, **kwargs)

    times = []
    for _ in range(iterations):
        start = time.perf_counter()
        func(*args, **kwargs)
        if torch.cuda.is_available():
            torch.cuda.synchronize()
        times.append(time.perf_counter() - start)

    return {
        "mean": np.mean(times),
        "std": np.std(times),
        "min": np.min(times),
        "max": np.max(times),
    }


def format_time(seconds: float) -> str:
    """Format time in appropriate units."""
    if seconds < 1e-6:
        return f"{seconds * 1e9:.3f}ns"
    elif seconds < 1e-3:
        return f"{seconds * 1e6:.3f}us"
    elif seconds < 1:
        return f"{seconds * 1e3:.3f}ms"
    else:
        return f"{seconds:.3f}s"


def print_comparison(
    name: str,
    td_time: dict[str, float],
    baseline_time: dict[str, float] | None = None,
) -> None:
    """Print benchmark comparison results."""
    print(f"\n{name}")
    print("-" * len(name))
    print(
        f"  torchdivergence: {format_time(td_time['mean'])} "
        f"+/- {format_time(td_time['std'])}"
    )
    if baseline_time is not None:
        print(
            f"  torch.gradient:  {format_time(baseline_time['mean'])} "
            f"+/- {format_time(baseline_time['std'])}"
        )
        speedup = baseline_time["mean"] / td_time["mean"]
        if speedup >= 1:
            print(f"  Speedup:         {speedup:.2f}x faster")
        else:
            print(f"  Speedup:         {1 / speedup:.2f}x slower")


def _gradient_divergence(field: torch.Tensor) -> torch.Tensor:
    (dx,) = torch.gradient(field[:, 0], dim=3)
    (dy,) = torch.gradient(field[:, 1], dim=2)
    (dz,) = torch.gradient(field[:, 2], dim=1)
    return (dx + dy + dz).unsqueeze(1)


class BenchVolumetricDivergence:
    """Benchmarks for volumetric divergence."""

    def __init__(self, warmup: int = 3, iterations: int = 10):
        """Initialize benchmark runner.

        Parameters
        ----------
        warmup : int, optional
            Number of warmup iterations. Default is 3.
        iterations : int, optional
            Number of timed iterations. Default is 10.
        """
        self.warmup = warmup
        self.iterations = iterations
        self.device = "cuda" if torch.cuda.is_available() else "cpu"

    def _field(self, batch_size: int, size: int, requires_grad=False):
        return torch.randn(
            batch_size,
            3,
            size,
            size,
            size,
            device=self.device,
            requires_grad=requires_grad,
        )

    def bench_forward(self, batch_size: int = 4, size: int = 64) -> None:
        """Benchmark the forward pass."""
        field = self._field(batch_size, size)

        td_time = benchmark(
            volumetric_divergence,
            field,
            warmup=self.warmup,
            iterations=self.iterations,
        )
        baseline_time = benchmark(
            _gradient_divergence,
            field,
            warmup=self.warmup,
            iterations=self.iterations,
        )

        print_comparison(
            f"forward (batch={batch_size}, size={size}^3)",
            td_time,
            baseline_time,
        )

    def bench_autograd_backward(
        self, batch_size: int = 4, size: int = 64
    ) -> None:
        """Benchmark forward plus autograd backward."""
        field = self._field(batch_size, size, requires_grad=True)

        def run(f):
            volumetric_divergence(f).sum().backward()

        def run_baseline(f):
            _gradient_divergence(f).sum().backward()

        td_time = benchmark(
            run, field, warmup=self.warmup, iterations=self.iterations
        )
        baseline_time = benchmark(
            run_baseline, field, warmup=self.warmup, iterations=self.iterations
        )

        print_comparison(
            f"forward + backward (batch={batch_size}, size={size}^3)",
            td_time,
            baseline_time,
        )

    def bench_explicit_backward(
        self, batch_size: int = 4, size: int = 64
    ) -> None:
        """Benchmark the explicit adjoint, functional and module forms."""
        field = self._field(batch_size, size)
        grad_output = torch.randn(
            batch_size, 1, size, size, size, device=self.device
        )
        module = VolumetricDivergence().to(self.device)

        print_comparison(
            f"functional backward (batch={batch_size}, size={size}^3)",
            benchmark(
                volumetric_divergence_backward,
                field,
                grad_output,
                warmup=self.warmup,
                iterations=self.iterations,
            ),
        )
        print_comparison(
            f"module backward (batch={batch_size}, size={size}^3)",
            benchmark(
                module.backward,
                field,
                grad_output,
                warmup=self.warmup,
                iterations=self.iterations,
            ),
        )

    def run_all(self) -> None:
        """Run all benchmarks."""
        print("=" * 60)
        print("VOLUMETRIC DIVERGENCE BENCHMARKS")
        print("=" * 60)

        print("\n--- Forward ---")
        self.bench_forward()

        print("\n--- Backward ---")
        self.bench_autograd_backward()
        self.bench_explicit_backward()

    def run_scaling(self) -> None:
        """Run scaling benchmarks with varying grid sizes."""
        print("=" * 60)
        print("SCALING BENCHMARKS")
        print("=" * 60)

        print("\n--- Grid Size Scaling (forward) ---")
        for size in [16, 32, 64, 128]:
            self.bench_forward(batch_size=1, size=size)

        print("\n--- Batch Size Scaling (forward + backward) ---")
        for batch_size in [1, 4, 16]:
            self.bench_autograd_backward(batch_size=batch_size, size=32)


if __name__ == "__main__":
    bench = BenchVolumetricDivergence(warmup=5, iterations=20)
    bench.run_all()
    print("\n")
    bench.run_scaling()
