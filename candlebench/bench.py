"""Dense matrix multiplication benchmark."""

from __future__ import annotations

import time
from dataclasses import dataclass

import numpy as np

from .backend import Backend, device_for_backend, device_label


@dataclass(frozen=True)
class MatmulResult:
    device: str
    size: int
    iters: int
    total_elapsed: float
    avg_secs: float
    gflops: float


def benchmark_matmul(size: int, iters: int, backend: Backend) -> MatmulResult:
    """Time ``iters`` square float32 matmuls of dimension ``size``."""
    if size <= 0:
        raise ValueError("--size must be greater than 0")
    if iters <= 0:
        raise ValueError("--iters must be greater than 0")
    device = device_for_backend(backend)
    rng = np.random.default_rng()
    a = rng.standard_normal((size, size), dtype=np.float32)
    b = rng.standard_normal((size, size), dtype=np.float32)
    _ = (a @ b).shape  # warmup

    elapsed = 0.0
    for _ in range(iters):
        start = time.perf_counter()
        _ = (a @ b).shape
        elapsed += time.perf_counter() - start

    avg = elapsed / iters
    flops = 2.0 * float(size) ** 3
    gflops = (flops / avg) / 1e9 if avg > 0 else float("inf")
    return MatmulResult(device_label(device), size, iters, elapsed, avg, gflops)


def run_matmul(size: int, iters: int, backend: Backend) -> None:
    if size <= 0:
        raise ValueError("--size must be greater than 0")
    if iters <= 0:
        raise ValueError("--iters must be greater than 0")
    device = device_for_backend(backend)
    print("Candle matmul benchmark")
    print("=======================")
    print(f"device: {device_label(device)}")
    print(f"matrix: [{size} x {size}]")
    print(f"iters: {iters}")
    print()
    result = benchmark_matmul(size, iters, backend)
    print(f"total elapsed: {result.total_elapsed:.3f}s")
    print(f"avg / iter: {result.avg_secs * 1000.0:.3f}ms")
    print(f"rough throughput: {result.gflops:.2f} GFLOP/s")