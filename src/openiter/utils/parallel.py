"""
Fork-join helpers for per-point loops.

Point loops (gust application, grid-velocity correction) split the point
range into contiguous chunks, run them on a thread pool and join before
returning. Chunks never overlap, so a loop body may write its own slice of
a shared array without locking.
"""

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Thread-local storage to track nested parallelization
_parallel_context = threading.local()


class ParallelConfig:
    """Configuration for fork-join point loops."""

    def __init__(
        self,
        enabled: bool = False,
        max_workers: Optional[int] = None,
        chunk_size: Optional[int] = None,
        threshold: int = 100000,
    ):
        """Initialize parallel processing configuration.

        Args:
            enabled: Whether parallel processing is enabled
            max_workers: Maximum number of worker threads
            chunk_size: Number of points per chunk
            threshold: Minimum number of points to trigger parallelization
        """
        self.enabled = enabled
        self.max_workers = max_workers
        self.chunk_size = chunk_size
        self.threshold = threshold


def is_parallelizable(data_size: int, config: Optional[ParallelConfig] = None) -> bool:
    """Determine if a loop over ``data_size`` points should run in parallel."""
    if config is None:
        config = ParallelConfig()

    # No nested parallel regions
    if getattr(_parallel_context, 'in_parallel', False):
        return False

    return config.enabled and data_size >= config.threshold


def get_optimal_chunk_size(total_size: int, workers: int) -> int:
    """Contiguous chunk size giving each worker about one chunk."""
    return max(1, -(-total_size // max(1, workers)))


def chunk_ranges(total_size: int, chunk_size: int) -> List[Tuple[int, int]]:
    """Split ``range(total_size)`` into ``(start, stop)`` pairs."""
    return [(start, min(start + chunk_size, total_size))
            for start in range(0, total_size, chunk_size)]


def _default_workers() -> int:
    cpu_count = os.cpu_count() or 1
    return max(1, min(cpu_count - 1 if cpu_count > 2 else cpu_count, 16))


def parallel_point_loop(body: Callable[[int, int], None], n_points: int,
                        config: Optional[ParallelConfig] = None) -> None:
    """Run ``body(start, stop)`` over all points and join before returning.

    Exceptions raised inside a chunk propagate to the caller.
    """
    if n_points <= 0:
        return

    config = config if config is not None else ParallelConfig()
    if not is_parallelizable(n_points, config):
        body(0, n_points)
        return

    workers = config.max_workers or _default_workers()
    chunk_size = config.chunk_size or get_optimal_chunk_size(n_points, workers)
    ranges = chunk_ranges(n_points, chunk_size)
    if len(ranges) <= 1:
        body(0, n_points)
        return

    start_time = time.time()
    try:
        _parallel_context.in_parallel = True
        with ThreadPoolExecutor(max_workers=min(workers, len(ranges))) as executor:
            futures = [executor.submit(body, start, stop) for start, stop in ranges]
            for future in futures:
                future.result()
    finally:
        _parallel_context.in_parallel = False

    logger.debug(f"Parallel point loop over {n_points} points in {len(ranges)} chunks "
                 f"completed in {time.time() - start_time:.3f} seconds")
