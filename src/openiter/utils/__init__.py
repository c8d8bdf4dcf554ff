"""Utility functions for openiter."""

from .logging import setup_logging
from .parallel import (
    ParallelConfig, chunk_ranges, get_optimal_chunk_size, is_parallelizable,
    parallel_point_loop,
)

__all__ = [
    'setup_logging',
    'ParallelConfig',
    'chunk_ranges',
    'get_optimal_chunk_size',
    'is_parallelizable',
    'parallel_point_loop',
]
