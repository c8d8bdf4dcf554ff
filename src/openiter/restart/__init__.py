"""Restart checkpoints and time-history reconstruction."""

from .loader import (
    dynamic_direct_iteration, load_dynamic_restart, load_dynamic_solution,
    load_unsteady_restart, load_unsteady_solution, unsteady_direct_iteration,
)
from .store import RestartStore

__all__ = [
    'RestartStore',
    'dynamic_direct_iteration',
    'load_dynamic_restart',
    'load_dynamic_solution',
    'load_unsteady_restart',
    'load_unsteady_solution',
    'unsteady_direct_iteration',
]
