"""Convergence monitoring."""

from .convergence import (
    ConvergenceCriteria, ConvergenceMonitor, HistoryRecord, time_domain_complete,
)
from .fixed_cl import FixedCLController
from .output import HistoryOutput

__all__ = [
    'ConvergenceCriteria',
    'ConvergenceMonitor',
    'HistoryRecord',
    'time_domain_complete',
    'FixedCLController',
    'HistoryOutput',
]
