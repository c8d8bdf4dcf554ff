"""
Convergence Monitoring for Iteration Loops

Implements the stopping decisions of the inner and outer loops:
- Residual-based convergence (log10 of a monitored residual below a target)
- Cauchy-style convergence on a monitored coefficient
- Time-domain completion
- Bounded convergence history exportable as a pandas DataFrame

Numerical non-convergence is never an error: the monitor only reports
whether a stopping condition has been reached.
"""

import logging
import math
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional

import numpy as np
import pandas as pd

from ..core.types import ConvergenceSignal, IterationCounters

logger = logging.getLogger(__name__)


@dataclass
class ConvergenceCriteria:
    """Configuration for convergence monitoring."""

    # Residual criterion
    residual_field: Optional[str] = "rms_fluid_0"
    min_log_residual: float = -8.0

    # Cauchy criterion on a coefficient
    cauchy_field: Optional[str] = None
    cauchy_elems: int = 100
    cauchy_eps: float = 1e-10

    # Iterations before any criterion may trigger
    start_conv_iter: int = 5

    history_length: int = 10000


@dataclass
class HistoryRecord:
    """One entry of the convergence history."""
    time_iter: int
    outer_iter: int
    inner_iter: int
    values: Dict[str, float] = field(default_factory=dict)
    converged: bool = False


def time_domain_complete(time_iter: int, time_step: float, total_time: float) -> bool:
    """True once physical step ``time_iter`` reaches the final time."""
    return (time_iter + 1) * time_step >= total_time


class ConvergenceMonitor:
    """Residual and Cauchy convergence with a bounded history."""

    def __init__(self, criteria: Optional[ConvergenceCriteria] = None):
        self.criteria = criteria if criteria is not None else ConvergenceCriteria()
        self.history: Deque[HistoryRecord] = deque(maxlen=self.criteria.history_length)
        self._cauchy_window: Deque[float] = deque(maxlen=self.criteria.cauchy_elems)
        self._last_coefficient: Optional[float] = None
        self.converged = False

    def reset(self) -> None:
        """Clear the convergence state, keeping the history."""
        self._cauchy_window.clear()
        self._last_coefficient = None
        self.converged = False

    def _residual_converged(self, values: Dict[str, float]) -> Optional[bool]:
        name = self.criteria.residual_field
        if name is None or name not in values:
            return None
        residual = abs(values[name])
        if residual == 0.0:
            return True
        return math.log10(residual) < self.criteria.min_log_residual

    def _cauchy_converged(self, values: Dict[str, float]) -> Optional[bool]:
        name = self.criteria.cauchy_field
        if name is None or name not in values:
            return None
        value = values[name]
        if self._last_coefficient is not None:
            scale = max(abs(value), 1e-12)
            self._cauchy_window.append(abs(value - self._last_coefficient) / scale)
        self._last_coefficient = value
        if len(self._cauchy_window) < self.criteria.cauchy_elems:
            return False
        return float(np.mean(self._cauchy_window)) < self.criteria.cauchy_eps

    def update(self, values: Dict[str, float], counters: IterationCounters) -> bool:
        """Record one history entry and evaluate the convergence criteria.

        Args:
            values: Monitored fields (residuals and coefficients) by name
            counters: Iteration counters of the zone

        Returns:
            True if all active criteria are satisfied
        """
        checks = [self._residual_converged(values), self._cauchy_converged(values)]
        active = [check for check in checks if check is not None]

        converged = bool(active) and all(active)
        if counters.inner_iter < self.criteria.start_conv_iter:
            converged = False

        self.converged = converged
        self.history.append(HistoryRecord(counters.time_iter, counters.outer_iter,
                                          counters.inner_iter, dict(values), converged))

        logger.debug(f"Iter {counters.inner_iter}: {values} converged={converged}")
        return converged

    def signal(self, counters: IterationCounters) -> ConvergenceSignal:
        return ConvergenceSignal(self.converged, counters.inner_iter,
                                 counters.outer_iter, counters.time_iter)

    def to_dataframe(self) -> pd.DataFrame:
        """Convergence history as one row per recorded iteration."""
        rows: List[Dict[str, float]] = []
        for record in self.history:
            row = {
                'time_iter': record.time_iter,
                'outer_iter': record.outer_iter,
                'inner_iter': record.inner_iter,
            }
            row.update(record.values)
            row['converged'] = record.converged
            rows.append(row)
        return pd.DataFrame(rows)
