"""History output backed by the convergence monitor."""

import logging
from typing import Dict, Optional

import numpy as np

from ..core.base import AdjointSolver, Output, Solver
from ..io.history import ConvergenceHistoryWriter
from .convergence import ConvergenceCriteria, ConvergenceMonitor

logger = logging.getLogger(__name__)


class HistoryOutput(Output):
    """Output collaborator that keeps the convergence history of one zone.

    Monitored fields per level-0 solver of the zone:

    - ``rms_<physics>_<i>``: RMS residual of variable i of a direct solver
    - ``rms_<physics>_0``: RMS change of the adjoint iterate of an adjoint solver
    - every total coefficient of a direct solver, by name
    """

    def __init__(self, criteria: Optional[ConvergenceCriteria] = None,
                 writer: Optional[ConvergenceHistoryWriter] = None,
                 write_frequency: int = 0):
        super().__init__()
        self.monitor = ConvergenceMonitor(criteria)
        self.writer = writer
        self.write_frequency = write_frequency
        self._previous_adjoint: Dict[object, np.ndarray] = {}

    def set_convergence(self, converged: bool) -> None:
        super().set_convergence(converged)
        if not converged:
            self.monitor.reset()

    def collect_values(self, context, key) -> Dict[str, float]:
        values: Dict[str, float] = {}
        finest = key.level(0)
        for (level_key, physics), solver in context.solvers.items():
            if level_key != finest:
                continue
            if isinstance(solver, AdjointSolver):
                previous = self._previous_adjoint.get(physics)
                change = solver.adjoint if previous is None else solver.adjoint - previous
                values[f"rms_{physics.value}_0"] = float(np.sqrt(np.mean(np.square(change))))
                self._previous_adjoint[physics] = solver.adjoint.copy()
            elif isinstance(solver, Solver):
                for i, residual in enumerate(solver.residual_rms):
                    values[f"rms_{physics.value}_{i}"] = float(residual)
                values.update(solver.total_coefficients)
        return values

    def set_history_output(self, context, key) -> None:
        counters = context.counter(key.zone)
        values = self.collect_values(context, key)
        self.converged = self.monitor.update(values, counters)

    def set_result_files(self, context, key, iteration: int, force: bool = False) -> bool:
        due = self.write_frequency > 0 and iteration % self.write_frequency == 0
        if self.writer is None or not (force or due):
            return False
        self.writer.write(self.monitor.to_dataframe())
        return True

    def print_convergence_summary(self) -> None:
        history = self.monitor.history
        if not history:
            logger.info("Convergence summary: no iterations recorded")
            return
        last = history[-1]
        logger.info(f"Convergence summary after inner iteration {last.inner_iter}: "
                    f"converged={last.converged}")
        for name, value in last.values.items():
            logger.info(f"  {name}: {value:.6e}")
