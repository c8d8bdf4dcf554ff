"""
Structural (FEA) iteration.

Three solution strategies, selected by the coupling flags:

- Linear: a single structural iteration
- Nonlinear: Newton-Raphson sub-iterations until convergence; convergence is
  only honored from the second sub-iteration on
- Incremental loading: two trial sub-iterations decide whether the full load
  can be applied directly; otherwise the solve restarts from the initial
  condition and is repeated for each load fraction i/N, i = 1..N

The predictor and relaxation hooks provide the interface displacement that a
fluid-structure coupling hands to the fluid zone.
"""

import logging

import numpy as np

from ..core.config import IterationConfig
from ..core.registry import register_iteration
from ..core.state import IncrementalLoadState
from ..core.types import IterationKind, PhysicsKind
from ..monitor.convergence import time_domain_complete
from ..structural.relaxation import AitkenRelaxation, newmark_relaxation, predict_displacement
from .base import Iteration

logger = logging.getLogger(__name__)


@register_iteration(IterationKind.FEA)
class FEAIteration(Iteration):
    """Finite-element structural iteration."""

    def __init__(self, config: IterationConfig):
        super().__init__(config)
        self.aitken = AitkenRelaxation.from_config(config.structural)
        self.load_state = IncrementalLoadState(total_increments=config.structural.n_increments)

    def _set_load(self, solver, increment: int, coefficient: float) -> None:
        self.load_state.set_increment(increment, coefficient)
        solver.set_load_increment(increment, coefficient)

    def _sub_iteration(self, context, key, inner_iter: int) -> None:
        context.counter(key.zone).inner_iter = inner_iter
        context.integration(key, PhysicsKind.STRUCTURAL).structural_iteration(
            context, key, PhysicsKind.STRUCTURAL)

    def iterate(self, context, coupling, key):
        integration = context.integration(key, PhysicsKind.STRUCTURAL)

        # Intermediate FSI sub-iterations must not stop the structural solver
        integration.set_convergence(False)

        if coupling.linear:
            self._sub_iteration(context, key, 0)
            if not coupling.discrete_adjoint:
                self.monitor(context, coupling, key)
                context.output(key.zone).set_convergence(True)

        elif not coupling.incremental_load:
            self._newton_raphson(context, coupling, key)

        else:
            self._incremental_load(context, coupling, key)

    def _newton_raphson(self, context, coupling, key) -> None:
        counters = context.counter(key.zone)
        current_inner = counters.inner_iter

        for inner_iter in range(self.config.n_inner_iter):
            self._sub_iteration(context, key, inner_iter)

            # A discrete-adjoint recording replays exactly one sub-iteration
            if coupling.discrete_adjoint:
                counters.inner_iter = current_inner
                break

            stop = self.monitor(context, coupling, key)
            if stop and inner_iter > 0:
                break

    def _criteria_met(self, solver) -> bool:
        criteria = self.config.structural.inc_load_criteria
        with np.errstate(divide='ignore'):
            return all(np.log10(solver.fem_residual(i)) < criteria[i] for i in range(3))

    def _incremental_load(self, context, coupling, key) -> None:
        solver = context.solver(key.level(0), PhysicsKind.STRUCTURAL)
        output = context.output(key.zone)
        n_increments = self.config.structural.n_increments
        n_inner_iter = self.config.n_inner_iter

        self._set_load(solver, 0, 1.0)
        solver.set_force_coefficient(1.0)

        try:
            # Two trial iterations at full load
            stop = False
            for inner_iter in range(2):
                self._sub_iteration(context, key, inner_iter)
                stop = self.monitor(context, coupling, key)

            if stop:
                return

            if self._criteria_met(solver):
                for inner_iter in range(2, n_inner_iter):
                    self._sub_iteration(context, key, inner_iter)
                    if self.monitor(context, coupling, key):
                        break
                return

            # Ramp the load from zero; the last outer iteration's state is at full load
            solver.set_initial_condition(context.counter(key.zone).time_iter)

            for increment in range(1, n_increments + 1):
                self._set_load(solver, increment, increment / n_increments)
                output.set_convergence(False)
                logger.info(f"Incremental load: increment {increment}")

                for inner_iter in range(n_inner_iter):
                    self._sub_iteration(context, key, inner_iter)
                    stop = self.monitor(context, coupling, key)
                    if stop and inner_iter > 0:
                        break
        finally:
            self._set_load(solver, 0, 1.0)

    def update(self, context, coupling, key):
        integration = context.integration(key, PhysicsKind.STRUCTURAL)
        solver = context.solver(key.level(0), PhysicsKind.STRUCTURAL)
        time_config = self.config.time

        if coupling.dynamic:
            integration.set_structural_solver(solver)
            integration.set_convergence(False)

            time_iter = context.counter(key.zone).time_iter
            if time_domain_complete(time_iter, time_config.time_step, time_config.total_time):
                integration.set_convergence(True)

        elif coupling.newmark_fsi:
            # The relaxed displacement is the one transferred to the fluid
            structural = self.config.structural
            newmark_relaxation(solver.state, time_config.time_step,
                               structural.newmark_beta, structural.newmark_gamma)

    def predictor(self, context, coupling, key):
        state = context.solver(key.level(0), PhysicsKind.STRUCTURAL).state
        state.predicted = predict_displacement(
            state.displacement.current, state.velocity.current, state.acceleration.current,
            self.config.time.time_step, self.config.structural.predictor_order)

    def relaxation(self, context, coupling, key):
        state = context.solver(key.level(0), PhysicsKind.STRUCTURAL).state
        self.aitken.compute_coefficient(state, context.counter(key.zone).outer_iter)
        self.aitken.relax(state, dynamic=coupling.dynamic)

    def monitor(self, context, coupling, key):
        self._stop_timer()
        return self._history_output(context, coupling, key)

    def solve(self, context, coupling, key):
        self._start_timer()
        self.iterate(context, coupling, key)

        # Outer coupling iterations decide convergence
        context.integration(key, PhysicsKind.STRUCTURAL).set_convergence(False)
