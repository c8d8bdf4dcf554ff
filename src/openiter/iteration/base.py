"""
Iteration State Machine base.

One iteration object drives one physics of one zone/instance through an
outer step:

    preprocess -> [iterate -> monitor -> output?]* -> update -> postprocess

Every hook receives the run context, the coupling flags frozen for the
current outer step and the zone/instance key. The defaults are no-ops so a
variant only overrides the hooks its physics needs.
"""

import logging
import time

from ..core.config import IterationConfig, PhysicsCouplingConfig
from ..core.types import PhysicsKind, ZoneInstanceKey
from ..motion.grid_movement import GridMovementCoordinator

logger = logging.getLogger(__name__)


class Iteration:
    """Shared lifecycle of all iteration variants.

    Attributes:
        config: Configuration of the zone this iteration belongs to
        start_time: Wall-clock time at the start of the current outer step
        used_time: Wall-clock time spent up to the last monitor call
        finite_difference_mode: Set once the fixed-CL finite-difference
            sub-mode has started; disables further result output
    """

    def __init__(self, config: IterationConfig):
        self.config = config
        self.grid_movement = GridMovementCoordinator(config)
        self.start_time = 0.0
        self.stop_time = 0.0
        self.used_time = 0.0
        self.finite_difference_mode = False

    def coupling(self) -> PhysicsCouplingConfig:
        """Coupling flags for the next outer step."""
        return PhysicsCouplingConfig.from_config(self.config)

    def run(self, context, key: ZoneInstanceKey) -> None:
        """Drive a complete outer step with freshly evaluated coupling flags.

        Variants that need preprocessing run it at the start of ``solve``.
        """
        coupling = self.coupling()
        self.solve(context, coupling, key)
        self.update(context, coupling, key)
        self.postprocess(context, coupling, key)

    def _start_timer(self) -> None:
        self.start_time = time.perf_counter()

    def _stop_timer(self) -> None:
        self.stop_time = time.perf_counter()
        self.used_time = self.stop_time - self.start_time

    # Lifecycle hooks

    def preprocess(self, context, coupling: PhysicsCouplingConfig, key: ZoneInstanceKey) -> None:
        pass

    def iterate(self, context, coupling: PhysicsCouplingConfig, key: ZoneInstanceKey) -> None:
        pass

    def solve(self, context, coupling: PhysicsCouplingConfig, key: ZoneInstanceKey) -> None:
        pass

    def update(self, context, coupling: PhysicsCouplingConfig, key: ZoneInstanceKey) -> None:
        pass

    def predictor(self, context, coupling: PhysicsCouplingConfig, key: ZoneInstanceKey) -> None:
        pass

    def relaxation(self, context, coupling: PhysicsCouplingConfig, key: ZoneInstanceKey) -> None:
        pass

    def monitor(self, context, coupling: PhysicsCouplingConfig, key: ZoneInstanceKey) -> bool:
        return False

    def postprocess(self, context, coupling: PhysicsCouplingConfig, key: ZoneInstanceKey) -> None:
        pass

    def output(self, context, coupling: PhysicsCouplingConfig, key: ZoneInstanceKey,
               iteration: int, stop: bool = False) -> None:
        """Hand result persistence to the output collaborator of the zone."""
        context.output(key.zone).set_result_files(context, key, iteration)

    # Shared pieces

    def _history_output(self, context, coupling: PhysicsCouplingConfig, key: ZoneInstanceKey) -> bool:
        """Record one history entry (when this zone owns history) and return convergence."""
        output = context.output(key.zone)
        if coupling.multizone or coupling.singlezone_driver:
            output.set_history_output(context, key)
        return output.get_convergence()

    def _inner_loop(self, context, coupling: PhysicsCouplingConfig, key: ZoneInstanceKey,
                    physics: PhysicsKind) -> bool:
        """Iterate and monitor until convergence or the inner iteration budget.

        Single-zone steady problems write results after every inner
        iteration; multizone steady problems write once at the end and reset
        the convergence of ``physics`` so that the outer coupling keeps going.
        """
        counters = context.counter(key.zone)
        stop = False

        for inner_iter in range(self.config.n_inner_iter):
            counters.inner_iter = inner_iter

            self.iterate(context, coupling, key)
            stop = self.monitor(context, coupling, key)

            if coupling.singlezone_driver and coupling.steady:
                self.output(context, coupling, key, inner_iter, stop)

            if stop:
                logger.debug(f"Zone {key.zone} converged at inner iteration {inner_iter}")
                break

        if coupling.multizone and coupling.steady:
            self.output(context, coupling, key, counters.outer_iter, stop)
            context.integration(key, physics).set_convergence(False)

        return stop

    def _dual_time_update(self, context, key: ZoneInstanceKey, physics: PhysicsKind,
                          levels=None) -> None:
        """Shift the dual-time history of ``physics`` and reset its convergence."""
        integration = context.integration(key, physics)
        for level in (context.levels(key) if levels is None else levels):
            integration.set_dual_time_solver(context.solver(key.level(level), physics))
            integration.set_convergence(False)
