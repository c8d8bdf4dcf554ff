"""Heat-equation iteration."""

import logging

from ..core.registry import register_iteration
from ..core.types import IterationKind, PhysicsKind
from .fluid import FluidIteration

logger = logging.getLogger(__name__)


@register_iteration(IterationKind.HEAT)
class HeatIteration(FluidIteration):
    """Single-grid heat conduction; only the heat state takes part in dual time."""

    def iterate(self, context, coupling, key):
        context.integration(key, PhysicsKind.HEAT).single_grid_iteration(context, key, PhysicsKind.HEAT)

    def solve(self, context, coupling, key):
        self._start_timer()
        self._inner_loop(context, coupling, key, PhysicsKind.HEAT)

    def update(self, context, coupling, key):
        if coupling.dual_time:
            self._dual_time_update(context, key, PhysicsKind.HEAT)

    def preprocess(self, context, coupling, key):
        pass

    def postprocess(self, context, coupling, key):
        pass
