"""Fluid iteration variants: finite-volume, turbomachinery and high-order FEM."""

import logging
from typing import Optional

from ..core.config import IterationConfig
from ..core.registry import register_iteration
from ..core.types import GustType, IterationKind, PhysicsKind, TurboFlowSide
from ..monitor.fixed_cl import FixedCLController
from ..motion.gust import VortexDistribution, apply_wind_gust, read_vortex_distribution
from .base import Iteration

logger = logging.getLogger(__name__)


@register_iteration(IterationKind.FLUID)
class FluidIteration(Iteration):
    """Euler, Navier-Stokes and RANS flow with weakly coupled side systems.

    One inner iteration is a multigrid sweep of the flow equations followed
    by single-grid sweeps of turbulence, transition, heat and radiation as
    enabled by the coupling flags.
    """

    def __init__(self, config: IterationConfig):
        super().__init__(config)
        self.fixed_cl: Optional[FixedCLController] = None
        if config.fixed_cl.enabled:
            self.fixed_cl = FixedCLController(config.fixed_cl, config.n_inner_iter)
        self._vortices: Optional[VortexDistribution] = None

    def _apply_gust(self, context, key) -> None:
        if self.config.gust.gust_type == GustType.VORTEX and self._vortices is None:
            self._vortices = read_vortex_distribution(self.config.gust.vortex_file)
        apply_wind_gust(context, key, self.config, vortices=self._vortices)

    def preprocess(self, context, coupling, key):
        counters = context.counter(key.zone)

        # Only the first FSI sub-iteration starts from the initial condition
        if coupling.fsi and counters.outer_iter == 0:
            context.solver(key.level(0), PhysicsKind.FLUID).set_initial_condition(counters.time_iter)

        if coupling.gust:
            self._apply_gust(context, key)

    def iterate(self, context, coupling, key):
        counters = context.counter(key.zone)
        inner_iter = counters.inner_iter
        flow = context.solver(key.level(0), PhysicsKind.FLUID)

        context.integration(key, PhysicsKind.FLUID).multigrid_iteration(context, key, PhysicsKind.FLUID)

        if coupling.turbulent:
            context.integration(key, PhysicsKind.TURBULENCE).single_grid_iteration(
                context, key, PhysicsKind.TURBULENCE)
            if coupling.transition:
                context.integration(key, PhysicsKind.TRANSITION).single_grid_iteration(
                    context, key, PhysicsKind.TRANSITION)

        if coupling.heat:
            context.integration(key, PhysicsKind.HEAT).single_grid_iteration(context, key, PhysicsKind.HEAT)

        if coupling.radiation:
            context.integration(key, PhysicsKind.RADIATION).single_grid_iteration(
                context, key, PhysicsKind.RADIATION)

        # Dependence of the objective on the inputs
        if coupling.discrete_adjoint:
            flow.preprocessing(inner_iter=inner_iter)
            flow.set_nondimensional_parameters()

        if coupling.cfl_adapt and not coupling.discrete_adjoint:
            flow.adapt_cfl_number()

        if coupling.grid_movement and coupling.aeroelastic and coupling.dual_time:
            self.grid_movement.set_grid_movement(context, key, inner_iter, counters.time_iter)

            if coupling.gust and inner_iter % self.config.grid_movement.aeroelastic_iter == 0 and inner_iter != 0:
                self._apply_gust(context, key)

    def update(self, context, coupling, key):
        if not coupling.dual_time:
            return

        self._dual_time_update(context, key, PhysicsKind.FLUID)

        if coupling.deform_mesh:
            context.solver(key.level(0), PhysicsKind.MESH_DEFORMATION).set_dual_time_mesh()

        if coupling.rans:
            self._dual_time_update(context, key, PhysicsKind.TURBULENCE, levels=[0])

        if coupling.transition:
            self._dual_time_update(context, key, PhysicsKind.TRANSITION, levels=[0])

    def monitor(self, context, coupling, key):
        self._stop_timer()
        stop = self._history_output(context, coupling, key)

        if coupling.fixed_cl and self.fixed_cl is not None:
            stop = self._monitor_fixed_cl(context, key)

        # Keep iterating until the wall functions have been switched on
        counters = context.counter(key.zone)
        if (stop and coupling.wall_functions and not coupling.discrete_adjoint and
                counters.inner_iter <= self.config.wall_function_start_iter and not coupling.restart):
            stop = False
            self.config.wall_function_start_iter = counters.inner_iter

        return stop

    def _monitor_fixed_cl(self, context, key) -> bool:
        """Drive the angle of attack towards the target lift coefficient."""
        output = context.output(key.zone)
        flow = context.solver(key.level(0), PhysicsKind.FLUID)
        inner_iter = context.counter(key.zone).inner_iter

        converged = self.fixed_cl.update(flow.total_coefficient("CL"), output.get_convergence(), inner_iter)
        flow.set_angle_of_attack(self.fixed_cl.aoa)

        if self.fixed_cl.finite_difference_triggered(inner_iter):
            output.print_convergence_summary()
            output.set_result_files(context, key, inner_iter, force=True)
            self.finite_difference_mode = True

        return converged

    def output(self, context, coupling, key, iteration, stop=False):
        if self.finite_difference_mode:
            return
        super().output(context, coupling, key, iteration, stop)

    def postprocess(self, context, coupling, key):
        if coupling.singlezone_driver:
            context.solver(key.level(0), PhysicsKind.FLUID).compute_vertex_tractions()

    def solve(self, context, coupling, key):
        self._start_timer()
        self.preprocess(context, coupling, key)
        self._inner_loop(context, coupling, key, PhysicsKind.FLUID)


@register_iteration(IterationKind.TURBO)
class TurboIteration(FluidIteration):
    """Fluid iteration with inflow/outflow averaging for turbomachinery."""

    def _average(self, context, key) -> None:
        flow = context.solver(key.level(0), PhysicsKind.FLUID)
        flow.turbo_average_process(TurboFlowSide.INFLOW)
        flow.turbo_average_process(TurboFlowSide.OUTFLOW)

    def preprocess(self, context, coupling, key):
        self._average(context, key)

    def postprocess(self, context, coupling, key):
        self._average(context, key)
        context.solver(key.level(0), PhysicsKind.FLUID).gather_in_out_average_values()


@register_iteration(IterationKind.FEM_FLUID)
class FEMFluidIteration(FluidIteration):
    """High-order FEM flow; time integration happens inside the solver."""

    def preprocess(self, context, coupling, key):
        time_iter = context.counter(key.zone).time_iter
        if time_iter == 0 and not coupling.restart:
            context.solver(key.level(0), PhysicsKind.FLUID).set_initial_condition(time_iter)

    def iterate(self, context, coupling, key):
        context.integration(key, PhysicsKind.FLUID).single_grid_iteration(context, key, PhysicsKind.FLUID)

    def update(self, context, coupling, key):
        pass

    def postprocess(self, context, coupling, key):
        pass
