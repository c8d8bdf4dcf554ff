"""Continuous adjoint flow iteration."""

import logging

import numpy as np

from ..core.registry import register_iteration
from ..core.types import IterationKind, ObjectiveKind, PhysicsKind
from ..monitor.convergence import time_domain_complete
from ..restart.loader import load_unsteady_solution
from .fluid import FluidIteration

logger = logging.getLogger(__name__)

_FORCE_COEFFICIENTS = ("CD", "CL", "CT", "CQ")


@register_iteration(IterationKind.ADJ_FLUID)
class AdjFluidIteration(FluidIteration):
    """Adjoint Euler, Navier-Stokes or RANS equations.

    Every outer step first refreshes the direct flow (loaded from a
    checkpoint for unsteady problems, then one direct sweep) so that the
    adjoint boundary conditions see the current objective sensitivities.
    """

    def preprocess(self, context, coupling, key):
        time_iter = context.counter(key.zone).time_iter
        finest = key.level(0)

        if ((coupling.grid_movement and time_iter == 0) or coupling.time_marching) and not coupling.harmonic_balance:
            direct_iter = self.config.time.unst_adjoint_iter - time_iter - 1
            load_unsteady_solution(context, key, [PhysicsKind.FLUID], direct_iter,
                                   grid_movement=coupling.grid_movement)

        logger.info("Begin direct solver to store flow data (single iteration).")
        logger.info("Compute residuals to check the convergence of the direct problem.")
        context.integration(key, PhysicsKind.FLUID).multigrid_iteration(context, key, PhysicsKind.FLUID)

        if coupling.rans:
            context.integration(key, PhysicsKind.TURBULENCE).single_grid_iteration(
                context, key, PhysicsKind.TURBULENCE)
            if coupling.transition:
                context.integration(key, PhysicsKind.TRANSITION).single_grid_iteration(
                    context, key, PhysicsKind.TRANSITION)

        flow = context.solver(finest, PhysicsKind.FLUID)
        with np.errstate(divide='ignore'):
            max_residual = np.log10(flow.residual_max[0])
        logger.info(f"log10[Maximum residual]: {max_residual:.6f}")

        # Primitive gradients enter the surface sensitivities
        flow.set_primitive_gradient(self.config.adjoint.gradient_method)

        objective = self.config.adjoint.objective
        for level in context.levels(key):
            level_key = key.level(level)
            level_flow = context.solver(level_key, PhysicsKind.FLUID)
            for name in _FORCE_COEFFICIENTS:
                level_flow.set_total_coefficient(name, flow.total_coefficient(name))

            adjoint = context.solver(level_key, PhysicsKind.ADJ_FLUID)
            adjoint.set_force_projection_vector()
            if objective in (ObjectiveKind.EQUIVALENT_AREA, ObjectiveKind.NEARFIELD_PRESSURE):
                adjoint.set_internal_boundary_jump()

        logger.info("End direct solver, begin adjoint problem.")

    def iterate(self, context, coupling, key):
        context.integration(key, PhysicsKind.ADJ_FLUID).multigrid_iteration(context, key, PhysicsKind.ADJ_FLUID)

        if coupling.rans and not coupling.frozen_visc:
            context.integration(key, PhysicsKind.ADJ_TURBULENCE).single_grid_iteration(
                context, key, PhysicsKind.ADJ_TURBULENCE)

    def update(self, context, coupling, key):
        if not coupling.dual_time:
            return

        self._dual_time_update(context, key, PhysicsKind.ADJ_FLUID)

        time_config = self.config.time
        time_iter = context.counter(key.zone).time_iter
        if time_domain_complete(time_iter, time_config.time_step, time_config.total_time):
            context.integration(key, PhysicsKind.ADJ_FLUID).set_convergence(True)

    def postprocess(self, context, coupling, key):
        pass
