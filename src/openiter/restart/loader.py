"""
Reconstruction of time-level history for unsteady and dynamic adjoints.

The adjoint runs backwards in time. Before each adjoint time step the direct
solutions at the matching time levels are loaded from checkpoints. A negative
direct iteration precedes the recorded simulation: the deterministic initial
state (free stream, or zero for structures) is used and no file is read.
"""

import logging
from typing import Sequence

from ..core.config import PhysicsCouplingConfig
from ..core.types import PhysicsKind

logger = logging.getLogger(__name__)


def unsteady_direct_iteration(unst_adjoint_iter: int, time_iter: int, dual_time: bool) -> int:
    """Direct iteration whose converged solution is time level n of adjoint step ``time_iter``."""
    direct_iter = unst_adjoint_iter - time_iter - 2
    if dual_time:
        direct_iter += 1
    return direct_iter


def dynamic_direct_iteration(unst_adjoint_iter: int, time_iter: int) -> int:
    return unst_adjoint_iter - time_iter - 1


def load_unsteady_solution(context, key, physics: Sequence[PhysicsKind], direct_iter: int,
                           grid_movement: bool = False) -> None:
    """Load one direct iteration into the current solution of every level.

    Args:
        context: Run context (its ``restart_store`` is read for non-negative iterations)
        key: Zone/instance
        physics: Direct physics to load; the first one carries the mesh coordinates
        direct_iter: Direct iteration to load
        grid_movement: Whether mesh coordinates are restored as well
    """
    levels = context.levels(key)

    if direct_iter >= 0:
        logger.info(f"Loading {physics[0].value} solution from direct iteration {direct_iter}.")
        store = context.restart_store
        for level in levels:
            level_key = key.level(level)
            for kind in physics:
                solver = context.solver(level_key, kind)
                solver.nodes.set_current(store.read(kind, direct_iter, level))
            if grid_movement:
                geometry = context.geometry(level_key)
                geometry.coordinates.set_current(
                    store.read(physics[0], direct_iter, level, "coordinates"))
        return

    logger.info(f"Setting freestream conditions at direct iteration {direct_iter}.")
    for level in levels:
        level_key = key.level(level)
        for kind in physics:
            solver = context.solver(level_key, kind)
            solver.set_free_stream_solution()
            if kind == PhysicsKind.FLUID:
                solver.preprocessing(inner_iter=direct_iter)
            else:
                solver.postprocessing()


def _load_mesh_restart(context, key, direct_iter: int) -> None:
    if direct_iter < 0:
        return
    store = context.restart_store
    mesh = context.solver(key.level(0), PhysicsKind.MESH_DEFORMATION)
    mesh.nodes.set_current(store.read(PhysicsKind.MESH_DEFORMATION, direct_iter, 0))
    for level in context.levels(key):
        geometry = context.geometry(key.level(level))
        geometry.coordinates.set_current(
            store.read(PhysicsKind.MESH_DEFORMATION, direct_iter, level, "coordinates"))


def load_unsteady_restart(context, key, coupling: PhysicsCouplingConfig,
                          physics: Sequence[PhysicsKind], unst_adjoint_iter: int,
                          time_iter: int, time_step: float) -> int:
    """Populate time levels n, n-1 and n-2 for adjoint step ``time_iter``.

    At the first adjoint step all required levels are loaded oldest first and
    pushed back. Later dual-time steps only load the oldest level into the
    scratch buffer and shift the existing history by one level. The same
    shifting is applied to the mesh coordinates of moving grids, after which
    the grid velocity is recomputed.

    Returns:
        The direct iteration loaded as time level n
    """
    direct_iter = unsteady_direct_iteration(unst_adjoint_iter, time_iter, coupling.dual_time)
    moving = coupling.grid_movement
    levels = context.levels(key)

    def histories(level):
        level_key = key.level(level)
        items = [context.solver(level_key, kind).nodes for kind in physics]
        if moving:
            items.append(context.geometry(level_key).coordinates)
        return items

    if time_iter == 0:
        if coupling.dual_time_2nd:
            load_unsteady_solution(context, key, physics, direct_iter - 2, moving)
            for level in levels:
                for history in histories(level):
                    history.push_to_time_n()
                    history.push_to_time_n1()

        if coupling.dual_time:
            load_unsteady_solution(context, key, physics, direct_iter - 1, moving)
            for level in levels:
                for history in histories(level):
                    history.push_to_time_n()

        load_unsteady_solution(context, key, physics, direct_iter, moving)

        if coupling.deform_mesh:
            _load_mesh_restart(context, key, direct_iter)

    elif coupling.dual_time:
        if coupling.deform_mesh:
            _load_mesh_restart(context, key, direct_iter)

        oldest = direct_iter - 1 if coupling.dual_time_1st else direct_iter - 2
        load_unsteady_solution(context, key, physics, oldest, moving)

        for level in levels:
            for history in histories(level):
                history.set_old()
                history.restore_from_old(second_order=coupling.dual_time_2nd)

    if moving:
        for level in levels:
            context.geometry(key.level(level)).compute_grid_velocity(
                time_step, second_order=coupling.dual_time_2nd)

    return direct_iter


def load_dynamic_solution(context, key, direct_iter: int) -> None:
    """Load displacement, velocity and acceleration of one direct iteration."""
    solver = context.solver(key.level(0), PhysicsKind.STRUCTURAL)
    state = solver.state

    if direct_iter >= 0:
        logger.info(f"Loading FEA solution from direct iteration {direct_iter}.")
        store = context.restart_store
        state.displacement.set_current(store.read(PhysicsKind.STRUCTURAL, direct_iter, 0))
        state.velocity.set_current(store.read(PhysicsKind.STRUCTURAL, direct_iter, 0, "velocity"))
        state.acceleration.set_current(
            store.read(PhysicsKind.STRUCTURAL, direct_iter, 0, "acceleration"))
    else:
        logger.info(f"Setting static conditions at direct iteration {direct_iter}.")
        state.zero()


def load_dynamic_restart(context, key, unst_adjoint_iter: int, time_iter: int) -> int:
    """Populate time levels n and n-1 of a dynamic structure for adjoint step ``time_iter``."""
    direct_iter = dynamic_direct_iteration(unst_adjoint_iter, time_iter)

    load_dynamic_solution(context, key, direct_iter - 1)
    context.solver(key.level(0), PhysicsKind.STRUCTURAL).state.push_to_time_n()
    load_dynamic_solution(context, key, direct_iter)

    return direct_iter
