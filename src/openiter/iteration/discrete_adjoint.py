"""
Discrete-adjoint recording controllers.

A discrete-adjoint iteration does not solve anything itself. It replays the
wrapped direct iteration once under tape recording, then every adjoint inner
iteration seeds the output adjoints, runs the reverse sweep and extracts the
input adjoints:

    set_recording(mode) -> [initialize_adjoint -> evaluate -> iterate -> monitor]*

Changing the recording mode between two recordings first replays the direct
iteration passively so that no tape index of the previous mode survives.
"""

import dataclasses
import logging
from typing import List

from ..core.config import IterationConfig
from ..core.exceptions import TapeError
from ..core.registry import create_iteration, register_iteration
from ..core.types import CommKind, IterationKind, PhysicsKind, RecordingMode
from ..restart.loader import load_unsteady_restart, unsteady_direct_iteration
from .base import Iteration

logger = logging.getLogger(__name__)

_MESH_MODES = (RecordingMode.MESH_COORDINATES, RecordingMode.NONE, RecordingMode.SOLUTION_AND_MESH)
_SOLUTION_MODES = (RecordingMode.SOLUTION_VARIABLES, RecordingMode.SOLUTION_AND_MESH)


class DiscreteAdjointIteration(Iteration):
    """Template of the recording transition shared by all discrete adjoints.

    Subclasses provide the wrapped direct kind and the physics specific
    pieces: which adjoint solvers to reset, which quantities are tape inputs
    and outputs, and how coupled dependencies are recomputed.

    Attributes:
        current_recording: Mode of the last recording (NONE before the first)
        direct_iteration: Direct iteration replayed under recording
    """

    direct_kind: IterationKind = None
    main_recording = RecordingMode.SOLUTION_VARIABLES

    def __init__(self, config: IterationConfig):
        super().__init__(config)
        self.current_recording = RecordingMode.NONE
        self.direct_iteration = create_iteration(self.direct_kind, config)

    @staticmethod
    def _tape(context):
        if context.tape is None:
            raise TapeError("Discrete adjoint iterations need a recording tape in the run context")
        return context.tape

    # Physics specific pieces

    def reset_recording(self, context, coupling, key) -> None:
        """Restore the stored direct solutions and drop stale tape indices."""
        pass

    def register_input(self, context, coupling, key, kind_recording: RecordingMode) -> None:
        pass

    def set_dependencies(self, context, coupling, key, kind_recording: RecordingMode) -> None:
        pass

    def register_output(self, context, coupling, key) -> None:
        pass

    def initialize_adjoint(self, context, coupling, key) -> None:
        """Seed the output adjoints before a reverse sweep."""
        pass

    def direct_time_iter(self, coupling, time_iter: int) -> int:
        """Direct time iteration replayed at adjoint step ``time_iter``."""
        return time_iter

    def direct_iterate(self, context, coupling, key, kind_recording: RecordingMode) -> None:
        self.direct_iteration.iterate(context, coupling, key)

    # Recording transition

    def set_recording(self, context, coupling, key, kind_recording: RecordingMode) -> None:
        """Record one direct iteration with ``kind_recording`` inputs.

        Args:
            context: Run context owning the tape
            coupling: Coupling flags of the current outer step
            key: Zone/instance
            kind_recording: Quantities registered as independent inputs
        """
        tape = self._tape(context)
        counters = context.counter(key.zone)
        inner_iter = counters.inner_iter
        time_iter = counters.time_iter

        tape.reset()

        if self.current_recording not in (kind_recording, RecordingMode.NONE):
            logger.info(f"Recording mode changed from {self.current_recording.value} "
                        f"to {kind_recording.value}: flushing tape indices.")
            self.reset_recording(context, coupling, key)
            self.set_dependencies(context, coupling, key, RecordingMode.SOLUTION_AND_MESH)
            self.direct_iterate(context, coupling, key, RecordingMode.NONE)

        self.reset_recording(context, coupling, key)

        with tape.recording(kind_recording):
            self.register_input(context, coupling, key, kind_recording)
            self.set_dependencies(context, coupling, key, kind_recording)

            if coupling.time_domain:
                counters.time_iter = self.direct_time_iter(coupling, time_iter)
            try:
                self.direct_iterate(context, coupling, key, kind_recording)
            finally:
                counters.time_iter = time_iter

            self.register_output(context, coupling, key)

        self.current_recording = kind_recording
        counters.inner_iter = inner_iter

        logger.debug(f"Recorded {kind_recording.value}: {tape.n_inputs} inputs, "
                     f"{tape.n_outputs} outputs, {tape.n_statements} statements")

    def adjoint_step(self, context, coupling, key) -> bool:
        """One adjoint inner iteration on the current recording."""
        tape = self._tape(context)

        self.initialize_adjoint(context, coupling, key)
        tape.evaluate()
        self.iterate(context, coupling, key)
        tape.clear_adjoints()

        return self.monitor(context, coupling, key)

    def solve(self, context, coupling, key):
        self._start_timer()
        self.preprocess(context, coupling, key)
        self.set_recording(context, coupling, key, self.main_recording)

        counters = context.counter(key.zone)
        for inner_iter in range(self.config.n_inner_iter):
            counters.inner_iter = inner_iter
            if self.adjoint_step(context, coupling, key):
                logger.debug(f"Adjoint of zone {key.zone} converged at inner iteration {inner_iter}")
                break

    def monitor(self, context, coupling, key):
        self._stop_timer()
        output = context.output(key.zone)
        output.set_history_output(context, key)
        return output.get_convergence()


def _adjoint(context, key, physics, level: int = 0):
    return context.solver(key.level(level), physics)


@register_iteration(IterationKind.DISC_ADJ_FLUID)
class DiscAdjFluidIteration(DiscreteAdjointIteration):
    """Discrete adjoint of the finite-volume flow iteration.

    The adjoint flow solution lives on every multigrid level, the adjoint
    turbulence, heat and radiation solutions on the finest level only.
    """

    direct_kind = IterationKind.FLUID

    def _side_systems(self, coupling) -> List[PhysicsKind]:
        physics = []
        if coupling.turbulent:
            physics.append(PhysicsKind.ADJ_TURBULENCE)
        if coupling.heat:
            physics.append(PhysicsKind.ADJ_HEAT)
        if coupling.radiation:
            physics.append(PhysicsKind.ADJ_RADIATION)
        return physics

    def _adjoint_physics(self, coupling) -> List[PhysicsKind]:
        physics = [PhysicsKind.ADJ_FLUID] if coupling.fluid_problem else []
        return physics + self._side_systems(coupling)

    def _direct_physics(self, coupling) -> List[PhysicsKind]:
        physics = [PhysicsKind.FLUID]
        if coupling.rans:
            physics.append(PhysicsKind.TURBULENCE)
        if coupling.heat:
            physics.append(PhysicsKind.HEAT)
        return physics

    def preprocess(self, context, coupling, key):
        time_iter = context.counter(key.zone).time_iter

        if coupling.time_marching:
            load_unsteady_restart(context, key, coupling, self._direct_physics(coupling),
                                  self.config.time.unst_adjoint_iter, time_iter,
                                  self.config.time.time_step)

        # Direct solutions the recordings restart from
        if time_iter == 0 or coupling.dual_time:
            for level in context.levels(key):
                if context.has_solver(key.level(level), PhysicsKind.ADJ_FLUID):
                    _adjoint(context, key, PhysicsKind.ADJ_FLUID, level).set_solution_direct()
            for physics in self._side_systems(coupling):
                _adjoint(context, key, physics).set_solution_direct()

        _adjoint(context, key, PhysicsKind.ADJ_FLUID).preprocessing()
        for physics in self._side_systems(coupling):
            _adjoint(context, key, physics).preprocessing()

    def iterate(self, context, coupling, key):
        tape = self._tape(context)

        if coupling.fluid_problem:
            adjoint = _adjoint(context, key, PhysicsKind.ADJ_FLUID)
            adjoint.extract_adjoint_solution(tape)
            adjoint.extract_adjoint_variables(tape)

        if coupling.turbulent:
            _adjoint(context, key, PhysicsKind.ADJ_TURBULENCE).extract_adjoint_solution(tape)

        if coupling.heat:
            _adjoint(context, key, PhysicsKind.ADJ_HEAT).extract_adjoint_solution(tape)

        if coupling.radiation:
            adjoint = _adjoint(context, key, PhysicsKind.ADJ_RADIATION)
            adjoint.extract_adjoint_solution(tape)
            adjoint.extract_adjoint_variables(tape)

    def initialize_adjoint(self, context, coupling, key):
        tape = self._tape(context)
        for physics in self._adjoint_physics(coupling):
            _adjoint(context, key, physics).set_adjoint_output(tape)

        # Adjoint of the tractions handed to a coupled structure
        if coupling.interface_boundary:
            context.solver(key.level(0), PhysicsKind.FLUID).set_vertex_tractions_adjoint(tape)

    def register_input(self, context, coupling, key, kind_recording):
        tape = self._tape(context)

        if kind_recording in _SOLUTION_MODES:
            for physics in self._adjoint_physics(coupling):
                adjoint = _adjoint(context, key, physics)
                adjoint.register_solution(tape)
                if physics in (PhysicsKind.ADJ_FLUID, PhysicsKind.ADJ_RADIATION):
                    adjoint.register_variables(tape)

        elif kind_recording == RecordingMode.MESH_COORDINATES:
            context.geometry(key.level(0)).register_coordinates(tape)

        elif kind_recording == RecordingMode.MESH_DEFORM:
            adjoint = _adjoint(context, key, PhysicsKind.ADJ_MESH)
            adjoint.register_solution(tape)
            adjoint.register_variables(tape)

    def reset_recording(self, context, coupling, key):
        finest = key.level(0)
        if context.has_solver(finest, PhysicsKind.ADJ_STRUCTURAL):
            _adjoint(context, key, PhysicsKind.ADJ_STRUCTURAL).set_recording()

        for level in context.levels(key):
            if context.has_solver(key.level(level), PhysicsKind.ADJ_FLUID):
                _adjoint(context, key, PhysicsKind.ADJ_FLUID, level).set_recording()

        for physics in self._side_systems(coupling):
            _adjoint(context, key, physics).set_recording()

    def set_dependencies(self, context, coupling, key, kind_recording):
        finest = key.level(0)
        inner_iter = context.counter(key.zone).inner_iter

        if kind_recording in _MESH_MODES:
            geometry = context.geometry(finest)
            geometry.update_geometry()
            geometry.compute_wall_distance()

        flow = context.solver(finest, PhysicsKind.FLUID)
        flow.initiate_comms(CommKind.SOLUTION)
        flow.complete_comms(CommKind.SOLUTION)

        if coupling.turbulent:
            turbulence = context.solver(finest, PhysicsKind.TURBULENCE)
            turbulence.initiate_comms(CommKind.SOLUTION)
            turbulence.complete_comms(CommKind.SOLUTION)
            if coupling.sst:
                turbulence.set_primitive_variables()

        flow.preprocessing(inner_iter=inner_iter)

        if coupling.turbulent:
            context.solver(finest, PhysicsKind.TURBULENCE).postprocessing()

        if coupling.heat:
            heat = context.solver(finest, PhysicsKind.HEAT)
            heat.set_heatflux_areas()
            heat.preprocessing(inner_iter=inner_iter)
            heat.postprocessing()
            heat.initiate_comms(CommKind.SOLUTION)
            heat.complete_comms(CommKind.SOLUTION)

        if coupling.radiation:
            radiation = context.solver(finest, PhysicsKind.RADIATION)
            radiation.postprocessing()
            radiation.initiate_comms(CommKind.SOLUTION)
            radiation.complete_comms(CommKind.SOLUTION)

    def direct_iterate(self, context, coupling, key, kind_recording):
        if coupling.deform_mesh:
            self.grid_movement.set_mesh_deformation(context, key, kind_recording)
        self.direct_iteration.iterate(context, coupling, key)

    def register_output(self, context, coupling, key):
        tape = self._tape(context)
        for physics in self._adjoint_physics(coupling):
            _adjoint(context, key, physics).register_output(tape)

        if coupling.interface_boundary:
            context.solver(key.level(0), PhysicsKind.FLUID).register_vertex_tractions(tape)

    def direct_time_iter(self, coupling, time_iter):
        return unsteady_direct_iteration(self.config.time.unst_adjoint_iter, time_iter, coupling.dual_time)

    def update(self, context, coupling, key):
        if coupling.dual_time:
            context.integration(key, PhysicsKind.ADJ_FLUID).set_convergence(False)


@register_iteration(IterationKind.DISC_ADJ_HEAT)
class DiscAdjHeatIteration(DiscreteAdjointIteration):
    """Discrete adjoint of the heat iteration (finest level only)."""

    direct_kind = IterationKind.HEAT

    def preprocess(self, context, coupling, key):
        time_iter = context.counter(key.zone).time_iter

        if coupling.time_marching:
            # Heat zones carry no mesh history
            static = dataclasses.replace(coupling, grid_movement=False, deform_mesh=False)
            load_unsteady_restart(context, key, static, [PhysicsKind.HEAT],
                                  self.config.time.unst_adjoint_iter, time_iter,
                                  self.config.time.time_step)

        adjoint = _adjoint(context, key, PhysicsKind.ADJ_HEAT)
        if time_iter == 0 or coupling.dual_time:
            adjoint.set_solution_direct()
        adjoint.preprocessing()

    def iterate(self, context, coupling, key):
        _adjoint(context, key, PhysicsKind.ADJ_HEAT).extract_adjoint_solution(self._tape(context))

    def initialize_adjoint(self, context, coupling, key):
        _adjoint(context, key, PhysicsKind.ADJ_HEAT).set_adjoint_output(self._tape(context))

    def register_input(self, context, coupling, key, kind_recording):
        tape = self._tape(context)
        if kind_recording in _SOLUTION_MODES:
            _adjoint(context, key, PhysicsKind.ADJ_HEAT).register_solution(tape)
        elif kind_recording == RecordingMode.MESH_COORDINATES:
            context.geometry(key.level(0)).register_coordinates(tape)

    def reset_recording(self, context, coupling, key):
        _adjoint(context, key, PhysicsKind.ADJ_HEAT).set_recording()

    def set_dependencies(self, context, coupling, key, kind_recording):
        finest = key.level(0)

        if kind_recording in _MESH_MODES:
            geometry = context.geometry(finest)
            geometry.update_geometry()
            geometry.compute_wall_distance()

        heat = context.solver(finest, PhysicsKind.HEAT)
        heat.set_heatflux_areas()
        heat.preprocessing(inner_iter=context.counter(key.zone).inner_iter)
        heat.postprocessing()
        heat.initiate_comms(CommKind.SOLUTION)
        heat.complete_comms(CommKind.SOLUTION)

    def register_output(self, context, coupling, key):
        tape = self._tape(context)
        _adjoint(context, key, PhysicsKind.ADJ_HEAT).register_output(tape)
        context.geometry(key.level(0)).register_output_coordinates(tape)

    def direct_time_iter(self, coupling, time_iter):
        return unsteady_direct_iteration(self.config.time.unst_adjoint_iter, time_iter, coupling.dual_time)

    def update(self, context, coupling, key):
        if coupling.dual_time:
            context.integration(key, PhysicsKind.ADJ_HEAT).set_convergence(False)
