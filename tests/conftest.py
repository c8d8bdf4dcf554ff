"""In-memory collaborators for driving iteration state machines in tests."""

import numpy as np
import pytest

from openiter.ad import RecordingTape
from openiter.core import (
    AdjointSolver, Geometry, Integration, IterationConfig, Numerics, NumericsTerm,
    Output, PhysicsKind, RunContext, Solver, StructuralSolver, SurfaceMovement,
    VolumetricMovement,
)

ADJOINT_OF = {
    PhysicsKind.FLUID: PhysicsKind.ADJ_FLUID,
    PhysicsKind.TURBULENCE: PhysicsKind.ADJ_TURBULENCE,
    PhysicsKind.HEAT: PhysicsKind.ADJ_HEAT,
    PhysicsKind.STRUCTURAL: PhysicsKind.ADJ_STRUCTURAL,
    PhysicsKind.RADIATION: PhysicsKind.ADJ_RADIATION,
}


class FakeGeometry(Geometry):
    def __init__(self, coordinates):
        super().__init__(coordinates)
        self.calls = []

    def update_geometry(self):
        self.calls.append("update_geometry")

    def compute_wall_distance(self):
        self.calls.append("compute_wall_distance")


class FakeSolver(Solver):
    def __init__(self, solution, free_stream=0.0, u_inf=1.0):
        super().__init__(solution)
        self.free_stream = free_stream
        self.u_inf = u_inf
        self.calls = []
        self.gust = None
        self.aoa = None

    def preprocessing(self, inner_iter=0):
        self.calls.append(("preprocessing", inner_iter))

    def postprocessing(self):
        self.calls.append("postprocessing")

    def set_free_stream_solution(self):
        self.calls.append("set_free_stream_solution")
        self.nodes.fill(self.free_stream)

    def free_stream_velocity(self):
        return np.array([self.u_inf, 0.0])

    def set_initial_condition(self, time_iter):
        self.calls.append(("set_initial_condition", time_iter))

    def set_wind_gust(self, gust, derivatives):
        self.gust = gust.copy()

    def set_angle_of_attack(self, aoa):
        self.aoa = aoa

    def turbo_average_process(self, side):
        self.calls.append(("turbo_average_process", side))

    def gather_in_out_average_values(self):
        self.calls.append("gather_in_out_average_values")

    def compute_vertex_tractions(self):
        self.calls.append("compute_vertex_tractions")

    def set_force_projection_vector(self):
        self.calls.append("set_force_projection_vector")

    def set_internal_boundary_jump(self):
        self.calls.append("set_internal_boundary_jump")

    def set_mesh_stiffness(self):
        self.calls.append("set_mesh_stiffness")

    def deform_mesh(self):
        self.calls.append("deform_mesh")


class FakeStructuralSolver(StructuralSolver):
    def __init__(self, displacement):
        super().__init__(displacement)
        self.calls = []
        self.load_history = []

    def preprocessing(self, inner_iter=0):
        self.calls.append(("preprocessing", inner_iter))

    def postprocessing(self):
        self.calls.append("postprocessing")

    def set_free_stream_solution(self):
        self.state.zero()

    def set_load_increment(self, increment, coefficient):
        super().set_load_increment(increment, coefficient)
        self.load_history.append(coefficient)

    def objective_value(self, kind):
        return 0.125


class FakeAdjointSolver(AdjointSolver):
    """Adjoint of an objective J = w * sum(u) of the recorded output."""

    def __init__(self, direct, objective_weight=1.0, materials=None):
        super().__init__(direct)
        self.objective_weight = objective_weight
        self.materials = materials or {}
        self.calls = []

    def set_recording(self):
        self.calls.append("set_recording")
        super().set_recording()

    def preprocessing(self):
        self.calls.append("preprocessing")

    def set_adjoint_output(self, tape):
        if self.output_indices is not None:
            tape.set_adjoint(self.output_indices, (self.adjoint + self.objective_weight).ravel())

    def material_values(self, prop, index):
        values = self.materials.get(prop)
        return 0.0 if values is None else values[index]


class FakeIntegration(Integration):
    """Advances a physics by u <- factor * u and records the step on the tape."""

    def __init__(self, factor=0.5):
        super().__init__()
        self.factor = factor
        self.calls = []
        self.time_iters = []

    def _advance(self, context, key, physics, levels):
        self.time_iters.append(context.counter(key.zone).time_iter)
        for level in levels:
            solver = context.solver(key.level(level), physics)
            if isinstance(solver, AdjointSolver):
                solver.adjoint *= self.factor
                continue
            solver.nodes.current *= self.factor
            if context.tape is not None and solver.tape_indices is not None:
                n = solver.nodes.current.size
                solver.tape_indices = context.tape.record_operation(
                    solver.tape_indices, self.factor * np.eye(n))

    def multigrid_iteration(self, context, key, physics):
        self.calls.append("multigrid")
        self._advance(context, key, physics, context.levels(key))

    def single_grid_iteration(self, context, key, physics):
        self.calls.append("single_grid")
        self._advance(context, key, physics, [0])

    def structural_iteration(self, context, key, physics):
        self.calls.append("structural")
        self._advance(context, key, physics, [0])


class FakeOutput(Output):
    """Converges from inner iteration ``converge_at`` on (never when None)."""

    def __init__(self, converge_at=None):
        super().__init__()
        self.converge_at = converge_at
        self.history_calls = 0
        self.results = []
        self.summaries = 0

    def set_history_output(self, context, key):
        self.history_calls += 1
        if self.converge_at is not None:
            self.converged = context.counter(key.zone).inner_iter >= self.converge_at

    def set_result_files(self, context, key, iteration, force=False):
        self.results.append((iteration, force))
        return True

    def print_convergence_summary(self):
        self.summaries += 1


class FakeVolumetricMovement(VolumetricMovement):
    def __init__(self, n_iter_mesh=1):
        self.calls = []
        self._n_iter_mesh = n_iter_mesh

    def rigid_translation(self, geometry, time_iter):
        self.calls.append("rigid_translation")

    def rigid_plunging(self, geometry, time_iter):
        self.calls.append("rigid_plunging")

    def rigid_pitching(self, geometry, time_iter):
        self.calls.append("rigid_pitching")

    def rigid_rotation(self, geometry, time_iter):
        self.calls.append("rigid_rotation")

    def set_volume_deformation(self, geometry):
        self.calls.append("set_volume_deformation")

    def update_multigrid(self, geometries):
        self.calls.append("update_multigrid")

    def n_iter_mesh(self):
        return self._n_iter_mesh


class FakeSurfaceMovement(SurfaceMovement):
    def __init__(self):
        self.calls = []

    def set_external_deformation(self, geometry, time_iter):
        self.calls.append("set_external_deformation")


def build_case(config, physics=(PhysicsKind.FLUID,), adjoint=False, continuous_adjoint=False,
               coordinates=None, n_points=4, n_var=1, output=None, factor=0.5, with_tape=True):
    """Assemble a run context with one zone and fake collaborators.

    Returns:
        (context, key)
    """
    context = RunContext()
    key = context.add_zone(config)
    context.outputs[config.zone] = output if output is not None else FakeOutput()

    if coordinates is None:
        coordinates = np.column_stack([np.linspace(0.0, 1.0, n_points), np.zeros(n_points)])
    coordinates = np.asarray(coordinates, dtype=float)
    n_points = len(coordinates)

    for level in config.levels:
        context.geometries[key.level(level)] = FakeGeometry(coordinates)

    for kind in physics:
        for level in config.levels:
            level_key = key.level(level)
            if kind == PhysicsKind.STRUCTURAL:
                solver = FakeStructuralSolver(np.ones((n_points, n_var)))
            else:
                solver = FakeSolver(np.ones((n_points, n_var)))
            context.add_solver(level_key, kind, solver)

            adjoint_kind = ADJOINT_OF.get(kind)
            if adjoint and adjoint_kind is not None:
                context.add_solver(level_key, adjoint_kind, FakeAdjointSolver(solver))
            elif continuous_adjoint and adjoint_kind is not None:
                context.add_solver(level_key, adjoint_kind, FakeSolver(np.zeros((n_points, n_var))))

        context.integrations[(key, kind)] = FakeIntegration(factor)
        if (adjoint or continuous_adjoint) and kind in ADJOINT_OF:
            context.integrations[(key, ADJOINT_OF[kind])] = FakeIntegration(factor)

        if kind == PhysicsKind.STRUCTURAL:
            for term in NumericsTerm:
                context.numerics[(key, kind, term)] = Numerics()

    context.volume_movements[key] = FakeVolumetricMovement()
    context.surface_movements[config.zone] = FakeSurfaceMovement()

    if with_tape:
        context.tape = RecordingTape()
    return context, key


@pytest.fixture
def fluid_config():
    return IterationConfig.from_dict({'kind': 'fluid', 'n_inner_iter': 10})


@pytest.fixture
def tape():
    return RecordingTape()
