"""Tests for the discrete-adjoint recording controllers."""

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from conftest import FakeIntegration, FakeSolver, build_case
from openiter.core import (
    IterationConfig, LevelKey, NumericsTerm, PhysicsKind, RecordingMode, TapeError,
)
from openiter.iteration import (
    DiscAdjFEAIteration, DiscAdjFluidIteration, DiscAdjHeatIteration, FluidIteration,
)
from openiter.motion import GridMovementCoordinator


def disc_adj_fluid_config(**overrides):
    data = {'kind': 'disc_adj_fluid', 'n_inner_iter': 30, 'adjoint': {'discrete': True}}
    data.update(overrides)
    return IterationConfig.from_dict(data)


@pytest.fixture
def fluid_case():
    config = disc_adj_fluid_config()
    context, key = build_case(config, adjoint=True)
    return config, context, key


class TestDiscAdjFluid:

    def test_wraps_direct_fluid_iteration(self, fluid_case):
        config, context, key = fluid_case
        iteration = DiscAdjFluidIteration(config)

        assert isinstance(iteration.direct_iteration, FluidIteration)
        assert iteration.current_recording == RecordingMode.NONE

    def test_solve_converges_to_adjoint_fixed_point(self, fluid_case):
        config, context, key = fluid_case
        iteration = DiscAdjFluidIteration(config)

        iteration.solve(context, iteration.coupling(), key)

        adjoint = context.solver(key.level(0), PhysicsKind.ADJ_FLUID)
        # lambda = 0.5 * (lambda + 1) for u <- 0.5 u and J = sum(u)
        assert_allclose(adjoint.adjoint, 1.0, rtol=1e-6)
        assert context.output(key.zone).history_calls == 30
        assert iteration.current_recording == RecordingMode.SOLUTION_VARIABLES

    def test_recording_registers_solution_once(self, fluid_case):
        config, context, key = fluid_case
        iteration = DiscAdjFluidIteration(config)
        coupling = iteration.coupling()

        iteration.set_recording(context, coupling, key, RecordingMode.SOLUTION_VARIABLES)

        tape = context.tape
        assert tape.n_inputs == 4
        assert tape.n_outputs == 4
        assert not tape.is_recording
        flow = context.solver(key.level(0), PhysicsKind.FLUID)
        assert ("preprocessing", 0) in flow.calls

    def test_repeated_recording_with_same_mode_is_idempotent(self):
        results = []
        for n_recordings in (1, 2):
            config = disc_adj_fluid_config()
            context, key = build_case(config, adjoint=True)
            iteration = DiscAdjFluidIteration(config)
            coupling = iteration.coupling()
            iteration.preprocess(context, coupling, key)

            for _ in range(n_recordings):
                iteration.set_recording(context, coupling, key, RecordingMode.SOLUTION_VARIABLES)
            for inner_iter in range(3):
                context.counter(key.zone).inner_iter = inner_iter
                iteration.adjoint_step(context, coupling, key)

            adjoint = context.solver(key.level(0), PhysicsKind.ADJ_FLUID)
            results.append((adjoint.adjoint.copy(), context.tape.n_inputs, context.tape.n_outputs))

        once, twice = results
        assert_array_equal(once[0], twice[0])
        assert once[1:] == twice[1:]

    def test_mode_change_flushes_with_passive_replay(self, fluid_case):
        config, context, key = fluid_case
        iteration = DiscAdjFluidIteration(config)
        coupling = iteration.coupling()
        iteration.preprocess(context, coupling, key)

        iteration.set_recording(context, coupling, key, RecordingMode.SOLUTION_VARIABLES)
        iteration.set_recording(context, coupling, key, RecordingMode.MESH_COORDINATES)

        # One recorded replay each, plus the passive flush
        assert context.integration(key, PhysicsKind.FLUID).calls == ["multigrid"] * 3
        adjoint = context.solver(key.level(0), PhysicsKind.ADJ_FLUID)
        assert adjoint.calls.count("set_recording") == 3

        geometry = context.geometry(key.level(0))
        assert geometry.calls == ["update_geometry", "compute_wall_distance"] * 2
        assert context.tape.n_inputs == geometry.coordinates.current.size
        assert iteration.current_recording == RecordingMode.MESH_COORDINATES

    def test_unsteady_recording_replays_direct_time_level(self):
        config = disc_adj_fluid_config(time={
            'marching': 'dual_time_1st', 'time_step': 0.1, 'total_time': 1.0, 'unst_adjoint_iter': 10,
        })
        context, key = build_case(config, adjoint=True)
        context.counter(key.zone).time_iter = 2
        iteration = DiscAdjFluidIteration(config)

        iteration.set_recording(context, iteration.coupling(), key, RecordingMode.SOLUTION_VARIABLES)

        assert context.integration(key, PhysicsKind.FLUID).time_iters == [7]
        assert context.counter(key.zone).time_iter == 2

    def test_failed_replay_restores_counters_and_stops_tape(self):
        class FailingIntegration(FakeIntegration):
            def multigrid_iteration(self, context, key, physics):
                raise RuntimeError("diverged")

        config = disc_adj_fluid_config(time={
            'marching': 'dual_time_2nd', 'time_step': 0.1, 'total_time': 1.0, 'unst_adjoint_iter': 10,
        })
        context, key = build_case(config, adjoint=True)
        context.integrations[(key, PhysicsKind.FLUID)] = FailingIntegration()
        context.counter(key.zone).time_iter = 3
        iteration = DiscAdjFluidIteration(config)

        with pytest.raises(RuntimeError, match="diverged"):
            iteration.set_recording(context, iteration.coupling(), key,
                                    RecordingMode.SOLUTION_VARIABLES)

        assert context.counter(key.zone).time_iter == 3
        assert not context.tape.is_recording

    def test_missing_tape_is_rejected(self):
        config = disc_adj_fluid_config()
        context, key = build_case(config, adjoint=True, with_tape=False)
        iteration = DiscAdjFluidIteration(config)

        with pytest.raises(TapeError):
            iteration.set_recording(context, iteration.coupling(), key,
                                    RecordingMode.SOLUTION_VARIABLES)

    def test_dual_time_update_resets_adjoint_convergence(self):
        config = disc_adj_fluid_config(time={'marching': 'dual_time_2nd', 'time_step': 0.1})
        context, key = build_case(config, adjoint=True)
        integration = context.integration(key, PhysicsKind.ADJ_FLUID)
        integration.set_convergence(True)
        iteration = DiscAdjFluidIteration(config)

        iteration.update(context, iteration.coupling(), key)

        assert not integration.get_convergence()


class TestMeshDeformationRecording:

    class MeshSolver(FakeSolver):
        def __init__(self, solution, tape):
            super().__init__(solution)
            self.tape = tape
            self.active = []

        def deform_mesh(self):
            self.active.append(self.tape.is_active)

    def _case(self, multizone=False):
        config = IterationConfig.from_dict({
            'kind': 'fluid', 'multizone': multizone,
            'grid_movement': {'deform_mesh': True},
        })
        context, key = build_case(config)
        mesh = self.MeshSolver(np.zeros((4, 2)), context.tape)
        context.add_solver(LevelKey(key.zone, key.instance, 0), PhysicsKind.MESH_DEFORMATION, mesh)
        return GridMovementCoordinator(config), context, key, mesh

    @pytest.mark.parametrize("mode, multizone, expected", [
        (RecordingMode.SOLUTION_VARIABLES, False, False),
        (RecordingMode.MESH_COORDINATES, False, False),
        (RecordingMode.MESH_DEFORM, False, True),
        (RecordingMode.SOLUTION_VARIABLES, True, True),
    ])
    def test_deformation_is_passive_unless_recorded(self, mode, multizone, expected):
        coordinator, context, key, mesh = self._case(multizone)

        with context.tape.recording(mode):
            coordinator.set_mesh_deformation(context, key, mode)

        assert mesh.active == [expected]
        assert context.tape.is_recording is False


class TestDiscAdjHeat:

    def test_solve_converges_to_adjoint_fixed_point(self):
        config = IterationConfig.from_dict({
            'kind': 'disc_adj_heat', 'n_inner_iter': 30, 'adjoint': {'discrete': True},
        })
        context, key = build_case(config, physics=(PhysicsKind.HEAT,), adjoint=True)
        iteration = DiscAdjHeatIteration(config)

        iteration.solve(context, iteration.coupling(), key)

        assert_allclose(context.solver(key.level(0), PhysicsKind.ADJ_HEAT).adjoint, 1.0, rtol=1e-6)
        heat = context.solver(key.level(0), PhysicsKind.HEAT)
        assert "postprocessing" in heat.calls


class TestDiscAdjFEA:

    @pytest.fixture
    def case(self, tmp_path):
        config = IterationConfig.from_dict({
            'kind': 'disc_adj_fea',
            'fluid_problem': False,
            'n_inner_iter': 30,
            'adjoint': {'discrete': True, 'objective': 'reference_node', 'results_dir': str(tmp_path)},
            'structural': {
                'young_modulus': [2.0e9, 3.0e9],
                'poisson_ratio': [0.3, 0.3],
                'density': [1.0e3, 1.0e3],
                'dead_load_density': [0.0, 0.0],
                'design_variable': 'young_modulus',
                'topology_optimization': True,
            },
        })
        context, key = build_case(config, physics=(PhysicsKind.STRUCTURAL,), adjoint=True, n_var=2)
        adjoint = context.solver(key.level(0), PhysicsKind.ADJ_STRUCTURAL)
        adjoint.materials = {
            'young': [5.0, 6.0],
            'poisson': [0.2, 0.25],
            'density': [1.0, 2.0],
            'dead_load': [0.0, 0.0],
        }
        adjoint.n_design_values = 2
        adjoint.sensitivity = {
            'young': np.array([1.0, 2.0]),
            'poisson': np.array([3.0, 4.0]),
            'dv': np.array([0.5, -0.5]),
        }
        return config, context, key, tmp_path

    def test_dependencies_push_material_parameters(self, case):
        config, context, key, _ = case
        iteration = DiscAdjFEAIteration(config)

        iteration.set_recording(context, iteration.coupling(), key, RecordingMode.SOLUTION_VARIABLES)

        fea_term = context.numerics_term(key, PhysicsKind.STRUCTURAL, NumericsTerm.FEA_TERM)
        assert fea_term.material_properties == {0: (5.0, 0.2), 1: (6.0, 0.25)}
        assert fea_term.material_density == {0: (1.0, 0.0), 1: (2.0, 0.0)}
        assert fea_term.design_values == {0: 0.0, 1: 0.0}
        # Material-law terms only exist for element-based nonlinear problems
        neo_hookean = context.numerics_term(key, PhysicsKind.STRUCTURAL, NumericsTerm.MAT_NHCOMP)
        assert neo_hookean.material_properties == {}

    def test_solve_converges_to_adjoint_fixed_point(self, case):
        config, context, key, _ = case
        iteration = DiscAdjFEAIteration(config)

        iteration.solve(context, iteration.coupling(), key)

        adjoint = context.solver(key.level(0), PhysicsKind.ADJ_STRUCTURAL)
        assert_allclose(adjoint.adjoint, 1.0, rtol=1e-6)
        # One structural replay per recording
        assert context.integration(key, PhysicsKind.STRUCTURAL).calls == ["structural"]

    def test_mesh_recording_registers_coordinates(self, case):
        config, context, key, _ = case
        iteration = DiscAdjFEAIteration(config)
        coupling = iteration.coupling()

        iteration.set_recording(context, coupling, key, RecordingMode.SOLUTION_VARIABLES)
        iteration.set_recording(context, coupling, key, RecordingMode.MESH_COORDINATES)

        assert context.integration(key, PhysicsKind.STRUCTURAL).calls == ["structural"] * 3
        assert context.tape.n_inputs == context.geometry(key.level(0)).coordinates.current.size

    def test_postprocess_writes_results_and_gradient(self, case):
        config, context, key, tmp_path = case
        iteration = DiscAdjFEAIteration(config)

        iteration.postprocess(context, iteration.coupling(), key)

        results = (tmp_path / "Results_Reverse_Adjoint.txt").read_text().splitlines()
        assert results[0].startswith("Obj_Func Sens_E_0\tSens_E_1\tSens_Nu_0\tSens_Nu_1\t")
        row = results[1].split("\t")
        assert row[0] == "0"
        assert float(row[1]) == 0.125
        assert [float(v) for v in row[2:6]] == [1.0, 2.0, 3.0, 4.0]

        gradient = (tmp_path / "grad_young.opt").read_text().splitlines()
        assert gradient[0] == "INDEX\tGRAD"
        assert [float(line.split("\t")[1]) for line in gradient[1:]] == [0.5, -0.5]

    def test_fsi_run_writes_no_files(self, tmp_path):
        config = IterationConfig.from_dict({
            'kind': 'disc_adj_fea', 'fluid_problem': False, 'fsi': True,
            'adjoint': {'discrete': True, 'results_dir': str(tmp_path)},
        })
        iteration = DiscAdjFEAIteration(config)

        assert iteration.sensitivity_writer is None
        assert list(tmp_path.iterdir()) == []
