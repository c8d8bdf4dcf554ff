"""Tests for the direct and continuous-adjoint iteration variants."""

import numpy as np
import pytest
from numpy.testing import assert_allclose, assert_array_equal

from conftest import FakeOutput, build_case
from openiter.core import IterationConfig, PhysicsKind, TimeMarching, TurboFlowSide
from openiter.iteration import (
    AdjFluidIteration, FEAIteration, FEMFluidIteration, FluidIteration,
    HeatIteration, TurboIteration,
)


def fea_config(**structural):
    structural.setdefault('analysis', 'large_deformations')
    return IterationConfig.from_dict({
        'kind': 'fea',
        'fluid_problem': False,
        'n_inner_iter': 5,
        'structural': structural,
    })


class TestSolveStopsAtConvergence:
    """Monitor runs once per iterate; the first converged monitor ends the step."""

    def test_fluid_stops_at_first_convergence(self, fluid_config):
        output = FakeOutput(converge_at=3)
        context, key = build_case(fluid_config, output=output)
        iteration = FluidIteration(fluid_config)

        iteration.solve(context, iteration.coupling(), key)

        integration = context.integration(key, PhysicsKind.FLUID)
        assert integration.calls == ["multigrid"] * 4
        assert output.history_calls == 4
        assert [it for it, _ in output.results] == [0, 1, 2, 3]

    def test_fluid_exhausts_budget_without_convergence(self, fluid_config):
        output = FakeOutput()
        context, key = build_case(fluid_config, output=output)
        iteration = FluidIteration(fluid_config)

        iteration.solve(context, iteration.coupling(), key)

        assert len(context.integration(key, PhysicsKind.FLUID).calls) == 10
        assert output.history_calls == 10

    def test_heat_stops_at_first_convergence(self):
        config = IterationConfig.from_dict({'kind': 'heat', 'n_inner_iter': 10})
        output = FakeOutput(converge_at=2)
        context, key = build_case(config, physics=(PhysicsKind.HEAT,), output=output)
        iteration = HeatIteration(config)

        iteration.solve(context, iteration.coupling(), key)

        assert context.integration(key, PhysicsKind.HEAT).calls == ["single_grid"] * 3
        assert output.history_calls == 3

    def test_nonlinear_fea_ignores_convergence_at_first_iteration(self):
        config = fea_config()
        output = FakeOutput(converge_at=0)
        context, key = build_case(config, physics=(PhysicsKind.STRUCTURAL,), n_var=3, output=output)
        iteration = FEAIteration(config)

        iteration.solve(context, iteration.coupling(), key)

        assert context.integration(key, PhysicsKind.STRUCTURAL).calls == ["structural"] * 2
        assert output.history_calls == 2

    def test_linear_fea_runs_single_iteration(self):
        config = fea_config(analysis='small_deformations')
        output = FakeOutput()
        context, key = build_case(config, physics=(PhysicsKind.STRUCTURAL,), n_var=3, output=output)
        iteration = FEAIteration(config)

        iteration.solve(context, iteration.coupling(), key)

        assert context.integration(key, PhysicsKind.STRUCTURAL).calls == ["structural"]
        assert output.get_convergence()
        assert not context.integration(key, PhysicsKind.STRUCTURAL).get_convergence()


class TestIncrementalLoad:

    def _run(self, criteria, converge_at=None):
        config = fea_config(incremental_load=True, n_increments=4, inc_load_criteria=criteria)
        config.n_inner_iter = 3
        output = FakeOutput(converge_at=converge_at)
        context, key = build_case(config, physics=(PhysicsKind.STRUCTURAL,), n_var=3, output=output)
        solver = context.solver(key.level(0), PhysicsKind.STRUCTURAL)
        solver.residual_rms = np.ones(3)
        iteration = FEAIteration(config)
        iteration.solve(context, iteration.coupling(), key)
        return iteration, solver, context.integration(key, PhysicsKind.STRUCTURAL)

    def test_load_fractions_ramp_and_reset(self):
        iteration, solver, integration = self._run([-10.0, -10.0, -10.0])

        assert_allclose(iteration.load_state.history, [1.0, 0.25, 0.5, 0.75, 1.0, 1.0])
        assert solver.load_history == iteration.load_state.history
        assert solver.force_coefficient == 1.0
        assert len(integration.calls) == 2 + 4 * 3

    def test_full_load_when_criteria_met(self):
        iteration, solver, integration = self._run([10.0, 10.0, 10.0])

        assert iteration.load_state.history == [1.0, 1.0]
        assert len(integration.calls) == 3

    def test_converged_trial_skips_ramp(self):
        iteration, solver, integration = self._run([-10.0, -10.0, -10.0], converge_at=1)

        assert iteration.load_state.history == [1.0, 1.0]
        assert len(integration.calls) == 2


class TestDualTimeUpdate:

    def test_second_order_shift_copies_values(self):
        config = IterationConfig.from_dict({
            'kind': 'fluid',
            'n_mg_levels': 1,
            'time': {'marching': 'dual_time_2nd', 'time_step': 0.1, 'total_time': 1.0},
        })
        context, key = build_case(config)
        for level in context.levels(key):
            nodes = context.solver(key.level(level), PhysicsKind.FLUID).nodes
            nodes.current[...] = 3.0
            nodes.time_n[...] = 2.0
            nodes.time_n1[...] = 1.0

        iteration = FluidIteration(config)
        iteration.update(context, iteration.coupling(), key)

        for level in context.levels(key):
            nodes = context.solver(key.level(level), PhysicsKind.FLUID).nodes
            assert_array_equal(nodes.time_n1, 2.0)
            assert_array_equal(nodes.time_n, 3.0)
            nodes.current[...] = 7.0
            assert_array_equal(nodes.time_n, 3.0)

        assert not context.integration(key, PhysicsKind.FLUID).get_convergence()

    def test_steady_update_leaves_history(self, fluid_config):
        context, key = build_case(fluid_config)
        nodes = context.solver(key.level(0), PhysicsKind.FLUID).nodes
        nodes.time_n[...] = 5.0

        iteration = FluidIteration(fluid_config)
        iteration.update(context, iteration.coupling(), key)

        assert_array_equal(nodes.time_n, 5.0)


class TestFluidVariants:

    def test_fsi_first_outer_iteration_sets_initial_condition(self):
        config = IterationConfig.from_dict({'kind': 'fluid', 'fsi': True})
        context, key = build_case(config)
        iteration = FluidIteration(config)

        iteration.preprocess(context, iteration.coupling(), key)

        assert ("set_initial_condition", 0) in context.solver(key.level(0), PhysicsKind.FLUID).calls

    def test_multizone_steady_writes_once_and_resets_convergence(self):
        config = IterationConfig.from_dict({
            'kind': 'fluid', 'n_inner_iter': 3, 'multizone': True, 'singlezone_driver': False,
        })
        output = FakeOutput()
        context, key = build_case(config, output=output)
        context.integration(key, PhysicsKind.FLUID).set_convergence(True)
        iteration = FluidIteration(config)

        iteration.solve(context, iteration.coupling(), key)

        assert output.results == [(0, False)]
        assert output.history_calls == 3
        assert not context.integration(key, PhysicsKind.FLUID).get_convergence()

    def test_run_computes_tractions_for_single_zone(self, fluid_config):
        context, key = build_case(fluid_config)
        FluidIteration(fluid_config).run(context, key)

        assert "compute_vertex_tractions" in context.solver(key.level(0), PhysicsKind.FLUID).calls

    def test_turbo_averages_inflow_and_outflow(self):
        config = IterationConfig.from_dict({'kind': 'turbo'})
        context, key = build_case(config)
        iteration = TurboIteration(config)
        coupling = iteration.coupling()

        iteration.preprocess(context, coupling, key)
        iteration.postprocess(context, coupling, key)

        calls = context.solver(key.level(0), PhysicsKind.FLUID).calls
        assert calls == [
            ("turbo_average_process", TurboFlowSide.INFLOW),
            ("turbo_average_process", TurboFlowSide.OUTFLOW),
            ("turbo_average_process", TurboFlowSide.INFLOW),
            ("turbo_average_process", TurboFlowSide.OUTFLOW),
            "gather_in_out_average_values",
        ]

    def test_fem_fluid_initial_condition_and_single_grid(self):
        config = IterationConfig.from_dict({'kind': 'fem_fluid', 'n_inner_iter': 2})
        context, key = build_case(config)
        iteration = FEMFluidIteration(config)

        iteration.solve(context, iteration.coupling(), key)

        assert ("set_initial_condition", 0) in context.solver(key.level(0), PhysicsKind.FLUID).calls
        assert context.integration(key, PhysicsKind.FLUID).calls == ["single_grid"] * 2

    def test_fem_fluid_restart_keeps_solution(self):
        config = IterationConfig.from_dict({'kind': 'fem_fluid', 'restart': True})
        context, key = build_case(config)
        iteration = FEMFluidIteration(config)

        iteration.preprocess(context, iteration.coupling(), key)

        assert context.solver(key.level(0), PhysicsKind.FLUID).calls == []


class TestStructuralHooks:

    def test_predictor_extrapolates_linearly(self):
        config = fea_config(predictor_order=1)
        config.time.time_step = 0.1
        context, key = build_case(config, physics=(PhysicsKind.STRUCTURAL,), n_var=3)
        state = context.solver(key.level(0), PhysicsKind.STRUCTURAL).state
        state.velocity.current[...] = 2.0

        iteration = FEAIteration(config)
        iteration.predictor(context, iteration.coupling(), key)

        assert_allclose(state.predicted, 1.2)

    def test_dynamic_update_commits_time_level(self):
        config = fea_config()
        config.time.marching = TimeMarching.DUAL_TIME_1ST
        config.time.time_step = 0.5
        config.time.total_time = 1.0
        context, key = build_case(config, physics=(PhysicsKind.STRUCTURAL,), n_var=3)
        state = context.solver(key.level(0), PhysicsKind.STRUCTURAL).state
        state.displacement.current[...] = 4.0
        context.counter(key.zone).time_iter = 1

        iteration = FEAIteration(config)
        iteration.update(context, iteration.coupling(), key)

        assert_array_equal(state.displacement.time_n, 4.0)
        assert context.integration(key, PhysicsKind.STRUCTURAL).get_convergence()


class TestContinuousAdjoint:

    @pytest.fixture
    def case(self):
        config = IterationConfig.from_dict({
            'kind': 'adj_fluid',
            'adjoint': {'continuous': True, 'objective': 'equivalent_area'},
        })
        context, key = build_case(config, continuous_adjoint=True)
        return config, context, key

    def test_preprocess_refreshes_direct_flow(self, case):
        config, context, key = case
        iteration = AdjFluidIteration(config)
        flow = context.solver(key.level(0), PhysicsKind.FLUID)
        flow.set_total_coefficient("CL", 0.7)

        iteration.preprocess(context, iteration.coupling(), key)

        assert context.integration(key, PhysicsKind.FLUID).calls == ["multigrid"]
        adjoint_calls = context.solver(key.level(0), PhysicsKind.ADJ_FLUID).calls
        assert adjoint_calls == ["set_force_projection_vector", "set_internal_boundary_jump"]
        assert flow.total_coefficient("CL") == 0.7

    def test_iterate_advances_adjoint_only(self, case):
        config, context, key = case
        iteration = AdjFluidIteration(config)

        iteration.iterate(context, iteration.coupling(), key)

        assert context.integration(key, PhysicsKind.ADJ_FLUID).calls == ["multigrid"]
        assert context.integration(key, PhysicsKind.FLUID).calls == []
