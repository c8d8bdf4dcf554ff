"""Tests for configuration loading, coupling flags and the iteration registry."""

import pytest

from openiter.core import (
    ConfigurationError, IterationConfig, IterationKind, IterationRegistry, MotionKind,
    PhysicsCouplingConfig, TimeMarching, create_default_fluid_config,
    create_default_structural_config, create_iteration,
)
from openiter.iteration import (
    DiscAdjFEAIteration, DiscAdjFluidIteration, FEAIteration, FluidIteration, HeatIteration,
)


class TestIterationConfig:

    def test_defaults(self):
        config = IterationConfig()
        assert config.kind == IterationKind.FLUID
        assert list(config.levels) == [0]
        assert config.time.marching == TimeMarching.STEADY

    def test_nested_sections_from_dict(self):
        config = IterationConfig.from_dict({
            'kind': 'disc_adj_fluid',
            'n_mg_levels': 2,
            'time': {'marching': 'dual_time_2nd', 'time_step': 0.01},
            'grid_movement': {'surface_movement': ['aeroelastic']},
        })

        assert config.kind == IterationKind.DISC_ADJ_FLUID
        assert list(config.levels) == [0, 1, 2]
        assert config.time.dual_time
        assert config.grid_movement.surface_movement == [MotionKind.AEROELASTIC]
        assert config.grid_movement.aeroelastic

    @pytest.mark.parametrize("suffix", [".yaml", ".json"])
    def test_file_round_trip(self, tmp_path, suffix):
        config = IterationConfig.from_dict({
            'kind': 'fea',
            'fluid_problem': False,
            'structural': {'analysis': 'large_deformations', 'young_modulus': [2.0e9, 3.0e9]},
            'gust': {'enabled': True, 'gust_type': 'sine', 'direction': 0},
        })
        path = tmp_path / f"zone{suffix}"

        config.save(path)
        loaded = IterationConfig.from_file(path)

        assert loaded == config
        assert loaded.to_dict()['structural']['analysis'] == 'large_deformations'

    def test_unknown_key_is_rejected(self):
        with pytest.raises(ConfigurationError, match="n_inner_iters"):
            IterationConfig.from_dict({'n_inner_iters': 3})

    def test_unknown_section_key_is_rejected(self):
        with pytest.raises(ConfigurationError, match="time"):
            IterationConfig.from_dict({'time': {'step': 0.1}})

    def test_invalid_enum_value_lists_allowed_values(self):
        with pytest.raises(ConfigurationError, match="dual_time_1st"):
            IterationConfig.from_dict({'time': {'marching': 'implicit'}})

    @pytest.mark.parametrize("data", [
        {'n_inner_iter': 0},
        {'n_mg_levels': -1},
        {'structural': {'inc_load_criteria': [1.0, 2.0]}},
        {'grid_movement': {'aeroelastic_iter': 0}},
    ])
    def test_invalid_values_are_rejected(self, data):
        with pytest.raises(ConfigurationError):
            IterationConfig.from_dict(data)

    def test_unsupported_file_format(self, tmp_path):
        path = tmp_path / "zone.toml"
        path.write_text("kind = 'fluid'\n")
        with pytest.raises(ConfigurationError):
            IterationConfig.from_file(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            IterationConfig.from_file(tmp_path / "absent.yaml")

    def test_default_factories(self):
        assert create_default_fluid_config(n_inner_iter=4).n_inner_iter == 4
        structural = create_default_structural_config()
        assert structural.kind == IterationKind.FEA
        assert not structural.fluid_problem


class TestCouplingFlags:

    def test_rans_with_frozen_viscosity_is_not_turbulent(self):
        config = IterationConfig.from_dict({
            'flow_model': 'rans',
            'turbulence_model': 'sst',
            'adjoint': {'discrete': True, 'frozen_visc': True},
        })
        coupling = PhysicsCouplingConfig.from_config(config)

        assert coupling.rans
        assert coupling.frozen_visc
        assert not coupling.turbulent
        assert coupling.sst

    def test_time_flags(self):
        coupling = PhysicsCouplingConfig.from_config(IterationConfig.from_dict({
            'time': {'marching': 'dual_time_1st'},
        }))

        assert coupling.time_domain and coupling.dual_time and coupling.dual_time_1st
        assert not coupling.dual_time_2nd
        assert not coupling.steady

    def test_discrete_adjoint_disables_incremental_load(self):
        coupling = PhysicsCouplingConfig.from_config(IterationConfig.from_dict({
            'adjoint': {'discrete': True},
            'structural': {'incremental_load': True},
        }))
        assert not coupling.incremental_load

    def test_material_flags_require_nonlinear_analysis(self):
        linear = PhysicsCouplingConfig.from_config(IterationConfig.from_dict({
            'structural': {'de_effects': True, 'element_based': True},
        }))
        nonlinear = PhysicsCouplingConfig.from_config(IterationConfig.from_dict({
            'structural': {'de_effects': True, 'element_based': True,
                           'analysis': 'large_deformations'},
        }))

        assert not (linear.de_effects or linear.element_based)
        assert nonlinear.de_effects and nonlinear.element_based and nonlinear.nonlinear

    def test_flags_are_frozen_for_the_step(self):
        config = IterationConfig()
        coupling = PhysicsCouplingConfig.from_config(config)
        config.fsi = True

        assert not coupling.fsi
        with pytest.raises(AttributeError):
            coupling.fsi = True


class TestRegistry:

    def test_every_kind_is_registered(self):
        assert set(IterationRegistry.list_available_kinds()) == set(IterationKind)

    @pytest.mark.parametrize("kind, expected", [
        ('fluid', FluidIteration),
        (IterationKind.HEAT, HeatIteration),
        ('fea', FEAIteration),
        ('disc_adj_fluid', DiscAdjFluidIteration),
        (IterationKind.DISC_ADJ_FEA, DiscAdjFEAIteration),
    ])
    def test_lookup_by_kind_or_name(self, kind, expected):
        assert IterationRegistry.get_iteration(kind) is expected

    def test_create_iteration(self):
        config = IterationConfig.from_dict({'kind': 'heat'})
        iteration = create_iteration(config.kind, config)

        assert isinstance(iteration, HeatIteration)
        assert iteration.config is config

    def test_unknown_kind_is_rejected(self):
        with pytest.raises(ConfigurationError, match="Available kinds"):
            IterationRegistry.get_iteration('lattice_boltzmann')
