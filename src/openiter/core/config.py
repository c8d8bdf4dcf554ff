"""Configuration management for the iteration driver."""

import json
from dataclasses import dataclass, field, fields, asdict
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from .exceptions import ConfigurationError
from .types import (
    DesignVariableKind, FlowModel, GradientMethod, GustDirection, GustType,
    IterationKind, MotionKind, ObjectiveKind, RelaxationMethod,
    StructuralAnalysis, TimeIntegrationFEA, TimeMarching, TransitionModel,
    TurbulenceModel,
)


def _coerce_enum(enum_cls, value, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = [member.value for member in enum_cls]
        raise ConfigurationError(
            f"Invalid value for {field_name}: {value!r}. Allowed values: {allowed}"
        ) from None


class _EnumFieldsMixin:
    """Converts plain values of enum-typed fields (as read from YAML) into members."""

    def __post_init__(self):
        for f in fields(self):
            if isinstance(f.default, Enum):
                setattr(self, f.name, _coerce_enum(type(f.default), getattr(self, f.name), f.name))


def _to_plain(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    return value


@dataclass
class TimeConfig(_EnumFieldsMixin):
    """Time marching settings."""
    marching: TimeMarching = TimeMarching.STEADY
    time_step: float = 0.0
    total_time: float = 0.0
    n_time_iter: int = 1
    unst_adjoint_iter: int = 0  # direct iteration the unsteady adjoint starts from

    @property
    def time_domain(self) -> bool:
        return self.marching in (TimeMarching.TIME_STEPPING,
                                 TimeMarching.DUAL_TIME_1ST,
                                 TimeMarching.DUAL_TIME_2ND)

    @property
    def dual_time(self) -> bool:
        return self.marching in (TimeMarching.DUAL_TIME_1ST, TimeMarching.DUAL_TIME_2ND)


@dataclass
class GustConfig(_EnumFieldsMixin):
    """Prescribed wind gust."""
    enabled: bool = False
    gust_type: GustType = GustType.NONE
    direction: GustDirection = GustDirection.Y_DIR
    wavelength: float = 1.0
    n_periods: float = 1.0
    amplitude: float = 0.0
    begin_time: float = 0.0
    begin_location: float = 0.0
    vortex_file: str = "vortex_distribution.txt"


@dataclass
class GridMovementConfig(_EnumFieldsMixin):
    """Grid and surface movement."""
    kind: MotionKind = MotionKind.NONE
    surface_movement: List[MotionKind] = field(default_factory=list)
    deform_mesh: bool = False
    aeroelastic_iter: int = 1
    screen_output: bool = False

    def __post_init__(self):
        super().__post_init__()
        self.surface_movement = [
            _coerce_enum(MotionKind, item, "surface_movement") for item in self.surface_movement
        ]
        if self.aeroelastic_iter < 1:
            raise ConfigurationError("aeroelastic_iter must be at least 1")

    def has_surface_movement(self, kind: MotionKind) -> bool:
        return kind in self.surface_movement

    @property
    def moving(self) -> bool:
        return self.kind != MotionKind.NONE or bool(self.surface_movement)

    @property
    def aeroelastic(self) -> bool:
        return (self.has_surface_movement(MotionKind.AEROELASTIC) or
                self.has_surface_movement(MotionKind.AEROELASTIC_RIGID_MOTION))


@dataclass
class StructuralConfig(_EnumFieldsMixin):
    """Structural analysis, load ramping and coupling relaxation."""
    analysis: StructuralAnalysis = StructuralAnalysis.SMALL_DEFORMATIONS
    incremental_load: bool = False
    n_increments: int = 10
    inc_load_criteria: List[float] = field(default_factory=lambda: [0.0, 0.0, 0.0])
    time_integration: TimeIntegrationFEA = TimeIntegrationFEA.NEWMARK_IMPLICIT
    newmark_beta: float = 0.25
    newmark_gamma: float = 0.5
    predictor_order: int = 0

    # Coupling relaxation
    relaxation: RelaxationMethod = RelaxationMethod.AITKEN
    static_relaxation: float = 0.4
    aitken_initial: float = 0.5
    aitken_min: float = 0.1
    aitken_max: float = 1.0

    # Material properties, one entry per material
    young_modulus: List[float] = field(default_factory=lambda: [1.0e9])
    poisson_ratio: List[float] = field(default_factory=lambda: [0.3])
    density: List[float] = field(default_factory=lambda: [1.0e3])
    dead_load_density: List[float] = field(default_factory=lambda: [0.0])
    electric_field: List[float] = field(default_factory=list)
    de_effects: bool = False
    element_based: bool = False
    topology_optimization: bool = False
    design_variable: DesignVariableKind = DesignVariableKind.NONE

    def __post_init__(self):
        super().__post_init__()
        if len(self.inc_load_criteria) != 3:
            raise ConfigurationError("inc_load_criteria needs exactly three entries")
        if self.incremental_load and self.n_increments < 1:
            raise ConfigurationError("n_increments must be positive for incremental loading")

    @property
    def nonlinear(self) -> bool:
        return self.analysis == StructuralAnalysis.LARGE_DEFORMATIONS


@dataclass
class AdjointConfig(_EnumFieldsMixin):
    """Adjoint settings."""
    discrete: bool = False
    continuous: bool = False
    frozen_visc: bool = False
    objective: ObjectiveKind = ObjectiveKind.DRAG
    gradient_method: GradientMethod = GradientMethod.GREEN_GAUSS
    n_interface_markers: int = 0
    results_dir: str = "."


@dataclass
class FixedCLConfig:
    """Fixed lift coefficient mode."""
    enabled: bool = False
    target_cl: float = 0.0
    cauchy_eps: float = 1.0e-4
    iter_dcl_dalpha: int = 500
    update_aoa_iter_limit: int = 200
    start_conv_iter: int = 5
    dcl_dalpha: float = 0.2  # per degree
    initial_aoa: float = 0.0
    fd_increment: float = 0.001


@dataclass
class IterationConfig(_EnumFieldsMixin):
    """Configuration of one zone."""
    kind: IterationKind = IterationKind.FLUID
    zone: int = 0
    n_dim: int = 2
    n_zones: int = 1
    multizone: bool = False
    singlezone_driver: bool = True
    n_inner_iter: int = 1
    n_mg_levels: int = 0

    flow_model: FlowModel = FlowModel.EULER
    turbulence_model: TurbulenceModel = TurbulenceModel.NONE
    transition_model: TransitionModel = TransitionModel.NONE
    fluid_problem: bool = True
    weakly_coupled_heat: bool = False
    radiation: bool = False
    fsi: bool = False
    cfl_adapt: bool = False
    wall_functions: bool = False
    wall_function_start_iter: int = 10
    restart: bool = False

    time: TimeConfig = field(default_factory=TimeConfig)
    gust: GustConfig = field(default_factory=GustConfig)
    grid_movement: GridMovementConfig = field(default_factory=GridMovementConfig)
    structural: StructuralConfig = field(default_factory=StructuralConfig)
    adjoint: AdjointConfig = field(default_factory=AdjointConfig)
    fixed_cl: FixedCLConfig = field(default_factory=FixedCLConfig)
    extra: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        super().__post_init__()
        if self.n_inner_iter < 1:
            raise ConfigurationError("n_inner_iter must be at least 1")
        if self.n_mg_levels < 0:
            raise ConfigurationError("n_mg_levels cannot be negative")

    @property
    def levels(self) -> range:
        """Multigrid levels, finest first."""
        return range(self.n_mg_levels + 1)

    @classmethod
    def from_file(cls, config_path: Union[str, Path]) -> 'IterationConfig':
        """Load configuration from YAML or JSON file."""
        config_path = Path(config_path)

        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r') as f:
            if config_path.suffix.lower() in ['.yaml', '.yml']:
                data = yaml.safe_load(f)
            elif config_path.suffix.lower() == '.json':
                data = json.load(f)
            else:
                raise ConfigurationError(f"Unsupported config file format: {config_path.suffix}")

        return cls.from_dict(data or {})

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'IterationConfig':
        """Create configuration from dictionary."""
        sections = {
            'time': TimeConfig,
            'gust': GustConfig,
            'grid_movement': GridMovementConfig,
            'structural': StructuralConfig,
            'adjoint': AdjointConfig,
            'fixed_cl': FixedCLConfig,
        }
        config_data = dict(data)
        known = {f.name for f in fields(cls)}
        unknown = set(config_data) - known
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")

        for name, section_cls in sections.items():
            section = config_data.get(name, {})
            if not isinstance(section, section_cls):
                try:
                    config_data[name] = section_cls(**(section or {}))
                except TypeError as e:
                    raise ConfigurationError(f"Invalid '{name}' section: {e}") from e

        return cls(**config_data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return _to_plain(asdict(self))

    def save(self, config_path: Union[str, Path]) -> None:
        """Save configuration to file."""
        config_path = Path(config_path)

        with open(config_path, 'w') as f:
            if config_path.suffix.lower() in ['.yaml', '.yml']:
                yaml.safe_dump(self.to_dict(), f, default_flow_style=False)
            elif config_path.suffix.lower() == '.json':
                json.dump(self.to_dict(), f, indent=2)
            else:
                raise ConfigurationError(f"Unsupported config file format: {config_path.suffix}")


@dataclass(frozen=True)
class PhysicsCouplingConfig:
    """Coupling flags of one zone, evaluated once per outer step.

    Hooks read these instead of querying the mutable configuration so that
    every decision taken during a step sees the same flags.
    """
    rans: bool = False
    frozen_visc: bool = False
    turbulent: bool = False
    sst: bool = False
    transition: bool = False
    heat: bool = False
    radiation: bool = False
    fluid_problem: bool = True
    fsi: bool = False
    multizone: bool = False
    singlezone_driver: bool = True
    time_marching: bool = False
    time_domain: bool = False
    dual_time: bool = False
    dual_time_1st: bool = False
    dual_time_2nd: bool = False
    harmonic_balance: bool = False
    grid_movement: bool = False
    deform_mesh: bool = False
    aeroelastic: bool = False
    gust: bool = False
    discrete_adjoint: bool = False
    continuous_adjoint: bool = False
    cfl_adapt: bool = False
    wall_functions: bool = False
    fixed_cl: bool = False
    restart: bool = False
    nonlinear: bool = False
    linear: bool = True
    incremental_load: bool = False
    de_effects: bool = False
    element_based: bool = False
    topology_optimization: bool = False
    newmark_fsi: bool = False
    interface_boundary: bool = False

    @property
    def steady(self) -> bool:
        return not self.time_domain

    @property
    def dynamic(self) -> bool:
        return self.time_domain

    @classmethod
    def from_config(cls, config: IterationConfig) -> 'PhysicsCouplingConfig':
        marching = config.time.marching
        adjoint = config.adjoint
        structural = config.structural
        rans = config.flow_model == FlowModel.RANS
        frozen_visc = (adjoint.discrete or adjoint.continuous) and adjoint.frozen_visc
        nonlinear = structural.nonlinear
        return cls(
            rans=rans,
            frozen_visc=frozen_visc,
            turbulent=rans and not frozen_visc,
            sst=config.turbulence_model == TurbulenceModel.SST,
            transition=config.transition_model == TransitionModel.LM,
            heat=config.weakly_coupled_heat,
            radiation=config.radiation,
            fluid_problem=config.fluid_problem,
            fsi=config.fsi,
            multizone=config.multizone,
            singlezone_driver=config.singlezone_driver,
            time_marching=marching != TimeMarching.STEADY,
            time_domain=config.time.time_domain,
            dual_time=config.time.dual_time,
            dual_time_1st=marching == TimeMarching.DUAL_TIME_1ST,
            dual_time_2nd=marching == TimeMarching.DUAL_TIME_2ND,
            harmonic_balance=marching == TimeMarching.HARMONIC_BALANCE,
            grid_movement=config.grid_movement.moving,
            deform_mesh=config.grid_movement.deform_mesh,
            aeroelastic=config.grid_movement.aeroelastic,
            gust=config.gust.enabled,
            discrete_adjoint=adjoint.discrete,
            continuous_adjoint=adjoint.continuous,
            cfl_adapt=config.cfl_adapt,
            wall_functions=config.wall_functions,
            fixed_cl=config.fixed_cl.enabled,
            restart=config.restart,
            nonlinear=nonlinear,
            linear=not nonlinear,
            incremental_load=structural.incremental_load and not adjoint.discrete,
            de_effects=structural.de_effects and nonlinear,
            element_based=structural.element_based and nonlinear,
            topology_optimization=structural.topology_optimization,
            newmark_fsi=config.fsi and structural.time_integration == TimeIntegrationFEA.NEWMARK_IMPLICIT,
            interface_boundary=adjoint.n_interface_markers > 0,
        )


def create_default_fluid_config(**overrides) -> IterationConfig:
    """Steady single-zone Euler configuration."""
    return IterationConfig.from_dict({'kind': IterationKind.FLUID, **overrides})


def create_default_structural_config(**overrides) -> IterationConfig:
    """Static linear structural configuration."""
    return IterationConfig.from_dict({
        'kind': IterationKind.FEA,
        'fluid_problem': False,
        **overrides,
    })
