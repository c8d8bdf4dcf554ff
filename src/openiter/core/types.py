"""Enumerations, composite keys and small value types shared by all modules."""

from dataclasses import dataclass
from enum import Enum
from typing import NamedTuple


class PhysicsKind(Enum):
    """Numerical sub-system targeted by a solve/iterate call."""
    FLUID = "fluid"
    TURBULENCE = "turbulence"
    TRANSITION = "transition"
    HEAT = "heat"
    RADIATION = "radiation"
    STRUCTURAL = "structural"
    MESH_DEFORMATION = "mesh_deformation"
    ADJ_FLUID = "adj_fluid"
    ADJ_TURBULENCE = "adj_turbulence"
    ADJ_HEAT = "adj_heat"
    ADJ_STRUCTURAL = "adj_structural"
    ADJ_RADIATION = "adj_radiation"
    ADJ_MESH = "adj_mesh"


class RecordingMode(Enum):
    """Quantities treated as independent tape inputs during a recording."""
    NONE = "none"
    SOLUTION_VARIABLES = "solution_variables"
    MESH_COORDINATES = "mesh_coordinates"
    SOLUTION_AND_MESH = "solution_and_mesh"
    MESH_DEFORM = "mesh_deform"


class IterationKind(Enum):
    """Iteration state machine variants."""
    FLUID = "fluid"
    TURBO = "turbo"
    FEM_FLUID = "fem_fluid"
    HEAT = "heat"
    FEA = "fea"
    ADJ_FLUID = "adj_fluid"
    DISC_ADJ_FLUID = "disc_adj_fluid"
    DISC_ADJ_HEAT = "disc_adj_heat"
    DISC_ADJ_FEA = "disc_adj_fea"


class TimeMarching(Enum):
    STEADY = "steady"
    TIME_STEPPING = "time_stepping"
    DUAL_TIME_1ST = "dual_time_1st"
    DUAL_TIME_2ND = "dual_time_2nd"
    HARMONIC_BALANCE = "harmonic_balance"


class GustType(Enum):
    NONE = "none"
    TOP_HAT = "top_hat"
    SINE = "sine"
    ONE_M_COSINE = "one_m_cosine"
    VORTEX = "vortex"
    EOG = "eog"


class GustDirection(Enum):
    X_DIR = 0
    Y_DIR = 1


class MotionKind(Enum):
    """Grid movement kinds and surface movement kinds."""
    NONE = "none"
    RIGID_MOTION = "rigid_motion"
    STEADY_TRANSLATION = "steady_translation"
    ROTATING_FRAME = "rotating_frame"
    GUST = "gust"
    AEROELASTIC = "aeroelastic"
    AEROELASTIC_RIGID_MOTION = "aeroelastic_rigid_motion"
    FLUID_STRUCTURE = "fluid_structure"
    EXTERNAL = "external"
    EXTERNAL_ROTATION = "external_rotation"


class FlowModel(Enum):
    EULER = "euler"
    NAVIER_STOKES = "navier_stokes"
    RANS = "rans"


class TransitionModel(Enum):
    NONE = "none"
    LM = "lm"


class TurbulenceModel(Enum):
    NONE = "none"
    SA = "sa"
    SST = "sst"


class GradientMethod(Enum):
    GREEN_GAUSS = "green_gauss"
    WEIGHTED_LEAST_SQUARES = "weighted_least_squares"


class ObjectiveKind(Enum):
    DRAG = "drag"
    LIFT = "lift"
    EQUIVALENT_AREA = "equivalent_area"
    NEARFIELD_PRESSURE = "nearfield_pressure"
    REFERENCE_GEOMETRY = "reference_geometry"
    REFERENCE_NODE = "reference_node"
    VOLUME_FRACTION = "volume_fraction"
    TOPOL_DISCRETENESS = "topol_discreteness"
    TOPOL_COMPLIANCE = "topol_compliance"


class DesignVariableKind(Enum):
    """Structural design-variable categories."""
    NONE = "none"
    YOUNG_MODULUS = "young_modulus"
    POISSON_RATIO = "poisson_ratio"
    DENSITY_VAL = "density_val"
    DEAD_WEIGHT = "dead_weight"
    ELECTRIC_FIELD = "electric_field"


class StructuralAnalysis(Enum):
    SMALL_DEFORMATIONS = "small_deformations"
    LARGE_DEFORMATIONS = "large_deformations"


class TimeIntegrationFEA(Enum):
    NEWMARK_IMPLICIT = "newmark_implicit"
    GENERALIZED_ALPHA = "generalized_alpha"


class RelaxationMethod(Enum):
    NONE = "none"
    FIXED = "fixed"
    AITKEN = "aitken"


class TurboFlowSide(Enum):
    INFLOW = "inflow"
    OUTFLOW = "outflow"


class CommKind(Enum):
    """Halo quantities exchanged with initiate/complete pairs."""
    SOLUTION = "solution"
    SOLUTION_FEA = "solution_fea"
    COORDINATES = "coordinates"


class NumericsTerm(Enum):
    FEA_TERM = "fea_term"
    DE_TERM = "de_term"
    MAT_NHCOMP = "mat_nhcomp"
    MAT_IDEALDE = "mat_idealde"
    MAT_KNOWLES = "mat_knowles"
    MESH_TERM = "mesh_term"


class ZoneInstanceKey(NamedTuple):
    """Physical subdomain and time instance."""
    zone: int = 0
    instance: int = 0

    def level(self, level: int) -> "LevelKey":
        return LevelKey(self.zone, self.instance, level)


class LevelKey(NamedTuple):
    """Zone, instance and multigrid level (0 is the finest)."""
    zone: int
    instance: int
    level: int = 0

    @property
    def zone_instance(self) -> ZoneInstanceKey:
        return ZoneInstanceKey(self.zone, self.instance)


@dataclass
class IterationCounters:
    """Mutable per-zone iteration counters."""
    time_iter: int = 0
    outer_iter: int = 0
    inner_iter: int = 0


@dataclass(frozen=True)
class ConvergenceSignal:
    """Outcome of one monitor call."""
    converged: bool
    inner_iter: int = 0
    outer_iter: int = 0
    time_iter: int = 0
