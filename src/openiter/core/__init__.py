"""Core types, configuration and collaborator contracts."""

from .base import (
    AdjointSolver, Geometry, Integration, Numerics, Output, Solver,
    StructuralSolver, SurfaceMovement, VolumetricMovement,
)
from .config import (
    AdjointConfig, FixedCLConfig, GridMovementConfig, GustConfig,
    IterationConfig, PhysicsCouplingConfig, StructuralConfig, TimeConfig,
    create_default_fluid_config, create_default_structural_config,
)
from .context import RunContext
from .exceptions import (
    ConfigurationError, MissingInputFileError, OpenIterError, TapeError,
)
from .registry import IterationRegistry, create_iteration, register_iteration
from .state import IncrementalLoadState, StructuralState, TimeLevels
from .types import (
    CommKind, ConvergenceSignal, DesignVariableKind, FlowModel, GradientMethod,
    GustDirection, GustType, IterationCounters, IterationKind, LevelKey,
    MotionKind, NumericsTerm, ObjectiveKind, PhysicsKind, RecordingMode,
    RelaxationMethod, StructuralAnalysis, TimeIntegrationFEA, TimeMarching,
    TransitionModel, TurboFlowSide, TurbulenceModel, ZoneInstanceKey,
)

__all__ = [
    # Contracts
    'AdjointSolver', 'Geometry', 'Integration', 'Numerics', 'Output', 'Solver',
    'StructuralSolver', 'SurfaceMovement', 'VolumetricMovement',
    # Configuration
    'AdjointConfig', 'FixedCLConfig', 'GridMovementConfig', 'GustConfig',
    'IterationConfig', 'PhysicsCouplingConfig', 'StructuralConfig', 'TimeConfig',
    'create_default_fluid_config', 'create_default_structural_config',
    # Context and registry
    'RunContext', 'IterationRegistry', 'create_iteration', 'register_iteration',
    # Errors
    'ConfigurationError', 'MissingInputFileError', 'OpenIterError', 'TapeError',
    # State
    'IncrementalLoadState', 'StructuralState', 'TimeLevels',
    # Types
    'CommKind', 'ConvergenceSignal', 'DesignVariableKind', 'FlowModel',
    'GradientMethod', 'GustDirection', 'GustType', 'IterationCounters',
    'IterationKind', 'LevelKey', 'MotionKind', 'NumericsTerm', 'ObjectiveKind',
    'PhysicsKind', 'RecordingMode', 'RelaxationMethod', 'StructuralAnalysis',
    'TimeIntegrationFEA', 'TimeMarching', 'TransitionModel', 'TurboFlowSide',
    'TurbulenceModel', 'ZoneInstanceKey',
]
