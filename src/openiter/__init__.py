"""
openiter - Multiphysics iteration driver.

Drives one zone/instance of a coupled simulation through an outer step:
fluid, turbomachinery, high-order FEM, heat and structural iterations, their
continuous and discrete adjoints, unsteady restart reconstruction, wind
gusts and grid movement, and fluid-structure relaxation.
"""

__author__ = "Emil Mammadli"
__version__ = "1.0.0"

from openiter.ad import RecordingTape
from openiter.core import (
    IterationConfig, IterationKind, IterationRegistry, PhysicsCouplingConfig,
    RecordingMode, RunContext, ZoneInstanceKey, create_iteration,
)
from openiter.iteration import (
    AdjFluidIteration, DiscAdjFEAIteration, DiscAdjFluidIteration,
    DiscAdjHeatIteration, FEAIteration, FEMFluidIteration, FluidIteration,
    HeatIteration, Iteration, TurboIteration,
)
from openiter.restart import RestartStore

__all__ = [
    "IterationConfig", "IterationKind", "IterationRegistry", "PhysicsCouplingConfig",
    "RecordingMode", "RunContext", "ZoneInstanceKey", "create_iteration",
    "RecordingTape", "RestartStore",
    "Iteration", "FluidIteration", "TurboIteration", "FEMFluidIteration",
    "HeatIteration", "FEAIteration", "AdjFluidIteration",
    "DiscAdjFluidIteration", "DiscAdjHeatIteration", "DiscAdjFEAIteration",
]
