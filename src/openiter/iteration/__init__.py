"""Iteration state machines.

Importing this package registers every variant with the iteration registry.
"""

from .base import Iteration
from .fluid import FEMFluidIteration, FluidIteration, TurboIteration
from .heat import HeatIteration
from .structural import FEAIteration
from .adjoint import AdjFluidIteration
from .discrete_adjoint import (
    DiscAdjFluidIteration, DiscAdjHeatIteration, DiscreteAdjointIteration,
)
from .discrete_adjoint_fea import DiscAdjFEAIteration

__all__ = [
    'Iteration',
    'FluidIteration',
    'TurboIteration',
    'FEMFluidIteration',
    'HeatIteration',
    'FEAIteration',
    'AdjFluidIteration',
    'DiscreteAdjointIteration',
    'DiscAdjFluidIteration',
    'DiscAdjHeatIteration',
    'DiscAdjFEAIteration',
]
