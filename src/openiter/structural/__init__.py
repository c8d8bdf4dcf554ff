"""Load ramping, prediction and relaxation for structural problems."""

from ..core.state import IncrementalLoadState
from .relaxation import AitkenRelaxation, newmark_relaxation, predict_displacement

__all__ = [
    'IncrementalLoadState',
    'AitkenRelaxation',
    'newmark_relaxation',
    'predict_displacement',
]
