"""Output helpers."""

from .history import ConvergenceHistoryWriter, plot_convergence
from .sensitivity import GRADIENT_FILENAMES, RESULTS_FILENAME, StructuralSensitivityWriter

__all__ = [
    'ConvergenceHistoryWriter',
    'plot_convergence',
    'GRADIENT_FILENAMES',
    'RESULTS_FILENAME',
    'StructuralSensitivityWriter',
]
