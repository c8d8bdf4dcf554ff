"""Mesh motion and wind gusts."""

from .grid_movement import GridMovementCoordinator
from .gust import (
    VortexDistribution, apply_wind_gust, compute_gust_field,
    read_vortex_distribution,
)

__all__ = [
    'GridMovementCoordinator',
    'VortexDistribution',
    'apply_wind_gust',
    'compute_gust_field',
    'read_vortex_distribution',
]
