"""
Prescribed wind gusts (field velocity method).

The gust is imposed through the grid velocity: the desired gust velocity is
subtracted from the grid velocity of every point on every multigrid level.
The gust velocity itself is a pure function of the point coordinates and the
physical time:

    x_gust = (x - x_begin - U_inf * (t - t_begin)) / L

with the gust active for 0 < x_gust < n_periods. Vortex gusts superpose
algebraic point vortices convected with the free stream.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import numpy as np
from scipy.spatial.distance import cdist

from ..core.config import GustConfig
from ..core.exceptions import ConfigurationError, MissingInputFileError
from ..core.types import GustType, MotionKind, PhysicsKind
from ..utils.parallel import ParallelConfig, parallel_point_loop

logger = logging.getLogger(__name__)


@dataclass
class VortexDistribution:
    """Point vortices (positive strength is clockwise)."""
    x0: np.ndarray
    y0: np.ndarray
    strength: np.ndarray
    r_core: np.ndarray

    def __len__(self) -> int:
        return len(self.x0)


def read_vortex_distribution(path: Union[str, Path]) -> VortexDistribution:
    """Read a vortex distribution file.

    The first line is a header. Every following non-blank line holds
    ``x y strength r_core`` separated by whitespace.

    Raises:
        MissingInputFileError: if the file does not exist
    """
    path = Path(path)
    if not path.exists():
        raise MissingInputFileError(f"Vortex distribution file not found: {path}")

    rows = []
    with open(path, 'r') as f:
        f.readline()
        for line_number, line in enumerate(f, start=2):
            parts = line.split()
            if not parts:
                continue
            if len(parts) < 4:
                raise ConfigurationError(
                    f"{path}:{line_number}: expected 4 columns (x y strength r_core), got {len(parts)}"
                )
            rows.append([float(value) for value in parts[:4]])

    data = np.array(rows, dtype=float).reshape(-1, 4)
    logger.info(f"Read {len(data)} vortices from {path}")
    return VortexDistribution(data[:, 0], data[:, 1], data[:, 2], data[:, 3])


def compute_gust_field(coordinates: np.ndarray, physical_time: float, config: GustConfig,
                       u_inf: float, vortices: Optional[VortexDistribution] = None) -> np.ndarray:
    """Gust velocity at every point.

    Args:
        coordinates: Point coordinates, shape (n_points, n_dim)
        physical_time: Current physical time
        config: Gust parameters
        u_inf: Free-stream x-velocity convecting the gust
        vortices: Vortex distribution (vortex gusts only)

    Returns:
        Gust velocity, shape (n_points, n_dim)
    """
    coordinates = np.asarray(coordinates, dtype=float)
    gust = np.zeros_like(coordinates)

    if config.gust_type != GustType.VORTEX and config.wavelength <= 0.0:
        raise ConfigurationError("The gust length needs to be positive")

    if physical_time < config.begin_time or len(coordinates) == 0:
        return gust

    x = coordinates[:, 0]
    y = coordinates[:, 1] if coordinates.shape[1] > 1 else np.zeros_like(x)
    elapsed = physical_time - config.begin_time
    direction = config.direction.value
    gust_type = config.gust_type

    if gust_type == GustType.VORTEX:
        if vortices is None:
            raise ConfigurationError("Vortex gust requires a vortex distribution")
        centres = np.column_stack([vortices.x0 + u_inf * elapsed, vortices.y0])
        points = np.column_stack([x, y])
        r = cdist(points, centres)
        dx = x[:, None] - centres[:, 0]
        dy = y[:, None] - centres[:, 1]
        with np.errstate(divide='ignore', invalid='ignore'):
            v_theta = vortices.strength / (2 * np.pi) * r / (r ** 2 + vortices.r_core ** 2)
        # The vortex centre itself has no defined direction
        scale = np.divide(v_theta, r, out=np.zeros_like(r), where=r > 0.0)
        gust[:, 0] = np.sum(scale * dy, axis=1)
        gust[:, 1] = -np.sum(scale * dx, axis=1)
        return gust

    if gust_type == GustType.NONE:
        return gust

    x_gust = (x - config.begin_location - u_inf * elapsed) / config.wavelength
    active = (x_gust > 0) & (x_gust < config.n_periods)
    xg = x_gust[active]
    amp = config.amplitude

    if gust_type == GustType.TOP_HAT:
        values = np.full(xg.shape, amp)
    elif gust_type == GustType.SINE:
        values = amp * np.sin(2 * np.pi * xg)
    elif gust_type == GustType.ONE_M_COSINE:
        values = amp * (1 - np.cos(2 * np.pi * xg))
    elif gust_type == GustType.EOG:
        values = -0.37 * amp * np.sin(3 * np.pi * xg) * (1 - np.cos(2 * np.pi * xg))
    else:
        raise ConfigurationError(f"Unsupported gust type: {gust_type}")

    gust[active, direction] = values
    return gust


def apply_wind_gust(context, key, config, vortices: Optional[VortexDistribution] = None,
                    parallel: Optional[ParallelConfig] = None) -> None:
    """Apply the gust on every multigrid level of one zone/instance.

    The flow solver of each level receives the gust and (zero) gust
    derivatives; the grid velocity of each point becomes the existing grid
    velocity (zero for pure gust motion) minus the gust.
    """
    gust_config = config.gust
    logger.info("Running simulation with a Wind Gust.")

    if gust_config.gust_type == GustType.NONE:
        logger.info("No wind gust specified.")
    if gust_config.gust_type != GustType.VORTEX and gust_config.wavelength <= 0.0:
        raise ConfigurationError("The gust length needs to be positive")

    finest = context.geometry(key.level(0))
    if finest.n_dim != 2:
        logger.warning("Wind Gust capability is only verified for 2 dimensional simulations.")

    if gust_config.gust_type == GustType.VORTEX and vortices is None:
        vortices = read_vortex_distribution(gust_config.vortex_file)

    physical_time = context.counter(key.zone).time_iter * config.time.time_step
    u_inf = float(context.solver(key.level(0), PhysicsKind.FLUID).free_stream_velocity()[0])
    reset_grid_velocity = config.grid_movement.kind == MotionKind.GUST

    for level in context.levels(key):
        geometry = context.geometry(key.level(level))
        flow = context.solver(key.level(level), PhysicsKind.FLUID)
        coordinates = geometry.coordinates.current
        gust = np.zeros_like(coordinates)
        grid_velocity = np.zeros_like(coordinates) if reset_grid_velocity else geometry.grid_velocity

        def body(start: int, stop: int) -> None:
            gust[start:stop] = compute_gust_field(coordinates[start:stop], physical_time,
                                                  gust_config, u_inf, vortices)
            grid_velocity[start:stop] -= gust[start:stop]

        parallel_point_loop(body, geometry.n_points, parallel)

        geometry.grid_velocity = grid_velocity
        flow.set_wind_gust(gust, np.zeros((geometry.n_points, 3)))
