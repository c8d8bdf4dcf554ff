"""HDF5 checkpoint files for unsteady and dynamic restarts."""

import logging
import os
from pathlib import Path
from typing import Dict, Iterable, Union

import h5py
import numpy as np

from ..core.exceptions import MissingInputFileError
from ..core.types import PhysicsKind

logger = logging.getLogger(__name__)


class RestartStore:
    """Directory of checkpoint files, one per physics and direct iteration.

    File layout::

        restart_<physics>_<iteration:05d>.h5
            level_0/solution
            level_0/coordinates      (moving grids)
            level_0/velocity         (dynamic structures)
            level_0/acceleration     (dynamic structures)
            level_1/...
    """

    def __init__(self, directory: Union[str, Path] = ".", compression: bool = False):
        self.directory = Path(directory)
        self.compression = compression

    def path(self, physics: PhysicsKind, iteration: int) -> Path:
        return self.directory / f"restart_{physics.value}_{iteration:05d}.h5"

    def exists(self, physics: PhysicsKind, iteration: int) -> bool:
        return self.path(physics, iteration).exists()

    def write(self, physics: PhysicsKind, iteration: int, level: int, **arrays: np.ndarray) -> Path:
        """Write (or replace) datasets of one multigrid level."""
        os.makedirs(self.directory, exist_ok=True)
        filename = self.path(physics, iteration)
        with h5py.File(filename, 'a') as f:
            group = f.require_group(f"level_{level}")
            group.attrs["iteration"] = iteration
            for name, data in arrays.items():
                if name in group:
                    del group[name]
                group.create_dataset(name, data=np.asarray(data, dtype=float),
                                     compression="gzip" if self.compression else None)
        logger.debug(f"Wrote restart data {sorted(arrays)} for level {level} to {filename}")
        return filename

    def read(self, physics: PhysicsKind, iteration: int, level: int = 0,
             name: str = "solution") -> np.ndarray:
        """Read one dataset of one multigrid level.

        Raises:
            MissingInputFileError: if the file or the dataset does not exist
        """
        filename = self.path(physics, iteration)
        if not filename.exists():
            raise MissingInputFileError(f"Restart file not found: {filename}")
        with h5py.File(filename, 'r') as f:
            dataset = f"level_{level}/{name}"
            if dataset not in f:
                raise MissingInputFileError(f"Restart file {filename} has no dataset '{dataset}'")
            return f[dataset][()]

    def datasets(self, physics: PhysicsKind, iteration: int, level: int = 0) -> Iterable[str]:
        filename = self.path(physics, iteration)
        if not filename.exists():
            raise MissingInputFileError(f"Restart file not found: {filename}")
        with h5py.File(filename, 'r') as f:
            group = f.get(f"level_{level}")
            return [] if group is None else list(group.keys())

    def save_solution(self, context, key, physics: PhysicsKind, iteration: int,
                      include_coordinates: bool = False) -> None:
        """Checkpoint one physics of one zone/instance at every multigrid level."""
        for level in context.levels(key):
            level_key = key.level(level)
            solver = context.solver(level_key, physics)
            arrays: Dict[str, np.ndarray] = {"solution": solver.nodes.current}
            state = getattr(solver, "state", None)
            if state is not None:
                arrays["velocity"] = state.velocity.current
                arrays["acceleration"] = state.acceleration.current
            if include_coordinates:
                arrays["coordinates"] = context.geometry(level_key).coordinates.current
            self.write(physics, iteration, level, **arrays)
        logger.info(f"Saved {physics.value} restart for iteration {iteration}")
