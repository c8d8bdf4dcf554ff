"""Run-level ownership of all zone, instance and level state."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .base import (
    AdjointSolver, Geometry, Integration, Numerics, Output, Solver,
    SurfaceMovement, VolumetricMovement,
)
from .config import IterationConfig
from .types import (
    IterationCounters, LevelKey, NumericsTerm, PhysicsKind, ZoneInstanceKey,
)

logger = logging.getLogger(__name__)


def _lookup(container: dict, key, what: str):
    if key not in container:
        raise ValueError(f"Unknown {what}: {key}. "
                         f"Available {what}s: {list(container.keys())}")
    return container[key]


@dataclass
class RunContext:
    """Flat containers keyed by (zone, instance[, level]).

    Iteration state machines borrow entries for the duration of one call;
    the context owns them for the whole run.
    """
    configs: Dict[int, IterationConfig] = field(default_factory=dict)
    geometries: Dict[LevelKey, Geometry] = field(default_factory=dict)
    solvers: Dict[Tuple[LevelKey, PhysicsKind], object] = field(default_factory=dict)
    integrations: Dict[Tuple[ZoneInstanceKey, PhysicsKind], Integration] = field(default_factory=dict)
    numerics: Dict[Tuple[ZoneInstanceKey, PhysicsKind, NumericsTerm], Numerics] = field(default_factory=dict)
    outputs: Dict[int, Output] = field(default_factory=dict)
    volume_movements: Dict[ZoneInstanceKey, VolumetricMovement] = field(default_factory=dict)
    surface_movements: Dict[int, SurfaceMovement] = field(default_factory=dict)
    counters: Dict[int, IterationCounters] = field(default_factory=dict)
    tape: Optional[object] = None
    restart_store: Optional[object] = None

    def config(self, zone: int) -> IterationConfig:
        return _lookup(self.configs, zone, "zone configuration")

    def counter(self, zone: int) -> IterationCounters:
        return self.counters.setdefault(zone, IterationCounters())

    def levels(self, key: ZoneInstanceKey) -> range:
        return self.config(key.zone).levels

    def geometry(self, key: LevelKey) -> Geometry:
        return _lookup(self.geometries, key, "geometry")

    def level_geometries(self, key: ZoneInstanceKey) -> List[Geometry]:
        return [self.geometry(key.level(level)) for level in self.levels(key)]

    def solver(self, key: LevelKey, physics: PhysicsKind):
        return _lookup(self.solvers, (key, physics), "solver")

    def has_solver(self, key: LevelKey, physics: PhysicsKind) -> bool:
        return (key, physics) in self.solvers

    def integration(self, key: ZoneInstanceKey, physics: PhysicsKind) -> Integration:
        return _lookup(self.integrations, (key, physics), "integration")

    def numerics_term(self, key: ZoneInstanceKey, physics: PhysicsKind,
                      term: NumericsTerm) -> Numerics:
        return _lookup(self.numerics, (key, physics, term), "numerics term")

    def output(self, zone: int) -> Output:
        return _lookup(self.outputs, zone, "output")

    def volume_movement(self, key: ZoneInstanceKey) -> VolumetricMovement:
        return _lookup(self.volume_movements, key, "volume movement")

    def surface_movement(self, zone: int) -> SurfaceMovement:
        return _lookup(self.surface_movements, zone, "surface movement")

    def add_zone(self, config: IterationConfig, instance: int = 0) -> ZoneInstanceKey:
        """Register a zone configuration and its counters."""
        self.configs[config.zone] = config
        self.counters.setdefault(config.zone, IterationCounters())
        return ZoneInstanceKey(config.zone, instance)

    def add_solver(self, key: LevelKey, physics: PhysicsKind, solver) -> None:
        if not isinstance(solver, (Solver, AdjointSolver)):
            raise TypeError(f"Expected a Solver or AdjointSolver, got {type(solver).__name__}")
        self.solvers[(key, physics)] = solver
