"""
Time-level buffers for dual-time and dynamic problems.

Every solved physics keeps, per multigrid level, the current solution plus
the solutions at time levels n and n-1 and a scratch "old" copy used while
reconstructing history from restart files. Mesh coordinates use the same
container so that coordinate history can be shifted in lock step with the
solution history.

All shifts copy values. A buffer never aliases another one.
"""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np


@dataclass
class TimeLevels:
    """Current value and its history at time levels n, n-1 and a scratch copy."""

    current: np.ndarray
    time_n: Optional[np.ndarray] = None
    time_n1: Optional[np.ndarray] = None
    old: Optional[np.ndarray] = None

    def __post_init__(self):
        self.current = np.array(self.current, dtype=float)
        for name in ("time_n", "time_n1", "old"):
            value = getattr(self, name)
            if value is None:
                setattr(self, name, self.current.copy())
            else:
                setattr(self, name, np.array(value, dtype=float))

    @property
    def shape(self):
        return self.current.shape

    def set_current(self, values: np.ndarray) -> None:
        self.current[...] = values

    def push_to_time_n(self) -> None:
        """time_n <- current"""
        self.time_n = self.current.copy()

    def push_to_time_n1(self) -> None:
        """time_n1 <- time_n"""
        self.time_n1 = self.time_n.copy()

    def set_old(self) -> None:
        """old <- current"""
        self.old = self.current.copy()

    def shift_dual_time(self) -> None:
        """Advance one physical step: n-1 <- n, n <- current."""
        self.push_to_time_n1()
        self.push_to_time_n()

    def restore_from_old(self, second_order: bool) -> None:
        """Re-order history after the oldest level was loaded into ``old``.

        The current value becomes the previous time_n. For first order the
        loaded state becomes time_n; for second order time_n takes over
        time_n1 and the loaded state becomes time_n1.
        """
        self.current = self.time_n.copy()
        if second_order:
            self.time_n = self.time_n1.copy()
            self.time_n1 = self.old.copy()
        else:
            self.time_n = self.old.copy()

    def fill(self, value: float) -> None:
        self.current.fill(value)


@dataclass
class StructuralState:
    """Displacement, velocity and acceleration history of a structural solver.

    ``predicted`` holds the displacement handed to the coupled fluid zone,
    ``predicted_old`` the one from the previous coupling iteration.
    """

    displacement: TimeLevels
    velocity: TimeLevels = None
    acceleration: TimeLevels = None
    predicted: np.ndarray = None
    predicted_old: np.ndarray = None
    predicted_velocity: np.ndarray = None
    aitken_coefficient: float = 1.0

    def __post_init__(self):
        shape = self.displacement.shape
        if self.velocity is None:
            self.velocity = TimeLevels(np.zeros(shape))
        if self.acceleration is None:
            self.acceleration = TimeLevels(np.zeros(shape))
        if self.predicted is None:
            self.predicted = self.displacement.current.copy()
        if self.predicted_old is None:
            self.predicted_old = self.predicted.copy()
        if self.predicted_velocity is None:
            self.predicted_velocity = self.velocity.current.copy()

    def push_to_time_n(self) -> None:
        self.displacement.push_to_time_n()
        self.velocity.push_to_time_n()
        self.acceleration.push_to_time_n()

    def zero(self) -> None:
        self.displacement.fill(0.0)
        self.velocity.fill(0.0)
        self.acceleration.fill(0.0)


@dataclass
class IncrementalLoadState:
    """Load-ramping state of the structural iteration."""

    current_increment: int = 0
    total_increments: int = 1
    force_coefficient: float = 1.0
    history: list = field(default_factory=list)

    def set_increment(self, increment: int, coefficient: float) -> None:
        self.current_increment = increment
        self.force_coefficient = coefficient
        self.history.append(coefficient)

    def reset(self) -> None:
        """Back to the full load."""
        self.set_increment(0, 1.0)
