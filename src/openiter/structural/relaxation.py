"""
Coupling-variable prediction and relaxation for fluid-structure problems.

Implements:
- Displacement predictor (constant, linear or quadratic extrapolation)
- Aitken dynamic relaxation of the predicted displacement
- Newmark update of velocity and acceleration after a relaxed displacement
"""

import logging
from typing import Optional

import numpy as np

from ..core.config import StructuralConfig
from ..core.state import StructuralState
from ..core.types import RelaxationMethod

logger = logging.getLogger(__name__)


def predict_displacement(displacement: np.ndarray, velocity: np.ndarray,
                         acceleration: np.ndarray, time_step: float, order: int) -> np.ndarray:
    """Extrapolate the displacement to the next coupling iteration.

    Args:
        displacement: Displacement at time level n
        velocity: Velocity at time level n
        acceleration: Acceleration at time level n
        time_step: Physical time step
        order: 0 (constant), 1 (linear) or 2 (quadratic)

    Returns:
        Predicted displacement
    """
    if order == 0:
        return np.array(displacement, dtype=float)
    if order == 1:
        return displacement + time_step * velocity
    if order == 2:
        return displacement + time_step * velocity + 0.5 * time_step ** 2 * acceleration
    raise ValueError(f"Unsupported predictor order: {order}. Available orders: [0, 1, 2]")


def newmark_relaxation(state: StructuralState, time_step: float,
                       beta: float = 0.25, gamma: float = 0.5, dynamic: bool = False) -> None:
    """Commit the relaxed displacement as the structural solution.

    For dynamic problems acceleration and velocity are recomputed with the
    Newmark relations so that they stay consistent with the new displacement.
    """
    state.displacement.set_current(state.predicted)
    if not dynamic:
        return

    a0 = 1.0 / (beta * time_step ** 2)
    a2 = 1.0 / (beta * time_step)
    a3 = 1.0 / (2.0 * beta) - 1.0
    a6 = time_step * (1.0 - gamma)
    a7 = gamma * time_step

    u = state.displacement.current
    u_n = state.displacement.time_n
    v_n = state.velocity.time_n
    acc_n = state.acceleration.time_n

    acceleration = a0 * (u - u_n) - a2 * v_n - a3 * acc_n
    state.acceleration.set_current(acceleration)
    state.velocity.set_current(v_n + a6 * acc_n + a7 * acceleration)


class AitkenRelaxation:
    """Aitken dynamic relaxation of the interface displacement.

    Attributes:
        theta: Current relaxation coefficient
    """

    def __init__(self, method: RelaxationMethod = RelaxationMethod.AITKEN,
                 theta_init: float = 0.5, theta_static: float = 0.4,
                 theta_min: float = 0.1, theta_max: float = 1.0):
        self.method = method
        self.theta_init = theta_init
        self.theta_static = theta_static
        self.theta_min = theta_min
        self.theta_max = theta_max
        self.theta = 1.0
        self._previous_residual: Optional[np.ndarray] = None

    @classmethod
    def from_config(cls, config: StructuralConfig) -> 'AitkenRelaxation':
        return cls(config.relaxation, config.aitken_initial, config.static_relaxation,
                   config.aitken_min, config.aitken_max)

    def compute_coefficient(self, state: StructuralState, outer_iter: int) -> float:
        """Update the relaxation coefficient from the last two interface residuals.

        The residual of a coupling iteration is the computed displacement
        minus the displacement that was handed to the fluid.
        """
        residual = state.displacement.current - state.predicted

        if outer_iter == 0 or self.method != RelaxationMethod.AITKEN:
            if self.method == RelaxationMethod.AITKEN:
                self.theta = min(self.theta_init, 1.0)
            elif self.method == RelaxationMethod.FIXED:
                self.theta = self.theta_static
            else:
                self.theta = 1.0
        elif self._previous_residual is not None:
            delta = residual - self._previous_residual
            numerator = float(np.sum(self._previous_residual * delta))
            denominator = float(np.sum(delta * delta))
            if denominator > 1e-15:
                self.theta = -self.theta * numerator / denominator
            self.theta = min(max(self.theta, self.theta_min), self.theta_max)

        self._previous_residual = residual.copy()
        state.aitken_coefficient = self.theta
        logger.debug(f"Aitken coefficient at outer iteration {outer_iter}: {self.theta:.6f}")
        return self.theta

    def relax(self, state: StructuralState, dynamic: bool = False) -> None:
        """Blend the predicted and computed interface displacement."""
        theta = self.theta
        state.predicted = (1.0 - theta) * state.predicted + theta * state.displacement.current
        if dynamic:
            state.predicted_velocity = ((1.0 - theta) * state.predicted_velocity +
                                        theta * state.velocity.current)
        state.predicted_old = state.predicted.copy()
