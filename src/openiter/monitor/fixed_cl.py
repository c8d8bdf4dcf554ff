"""
Fixed lift-coefficient mode.

The angle of attack is driven towards the target lift coefficient. Once the
lift has settled, the controller switches to a finite-difference sub-mode
that perturbs the angle of attack to estimate dCL/dalpha, then restores it.
"""

import logging

from ..core.config import FixedCLConfig

logger = logging.getLogger(__name__)


class FixedCLController:
    """Angle-of-attack update window and finite-difference trigger."""

    def __init__(self, config: FixedCLConfig, n_inner_iter: int):
        self.config = config
        self.n_inner_iter = n_inner_iter
        self.aoa = config.initial_aoa
        self.dcl_dalpha = config.dcl_dalpha
        self.aoa_prev = self.aoa
        self.aoa_inc = 0.0
        self.cl_prev = 0.0
        self.iter_update_aoa = 0
        self.start_aoa_fd = False
        self.end_aoa_fd = False

    def _update_aoa(self, cl: float, inner_iter: int) -> None:
        self.iter_update_aoa = inner_iter
        if abs(cl - self.config.target_cl) > self.config.cauchy_eps / 2:
            self.aoa_prev = self.aoa
            self.aoa_inc = (self.config.target_cl - cl) / self.dcl_dalpha
            self.aoa += self.aoa_inc
            logger.info(f"Fixed CL: AoA updated to {self.aoa:.6f} deg (CL={cl:.6f})")

    def _start_finite_difference(self, cl: float, inner_iter: int) -> None:
        self.iter_update_aoa = inner_iter
        self.start_aoa_fd = True
        self.aoa_prev = self.aoa
        self.cl_prev = cl
        self.aoa += self.config.fd_increment
        logger.info(f"Fixed CL: starting finite differencing at iteration {inner_iter}")

    def update(self, cl: float, converged: bool, inner_iter: int) -> bool:
        """Advance the controller by one inner iteration.

        Args:
            cl: Current total lift coefficient
            converged: Residual convergence of the flow solution
            inner_iter: Current inner iteration

        Returns:
            True when the fixed-CL run (including finite differencing) is finished
        """
        cfg = self.config
        self.aoa_inc = 0.0

        if not self.start_aoa_fd:
            if converged:
                if abs(cl - cfg.target_cl) < cfg.cauchy_eps / 2:
                    if cfg.iter_dcl_dalpha == 0:
                        return True
                    self._start_finite_difference(cl, inner_iter)
                elif inner_iter - self.iter_update_aoa > cfg.start_conv_iter:
                    self._update_aoa(cl, inner_iter)
            elif inner_iter - self.iter_update_aoa == cfg.update_aoa_iter_limit:
                self._update_aoa(cl, inner_iter)

            if not self.start_aoa_fd and inner_iter == self.n_inner_iter - cfg.iter_dcl_dalpha:
                if cfg.iter_dcl_dalpha == 0:
                    self.end_aoa_fd = True
                self._start_finite_difference(cl, inner_iter)

        if self.end_aoa_fd:
            return True

        if self.start_aoa_fd:
            self.end_aoa_fd = (inner_iter - self.iter_update_aoa - 2 == cfg.iter_dcl_dalpha or
                               inner_iter == self.n_inner_iter - 2)
            if converged and inner_iter - self.iter_update_aoa > cfg.start_conv_iter:
                self.end_aoa_fd = True
            if self.end_aoa_fd:
                self._finish_finite_difference(cl)

        return False

    def _finish_finite_difference(self, cl: float) -> None:
        delta = self.aoa - self.aoa_prev
        if delta != 0.0:
            self.dcl_dalpha = (cl - self.cl_prev) / delta
        self.aoa = self.aoa_prev
        logger.info(f"Fixed CL: finite differencing finished, dCL/dalpha={self.dcl_dalpha:.6f}")

    def finite_difference_triggered(self, inner_iter: int) -> bool:
        """True on the iteration at which the finite-difference sub-mode started."""
        return self.start_aoa_fd and self.iter_update_aoa == inner_iter
