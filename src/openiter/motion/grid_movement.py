"""Grid movement and mesh deformation of one zone/instance per outer step."""

import logging
from contextlib import nullcontext

from ..core.config import IterationConfig
from ..core.types import MotionKind, PhysicsKind, RecordingMode, TimeMarching

logger = logging.getLogger(__name__)


class GridMovementCoordinator:
    """Dispatches rigid, aeroelastic, fluid-structure and external mesh motion."""

    def __init__(self, config: IterationConfig):
        self.config = config

    def _log(self, message: str, screen_output: bool = True) -> None:
        if screen_output:
            logger.info(message)

    def _rigid_motion(self, movement, geometry, time_iter: int) -> None:
        movement.rigid_translation(geometry, time_iter)
        movement.rigid_plunging(geometry, time_iter)
        movement.rigid_pitching(geometry, time_iter)
        movement.rigid_rotation(geometry, time_iter)

    def _grid_velocity(self, geometry) -> None:
        geometry.compute_grid_velocity(
            self.config.time.time_step,
            second_order=self.config.time.marching == TimeMarching.DUAL_TIME_2ND,
        )

    def set_grid_movement(self, context, key, inner_iter: int, time_iter: int) -> None:
        """Move the mesh of one zone/instance for the current step.

        Args:
            context: Run context owning geometry, solvers and movements
            key: Zone/instance to move
            inner_iter: Current inner iteration
            time_iter: Current physical time iteration
        """
        config = self.config
        motion = config.grid_movement
        kind = motion.kind
        continuous_adjoint = config.adjoint.continuous
        screen_output = motion.screen_output

        geometries = context.level_geometries(key)
        finest = geometries[0]
        movement = context.volume_movement(key)

        if kind == MotionKind.RIGID_MOTION:
            self._log("Performing rigid mesh transformation.")
            self._rigid_motion(movement, finest, time_iter)
            movement.update_multigrid(geometries)

        # STEADY_TRANSLATION and ROTATING_FRAME are set up once at driver level

        if motion.aeroelastic:
            if inner_iter == 0:
                if kind == MotionKind.AEROELASTIC_RIGID_MOTION:
                    self._log("Performing rigid mesh transformation.")
                    self._rigid_motion(movement, finest, time_iter)
                    movement.update_multigrid(geometries)

            elif inner_iter % motion.aeroelastic_iter == 0:
                self._log("Solving aeroelastic equations and updating surface positions.")
                flow = context.solver(key.level(0), PhysicsKind.FLUID)
                flow.aeroelastic(context.surface_movement(key.zone), time_iter)

                self._log("Deforming the volume grid due to the aeroelastic movement.")
                movement.set_volume_deformation(finest)

                self._log("Computing grid velocities by finite differencing.")
                self._grid_velocity(finest)
                movement.update_multigrid(geometries)

        if motion.has_surface_movement(MotionKind.FLUID_STRUCTURE):
            self._log("Deforming the grid for Fluid-Structure Interaction applications.", screen_output)
            self._log("Deforming the volume grid.", screen_output)
            movement.set_volume_deformation(finest)

            static_mesh = movement.n_iter_mesh() == 0
            if not continuous_adjoint and not static_mesh:
                self._log("Computing grid velocities by finite differencing.", screen_output)
                self._grid_velocity(finest)
            elif static_mesh:
                self._log("The mesh is up-to-date. Using previously stored grid velocities.",
                          screen_output)

            movement.update_multigrid(geometries)

        if (motion.has_surface_movement(MotionKind.EXTERNAL) or
                motion.has_surface_movement(MotionKind.EXTERNAL_ROTATION)):
            if kind == MotionKind.EXTERNAL_ROTATION:
                self._log("Updating node locations by rigid rotation.")
                movement.rigid_rotation(finest, time_iter)

            self._log("Updating surface locations from file.")
            context.surface_movement(key.zone).set_external_deformation(finest, time_iter)

            self._log("Deforming the volume grid.")
            movement.set_volume_deformation(finest)

            if not continuous_adjoint:
                self._log("Computing grid velocities by finite differencing.")
                self._grid_velocity(finest)

            movement.update_multigrid(geometries)

    def set_mesh_deformation(self, context, key, kind_recording: RecordingMode = RecordingMode.NONE) -> None:
        """Elasticity-based volume deformation.

        The deformation is kept off the tape unless the mesh-deformation
        solution is the recorded input or the problem is multizone.
        """
        if not self.config.grid_movement.deform_mesh:
            return

        mesh = context.solver(key.level(0), PhysicsKind.MESH_DEFORMATION)
        tape = context.tape
        run_passive = kind_recording != RecordingMode.MESH_DEFORM and not self.config.multizone
        section = tape.passive() if (run_passive and tape is not None) else nullcontext()

        with section:
            mesh.set_mesh_stiffness()
            mesh.deform_mesh()
