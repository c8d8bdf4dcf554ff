"""Collaborator contracts consumed by the iteration state machines.

The iteration layer never owns numerical algorithms. It talks to:

- Geometry: coordinates, grid velocity, geometric updates
- Solver / AdjointSolver / StructuralSolver: per physics, per multigrid level
- Integration: advances one physics system by one step
- Output: history, result files, convergence flag
- Numerics: term evaluators with tape-dependent material parameters
- VolumetricMovement / SurfaceMovement: mesh motion primitives

Optional solver capabilities default to no-ops, so a concrete solver only
overrides what its physics supports.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

import numpy as np

from .state import TimeLevels, StructuralState
from .types import (
    CommKind, GradientMethod, ObjectiveKind, TurboFlowSide,
)

logger = logging.getLogger(__name__)


class Geometry(ABC):
    """Mesh of one zone/instance at one multigrid level."""

    def __init__(self, coordinates: np.ndarray):
        self.coordinates = TimeLevels(coordinates)
        self.grid_velocity = np.zeros_like(self.coordinates.current)
        self.coordinate_indices: Optional[np.ndarray] = None

    @property
    def n_points(self) -> int:
        return self.coordinates.shape[0]

    @property
    def n_dim(self) -> int:
        return self.coordinates.shape[1]

    @abstractmethod
    def update_geometry(self) -> None:
        """Recompute normals and volumes after a coordinate change."""
        pass

    @abstractmethod
    def compute_wall_distance(self) -> None:
        """Recompute wall distances after a coordinate change."""
        pass

    def compute_grid_velocity(self, time_step: float, second_order: bool = False) -> None:
        """Finite-difference grid velocity from the coordinate history."""
        x = self.coordinates
        if second_order:
            self.grid_velocity = (1.5 * x.current - 2.0 * x.time_n + 0.5 * x.time_n1) / time_step
        else:
            self.grid_velocity = (x.current - x.time_n) / time_step

    def register_coordinates(self, tape) -> None:
        self.coordinate_indices = tape.register_input(self.coordinates.current.ravel())

    def register_output_coordinates(self, tape) -> None:
        if self.coordinate_indices is not None:
            tape.register_output(self.coordinate_indices)

    def initiate_comms(self, kind: CommKind) -> None:
        pass

    def complete_comms(self, kind: CommKind) -> None:
        pass

    def set_element_volumes(self) -> None:
        pass


class Solver(ABC):
    """Solution of one physics at one multigrid level."""

    def __init__(self, solution: np.ndarray):
        self.nodes = TimeLevels(solution)
        self.tape_indices: Optional[np.ndarray] = None
        n_var = self.nodes.shape[1] if self.nodes.current.ndim > 1 else 1
        self.residual_rms = np.zeros(n_var)
        self.residual_max = np.zeros_like(self.residual_rms)
        self.total_coefficients: Dict[str, float] = {}

    @abstractmethod
    def preprocessing(self, inner_iter: int = 0) -> None:
        pass

    @abstractmethod
    def postprocessing(self) -> None:
        pass

    @abstractmethod
    def set_free_stream_solution(self) -> None:
        """Reset the solution to the free-stream (or zero) state."""
        pass

    def total_coefficient(self, name: str) -> float:
        return self.total_coefficients.get(name, 0.0)

    def set_total_coefficient(self, name: str, value: float) -> None:
        self.total_coefficients[name] = value

    # Optional capabilities

    def set_initial_condition(self, time_iter: int) -> None:
        pass

    def free_stream_velocity(self) -> np.ndarray:
        return np.zeros(self.nodes.shape[-1])

    def set_wind_gust(self, gust: np.ndarray, derivatives: np.ndarray) -> None:
        pass

    def adapt_cfl_number(self) -> None:
        pass

    def set_nondimensional_parameters(self) -> None:
        pass

    def compute_vertex_tractions(self) -> None:
        pass

    def register_vertex_tractions(self, tape) -> None:
        pass

    def set_vertex_tractions_adjoint(self, tape) -> None:
        pass

    def turbo_average_process(self, side: TurboFlowSide) -> None:
        pass

    def gather_in_out_average_values(self) -> None:
        pass

    def aeroelastic(self, surface_movement: 'SurfaceMovement', time_iter: int) -> None:
        pass

    def set_primitive_gradient(self, method: GradientMethod) -> None:
        pass

    def set_primitive_variables(self) -> None:
        pass

    def set_heatflux_areas(self) -> None:
        pass

    def initiate_comms(self, kind: CommKind) -> None:
        pass

    def complete_comms(self, kind: CommKind) -> None:
        pass

    def set_mesh_stiffness(self) -> None:
        pass

    def deform_mesh(self) -> None:
        pass

    def set_dual_time_mesh(self) -> None:
        pass

    def filter_element_densities(self) -> None:
        pass

    def register_variables(self, tape) -> None:
        """Register design densities (topology optimization) as tape inputs."""
        pass

    def set_angle_of_attack(self, aoa: float) -> None:
        pass

    def set_force_projection_vector(self) -> None:
        """Adjoint wall boundary condition from the objective (continuous adjoint)."""
        pass

    def set_internal_boundary_jump(self) -> None:
        pass

    def objective_value(self, kind: ObjectiveKind) -> float:
        return 0.0


class StructuralSolver(Solver):
    """Solver whose solution is a displacement field with dynamic history."""

    def __init__(self, displacement: np.ndarray):
        super().__init__(displacement)
        self.state = StructuralState(self.nodes)
        self.load_increment = 0
        self.force_coefficient = 1.0

    def set_load_increment(self, increment: int, coefficient: float) -> None:
        self.load_increment = increment
        self.force_coefficient = coefficient

    def set_force_coefficient(self, coefficient: float) -> None:
        self.force_coefficient = coefficient

    def fem_residual(self, index: int) -> float:
        return float(self.residual_rms[index])

    def set_initial_condition(self, time_iter: int) -> None:
        self.state.zero()


class AdjointSolver(ABC):
    """Adjoint counterpart of a direct solver.

    The adjoint solver registers the direct solution as tape inputs, the
    converged direct solution as tape outputs, seeds the output adjoints and
    extracts the input adjoints after the reverse sweep.
    """

    def __init__(self, direct: Solver):
        self.direct = direct
        self.solution_direct = direct.nodes.current.copy()
        self.velocity_direct: Optional[np.ndarray] = None
        self.acceleration_direct: Optional[np.ndarray] = None
        self.adjoint = np.zeros_like(self.solution_direct)
        self.input_indices: Optional[np.ndarray] = None
        self.output_indices: Optional[np.ndarray] = None
        self.sensitivity: Dict[str, np.ndarray] = {}
        self.n_design_values = 0

    def set_solution_direct(self, velocity: bool = False, acceleration: bool = False) -> None:
        """Store the direct solution that the recordings start from."""
        self.solution_direct = self.direct.nodes.current.copy()
        if velocity:
            self.velocity_direct = self.direct.state.velocity.current.copy()
        if acceleration:
            self.acceleration_direct = self.direct.state.acceleration.current.copy()

    def set_recording(self) -> None:
        """Restore the stored direct solution and drop stale tape indices."""
        self.direct.nodes.set_current(self.solution_direct)
        self.direct.tape_indices = None
        self.input_indices = None
        self.output_indices = None

    def register_solution(self, tape) -> None:
        self.input_indices = tape.register_input(self.direct.nodes.current.ravel())
        self.direct.tape_indices = self.input_indices.copy()

    def register_variables(self, tape) -> None:
        pass

    def register_output(self, tape) -> None:
        if self.direct.tape_indices is None:
            return
        self.output_indices = np.asarray(self.direct.tape_indices).copy()
        tape.register_output(self.output_indices)

    def set_adjoint_output(self, tape) -> None:
        """Seed output adjoints with the current adjoint iterate."""
        if self.output_indices is not None:
            tape.set_adjoint(self.output_indices, self.adjoint.ravel())

    def extract_adjoint_solution(self, tape) -> None:
        if self.input_indices is not None:
            self.adjoint = tape.get_adjoint(self.input_indices).reshape(self.adjoint.shape)

    def extract_adjoint_variables(self, tape) -> None:
        pass

    def preprocessing(self) -> None:
        pass

    def set_adj_objective(self, tape) -> None:
        pass

    def material_values(self, prop: str, index: int) -> float:
        """Tape-dependent material parameter ('young', 'poisson', 'density', 'dead_load')."""
        return 0.0

    def electric_field_value(self, index: int) -> float:
        return 0.0

    def design_value(self, index: int) -> float:
        return 0.0

    def total_sensitivity(self, prop: str, index: int) -> float:
        values = self.sensitivity.get(prop)
        if values is None:
            return 0.0
        return float(values[index])


class Integration(ABC):
    """Advances one physics system; tracks its convergence flag."""

    def __init__(self):
        self.converged = False

    def set_convergence(self, converged: bool) -> None:
        self.converged = converged

    def get_convergence(self) -> bool:
        return self.converged

    def multigrid_iteration(self, context, key, physics) -> None:
        raise NotImplementedError(f"{type(self).__name__} has no multigrid iteration")

    def single_grid_iteration(self, context, key, physics) -> None:
        raise NotImplementedError(f"{type(self).__name__} has no single-grid iteration")

    def structural_iteration(self, context, key, physics) -> None:
        raise NotImplementedError(f"{type(self).__name__} has no structural iteration")

    def set_dual_time_solver(self, solver: Solver) -> None:
        """Shift dual-time history: n-1 <- n, n <- current."""
        solver.nodes.shift_dual_time()

    def set_structural_solver(self, solver: StructuralSolver) -> None:
        """Commit displacement, velocity and acceleration to time level n."""
        solver.state.push_to_time_n()


class Output(ABC):
    """Result persistence and convergence history of one zone."""

    def __init__(self):
        self.converged = False
        self.time_convergence = False

    def get_convergence(self) -> bool:
        return self.converged

    def set_convergence(self, converged: bool) -> None:
        self.converged = converged

    @abstractmethod
    def set_history_output(self, context, key) -> None:
        """Record one history entry and update the convergence flag."""
        pass

    @abstractmethod
    def set_result_files(self, context, key, iteration: int, force: bool = False) -> bool:
        """Write result files when due (or forced); return whether anything was written."""
        pass

    def print_convergence_summary(self) -> None:
        logger.info(f"Convergence summary: converged={self.converged}")


class Numerics:
    """Term evaluator holding tape-dependent parameters."""

    def __init__(self):
        self.material_properties: Dict[int, tuple] = {}
        self.material_density: Dict[int, tuple] = {}
        self.electric_field: Dict[int, float] = {}
        self.design_values: Dict[int, float] = {}

    def set_material_properties(self, index: int, young: float, poisson: float) -> None:
        self.material_properties[index] = (young, poisson)

    def set_material_density(self, index: int, density: float, dead_load: float) -> None:
        self.material_density[index] = (density, dead_load)

    def set_electric_field(self, index: int, value: float) -> None:
        self.electric_field[index] = value

    def set_design_value(self, index: int, value: float) -> None:
        self.design_values[index] = value


class VolumetricMovement(ABC):
    """Volume-mesh motion primitives for one zone/instance."""

    @abstractmethod
    def rigid_translation(self, geometry: Geometry, time_iter: int) -> None:
        pass

    @abstractmethod
    def rigid_plunging(self, geometry: Geometry, time_iter: int) -> None:
        pass

    @abstractmethod
    def rigid_pitching(self, geometry: Geometry, time_iter: int) -> None:
        pass

    @abstractmethod
    def rigid_rotation(self, geometry: Geometry, time_iter: int) -> None:
        pass

    @abstractmethod
    def set_volume_deformation(self, geometry: Geometry) -> None:
        pass

    @abstractmethod
    def update_multigrid(self, geometries: List[Geometry]) -> None:
        """Propagate fine-level motion and grid velocity to coarser levels."""
        pass

    def n_iter_mesh(self) -> int:
        """Linear iterations spent by the last volume deformation (0: mesh unchanged)."""
        return 1


class SurfaceMovement(ABC):
    """Boundary motion prescribed from outside the flow solver."""

    @abstractmethod
    def set_external_deformation(self, geometry: Geometry, time_iter: int) -> None:
        pass
