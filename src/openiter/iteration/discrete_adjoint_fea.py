"""
Discrete adjoint of the structural (FEA) iteration.

Material parameters, electric fields and design-variable values are read
from the adjoint solver, where they are tape inputs, and pushed into the
structural numerics before the direct iteration is replayed. Standalone
structural runs also write a results log and the gradient file of the
selected design-variable category.
"""

import logging
from typing import Optional

from ..core.config import IterationConfig
from ..core.registry import register_iteration
from ..core.types import (
    CommKind, DesignVariableKind, IterationKind, NumericsTerm, ObjectiveKind,
    PhysicsKind, RecordingMode,
)
from ..io.sensitivity import StructuralSensitivityWriter
from ..restart.loader import dynamic_direct_iteration, load_dynamic_restart
from .discrete_adjoint import DiscreteAdjointIteration

logger = logging.getLogger(__name__)

_MATERIAL_TERMS = (NumericsTerm.MAT_NHCOMP, NumericsTerm.MAT_IDEALDE, NumericsTerm.MAT_KNOWLES)

# Objectives with a structural value in the results log
_STRUCTURAL_OBJECTIVES = (
    ObjectiveKind.REFERENCE_GEOMETRY,
    ObjectiveKind.REFERENCE_NODE,
    ObjectiveKind.VOLUME_FRACTION,
    ObjectiveKind.TOPOL_DISCRETENESS,
    ObjectiveKind.TOPOL_COMPLIANCE,
)


@register_iteration(IterationKind.DISC_ADJ_FEA)
class DiscAdjFEAIteration(DiscreteAdjointIteration):
    """Discrete adjoint of static and dynamic structural problems."""

    direct_kind = IterationKind.FEA

    def __init__(self, config: IterationConfig):
        super().__init__(config)
        structural = config.structural

        self.sensitivity_writer: Optional[StructuralSensitivityWriter] = None
        if not config.fsi:
            self.sensitivity_writer = StructuralSensitivityWriter(
                config.adjoint.results_dir,
                n_young=len(structural.young_modulus),
                n_poisson=len(structural.poisson_ratio),
                n_density=len(structural.density),
                n_efield=len(structural.electric_field),
                dynamic=config.time.time_domain,
                de_effects=structural.de_effects,
            )
            self.sensitivity_writer.write_header()

    def _adjoint(self, context, key):
        return context.solver(key.level(0), PhysicsKind.ADJ_STRUCTURAL)

    def _direct(self, context, key):
        return context.solver(key.level(0), PhysicsKind.STRUCTURAL)

    def preprocess(self, context, coupling, key):
        adjoint = self._adjoint(context, key)

        if coupling.dynamic:
            time_iter = context.counter(key.zone).time_iter
            load_dynamic_restart(context, key, self.config.time.unst_adjoint_iter, time_iter)
            adjoint.set_solution_direct(velocity=True, acceleration=True)
        else:
            adjoint.set_solution_direct()

        adjoint.preprocessing()

    def iterate(self, context, coupling, key):
        tape = self._tape(context)
        adjoint = self._adjoint(context, key)

        adjoint.extract_adjoint_solution(tape)
        adjoint.extract_adjoint_variables(tape)

        if coupling.dynamic:
            context.integration(key, PhysicsKind.ADJ_STRUCTURAL).set_convergence(False)

    def initialize_adjoint(self, context, coupling, key):
        tape = self._tape(context)
        adjoint = self._adjoint(context, key)
        adjoint.set_adj_objective(tape)
        adjoint.set_adjoint_output(tape)

    def reset_recording(self, context, coupling, key):
        self._adjoint(context, key).set_recording()

    def register_input(self, context, coupling, key, kind_recording):
        tape = self._tape(context)

        if kind_recording != RecordingMode.MESH_COORDINATES:
            adjoint = self._adjoint(context, key)
            adjoint.register_solution(tape)
            adjoint.register_variables(tape)
        else:
            # Element densities of topology optimization travel with the coordinates
            self._direct(context, key).register_variables(tape)
            context.geometry(key.level(0)).register_coordinates(tape)

    def set_dependencies(self, context, coupling, key, kind_recording):
        adjoint = self._adjoint(context, key)
        direct = self._direct(context, key)
        geometry = context.geometry(key.level(0))

        def numerics(term):
            return context.numerics_term(key, PhysicsKind.STRUCTURAL, term)

        material_terms = [numerics(term) for term in _MATERIAL_TERMS] if coupling.element_based else []

        for i in range(len(self.config.structural.young_modulus)):
            young = adjoint.material_values("young", i)
            poisson = adjoint.material_values("poisson", i)
            density = adjoint.material_values("density", i)
            dead_load = adjoint.material_values("dead_load", i)

            for term in [numerics(NumericsTerm.FEA_TERM)] + material_terms:
                term.set_material_properties(i, young, poisson)
                term.set_material_density(i, density, dead_load)

        if coupling.de_effects:
            for i in range(len(self.config.structural.electric_field)):
                value = adjoint.electric_field_value(i)
                numerics(NumericsTerm.FEA_TERM).set_electric_field(i, value)
                numerics(NumericsTerm.DE_TERM).set_electric_field(i, value)

        if self.config.structural.design_variable != DesignVariableKind.NONE:
            dv_terms = [numerics(NumericsTerm.FEA_TERM)]
            if coupling.de_effects:
                dv_terms.append(numerics(NumericsTerm.DE_TERM))
            dv_terms.extend(material_terms)

            for i in range(adjoint.n_design_values):
                value = adjoint.design_value(i)
                for term in dv_terms:
                    term.set_design_value(i, value)

        # The interface displacement depends on the recorded solution
        if coupling.fsi:
            self.direct_iteration.predictor(context, coupling, key)

        direct.initiate_comms(CommKind.SOLUTION_FEA)
        direct.complete_comms(CommKind.SOLUTION_FEA)

        if kind_recording == RecordingMode.MESH_COORDINATES:
            geometry.initiate_comms(CommKind.COORDINATES)
            geometry.complete_comms(CommKind.COORDINATES)

            if coupling.topology_optimization:
                geometry.set_element_volumes()
                direct.filter_element_densities()

    def register_output(self, context, coupling, key):
        self._adjoint(context, key).register_output(self._tape(context))

    def direct_time_iter(self, coupling, time_iter):
        return dynamic_direct_iteration(self.config.time.unst_adjoint_iter, time_iter)

    def postprocess(self, context, coupling, key):
        if self.sensitivity_writer is None:
            return

        adjoint = self._adjoint(context, key)
        structural = self.config.structural

        objective_kind = self.config.adjoint.objective
        objective = None
        if objective_kind in _STRUCTURAL_OBJECTIVES:
            objective = self._direct(context, key).objective_value(objective_kind)

        def sensitivities(prop, count):
            return [adjoint.total_sensitivity(prop, i) for i in range(count)]

        sens_dv = sensitivities("dv", adjoint.n_design_values)

        self.sensitivity_writer.append_row(
            context.counter(key.zone).time_iter,
            objective,
            sensitivities("young", len(structural.young_modulus)),
            sensitivities("poisson", len(structural.poisson_ratio)),
            sensitivities("density", len(structural.density)),
            sensitivities("efield", len(structural.electric_field)),
            sens_dv,
        )

        if structural.design_variable != DesignVariableKind.NONE:
            self.sensitivity_writer.write_gradient(structural.design_variable, sens_dv)
