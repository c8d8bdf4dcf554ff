"""Result and gradient files of standalone structural adjoint runs."""

import logging
from pathlib import Path
from typing import Optional, Sequence, Union

from ..core.types import DesignVariableKind

logger = logging.getLogger(__name__)

RESULTS_FILENAME = "Results_Reverse_Adjoint.txt"

GRADIENT_FILENAMES = {
    DesignVariableKind.YOUNG_MODULUS: "grad_young.opt",
    DesignVariableKind.POISSON_RATIO: "grad_poisson.opt",
    DesignVariableKind.DENSITY_VAL: "grad_density.opt",
    DesignVariableKind.DEAD_WEIGHT: "grad_density.opt",
    DesignVariableKind.ELECTRIC_FIELD: "grad_efield.opt",
}


def _sci(value: float) -> str:
    return f"{value:.15e}"


class StructuralSensitivityWriter:
    """Tab-separated results log (appended per time step) and gradient files."""

    def __init__(self, output_dir: Union[str, Path] = ".", n_young: int = 1, n_poisson: int = 1,
                 n_density: int = 1, n_efield: int = 0, dynamic: bool = False,
                 de_effects: bool = False):
        self.output_dir = Path(output_dir)
        self.n_young = n_young
        self.n_poisson = n_poisson
        self.n_density = n_density
        self.n_efield = n_efield
        self.dynamic = dynamic
        self.de_effects = de_effects

    @property
    def results_path(self) -> Path:
        return self.output_dir / RESULTS_FILENAME

    def write_header(self) -> None:
        """Start a new results log."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        header = "Obj_Func "
        header += "".join(f"Sens_E_{i}\t" for i in range(self.n_young))
        header += "".join(f"Sens_Nu_{i}\t" for i in range(self.n_poisson))
        if self.dynamic:
            header += "".join(f"Sens_Rho_{i}\t" for i in range(self.n_density))
        if self.de_effects:
            header += "".join(f"Sens_EField_{i}\t" for i in range(self.n_efield))
        with open(self.results_path, 'w') as f:
            f.write(header + "\n")

    def append_row(self, time_iter: int, objective: Optional[float], sens_young: Sequence[float],
                   sens_poisson: Sequence[float], sens_density: Sequence[float] = (),
                   sens_efield: Sequence[float] = (), sens_dv: Sequence[float] = ()) -> None:
        """Append one time step to the results log.

        ``objective`` is None for objectives without a structural value; the
        column is then left out.
        """
        row = f"{time_iter}\t"
        if objective is not None:
            row += _sci(objective) + "\t"
        row += "".join(_sci(v) + "\t" for v in sens_young[:self.n_young])
        row += "".join(_sci(v) + "\t" for v in sens_poisson[:self.n_poisson])
        if self.dynamic:
            row += "".join(_sci(v) + "\t" for v in sens_density[:self.n_density])
        if self.de_effects:
            row += "".join(_sci(v) + "\t" for v in sens_efield[:self.n_efield])
        row += "".join(_sci(v) + "\t" for v in sens_dv)
        with open(self.results_path, 'a') as f:
            f.write(row + "\n")

    def write_gradient(self, dv_kind: DesignVariableKind, gradient: Sequence[float]) -> Optional[Path]:
        """Overwrite the gradient file of a design-variable category."""
        filename = GRADIENT_FILENAMES.get(dv_kind)
        if filename is None:
            return None
        path = self.output_dir / filename
        with open(path, 'w') as f:
            f.write("INDEX\tGRAD\n")
            for i, value in enumerate(gradient):
                f.write(f"{i}\t{_sci(value)}\n")
        logger.info(f"Wrote {len(gradient)} gradient entries to {path}")
        return path
