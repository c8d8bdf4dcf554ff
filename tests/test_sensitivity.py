"""Tests for structural sensitivity result and gradient files."""

from openiter.core import DesignVariableKind
from openiter.io import RESULTS_FILENAME, StructuralSensitivityWriter


def read_lines(path):
    with open(path) as f:
        return f.read().splitlines()


def test_header_columns_follow_enabled_sensitivities(tmp_path):
    writer = StructuralSensitivityWriter(tmp_path, n_young=2, n_poisson=1, n_density=1,
                                         n_efield=2, dynamic=True, de_effects=True)
    writer.write_header()

    header = read_lines(tmp_path / RESULTS_FILENAME)[0]

    assert header == ("Obj_Func Sens_E_0\tSens_E_1\tSens_Nu_0\tSens_Rho_0\t"
                      "Sens_EField_0\tSens_EField_1\t")


def test_rows_are_appended_per_time_step(tmp_path):
    writer = StructuralSensitivityWriter(tmp_path, dynamic=True)
    writer.write_header()

    writer.append_row(0, 0.5, [1.0], [2.0], sens_density=[3.0])
    writer.append_row(1, None, [4.0], [5.0], sens_density=[6.0], sens_dv=[7.0])

    lines = read_lines(writer.results_path)
    assert len(lines) == 3
    first = lines[1].split("\t")
    second = lines[2].split("\t")
    assert [float(v) for v in first[:5]] == [0.0, 0.5, 1.0, 2.0, 3.0]
    assert [float(v) for v in second[:5]] == [1.0, 4.0, 5.0, 6.0, 7.0]


def test_write_header_starts_a_new_log(tmp_path):
    writer = StructuralSensitivityWriter(tmp_path)
    writer.write_header()
    writer.append_row(0, 1.0, [1.0], [1.0])

    writer.write_header()

    assert len(read_lines(writer.results_path)) == 1


def test_gradient_file_per_design_variable(tmp_path):
    writer = StructuralSensitivityWriter(tmp_path)

    path = writer.write_gradient(DesignVariableKind.POISSON_RATIO, [0.25, -1.0])

    assert path.name == "grad_poisson.opt"
    lines = read_lines(path)
    assert lines[0] == "INDEX\tGRAD"
    assert lines[2].split("\t")[0] == "1"
    assert float(lines[2].split("\t")[1]) == -1.0


def test_no_gradient_file_without_design_variable(tmp_path):
    writer = StructuralSensitivityWriter(tmp_path)
    assert writer.write_gradient(DesignVariableKind.NONE, [1.0]) is None
    assert list(tmp_path.iterdir()) == []
