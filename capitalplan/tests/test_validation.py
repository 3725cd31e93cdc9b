"""
Testes para validação e preparação de snapshots.
"""

import pytest
from datetime import date

from capitalplan.engine_config import EngineConfig
from capitalplan.project_analytics.diagnostics import (
    DiagnosticKind,
    MissingRequiredFieldError,
    Severity,
)
from capitalplan.project_analytics.phase_model import Project
from capitalplan.project_analytics.validation import (
    check_required_fields,
    prepare_snapshot,
    validate,
)


class TestRequiredFields:
    """Testes para campos obrigatórios."""

    def test_missing_department_raises(self, make_phase):
        phase = make_phase("x", department="")
        with pytest.raises(MissingRequiredFieldError) as exc_info:
            check_required_fields("P", phase)
        assert exc_info.value.fields == ["department"]
        assert exc_info.value.phase_id == "x"

    def test_complete_phase_passes(self, make_phase):
        check_required_fields("P", make_phase("x"))


class TestPrepareSnapshot:
    """Testes para prepare_snapshot."""

    def test_cyclic_project_excluded(self, sample_projects, cyclic_project, now):
        snapshot = prepare_snapshot(sample_projects + [cyclic_project], now)

        assert snapshot.projects_received == 3
        assert [p.project_id for p in snapshot.prepared] == ["P1", "P2"]
        cycles = [d for d in snapshot.diagnostics if d.kind == DiagnosticKind.CYCLIC_DEPENDENCY]
        assert len(cycles) == 1
        assert set(cycles[0].ids) == {"A", "B", "C"}
        assert cycles[0].severity == Severity.ERROR

    def test_incomplete_phases_excluded(self, incomplete_project, now):
        snapshot = prepare_snapshot([incomplete_project], now)

        assert [p.phase_id for p in snapshot.phases] == ["d1"]
        missing = [d for d in snapshot.diagnostics if d.kind == DiagnosticKind.MISSING_REQUIRED_FIELD]
        assert [(d.phase_id, d.ids) for d in missing] == [("d2", ["department"]), ("d3", ["end_date"])]
        assert "unparsable" in missing[1].message

    def test_sub_phase_selection(self, sample_projects, now):
        top = prepare_snapshot(sample_projects, now)
        full = prepare_snapshot(sample_projects, now, EngineConfig(include_sub_phases=True))

        assert len(top.phases) == 6
        assert len(full.phases) == 8

    def test_invalid_date_range_is_warning(self, make_phase, now):
        phase = make_phase("x", start=date(2024, 5, 1), end=date(2024, 4, 1))
        snapshot = prepare_snapshot([Project(project_id="P", name="P", phases=[phase])], now)

        assert len(snapshot.phases) == 1
        assert snapshot.diagnostics[0].kind == DiagnosticKind.INVALID_DATE_RANGE
        assert snapshot.diagnostics[0].severity == Severity.WARNING

    def test_unknown_dependency_warning(self, make_phase, now):
        project = Project(project_id="P", name="P", phases=[make_phase("x", dependencies=["ghost"])])
        snapshot = prepare_snapshot([project], now)

        assert snapshot.diagnostics[0].kind == DiagnosticKind.UNKNOWN_DEPENDENCY
        assert snapshot.diagnostics[0].ids == ["ghost"]
        assert len(snapshot.phases) == 1

    def test_empty(self, now):
        snapshot = prepare_snapshot([], now)
        assert snapshot.prepared == []
        assert snapshot.diagnostics == []
        assert snapshot.as_of == now


class TestValidate:
    """Testes para a validação pré-voo."""

    def test_valid_snapshot(self, sample_projects):
        result = validate(sample_projects)

        assert result.is_valid is True
        assert result.projects_checked == 2
        assert result.phases_checked == 8
        assert result.valid_project_ids == ["P1", "P2"]

    def test_cycle_and_missing_fields(self, sample_projects, cyclic_project, incomplete_project):
        result = validate(sample_projects + [cyclic_project, incomplete_project])

        assert result.is_valid is False
        assert result.invalid_project_ids == ["P3", "P4"]
        assert len(result.errors) == 3
        data = result.to_dict()
        assert data["error_count"] == 3
        assert data["diagnostics"][0]["kind"] == "cyclic_dependency"

    def test_checks_sub_phases(self):
        """Sub-fases também são verificadas na validação."""
        project = Project.from_dict({
            "id": "P",
            "phases": [{
                "id": "top", "startDate": "2024-01-01", "endDate": "2024-02-01", "department": "Legal",
                "subPhases": [{"id": "child", "startDate": "2024-01-01", "department": "Legal"}],
            }],
        })
        result = validate([project])

        assert result.is_valid is False
        assert result.errors[0].phase_id == "child"

    def test_empty(self):
        result = validate([])
        assert result.is_valid is True
        assert result.projects_checked == 0
