"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    CAPITALPLAN — ANALYTICS DIAGNOSTICS
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Error kinds raised or reported by the phase analytics engine.

PROPAGATION POLICY
══════════════════

Structural problems in a snapshot never abort a whole analysis pass. They are
converted to Diagnostic records and returned next to the results:

    ┌──────────────────────────┬──────────┬──────────────────────────────────────────┐
    │ Kind                     │ Severity │ Effect                                   │
    ├──────────────────────────┼──────────┼──────────────────────────────────────────┤
    │ cyclic_dependency        │ error    │ project excluded from the pass           │
    │ missing_required_field   │ error    │ phase excluded from aggregates           │
    │ missing_end_date         │ error    │ phase excluded from forecasting          │
    │ low_historical_data      │ warning  │ forecast uses cohort-wide delay          │
    │ invalid_date_range       │ warning  │ phase kept (end_date < start_date)       │
    │ unknown_dependency       │ warning  │ dependency ignored                       │
    └──────────────────────────┴──────────┴──────────────────────────────────────────┘

Empty-set aggregates are not errors: divisions are guarded and return 0
(see safe_divide).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class DiagnosticKind(str, Enum):
    """Diagnostic categories reported by the engine."""
    CYCLIC_DEPENDENCY = "cyclic_dependency"
    MISSING_REQUIRED_FIELD = "missing_required_field"
    MISSING_END_DATE = "missing_end_date"
    LOW_HISTORICAL_DATA = "low_historical_data"
    INVALID_DATE_RANGE = "invalid_date_range"
    UNKNOWN_DEPENDENCY = "unknown_dependency"


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# EXCEPTIONS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

class ProjectAnalyticsError(Exception):
    """Base class for analytics engine errors."""
    pass


class CyclicDependencyError(ProjectAnalyticsError):
    """Raised when a phase id appears in its own transitive dependency closure."""
    def __init__(self, project_id: str, cycle: Sequence[str]):
        self.project_id = project_id
        self.cycle = list(cycle)
        super().__init__(
            f"Project {project_id}: cyclic phase dependencies {' -> '.join(self.cycle + self.cycle[:1])}"
        )


class MissingRequiredFieldError(ProjectAnalyticsError):
    """A phase lacks department, start_date or end_date (missing or unparsable)."""
    def __init__(self, project_id: str, phase_id: str, fields: Sequence[str]):
        self.project_id = project_id
        self.phase_id = phase_id
        self.fields = list(fields)
        super().__init__(
            f"Project {project_id}: phase {phase_id} missing required field(s) {', '.join(self.fields)}"
        )


class LowHistoricalDataWarning(UserWarning):
    """Department history is too thin for a department-level delay estimate."""
    def __init__(self, department: str, completed_phases: int, minimum: int):
        self.department = department
        self.completed_phases = completed_phases
        self.minimum = minimum
        super().__init__(
            f"Department '{department}' has {completed_phases} completed phase(s) "
            f"(< {minimum}); using cohort-wide average delay"
        )


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# DIAGNOSTIC RECORD
# ════════════════════════════════════════════════════════════════════════════════════════════════════

@dataclass
class Diagnostic:
    """
    A single structural problem found during an analysis pass.

    Attributes:
        kind: Diagnostic category
        severity: error (something was excluded) or warning
        message: Human-readable explanation
        project_id: Affected project, if any
        phase_id: Affected phase, if any
        ids: Related ids (cycle members, missing fields, unknown dependencies)
    """
    kind: DiagnosticKind
    severity: Severity
    message: str
    project_id: Optional[str] = None
    phase_id: Optional[str] = None
    ids: List[str] = field(default_factory=list)

    @classmethod
    def from_cycle(cls, exc: CyclicDependencyError) -> 'Diagnostic':
        return cls(
            kind=DiagnosticKind.CYCLIC_DEPENDENCY,
            severity=Severity.ERROR,
            message=str(exc),
            project_id=exc.project_id,
            ids=list(exc.cycle),
        )

    @classmethod
    def from_missing_fields(cls, exc: MissingRequiredFieldError) -> 'Diagnostic':
        return cls(
            kind=DiagnosticKind.MISSING_REQUIRED_FIELD,
            severity=Severity.ERROR,
            message=str(exc),
            project_id=exc.project_id,
            phase_id=exc.phase_id,
            ids=list(exc.fields),
        )

    @classmethod
    def from_low_history(
        cls,
        warning: LowHistoricalDataWarning,
        project_id: Optional[str] = None,
        phase_id: Optional[str] = None,
    ) -> 'Diagnostic':
        return cls(
            kind=DiagnosticKind.LOW_HISTORICAL_DATA,
            severity=Severity.WARNING,
            message=str(warning),
            project_id=project_id,
            phase_id=phase_id,
            ids=[warning.department] if warning.department else [],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'kind': self.kind.value,
            'severity': self.severity.value,
            'message': self.message,
            'project_id': self.project_id,
            'phase_id': self.phase_id,
            'ids': list(self.ids),
        }


def safe_divide(numerator: float, denominator: float) -> float:
    """Guarded division: returns 0.0 instead of raising for a zero denominator."""
    if not denominator:
        return 0.0
    return numerator / denominator


def has_errors(diagnostics: Sequence[Diagnostic]) -> bool:
    return any(d.severity == Severity.ERROR for d in diagnostics)
