"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    CAPITALPLAN — FORECAST ENGINE
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Predicted completion dates, confidence scores and named risk factors for
in-flight phases (status not_started or in_progress).

HEURISTIC MODEL
═══════════════

This is an openly documented approximation, not a statistical model.

1. Predicted completion:

       T̂_φ = end(φ) + ⌈AD_d⌉ days

   AD_d is the average delay of the phase's department. When the department
   has fewer than min_completed_history (default 2) completed phases, the
   cohort-wide average delay is used instead and a LowHistoricalDataWarning
   is attached.

2. Dependency chain depth:

       depth(φ) = 0                                   if deps(φ) = ∅
                  1 + max_{ψ ∈ deps(φ)} depth(ψ)      otherwise

   computed over the whole project tree (sub-phases included).

3. Confidence:

       C_φ = clamp(20, 95, 90 - 5·depth(φ) - 10·[bucket(d) = High])

4. Risk factors (ordered):

       depth(φ) > 2                       →  "dependency chain depth"
       bucket(d) = High                   →  "departmental risk"
       ∃ overdue sibling (same parent)    →  "project schedule pressure"

LIMITATIONS
───────────
Delay history is kept per department only. Phases carry no type, so
phase-type-specific history is not available to the model.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from .department_performance_engine import DepartmentPerformance, DepartmentRanking
from .diagnostics import (
    CyclicDependencyError,
    Diagnostic,
    DiagnosticKind,
    LowHistoricalDataWarning,
    Severity,
)
from .phase_model import Phase, PhaseStatus, build_phase_index
from .risk_budget_analyzer import RiskBucket
from .rollup_engine import PhaseFact, clamp
from .validation import PreparedProject

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# CONSTANTS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

FORECASTABLE_STATUSES = (PhaseStatus.NOT_STARTED, PhaseStatus.IN_PROGRESS)

BASE_CONFIDENCE = 90
DEPTH_PENALTY = 5
HIGH_RISK_PENALTY = 10
CONFIDENCE_MIN = 20
CONFIDENCE_MAX = 95

DEEP_CHAIN_THRESHOLD = 2
DEFAULT_MIN_COMPLETED_HISTORY = 2


class RiskFactor(str, Enum):
    DEPENDENCY_CHAIN_DEPTH = "dependency chain depth"
    DEPARTMENTAL_RISK = "departmental risk"
    PROJECT_SCHEDULE_PRESSURE = "project schedule pressure"


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ════════════════════════════════════════════════════════════════════════════════════════════════════

@dataclass
class ForecastEntry:
    """
    Completion forecast for one phase.
    """
    project_id: str
    phase_id: str
    phase_name: str
    department: str
    end_date: date
    predicted_completion_date: date
    confidence: int = BASE_CONFIDENCE
    risk_factors: List[str] = field(default_factory=list)
    dependency_chain_depth: int = 0
    delay_basis_days: float = 0.0
    low_historical_data: bool = False
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'project_id': self.project_id,
            'phase_id': self.phase_id,
            'phase_name': self.phase_name,
            'department': self.department,
            'end_date': self.end_date.isoformat(),
            'predicted_completion_date': self.predicted_completion_date.isoformat(),
            'confidence': self.confidence,
            'risk_factors': list(self.risk_factors),
            'dependency_chain_depth': self.dependency_chain_depth,
            'delay_basis_days': round(self.delay_basis_days, 2),
            'low_historical_data': self.low_historical_data,
            'warnings': list(self.warnings),
        }


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# BUILDING BLOCKS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def dependency_chain_depths(project_id: str, phases: Sequence[Phase]) -> Dict[str, int]:
    """
    Longest dependency path ending at each phase.

    Dependencies on ids outside `phases` are ignored.

    Raises:
        CyclicDependencyError: if the dependency graph is cyclic
    """
    index = build_phase_index(list(phases))
    known = {pid: [d for d in phase.dependencies if d in index] for pid, phase in index.items()}
    depths: Dict[str, int] = {}

    # Post-order walk with an explicit stack; chains can be longer than the recursion limit.
    for root in index:
        if root in depths:
            continue

        path = [root]
        on_path = {root}
        stack = [iter(known[root])]

        while stack:
            advanced = False
            for dep in stack[-1]:
                if dep in depths:
                    continue
                if dep in on_path:
                    raise CyclicDependencyError(project_id, path[path.index(dep):])
                path.append(dep)
                on_path.add(dep)
                stack.append(iter(known[dep]))
                advanced = True
                break
            if not advanced:
                pid = path.pop()
                on_path.discard(pid)
                stack.pop()
                deps = known[pid]
                depths[pid] = 1 + max(depths[d] for d in deps) if deps else 0

    return depths


def predicted_completion(end_date: date, delay_days: float) -> date:
    """Shift an end date by the expected delay, rounded up to whole days."""
    return end_date + timedelta(days=math.ceil(max(0.0, delay_days)))


def forecast_confidence(depth: int, high_department_risk: bool) -> int:
    raw = BASE_CONFIDENCE - DEPTH_PENALTY * depth - (HIGH_RISK_PENALTY if high_department_risk else 0)
    return int(clamp(CONFIDENCE_MIN, CONFIDENCE_MAX, raw))


def _overdue_siblings(facts: Sequence[PhaseFact]) -> Dict[Optional[str], Set[str]]:
    """parent_id -> ids of overdue phases under that parent."""
    overdue: Dict[Optional[str], Set[str]] = {}
    for fact in facts:
        if fact.is_overdue:
            overdue.setdefault(fact.parent_id, set()).add(fact.phase_id)
    return overdue


def _delay_basis(
    perf: Optional[DepartmentPerformance],
    department: str,
    cohort_delay: float,
    min_completed_history: int
) -> Tuple[float, Optional[LowHistoricalDataWarning]]:
    """(delay in days, warning when falling back to the cohort average)."""
    completed = perf.completed_phases if perf is not None else 0
    if perf is not None and completed >= min_completed_history:
        return perf.average_delay_days, None
    return cohort_delay, LowHistoricalDataWarning(department, completed, min_completed_history)


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# FORECASTING
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def forecast_phase(
    fact: PhaseFact,
    depth: int,
    perf: Optional[DepartmentPerformance],
    cohort_delay: float,
    has_overdue_sibling: bool,
    min_completed_history: int = DEFAULT_MIN_COMPLETED_HISTORY
) -> ForecastEntry:
    """
    Forecast a single phase (end_date must be known).
    """
    phase = fact.phase
    delay, low_data = _delay_basis(perf, phase.department, cohort_delay, min_completed_history)
    high_risk = perf is not None and perf.risk_bucket == RiskBucket.HIGH

    risk_factors = []
    if depth > DEEP_CHAIN_THRESHOLD:
        risk_factors.append(RiskFactor.DEPENDENCY_CHAIN_DEPTH.value)
    if high_risk:
        risk_factors.append(RiskFactor.DEPARTMENTAL_RISK.value)
    if has_overdue_sibling:
        risk_factors.append(RiskFactor.PROJECT_SCHEDULE_PRESSURE.value)

    return ForecastEntry(
        project_id=fact.project_id,
        phase_id=phase.phase_id,
        phase_name=phase.name,
        department=phase.department,
        end_date=phase.end_date,
        predicted_completion_date=predicted_completion(phase.end_date, delay),
        confidence=forecast_confidence(depth, high_risk),
        risk_factors=risk_factors,
        dependency_chain_depth=depth,
        delay_basis_days=delay,
        low_historical_data=low_data is not None,
        warnings=[str(low_data)] if low_data is not None else [],
    )


def forecast_phases(
    prepared: Sequence[PreparedProject],
    ranking: DepartmentRanking,
    cohort_delay: float,
    min_completed_history: int = DEFAULT_MIN_COMPLETED_HISTORY
) -> Tuple[List[ForecastEntry], List[Diagnostic]]:
    """
    Forecast every selected not_started / in_progress phase of the prepared projects.

    Args:
        prepared: Projects that passed the cycle check
        ranking: Department performance of the same pass
        cohort_delay: Average delay across all usable phases
        min_completed_history: Completed phases needed to trust department delay

    Returns:
        (forecast entries in project/tree order, diagnostics)
    """
    entries: List[ForecastEntry] = []
    diagnostics: List[Diagnostic] = []

    for item in prepared:
        depths = dependency_chain_depths(item.project_id, [f.phase for f in item.tree_facts])
        overdue_by_parent = _overdue_siblings(item.tree_facts)

        for fact in item.selected_facts:
            if fact.phase.status not in FORECASTABLE_STATUSES:
                continue

            if fact.phase.end_date is None:
                reason = fact.phase.parse_errors.get('end_date', 'missing')
                diagnostics.append(Diagnostic(
                    kind=DiagnosticKind.MISSING_END_DATE,
                    severity=Severity.ERROR,
                    message=f"Project {item.project_id}: phase {fact.phase_id} excluded from forecast ({reason} end_date)",
                    project_id=item.project_id,
                    phase_id=fact.phase_id,
                    ids=['end_date'],
                ))
                continue

            siblings = overdue_by_parent.get(fact.parent_id, set()) - {fact.phase_id}
            perf = ranking.get(fact.department)
            entry = forecast_phase(
                fact,
                depth=depths.get(fact.phase_id, 0),
                perf=perf,
                cohort_delay=cohort_delay,
                has_overdue_sibling=bool(siblings),
                min_completed_history=min_completed_history,
            )

            if entry.low_historical_data:
                _, low_data = _delay_basis(perf, fact.department, cohort_delay, min_completed_history)
                diagnostics.append(Diagnostic.from_low_history(low_data, item.project_id, fact.phase_id))
            entries.append(entry)

    logger.info(f"Forecast {len(entries)} phases ({sum(e.low_historical_data for e in entries)} with low history)")
    return entries, diagnostics
