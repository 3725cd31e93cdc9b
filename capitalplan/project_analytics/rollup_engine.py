"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    CAPITALPLAN — ROLLUP ENGINE
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Flattens phase trees into per-phase facts and computes the rollup statistics
that every dashboard consumes.

DEFINITIONS
═══════════

Let Φ be a set of phases and `now` the evaluation date.

1. Overdue (inferred, never written back into status):

       overdue(φ) ⟺ end(φ) < now ∧ status(φ) ≠ completed

2. Completion Rate:

       CR(Φ) = 100 · |{φ ∈ Φ : status(φ) = completed}| / |Φ|        (CR(∅) = 0)

3. Average Delay (days):

       AD(Φ) = mean_{φ ∈ Φ, overdue(φ)} max(0, now - end(φ))          (0 if none overdue)

4. Budget Variance (%):

       BV(P) = 100 · (Σ actual_cost - Σ budget) / Σ budget             (0 if Σ budget = 0)

   Negative variance means spend is below budget.

5. Risk Score:

       RS(Φ) = clamp(1, 10, 10 · (2·|overdue| + 1.5·|urgent|) / max(1, |Φ|))

   Overdue weight 2, urgent weight 1.5. An empty set returns 0.

All aggregates default to the top-level phases of each project; the
include_sub_phases setting switches to the full pre-order flattening.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np

from .diagnostics import safe_divide
from .phase_model import ComplianceCheckpoint, CheckpointStatus, Phase, PhaseStatus, Project

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# CONSTANTS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

# Risk policy weights. An overdue phase has already missed its date and pushes
# its dependants, so it weighs more than urgent work that can still land on time.
# Urgent stays above 1 because the host only raises it when a date is at risk.
OVERDUE_WEIGHT = 2.0
URGENT_WEIGHT = 1.5

# Executive dashboards read the score on a fixed 1-10 scale: a portfolio with
# phases never shows "no risk", and a few overdue phases cannot run past 10.
RISK_SCORE_MIN = 1.0
RISK_SCORE_MAX = 10.0

DEFAULT_UPCOMING_WINDOW_DAYS = 30
DEFAULT_DUE_SOON_DAYS = 7


def clamp(lower: float, upper: float, value: float) -> float:
    return max(lower, min(upper, value))


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# PHASE-LEVEL PREDICATES
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def is_overdue(phase: Phase, now: date) -> bool:
    """True iff the phase ended before `now` and is not completed."""
    if phase.status == PhaseStatus.COMPLETED:
        return False
    if phase.end_date is None:
        return False
    return phase.end_date < now


def delay_days(phase: Phase, now: date) -> int:
    """Days past end_date for an overdue phase, 0 otherwise."""
    if not is_overdue(phase, now):
        return 0
    return max(0, (now - phase.end_date).days)


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# AGGREGATES
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def completion_rate(phases: Sequence[Phase]) -> float:
    """Percentage of completed phases, 2 dp; 0 for an empty set."""
    completed = sum(1 for p in phases if p.status == PhaseStatus.COMPLETED)
    return round(100.0 * safe_divide(completed, len(phases)), 2)


def average_delay_days(phases: Sequence[Phase], now: date) -> float:
    """Mean lateness of overdue phases in days, 2 dp; 0 if nothing is overdue."""
    delays = [delay_days(p, now) for p in phases if is_overdue(p, now)]
    if not delays:
        return 0.0
    return round(float(np.mean(delays)), 2)


def overdue_count(phases: Sequence[Phase], now: date) -> int:
    return sum(1 for p in phases if is_overdue(p, now))


def urgent_count(phases: Sequence[Phase]) -> int:
    return sum(1 for p in phases if p.status == PhaseStatus.URGENT)


def budget_variance_percent(projects: Sequence[Project]) -> float:
    """Spend versus budget across projects, in percent of total budget."""
    total_budget = sum(p.budget for p in projects)
    total_actual = sum(p.actual_cost for p in projects)
    return round(100.0 * safe_divide(total_actual - total_budget, total_budget), 2)


def risk_score(phases: Sequence[Phase], now: date) -> float:
    """
    Bounded composite risk score in [1, 10], 1 dp.

    An empty phase set has no risk signal and returns 0.
    """
    if not phases:
        return 0.0
    weighted = OVERDUE_WEIGHT * overdue_count(phases, now) + URGENT_WEIGHT * urgent_count(phases)
    raw = 10.0 * weighted / max(1, len(phases))
    return round(clamp(RISK_SCORE_MIN, RISK_SCORE_MAX, raw), 1)


def upcoming_deadline_count(
    phases: Sequence[Phase],
    now: date,
    window_days: int = DEFAULT_UPCOMING_WINDOW_DAYS
) -> int:
    """Phases not completed whose end_date falls within [now, now + window]."""
    horizon = now + timedelta(days=window_days)
    return sum(
        1 for p in phases
        if p.status != PhaseStatus.COMPLETED
        and p.end_date is not None
        and now <= p.end_date <= horizon
    )


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# COMPLIANCE CHECKPOINTS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

class ComplianceState(str, Enum):
    COMPLETED = "completed"
    OVERDUE = "overdue"
    DUE_SOON = "due_soon"
    UPCOMING = "upcoming"
    UNSCHEDULED = "unscheduled"


def classify_checkpoint(
    checkpoint: ComplianceCheckpoint,
    now: date,
    due_soon_days: int = DEFAULT_DUE_SOON_DAYS
) -> ComplianceState:
    """Deadline state of a compliance checkpoint as of `now`."""
    if checkpoint.status == CheckpointStatus.COMPLETED:
        return ComplianceState.COMPLETED
    if checkpoint.status == CheckpointStatus.OVERDUE:
        return ComplianceState.OVERDUE
    if checkpoint.due_date is None:
        return ComplianceState.UNSCHEDULED
    if checkpoint.due_date < now:
        return ComplianceState.OVERDUE
    if checkpoint.due_date <= now + timedelta(days=due_soon_days):
        return ComplianceState.DUE_SOON
    return ComplianceState.UPCOMING


def compliance_summary(
    phases: Iterable[Phase],
    now: date,
    due_soon_days: int = DEFAULT_DUE_SOON_DAYS
) -> Dict[str, int]:
    """Count compliance checkpoints of the given phases by deadline state."""
    counts = {state.value: 0 for state in ComplianceState}
    total = 0
    for phase in phases:
        for checkpoint in phase.compliance_checkpoints:
            counts[classify_checkpoint(checkpoint, now, due_soon_days).value] += 1
            total += 1
    counts['total'] = total
    return counts


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# PER-PHASE AND PER-PROJECT FACTS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

@dataclass
class PhaseFact:
    """Derived facts for one phase of a flattened tree."""
    project_id: str
    phase: Phase
    parent_id: Optional[str] = None
    level: int = 0
    is_overdue: bool = False
    delay_days: int = 0

    @property
    def phase_id(self) -> str:
        return self.phase.phase_id

    @property
    def department(self) -> str:
        return self.phase.department

    @property
    def is_urgent(self) -> bool:
        return self.phase.status == PhaseStatus.URGENT

    def to_dict(self) -> Dict[str, Any]:
        return {
            'project_id': self.project_id,
            'phase_id': self.phase.phase_id,
            'name': self.phase.name,
            'department': self.phase.department,
            'status': self.phase.status.value,
            'parent_id': self.parent_id,
            'level': self.level,
            'is_overdue': self.is_overdue,
            'delay_days': self.delay_days,
            'is_urgent': self.is_urgent,
            'progress': self.phase.progress,
            'progress_source': self.phase.progress_source.value,
        }


def build_phase_facts(
    project_id: str,
    phases_with_context: Iterable[Tuple[Phase, Optional[str], int]],
    now: date
) -> List[PhaseFact]:
    """
    Classify phases (as yielded by phase_model.walk) as of `now`.
    """
    return [
        PhaseFact(
            project_id=project_id,
            phase=phase,
            parent_id=parent_id,
            level=level,
            is_overdue=is_overdue(phase, now),
            delay_days=delay_days(phase, now),
        )
        for phase, parent_id, level in phases_with_context
    ]


@dataclass
class ProjectRollup:
    """
    Rollup statistics for a single project.
    """
    project_id: str
    project_name: str
    status: str = "planning"

    total_phases: int = 0
    completed_phases: int = 0
    completion_rate: float = 0.0
    average_delay_days: float = 0.0
    overdue_count: int = 0
    urgent_count: int = 0
    upcoming_deadline_count: int = 0
    risk_score: float = 0.0

    budget: float = 0.0
    actual_cost: float = 0.0
    budget_utilization_pct: float = 0.0

    # Host-reported versus bottom-up progress
    reported_progress: int = 0
    rollup_progress: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'project_id': self.project_id,
            'project_name': self.project_name,
            'status': self.status,
            'total_phases': self.total_phases,
            'completed_phases': self.completed_phases,
            'completion_rate': round(self.completion_rate, 2),
            'average_delay_days': round(self.average_delay_days, 2),
            'overdue_count': self.overdue_count,
            'urgent_count': self.urgent_count,
            'upcoming_deadline_count': self.upcoming_deadline_count,
            'risk_score': round(self.risk_score, 1),
            'budget': round(self.budget, 2),
            'actual_cost': round(self.actual_cost, 2),
            'budget_utilization_pct': round(self.budget_utilization_pct, 1),
            'reported_progress': self.reported_progress,
            'rollup_progress': round(self.rollup_progress, 2),
        }


def compute_project_rollup(
    project: Project,
    phases: Sequence[Phase],
    now: date,
    upcoming_window_days: int = DEFAULT_UPCOMING_WINDOW_DAYS
) -> ProjectRollup:
    """
    Compute rollup statistics for one project over its selected, valid phases.

    Args:
        project: Project being summarised (financials, reported progress)
        phases: Phases that feed the aggregates
        now: Evaluation date
        upcoming_window_days: Horizon for upcoming deadlines

    Returns:
        ProjectRollup
    """
    rollup = ProjectRollup(
        project_id=project.project_id,
        project_name=project.name,
        status=project.status.value,
        budget=project.budget,
        actual_cost=project.actual_cost,
        reported_progress=project.total_progress,
    )

    rollup.total_phases = len(phases)
    rollup.completed_phases = sum(1 for p in phases if p.status == PhaseStatus.COMPLETED)
    rollup.completion_rate = completion_rate(phases)
    rollup.average_delay_days = average_delay_days(phases, now)
    rollup.overdue_count = overdue_count(phases, now)
    rollup.urgent_count = urgent_count(phases)
    rollup.upcoming_deadline_count = upcoming_deadline_count(phases, now, upcoming_window_days)
    rollup.risk_score = risk_score(phases, now)

    rollup.budget_utilization_pct = 100.0 * safe_divide(project.actual_cost, project.budget)

    if phases:
        rollup.rollup_progress = float(np.mean([p.rollup_progress() for p in phases]))

    return rollup
