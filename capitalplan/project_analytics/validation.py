"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    CAPITALPLAN — SNAPSHOT VALIDATION & PREPARATION
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Turns a host snapshot (Project objects or plain records) into the prepared,
classified phase sets consumed by the analytics engines.

PIPELINE (map → reduce)
═══════════════════════

    map, per project:
        1. build the phase tree (Project.from_dict)
        2. cycle check                       → CyclicDependencyError: project dropped
        3. unknown dependency ids            → warning
        4. select phases (top-level | all)
        5. required fields per phase         → MissingRequiredFieldError: phase dropped
        6. end_date < start_date             → warning, phase kept
        7. classify (overdue, delay days)

    reduce:
        concatenate prepared projects, collect diagnostics

Nothing raised in steps 2 and 5 escapes: errors become Diagnostic records.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..engine_config import EngineConfig, resolve_config
from .diagnostics import (
    CyclicDependencyError,
    Diagnostic,
    DiagnosticKind,
    MissingRequiredFieldError,
    Severity,
    has_errors,
)
from .phase_model import (
    Phase,
    Project,
    coerce_project,
    flatten,
    select_phases,
    unknown_dependencies,
    walk,
)
from .rollup_engine import PhaseFact, build_phase_facts

logger = logging.getLogger(__name__)


REQUIRED_FIELDS = ('department', 'start_date', 'end_date')


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# DATA STRUCTURES
# ════════════════════════════════════════════════════════════════════════════════════════════════════

@dataclass
class PreparedProject:
    """
    A project that passed the cycle check.

    Attributes:
        project: The project record
        tree_facts: Facts for every phase of the tree (pre-order)
        selected_facts: Facts for the phases selected by include_sub_phases
        facts: Selected phases that also carry all required fields
    """
    project: Project
    tree_facts: List[PhaseFact] = field(default_factory=list)
    selected_facts: List[PhaseFact] = field(default_factory=list)
    facts: List[PhaseFact] = field(default_factory=list)

    @property
    def project_id(self) -> str:
        return self.project.project_id

    @property
    def phases(self) -> List[Phase]:
        return [f.phase for f in self.facts]


@dataclass
class AnalyticsSnapshot:
    """Prepared snapshot for one analysis pass."""
    as_of: date
    config: EngineConfig
    prepared: List[PreparedProject] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)
    projects_received: int = 0

    @property
    def projects(self) -> List[Project]:
        return [p.project for p in self.prepared]

    @property
    def facts(self) -> List[PhaseFact]:
        return [f for p in self.prepared for f in p.facts]

    @property
    def phases(self) -> List[Phase]:
        return [f.phase for f in self.facts]


@dataclass
class ValidationResult:
    """Outcome of a pre-flight validation call."""
    is_valid: bool = True
    projects_checked: int = 0
    phases_checked: int = 0
    valid_project_ids: List[str] = field(default_factory=list)
    invalid_project_ids: List[str] = field(default_factory=list)
    diagnostics: List[Diagnostic] = field(default_factory=list)

    @property
    def errors(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.ERROR]

    @property
    def warnings(self) -> List[Diagnostic]:
        return [d for d in self.diagnostics if d.severity == Severity.WARNING]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'is_valid': self.is_valid,
            'projects_checked': self.projects_checked,
            'phases_checked': self.phases_checked,
            'valid_project_ids': list(self.valid_project_ids),
            'invalid_project_ids': list(self.invalid_project_ids),
            'error_count': len(self.errors),
            'warning_count': len(self.warnings),
            'diagnostics': [d.to_dict() for d in self.diagnostics],
        }


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# PHASE CHECKS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def missing_required_fields(phase: Phase) -> List[str]:
    """Required fields that are missing or unparsable on a phase."""
    missing = []
    if not phase.department:
        missing.append('department')
    if phase.start_date is None:
        missing.append('start_date')
    if phase.end_date is None:
        missing.append('end_date')
    return missing


def check_required_fields(project_id: str, phase: Phase) -> None:
    """
    Raises:
        MissingRequiredFieldError: if department, start_date or end_date is absent
    """
    missing = missing_required_fields(phase)
    if missing:
        raise MissingRequiredFieldError(project_id, phase.phase_id, missing)


def _phase_diagnostics(project_id: str, phase: Phase) -> Tuple[bool, List[Diagnostic]]:
    """(phase usable for aggregates, diagnostics) for one phase."""
    diagnostics: List[Diagnostic] = []
    try:
        check_required_fields(project_id, phase)
    except MissingRequiredFieldError as exc:
        diagnostic = Diagnostic.from_missing_fields(exc)
        unparsable = [f for f in exc.fields if phase.parse_errors.get(f) == 'unparsable']
        if unparsable:
            diagnostic.message += f" (unparsable: {', '.join(unparsable)})"
        logger.warning(diagnostic.message)
        return False, [diagnostic]

    if phase.end_date < phase.start_date:
        diagnostics.append(Diagnostic(
            kind=DiagnosticKind.INVALID_DATE_RANGE,
            severity=Severity.WARNING,
            message=(
                f"Project {project_id}: phase {phase.phase_id} ends "
                f"({phase.end_date.isoformat()}) before it starts ({phase.start_date.isoformat()})"
            ),
            project_id=project_id,
            phase_id=phase.phase_id,
        ))
    return True, diagnostics


def _unknown_dependency_diagnostics(project: Project) -> List[Diagnostic]:
    return [
        Diagnostic(
            kind=DiagnosticKind.UNKNOWN_DEPENDENCY,
            severity=Severity.WARNING,
            message=f"Project {project.project_id}: phase {phase_id} depends on unknown phase {dep}",
            project_id=project.project_id,
            phase_id=phase_id,
            ids=[dep],
        )
        for phase_id, dep in unknown_dependencies(project)
    ]


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# PREPARATION
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def prepare_project(
    project: Project,
    now: date,
    config: EngineConfig
) -> Tuple[Optional[PreparedProject], List[Diagnostic]]:
    """
    Map step: validate and classify one project.

    Returns:
        (PreparedProject or None when the project has a dependency cycle, diagnostics)
    """
    try:
        flatten(project, check_cycles=True)
    except CyclicDependencyError as exc:
        logger.warning(f"Excluding project {project.project_id}: {exc}")
        return None, [Diagnostic.from_cycle(exc)]

    diagnostics = _unknown_dependency_diagnostics(project)

    tree_facts = build_phase_facts(project.project_id, walk(project), now)
    selected = {id(p) for p in select_phases(project, config.include_sub_phases)}
    selected_facts = [f for f in tree_facts if id(f.phase) in selected]

    facts = []
    for fact in selected_facts:
        usable, phase_diagnostics = _phase_diagnostics(project.project_id, fact.phase)
        diagnostics.extend(phase_diagnostics)
        if usable:
            facts.append(fact)

    logger.debug(
        f"Project {project.project_id}: {len(tree_facts)} phases in tree, "
        f"{len(selected_facts)} selected, {len(facts)} usable"
    )

    return PreparedProject(
        project=project,
        tree_facts=tree_facts,
        selected_facts=selected_facts,
        facts=facts,
    ), diagnostics


def prepare_snapshot(
    projects: Iterable[Any],
    now: Optional[date] = None,
    config: Optional[EngineConfig] = None
) -> AnalyticsSnapshot:
    """
    Prepare a full snapshot: map prepare_project over projects, then merge.

    Args:
        projects: Project objects or plain host records
        now: Evaluation date (defaults to today)
        config: Engine config (defaults to EngineSettings)

    Returns:
        AnalyticsSnapshot
    """
    config = resolve_config(config)
    snapshot = AnalyticsSnapshot(as_of=now or date.today(), config=config)

    for item in projects:
        snapshot.projects_received += 1
        project = coerce_project(item)
        prepared, diagnostics = prepare_project(project, snapshot.as_of, config)
        snapshot.diagnostics.extend(diagnostics)
        if prepared is not None:
            snapshot.prepared.append(prepared)

    logger.info(
        f"Prepared {len(snapshot.prepared)}/{snapshot.projects_received} projects, "
        f"{len(snapshot.facts)} phases, {len(snapshot.diagnostics)} diagnostics"
    )
    return snapshot


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# PRE-FLIGHT VALIDATION
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def validate(projects: Iterable[Any]) -> ValidationResult:
    """
    Cycle detection and required-field checks over every phase of every tree,
    without computing any metric.
    """
    result = ValidationResult()

    for item in projects:
        project = coerce_project(item)
        result.projects_checked += 1

        try:
            phases = flatten(project, check_cycles=True)
        except CyclicDependencyError as exc:
            result.diagnostics.append(Diagnostic.from_cycle(exc))
            result.invalid_project_ids.append(project.project_id)
            result.phases_checked += project.num_phases
            continue

        project_diagnostics = _unknown_dependency_diagnostics(project)
        for phase in phases:
            _, phase_diagnostics = _phase_diagnostics(project.project_id, phase)
            project_diagnostics.extend(phase_diagnostics)
        result.phases_checked += len(phases)

        result.diagnostics.extend(project_diagnostics)
        if has_errors(project_diagnostics):
            result.invalid_project_ids.append(project.project_id)
        else:
            result.valid_project_ids.append(project.project_id)

    result.is_valid = not has_errors(result.diagnostics)
    return result
