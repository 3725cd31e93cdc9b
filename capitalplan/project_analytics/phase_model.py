"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    CAPITALPLAN — PHASE TREE MODEL
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Canonical in-memory representation of capital projects as trees of phases.

DEFINITION
══════════

A PROJECT is an ordered list of top-level phases. Every PHASE may be
decomposed into sub-phases (same shape, recursively) and may name other
phases of the same project that logically precede it (dependencies).

Notation:
─────────

Let:
    Φ(p)            Phases of project p, flattened in pre-order
    children(φ)     Sub-phases of phase φ
    deps(φ)         Ids of phases preceding φ

    Pre-order:   visit(φ) = [φ] ++ visit(children(φ)₁) ++ ... ++ visit(children(φ)ₖ)

Dependency graph:
    G(p) = (Φ(p), {φ → ψ : id(ψ) ∈ deps(φ)})

    Invariant: G(p) is acyclic. A cycle is an input error
    (CyclicDependencyError), never auto-repaired.

PROGRESS
────────

`progress` is authoritative as supplied by the host. A parent phase may
diverge from its children, so both readings are exposed:

    LEAF_REPORTED     progress of a phase without sub-phases
    ROLLUP_COMPUTED   mean of children's rollup progress (parent phases)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple

import numpy as np
import pandas as pd

from .diagnostics import CyclicDependencyError

logger = logging.getLogger(__name__)


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# ENUMS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

class PhaseStatus(str, Enum):
    """Phase workflow state (set by the host, never derived)."""
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DELAYED = "delayed"
    URGENT = "urgent"


class ProjectStatus(str, Enum):
    """Project lifecycle status."""
    PLANNING = "planning"
    ACTIVE = "active"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CheckpointStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    OVERDUE = "overdue"


class CheckpointPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class ProgressSource(str, Enum):
    """Where a phase's progress figure comes from."""
    LEAF_REPORTED = "leaf_reported"
    ROLLUP_COMPUTED = "rollup_computed"


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# PARSING HELPERS
# ════════════════════════════════════════════════════════════════════════════════════════════════════

MISSING = "missing"
UNPARSABLE = "unparsable"


def parse_date(value: Any) -> Tuple[Optional[date], Optional[str]]:
    """
    Parse a host-supplied calendar date.

    Accepts date, datetime and ISO-like strings.

    Returns:
        (date or None, None | "missing" | "unparsable")
    """
    if value is None or (isinstance(value, str) and not value.strip()):
        return None, MISSING
    if isinstance(value, datetime):
        return value.date(), None
    if isinstance(value, date):
        return value, None
    if not isinstance(value, str):
        return None, UNPARSABLE

    parsed = pd.to_datetime(value.strip(), errors='coerce')
    if pd.isna(parsed):
        return None, UNPARSABLE
    return parsed.date(), None


def _get(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """First present key among camelCase/snake_case spellings."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _parse_enum(enum_cls, value: Any, default):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        logger.warning(f"Unknown {enum_cls.__name__} value {value!r}; using {default.value}")
        return default


def _parse_progress(value: Any) -> int:
    try:
        progress = int(round(float(value)))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, progress))


def _parse_amount(value: Any) -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        return 0.0
    return max(0.0, amount)


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# DATA MODEL
# ════════════════════════════════════════════════════════════════════════════════════════════════════

@dataclass
class ComplianceCheckpoint:
    """A dated sub-obligation of a phase."""
    checkpoint_id: str
    title: str
    due_date: Optional[date] = None
    status: CheckpointStatus = CheckpointStatus.PENDING
    priority: CheckpointPriority = CheckpointPriority.MEDIUM
    responsible_role: str = ""
    description: str = ""
    documents: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'checkpoint_id': self.checkpoint_id,
            'title': self.title,
            'due_date': _iso(self.due_date),
            'status': self.status.value,
            'priority': self.priority.value,
            'responsible_role': self.responsible_role,
            'description': self.description,
            'documents': list(self.documents),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ComplianceCheckpoint':
        due_date, _ = parse_date(_get(data, 'dueDate', 'due_date'))
        return cls(
            checkpoint_id=str(_get(data, 'id', 'checkpoint_id', default='')),
            title=str(_get(data, 'title', default='')),
            due_date=due_date,
            status=_parse_enum(CheckpointStatus, _get(data, 'status', default='pending'), CheckpointStatus.PENDING),
            priority=_parse_enum(CheckpointPriority, _get(data, 'priority', default='medium'), CheckpointPriority.MEDIUM),
            responsible_role=str(_get(data, 'responsibleRole', 'responsible_role', default='')),
            description=str(_get(data, 'description', default='')),
            documents=list(_get(data, 'documents', default=[])),
        )


@dataclass
class Phase:
    """
    A schedulable unit of project work.

    Attributes:
        phase_id: Unique identifier within the project
        name: Human-readable name
        start_date / end_date: Calendar dates (end_date >= start_date)
        status: Workflow state supplied by the host
        progress: 0-100, authoritative for completion math
        responsible_role / department: Ownership (department is the grouping key)
        sub_phases: Nested phases (recursive)
        dependencies: Ids of phases that precede this one
        parse_errors: field -> "missing" | "unparsable", filled by from_dict
    """
    phase_id: str
    name: str
    description: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: PhaseStatus = PhaseStatus.NOT_STARTED
    progress: int = 0
    responsible_role: str = ""
    department: str = ""
    sub_phases: List['Phase'] = field(default_factory=list)
    dependencies: List[str] = field(default_factory=list)
    documents: List[str] = field(default_factory=list)
    compliance_checkpoints: List[ComplianceCheckpoint] = field(default_factory=list)
    parse_errors: Dict[str, str] = field(default_factory=dict)

    @property
    def is_leaf(self) -> bool:
        return not self.sub_phases

    @property
    def is_completed(self) -> bool:
        return self.status == PhaseStatus.COMPLETED

    @property
    def progress_source(self) -> ProgressSource:
        return ProgressSource.LEAF_REPORTED if self.is_leaf else ProgressSource.ROLLUP_COMPUTED

    def rollup_progress(self) -> float:
        """Bottom-up progress: own progress for a leaf, mean of children otherwise."""
        if self.is_leaf:
            return float(self.progress)
        return float(np.mean([child.rollup_progress() for child in self.sub_phases]))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'phase_id': self.phase_id,
            'name': self.name,
            'description': self.description,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'status': self.status.value,
            'progress': self.progress,
            'progress_source': self.progress_source.value,
            'rollup_progress': round(self.rollup_progress(), 2),
            'responsible_role': self.responsible_role,
            'department': self.department,
            'dependencies': list(self.dependencies),
            'documents': list(self.documents),
            'compliance_checkpoints': [cp.to_dict() for cp in self.compliance_checkpoints],
            'sub_phases': [sp.to_dict() for sp in self.sub_phases],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Phase':
        """Build a phase tree from a host record (camelCase or snake_case keys)."""
        parse_errors: Dict[str, str] = {}

        start_date, start_error = parse_date(_get(data, 'startDate', 'start_date'))
        if start_error:
            parse_errors['start_date'] = start_error
        end_date, end_error = parse_date(_get(data, 'endDate', 'end_date'))
        if end_error:
            parse_errors['end_date'] = end_error

        department = str(_get(data, 'department', default='')).strip()
        if not department:
            parse_errors['department'] = MISSING

        return cls(
            phase_id=str(_get(data, 'id', 'phase_id', default='')),
            name=str(_get(data, 'name', default='')),
            description=str(_get(data, 'description', default='')),
            start_date=start_date,
            end_date=end_date,
            status=_parse_enum(PhaseStatus, _get(data, 'status', default='not_started'), PhaseStatus.NOT_STARTED),
            progress=_parse_progress(_get(data, 'progress', default=0)),
            responsible_role=str(_get(data, 'responsibleRole', 'responsible_role', default='')).strip(),
            department=department,
            sub_phases=[cls.from_dict(sp) for sp in _get(data, 'subPhases', 'sub_phases', default=[])],
            dependencies=[str(d) for d in _get(data, 'dependencies', default=[])],
            documents=list(_get(data, 'documents', default=[])),
            compliance_checkpoints=[
                ComplianceCheckpoint.from_dict(cp)
                for cp in _get(data, 'complianceCheckpoints', 'compliance_checkpoints', default=[])
            ],
            parse_errors=parse_errors,
        )


@dataclass
class Project:
    """
    A capital project: an ordered list of top-level phases plus financials.

    total_progress is supplied independently by the host and is not required
    to equal any rollup of the phases.
    """
    project_id: str
    name: str
    description: str = ""
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    status: ProjectStatus = ProjectStatus.PLANNING
    total_progress: int = 0
    budget: float = 0.0
    actual_cost: float = 0.0
    risk_level: RiskLevel = RiskLevel.LOW
    phases: List[Phase] = field(default_factory=list)

    @property
    def num_phases(self) -> int:
        """Number of phases in the whole tree."""
        return sum(1 for _ in walk(self))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'project_id': self.project_id,
            'name': self.name,
            'description': self.description,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'status': self.status.value,
            'total_progress': self.total_progress,
            'budget': self.budget,
            'actual_cost': self.actual_cost,
            'risk_level': self.risk_level.value,
            'phases': [p.to_dict() for p in self.phases],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Project':
        """Deserialize from a host record."""
        start_date, _ = parse_date(_get(data, 'startDate', 'start_date'))
        end_date, _ = parse_date(_get(data, 'endDate', 'end_date'))
        return cls(
            project_id=str(_get(data, 'id', 'project_id', default='')),
            name=str(_get(data, 'name', default='')),
            description=str(_get(data, 'description', default='')),
            start_date=start_date,
            end_date=end_date,
            status=_parse_enum(ProjectStatus, _get(data, 'status', default='planning'), ProjectStatus.PLANNING),
            total_progress=_parse_progress(_get(data, 'totalProgress', 'total_progress', default=0)),
            budget=_parse_amount(_get(data, 'budget', default=0.0)),
            actual_cost=_parse_amount(_get(data, 'actualCost', 'actual_cost', default=0.0)),
            risk_level=_parse_enum(RiskLevel, _get(data, 'riskLevel', 'risk_level', default='low'), RiskLevel.LOW),
            phases=[Phase.from_dict(p) for p in _get(data, 'phases', default=[])],
        )


def coerce_project(item: Any) -> Project:
    """Accept either a Project or a plain host record."""
    if isinstance(item, Project):
        return item
    if isinstance(item, dict):
        return Project.from_dict(item)
    raise TypeError(f"Expected Project or dict, got {type(item).__name__}")


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# TREE TRAVERSAL
# ════════════════════════════════════════════════════════════════════════════════════════════════════

def walk(project: Project) -> Iterator[Tuple[Phase, Optional[str], int]]:
    """
    Pre-order traversal of a project's phase tree.

    Yields:
        (phase, parent_phase_id or None for top-level phases, tree level)
    """
    def _visit(phases: List[Phase], parent_id: Optional[str], level: int):
        for phase in phases:
            yield phase, parent_id, level
            yield from _visit(phase.sub_phases, phase.phase_id, level + 1)

    yield from _visit(project.phases, None, 0)


def flatten(project: Project, check_cycles: bool = True) -> List[Phase]:
    """
    Flatten a project's phase tree in pre-order (parent before sub-phases).

    Raises:
        CyclicDependencyError: if check_cycles and the dependency graph has a cycle
    """
    phases = [phase for phase, _, _ in walk(project)]
    if check_cycles:
        cycle = find_dependency_cycle(phases)
        if cycle:
            raise CyclicDependencyError(project.project_id, cycle)
    return phases


def select_phases(project: Project, include_sub_phases: bool = False) -> List[Phase]:
    """Phases that feed aggregates: top-level only, or the full flattening."""
    if include_sub_phases:
        return flatten(project, check_cycles=False)
    return list(project.phases)


def build_phase_index(phases: List[Phase]) -> Dict[str, Phase]:
    """Map phase_id -> phase (first occurrence wins)."""
    index: Dict[str, Phase] = {}
    for phase in phases:
        if phase.phase_id in index:
            logger.warning(f"Duplicate phase id '{phase.phase_id}'; keeping first occurrence")
            continue
        index[phase.phase_id] = phase
    return index


# ════════════════════════════════════════════════════════════════════════════════════════════════════
# DEPENDENCY GRAPH
# ════════════════════════════════════════════════════════════════════════════════════════════════════

_WHITE, _GREY, _BLACK = 0, 1, 2


def find_dependency_cycle(phases: List[Phase]) -> Optional[List[str]]:
    """
    Depth-first search for a dependency cycle.

    Edges run from a phase to each phase it depends on; ids not present in
    `phases` are ignored.

    Returns:
        The cycle as an ordered list of phase ids (A depends on B ... depends on A),
        or None for an acyclic graph.
    """
    index = build_phase_index(phases)
    state = {pid: _WHITE for pid in index}

    for root in index:
        if state[root] != _WHITE:
            continue

        state[root] = _GREY
        path = [root]
        stack = [iter(index[root].dependencies)]

        while stack:
            advanced = False
            for dep in stack[-1]:
                if dep not in index:
                    continue
                if state[dep] == _GREY:
                    return path[path.index(dep):]
                if state[dep] == _WHITE:
                    state[dep] = _GREY
                    path.append(dep)
                    stack.append(iter(index[dep].dependencies))
                    advanced = True
                    break
            if not advanced:
                state[path.pop()] = _BLACK
                stack.pop()

    return None


def check_dependency_cycles(project: Project) -> None:
    """Raise CyclicDependencyError if the project's dependency graph is cyclic."""
    flatten(project, check_cycles=True)


def unknown_dependencies(project: Project) -> List[Tuple[str, str]]:
    """(phase_id, dependency_id) pairs whose dependency is not a phase of the project."""
    phases = flatten(project, check_cycles=False)
    known = {p.phase_id for p in phases}
    return [
        (phase.phase_id, dep)
        for phase in phases
        for dep in phase.dependencies
        if dep not in known
    ]
