"""
═══════════════════════════════════════════════════════════════════════════════════════════════════════
                    CAPITALPLAN — RISK & BUDGET ANALYZER
═══════════════════════════════════════════════════════════════════════════════════════════════════════

Human-readable bucketing of the rollup risk score and budget variance.

BUCKETS
═══════

Risk score RS ∈ [1, 10]:

    ┌────────────┬──────────┐
    │ RS ≥ 7     │ High     │
    │ 5 ≤ RS < 7 │ Medium   │
    │ RS < 5     │ Low      │
    └────────────┴──────────┘

Budget variance BV = 100 · (actual - budget) / budget:

    BV > 0   →  Over Budget   (spend above budget)
    BV ≤ 0   →  Under Budget  (spend at or below budget)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Dict, Sequence

from .phase_model import Phase, Project
from .rollup_engine import budget_variance_percent, risk_score

logger = logging.getLogger(__name__)


RISK_HIGH_THRESHOLD = 7.0
RISK_MEDIUM_THRESHOLD = 5.0


class RiskBucket(str, Enum):
    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class BudgetBucket(str, Enum):
    OVER_BUDGET = "Over Budget"
    UNDER_BUDGET = "Under Budget"


def risk_bucket(score: float) -> RiskBucket:
    """Classify a risk score."""
    if score >= RISK_HIGH_THRESHOLD:
        return RiskBucket.HIGH
    elif score >= RISK_MEDIUM_THRESHOLD:
        return RiskBucket.MEDIUM
    return RiskBucket.LOW


def budget_bucket(variance_percent: float) -> BudgetBucket:
    """Classify a budget variance (negative variance is under-spend)."""
    if variance_percent > 0:
        return BudgetBucket.OVER_BUDGET
    return BudgetBucket.UNDER_BUDGET


@dataclass
class RiskAssessment:
    """Risk and budget assessment for a set of projects."""
    risk_score: float = 0.0
    risk_bucket: RiskBucket = RiskBucket.LOW
    budget_variance_percent: float = 0.0
    budget_bucket: BudgetBucket = BudgetBucket.UNDER_BUDGET

    def to_dict(self) -> Dict[str, Any]:
        return {
            'risk_score': round(self.risk_score, 1),
            'risk_bucket': self.risk_bucket.value,
            'budget_variance_percent': round(self.budget_variance_percent, 2),
            'budget_bucket': self.budget_bucket.value,
        }


def assess(
    projects: Sequence[Project],
    phases: Sequence[Phase],
    now: date
) -> RiskAssessment:
    """
    Assess risk and budget position.

    Args:
        projects: Projects whose financials are aggregated
        phases: Selected, valid phases of those projects
        now: Evaluation date

    Returns:
        RiskAssessment (pure; nothing is mutated)
    """
    score = risk_score(phases, now)
    variance = budget_variance_percent(projects)

    return RiskAssessment(
        risk_score=score,
        risk_bucket=risk_bucket(score),
        budget_variance_percent=variance,
        budget_bucket=budget_bucket(variance),
    )
