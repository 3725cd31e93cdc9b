"""
════════════════════════════════════════════════════════════════════════════════════════════════════
PROJECT ANALYTICS API - REST Endpoints for Capital Project Analytics
════════════════════════════════════════════════════════════════════════════════════════════════════

Endpoints:
- GET  /analytics/status       - Engine status and active configuration
- POST /analytics/metrics      - Portfolio and per-project rollup
- POST /analytics/departments  - Ranked department performance
- POST /analytics/forecast     - Completion forecasts for in-flight phases
- POST /analytics/trends       - Monthly history (30d / 90d / 1y)
- POST /analytics/risk         - Risk and budget buckets
- POST /analytics/validate     - Pre-flight structural checks

Every request carries the full snapshot; the router holds no state. Data
problems come back as diagnostics in a 200 response, malformed bodies as 422.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter
from pydantic import BaseModel, Field

from ..engine_config import EngineConfig, EngineSettings
from .analytics_service import (
    assess_risk,
    compute_department_performance,
    compute_forecast,
    compute_project_metrics,
    compute_trends,
    validate,
)
from .diagnostics import DiagnosticKind
from .phase_model import PhaseStatus, ProjectStatus
from .trend_engine import Timeframe

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analytics", tags=["Project Analytics"])


# ═══════════════════════════════════════════════════════════════════════════════
# REQUEST MODELS
# ═══════════════════════════════════════════════════════════════════════════════

class ComplianceCheckpointInput(BaseModel):
    """Compliance checkpoint input."""
    id: str
    title: str = ""
    due_date: Optional[str] = None
    status: str = "pending"
    priority: str = "medium"
    responsible_role: str = ""
    description: str = ""
    documents: List[str] = Field(default_factory=list)


class PhaseInput(BaseModel):
    """Phase input (dates as ISO strings; unparsable dates become diagnostics)."""
    id: str
    name: str = ""
    description: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    status: str = "not_started"
    progress: float = Field(0, ge=0, le=100)
    responsible_role: str = ""
    department: str = ""
    sub_phases: List["PhaseInput"] = Field(default_factory=list)
    dependencies: List[str] = Field(default_factory=list)
    documents: List[str] = Field(default_factory=list)
    compliance_checkpoints: List[ComplianceCheckpointInput] = Field(default_factory=list)


PhaseInput.model_rebuild()


class ProjectInput(BaseModel):
    """Project input."""
    id: str
    name: str = ""
    description: str = ""
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    status: str = "planning"
    total_progress: float = Field(0, ge=0, le=100)
    budget: float = Field(0, ge=0)
    actual_cost: float = Field(0, ge=0)
    risk_level: str = "low"
    phases: List[PhaseInput] = Field(default_factory=list)


class AnalyticsRequest(BaseModel):
    """Snapshot plus optional per-call overrides of the engine settings."""
    projects: List[ProjectInput] = Field(default_factory=list)
    as_of: Optional[date] = None
    include_sub_phases: Optional[bool] = None
    upcoming_window_days: Optional[int] = Field(None, ge=0)
    trend_window_days: Optional[int] = Field(None, ge=0)
    compliance_due_soon_days: Optional[int] = Field(None, ge=0)
    min_completed_history: Optional[int] = Field(None, ge=0)


class TrendRequest(AnalyticsRequest):
    """Trend request."""
    timeframe: Timeframe = Timeframe.LAST_90_DAYS


class ValidationRequest(BaseModel):
    projects: List[ProjectInput] = Field(default_factory=list)


# ═══════════════════════════════════════════════════════════════════════════════
# HELPERS
# ═══════════════════════════════════════════════════════════════════════════════

_CONFIG_FIELDS = (
    "include_sub_phases",
    "upcoming_window_days",
    "trend_window_days",
    "compliance_due_soon_days",
    "min_completed_history",
)


def _records(projects: List[ProjectInput]) -> List[Dict[str, Any]]:
    return [p.model_dump() for p in projects]


def _config(data: AnalyticsRequest) -> EngineConfig:
    overrides = {
        name: getattr(data, name)
        for name in _CONFIG_FIELDS
        if getattr(data, name) is not None
    }
    return EngineSettings.get_config().with_overrides(**overrides)


# ═══════════════════════════════════════════════════════════════════════════════
# ENDPOINTS
# ═══════════════════════════════════════════════════════════════════════════════

@router.get("/status")
async def get_status():
    """Get analytics engine status."""
    return {
        "service": "Project Analytics",
        "version": "1.0.0",
        "status": "operational",
        "config": EngineSettings.get_config().to_dict(),
        "phase_statuses": [s.value for s in PhaseStatus],
        "project_statuses": [s.value for s in ProjectStatus],
        "timeframes": [t.value for t in Timeframe],
        "diagnostic_kinds": [k.value for k in DiagnosticKind],
    }


@router.post("/metrics")
async def project_metrics(data: AnalyticsRequest):
    """
    Portfolio metrics.

    Completion rate, delay, risk score and budget variance over the selected
    phases of every acyclic project, plus one rollup per project.
    """
    metrics = compute_project_metrics(_records(data.projects), data.as_of, _config(data))
    return metrics.to_dict()


@router.post("/departments")
async def department_performance(data: AnalyticsRequest):
    """Ranked department performance."""
    report = compute_department_performance(_records(data.projects), data.as_of, _config(data))
    return report.to_dict()


@router.post("/forecast")
async def forecast(data: AnalyticsRequest):
    """Predicted completion dates for not_started / in_progress phases."""
    report = compute_forecast(_records(data.projects), data.as_of, _config(data))
    return report.to_dict()


@router.post("/trends")
async def trends(data: TrendRequest):
    """Monthly completion, risk and budget utilization history (default 90d)."""
    report = compute_trends(_records(data.projects), data.timeframe, data.as_of, _config(data))
    return report.to_dict()


@router.post("/risk")
async def risk(data: AnalyticsRequest):
    """Risk and budget assessment."""
    assessment = assess_risk(_records(data.projects), data.as_of, _config(data))
    return assessment.to_dict()


@router.post("/validate")
async def validate_snapshot(data: ValidationRequest):
    """
    Pre-flight validation.

    Reports dependency cycles and phases missing department, start_date or
    end_date without computing any metric.
    """
    result = validate(_records(data.projects))
    return result.to_dict()
