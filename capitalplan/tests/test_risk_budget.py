"""
Testes para o analisador de risco e orçamento.
"""

from datetime import timedelta

from capitalplan.project_analytics.phase_model import PhaseStatus, Project
from capitalplan.project_analytics.risk_budget_analyzer import (
    BudgetBucket,
    RiskBucket,
    assess,
    budget_bucket,
    risk_bucket,
)


class TestBuckets:
    """Testes para os limites dos buckets."""

    def test_risk_bucket_thresholds(self):
        assert risk_bucket(10.0) == RiskBucket.HIGH
        assert risk_bucket(7.0) == RiskBucket.HIGH
        assert risk_bucket(6.9) == RiskBucket.MEDIUM
        assert risk_bucket(5.0) == RiskBucket.MEDIUM
        assert risk_bucket(4.9) == RiskBucket.LOW
        assert risk_bucket(0.0) == RiskBucket.LOW

    def test_budget_bucket_sign(self):
        """Variância negativa (gasto abaixo do orçamento) é Under Budget."""
        assert budget_bucket(-65.0) == BudgetBucket.UNDER_BUDGET
        assert budget_bucket(0.0) == BudgetBucket.UNDER_BUDGET
        assert budget_bucket(0.01) == BudgetBucket.OVER_BUDGET

    def test_bucket_labels(self):
        assert RiskBucket.HIGH.value == "High"
        assert BudgetBucket.OVER_BUDGET.value == "Over Budget"


class TestAssess:
    """Testes para assess()."""

    def test_budget_scenario(self, make_phase, now):
        """actual 4.2 / budget 12.0 -> -65.0, Under Budget."""
        project = Project(project_id="P", name="P", budget=12.0, actual_cost=4.2)
        assessment = assess([project], [make_phase("a", end=now + timedelta(days=10))], now)

        assert assessment.budget_variance_percent == -65.0
        assert assessment.budget_bucket == BudgetBucket.UNDER_BUDGET
        assert assessment.risk_score == 1.0
        assert assessment.risk_bucket == RiskBucket.LOW

    def test_high_risk(self, make_phase, now):
        phases = [
            make_phase("a", status=PhaseStatus.IN_PROGRESS, end=now - timedelta(days=3)),
            make_phase("b", status=PhaseStatus.URGENT, end=now + timedelta(days=3)),
        ]
        project = Project(project_id="P", name="P", budget=10.0, actual_cost=11.0)
        assessment = assess([project], phases, now)

        assert assessment.risk_score == 10.0
        assert assessment.risk_bucket == RiskBucket.HIGH
        assert assessment.budget_bucket == BudgetBucket.OVER_BUDGET

    def test_pure(self, make_phase, now):
        """assess não altera as entradas."""
        phase = make_phase("a", status=PhaseStatus.IN_PROGRESS, end=now - timedelta(days=3))
        project = Project(project_id="P", name="P", budget=10.0, actual_cost=5.0, phases=[phase])

        first = assess([project], [phase], now)
        second = assess([project], [phase], now)

        assert first == second
        assert phase.status == PhaseStatus.IN_PROGRESS
        assert project.actual_cost == 5.0

    def test_empty(self, now):
        data = assess([], [], now).to_dict()
        assert data == {
            "risk_score": 0.0,
            "risk_bucket": "Low",
            "budget_variance_percent": 0.0,
            "budget_bucket": "Under Budget",
        }
