"""
════════════════════════════════════════════════════════════════════════════════════════════════════
TESTS - Department Performance Engine
════════════════════════════════════════════════════════════════════════════════════════════════════

Testes para métricas e ranking de departamentos.
"""

import pytest
from datetime import timedelta

from capitalplan.project_analytics.department_performance_engine import (
    DepartmentPerformance,
    PerformanceTrend,
    analyze_departments,
    classify_department_risk,
    classify_performance_trend,
    compute_department_metrics,
    efficiency_index,
    get_department_summary_table,
    rank_departments,
)
from capitalplan.project_analytics.phase_model import PhaseStatus, Project, RiskLevel
from capitalplan.project_analytics.rollup_engine import build_phase_facts
from capitalplan.project_analytics.validation import prepare_snapshot


def _entries(phases, now, budget_share=1.0, cost_share=0.5):
    facts = build_phase_facts("P", [(p, None, 0) for p in phases], now)
    return [(f, budget_share, cost_share) for f in facts]


class TestClassification:
    """Testes para risco, eficiência e tendência."""

    def test_risk_level_boundaries(self):
        """Rácio exatamente 0.3 é medium; acima é high."""
        assert classify_department_risk(3, 10) == RiskLevel.MEDIUM
        assert classify_department_risk(4, 10) == RiskLevel.HIGH
        assert classify_department_risk(1, 10) == RiskLevel.LOW
        assert classify_department_risk(2, 10) == RiskLevel.MEDIUM
        assert classify_department_risk(0, 0) == RiskLevel.LOW

    def test_efficiency(self):
        assert efficiency_index(80.0, 0.0) == 80.0
        assert efficiency_index(80.0, 4.0) == 20.0
        assert efficiency_index(100.0, 0.5) == 100.0

    def test_trend(self):
        assert classify_performance_trend(None, 50.0) == PerformanceTrend.STABLE
        assert classify_performance_trend(60.0, 50.0) == PerformanceTrend.IMPROVING
        assert classify_performance_trend(40.0, 50.0) == PerformanceTrend.STABLE
        assert classify_performance_trend(39.9, 50.0) == PerformanceTrend.DECLINING


class TestDepartmentMetrics:
    """Testes para compute_department_metrics."""

    def test_ten_phases_three_overdue(self, make_phase, now):
        """10 fases, 3 atrasadas em média 6 dias: atraso 6.0, risco medium."""
        phases = [
            make_phase("late1", status=PhaseStatus.IN_PROGRESS, end=now - timedelta(days=4)),
            make_phase("late2", status=PhaseStatus.IN_PROGRESS, end=now - timedelta(days=6)),
            make_phase("late3", status=PhaseStatus.DELAYED, end=now - timedelta(days=8)),
        ]
        phases += [
            make_phase(f"done{i}", status=PhaseStatus.COMPLETED, end=now - timedelta(days=20))
            for i in range(5)
        ]
        phases += [
            make_phase(f"open{i}", status=PhaseStatus.IN_PROGRESS, end=now + timedelta(days=20))
            for i in range(2)
        ]

        perf = compute_department_metrics("Construction", _entries(phases, now), now)

        assert perf.total_phases == 10
        assert perf.overdue_phases == 3
        assert perf.average_delay_days == 6.0
        assert perf.risk_level == RiskLevel.MEDIUM
        assert perf.completion_rate == 50.0
        assert perf.pending_phases == 5
        assert perf.efficiency == pytest.approx(8.33)
        assert perf.budget_allocated == 10.0
        assert perf.budget_used == 5.0
        assert perf.budget_utilization_pct == 50.0

    def test_recent_trend_and_team(self, make_phase, now):
        phases = [
            make_phase("old", status=PhaseStatus.IN_PROGRESS, start=now - timedelta(days=90),
                       end=now + timedelta(days=10), responsible_role="PM"),
            make_phase("new", status=PhaseStatus.COMPLETED, start=now - timedelta(days=30),
                       end=now - timedelta(days=1), responsible_role="Engineer"),
            make_phase("future", start=now + timedelta(days=5), end=now + timedelta(days=50),
                       responsible_role="PM"),
        ]
        perf = compute_department_metrics("Engineering", _entries(phases, now), now)

        assert perf.recent_phases == 1
        assert perf.recent_completion_rate == 100.0
        assert perf.performance_trend == PerformanceTrend.IMPROVING
        assert perf.team_size == 2
        assert perf.last_activity == now - timedelta(days=1)


class TestRanking:
    """Testes para o ranking de departamentos."""

    def test_order_and_delta(self):
        perfs = [
            DepartmentPerformance(department="Legal", completion_rate=100.0, average_delay_days=0.0),
            DepartmentPerformance(department="Procurement", completion_rate=0.0, average_delay_days=10.0),
            DepartmentPerformance(department="Construction", completion_rate=0.0, average_delay_days=0.0),
            DepartmentPerformance(department="Engineering", completion_rate=100.0, average_delay_days=0.0),
        ]
        ranking = rank_departments(perfs)

        assert ranking.ranking == ["Engineering", "Legal", "Construction", "Procurement"]
        assert [d.rank for d in ranking.departments] == [1, 2, 3, 4]
        assert ranking.mean_completion_rate == 50.0
        assert ranking.get("Legal").delta_vs_mean == 50.0
        assert ranking.get("Procurement").delta_vs_mean == -50.0
        # inputs untouched
        assert perfs[0].rank == 0

    def test_empty(self):
        ranking = rank_departments([])
        assert ranking.departments == []
        assert ranking.mean_completion_rate == 0.0

    def test_sample_snapshot(self, sample_projects, now):
        snapshot = prepare_snapshot(sample_projects, now)
        ranking = analyze_departments(snapshot.prepared, now)

        assert ranking.ranking == ["Engineering", "Legal", "Construction", "Procurement"]
        procurement = ranking.get("Procurement")
        assert procurement.average_delay_days == 10.0
        assert procurement.risk_level == RiskLevel.HIGH
        # P1 budget 12.0 over 4 phases, P2 8.0 over 2 phases
        assert ranking.get("Engineering").budget_allocated == pytest.approx(3.0 + 4.0)
        assert ranking.get("Construction").budget_allocated == pytest.approx(3.0 + 4.0)

    def test_idempotent(self, sample_projects, now):
        """Chamadas repetidas sobre o mesmo snapshot dão o mesmo ranking."""
        first = analyze_departments(prepare_snapshot(sample_projects, now).prepared, now)
        second = analyze_departments(prepare_snapshot(sample_projects, now).prepared, now)

        assert first.to_dict() == second.to_dict()

    def test_summary_table(self, sample_projects, now):
        ranking = analyze_departments(prepare_snapshot(sample_projects, now).prepared, now)
        table = get_department_summary_table(ranking)

        assert len(table) == 4
        assert list(table["Department"]) == ranking.ranking
        assert table.iloc[0]["Rank"] == 1
