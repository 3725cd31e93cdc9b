"""
Fixtures comuns para os testes de analytics de projetos.
"""
import pytest
from datetime import date
from fastapi.testclient import TestClient

from capitalplan.api import app
from capitalplan.engine_config import EngineConfig, EngineSettings
from capitalplan.project_analytics.phase_model import Phase, PhaseStatus


@pytest.fixture(autouse=True)
def reset_engine_settings(monkeypatch):
    """Isola cada teste das variáveis de ambiente CAPITALPLAN_*."""
    for var in (
        "CAPITALPLAN_INCLUDE_SUB_PHASES",
        "CAPITALPLAN_UPCOMING_WINDOW_DAYS",
        "CAPITALPLAN_TREND_WINDOW_DAYS",
        "CAPITALPLAN_COMPLIANCE_DUE_SOON_DAYS",
        "CAPITALPLAN_MIN_COMPLETED_HISTORY",
    ):
        monkeypatch.delenv(var, raising=False)
    EngineSettings.reset()
    yield
    EngineSettings.reset()


@pytest.fixture
def now():
    """Data de avaliação fixa."""
    return date(2024, 6, 15)


@pytest.fixture
def default_config():
    return EngineConfig()


@pytest.fixture
def test_client():
    """Cliente de teste FastAPI."""
    return TestClient(app)


@pytest.fixture
def make_phase():
    """Fábrica de fases com defaults válidos."""
    def _make(
        phase_id,
        status=PhaseStatus.NOT_STARTED,
        start=date(2024, 1, 1),
        end=date(2024, 12, 31),
        department="Engineering",
        **kwargs
    ):
        return Phase(
            phase_id=phase_id,
            name=kwargs.pop("name", phase_id),
            start_date=start,
            end_date=end,
            status=status,
            department=department,
            **kwargs
        )
    return _make


@pytest.fixture
def sample_projects():
    """
    Dois projetos de exemplo (registos do host, chaves camelCase).

    A 2024-06-15:
        P1: ph1, ph2 concluídas; ph3 em curso (fim 2024-07-10); ph4 urgente e 10 dias atrasada
        P2: q1 concluída; q2 por iniciar (fim 2024-08-30)
    """
    return [
        {
            "id": "P1",
            "name": "Hospital Wing",
            "status": "active",
            "totalProgress": 60,
            "budget": 12.0,
            "actualCost": 4.2,
            "riskLevel": "medium",
            "phases": [
                {
                    "id": "ph1",
                    "name": "Design",
                    "startDate": "2024-01-01",
                    "endDate": "2024-03-01",
                    "status": "completed",
                    "progress": 100,
                    "responsibleRole": "Lead Architect",
                    "department": "Engineering",
                },
                {
                    "id": "ph2",
                    "name": "Permits",
                    "startDate": "2024-02-01",
                    "endDate": "2024-04-01",
                    "status": "completed",
                    "progress": 100,
                    "responsibleRole": "Counsel",
                    "department": "Legal",
                    "complianceCheckpoints": [
                        {
                            "id": "cp1",
                            "title": "Environmental permit",
                            "dueDate": "2024-03-15",
                            "status": "completed",
                            "priority": "high",
                        },
                    ],
                },
                {
                    "id": "ph3",
                    "name": "Foundation",
                    "startDate": "2024-04-01",
                    "endDate": "2024-07-10",
                    "status": "in_progress",
                    "progress": 40,
                    "responsibleRole": "Site Manager",
                    "department": "Construction",
                    "dependencies": ["ph1", "ph2"],
                    "subPhases": [
                        {
                            "id": "ph3a",
                            "name": "Excavation",
                            "startDate": "2024-04-01",
                            "endDate": "2024-05-15",
                            "status": "completed",
                            "progress": 100,
                            "responsibleRole": "Site Manager",
                            "department": "Construction",
                        },
                        {
                            "id": "ph3b",
                            "name": "Pouring",
                            "startDate": "2024-05-16",
                            "endDate": "2024-06-10",
                            "status": "in_progress",
                            "progress": 50,
                            "responsibleRole": "Concrete Lead",
                            "department": "Construction",
                            "dependencies": ["ph3a"],
                        },
                    ],
                    "complianceCheckpoints": [
                        {
                            "id": "cp2",
                            "title": "Structural inspection",
                            "dueDate": "2024-06-20",
                            "status": "pending",
                            "priority": "urgent",
                        },
                    ],
                },
                {
                    "id": "ph4",
                    "name": "Procurement",
                    "startDate": "2024-03-01",
                    "endDate": "2024-06-05",
                    "status": "urgent",
                    "progress": 70,
                    "responsibleRole": "Buyer",
                    "department": "Procurement",
                },
            ],
        },
        {
            "id": "P2",
            "name": "Water Treatment",
            "status": "active",
            "totalProgress": 30,
            "budget": 8.0,
            "actualCost": 3.0,
            "phases": [
                {
                    "id": "q1",
                    "name": "Survey",
                    "startDate": "2024-05-20",
                    "endDate": "2024-06-01",
                    "status": "completed",
                    "progress": 100,
                    "responsibleRole": "Surveyor",
                    "department": "Engineering",
                },
                {
                    "id": "q2",
                    "name": "Pipework",
                    "startDate": "2024-06-01",
                    "endDate": "2024-08-30",
                    "status": "not_started",
                    "progress": 0,
                    "responsibleRole": "Site Manager",
                    "department": "Construction",
                    "dependencies": ["q1"],
                },
            ],
        },
    ]


@pytest.fixture
def cyclic_project():
    """Projeto com dependências A -> B -> C -> A."""
    return {
        "id": "P3",
        "name": "Bridge",
        "budget": 100.0,
        "actualCost": 500.0,
        "phases": [
            {"id": "A", "name": "A", "startDate": "2024-01-01", "endDate": "2024-02-01",
             "department": "Engineering", "dependencies": ["C"]},
            {"id": "B", "name": "B", "startDate": "2024-01-01", "endDate": "2024-02-01",
             "department": "Engineering", "dependencies": ["A"]},
            {"id": "C", "name": "C", "startDate": "2024-01-01", "endDate": "2024-02-01",
             "department": "Engineering", "dependencies": ["B"]},
        ],
    }


@pytest.fixture
def incomplete_project():
    """Projeto com uma fase sem departamento e outra com data ilegível."""
    return {
        "id": "P4",
        "name": "Depot",
        "budget": 10.0,
        "actualCost": 5.0,
        "phases": [
            {"id": "d1", "name": "Clearing", "startDate": "2024-01-01", "endDate": "2024-02-01",
             "status": "completed", "department": "Construction"},
            {"id": "d2", "name": "Fencing", "startDate": "2024-02-01", "endDate": "2024-03-01",
             "status": "in_progress"},
            {"id": "d3", "name": "Paving", "startDate": "2024-03-01", "endDate": "not-a-date",
             "status": "in_progress", "department": "Construction"},
        ],
    }
