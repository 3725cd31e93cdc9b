"""
Testes para a configuração do engine.
"""

import pytest

from capitalplan.engine_config import EngineConfig, EngineSettings, resolve_config


class TestEngineSettings:
    """Testes para o singleton de configuração."""

    def test_defaults(self):
        config = EngineSettings.get_config()
        assert config == EngineConfig()
        assert config.include_sub_phases is False
        assert config.upcoming_window_days == 30
        assert config.min_completed_history == 2

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("CAPITALPLAN_INCLUDE_SUB_PHASES", "true")
        monkeypatch.setenv("CAPITALPLAN_UPCOMING_WINDOW_DAYS", "45")
        EngineSettings.reset()

        config = EngineSettings.get_config()
        assert config.include_sub_phases is True
        assert config.upcoming_window_days == 45

    def test_invalid_env_ignored(self, monkeypatch):
        monkeypatch.setenv("CAPITALPLAN_TREND_WINDOW_DAYS", "thirty")
        monkeypatch.setenv("CAPITALPLAN_MIN_COMPLETED_HISTORY", "-1")
        EngineSettings.reset()

        config = EngineSettings.get_config()
        assert config.trend_window_days == 30
        assert config.min_completed_history == 2

    def test_cached_until_reset(self, monkeypatch):
        first = EngineSettings.get_config()
        monkeypatch.setenv("CAPITALPLAN_COMPLIANCE_DUE_SOON_DAYS", "14")
        assert EngineSettings.get_config() is first

        EngineSettings.reset()
        assert EngineSettings.get_config().compliance_due_soon_days == 14


class TestEngineConfig:
    """Testes para EngineConfig."""

    def test_with_overrides(self):
        config = EngineConfig().with_overrides(include_sub_phases=True)
        assert config.include_sub_phases is True
        assert config.to_dict()["include_sub_phases"] is True

    def test_frozen(self):
        with pytest.raises(Exception):
            EngineConfig().include_sub_phases = True

    def test_resolve_prefers_explicit(self):
        explicit = EngineConfig(upcoming_window_days=7)
        assert resolve_config(explicit) is explicit
        assert resolve_config() == EngineSettings.get_config()
