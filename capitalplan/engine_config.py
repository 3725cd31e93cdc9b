"""
CapitalPlan - Engine Configuration
==================================

Configuração do engine de analytics de fases.

Uso:
    from capitalplan.engine_config import EngineSettings

    config = EngineSettings.get_config()
    if config.include_sub_phases:
        ...

Configuração via variáveis de ambiente:
    CAPITALPLAN_INCLUDE_SUB_PHASES=true
    CAPITALPLAN_UPCOMING_WINDOW_DAYS=45
"""

from __future__ import annotations

import os
import logging
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════════
# CONFIG
# ═══════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class EngineConfig:
    """
    Configuração do engine.

    include_sub_phases: agregados usam a árvore completa em vez de apenas as
        fases de topo (desligado por defeito, o trabalho aninhado não é
        contado junto com o pai).
    upcoming_window_days: horizonte para prazos próximos.
    trend_window_days: janela "recente" para a tendência por departamento.
    compliance_due_soon_days: horizonte para checkpoints de compliance.
    min_completed_history: fases concluídas necessárias para usar o atraso
        médio do próprio departamento no forecast.
    """
    include_sub_phases: bool = False
    upcoming_window_days: int = 30
    trend_window_days: int = 30
    compliance_due_soon_days: int = 7
    min_completed_history: int = 2

    def with_overrides(self, **overrides: Any) -> 'EngineConfig':
        return replace(self, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'include_sub_phases': self.include_sub_phases,
            'upcoming_window_days': self.upcoming_window_days,
            'trend_window_days': self.trend_window_days,
            'compliance_due_soon_days': self.compliance_due_soon_days,
            'min_completed_history': self.min_completed_history,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# SETTINGS SINGLETON
# ═══════════════════════════════════════════════════════════════════════════════

class EngineSettings:
    """
    Singleton para a configuração do engine.

    Carrega configuração de variáveis de ambiente ou usa defaults.

    Uso:
        config = EngineSettings.get_config()
        EngineSettings.reset()  # recarregar após alterar o ambiente
    """

    _instance: Optional[EngineConfig] = None

    @classmethod
    def _load_from_env(cls) -> EngineConfig:
        """Carrega configuração de variáveis de ambiente."""
        values: Dict[str, Any] = {}

        bool_mapping = {
            "CAPITALPLAN_INCLUDE_SUB_PHASES": "include_sub_phases",
        }
        for env_var, attr_name in bool_mapping.items():
            value = os.environ.get(env_var)
            if value:
                values[attr_name] = value.lower() in ("true", "1", "yes")

        int_mapping = {
            "CAPITALPLAN_UPCOMING_WINDOW_DAYS": "upcoming_window_days",
            "CAPITALPLAN_TREND_WINDOW_DAYS": "trend_window_days",
            "CAPITALPLAN_COMPLIANCE_DUE_SOON_DAYS": "compliance_due_soon_days",
            "CAPITALPLAN_MIN_COMPLETED_HISTORY": "min_completed_history",
        }
        for env_var, attr_name in int_mapping.items():
            value = os.environ.get(env_var)
            if not value:
                continue
            try:
                parsed = int(value)
            except ValueError:
                logger.warning(f"Invalid value for {env_var}: {value}")
                continue
            if parsed < 0:
                logger.warning(f"Invalid value for {env_var}: {value}")
                continue
            values[attr_name] = parsed
            logger.info(f"Engine setting {attr_name} = {parsed}")

        return EngineConfig(**values)

    @classmethod
    def get_config(cls) -> EngineConfig:
        """Obtém configuração atual."""
        if cls._instance is None:
            cls._instance = cls._load_from_env()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Reset para recarregar config."""
        cls._instance = None


def resolve_config(config: Optional[EngineConfig] = None) -> EngineConfig:
    """Config por chamada; por defeito usa a config carregada do ambiente."""
    return config if config is not None else EngineSettings.get_config()
