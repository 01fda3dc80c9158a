"""
claims_config -- engine configuration.

Responsibility:
    Frozen configuration types for detectors, risk thresholds, workflow
    policy and the historical window, plus the YAML loader.  Services
    receive an ``EngineConfig`` by injection; ``get_default_config()``
    returns the packaged defaults.

Architecture position:
    Configuration -- sits above ``claims_kernel`` and below
    ``claims_engines`` / ``claims_services``.  The kernel MUST NEVER
    import from ``claims_config``.
"""

from __future__ import annotations

from pathlib import Path

from claims_config.loader import (
    compute_checksum,
    load_engine_config,
    load_rules,
    parse_approval_rule,
    parse_engine_config,
    parse_escalation_rule,
    parse_rules,
)
from claims_config.schema import (
    DetectorSettings,
    EngineConfig,
    RiskThresholds,
    WorkflowSettings,
)
from claims_kernel.domain.ports import HistoryWindow

DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "engine.yaml"


def get_default_config() -> EngineConfig:
    """Load the packaged default engine configuration."""
    return load_engine_config(DEFAULT_CONFIG_PATH)


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DetectorSettings",
    "EngineConfig",
    "HistoryWindow",
    "RiskThresholds",
    "WorkflowSettings",
    "compute_checksum",
    "get_default_config",
    "load_engine_config",
    "load_rules",
    "parse_approval_rule",
    "parse_engine_config",
    "parse_escalation_rule",
    "parse_rules",
]
