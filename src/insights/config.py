# ABOUTME: Declares the immutable configuration consumed by the risk and alert engines.
# ABOUTME: Loads YAML overrides on top of the documented defaults.

from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Tuple

import yaml

from .schemas import AlertFrequency


class InsightsConfigError(ValueError):
    """Raised when a configuration file cannot be turned into a config."""


@dataclass(frozen=True)
class RiskThresholds:
    grade_threshold: float = 70
    attendance_threshold: float = 0.8
    engagement_threshold: float = 0.6
    submission_rate_threshold: float = 0.8


@dataclass(frozen=True)
class EscalationRule:
    condition: str
    action: str
    delay: int = 0  # hours


@dataclass(frozen=True)
class AlertSettings:
    enable_automatic_alerts: bool = True
    alert_frequency: AlertFrequency = AlertFrequency.DAILY
    escalation_rules: Tuple[EscalationRule, ...] = (
        EscalationRule(condition="risk_level_critical", action="immediate_alert", delay=0),
        EscalationRule(condition="risk_level_high", action="daily_alert", delay=24),
    )


@dataclass(frozen=True)
class PredictionSettings:
    enable_predictions: bool = True
    update_frequency: str = "weekly"
    confidence_threshold: float = 0.7


@dataclass(frozen=True)
class PerformanceInsightsConfig:
    """Process-wide settings injected into engines at construction time."""

    risk_thresholds: RiskThresholds = field(default_factory=RiskThresholds)
    alert_settings: AlertSettings = field(default_factory=AlertSettings)
    prediction_settings: PredictionSettings = field(default_factory=PredictionSettings)

    def merged(self, **sections: Any) -> "PerformanceInsightsConfig":
        """
        Return a copy with the given sections updated.

        A section may be its dataclass, which replaces it whole, or a mapping
        of keys merged over the current section values.
        """
        unknown = set(sections) - set(_SECTION_BUILDERS)
        if unknown:
            raise InsightsConfigError(f"Unknown config section(s): {', '.join(sorted(unknown))}")

        current = config_to_dict(self)
        updates = {}
        for name, value in sections.items():
            section_type = _SECTION_TYPES[name]
            if isinstance(value, section_type):
                updates[name] = value
            elif isinstance(value, Mapping):
                updates[name] = _build_section(name, current[name], value)
            else:
                raise InsightsConfigError(
                    f"Section '{name}' must be a {section_type.__name__} or a mapping, got {type(value).__name__}."
                )
        return replace(self, **updates)


DEFAULT_CONFIG = PerformanceInsightsConfig()


def _build_alert_settings(raw: Mapping[str, Any]) -> AlertSettings:
    values = dict(raw)
    if "alert_frequency" in values:
        try:
            values["alert_frequency"] = AlertFrequency(values["alert_frequency"])
        except ValueError as exc:
            raise InsightsConfigError(f"Invalid alert_frequency '{values['alert_frequency']}'.") from exc
    if "escalation_rules" in values:
        values["escalation_rules"] = tuple(
            rule if isinstance(rule, EscalationRule) else EscalationRule(**rule) for rule in values["escalation_rules"] or []
        )
    return AlertSettings(**values)


_SECTION_BUILDERS = {
    "risk_thresholds": lambda raw: RiskThresholds(**raw),
    "alert_settings": _build_alert_settings,
    "prediction_settings": lambda raw: PredictionSettings(**raw),
}

_SECTION_TYPES = {
    "risk_thresholds": RiskThresholds,
    "alert_settings": AlertSettings,
    "prediction_settings": PredictionSettings,
}


def _build_section(name: str, base: Mapping[str, Any], overrides: Mapping[str, Any]) -> Any:
    values = dict(base)
    values.update(overrides)
    try:
        return _SECTION_BUILDERS[name](values)
    except TypeError as exc:
        raise InsightsConfigError(f"Invalid keys in section '{name}': {exc}") from exc


def config_from_dict(cfg: Mapping[str, Any], base: PerformanceInsightsConfig = DEFAULT_CONFIG) -> PerformanceInsightsConfig:
    """
    Build a config from a nested mapping, keeping `base` values for anything omitted.

    Each section is merged key by key so a file may override a single threshold.
    """

    unknown = set(cfg) - set(_SECTION_BUILDERS)
    if unknown:
        raise InsightsConfigError(f"Unknown config section(s): {', '.join(sorted(unknown))}")

    sections = {}
    base_dict = config_to_dict(base)
    for name in _SECTION_BUILDERS:
        sections[name] = _build_section(name, base_dict[name], cfg.get(name) or {})
    return PerformanceInsightsConfig(**sections)


def load_config(config_path: Path) -> PerformanceInsightsConfig:
    """Programmatic entrypoint used by the CLI `--config` option."""

    with open(config_path) as f:
        cfg = yaml.safe_load(f) or {}
    if not isinstance(cfg, dict):
        raise InsightsConfigError(f"Config at {config_path} must be a mapping.")
    return config_from_dict(cfg)


def config_to_dict(config: PerformanceInsightsConfig) -> Dict[str, Any]:
    raw = asdict(config)
    raw["alert_settings"]["alert_frequency"] = config.alert_settings.alert_frequency.value
    raw["alert_settings"]["escalation_rules"] = [dict(rule) for rule in raw["alert_settings"]["escalation_rules"]]
    return raw
