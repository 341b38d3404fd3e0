# ABOUTME: Tests YAML configuration loading, section merging, and validation errors.
# ABOUTME: Confirms the shipped default file matches the built-in defaults.

import tempfile
import unittest
from pathlib import Path

import pytest
import yaml

from src.insights.config import (
    DEFAULT_CONFIG,
    EscalationRule,
    InsightsConfigError,
    PredictionSettings,
    RiskThresholds,
    config_from_dict,
    config_to_dict,
    load_config,
)
from src.insights.schemas import AlertFrequency

REPO_ROOT = Path(__file__).resolve().parents[1]


def test_shipped_default_file_matches_defaults():
    assert load_config(REPO_ROOT / "configs" / "insights_default.yaml") == DEFAULT_CONFIG


def test_defaults_match_documented_values():
    thresholds = DEFAULT_CONFIG.risk_thresholds
    assert (thresholds.grade_threshold, thresholds.attendance_threshold) == (70, 0.8)
    assert (thresholds.engagement_threshold, thresholds.submission_rate_threshold) == (0.6, 0.8)
    assert DEFAULT_CONFIG.alert_settings.alert_frequency is AlertFrequency.DAILY
    assert [rule.condition for rule in DEFAULT_CONFIG.alert_settings.escalation_rules] == [
        "risk_level_critical",
        "risk_level_high",
    ]
    assert DEFAULT_CONFIG.prediction_settings.confidence_threshold == 0.7


def test_dict_round_trip_through_yaml():
    dumped = yaml.safe_dump(config_to_dict(DEFAULT_CONFIG))
    assert config_from_dict(yaml.safe_load(dumped)) == DEFAULT_CONFIG


def test_merged_rejects_unknown_sections():
    with pytest.raises(InsightsConfigError):
        DEFAULT_CONFIG.merged(risk_limits=RiskThresholds())


class LoadConfigTest(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.path = Path(self.tmpdir.name) / "insights.yaml"

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def _write(self, text: str) -> Path:
        self.path.write_text(text, encoding="utf-8")
        return self.path

    def test_partial_override_keeps_other_defaults(self) -> None:
        config = load_config(self._write("risk_thresholds:\n  grade_threshold: 65\n"))
        self.assertEqual(config.risk_thresholds.grade_threshold, 65)
        self.assertEqual(config.risk_thresholds.attendance_threshold, 0.8)
        self.assertEqual(config.alert_settings, DEFAULT_CONFIG.alert_settings)

    def test_alert_settings_are_parsed(self) -> None:
        config = load_config(
            self._write(
                "alert_settings:\n"
                "  alert_frequency: immediate\n"
                "  escalation_rules:\n"
                "    - condition: risk_level_critical\n"
                "      action: page_admin\n"
            )
        )
        self.assertIs(config.alert_settings.alert_frequency, AlertFrequency.IMMEDIATE)
        self.assertEqual(
            config.alert_settings.escalation_rules,
            (EscalationRule(condition="risk_level_critical", action="page_admin", delay=0),),
        )

    def test_empty_file_gives_defaults(self) -> None:
        self.assertEqual(load_config(self._write("")), DEFAULT_CONFIG)

    def test_unknown_section_is_rejected(self) -> None:
        with self.assertRaises(InsightsConfigError):
            load_config(self._write("scoring:\n  weight: 2\n"))

    def test_unknown_key_is_rejected(self) -> None:
        with self.assertRaises(InsightsConfigError):
            load_config(self._write("risk_thresholds:\n  grade_cutoff: 65\n"))

    def test_invalid_frequency_is_rejected(self) -> None:
        with self.assertRaises(InsightsConfigError):
            load_config(self._write("alert_settings:\n  alert_frequency: hourly\n"))

    def test_non_mapping_file_is_rejected(self) -> None:
        with self.assertRaises(InsightsConfigError):
            load_config(self._write("- just\n- a list\n"))


class MergedSectionsTest(unittest.TestCase):
    def test_mapping_is_merged_over_current_section(self) -> None:
        config = DEFAULT_CONFIG.merged(risk_thresholds={"grade_threshold": 60})
        self.assertEqual(config.risk_thresholds, RiskThresholds(grade_threshold=60))

    def test_mapping_values_are_converted(self) -> None:
        config = DEFAULT_CONFIG.merged(alert_settings={"alert_frequency": "weekly"})
        self.assertIs(config.alert_settings.alert_frequency, AlertFrequency.WEEKLY)
        self.assertEqual(config.alert_settings.escalation_rules, DEFAULT_CONFIG.alert_settings.escalation_rules)

    def test_mapping_with_unknown_key_is_rejected(self) -> None:
        with self.assertRaises(InsightsConfigError):
            DEFAULT_CONFIG.merged(risk_thresholds={"grade_cutoff": 60})

    def test_wrong_section_type_is_rejected(self) -> None:
        with self.assertRaises(InsightsConfigError):
            DEFAULT_CONFIG.merged(risk_thresholds=PredictionSettings())
        with self.assertRaises(InsightsConfigError):
            DEFAULT_CONFIG.merged(prediction_settings=["weekly"])
