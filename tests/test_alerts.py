# ABOUTME: Tests teacher alert generation, frequency filtering, and escalation rules.
# ABOUTME: Checks alert severities for risk, attendance, engagement, assignment, and inactivity signals.

import unittest
from dataclasses import replace

import pytest

from src.insights.alerts import AlertSystem
from src.insights.config import DEFAULT_CONFIG, AlertSettings
from src.insights.risk_assessment import RiskAssessmentEngine
from src.insights.schemas import (
    AlertFrequency,
    AlertSeverity,
    AlertType,
    PerformanceTrend,
    PerformanceTrendSet,
    TeacherAlert,
    Timeframe,
    TrendDirection,
)
from tests.factories import NOW, fixed_clock, make_scores, make_struggling_student, make_student


def _trends(*declining):
    def trend(name):
        direction = TrendDirection.DECLINING if name in declining else TrendDirection.STABLE
        return PerformanceTrend(direction=direction, slope=-1.5 if name in declining else 0.0, confidence=0.8)

    return PerformanceTrendSet(
        student_id="s1",
        course_id="c1",
        timeframe=Timeframe.MONTH,
        grades=trend("grades"),
        engagement=trend("engagement"),
        attendance=trend("attendance"),
    )


def _system(**alert_settings):
    config = DEFAULT_CONFIG
    if alert_settings:
        config = config.merged(alert_settings=AlertSettings(**alert_settings))
    return AlertSystem(config, now=fixed_clock)


class AlertSystemTest(unittest.TestCase):
    def setUp(self) -> None:
        self.risk_engine = RiskAssessmentEngine(now=fixed_clock)

    def _alerts(self, system, student, trends=None):
        risk = self.risk_engine.assess_student_risk(student)
        return system.generate_alerts(risk, student, "t1", trends)

    def test_disabled_alerts_return_nothing(self) -> None:
        system = _system(enable_automatic_alerts=False)
        self.assertEqual(self._alerts(system, make_struggling_student(), _trends("grades")), [])

    def test_struggling_student_alerts(self) -> None:
        alerts = self._alerts(_system(), make_struggling_student(), _trends("grades"))
        by_type = {}
        for alert in alerts:
            by_type.setdefault(alert.type, []).append(alert)

        (critical,) = by_type[AlertType.RISK_ESCALATION]
        self.assertIs(critical.severity, AlertSeverity.CRITICAL)
        self.assertTrue(critical.action_required)
        self.assertEqual(critical.title, "URGENT: Student at Critical Risk")
        self.assertEqual(critical.id, f"critical-s2-{int(NOW.timestamp() * 1000)}")
        self.assertEqual(critical.teacher_id, "t1")

        (attendance,) = by_type[AlertType.ATTENDANCE_ISSUE]
        self.assertIs(attendance.severity, AlertSeverity.WARNING)
        self.assertEqual(attendance.data["attendance_percentage"], 60)

        (engagement,) = by_type[AlertType.ENGAGEMENT_DROP]
        self.assertIs(engagement.severity, AlertSeverity.CRITICAL)

        (pattern,) = by_type[AlertType.ASSIGNMENT_PATTERN]
        self.assertIs(pattern.severity, AlertSeverity.WARNING)
        self.assertEqual(pattern.data["late_submissions"], 3)

        (decline,) = by_type[AlertType.PERFORMANCE_DECLINE]
        self.assertIs(decline.severity, AlertSeverity.WARNING)
        self.assertFalse(decline.action_required)

    def test_daily_digest_drops_informational_inactivity(self) -> None:
        student = make_student(inactive_days=10)
        self.assertEqual(self._alerts(_system(), student), [])

    def test_immediate_frequency_keeps_informational_alerts(self) -> None:
        student = make_student(inactive_days=10)
        (alert,) = self._alerts(_system(alert_frequency=AlertFrequency.IMMEDIATE), student)
        self.assertIs(alert.type, AlertType.ENGAGEMENT_DROP)
        self.assertIs(alert.severity, AlertSeverity.INFO)
        self.assertEqual(alert.data["days_since_last_activity"], 10)

    def test_long_inactivity_is_critical(self) -> None:
        student = make_student(inactive_days=25)
        alerts = self._alerts(_system(), student)
        inactivity = [a for a in alerts if a.title == "Student Inactivity Alert"]
        self.assertEqual(len(inactivity), 1)
        self.assertIs(inactivity[0].severity, AlertSeverity.CRITICAL)

    def test_two_declining_metrics_raise_critical_decline(self) -> None:
        alerts = self._alerts(_system(), make_student(), _trends("grades", "attendance"))
        (alert,) = alerts
        self.assertIs(alert.type, AlertType.PERFORMANCE_DECLINE)
        self.assertIs(alert.severity, AlertSeverity.CRITICAL)
        self.assertTrue(alert.action_required)
        self.assertEqual(alert.data["timeframe"], "month")

    def test_assignment_pattern_needs_three_assignments(self) -> None:
        student = make_student(scores=make_scores([90, 90], late=[True, True]))
        types = {alert.type for alert in self._alerts(_system(), student)}
        self.assertNotIn(AlertType.ASSIGNMENT_PATTERN, types)

    def test_low_attendance_below_sixty_is_critical(self) -> None:
        alerts = self._alerts(_system(), make_student(attendance_rate=0.5))
        (alert,) = [a for a in alerts if a.type is AlertType.ATTENDANCE_ISSUE]
        self.assertIs(alert.severity, AlertSeverity.CRITICAL)

    def test_should_send_alert_rules(self) -> None:
        system = _system()
        (alert,) = self._alerts(_system(alert_frequency=AlertFrequency.IMMEDIATE), make_student(inactive_days=10))
        self.assertFalse(system.should_send_alert(alert))
        self.assertTrue(system.should_send_alert(replace(alert, action_required=True)))
        self.assertTrue(system.should_send_alert(replace(alert, severity=AlertSeverity.CRITICAL)))
        self.assertFalse(_system(enable_automatic_alerts=False).should_send_alert(replace(alert, severity=AlertSeverity.CRITICAL)))


class EscalationTest(unittest.TestCase):
    def setUp(self) -> None:
        risk_engine = RiskAssessmentEngine(now=fixed_clock)
        student = make_struggling_student()
        risk = risk_engine.assess_student_risk(student)
        base = _system().generate_alerts(risk, student, "t1")[0]
        self.alert = replace(base, severity=AlertSeverity.WARNING, action_required=False)
        self.system = _system()

    def test_matching_alert_is_escalated_without_mutation(self) -> None:
        (escalated,) = self.system.process_escalation_rules([self.alert])
        self.assertTrue(escalated.action_required)
        self.assertFalse(self.alert.action_required)

    def test_escalation_is_idempotent(self) -> None:
        once = self.system.process_escalation_rules([self.alert])
        twice = self.system.process_escalation_rules(once)
        self.assertEqual(once, twice)

    def test_no_rules_means_no_escalation(self) -> None:
        system = _system(escalation_rules=())
        (alert,) = system.process_escalation_rules([self.alert])
        self.assertFalse(alert.action_required)

    def test_unrelated_alert_types_pass_through(self) -> None:
        attendance = replace(self.alert, type=AlertType.ATTENDANCE_ISSUE)
        (alert,) = self.system.process_escalation_rules([attendance])
        self.assertIs(alert, attendance)

    def test_escalated_copy_does_not_share_data(self) -> None:
        (escalated,) = self.system.process_escalation_rules([self.alert])
        self.assertEqual(escalated.data, self.alert.data)
        self.assertIsNot(escalated.data, self.alert.data)
        with self.assertRaises(TypeError):
            escalated.data["risk_score"] = 0


def test_alert_data_is_a_read_only_copy():
    source = {"attendance_percentage": 55}
    alert = TeacherAlert(
        id="a",
        teacher_id="t1",
        course_id="c1",
        student_id="s1",
        type=AlertType.ATTENDANCE_ISSUE,
        severity=AlertSeverity.WARNING,
        title="Attendance",
        message="Low attendance",
        data=source,
        action_required=True,
        created_at=NOW,
    )
    source["attendance_percentage"] = 10
    assert alert.data["attendance_percentage"] == 55
    with pytest.raises(TypeError):
        alert.data["attendance_percentage"] = 0
