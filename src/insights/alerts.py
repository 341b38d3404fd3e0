# ABOUTME: Raises teacher-facing alerts from risk assessments, trends, and raw performance data.
# ABOUTME: Applies the frequency filter and escalation rules from the alert settings.

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime
from typing import Callable, List, Optional

from .config import DEFAULT_CONFIG, PerformanceInsightsConfig
from .features import compute_engagement_score, days_since, late_submission_rate, utc_now
from .schemas import (
    AlertFrequency,
    AlertSeverity,
    AlertType,
    PerformanceTrendSet,
    RiskAssessment,
    RiskLevel,
    Severity,
    StudentPerformanceData,
    TeacherAlert,
)
from .statistics import round_half_up

logger = logging.getLogger(__name__)

MIN_ASSIGNMENTS_FOR_PATTERN = 3

# escalation condition -> (alert type, alert severity) it matches
ESCALATION_CONDITIONS = {
    "risk_level_critical": (AlertType.RISK_ESCALATION, AlertSeverity.CRITICAL),
    "risk_level_high": (AlertType.RISK_ESCALATION, AlertSeverity.WARNING),
}


def _banded(percentage: float, critical_below: float, warning_below: float) -> AlertSeverity:
    if percentage < critical_below:
        return AlertSeverity.CRITICAL
    if percentage < warning_below:
        return AlertSeverity.WARNING
    return AlertSeverity.INFO


def _pct(rate: float) -> int:
    return int(round_half_up(rate * 100))


class AlertSystem:
    """Generates and filters alerts for one teacher according to `config.alert_settings`."""

    def __init__(
        self,
        config: PerformanceInsightsConfig = DEFAULT_CONFIG,
        now: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self._now = now

    def generate_alerts(
        self,
        risk_assessment: RiskAssessment,
        performance_data: StudentPerformanceData,
        teacher_id: str,
        trends: Optional[PerformanceTrendSet] = None,
    ) -> List[TeacherAlert]:
        if not self.config.alert_settings.enable_automatic_alerts:
            return []

        created_at = self._now()
        candidates: List[Optional[TeacherAlert]] = []

        if risk_assessment.risk_level is RiskLevel.CRITICAL:
            candidates.append(self._critical_risk(risk_assessment, performance_data, teacher_id, created_at))
        elif risk_assessment.risk_level is RiskLevel.HIGH:
            candidates.append(self._high_risk(risk_assessment, performance_data, teacher_id, created_at))

        if trends is not None:
            candidates.append(self._performance_decline(trends, performance_data, teacher_id, created_at))

        candidates.append(self._attendance(performance_data, teacher_id, created_at))
        candidates.append(self._engagement(performance_data, teacher_id, created_at))
        candidates.append(self._assignment_pattern(performance_data, teacher_id, created_at))
        candidates.append(self._inactivity(performance_data, teacher_id, created_at))

        alerts = [alert for alert in candidates if alert is not None and self.should_send_alert(alert)]
        logger.debug(
            "Alerts for %s: %d raised, %d sent",
            performance_data.student_id,
            sum(1 for alert in candidates if alert is not None),
            len(alerts),
        )
        return alerts

    def should_send_alert(self, alert: TeacherAlert) -> bool:
        settings = self.config.alert_settings
        if not settings.enable_automatic_alerts:
            return False
        if alert.severity is AlertSeverity.CRITICAL:
            return True
        if settings.alert_frequency is AlertFrequency.IMMEDIATE:
            return True
        # Daily and weekly digests only carry actionable items.
        return alert.action_required or alert.severity is AlertSeverity.WARNING

    def process_escalation_rules(self, alerts: List[TeacherAlert]) -> List[TeacherAlert]:
        """Force `action_required` on alerts matched by an escalation rule; input is left untouched."""

        matchers = {
            ESCALATION_CONDITIONS[rule.condition]
            for rule in self.config.alert_settings.escalation_rules
            if rule.condition in ESCALATION_CONDITIONS
        }
        escalated = []
        for alert in alerts:
            if (alert.type, alert.severity) in matchers and not alert.action_required:
                alert = replace(alert, action_required=True)
            escalated.append(alert)
        return escalated

    def _alert(
        self,
        kind: str,
        data: StudentPerformanceData,
        teacher_id: str,
        created_at: datetime,
        /,
        **fields,
    ) -> TeacherAlert:
        return TeacherAlert(
            id=f"{kind}-{data.student_id}-{int(created_at.timestamp() * 1000)}",
            teacher_id=teacher_id,
            course_id=data.course_id,
            student_id=data.student_id,
            created_at=created_at,
            **fields,
        )

    def _critical_risk(self, risk, data, teacher_id, created_at) -> TeacherAlert:
        top_factors = ", ".join(f.factor.value for f in risk.risk_factors if f.severity is Severity.HIGH)
        return self._alert(
            "critical",
            data,
            teacher_id,
            created_at,
            type=AlertType.RISK_ESCALATION,
            severity=AlertSeverity.CRITICAL,
            title="URGENT: Student at Critical Risk",
            message=(
                f"Student is at critical risk ({risk.risk_score}% risk score) due to: {top_factors}. "
                "Immediate intervention required."
            ),
            data={
                "risk_score": risk.risk_score,
                "risk_level": risk.risk_level.value,
                "risk_factors": [f.factor.value for f in risk.risk_factors],
                "predicted_grade": risk.predicted_outcome.final_grade,
                "pass_likelihood": risk.predicted_outcome.pass_likelihood,
            },
            action_required=True,
        )

    def _high_risk(self, risk, data, teacher_id, created_at) -> TeacherAlert:
        primary_factors = ", ".join(f.factor.value for f in risk.risk_factors[:2])
        return self._alert(
            "high-risk",
            data,
            teacher_id,
            created_at,
            type=AlertType.RISK_ESCALATION,
            severity=AlertSeverity.WARNING,
            title="Student at High Risk",
            message=(
                f"Student shows high risk indicators ({risk.risk_score}% risk score) primarily due to: "
                f"{primary_factors}. Consider intervention."
            ),
            data={
                "risk_score": risk.risk_score,
                "risk_level": risk.risk_level.value,
                "risk_factors": [f.factor.value for f in risk.risk_factors],
                "predicted_grade": risk.predicted_outcome.final_grade,
            },
            action_required=True,
        )

    def _performance_decline(self, trends, data, teacher_id, created_at) -> Optional[TeacherAlert]:
        by_name = {"grades": trends.grades, "engagement": trends.engagement, "attendance": trends.attendance}
        declining = [f"{name} (slope: {by_name[name].slope:.2f})" for name in trends.declining_metrics()]
        if not declining:
            return None

        severity = AlertSeverity.CRITICAL if len(declining) >= 2 else AlertSeverity.WARNING
        return self._alert(
            "decline",
            data,
            teacher_id,
            created_at,
            type=AlertType.PERFORMANCE_DECLINE,
            severity=severity,
            title="Performance Decline Detected",
            message=f"Student showing declining trends in: {', '.join(declining)}. Early intervention recommended.",
            data={
                "declining_trends": declining,
                "timeframe": trends.timeframe.value,
                "slopes": {name: trend.slope for name, trend in by_name.items()},
            },
            action_required=severity is AlertSeverity.CRITICAL,
        )

    def _attendance(self, data, teacher_id, created_at) -> Optional[TeacherAlert]:
        threshold = self.config.risk_thresholds.attendance_threshold
        if data.attendance_rate >= threshold:
            return None

        percentage = _pct(data.attendance_rate)
        severity = _banded(percentage, 60, 80)
        return self._alert(
            "attendance",
            data,
            teacher_id,
            created_at,
            type=AlertType.ATTENDANCE_ISSUE,
            severity=severity,
            title="Low Attendance Alert",
            message=(
                f"Student attendance is {percentage}%, below the required threshold of {_pct(threshold)}%."
            ),
            data={
                "current_attendance": data.attendance_rate,
                "threshold": threshold,
                "attendance_percentage": percentage,
            },
            action_required=severity is not AlertSeverity.INFO,
        )

    def _engagement(self, data, teacher_id, created_at) -> Optional[TeacherAlert]:
        threshold = self.config.risk_thresholds.engagement_threshold
        score = compute_engagement_score(data.engagement_metrics)
        if score >= threshold:
            return None

        percentage = _pct(score)
        severity = _banded(percentage, 40, 60)
        return self._alert(
            "engagement",
            data,
            teacher_id,
            created_at,
            type=AlertType.ENGAGEMENT_DROP,
            severity=severity,
            title="Low Engagement Alert",
            message=f"Student engagement score is {percentage}%, indicating low participation in course activities.",
            data={
                "engagement_score": score,
                "engagement_percentage": percentage,
                "threshold": threshold,
            },
            action_required=severity is not AlertSeverity.INFO,
        )

    def _assignment_pattern(self, data, teacher_id, created_at) -> Optional[TeacherAlert]:
        total = len(data.assignment_scores)
        if total < MIN_ASSIGNMENTS_FOR_PATTERN:
            return None

        late_rate = late_submission_rate(data.assignment_scores)
        submission_rate = data.engagement_metrics.assignment_submission_rate
        if not (late_rate > 0.4 or submission_rate < 0.7):
            return None

        issues = []
        if late_rate > 0.4:
            issues.append(f"{_pct(late_rate)}% late submissions")
        if submission_rate < 0.7:
            issues.append(f"{_pct(submission_rate)}% submission rate")

        severity = AlertSeverity.WARNING if (late_rate > 0.6 or submission_rate < 0.5) else AlertSeverity.INFO
        return self._alert(
            "assignment",
            data,
            teacher_id,
            created_at,
            type=AlertType.ASSIGNMENT_PATTERN,
            severity=severity,
            title="Assignment Pattern Concern",
            message=f"Student showing concerning assignment patterns: {', '.join(issues)}.",
            data={
                "late_rate": late_rate,
                "submission_rate": submission_rate,
                "late_submissions": sum(1 for score in data.assignment_scores if score.is_late),
                "total_assignments": total,
            },
            action_required=severity is AlertSeverity.WARNING,
        )

    def _inactivity(self, data, teacher_id, created_at) -> Optional[TeacherAlert]:
        last_activity = data.engagement_metrics.last_activity
        inactive_days = days_since(last_activity, created_at)
        if inactive_days <= 7:
            return None

        if inactive_days > 21:
            severity = AlertSeverity.CRITICAL
        elif inactive_days > 14:
            severity = AlertSeverity.WARNING
        else:
            severity = AlertSeverity.INFO

        return self._alert(
            "inactivity",
            data,
            teacher_id,
            created_at,
            type=AlertType.ENGAGEMENT_DROP,
            severity=severity,
            title="Student Inactivity Alert",
            message=(
                f"Student has been inactive for {inactive_days} days. "
                f"Last activity: {last_activity.date().isoformat()}."
            ),
            data={
                "days_since_last_activity": inactive_days,
                "last_activity": last_activity.isoformat(),
                "login_frequency": data.engagement_metrics.login_frequency,
            },
            action_required=severity is not AlertSeverity.INFO,
        )
