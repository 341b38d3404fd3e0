# ABOUTME: Orchestrates the risk, trend, intervention, alert, and cohort engines per student and per class.
# ABOUTME: Exposes single-student analysis, batch analysis, and the teacher dashboard summary.

from __future__ import annotations

import logging
import math
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, List, Optional, Sequence, Tuple

import numpy as np

from .alerts import AlertSystem
from .cohort_analysis import CohortAnalysisEngine
from .config import DEFAULT_CONFIG, PerformanceInsightsConfig
from .features import compute_engagement_score, utc_now
from .interventions import InterventionEngine
from .risk_assessment import RiskAssessmentEngine
from .schemas import (
    AlertSeverity,
    AlertType,
    CohortComparison,
    InterventionPriority,
    InterventionRecommendation,
    LearningRecommendation,
    PerformanceTrendSet,
    RiskAssessment,
    RiskFactorType,
    RiskLevel,
    StudentPerformanceData,
    TeacherAlert,
    TrendDirection,
)
from .statistics import round_half_up
from .trend_analysis import TrendAnalysisEngine

logger = logging.getLogger(__name__)

MAX_DASHBOARD_ALERTS = 10
MAX_ACTION_ITEMS = 5
OVERALL_TREND_THRESHOLD = 0.05
HIGH_RISK_SHARE_TRIGGER = 0.2
COMMON_ISSUE_COUNT = 3


@dataclass(frozen=True)
class StudentAnalysis:
    student_id: str
    risk_assessment: RiskAssessment
    trends: PerformanceTrendSet
    interventions: Tuple[InterventionRecommendation, ...]
    learning_recommendations: Tuple[LearningRecommendation, ...]
    alerts: Tuple[TeacherAlert, ...]
    cohort_comparison: Optional[CohortComparison] = None


@dataclass(frozen=True)
class FailedStudent:
    student_id: str
    error: str


@dataclass(frozen=True)
class SummaryInsights:
    high_risk_students: int
    students_needing_intervention: int
    common_issues: Tuple[str, ...]
    recommendations: Tuple[str, ...]


@dataclass(frozen=True)
class BatchAnalysis:
    student_analyses: Tuple[StudentAnalysis, ...]
    cohort_analysis: CohortComparison
    priority_alerts: Tuple[TeacherAlert, ...]
    summary_insights: SummaryInsights
    failed_students: Tuple[FailedStudent, ...] = ()


@dataclass(frozen=True)
class DashboardOverview:
    total_students: int
    at_risk_students: int
    average_performance: float
    attendance_rate: float
    engagement_score: float


@dataclass(frozen=True)
class DashboardTrends:
    performance_trend: TrendDirection
    engagement_trend: TrendDirection
    attendance_trend: TrendDirection


@dataclass(frozen=True)
class ActionItem:
    priority: InterventionPriority
    description: str
    student_count: int
    suggested_action: str


@dataclass(frozen=True)
class TeacherDashboard:
    overview: DashboardOverview
    alerts: Tuple[TeacherAlert, ...]
    trends: DashboardTrends
    action_items: Tuple[ActionItem, ...]


def overall_trend(values: Sequence[float], threshold: float = OVERALL_TREND_THRESHOLD) -> TrendDirection:
    """
    Compare the mean of the later half of `values` against the earlier half.

    The change is relative to the earlier mean; an earlier mean of zero gives
    a stable trend.
    """

    if len(values) < 2:
        return TrendDirection.STABLE
    recent = float(np.mean(values[-math.ceil(len(values) / 2):]))
    earlier = float(np.mean(values[: len(values) // 2]))
    if earlier == 0:
        return TrendDirection.STABLE
    difference = (recent - earlier) / abs(earlier)
    if difference > threshold:
        return TrendDirection.IMPROVING
    if difference < -threshold:
        return TrendDirection.DECLINING
    return TrendDirection.STABLE


def is_priority_alert(alert: TeacherAlert) -> bool:
    return alert.severity is AlertSeverity.CRITICAL or alert.action_required


def _mean(values: Sequence[float]) -> float:
    return round_half_up(float(np.mean(values)), 2) if len(values) else 0.0


class PerformanceInsightsService:
    """
    Facade over the five engines.

    The risk engine and alert system read the shared config and are rebuilt
    by `update_config`; trend, intervention, and cohort engines hold no
    configuration. Engines keep no per-call state, so one service may analyze
    many students concurrently.
    """

    def __init__(
        self,
        config: PerformanceInsightsConfig = DEFAULT_CONFIG,
        rng: Optional[np.random.Generator] = None,
        now: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self._now = now
        self.risk_engine = RiskAssessmentEngine(config, now=now)
        self.trend_engine = TrendAnalysisEngine(rng=rng, now=now)
        self.intervention_engine = InterventionEngine(now=now)
        self.alert_system = AlertSystem(config, now=now)
        self.cohort_engine = CohortAnalysisEngine()

    def analyze_student(
        self,
        data: StudentPerformanceData,
        teacher_id: str,
        include_comparisons: bool = True,
        cohort: Optional[Sequence[StudentPerformanceData]] = None,
    ) -> StudentAnalysis:
        risk = self.risk_engine.assess_student_risk(data)
        trends = self.trend_engine.analyze_performance_trends(data)
        interventions = self.intervention_engine.generate_interventions(risk, data, trends)
        learning = self.intervention_engine.generate_learning_recommendations(data, risk)
        alerts = self.alert_system.generate_alerts(risk, data, teacher_id, trends)

        comparison = None
        if include_comparisons and cohort is not None:
            comparison = self.cohort_engine.analyze_cohort_performance(cohort, data.course_id)

        return StudentAnalysis(
            student_id=data.student_id,
            risk_assessment=risk,
            trends=trends,
            interventions=tuple(interventions),
            learning_recommendations=tuple(learning),
            alerts=tuple(alerts),
            cohort_comparison=comparison,
        )

    def analyze_multiple_students(
        self,
        students: Sequence[StudentPerformanceData],
        teacher_id: str,
        max_workers: Optional[int] = None,
    ) -> BatchAnalysis:
        """
        Analyze every student, then summarize the class.

        A student whose analysis raises is logged and listed in
        `failed_students`; the rest of the batch is unaffected. With
        `max_workers` set, students are analyzed on a thread pool. Results
        always follow input order.
        """

        if max_workers and max_workers > 1 and len(students) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as pool:
                outcomes = list(pool.map(lambda s: self._analyze_isolated(s, teacher_id), students))
        else:
            outcomes = [self._analyze_isolated(student, teacher_id) for student in students]

        analyses: List[StudentAnalysis] = []
        analyzed_data: List[StudentPerformanceData] = []
        failures: List[FailedStudent] = []
        for student, outcome in zip(students, outcomes):
            if isinstance(outcome, FailedStudent):
                failures.append(outcome)
            else:
                analyses.append(outcome)
                analyzed_data.append(student)

        course_id = students[0].course_id if students else ""
        cohort = self.cohort_engine.analyze_cohort_performance(analyzed_data, course_id)

        all_alerts = [alert for analysis in analyses for alert in analysis.alerts]
        # sorted() is stable, so equal severities keep student order.
        priority_alerts = sorted(
            (alert for alert in all_alerts if is_priority_alert(alert)),
            key=lambda alert: alert.severity.rank,
            reverse=True,
        )

        logger.info(
            "Batch for teacher %s: %d analyzed, %d failed, %d priority alerts",
            teacher_id,
            len(analyses),
            len(failures),
            len(priority_alerts),
        )
        return BatchAnalysis(
            student_analyses=tuple(analyses),
            cohort_analysis=cohort,
            priority_alerts=tuple(priority_alerts),
            summary_insights=self._summary_insights(analyses),
            failed_students=tuple(failures),
        )

    def _analyze_isolated(self, student: StudentPerformanceData, teacher_id: str) -> Any:
        try:
            return self.analyze_student(student, teacher_id, include_comparisons=False)
        except Exception as exc:  # isolate per-student failures
            student_id = getattr(student, "student_id", "<unknown>")
            logger.exception("Analysis failed for student %s", student_id)
            return FailedStudent(student_id=student_id, error=f"{type(exc).__name__}: {exc}")

    def _summary_insights(self, analyses: Sequence[StudentAnalysis]) -> SummaryInsights:
        high_risk = sum(
            1 for a in analyses if a.risk_assessment.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)
        )
        needing_intervention = sum(1 for a in analyses if a.interventions)

        factor_counts = Counter(
            factor.factor.value for a in analyses for factor in a.risk_assessment.risk_factors
        )
        common_issues = tuple(tag for tag, _ in factor_counts.most_common(COMMON_ISSUE_COUNT))

        recommendations = []
        if high_risk > len(analyses) * HIGH_RISK_SHARE_TRIGGER:
            recommendations.append("Consider reviewing course difficulty and support resources")
        if RiskFactorType.LOW_ENGAGEMENT.value in common_issues:
            recommendations.append("Implement more interactive and engaging learning activities")
        if RiskFactorType.POOR_ATTENDANCE.value in common_issues:
            recommendations.append("Investigate and address attendance barriers")

        return SummaryInsights(
            high_risk_students=high_risk,
            students_needing_intervention=needing_intervention,
            common_issues=common_issues,
            recommendations=tuple(recommendations),
        )

    def generate_teacher_dashboard(
        self,
        students: Sequence[StudentPerformanceData],
        teacher_id: str,
    ) -> TeacherDashboard:
        assessments = [self.risk_engine.assess_student_risk(student) for student in students]
        engagement = [compute_engagement_score(student.engagement_metrics) for student in students]

        all_alerts: List[TeacherAlert] = []
        for student, risk in zip(students, assessments):
            trends = self.trend_engine.analyze_performance_trends(student)
            all_alerts.extend(self.alert_system.generate_alerts(risk, student, teacher_id, trends))

        grades = [student.current_grade for student in students]
        attendance = [student.attendance_rate for student in students]
        overview = DashboardOverview(
            total_students=len(students),
            at_risk_students=sum(
                1 for risk in assessments if risk.risk_level in (RiskLevel.HIGH, RiskLevel.CRITICAL)
            ),
            average_performance=_mean(grades),
            attendance_rate=_mean(attendance),
            engagement_score=_mean(engagement),
        )

        return TeacherDashboard(
            overview=overview,
            alerts=tuple([alert for alert in all_alerts if is_priority_alert(alert)][:MAX_DASHBOARD_ALERTS]),
            trends=DashboardTrends(
                performance_trend=overall_trend(grades),
                engagement_trend=overall_trend(engagement),
                attendance_trend=overall_trend(attendance),
            ),
            action_items=tuple(generate_action_items(assessments, all_alerts)),
        )

    def update_config(self, config: Optional[PerformanceInsightsConfig] = None, **sections: Any) -> None:
        """
        Swap in a new config, either whole or as section overrides.

        Only the risk engine and alert system depend on config, so only they
        are rebuilt. Not safe to call while analyses are in flight.
        """

        new_config = config if config is not None else self.config
        if sections:
            new_config = new_config.merged(**sections)
        self.config = new_config
        self.risk_engine = RiskAssessmentEngine(new_config, now=self._now)
        self.alert_system = AlertSystem(new_config, now=self._now)
        logger.debug("Configuration updated: %s", new_config)


def generate_action_items(
    assessments: Sequence[RiskAssessment],
    alerts: Sequence[TeacherAlert],
) -> List[ActionItem]:
    """Ranked teacher to-do list; counts are distinct students."""

    def students_with(alert_type: AlertType) -> int:
        return len({alert.student_id for alert in alerts if alert.type is alert_type})

    candidates = [
        (
            InterventionPriority.URGENT,
            "Students at critical risk of failure",
            sum(1 for risk in assessments if risk.risk_level is RiskLevel.CRITICAL),
            "Schedule immediate one-on-one meetings and implement intensive support",
        ),
        (
            InterventionPriority.HIGH,
            "Students showing high risk indicators",
            sum(1 for risk in assessments if risk.risk_level is RiskLevel.HIGH),
            "Implement targeted interventions and increase monitoring",
        ),
        (
            InterventionPriority.HIGH,
            "Students with attendance concerns",
            students_with(AlertType.ATTENDANCE_ISSUE),
            "Contact students to address attendance barriers",
        ),
        (
            InterventionPriority.MEDIUM,
            "Students with low engagement",
            students_with(AlertType.ENGAGEMENT_DROP),
            "Introduce interactive activities and check motivation levels",
        ),
        (
            InterventionPriority.MEDIUM,
            "Students with concerning assignment patterns",
            students_with(AlertType.ASSIGNMENT_PATTERN),
            "Review deadlines with students and offer organizational support",
        ),
    ]
    items = [
        ActionItem(priority=priority, description=description, student_count=count, suggested_action=action)
        for priority, description, count, action in candidates
        if count > 0
    ]
    return items[:MAX_ACTION_ITEMS]
