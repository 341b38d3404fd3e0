# ABOUTME: Maps risk factors and multi-metric declines to structured intervention plans.
# ABOUTME: Also derives content, study-method, schedule, and resource learning recommendations.

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple

from .features import count_low_scores, utc_now
from .schemas import (
    InterventionPriority,
    InterventionRecommendation,
    InterventionType,
    LearningRecommendation,
    LearningRecommendationType,
    LearningResource,
    PerformanceTrendSet,
    ResourceType,
    ResponsibleParty,
    RiskAssessment,
    RiskFactor,
    RiskFactorType,
    Severity,
    StudentPerformanceData,
    SuggestedAction,
)

logger = logging.getLogger(__name__)

MAX_INTERVENTIONS = 5
MULTI_DECLINE_TAG = "multi_decline"

P = InterventionPriority

# factor -> severity -> priority
PRIORITY_TABLE: Dict[RiskFactorType, Dict[Severity, InterventionPriority]] = {
    RiskFactorType.LOW_GRADES: {Severity.HIGH: P.URGENT, Severity.MEDIUM: P.HIGH, Severity.LOW: P.MEDIUM},
    RiskFactorType.POOR_ATTENDANCE: {Severity.HIGH: P.URGENT, Severity.MEDIUM: P.HIGH, Severity.LOW: P.HIGH},
    RiskFactorType.LOW_ENGAGEMENT: {Severity.HIGH: P.HIGH, Severity.MEDIUM: P.MEDIUM, Severity.LOW: P.MEDIUM},
    RiskFactorType.MISSED_ASSIGNMENTS: {Severity.HIGH: P.URGENT, Severity.MEDIUM: P.HIGH, Severity.LOW: P.HIGH},
    RiskFactorType.LATE_SUBMISSIONS: {Severity.HIGH: P.MEDIUM, Severity.MEDIUM: P.MEDIUM, Severity.LOW: P.MEDIUM},
    RiskFactorType.DECLINING_PERFORMANCE: {Severity.HIGH: P.HIGH, Severity.MEDIUM: P.HIGH, Severity.LOW: P.HIGH},
    RiskFactorType.INACTIVITY: {Severity.HIGH: P.URGENT, Severity.MEDIUM: P.HIGH, Severity.LOW: P.HIGH},
}


@dataclass(frozen=True)
class InterventionTemplate:
    type: InterventionType
    title: str
    description: str
    actions: Tuple[SuggestedAction, ...]
    expected_outcome: str


def _teacher(action: str, timeline: str, *resources: str) -> SuggestedAction:
    return SuggestedAction(action=action, timeline=timeline, responsible=ResponsibleParty.TEACHER, resources=resources)


def _student(action: str, timeline: str, *resources: str) -> SuggestedAction:
    return SuggestedAction(action=action, timeline=timeline, responsible=ResponsibleParty.STUDENT, resources=resources)


TEMPLATES: Dict[RiskFactorType, InterventionTemplate] = {
    RiskFactorType.LOW_GRADES: InterventionTemplate(
        type=InterventionType.ACADEMIC,
        title="Academic Performance Intervention",
        description="Student is struggling with academic performance and needs additional support",
        actions=(
            _teacher("Schedule one-on-one tutoring session", "Within 3 days", "Tutoring schedule", "Academic support materials"),
            _teacher("Review study habits and techniques", "Within 1 week", "Study skills guide", "Time management tools"),
            _student("Create personalized study plan", "Within 1 week", "Study plan template", "Progress tracking sheet"),
        ),
        expected_outcome="Improve academic performance by 15-20% within 4 weeks",
    ),
    RiskFactorType.POOR_ATTENDANCE: InterventionTemplate(
        type=InterventionType.ATTENDANCE,
        title="Attendance Improvement Plan",
        description="Student attendance is below acceptable levels and requires intervention",
        actions=(
            _teacher(
                "Contact student to discuss attendance barriers",
                "Within 2 days",
                "Attendance tracking report",
                "Student contact information",
            ),
            _teacher("Develop attendance improvement plan", "Within 1 week", "Attendance policy", "Flexible scheduling options"),
            _teacher("Implement daily check-ins", "Ongoing for 2 weeks", "Check-in tracking system"),
        ),
        expected_outcome="Increase attendance rate to above 85% within 3 weeks",
    ),
    RiskFactorType.LOW_ENGAGEMENT: InterventionTemplate(
        type=InterventionType.ENGAGEMENT,
        title="Engagement Enhancement Strategy",
        description="Student shows low engagement with course materials and activities",
        actions=(
            _teacher(
                "Introduce interactive learning activities",
                "Within 1 week",
                "Interactive content library",
                "Gamification tools",
            ),
            _teacher("Assign peer collaboration projects", "Within 2 weeks", "Group project templates", "Collaboration tools"),
            _teacher(
                "Provide choice in learning activities",
                "Ongoing",
                "Alternative assignment options",
                "Learning style assessment",
            ),
        ),
        expected_outcome="Increase engagement metrics by 30% within 4 weeks",
    ),
    RiskFactorType.MISSED_ASSIGNMENTS: InterventionTemplate(
        type=InterventionType.ACADEMIC,
        title="Assignment Completion Support",
        description="Student is missing assignments and needs organizational support",
        actions=(
            _teacher("Create assignment tracking system", "Within 3 days", "Assignment tracker template", "Calendar integration"),
            _teacher("Provide deadline reminders", "Ongoing", "Automated reminder system", "Email templates"),
            _teacher(
                "Offer makeup opportunities for missed work",
                "Within 1 week",
                "Makeup assignment policies",
                "Extended deadline forms",
            ),
        ),
        expected_outcome="Achieve 90% assignment submission rate within 3 weeks",
    ),
    RiskFactorType.LATE_SUBMISSIONS: InterventionTemplate(
        type=InterventionType.BEHAVIORAL,
        title="Time Management Improvement",
        description="Student frequently submits assignments late, indicating time management issues",
        actions=(
            _teacher("Teach time management strategies", "Within 1 week", "Time management workshop", "Planning tools"),
            _teacher(
                "Set up interim deadlines",
                "For next assignment",
                "Milestone tracking system",
                "Progress check templates",
            ),
            _teacher("Provide early submission incentives", "Ongoing", "Incentive program guidelines", "Reward system"),
        ),
        expected_outcome="Reduce late submissions by 70% within 4 weeks",
    ),
    RiskFactorType.DECLINING_PERFORMANCE: InterventionTemplate(
        type=InterventionType.ACADEMIC,
        title="Performance Recovery Plan",
        description="Student performance is declining and needs immediate attention",
        actions=(
            _teacher(
                "Conduct comprehensive performance review",
                "Within 2 days",
                "Performance analysis tools",
                "Historical grade data",
            ),
            _teacher("Identify specific knowledge gaps", "Within 1 week", "Diagnostic assessments", "Skill gap analysis"),
            _teacher(
                "Implement targeted remediation",
                "Within 2 weeks",
                "Remediation materials",
                "Additional practice exercises",
            ),
        ),
        expected_outcome="Stabilize and improve performance trend within 3 weeks",
    ),
    RiskFactorType.INACTIVITY: InterventionTemplate(
        type=InterventionType.ENGAGEMENT,
        title="Re-engagement Initiative",
        description="Student has been inactive and needs immediate re-engagement",
        actions=(
            _teacher("Make direct contact with student", "Within 24 hours", "Contact information", "Outreach templates"),
            _teacher(
                "Assess barriers to participation",
                "Within 3 days",
                "Barrier assessment survey",
                "Support resources list",
            ),
            _teacher("Create re-entry plan", "Within 1 week", "Catch-up materials", "Flexible scheduling options"),
        ),
        expected_outcome="Resume active participation within 1 week",
    ),
}

COMPREHENSIVE_SUPPORT = InterventionTemplate(
    type=InterventionType.ACADEMIC,
    title="Comprehensive Support Plan",
    description="Multiple performance indicators are declining, requiring comprehensive intervention",
    actions=(
        _teacher(
            "Schedule emergency academic conference",
            "Within 24 hours",
            "Conference scheduling system",
            "Academic advisor contact",
        ),
        _teacher(
            "Develop multi-faceted support plan",
            "Within 3 days",
            "Comprehensive support template",
            "Resource coordination tools",
        ),
        _teacher("Implement intensive monitoring", "Ongoing for 4 weeks", "Daily check-in system", "Progress tracking dashboard"),
    ),
    expected_outcome="Stabilize all performance indicators within 2 weeks",
)


def priority_for(factor: RiskFactorType, severity: Severity) -> InterventionPriority:
    return PRIORITY_TABLE[factor][severity]


def _epoch_ms(moment: datetime) -> int:
    return int(moment.timestamp() * 1000)


class InterventionEngine:
    def __init__(self, now: Callable[[], datetime] = utc_now):
        self._now = now

    def generate_interventions(
        self,
        risk_assessment: RiskAssessment,
        performance_data: StudentPerformanceData,
        trends: Optional[PerformanceTrendSet] = None,
    ) -> List[InterventionRecommendation]:
        """
        Build at most five interventions, most urgent first.

        One intervention per recognized risk factor, plus a comprehensive plan
        when two or more trend metrics decline together. Ties keep input order.
        """

        created_at = self._now()
        interventions: List[InterventionRecommendation] = []

        for factor in risk_assessment.risk_factors:
            intervention = self._for_factor(factor, performance_data, created_at)
            if intervention is not None:
                interventions.append(intervention)

        if trends is not None and len(trends.declining_metrics()) >= 2:
            interventions.append(
                self._build(
                    COMPREHENSIVE_SUPPORT,
                    InterventionPriority.URGENT,
                    MULTI_DECLINE_TAG,
                    performance_data,
                    created_at,
                )
            )

        # sorted() is stable, so equal priorities keep input order.
        ranked = sorted(interventions, key=lambda item: item.priority.rank, reverse=True)
        return ranked[:MAX_INTERVENTIONS]

    def _for_factor(
        self,
        factor: RiskFactor,
        performance_data: StudentPerformanceData,
        created_at: datetime,
    ) -> Optional[InterventionRecommendation]:
        template = TEMPLATES.get(factor.factor)
        if template is None:
            logger.debug("No intervention template for factor %r", factor.factor)
            return None
        priority = priority_for(factor.factor, factor.severity)
        return self._build(template, priority, factor.factor.value, performance_data, created_at)

    @staticmethod
    def _build(
        template: InterventionTemplate,
        priority: InterventionPriority,
        tag: str,
        data: StudentPerformanceData,
        created_at: datetime,
    ) -> InterventionRecommendation:
        return InterventionRecommendation(
            id=f"{data.student_id}-{data.course_id}-{tag}-{_epoch_ms(created_at)}",
            student_id=data.student_id,
            course_id=data.course_id,
            type=template.type,
            priority=priority,
            title=template.title,
            description=template.description,
            suggested_actions=template.actions,
            expected_outcome=template.expected_outcome,
            created_at=created_at,
        )

    def generate_learning_recommendations(
        self,
        performance_data: StudentPerformanceData,
        risk_assessment: Optional[RiskAssessment] = None,
    ) -> List[LearningRecommendation]:
        """Threshold-triggered study recommendations, highest priority first."""

        data = performance_data
        created_at = self._now()
        stamp = _epoch_ms(created_at)
        recommendations: List[LearningRecommendation] = []

        def add(kind: LearningRecommendationType, prefix: str, priority: int, **fields) -> None:
            recommendations.append(
                LearningRecommendation(
                    id=f"{prefix}-{data.student_id}-{stamp}",
                    student_id=data.student_id,
                    course_id=data.course_id,
                    type=kind,
                    priority=priority,
                    created_at=created_at,
                    **fields,
                )
            )

        if data.current_grade < 75:
            add(
                LearningRecommendationType.CONTENT,
                "content",
                8,
                title="Review Fundamental Concepts",
                description="Focus on strengthening understanding of core concepts",
                reasoning="Current grade indicates gaps in fundamental understanding",
                resources=(
                    LearningResource(type=ResourceType.LESSON, title="Foundation Review Module", estimated_time=60),
                    LearningResource(type=ResourceType.PRACTICE, title="Interactive Practice Exercises", estimated_time=45),
                ),
            )

        if data.learning_velocity.average_time_per_assignment > 120:
            add(
                LearningRecommendationType.STUDY_METHOD,
                "method",
                6,
                title="Improve Study Efficiency",
                description="Learn techniques to study more effectively and efficiently",
                reasoning="Taking longer than average to complete assignments",
                resources=(
                    LearningResource(
                        type=ResourceType.EXTERNAL,
                        title="Study Techniques Workshop",
                        url="/resources/study-techniques",
                        estimated_time=30,
                    ),
                    LearningResource(
                        type=ResourceType.EXTERNAL,
                        title="Time Management Guide",
                        url="/resources/time-management",
                        estimated_time=20,
                    ),
                ),
            )

        if data.engagement_metrics.login_frequency < 3:
            add(
                LearningRecommendationType.SCHEDULE,
                "schedule",
                7,
                title="Establish Regular Study Schedule",
                description="Create a consistent study routine to improve engagement",
                reasoning="Low login frequency suggests irregular study habits",
                resources=(
                    LearningResource(
                        type=ResourceType.EXTERNAL,
                        title="Study Schedule Template",
                        url="/resources/study-schedule",
                        estimated_time=15,
                    ),
                ),
            )

        if count_low_scores(data.assignment_scores, cutoff=0.7) > 2:
            add(
                LearningRecommendationType.RESOURCE,
                "resource",
                5,
                title="Additional Learning Resources",
                description="Access supplementary materials to strengthen weak areas",
                reasoning="Multiple assignments with scores below 70%",
                resources=(
                    LearningResource(
                        type=ResourceType.EXTERNAL,
                        title="Supplementary Reading Materials",
                        url="/resources/supplementary",
                        estimated_time=90,
                    ),
                    LearningResource(
                        type=ResourceType.EXTERNAL,
                        title="Video Tutorials",
                        url="/resources/tutorials",
                        estimated_time=120,
                    ),
                ),
            )

        return sorted(recommendations, key=lambda rec: rec.priority, reverse=True)
