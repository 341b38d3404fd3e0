# ABOUTME: Defines canonical data structures shared by every insights engine.
# ABOUTME: Centralizes input records, derived value objects, and the closed tag enums.

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return _RISK_LEVEL_RANK[self]


_RISK_LEVEL_RANK = {RiskLevel.LOW: 0, RiskLevel.MEDIUM: 1, RiskLevel.HIGH: 2, RiskLevel.CRITICAL: 3}


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RiskFactorType(str, Enum):
    LOW_GRADES = "low_grades"
    POOR_ATTENDANCE = "poor_attendance"
    LOW_ENGAGEMENT = "low_engagement"
    MISSED_ASSIGNMENTS = "missed_assignments"
    LATE_SUBMISSIONS = "late_submissions"
    DECLINING_PERFORMANCE = "declining_performance"
    INACTIVITY = "inactivity"


class TrendDirection(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class Timeframe(str, Enum):
    WEEK = "week"
    MONTH = "month"
    SEMESTER = "semester"


class InterventionType(str, Enum):
    ACADEMIC = "academic"
    ATTENDANCE = "attendance"
    ENGAGEMENT = "engagement"
    BEHAVIORAL = "behavioral"


class InterventionPriority(str, Enum):
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _PRIORITY_RANK[self]


_PRIORITY_RANK = {
    InterventionPriority.URGENT: 4,
    InterventionPriority.HIGH: 3,
    InterventionPriority.MEDIUM: 2,
    InterventionPriority.LOW: 1,
}


class ResponsibleParty(str, Enum):
    TEACHER = "teacher"
    STUDENT = "student"
    ADMIN = "admin"


class LearningRecommendationType(str, Enum):
    CONTENT = "content"
    STUDY_METHOD = "study_method"
    SCHEDULE = "schedule"
    RESOURCE = "resource"


class ResourceType(str, Enum):
    LESSON = "lesson"
    ASSIGNMENT = "assignment"
    EXTERNAL = "external"
    PRACTICE = "practice"


class AlertType(str, Enum):
    RISK_ESCALATION = "risk_escalation"
    PERFORMANCE_DECLINE = "performance_decline"
    ATTENDANCE_ISSUE = "attendance_issue"
    ENGAGEMENT_DROP = "engagement_drop"
    ASSIGNMENT_PATTERN = "assignment_pattern"


class AlertSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"

    @property
    def rank(self) -> int:
        return _ALERT_SEVERITY_RANK[self]


_ALERT_SEVERITY_RANK = {AlertSeverity.CRITICAL: 3, AlertSeverity.WARNING: 2, AlertSeverity.INFO: 1}


class AlertFrequency(str, Enum):
    IMMEDIATE = "immediate"
    DAILY = "daily"
    WEEKLY = "weekly"


# --------------------------------------------------------------------------- #
# Input records
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class AssignmentScore:
    """One graded submission."""

    assignment_id: str
    score: float
    max_score: float
    submitted_at: datetime
    is_late: bool = False
    time_spent: Optional[float] = None  # minutes

    @property
    def percentage(self) -> float:
        return (self.score / self.max_score) * 100 if self.max_score else 0.0


@dataclass(frozen=True)
class EngagementMetrics:
    login_frequency: float  # logins per week
    time_spent_on_platform: float  # minutes per week
    lesson_completion_rate: float
    assignment_submission_rate: float
    forum_participation: float  # posts per week
    last_activity: datetime


@dataclass(frozen=True)
class LearningVelocity:
    average_time_per_lesson: float
    average_time_per_assignment: float
    completion_trend: TrendDirection = TrendDirection.STABLE


@dataclass(frozen=True)
class MetricSample:
    """A dated observation of a single metric."""

    date: datetime
    value: float
    label: Optional[str] = None


@dataclass(frozen=True)
class StudentPerformanceData:
    """Snapshot of one student's standing in one course."""

    student_id: str
    course_id: str
    current_grade: float
    assignment_scores: Tuple[AssignmentScore, ...]
    attendance_rate: float
    engagement_metrics: EngagementMetrics
    learning_velocity: LearningVelocity
    engagement_history: Optional[Tuple[MetricSample, ...]] = None
    attendance_history: Optional[Tuple[MetricSample, ...]] = None


# --------------------------------------------------------------------------- #
# Derived value objects
# --------------------------------------------------------------------------- #


@dataclass(frozen=True)
class RiskFactor:
    factor: RiskFactorType
    severity: Severity
    description: str
    impact: float


@dataclass(frozen=True)
class PredictedOutcome:
    final_grade: int
    pass_likelihood: float
    completion_likelihood: float


@dataclass(frozen=True)
class RiskAssessment:
    student_id: str
    course_id: str
    risk_level: RiskLevel
    risk_score: int
    risk_factors: Tuple[RiskFactor, ...]
    predicted_outcome: PredictedOutcome
    last_assessed: datetime


@dataclass(frozen=True)
class PerformanceTrend:
    """Linear trend of one metric over the lookback window."""

    direction: TrendDirection
    slope: float
    confidence: float
    data_points: Tuple[MetricSample, ...] = ()


@dataclass(frozen=True)
class PerformanceTrendSet:
    student_id: str
    course_id: str
    timeframe: Timeframe
    grades: PerformanceTrend
    engagement: PerformanceTrend
    attendance: PerformanceTrend

    def declining_metrics(self) -> Tuple[str, ...]:
        named = (("grades", self.grades), ("engagement", self.engagement), ("attendance", self.attendance))
        return tuple(name for name, trend in named if trend.direction is TrendDirection.DECLINING)


@dataclass(frozen=True)
class VisualIndicator:
    color: str
    icon: str
    severity: str  # success | warning | danger | info


@dataclass(frozen=True)
class TrendInsights:
    insights: Tuple[str, ...]
    recommendations: Tuple[str, ...]
    visual_indicators: VisualIndicator


@dataclass(frozen=True)
class SuggestedAction:
    action: str
    timeline: str
    responsible: ResponsibleParty
    resources: Tuple[str, ...] = ()


@dataclass(frozen=True)
class InterventionRecommendation:
    id: str
    student_id: str
    course_id: str
    type: InterventionType
    priority: InterventionPriority
    title: str
    description: str
    suggested_actions: Tuple[SuggestedAction, ...]
    expected_outcome: str
    created_at: datetime
    status: str = "pending"


@dataclass(frozen=True)
class LearningResource:
    type: ResourceType
    title: str
    url: Optional[str] = None
    estimated_time: Optional[int] = None  # minutes


@dataclass(frozen=True)
class LearningRecommendation:
    id: str
    student_id: str
    course_id: str
    type: LearningRecommendationType
    title: str
    description: str
    reasoning: str
    resources: Tuple[LearningResource, ...]
    priority: int
    created_at: datetime
    status: str = "active"


@dataclass(frozen=True)
class TeacherAlert:
    id: str
    teacher_id: str
    course_id: str
    student_id: str
    type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    data: Mapping[str, Any]
    action_required: bool
    created_at: datetime
    read_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        # read-only copy, not shared with the caller or with escalated copies
        object.__setattr__(self, "data", MappingProxyType(dict(self.data)))


@dataclass(frozen=True)
class GradeBucket:
    range: str
    count: int
    percentage: int


@dataclass(frozen=True)
class CohortMetrics:
    average_grade: float = 0.0
    median_grade: float = 0.0
    grade_distribution: Tuple[GradeBucket, ...] = ()
    attendance_rate: float = 0.0
    completion_rate: float = 0.0
    engagement_score: float = 0.0


@dataclass(frozen=True)
class StudentComparison:
    student_id: str
    percentile_rank: int
    performance_relative_to_average: float
    strengths: Tuple[str, ...] = ()
    improvement_areas: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CohortComparison:
    course_id: str
    timeframe: Timeframe
    metrics: CohortMetrics = field(default_factory=CohortMetrics)
    student_comparisons: Tuple[StudentComparison, ...] = ()
