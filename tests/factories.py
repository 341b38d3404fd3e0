# ABOUTME: Builds synthetic student performance records for the test suite.
# ABOUTME: Keeps a fixed reference clock so date-dependent rules are reproducible.

from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from src.insights.schemas import (
    AssignmentScore,
    EngagementMetrics,
    LearningVelocity,
    MetricSample,
    StudentPerformanceData,
    TrendDirection,
)

NOW = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def fixed_clock():
    return NOW


def make_scores(percentages: Sequence[float], late: Sequence[bool] = (), days_ago_start: int = 20):
    """One score per percentage, two days apart, ending near NOW."""
    scores = []
    for idx, pct in enumerate(percentages):
        scores.append(
            AssignmentScore(
                assignment_id=f"a{idx + 1}",
                score=pct,
                max_score=100,
                submitted_at=NOW - timedelta(days=days_ago_start - 2 * idx),
                is_late=late[idx] if idx < len(late) else False,
            )
        )
    return tuple(scores)


def make_student(
    student_id: str = "s1",
    course_id: str = "c1",
    current_grade: float = 92,
    attendance_rate: float = 0.95,
    login_frequency: float = 7,
    time_spent_on_platform: float = 300,
    lesson_completion_rate: float = 1.0,
    assignment_submission_rate: float = 1.0,
    forum_participation: float = 5,
    inactive_days: float = 1,
    scores: Optional[Sequence[AssignmentScore]] = None,
    completion_trend: TrendDirection = TrendDirection.STABLE,
    average_time_per_assignment: float = 60,
    engagement_history: Optional[Sequence[MetricSample]] = None,
    attendance_history: Optional[Sequence[MetricSample]] = None,
) -> StudentPerformanceData:
    if scores is None:
        scores = make_scores([90, 92, 91, 93])
    return StudentPerformanceData(
        student_id=student_id,
        course_id=course_id,
        current_grade=current_grade,
        assignment_scores=tuple(scores),
        attendance_rate=attendance_rate,
        engagement_metrics=EngagementMetrics(
            login_frequency=login_frequency,
            time_spent_on_platform=time_spent_on_platform,
            lesson_completion_rate=lesson_completion_rate,
            assignment_submission_rate=assignment_submission_rate,
            forum_participation=forum_participation,
            last_activity=NOW - timedelta(days=inactive_days),
        ),
        learning_velocity=LearningVelocity(
            average_time_per_lesson=30,
            average_time_per_assignment=average_time_per_assignment,
            completion_trend=completion_trend,
        ),
        engagement_history=tuple(engagement_history) if engagement_history is not None else None,
        attendance_history=tuple(attendance_history) if attendance_history is not None else None,
    )


def make_struggling_student(student_id: str = "s2", course_id: str = "c1", **overrides) -> StudentPerformanceData:
    values = dict(
        current_grade=55,
        attendance_rate=0.6,
        login_frequency=1,
        time_spent_on_platform=30,
        lesson_completion_rate=0.4,
        assignment_submission_rate=0.5,
        forum_participation=0,
        inactive_days=10,
        scores=make_scores([80, 70, 60, 50], late=[False, True, True, True]),
        completion_trend=TrendDirection.DECLINING,
        average_time_per_assignment=150,
    )
    values.update(overrides)
    return make_student(student_id=student_id, course_id=course_id, **values)


def weekly_history(values: Sequence[float], label: str = "metric"):
    """Samples one week apart, the last one a day before NOW."""
    count = len(values)
    return tuple(
        MetricSample(date=NOW - timedelta(days=1 + 7 * (count - 1 - idx)), value=value, label=label)
        for idx, value in enumerate(values)
    )
