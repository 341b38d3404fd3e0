# ABOUTME: Aggregates a course's students into cohort-level statistics and per-student comparisons.
# ABOUTME: Produces cohort insights and period-over-period comparisons for course reviews.

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from .features import compute_engagement_score, late_submission_rate
from .schemas import (
    CohortComparison,
    CohortMetrics,
    GradeBucket,
    StudentComparison,
    StudentPerformanceData,
    Timeframe,
    TrendDirection,
)
from .statistics import median, percentile_rank, round_half_up

logger = logging.getLogger(__name__)

# (label, inclusive lower bound); a grade falls in the first band whose bound it reaches.
GRADE_BANDS: Tuple[Tuple[str, float], ...] = (
    ("A (90-100)", 90),
    ("B (80-89)", 80),
    ("C (70-79)", 70),
    ("D (60-69)", 60),
    ("F (0-59)", 0),
)


@dataclass(frozen=True)
class CohortInsights:
    insights: Tuple[str, ...]
    recommendations: Tuple[str, ...]
    concerning_trends: Tuple[str, ...]
    positive_highlights: Tuple[str, ...]


@dataclass(frozen=True)
class CohortChange:
    improvement: int  # percent of current students whose grade rose
    students_improved: int
    students_declined: int
    average_grade_change: float
    attendance_change: float
    engagement_change: float


def _r2(value: float) -> float:
    return round_half_up(value, 2)


def build_cohort_frame(students: Sequence[StudentPerformanceData]) -> pd.DataFrame:
    """One row per student with the numeric columns used for cohort statistics."""

    rows = [
        {
            "student_id": s.student_id,
            "course_id": s.course_id,
            "grade": s.current_grade,
            "attendance": s.attendance_rate,
            "completion": s.engagement_metrics.lesson_completion_rate,
            "submission": s.engagement_metrics.assignment_submission_rate,
            "engagement": compute_engagement_score(s.engagement_metrics),
        }
        for s in students
    ]
    return pd.DataFrame(
        rows,
        columns=["student_id", "course_id", "grade", "attendance", "completion", "submission", "engagement"],
    )


def grade_distribution(grades: Sequence[float]) -> Tuple[GradeBucket, ...]:
    """Letter-band histogram; empty bands are omitted."""

    if len(grades) == 0:
        return ()
    counts = Counter()
    for grade in grades:
        for label, lower in GRADE_BANDS:
            if grade >= lower:
                counts[label] += 1
                break
    total = len(grades)
    return tuple(
        GradeBucket(range=label, count=counts[label], percentage=int(round_half_up(counts[label] / total * 100)))
        for label, _ in GRADE_BANDS
        if counts[label] > 0
    )


class CohortAnalysisEngine:
    def analyze_cohort_performance(
        self,
        students: Sequence[StudentPerformanceData],
        course_id: str,
        timeframe: Union[Timeframe, str] = Timeframe.MONTH,
    ) -> CohortComparison:
        """
        Cohort statistics for the students enrolled in `course_id`.

        Grades of zero or below are treated as "not yet graded" and left out
        of grade statistics. No matching students yields zeroed metrics.
        """

        timeframe = Timeframe(timeframe)
        course_students = [s for s in students if s.course_id == course_id]
        if not course_students:
            logger.debug("No students found for course %s; returning empty cohort", course_id)
            return CohortComparison(course_id=course_id, timeframe=timeframe)

        frame = build_cohort_frame(course_students)
        metrics = self._metrics(frame)
        comparisons = self._comparisons(course_students, frame, metrics)
        return CohortComparison(
            course_id=course_id,
            timeframe=timeframe,
            metrics=metrics,
            student_comparisons=comparisons,
        )

    def _metrics(self, frame: pd.DataFrame) -> CohortMetrics:
        graded = frame.loc[frame["grade"] > 0, "grade"]
        return CohortMetrics(
            average_grade=_r2(float(graded.mean())) if not graded.empty else 0.0,
            median_grade=_r2(median(graded.tolist())),
            grade_distribution=grade_distribution(graded.tolist()),
            attendance_rate=_r2(float(frame["attendance"].mean())),
            completion_rate=_r2(float(frame["completion"].mean())),
            engagement_score=_r2(float(frame["engagement"].mean())),
        )

    def _comparisons(
        self,
        students: Sequence[StudentPerformanceData],
        frame: pd.DataFrame,
        metrics: CohortMetrics,
    ) -> Tuple[StudentComparison, ...]:
        graded = frame.loc[frame["grade"] > 0, "grade"].tolist()
        comparisons = []
        for student, engagement in zip(students, frame["engagement"].tolist()):
            strengths, improvement_areas = identify_strengths_and_weaknesses(student, metrics, engagement)
            comparisons.append(
                StudentComparison(
                    student_id=student.student_id,
                    percentile_rank=percentile_rank(student.current_grade, graded),
                    performance_relative_to_average=_r2(student.current_grade - metrics.average_grade),
                    strengths=tuple(strengths),
                    improvement_areas=tuple(improvement_areas),
                )
            )
        return tuple(comparisons)

    def generate_cohort_insights(self, analysis: CohortComparison) -> CohortInsights:
        insights: List[str] = []
        recommendations: List[str] = []
        concerning: List[str] = []
        positive: List[str] = []

        metrics = analysis.metrics
        total = len(analysis.student_comparisons)
        if total == 0:
            return CohortInsights(
                insights=("No students in cohort",),
                recommendations=(),
                concerning_trends=(),
                positive_highlights=(),
            )

        failing = sum(b.count for b in metrics.grade_distribution if b.range.startswith("F"))
        excellent = sum(b.count for b in metrics.grade_distribution if b.range.startswith("A"))

        if failing > total * 0.2:
            concerning.append(f"{_share(failing, total)}% of students are failing")
            recommendations.append("Implement additional support programs for struggling students")
            recommendations.append("Review course difficulty and pacing")
        if excellent > total * 0.3:
            positive.append(f"{_share(excellent, total)}% of students are performing excellently")

        if metrics.attendance_rate < 0.8:
            concerning.append(f"Average attendance is {_share(metrics.attendance_rate, 1)}%")
            recommendations.append("Investigate attendance barriers and implement engagement strategies")
        elif metrics.attendance_rate > 0.9:
            positive.append(f"Excellent attendance rate of {_share(metrics.attendance_rate, 1)}%")

        if metrics.engagement_score < 0.6:
            concerning.append(f"Low average engagement score of {_share(metrics.engagement_score, 1)}%")
            recommendations.append("Introduce more interactive and engaging content")
            recommendations.append("Consider gamification elements to boost engagement")

        if metrics.completion_rate < 0.7:
            concerning.append(f"Low lesson completion rate of {_share(metrics.completion_rate, 1)}%")
            recommendations.append("Review lesson structure and difficulty progression")
            recommendations.append("Provide additional support for lesson completion")

        high = sum(1 for c in analysis.student_comparisons if c.percentile_rank > 80)
        low = sum(1 for c in analysis.student_comparisons if c.percentile_rank < 20)
        insights.append(f"{high} students ({_share(high, total)}%) are in the top 20%")
        insights.append(f"{low} students ({_share(low, total)}%) are in the bottom 20%")

        top_strength = _most_common(s for c in analysis.student_comparisons for s in c.strengths)
        top_weakness = _most_common(w for c in analysis.student_comparisons for w in c.improvement_areas)
        if top_strength:
            positive.append(f"{top_strength[0]} is a common strength across {top_strength[1]} students")
        if top_weakness:
            concerning.append(f"{top_weakness[0]} needs improvement for {top_weakness[1]} students")
            recommendations.append(f"Focus on improving {top_weakness[0]} through targeted interventions")

        return CohortInsights(
            insights=tuple(insights),
            recommendations=tuple(recommendations),
            concerning_trends=tuple(concerning),
            positive_highlights=tuple(positive),
        )

    def compare_performance_over_time(
        self,
        current: Sequence[StudentPerformanceData],
        previous: Sequence[StudentPerformanceData],
        course_id: str,
    ) -> CohortChange:
        """Compare two snapshots of the same course, matching students by id."""

        now_metrics = self.analyze_cohort_performance(current, course_id).metrics
        then_metrics = self.analyze_cohort_performance(previous, course_id).metrics

        previous_grades: Dict[str, float] = {
            s.student_id: s.current_grade for s in previous if s.course_id == course_id
        }
        current_course = [s for s in current if s.course_id == course_id]
        improved = declined = 0
        for student in current_course:
            before = previous_grades.get(student.student_id)
            if before is None:
                continue
            if student.current_grade > before:
                improved += 1
            elif student.current_grade < before:
                declined += 1

        improvement = improved / len(current_course) * 100 if current_course else 0.0
        return CohortChange(
            improvement=int(round_half_up(improvement)),
            students_improved=improved,
            students_declined=declined,
            average_grade_change=_r2(now_metrics.average_grade - then_metrics.average_grade),
            attendance_change=_r2(now_metrics.attendance_rate - then_metrics.attendance_rate),
            engagement_change=_r2(now_metrics.engagement_score - then_metrics.engagement_score),
        )


def identify_strengths_and_weaknesses(
    student: StudentPerformanceData,
    metrics: CohortMetrics,
    engagement: float,
) -> Tuple[List[str], List[str]]:
    strengths: List[str] = []
    weaknesses: List[str] = []

    def compare(label: str, value: float, reference: float, margin: float) -> None:
        if value > reference + margin:
            strengths.append(label)
        elif value < reference - margin:
            weaknesses.append(label)

    compare("Academic Performance", student.current_grade, metrics.average_grade, 10)
    compare("Attendance", student.attendance_rate, metrics.attendance_rate, 0.1)
    compare("Engagement", engagement, metrics.engagement_score, 0.1)
    compare("Lesson Completion", student.engagement_metrics.lesson_completion_rate, metrics.completion_rate, 0.1)

    submission = student.engagement_metrics.assignment_submission_rate
    if submission > 0.9:
        strengths.append("Assignment Submission")
    elif submission < 0.7:
        weaknesses.append("Assignment Submission")

    if student.assignment_scores:
        late_rate = late_submission_rate(student.assignment_scores)
        if late_rate < 0.1:
            strengths.append("Time Management")
        elif late_rate > 0.3:
            weaknesses.append("Time Management")

    trend = student.learning_velocity.completion_trend
    if trend is TrendDirection.IMPROVING:
        strengths.append("Learning Progress")
    elif trend is TrendDirection.DECLINING:
        weaknesses.append("Learning Progress")

    return strengths, weaknesses


def _share(part: float, whole: float) -> int:
    return int(round_half_up(part / whole * 100)) if whole else 0


def _most_common(items) -> Optional[Tuple[str, int]]:
    counts = Counter(items)
    if not counts:
        return None
    # Counter.most_common keeps first-seen order among ties.
    return counts.most_common(1)[0]
