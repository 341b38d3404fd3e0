# ABOUTME: Fits linear trends to grade, engagement, and attendance series per student.
# ABOUTME: Turns fitted trends into prose insights and a single visual severity indicator.

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd

from .features import as_utc, build_assignment_frame, compute_engagement_score, utc_now
from .schemas import (
    MetricSample,
    PerformanceTrend,
    PerformanceTrendSet,
    StudentPerformanceData,
    Timeframe,
    TrendDirection,
    TrendInsights,
    VisualIndicator,
)
from .statistics import clamp, direction_for_slope, fit_linear_trend, round_half_up

logger = logging.getLogger(__name__)

LOOKBACK_DAYS = {Timeframe.WEEK: 7, Timeframe.MONTH: 30, Timeframe.SEMESTER: 120}
MAX_SYNTHETIC_POINTS = 12
ENGAGEMENT_JITTER = 10.0  # +/- points on the 0-100 scale
ATTENDANCE_JITTER = 0.1  # +/- on the 0-1 scale

INDICATORS = {
    "danger": VisualIndicator(color="#EF4444", icon="📉", severity="danger"),
    "warning": VisualIndicator(color="#F59E0B", icon="⚠️", severity="warning"),
    "improving": VisualIndicator(color="#10B981", icon="📈", severity="success"),
    "stable": VisualIndicator(color="#10B981", icon="✅", severity="success"),
}

_FLAT = PerformanceTrend(direction=TrendDirection.STABLE, slope=0.0, confidence=0.0, data_points=())


def fit_series(points: Sequence[MetricSample]) -> PerformanceTrend:
    """Fit a trend over chronologically ordered samples, indexed 0..n-1."""

    if len(points) < 2:
        return _FLAT
    fit = fit_linear_trend([p.value for p in points])
    return PerformanceTrend(
        direction=direction_for_slope(fit.slope),
        slope=fit.slope,
        confidence=fit.confidence,
        data_points=tuple(points),
    )


class TrendAnalysisEngine:
    """
    Builds per-metric trends over a lookback window.

    Grades come straight from assignment scores. Engagement and attendance use
    the record's history when supplied; otherwise weekly samples are
    synthesized around the current value with bounded noise drawn from `rng`.
    """

    def __init__(
        self,
        rng: Optional[np.random.Generator] = None,
        now: Callable[[], datetime] = utc_now,
    ):
        self.rng = rng if rng is not None else np.random.default_rng()
        self._now = now

    def analyze_performance_trends(
        self,
        data: StudentPerformanceData,
        timeframe: Union[Timeframe, str] = Timeframe.MONTH,
    ) -> PerformanceTrendSet:
        timeframe = Timeframe(timeframe)
        now = as_utc(self._now())
        cutoff = now - timedelta(days=LOOKBACK_DAYS[timeframe])

        trend_set = PerformanceTrendSet(
            student_id=data.student_id,
            course_id=data.course_id,
            timeframe=timeframe,
            grades=fit_series(self._grade_points(data, cutoff)),
            engagement=fit_series(self._engagement_points(data, cutoff, now)),
            attendance=fit_series(self._attendance_points(data, cutoff, now)),
        )
        logger.debug(
            "Trends for %s over %s: grades=%s engagement=%s attendance=%s",
            data.student_id,
            timeframe.value,
            trend_set.grades.direction.value,
            trend_set.engagement.direction.value,
            trend_set.attendance.direction.value,
        )
        return trend_set

    def _grade_points(self, data: StudentPerformanceData, cutoff: datetime) -> List[MetricSample]:
        frame = build_assignment_frame(data.assignment_scores)
        if frame.empty:
            return []
        recent = frame[frame["submitted_at"] >= cutoff]
        return [
            MetricSample(
                date=pd.Timestamp(row.submitted_at).to_pydatetime(),
                value=float(row.percentage),
                label=row.assignment_id,
            )
            for row in recent.itertuples(index=False)
        ]

    def _engagement_points(self, data: StudentPerformanceData, cutoff: datetime, now: datetime) -> List[MetricSample]:
        if data.engagement_history is not None:
            return _within_window(data.engagement_history, cutoff)

        base = compute_engagement_score(data.engagement_metrics) * 100
        return [
            MetricSample(
                date=date,
                value=round_half_up(clamp(base + self.rng.uniform(-ENGAGEMENT_JITTER, ENGAGEMENT_JITTER), 0, 100)),
                label="engagement_score",
            )
            for date in _weekly_dates(cutoff, now)
        ]

    def _attendance_points(self, data: StudentPerformanceData, cutoff: datetime, now: datetime) -> List[MetricSample]:
        if data.attendance_history is not None:
            return _within_window(data.attendance_history, cutoff)

        return [
            MetricSample(
                date=date,
                value=round_half_up(
                    clamp(data.attendance_rate + self.rng.uniform(-ATTENDANCE_JITTER, ATTENDANCE_JITTER), 0, 1) * 100
                ),
                label="attendance_rate",
            )
            for date in _weekly_dates(cutoff, now)
        ]

    def generate_trend_insights(self, trend: PerformanceTrendSet) -> TrendInsights:
        """
        Derive insight and recommendation strings plus one visual indicator.

        Severity priority: declining grades (danger), then declining engagement
        or attendance (warning), then improving grades, then stable.
        """

        insights: List[str] = []
        recommendations: List[str] = []

        if trend.grades.direction is TrendDirection.DECLINING:
            insights.append(f"Grades have been declining with a slope of {trend.grades.slope:.2f}")
            recommendations.append("Schedule a one-on-one meeting to discuss academic challenges")
            recommendations.append("Consider additional tutoring or study resources")
        elif trend.grades.direction is TrendDirection.IMPROVING:
            insights.append("Grades are improving with positive momentum")
            recommendations.append("Continue current study strategies")
            recommendations.append("Consider peer tutoring opportunities")

        if trend.engagement.direction is TrendDirection.DECLINING:
            insights.append("Student engagement has been decreasing")
            recommendations.append("Implement interactive learning activities")
            recommendations.append("Check in with student about course interest and motivation")

        if trend.attendance.direction is TrendDirection.DECLINING:
            insights.append("Attendance pattern shows concerning decline")
            recommendations.append("Contact student about attendance issues")
            recommendations.append("Explore flexible attendance options if needed")

        if not insights:
            insights.append("Performance trends are stable")
            recommendations.append("Continue monitoring progress")

        declining = set(trend.declining_metrics())
        if "grades" in declining:
            indicator = INDICATORS["danger"]
        elif declining:
            indicator = INDICATORS["warning"]
        elif trend.grades.direction is TrendDirection.IMPROVING:
            indicator = INDICATORS["improving"]
        else:
            indicator = INDICATORS["stable"]

        return TrendInsights(
            insights=tuple(insights),
            recommendations=tuple(recommendations),
            visual_indicators=indicator,
        )


def _within_window(history: Sequence[MetricSample], cutoff: datetime) -> List[MetricSample]:
    return sorted(
        (sample for sample in history if as_utc(sample.date) >= cutoff),
        key=lambda sample: as_utc(sample.date),
    )


def _weekly_dates(cutoff: datetime, now: datetime) -> List[datetime]:
    """One date per started week between cutoff and now, capped at MAX_SYNTHETIC_POINTS."""

    window_days = math.floor((now - cutoff).total_seconds() / 86400)
    count = math.ceil(min(window_days / 7, MAX_SYNTHETIC_POINTS))
    return [cutoff + timedelta(weeks=i) for i in range(count)]
