# ABOUTME: Identifies at-risk students from grades, attendance, engagement, and submissions.
# ABOUTME: Aggregates severity-weighted risk factors into a 0-100 score and predicts outcomes.

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, List, Optional

from .config import DEFAULT_CONFIG, PerformanceInsightsConfig
from .features import (
    build_assignment_frame,
    compute_engagement_score,
    days_since,
    late_submission_rate,
    utc_now,
)
from .schemas import (
    PredictedOutcome,
    RiskAssessment,
    RiskFactor,
    RiskFactorType,
    RiskLevel,
    Severity,
    StudentPerformanceData,
    TrendDirection,
)
from .statistics import clamp, direction_for_slope, fit_linear_trend, round_half_up

logger = logging.getLogger(__name__)

SEVERITY_WEIGHTS = {Severity.LOW: 1.0, Severity.MEDIUM: 1.5, Severity.HIGH: 2.0}

MIN_SCORES_FOR_TREND = 3
LATE_RATE_TRIGGER = 0.3
INACTIVITY_DAYS_TRIGGER = 7
MANY_FACTORS_BOOST = 1.2
HIGH_SEVERITY_BOOST = 0.1


def risk_level_for(score: float) -> RiskLevel:
    """Threshold mapping: >=80 critical, >=60 high, >=40 medium, else low."""
    if score >= 80:
        return RiskLevel.CRITICAL
    if score >= 60:
        return RiskLevel.HIGH
    if score >= 40:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def _band(value: float, high_below: float, medium_below: float) -> Severity:
    if value < high_below:
        return Severity.HIGH
    if value < medium_below:
        return Severity.MEDIUM
    return Severity.LOW


def _band_above(value: float, high_above: float, medium_above: float) -> Severity:
    if value > high_above:
        return Severity.HIGH
    if value > medium_above:
        return Severity.MEDIUM
    return Severity.LOW


def score_risk_factors(factors: List[RiskFactor]) -> int:
    """
    Combine factor impacts into a 0-100 integer score.

    Impacts are weighted by severity and scaled by 100 (capped), then boosted
    x1.2 when more than three factors are present and by 10% per
    high-severity factor.
    """

    if not factors:
        return 0

    weighted = sum(factor.impact * SEVERITY_WEIGHTS[factor.severity] for factor in factors)
    score = min(weighted * 100, 100.0)

    if len(factors) > 3:
        score *= MANY_FACTORS_BOOST

    high_count = sum(1 for factor in factors if factor.severity is Severity.HIGH)
    if high_count:
        score *= 1 + high_count * HIGH_SEVERITY_BOOST

    return int(clamp(round_half_up(score), 0, 100))


class RiskAssessmentEngine:
    """Computes risk factors, score, level, and predicted outcome for one student."""

    def __init__(
        self,
        config: PerformanceInsightsConfig = DEFAULT_CONFIG,
        now: Callable[[], datetime] = utc_now,
    ):
        self.config = config
        self._now = now

    def assess_student_risk(self, data: StudentPerformanceData) -> RiskAssessment:
        factors = self.identify_risk_factors(data)
        risk_score = score_risk_factors(factors)
        risk_level = risk_level_for(risk_score)
        predicted = self.predict_outcome(data, risk_score)

        logger.debug(
            "Assessed %s/%s: score=%d level=%s factors=%s",
            data.student_id,
            data.course_id,
            risk_score,
            risk_level.value,
            [f.factor.value for f in factors],
        )

        return RiskAssessment(
            student_id=data.student_id,
            course_id=data.course_id,
            risk_level=risk_level,
            risk_score=risk_score,
            risk_factors=tuple(factors),
            predicted_outcome=predicted,
            last_assessed=self._now(),
        )

    def identify_risk_factors(self, data: StudentPerformanceData) -> List[RiskFactor]:
        thresholds = self.config.risk_thresholds
        metrics = data.engagement_metrics
        factors: List[RiskFactor] = []

        if data.current_grade < thresholds.grade_threshold:
            factors.append(
                RiskFactor(
                    factor=RiskFactorType.LOW_GRADES,
                    severity=_band(data.current_grade, 60, 70),
                    description=f"Current grade ({data.current_grade:g}%) is below threshold",
                    impact=max(0.0, (70 - data.current_grade) / 70),
                )
            )

        if data.attendance_rate < thresholds.attendance_threshold:
            factors.append(
                RiskFactor(
                    factor=RiskFactorType.POOR_ATTENDANCE,
                    severity=_band(data.attendance_rate, 0.6, 0.8),
                    description=f"Attendance rate ({data.attendance_rate * 100:.1f}%) is below threshold",
                    impact=max(0.0, (0.8 - data.attendance_rate) / 0.8),
                )
            )

        engagement = compute_engagement_score(metrics)
        if engagement < thresholds.engagement_threshold:
            factors.append(
                RiskFactor(
                    factor=RiskFactorType.LOW_ENGAGEMENT,
                    severity=_band(engagement, 0.4, 0.6),
                    description=f"Engagement score ({engagement * 100:.1f}%) indicates low participation",
                    impact=max(0.0, (0.7 - engagement) / 0.7),
                )
            )

        submission_rate = metrics.assignment_submission_rate
        if submission_rate < thresholds.submission_rate_threshold:
            factors.append(
                RiskFactor(
                    factor=RiskFactorType.MISSED_ASSIGNMENTS,
                    severity=_band(submission_rate, 0.5, 0.7),
                    description=f"Assignment submission rate ({submission_rate * 100:.1f}%) is concerning",
                    impact=max(0.0, (0.8 - submission_rate) / 0.8),
                )
            )

        late_rate = late_submission_rate(data.assignment_scores)
        if late_rate > LATE_RATE_TRIGGER:
            factors.append(
                RiskFactor(
                    factor=RiskFactorType.LATE_SUBMISSIONS,
                    severity=_band_above(late_rate, 0.6, 0.4),
                    description=f"High rate of late submissions ({late_rate * 100:.1f}%)",
                    impact=late_rate * 0.3,
                )
            )

        slope = self.grade_trend_slope(data)
        if slope is not None and direction_for_slope(slope) is TrendDirection.DECLINING:
            factors.append(
                RiskFactor(
                    factor=RiskFactorType.DECLINING_PERFORMANCE,
                    severity=_band(slope, -0.3, -0.2),
                    description=f"Performance is declining with slope {slope:.2f}",
                    impact=abs(slope) * 0.5,
                )
            )

        inactive_days = days_since(metrics.last_activity, self._now())
        if inactive_days > INACTIVITY_DAYS_TRIGGER:
            factors.append(
                RiskFactor(
                    factor=RiskFactorType.INACTIVITY,
                    severity=_band_above(inactive_days, 21, 14),
                    description=f"No activity for {inactive_days} days",
                    impact=min(inactive_days / 30, 1) * 0.4,
                )
            )

        return factors

    def grade_trend_slope(self, data: StudentPerformanceData) -> Optional[float]:
        """Slope of percentage scores over submission order; None with fewer than three scores."""
        frame = build_assignment_frame(data.assignment_scores)
        if len(frame) < MIN_SCORES_FOR_TREND:
            return None
        return fit_linear_trend(frame["percentage"].tolist()).slope

    def predict_outcome(self, data: StudentPerformanceData, risk_score: int) -> PredictedOutcome:
        if not self.config.prediction_settings.enable_predictions:
            logger.debug("Predictions disabled in config; outcome for %s is informational only", data.student_id)

        engagement = compute_engagement_score(data.engagement_metrics)
        predicted_grade = clamp(
            data.current_grade * 0.4
            + data.attendance_rate * 100 * 0.3
            + engagement * 100 * 0.3
            - risk_score * 0.2,
            0,
            100,
        )
        pass_likelihood = clamp((predicted_grade - 40) / 40, 0, 1)
        completion_likelihood = clamp(
            data.engagement_metrics.lesson_completion_rate * 0.6
            + data.attendance_rate * 0.4
            - (risk_score / 100) * 0.3,
            0,
            1,
        )

        return PredictedOutcome(
            final_grade=int(round_half_up(predicted_grade)),
            pass_likelihood=round_half_up(pass_likelihood, 2),
            completion_likelihood=round_half_up(completion_likelihood, 2),
        )
