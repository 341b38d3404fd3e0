# ABOUTME: Declares reusable feature builders operating on canonical performance records.
# ABOUTME: Holds the single engagement-score definition shared by all engines.

from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Iterable

import pandas as pd

from .schemas import AssignmentScore, EngagementMetrics

ENGAGEMENT_WEIGHTS = {
    "login_frequency": 0.2,
    "time_spent": 0.2,
    "lesson_completion": 0.3,
    "assignment_submission": 0.2,
    "forum_participation": 0.1,
}

# Values at which each unbounded metric saturates to 1.0.
FULL_LOGINS_PER_WEEK = 7
FULL_MINUTES_PER_WEEK = 300
FULL_POSTS_PER_WEEK = 5

ASSIGNMENT_COLUMNS = ["assignment_id", "submitted_at", "percentage", "is_late", "time_spent"]


def compute_engagement_score(metrics: EngagementMetrics) -> float:
    """
    Weighted composite of the engagement metrics, normalized to [0, 1].

    Login frequency, platform time and forum posts are capped at their
    saturation values before weighting.
    """

    normalized_logins = min(metrics.login_frequency / FULL_LOGINS_PER_WEEK, 1)
    normalized_time = min(metrics.time_spent_on_platform / FULL_MINUTES_PER_WEEK, 1)
    normalized_forum = min(metrics.forum_participation / FULL_POSTS_PER_WEEK, 1)

    return (
        normalized_logins * ENGAGEMENT_WEIGHTS["login_frequency"]
        + normalized_time * ENGAGEMENT_WEIGHTS["time_spent"]
        + metrics.lesson_completion_rate * ENGAGEMENT_WEIGHTS["lesson_completion"]
        + metrics.assignment_submission_rate * ENGAGEMENT_WEIGHTS["assignment_submission"]
        + normalized_forum * ENGAGEMENT_WEIGHTS["forum_participation"]
    )


def build_assignment_frame(scores: Iterable[AssignmentScore]) -> pd.DataFrame:
    """Convert assignment scores into a chronologically sorted dataframe."""

    rows = [
        {
            "assignment_id": score.assignment_id,
            "submitted_at": as_utc(score.submitted_at),
            "percentage": score.percentage,
            "is_late": bool(score.is_late),
            "time_spent": score.time_spent,
        }
        for score in scores
    ]
    if not rows:
        return pd.DataFrame(columns=ASSIGNMENT_COLUMNS)

    df = pd.DataFrame(rows)
    # Stable sort keeps input order for identical timestamps.
    return df.sort_values("submitted_at", kind="mergesort").reset_index(drop=True)


def late_submission_rate(scores: Iterable[AssignmentScore]) -> float:
    """Fraction of submissions flagged late; 0.0 when there are none."""

    flags = [bool(score.is_late) for score in scores]
    if not flags:
        return 0.0
    return sum(flags) / len(flags)


def count_low_scores(scores: Iterable[AssignmentScore], cutoff: float = 0.7) -> int:
    return sum(1 for score in scores if score.max_score and score.score / score.max_score < cutoff)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(moment: datetime) -> datetime:
    """Aware UTC datetime; naive values are taken to be UTC."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def days_since(moment: datetime, now: datetime) -> int:
    """Whole days elapsed between `moment` and `now` (floored)."""

    return math.floor((as_utc(now) - as_utc(moment)).total_seconds() / 86400)
