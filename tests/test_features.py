# ABOUTME: Tests shared feature builders and numeric helpers.
# ABOUTME: Covers engagement scoring, assignment frames, and half-up rounding.

from datetime import timedelta

import pytest

from src.insights.features import (
    as_utc,
    build_assignment_frame,
    compute_engagement_score,
    count_low_scores,
    days_since,
    late_submission_rate,
)
from src.insights.schemas import AssignmentScore, EngagementMetrics
from src.insights.statistics import clamp, round_half_up
from tests.factories import NOW, make_scores


def _metrics(**overrides):
    values = dict(
        login_frequency=7,
        time_spent_on_platform=300,
        lesson_completion_rate=1.0,
        assignment_submission_rate=1.0,
        forum_participation=5,
        last_activity=NOW,
    )
    values.update(overrides)
    return EngagementMetrics(**values)


def test_engagement_score_saturates_at_one():
    assert compute_engagement_score(_metrics()) == pytest.approx(1.0)
    assert compute_engagement_score(_metrics(login_frequency=70, forum_participation=50)) == pytest.approx(1.0)


def test_engagement_score_weights():
    metrics = _metrics(
        login_frequency=3.5,
        time_spent_on_platform=0,
        lesson_completion_rate=0.5,
        assignment_submission_rate=0,
        forum_participation=0,
    )
    # 0.5 * 0.2 + 0.5 * 0.3
    assert compute_engagement_score(metrics) == pytest.approx(0.25)


def test_assignment_frame_is_chronological_and_stable():
    first = AssignmentScore("late", 50, 100, NOW)
    tie = AssignmentScore("tie", 70, 100, NOW)
    earliest = AssignmentScore("early", 80, 100, NOW - timedelta(days=3))
    frame = build_assignment_frame([first, tie, earliest])
    assert list(frame["assignment_id"]) == ["early", "late", "tie"]
    assert list(frame["percentage"]) == [80, 50, 70]


def test_empty_assignment_frame_keeps_columns():
    frame = build_assignment_frame([])
    assert frame.empty
    assert "percentage" in frame.columns


def test_late_rate_and_low_scores():
    scores = make_scores([50, 69, 70, 95], late=[True, False, True, False])
    assert late_submission_rate(scores) == 0.5
    assert late_submission_rate(()) == 0.0
    assert count_low_scores(scores) == 2


def test_zero_max_score_is_not_counted_low():
    assert count_low_scores([AssignmentScore("a1", 0, 0, NOW)]) == 0
    assert AssignmentScore("a1", 0, 0, NOW).percentage == 0.0


def test_days_since_floors_partial_days():
    assert days_since(NOW - timedelta(days=7, hours=23), NOW) == 7
    assert days_since(NOW, NOW) == 0


def test_round_half_up_and_clamp():
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(-0.5) == 0
    assert round_half_up(12.345, 1) == 12.3
    assert clamp(120, 0, 100) == 100
    assert clamp(-3, 0, 100) == 0


def test_naive_datetimes_are_treated_as_utc():
    naive_now = NOW.replace(tzinfo=None)
    assert as_utc(naive_now) == NOW
    assert days_since(naive_now - timedelta(days=3), NOW) == 3
    assert days_since(NOW - timedelta(days=3), naive_now) == 3

    frame = build_assignment_frame(
        [AssignmentScore("naive", 50, 100, naive_now), AssignmentScore("aware", 80, 100, NOW - timedelta(days=1))]
    )
    assert list(frame["assignment_id"]) == ["aware", "naive"]
