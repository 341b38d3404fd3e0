# ABOUTME: Flattens analysis results into JSON-ready structures and pandas DataFrames.
# ABOUTME: Renders risk assessments and trend insights as human-readable text blocks.

from __future__ import annotations

from dataclasses import fields, is_dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, List, Mapping, Sequence

import numpy as np
import pandas as pd

from .schemas import (
    CohortComparison,
    PerformanceTrendSet,
    RiskAssessment,
    TeacherAlert,
    TrendInsights,
)

RULE = "━" * 60


def to_jsonable(value: Any) -> Any:
    """Convert dataclasses, enums, datetimes, and numpy scalars into plain JSON types."""

    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: to_jsonable(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    if isinstance(value, np.generic):
        return value.item()
    return value


def risk_assessments_frame(assessments: Iterable[RiskAssessment]) -> pd.DataFrame:
    rows = [
        {
            "student_id": risk.student_id,
            "course_id": risk.course_id,
            "risk_level": risk.risk_level.value,
            "risk_score": risk.risk_score,
            "risk_factors": ",".join(f.factor.value for f in risk.risk_factors),
            "predicted_grade": risk.predicted_outcome.final_grade,
            "pass_likelihood": risk.predicted_outcome.pass_likelihood,
            "completion_likelihood": risk.predicted_outcome.completion_likelihood,
        }
        for risk in assessments
    ]
    columns = [
        "student_id",
        "course_id",
        "risk_level",
        "risk_score",
        "risk_factors",
        "predicted_grade",
        "pass_likelihood",
        "completion_likelihood",
    ]
    frame = pd.DataFrame(rows, columns=columns)
    return frame.sort_values(["risk_score", "student_id"], ascending=[False, True], kind="mergesort").reset_index(
        drop=True
    )


def alerts_frame(alerts: Iterable[TeacherAlert]) -> pd.DataFrame:
    rows = [
        {
            "alert_id": alert.id,
            "student_id": alert.student_id,
            "course_id": alert.course_id,
            "type": alert.type.value,
            "severity": alert.severity.value,
            "title": alert.title,
            "action_required": alert.action_required,
            "created_at": alert.created_at,
        }
        for alert in alerts
    ]
    return pd.DataFrame(
        rows,
        columns=["alert_id", "student_id", "course_id", "type", "severity", "title", "action_required", "created_at"],
    )


def cohort_comparisons_frame(cohort: CohortComparison) -> pd.DataFrame:
    rows = [
        {
            "student_id": c.student_id,
            "percentile_rank": c.percentile_rank,
            "performance_relative_to_average": c.performance_relative_to_average,
            "strengths": ", ".join(c.strengths),
            "improvement_areas": ", ".join(c.improvement_areas),
        }
        for c in cohort.student_comparisons
    ]
    return pd.DataFrame(
        rows,
        columns=["student_id", "percentile_rank", "performance_relative_to_average", "strengths", "improvement_areas"],
    )


def format_risk_report(risk: RiskAssessment) -> str:
    """Render a risk assessment as a human-readable block."""
    outcome = risk.predicted_outcome
    lines = [
        RULE,
        f"Student: {risk.student_id}",
        f"Course: {risk.course_id}",
        f"Risk: {risk.risk_level.value.upper()} ({risk.risk_score}/100)",
        "",
        "RISK FACTORS:",
        RULE,
    ]
    if risk.risk_factors:
        for idx, factor in enumerate(risk.risk_factors, 1):
            lines.append(f"  #{idx}  [{factor.severity.value}] {factor.description} (impact {factor.impact:.2f})")
    else:
        lines.append("  No risk factors identified.")

    lines.extend(
        [
            "",
            "PREDICTED OUTCOME:",
            f"  Final grade ~{outcome.final_grade}%, pass {outcome.pass_likelihood:.0%}, "
            f"completion {outcome.completion_likelihood:.0%}",
            RULE,
        ]
    )
    return "\n".join(lines)


def format_trend_report(trend: PerformanceTrendSet, insights: TrendInsights) -> str:
    lines: List[str] = [RULE, f"Student: {trend.student_id} ({trend.timeframe.value})", RULE]
    for name in ("grades", "engagement", "attendance"):
        metric = getattr(trend, name)
        lines.append(
            f"  {name:<11} {metric.direction.value:<9} slope {metric.slope:+.2f}  "
            f"confidence {metric.confidence:.2f}  n={len(metric.data_points)}"
        )
    lines.extend(["", f"{insights.visual_indicators.icon} INSIGHTS:"])
    lines.extend(f"  - {text}" for text in insights.insights)
    lines.append("RECOMMENDATIONS:")
    lines.extend(f"  - {text}" for text in insights.recommendations)
    lines.append(RULE)
    return "\n".join(lines)


def summarize_levels(assessments: Sequence[RiskAssessment]) -> pd.Series:
    """Count of students per risk level, in level order."""
    levels = pd.Series([risk.risk_level.value for risk in assessments], dtype="object")
    counts = levels.value_counts()
    order = ["low", "medium", "high", "critical"]
    return counts.reindex(order, fill_value=0).astype("int64")
