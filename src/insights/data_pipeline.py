# ABOUTME: Normalizes raw JSON student records (camelCase or snake_case) into canonical schema objects.
# ABOUTME: Provides loaders for JSON/JSONL files and a CLI to rewrite records in canonical form.

from __future__ import annotations

import json
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd
import typer

from .reporting import to_jsonable
from .schemas import (
    AssignmentScore,
    EngagementMetrics,
    LearningVelocity,
    MetricSample,
    StudentPerformanceData,
    TrendDirection,
)

app = typer.Typer(help="Normalize raw student performance records into canonical JSON.")

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])([A-Z])")

REQUIRED_KEYS = ("student_id", "course_id", "current_grade", "attendance_rate", "engagement_metrics")
REQUIRED_ENGAGEMENT_KEYS = (
    "login_frequency",
    "time_spent_on_platform",
    "lesson_completion_rate",
    "assignment_submission_rate",
    "forum_participation",
    "last_activity",
)


class RecordFormatError(ValueError):
    """Raised when a raw student record cannot be normalized."""


def to_snake_case(key: str) -> str:
    return _CAMEL_BOUNDARY.sub(r"_\1", key).lower()


def normalize_keys(value: Any) -> Any:
    """Recursively rewrite mapping keys to snake_case."""
    if isinstance(value, Mapping):
        return {to_snake_case(str(k)): normalize_keys(v) for k, v in value.items()}
    if isinstance(value, list):
        return [normalize_keys(item) for item in value]
    return value


def parse_timestamp(value: Any, field_name: str = "timestamp") -> datetime:
    """
    Parse ISO-8601 strings, epoch milliseconds, or datetimes into aware UTC datetimes.

    Naive inputs are taken to be UTC.
    """

    if isinstance(value, datetime):
        parsed = pd.Timestamp(value)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed = pd.to_datetime(value, unit="ms", utc=True)
    elif isinstance(value, str) and value.strip():
        try:
            parsed = pd.to_datetime(value.strip(), utc=True)
        except (ValueError, TypeError) as exc:
            raise RecordFormatError(f"Unparseable {field_name} '{value}'.") from exc
    else:
        raise RecordFormatError(f"Missing or invalid {field_name}: {value!r}.")

    if pd.isna(parsed):
        raise RecordFormatError(f"Unparseable {field_name} '{value}'.")
    if parsed.tzinfo is None:
        parsed = parsed.tz_localize(timezone.utc)
    return parsed.tz_convert(timezone.utc).to_pydatetime()


def _require(record: Mapping[str, Any], keys: Iterable[str], context: str) -> None:
    missing = [key for key in keys if key not in record or record[key] is None]
    if missing:
        raise RecordFormatError(f"{context} is missing required field(s): {', '.join(missing)}.")


def _number(record: Mapping[str, Any], key: str, context: str, default: Optional[float] = None) -> float:
    value = record.get(key, default)
    if value is None:
        raise RecordFormatError(f"{context} is missing required field: {key}.")
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise RecordFormatError(f"{context} field '{key}' is not numeric: {value!r}.") from exc


def _parse_assignment(raw: Mapping[str, Any], context: str) -> AssignmentScore:
    if not isinstance(raw, Mapping):
        raise RecordFormatError(f"{context} must be an object.")
    _require(raw, ("assignment_id", "score", "max_score", "submitted_at"), context)
    time_spent = raw.get("time_spent")
    return AssignmentScore(
        assignment_id=str(raw["assignment_id"]),
        score=_number(raw, "score", context),
        max_score=_number(raw, "max_score", context),
        submitted_at=parse_timestamp(raw["submitted_at"], f"{context}.submitted_at"),
        is_late=bool(raw.get("is_late", False)),
        time_spent=float(time_spent) if time_spent is not None else None,
    )


def _parse_history(raw: Any, context: str) -> Optional[Tuple[MetricSample, ...]]:
    if raw is None:
        return None
    if not isinstance(raw, list):
        raise RecordFormatError(f"{context} must be a list of samples.")
    samples = []
    for idx, sample in enumerate(raw):
        label = f"{context}[{idx}]"
        if not isinstance(sample, Mapping):
            raise RecordFormatError(f"{label} must be an object.")
        _require(sample, ("date", "value"), label)
        samples.append(
            MetricSample(
                date=parse_timestamp(sample["date"], f"{label}.date"),
                value=_number(sample, "value", label),
                label=sample.get("label"),
            )
        )
    return tuple(samples)


def parse_student_record(raw: Mapping[str, Any]) -> StudentPerformanceData:
    """Build a `StudentPerformanceData` from one raw JSON object."""

    if not isinstance(raw, Mapping):
        raise RecordFormatError(f"Student record must be an object, got {type(raw).__name__}.")
    record = normalize_keys(raw)
    context = f"Student record '{record.get('student_id', '?')}'"
    _require(record, REQUIRED_KEYS, context)

    engagement = record["engagement_metrics"]
    if not isinstance(engagement, Mapping):
        raise RecordFormatError(f"{context} engagement_metrics must be an object.")
    engagement_context = f"{context} engagement_metrics"
    _require(engagement, REQUIRED_ENGAGEMENT_KEYS, engagement_context)

    velocity = record.get("learning_velocity") or {}
    try:
        completion_trend = TrendDirection(velocity.get("completion_trend", TrendDirection.STABLE.value))
    except ValueError as exc:
        raise RecordFormatError(f"{context} has invalid completion_trend {velocity.get('completion_trend')!r}.") from exc

    scores = record.get("assignment_scores") or []
    if not isinstance(scores, list):
        raise RecordFormatError(f"{context} assignment_scores must be a list.")

    return StudentPerformanceData(
        student_id=str(record["student_id"]),
        course_id=str(record["course_id"]),
        current_grade=_number(record, "current_grade", context),
        assignment_scores=tuple(
            _parse_assignment(score, f"{context} assignment_scores[{idx}]") for idx, score in enumerate(scores)
        ),
        attendance_rate=_number(record, "attendance_rate", context),
        engagement_metrics=EngagementMetrics(
            login_frequency=_number(engagement, "login_frequency", engagement_context),
            time_spent_on_platform=_number(engagement, "time_spent_on_platform", engagement_context),
            lesson_completion_rate=_number(engagement, "lesson_completion_rate", engagement_context),
            assignment_submission_rate=_number(engagement, "assignment_submission_rate", engagement_context),
            forum_participation=_number(engagement, "forum_participation", engagement_context),
            last_activity=parse_timestamp(engagement["last_activity"], f"{engagement_context}.last_activity"),
        ),
        learning_velocity=LearningVelocity(
            average_time_per_lesson=_number(velocity, "average_time_per_lesson", context, default=0.0),
            average_time_per_assignment=_number(velocity, "average_time_per_assignment", context, default=0.0),
            completion_trend=completion_trend,
        ),
        engagement_history=_parse_history(record.get("engagement_history"), f"{context} engagement_history"),
        attendance_history=_parse_history(record.get("attendance_history"), f"{context} attendance_history"),
    )


def load_student_records(path: Path) -> List[Dict[str, Any]]:
    """
    Read raw records from a JSON array, a `{"students": [...]}` object, or JSON lines.
    """

    text = Path(path).read_text(encoding="utf-8")
    if Path(path).suffix.lower() in {".jsonl", ".ndjson"}:
        try:
            return [json.loads(line) for line in text.splitlines() if line.strip()]
        except json.JSONDecodeError as exc:
            raise RecordFormatError(f"Invalid JSON line in {path}: {exc}") from exc

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        raise RecordFormatError(f"Invalid JSON in {path}: {exc}") from exc
    if isinstance(payload, Mapping) and "students" in payload:
        payload = payload["students"]
    if not isinstance(payload, list):
        raise RecordFormatError(f"Expected a list of student records in {path}.")
    return payload


def load_students(path: Path) -> List[StudentPerformanceData]:
    return [parse_student_record(raw) for raw in load_student_records(path)]


@app.command()
def normalize(
    input_path: Path = typer.Option(..., "--input", exists=True, dir_okay=False, help="Raw JSON or JSONL records."),
    output_path: Path = typer.Option(..., "--output", help="Destination for canonical snake_case JSON."),
) -> None:
    typer.echo(f"[data] Normalizing student records from {input_path}")
    try:
        students = load_students(input_path)
    except RecordFormatError as exc:
        raise typer.BadParameter(str(exc), param_hint="--input") from exc

    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(json.dumps(to_jsonable(students), indent=2), encoding="utf-8")
    typer.echo(f"[data] Wrote {len(students)} records to {output_path}")


def main():
    app()


if __name__ == "__main__":
    main()
