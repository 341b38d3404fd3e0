# ABOUTME: Validates normalization of raw student records into canonical schema objects.
# ABOUTME: Covers camelCase keys, timestamp parsing, file loaders, and the normalize command.

import json
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path

import pytest
from typer.testing import CliRunner

from src.insights.data_pipeline import (
    RecordFormatError,
    app,
    load_student_records,
    load_students,
    parse_student_record,
    parse_timestamp,
    to_snake_case,
)
from src.insights.schemas import TrendDirection


def _raw_record(student_id="s1"):
    return {
        "studentId": student_id,
        "courseId": "c1",
        "currentGrade": 82.5,
        "attendanceRate": 0.9,
        "assignmentScores": [
            {
                "assignmentId": "a1",
                "score": 18,
                "maxScore": 20,
                "submittedAt": "2024-02-20T10:00:00Z",
                "isLate": True,
                "timeSpent": 45,
            }
        ],
        "engagementMetrics": {
            "loginFrequency": 5,
            "timeSpentOnPlatform": 240,
            "lessonCompletionRate": 0.8,
            "assignmentSubmissionRate": 0.9,
            "forumParticipation": 2,
            "lastActivity": 1709204400000,
        },
        "learningVelocity": {
            "averageTimePerLesson": 25,
            "averageTimePerAssignment": 50,
            "completionTrend": "improving",
        },
        "engagementHistory": [{"date": "2024-02-01", "value": 70}],
    }


def test_snake_case_conversion():
    assert to_snake_case("timeSpentOnPlatform") == "time_spent_on_platform"
    assert to_snake_case("already_snake") == "already_snake"


def test_parse_timestamp_variants():
    expected = datetime(2024, 2, 29, 11, 0, tzinfo=timezone.utc)
    assert parse_timestamp("2024-02-29T11:00:00Z") == expected
    assert parse_timestamp("2024-02-29T12:00:00+01:00") == expected
    assert parse_timestamp(1709204400000) == expected
    assert parse_timestamp(datetime(2024, 2, 29, 11, 0)) == expected


def test_parse_timestamp_rejects_garbage():
    with pytest.raises(RecordFormatError):
        parse_timestamp("not a date", "last_activity")
    with pytest.raises(RecordFormatError):
        parse_timestamp(None, "last_activity")
    with pytest.raises(RecordFormatError):
        parse_timestamp(True, "last_activity")


def test_parse_camel_case_record():
    student = parse_student_record(_raw_record())
    assert student.student_id == "s1"
    assert student.current_grade == 82.5
    (score,) = student.assignment_scores
    assert score.percentage == 90
    assert score.is_late
    assert score.time_spent == 45
    assert score.submitted_at.tzinfo is not None
    assert student.engagement_metrics.time_spent_on_platform == 240
    assert student.learning_velocity.completion_trend is TrendDirection.IMPROVING
    assert student.engagement_history[0].value == 70
    assert student.attendance_history is None


def test_learning_velocity_defaults_when_absent():
    raw = _raw_record()
    del raw["learningVelocity"]
    student = parse_student_record(raw)
    assert student.learning_velocity.average_time_per_assignment == 0
    assert student.learning_velocity.completion_trend is TrendDirection.STABLE


@pytest.mark.parametrize(
    "mutate",
    [
        lambda raw: raw.pop("currentGrade"),
        lambda raw: raw["engagementMetrics"].pop("lastActivity"),
        lambda raw: raw.update(attendanceRate="high"),
        lambda raw: raw.update(engagementMetrics=[1, 2]),
        lambda raw: raw["learningVelocity"].update(completionTrend="sideways"),
        lambda raw: raw.update(assignmentScores=[{"assignmentId": "a1"}]),
        lambda raw: raw.update(engagementHistory={"date": "2024-02-01"}),
    ],
)
def test_malformed_records_are_rejected(mutate):
    raw = _raw_record()
    mutate(raw)
    with pytest.raises(RecordFormatError):
        parse_student_record(raw)


class LoaderTest(unittest.TestCase):
    def setUp(self) -> None:
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)

    def tearDown(self) -> None:
        self.tmpdir.cleanup()

    def test_json_list_and_wrapped_object(self) -> None:
        listed = self.root / "students.json"
        listed.write_text(json.dumps([_raw_record("s1"), _raw_record("s2")]), encoding="utf-8")
        wrapped = self.root / "wrapped.json"
        wrapped.write_text(json.dumps({"students": [_raw_record("s3")]}), encoding="utf-8")

        self.assertEqual([s.student_id for s in load_students(listed)], ["s1", "s2"])
        self.assertEqual([s.student_id for s in load_students(wrapped)], ["s3"])

    def test_json_lines(self) -> None:
        path = self.root / "students.jsonl"
        path.write_text(
            "\n".join(json.dumps(_raw_record(sid)) for sid in ("a", "b")) + "\n\n",
            encoding="utf-8",
        )
        self.assertEqual(len(load_student_records(path)), 2)

    def test_invalid_payloads(self) -> None:
        broken = self.root / "broken.json"
        broken.write_text("{not json", encoding="utf-8")
        scalar = self.root / "scalar.json"
        scalar.write_text(json.dumps({"count": 3}), encoding="utf-8")
        with self.assertRaises(RecordFormatError):
            load_student_records(broken)
        with self.assertRaises(RecordFormatError):
            load_student_records(scalar)

    def test_normalize_command_writes_snake_case(self) -> None:
        source = self.root / "raw.json"
        source.write_text(json.dumps([_raw_record()]), encoding="utf-8")
        target = self.root / "out" / "canonical.json"

        result = CliRunner().invoke(app, ["--input", str(source), "--output", str(target)])

        self.assertEqual(result.exit_code, 0, result.output)
        (record,) = json.loads(target.read_text(encoding="utf-8"))
        self.assertEqual(record["student_id"], "s1")
        self.assertEqual(record["learning_velocity"]["completion_trend"], "improving")
        self.assertEqual(record["engagement_metrics"]["last_activity"], "2024-02-29T11:00:00+00:00")
        self.assertEqual(parse_student_record(record).assignment_scores[0].score, 18)
