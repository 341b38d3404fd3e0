# ABOUTME: Provides a CLI that runs risk, trend, batch, and dashboard analyses over student record files.
# ABOUTME: Renders results as Rich tables and optionally writes batch reports to JSON.

import json
import logging
from pathlib import Path
from typing import List, Optional

import numpy as np
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from src.insights.config import DEFAULT_CONFIG, InsightsConfigError, PerformanceInsightsConfig, load_config
from src.insights.data_pipeline import RecordFormatError, load_students
from src.insights.reporting import format_risk_report, format_trend_report, to_jsonable
from src.insights.schemas import StudentPerformanceData, Timeframe
from src.insights.service import PerformanceInsightsService

console = Console()
app = typer.Typer(help="Score student risk, trends, and class health from performance records.")

LEVEL_COLORS = {"low": "green", "medium": "yellow", "high": "orange3", "critical": "red"}
SEVERITY_COLORS = {"info": "cyan", "warning": "yellow", "critical": "red"}
TREND_COLORS = {"improving": "green", "stable": "white", "declining": "red"}


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs from the engines.")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _load_config(config_path: Optional[Path]) -> PerformanceInsightsConfig:
    if config_path is None:
        return DEFAULT_CONFIG
    try:
        return load_config(config_path)
    except InsightsConfigError as exc:
        raise typer.BadParameter(str(exc), param_hint="--config") from exc


def _load_students(input_path: Path) -> List[StudentPerformanceData]:
    try:
        return load_students(input_path)
    except RecordFormatError as exc:
        raise typer.BadParameter(str(exc), param_hint="--input") from exc


def _find_student(students: List[StudentPerformanceData], student_id: str) -> StudentPerformanceData:
    for student in students:
        if student.student_id == student_id:
            return student
    console.print(f"[red]No record for student {student_id}[/red]")
    raise typer.Exit(code=1)


def _service(config_path: Optional[Path], seed: Optional[int] = None) -> PerformanceInsightsService:
    rng = np.random.default_rng(seed) if seed is not None else None
    return PerformanceInsightsService(config=_load_config(config_path), rng=rng)


@app.command()
def assess(
    input_path: Path = typer.Option(..., "--input", exists=True, dir_okay=False, help="JSON or JSONL student records."),
    student_id: str = typer.Option(..., "--student-id", help="Student to assess."),
    config_path: Optional[Path] = typer.Option(None, "--config", exists=True, dir_okay=False, help="YAML config overrides."),
) -> None:
    """
    Score one student's risk and list the interventions it triggers.
    """
    service = _service(config_path)
    student = _find_student(_load_students(input_path), student_id)
    risk = service.risk_engine.assess_student_risk(student)
    console.print(format_risk_report(risk), markup=False)

    interventions = service.intervention_engine.generate_interventions(risk, student)
    if not interventions:
        console.print("[green]✅ No interventions needed[/green]")
        return

    table = Table(show_header=True, header_style="bold magenta", title="Interventions")
    table.add_column("Priority")
    table.add_column("Type")
    table.add_column("Title")
    table.add_column("Expected Outcome")
    for item in interventions:
        table.add_row(item.priority.value, item.type.value, item.title, item.expected_outcome)
    console.print(table)


@app.command()
def trends(
    input_path: Path = typer.Option(..., "--input", exists=True, dir_okay=False, help="JSON or JSONL student records."),
    student_id: str = typer.Option(..., "--student-id", help="Student to analyze."),
    timeframe: Timeframe = typer.Option(Timeframe.MONTH, "--timeframe", help="Lookback window."),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for synthesized history when records carry none."),
) -> None:
    """
    Fit grade, engagement, and attendance trends for one student.
    """
    service = _service(None, seed)
    student = _find_student(_load_students(input_path), student_id)
    trend_set = service.trend_engine.analyze_performance_trends(student, timeframe)
    insights = service.trend_engine.generate_trend_insights(trend_set)
    console.print(format_trend_report(trend_set, insights), markup=False)


@app.command()
def batch(
    input_path: Path = typer.Option(..., "--input", exists=True, dir_okay=False, help="JSON or JSONL student records."),
    teacher_id: str = typer.Option(..., "--teacher-id", help="Teacher receiving the alerts."),
    output: Optional[Path] = typer.Option(None, "--output", help="Write the full batch report to this JSON file."),
    workers: int = typer.Option(1, "--workers", min=1, help="Thread pool size for per-student analysis."),
    config_path: Optional[Path] = typer.Option(None, "--config", exists=True, dir_okay=False, help="YAML config overrides."),
    seed: Optional[int] = typer.Option(None, "--seed", help="Seed for synthesized history."),
) -> None:
    """
    Analyze every student in the file and summarize the class.
    """
    service = _service(config_path, seed)
    students = _load_students(input_path)
    result = service.analyze_multiple_students(students, teacher_id, max_workers=workers)

    console.rule(f"[bold blue]Batch analysis: {len(students)} students[/bold blue]")
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Student")
    table.add_column("Risk")
    table.add_column("Score", justify="right")
    table.add_column("Interventions", justify="right")
    table.add_column("Alerts", justify="right")
    for analysis in result.student_analyses:
        level = analysis.risk_assessment.risk_level.value
        color = LEVEL_COLORS[level]
        table.add_row(
            analysis.student_id,
            f"[{color}]{level}[/{color}]",
            str(analysis.risk_assessment.risk_score),
            str(len(analysis.interventions)),
            str(len(analysis.alerts)),
        )
    console.print(table)

    summary = result.summary_insights
    console.print(f"[bold]High risk:[/] {summary.high_risk_students}")
    console.print(f"[bold]Needing intervention:[/] {summary.students_needing_intervention}")
    console.print(f"[bold]Common issues:[/] {', '.join(summary.common_issues) or 'none'}")
    for recommendation in summary.recommendations:
        console.print(f"  → {recommendation}")

    for failure in result.failed_students:
        console.print(f"[red]Failed {failure.student_id}: {failure.error}[/red]")

    if output is not None:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(json.dumps(to_jsonable(result), indent=2), encoding="utf-8")
        console.print(f"[bold]Report saved to {output}[/bold]")


@app.command()
def dashboard(
    input_path: Path = typer.Option(..., "--input", exists=True, dir_okay=False, help="JSON or JSONL student records."),
    teacher_id: str = typer.Option(..., "--teacher-id", help="Teacher viewing the dashboard."),
    config_path: Optional[Path] = typer.Option(None, "--config", exists=True, dir_okay=False, help="YAML config overrides."),
) -> None:
    """
    Show the class overview, coarse trends, priority alerts, and action items.
    """
    service = _service(config_path)
    view = service.generate_teacher_dashboard(_load_students(input_path), teacher_id)
    overview = view.overview

    console.rule(f"[bold blue]Dashboard for {teacher_id}[/bold blue]")
    console.print(f"[bold]Students:[/] {overview.total_students}  [bold]At risk:[/] {overview.at_risk_students}")
    console.print(
        f"[bold]Average grade:[/] {overview.average_performance:.2f}  "
        f"[bold]Attendance:[/] {overview.attendance_rate:.0%}  "
        f"[bold]Engagement:[/] {overview.engagement_score:.0%}"
    )
    for label, direction in (
        ("Performance", view.trends.performance_trend),
        ("Engagement", view.trends.engagement_trend),
        ("Attendance", view.trends.attendance_trend),
    ):
        color = TREND_COLORS[direction.value]
        console.print(f"  {label}: [{color}]{direction.value}[/{color}]")

    if view.alerts:
        console.print()
        alert_table = Table(show_header=True, header_style="bold magenta", title="Priority Alerts")
        alert_table.add_column("Student")
        alert_table.add_column("Severity")
        alert_table.add_column("Title")
        for alert in view.alerts:
            color = SEVERITY_COLORS[alert.severity.value]
            alert_table.add_row(alert.student_id, f"[{color}]{alert.severity.value}[/{color}]", alert.title)
        console.print(alert_table)

    if view.action_items:
        console.print()
        action_table = Table(show_header=True, header_style="bold magenta", title="Action Items")
        action_table.add_column("Priority")
        action_table.add_column("Description")
        action_table.add_column("Students", justify="right")
        action_table.add_column("Suggested Action")
        for item in view.action_items:
            action_table.add_row(item.priority.value, item.description, str(item.student_count), item.suggested_action)
        console.print(action_table)
    else:
        console.print("[green]✅ No action items[/green]")


if __name__ == "__main__":
    app()
