from __future__ import annotations

import typer

from cr_calculators.risk_assessment_calculator.duckdb_to_csv import default_duckdb_path
from cr_calculators.risk_assessment_calculator.summary import summarize_patient_risk
from cr_dagster.db.assessment_repository import AssessmentRepository
from cr_dagster.resources.clinical_warehouse import ClinicalWarehouse

app = typer.Typer(no_args_is_help=True, help="Wardscore CLI - Database and assessment utilities")


@app.command(name="db-bootstrap")
def db_bootstrap(
    duckdb_path: str = typer.Option(default_duckdb_path(), "--duckdb-path"),
) -> None:
    """Create core schemas + tables in DuckDB.

    Creates: `main_intermediate`, `main_runs`, `main_clinical`.
    """

    warehouse = ClinicalWarehouse(path=duckdb_path)
    with warehouse.connect():
        pass

    typer.echo(f"Bootstrapped warehouse at {warehouse.resolved_path()}")


@app.command(name="patient-assessments")
def patient_assessments(
    patient_id: str = typer.Argument(..., help="Patient identifier"),
    duckdb_path: str = typer.Option(default_duckdb_path(), "--duckdb-path"),
) -> None:
    """Print a patient's risk summary from saved assessments."""

    with ClinicalWarehouse(path=duckdb_path).connect() as con:
        assessments = AssessmentRepository(con).list_by_patient(patient_id)

    if not assessments:
        typer.echo(f"No assessments found for patient {patient_id}")
        raise typer.Exit(code=1)

    summary = summarize_patient_risk(patient_id, assessments)
    typer.echo(f"Patient {patient_id}: overall risk {summary.overall_risk_level.value}")
    for entry in summary.entries:
        flag = " [URGENT]" if entry.urgent else ""
        typer.echo(
            f"  {entry.assessment_type.value}: score {entry.score}, "
            f"{entry.risk_level.value}{flag}"
        )
    for action in summary.high_priority_actions:
        typer.echo(f"  - {action.description} ({action.priority.value})")
    if summary.next_review_date:
        typer.echo(f"Next review: {summary.next_review_date:%Y-%m-%d %H:%M}")


if __name__ == "__main__":
    app()
