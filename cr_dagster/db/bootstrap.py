from __future__ import annotations

from datetime import UTC, datetime

import duckdb


def ensure_core_schemas(con: duckdb.DuckDBPyConnection) -> None:
    con.execute("CREATE SCHEMA IF NOT EXISTS main_intermediate")
    con.execute("CREATE SCHEMA IF NOT EXISTS main_runs")
    con.execute("CREATE SCHEMA IF NOT EXISTS main_clinical")


def ensure_input_tables(con: duckdb.DuckDBPyConnection) -> None:
    # Normally materialized upstream; created empty so a fresh warehouse can be scored.
    con.execute(
        """
        CREATE TABLE IF NOT EXISTS main_intermediate.int_risk_assessment_input (
            patient_id VARCHAR,
            assessment_type VARCHAR,
            assessed_by VARCHAR,
            factors JSON,
            primary_diagnosis VARCHAR,
            comorbidities VARCHAR[],
            activity_level VARCHAR
        )
        """
    )


def ensure_run_registry(con: duckdb.DuckDBPyConnection) -> None:
    con.execute(
        """
        CREATE TABLE IF NOT EXISTS main_runs.run_registry (
            run_id VARCHAR PRIMARY KEY,
            run_timestamp VARCHAR,
            run_description VARCHAR,
            trigger_source VARCHAR,
            dvt_strategy VARCHAR,
            priority_policy VARCHAR,
            assessed_by VARCHAR,
            invalid_rows VARCHAR,
            status VARCHAR,
            input_rows INTEGER,
            skipped_rows INTEGER,
            assessments_by_type JSON,
            high_risk_count INTEGER,
            meal_plan_count INTEGER,
            created_at TIMESTAMP,
            updated_at TIMESTAMP
        )
        """
    )

    # Not unique: sub-second collisions are allowed
    con.execute(
        "CREATE INDEX IF NOT EXISTS idx_run_registry_timestamp ON main_runs.run_registry (run_timestamp)"
    )


def ensure_assessment_tables(con: duckdb.DuckDBPyConnection) -> None:
    con.execute(
        """
        CREATE TABLE IF NOT EXISTS main_clinical.assessments (
            id VARCHAR PRIMARY KEY,
            patient_id VARCHAR NOT NULL,
            assessment_type VARCHAR NOT NULL,
            assessment_date TIMESTAMP,
            assessed_by VARCHAR,
            strategy VARCHAR,
            score INTEGER,
            risk_level VARCHAR,
            status VARCHAR,
            next_assessment_due TIMESTAMP,
            run_id VARCHAR,
            record JSON,
            created_at TIMESTAMP,
            updated_at TIMESTAMP
        )
        """
    )
    con.execute(
        "CREATE INDEX IF NOT EXISTS idx_assessments_patient ON main_clinical.assessments (patient_id, assessment_type)"
    )

    con.execute(
        """
        CREATE TABLE IF NOT EXISTS main_runs.risk_scores (
            run_id VARCHAR,
            assessment_id VARCHAR,
            patient_id VARCHAR,
            assessment_type VARCHAR,
            strategy VARCHAR,
            score INTEGER,
            risk_level VARCHAR,
            interpretation VARCHAR,
            run_timestamp VARCHAR,
            created_at TIMESTAMP,
            components JSON,
            interventions JSON,
            PRIMARY KEY (run_id, assessment_id)
        )
        """
    )


def ensure_clinical_warehouse(con: duckdb.DuckDBPyConnection) -> None:
    ensure_core_schemas(con)
    ensure_input_tables(con)
    ensure_run_registry(con)
    ensure_assessment_tables(con)


def now_utc() -> datetime:
    """Naive UTC timestamp for DuckDB TIMESTAMP columns."""
    return datetime.now(UTC).replace(tzinfo=None)


def to_utc_naive(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)
