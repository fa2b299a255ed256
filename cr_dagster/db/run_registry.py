"""Scoring run registry in main_runs.run_registry.

A run row is inserted as "started" before anything is scored, then closed as
"success" with the tally of what was saved, or as "failed".
"""

from __future__ import annotations

import json
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

import duckdb

from cr_calculators.risk_assessment_calculator.classifier import RISK_LEVEL_RANK
from cr_calculators.risk_assessment_calculator.models import (
    AssessmentRecord,
    DVTScoringStrategy,
    PriorityPolicy,
    RiskLevel,
)
from cr_dagster.db.bootstrap import now_utc

RUN_STARTED = "started"
RUN_SUCCESS = "success"
RUN_FAILED = "failed"


def run_timestamp(now: datetime | None = None) -> str:
    """Return YYYYMMDDHHMMSSUUUU where UUUU is 1/10,000th of a second."""
    now = now or datetime.now(UTC)
    return now.strftime("%Y%m%d%H%M%S") + f"{now.microsecond // 100:04d}"


@dataclass(frozen=True)
class ScoringRun:
    """Settings a scoring run was launched with."""

    run_id: str
    run_timestamp: str
    dvt_strategy: DVTScoringStrategy
    priority_policy: PriorityPolicy
    assessed_by: str
    invalid_rows: str
    run_description: str | None = None
    trigger_source: str | None = None


@dataclass(frozen=True)
class RunTally:
    """What a finished run saved."""

    input_rows: int = 0
    skipped_rows: int = 0
    assessments_by_type: dict[str, int] = field(default_factory=dict)
    high_risk_count: int = 0
    meal_plan_count: int = 0

    @classmethod
    def from_records(
        cls,
        records: Iterable[AssessmentRecord],
        *,
        input_rows: int,
        skipped_rows: int,
    ) -> RunTally:
        records = list(records)
        by_type = Counter(r.assessment_type.value for r in records)
        high_rank = RISK_LEVEL_RANK[RiskLevel.high]
        return cls(
            input_rows=input_rows,
            skipped_rows=skipped_rows,
            assessments_by_type=dict(sorted(by_type.items())),
            high_risk_count=sum(1 for r in records if RISK_LEVEL_RANK[r.risk_level] >= high_rank),
            meal_plan_count=sum(1 for r in records if r.meal_plan is not None),
        )


def start_run(con: duckdb.DuckDBPyConnection, run: ScoringRun) -> None:
    created_at = now_utc()
    con.execute(
        """
        INSERT INTO main_runs.run_registry (
            run_id,
            run_timestamp,
            run_description,
            trigger_source,
            dvt_strategy,
            priority_policy,
            assessed_by,
            invalid_rows,
            status,
            created_at,
            updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [
            run.run_id,
            run.run_timestamp,
            run.run_description,
            run.trigger_source,
            DVTScoringStrategy(run.dvt_strategy).value,
            PriorityPolicy(run.priority_policy).value,
            run.assessed_by,
            run.invalid_rows,
            RUN_STARTED,
            created_at,
            created_at,
        ],
    )


def finish_run(
    con: duckdb.DuckDBPyConnection,
    *,
    run_id: str,
    status: str,
    tally: RunTally | None = None,
) -> None:
    """Close a run. Tally columns stay NULL when no tally is given (failed runs)."""
    if tally is None:
        con.execute(
            """
            UPDATE main_runs.run_registry
            SET status = ?, updated_at = ?
            WHERE run_id = ?
            """,
            [status, now_utc(), run_id],
        )
        return

    con.execute(
        """
        UPDATE main_runs.run_registry
        SET status = ?,
            updated_at = ?,
            input_rows = ?,
            skipped_rows = ?,
            assessments_by_type = ?,
            high_risk_count = ?,
            meal_plan_count = ?
        WHERE run_id = ?
        """,
        [
            status,
            now_utc(),
            tally.input_rows,
            tally.skipped_rows,
            json.dumps(tally.assessments_by_type),
            tally.high_risk_count,
            tally.meal_plan_count,
            run_id,
        ],
    )
