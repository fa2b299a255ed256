import json
from enum import Enum
from typing import Any

import polars as pl
from dagster import AssetExecutionContext, Config, asset

from cr_calculators.risk_assessment_calculator import RiskAssessmentCalculator
from cr_calculators.risk_assessment_calculator.assessment_processing import (
    rows_to_assessment_inputs,
)
from cr_calculators.risk_assessment_calculator.models import DVTScoringStrategy, PriorityPolicy
from cr_dagster.db.assessment_repository import AssessmentRepository
from cr_dagster.db.bootstrap import now_utc
from cr_dagster.db.run_registry import (
    RUN_FAILED,
    RUN_SUCCESS,
    RunTally,
    ScoringRun,
    finish_run,
    run_timestamp,
    start_run,
)
from cr_dagster.resources.clinical_warehouse import ClinicalWarehouse


class InvalidRowsOption(str, Enum):
    skip = "skip"
    error = "error"


class ScoringConfig(Config):
    dvt_strategy: DVTScoringStrategy = DVTScoringStrategy.caprini
    priority_policy: PriorityPolicy = PriorityPolicy.flat
    assessed_by: str = "Registration System"
    invalid_rows: InvalidRowsOption = InvalidRowsOption.skip
    run_description: str = "Clinical risk scoring run"
    trigger_source: str = "dagster"


RISK_SCORE_COLUMNS = [
    "run_id",
    "assessment_id",
    "patient_id",
    "assessment_type",
    "strategy",
    "score",
    "risk_level",
    "interpretation",
    "run_timestamp",
    "created_at",
    "components",
    "interventions",
]


@asset
def score_patient_assessments(
    context: AssetExecutionContext, config: ScoringConfig, warehouse: ClinicalWarehouse
) -> None:
    """Score pending assessment inputs, save full records and write main_runs.risk_scores.

    Records and score rows of a run are written in one transaction: a run that
    fails part-way leaves no assessments saved and supersedes nothing.
    """

    context.log.info(f"Connecting to DuckDB at: {warehouse.resolved_path()}")
    with warehouse.connect() as con:
        run = ScoringRun(
            run_id=context.run_id,
            run_timestamp=run_timestamp(),
            dvt_strategy=config.dvt_strategy,
            priority_policy=config.priority_policy,
            assessed_by=config.assessed_by,
            invalid_rows=config.invalid_rows.value,
            run_description=config.run_description,
            trigger_source=config.trigger_source,
        )
        start_run(con, run)

        try:
            calculator = RiskAssessmentCalculator(
                dvt_strategy=config.dvt_strategy,
                priority_policy=config.priority_policy,
                assessed_by=config.assessed_by,
            )

            rows = con.execute(
                """
                SELECT
                    patient_id,
                    assessment_type,
                    assessed_by,
                    factors,
                    primary_diagnosis,
                    comorbidities,
                    activity_level
                FROM main_intermediate.int_risk_assessment_input
                """
            ).fetchall()

            inputs, stats = rows_to_assessment_inputs(
                rows,
                strategy=config.dvt_strategy,
                invalid_rows=config.invalid_rows.value,
            )

            if stats["skipped"] > 0:
                context.log.warning(f"Skipped {stats['skipped']} rows due to invalid factors.")
            if stats["invalid_by_type"]:
                context.log.info(f"Invalid rows by assessment type: {stats['invalid_by_type']}")

            context.log.info(f"Starting scoring for {len(inputs)} assessments...")
            records = [calculator.assess(assessment) for assessment in inputs]

            created_at = now_utc()
            out_rows: list[dict[str, Any]] = [
                {
                    "run_id": run.run_id,
                    "assessment_id": record.id,
                    "patient_id": record.patient_id,
                    "assessment_type": record.assessment_type.value,
                    "strategy": record.strategy.value if record.strategy else None,
                    "score": record.score,
                    "risk_level": record.risk_level.value,
                    "interpretation": record.interpretation,
                    "run_timestamp": run.run_timestamp,
                    "created_at": created_at,
                    "components": json.dumps(record.score_components),
                    "interventions": json.dumps(
                        [item.description for item in record.action_plan], ensure_ascii=False
                    ),
                }
                for record in records
            ]

            repository = AssessmentRepository(con)
            with repository.transaction():
                for record in records:
                    repository.save(record, run_id=run.run_id)
                if out_rows:
                    df = pl.DataFrame(out_rows).select(RISK_SCORE_COLUMNS)
                    con.execute("INSERT OR REPLACE INTO main_runs.risk_scores SELECT * FROM df")

            tally = RunTally.from_records(
                records, input_rows=len(rows), skipped_rows=stats["skipped"]
            )
            finish_run(con, run_id=run.run_id, status=RUN_SUCCESS, tally=tally)
            context.log.info(
                f"Saved {len(records)} assessments ({tally.meal_plan_count} with meal plans, "
                f"{tally.high_risk_count} high risk) for run_timestamp={run.run_timestamp}"
            )

        except Exception:
            finish_run(con, run_id=run.run_id, status=RUN_FAILED)
            raise
