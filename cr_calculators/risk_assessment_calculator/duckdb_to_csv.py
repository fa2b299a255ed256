from __future__ import annotations

import argparse
import csv
import json
import logging
import os
from datetime import datetime
from pathlib import Path

import duckdb
import yaml

from cr_calculators.risk_assessment_calculator.assessment_processing import (
    rows_to_assessment_inputs,
)
from cr_calculators.risk_assessment_calculator.calculator import RiskAssessmentCalculator
from cr_calculators.risk_assessment_calculator.models import DVTScoringStrategy, PriorityPolicy
from cr_calculators.risk_assessment_calculator.summary import build_export_bundle

logger = logging.getLogger(__name__)

YAML_DETAIL_LIMIT = 20


def _get_repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def default_duckdb_path() -> str:
    """DUCKDB_PATH when set, otherwise clinical_risk.duckdb at the repo root."""
    env_path = os.environ.get("DUCKDB_PATH")
    if env_path:
        return env_path
    return str((_get_repo_root() / "clinical_risk.duckdb").resolve())


def score_from_duckdb_to_csv(
    *,
    duckdb_path: str,
    output_csv_path: str,
    dvt_strategy: str = "caprini",
    priority_policy: str = "flat",
    schema: str = "main_intermediate",
    table: str = "int_risk_assessment_input",
    limit: int | None = None,
    invalid_rows: str = "skip",
) -> int:
    """Read assessment inputs from DuckDB and write risk scores to CSV.

    Returns number of rows written.

    Expected input relation: `{schema}.{table}` with columns:
    - patient_id, assessment_type, assessed_by, factors, primary_diagnosis,
      comorbidities, activity_level

    The first 20 assessments are also written as YAML export bundles to
    `yaml_details/{patient_id}_{assessment_type}_{assessment_id}.yml` next to the CSV.
    """

    con = duckdb.connect(str(Path(duckdb_path).expanduser().resolve()))
    try:
        sql = f"""
        SELECT
            patient_id,
            assessment_type,
            assessed_by,
            factors,
            primary_diagnosis,
            comorbidities,
            activity_level
        FROM {schema}.{table}
        """.strip()
        if limit is not None:
            sql += f"\nLIMIT {int(limit)}"

        rows = con.execute(sql).fetchall()
    finally:
        con.close()

    inputs, stats = rows_to_assessment_inputs(
        rows,
        strategy=dvt_strategy,
        invalid_rows=invalid_rows,
    )

    calculator = RiskAssessmentCalculator(
        dvt_strategy=DVTScoringStrategy(dvt_strategy),
        priority_policy=PriorityPolicy(priority_policy),
    )

    output_path = Path(output_csv_path).expanduser().resolve()
    output_path.parent.mkdir(parents=True, exist_ok=True)

    fieldnames = [
        "patient_id",
        "assessment_type",
        "strategy",
        "score",
        "risk_level",
        "interventions",
    ]

    # Create directory for YAML exports
    yaml_dir = output_path.parent / "yaml_details"
    yaml_dir.mkdir(parents=True, exist_ok=True)

    with output_path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.DictWriter(f, fieldnames=fieldnames)
        writer.writeheader()

        for i, assessment in enumerate(inputs):
            record = calculator.assess(assessment)
            interventions = [item.description for item in record.action_plan]

            if i < YAML_DETAIL_LIMIT:
                bundle = build_export_bundle(record)
                yaml_name = f"{record.patient_id}_{record.assessment_type.value}_{record.id}.yml"
                with (yaml_dir / yaml_name).open("w", encoding="utf-8") as yf:
                    yaml.safe_dump(
                        bundle.model_dump(mode="json"), yf, sort_keys=False, allow_unicode=True
                    )

            writer.writerow(
                {
                    "patient_id": record.patient_id,
                    "assessment_type": record.assessment_type.value,
                    "strategy": record.strategy.value if record.strategy else "",
                    "score": record.score,
                    "risk_level": record.risk_level.value,
                    "interventions": json.dumps(interventions, ensure_ascii=False),
                }
            )

    skipped = int(stats.get("skipped", 0))
    if skipped:
        total_rows = len(rows)
        pct = (skipped / total_rows) * 100 if total_rows > 0 else 0
        invalids = stats.get("invalid_by_type", {})
        invalids_str = ", ".join(f"{k}={v}" for k, v in sorted(invalids.items()))
        logger.warning(
            "Skipped %d/%d (%.2f%%) rows with invalid factors: %s",
            skipped,
            total_rows,
            pct,
            invalids_str,
        )

    return len(inputs)


def _build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="cr_calculators.risk_assessment_calculator.duckdb_to_csv",
        description=(
            "Read main_intermediate.int_risk_assessment_input from DuckDB and write "
            "clinical risk scores to CSV."
        ),
    )
    p.add_argument(
        "--duckdb-path",
        default=default_duckdb_path(),
        help="Path to DuckDB file (default: DUCKDB_PATH env var or repo clinical_risk.duckdb)",
    )
    p.add_argument(
        "--output-csv",
        required=False,
        help="Output CSV path. Defaults to tmp_exports/YYYYMMDD_HHMMSSffffff_risk_scores_out.csv",
    )
    p.add_argument(
        "--dvt-strategy",
        choices=[s.value for s in DVTScoringStrategy],
        default=DVTScoringStrategy.caprini.value,
        help="DVT scoring system (caprini is canonical; wells only on request)",
    )
    p.add_argument(
        "--priority-policy",
        choices=[policy.value for policy in PriorityPolicy],
        default=PriorityPolicy.flat.value,
        help="Action-plan priority: flat (all medium) or severity (follows risk level)",
    )
    p.add_argument(
        "--schema",
        default="main_intermediate",
        help="DuckDB schema containing the input relation",
    )
    p.add_argument(
        "--table",
        default="int_risk_assessment_input",
        help="DuckDB table/view name containing the input relation",
    )
    p.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Optional row limit for quick smoke tests",
    )
    p.add_argument(
        "--invalid-rows",
        choices=["skip", "error"],
        default="skip",
        help="What to do if a row's factors fail validation: skip row or stop with an error",
    )
    return p


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    args = _build_arg_parser().parse_args(argv)

    output_csv = args.output_csv
    if not output_csv:
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S%f")
        output_csv = str(
            Path(__file__).parent / "tmp_exports" / f"{timestamp}_risk_scores_out.csv"
        )

    count = score_from_duckdb_to_csv(
        duckdb_path=args.duckdb_path,
        output_csv_path=output_csv,
        dvt_strategy=str(args.dvt_strategy),
        priority_policy=str(args.priority_policy),
        schema=str(args.schema),
        table=str(args.table),
        limit=args.limit,
        invalid_rows=str(args.invalid_rows),
    )

    print(f"Wrote {count} rows to {Path(output_csv).expanduser().resolve()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
