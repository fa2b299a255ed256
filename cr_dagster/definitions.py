from pathlib import Path

import yaml
from dagster import Definitions, define_asset_job

from cr_dagster.assets.scoring import score_patient_assessments
from cr_dagster.resources.clinical_warehouse import ClinicalWarehouse

CONFIG_DIR = Path(__file__).resolve().parent / "configs"

# Load default scoring config
with open(CONFIG_DIR / "scoring_example.yaml") as f:
    default_scoring_config = yaml.safe_load(f)

scoring_job = define_asset_job(
    name="scoring_job",
    selection=["score_patient_assessments"],
    description="""
    # Clinical Risk Scoring Job

    Scores every pending assessment input and saves the full assessment records.

    **Steps:**
    1. Reads assessment inputs from `int_risk_assessment_input`
    2. Applies Caprini (or Wells) / Braden / MUST scoring and builds action plans
    3. Saves assessments to `main_clinical.assessments`, superseding older ones
    4. Writes flat results to `main_runs.risk_scores` in the same transaction
    5. Records strategy, policy and per-type counts in `main_runs.run_registry`
    """,
    tags={"team": "clinical", "priority": "high"},
    config=default_scoring_config,
)


definitions = Definitions(
    assets=[score_patient_assessments],
    resources={
        "warehouse": ClinicalWarehouse(),
    },
    jobs=[scoring_job],
)
