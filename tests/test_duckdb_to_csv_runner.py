from __future__ import annotations

import csv
import json
from pathlib import Path

import duckdb
import pytest
import yaml

from cr_calculators.risk_assessment_calculator import AssessmentValidationError
from cr_calculators.risk_assessment_calculator.duckdb_to_csv import (
    default_duckdb_path,
    score_from_duckdb_to_csv,
)

BRADEN_MAX = {
    "sensory_perception": 4,
    "moisture": 4,
    "activity": 4,
    "mobility": 4,
    "nutrition": 4,
    "friction_shear": 3,
}


def _create_input(duckdb_path: Path, rows: list[tuple]) -> None:
    con = duckdb.connect(str(duckdb_path))
    try:
        con.execute("CREATE SCHEMA main_intermediate")
        con.execute(
            """
            CREATE TABLE main_intermediate.int_risk_assessment_input (
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
        for row in rows:
            con.execute(
                "INSERT INTO main_intermediate.int_risk_assessment_input VALUES (?, ?, ?, ?, ?, ?, ?)",
                list(row),
            )
    finally:
        con.close()


def test_duckdb_to_csv_runner_smoke(tmp_path: Path) -> None:
    duckdb_path = tmp_path / "clinical_risk.duckdb"
    out_csv = tmp_path / "scores.csv"

    _create_input(
        duckdb_path,
        [
            (
                "P1",
                "dvt",
                "Dr. Bello",
                json.dumps({"malignancy": True, "personal_history_vte": True, "major_surgery_45min": True}),
                "Bowel resection",
                [],
                "sedentary",
            ),
            (
                "P2",
                "nutritional",
                None,
                json.dumps({"height_cm": 165, "weight_kg": 45, "weight_loss_percentage": 11}),
                "Chronic wound",
                ["diabetes", "hypertension"],
                None,
            ),
        ],
    )

    written = score_from_duckdb_to_csv(
        duckdb_path=str(duckdb_path),
        output_csv_path=str(out_csv),
        schema="main_intermediate",
        table="int_risk_assessment_input",
        limit=None,
    )

    assert written == 2
    assert out_csv.exists()

    with out_csv.open(newline="", encoding="utf-8") as f:
        rows = {r["patient_id"]: r for r in csv.DictReader(f)}

    assert rows["P1"]["score"] == "8"
    assert rows["P1"]["risk_level"] == "high"
    assert rows["P1"]["strategy"] == "caprini"
    assert "Anticoagulation + mechanical prophylaxis" in json.loads(rows["P1"]["interventions"])

    # BMI 16.5 -> 2, weight loss 11% -> 2
    assert rows["P2"]["score"] == "4"
    assert rows["P2"]["strategy"] == ""

    [detail_path] = (tmp_path / "yaml_details").glob("P2_nutritional_*.yml")
    detail = yaml.safe_load(detail_path.read_text(encoding="utf-8"))
    assert detail["assessment"]["patient_id"] == "P2"
    assert detail_path.name == f"P2_nutritional_{detail['assessment']['id']}.yml"
    assert detail["consultation"]["urgency"] == "URGENT"
    assert len(detail["meal_plan"]["days"]) == 7


def test_duckdb_to_csv_runner_wells_strategy(tmp_path: Path) -> None:
    duckdb_path = tmp_path / "clinical_risk.duckdb"
    out_csv = tmp_path / "scores.csv"

    _create_input(
        duckdb_path,
        [("P1", "dvt", "Dr. Bello", json.dumps({"calf_swelling": True}), "", [], "moderate")],
    )

    written = score_from_duckdb_to_csv(
        duckdb_path=str(duckdb_path),
        output_csv_path=str(out_csv),
        dvt_strategy="wells",
    )

    assert written == 1
    with out_csv.open(newline="", encoding="utf-8") as f:
        [row] = list(csv.DictReader(f))
    assert row["strategy"] == "wells"
    assert row["score"] == "1"
    assert row["risk_level"] == "moderate"


def test_duckdb_to_csv_runner_skips_invalid_rows(tmp_path: Path) -> None:
    duckdb_path = tmp_path / "clinical_risk.duckdb"
    out_csv = tmp_path / "scores.csv"

    _create_input(
        duckdb_path,
        [
            ("GOOD", "pressure_sore", None, json.dumps(BRADEN_MAX), "", [], None),
            # Braden with a missing subscale
            ("BAD", "pressure_sore", None, json.dumps({"sensory_perception": 4}), "", [], None),
        ],
    )

    written = score_from_duckdb_to_csv(
        duckdb_path=str(duckdb_path),
        output_csv_path=str(out_csv),
        invalid_rows="skip",
    )

    assert written == 1

    with out_csv.open(newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))

    assert [r["patient_id"] for r in rows] == ["GOOD"]
    assert rows[0]["risk_level"] == "low"


def test_duckdb_to_csv_runner_errors_on_invalid_rows(tmp_path: Path) -> None:
    duckdb_path = tmp_path / "clinical_risk.duckdb"

    _create_input(
        duckdb_path,
        [("BAD", "dvt", None, json.dumps({"not_a_factor": True}), "", [], None)],
    )

    with pytest.raises(AssessmentValidationError):
        score_from_duckdb_to_csv(
            duckdb_path=str(duckdb_path),
            output_csv_path=str(tmp_path / "scores.csv"),
            invalid_rows="error",
        )


def test_duckdb_to_csv_runner_keeps_every_yaml_detail(tmp_path: Path) -> None:
    duckdb_path = tmp_path / "clinical_risk.duckdb"
    out_csv = tmp_path / "scores.csv"

    _create_input(
        duckdb_path,
        [
            ("P1", "dvt", None, json.dumps({"age_41_60": True}), "", [], None),
            ("P1", "dvt", None, json.dumps({"malignancy": True, "age_over_75": True}), "", [], None),
        ],
    )

    assert score_from_duckdb_to_csv(duckdb_path=str(duckdb_path), output_csv_path=str(out_csv)) == 2

    details = sorted((tmp_path / "yaml_details").glob("P1_dvt_*.yml"))
    assert len(details) == 2
    scores = sorted(
        yaml.safe_load(p.read_text(encoding="utf-8"))["assessment"]["score"] for p in details
    )
    assert scores == [1, 5]


def test_duckdb_to_csv_runner_wells_interventions(tmp_path: Path) -> None:
    duckdb_path = tmp_path / "clinical_risk.duckdb"
    out_csv = tmp_path / "scores.csv"

    _create_input(
        duckdb_path,
        [
            (
                "P1",
                "dvt",
                None,
                json.dumps({"previous_dvt": True, "active_cancer": True, "calf_swelling": True}),
                "",
                [],
                None,
            )
        ],
    )

    score_from_duckdb_to_csv(
        duckdb_path=str(duckdb_path), output_csv_path=str(out_csv), dvt_strategy="wells"
    )

    with out_csv.open(newline="", encoding="utf-8") as f:
        [row] = list(csv.DictReader(f))
    assert row["risk_level"] == "high"
    assert json.loads(row["interventions"])[0] == "Urgent duplex ultrasound"

    [detail_path] = (tmp_path / "yaml_details").glob("P1_dvt_*.yml")
    detail = yaml.safe_load(detail_path.read_text(encoding="utf-8"))
    assert detail["consultation"]["score_label"] == "Wells Score: 3"
    assert not any("Caprini" in line for line in detail["consultation"]["clinical"])


def test_default_duckdb_path_shared_with_warehouse(monkeypatch, tmp_path: Path) -> None:
    from cr_dagster.resources import clinical_warehouse

    monkeypatch.setenv("DUCKDB_PATH", str(tmp_path / "env.duckdb"))
    assert default_duckdb_path() == str(tmp_path / "env.duckdb")

    monkeypatch.delenv("DUCKDB_PATH")
    assert default_duckdb_path().endswith("clinical_risk.duckdb")
    assert clinical_warehouse.default_duckdb_path is default_duckdb_path
