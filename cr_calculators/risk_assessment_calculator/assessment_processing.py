from __future__ import annotations

import json
from typing import Any, Iterable

from pydantic import ValidationError

from cr_calculators.risk_assessment_calculator.calculator import parse_factors
from cr_calculators.risk_assessment_calculator.errors import AssessmentValidationError
from cr_calculators.risk_assessment_calculator.models import (
    ActivityLevel,
    AssessmentInput,
    ClinicalState,
    DVTScoringStrategy,
)


def coerce_str_list(value: Any) -> list[str]:
    """Coerce a value (list, tuple, or single item) into a list of strings."""
    if value is None:
        return []
    # DuckDB may return ARRAY as tuple in some cases
    if isinstance(value, (list, tuple)):
        return [str(x) for x in value if x is not None]
    return [str(value)]


def coerce_factors(value: Any) -> dict[str, Any]:
    """Decode a factors cell (JSON text or mapping) into a dict."""
    if value is None:
        return {}
    if isinstance(value, dict):
        return dict(value)
    decoded = json.loads(str(value))
    if not isinstance(decoded, dict):
        raise AssessmentValidationError(f"factors must be a JSON object, got {type(decoded).__name__}")
    return decoded


def rows_to_assessment_inputs(
    rows: Iterable[tuple[Any, ...]],
    *,
    strategy: DVTScoringStrategy | str = DVTScoringStrategy.caprini,
    invalid_rows: str = "skip",
) -> tuple[list[AssessmentInput], dict[str, Any]]:
    """
    Convert raw database rows into AssessmentInput objects with validation.

    Expected row format:
    (patient_id, assessment_type, assessed_by, factors, primary_diagnosis, comorbidities, activity_level)

    Rows whose factors do not validate for their assessment type are skipped
    (invalid_rows="skip") or raise AssessmentValidationError (invalid_rows="error").
    """
    inputs: list[AssessmentInput] = []
    skipped = 0
    invalid_by_type: dict[str, int] = {}

    if invalid_rows not in {"skip", "error"}:
        raise ValueError("invalid_rows must be one of: skip, error")

    for (
        patient_id,
        assessment_type,
        assessed_by,
        factors,
        primary_diagnosis,
        comorbidities,
        activity_level,
    ) in rows:
        try:
            assessment = AssessmentInput(
                patient_id=str(patient_id),
                assessment_type=str(assessment_type).strip().lower(),
                assessed_by=str(assessed_by) if assessed_by else "Registration System",
                factors=coerce_factors(factors),
                clinical=ClinicalState(
                    primary_diagnosis=str(primary_diagnosis or ""),
                    comorbidities=coerce_str_list(comorbidities),
                ),
                activity_level=(
                    str(activity_level).strip().lower()
                    if activity_level
                    else ActivityLevel.moderate
                ),
            )
            parse_factors(assessment.assessment_type, assessment.factors, strategy)
        except (ValidationError, ValueError) as exc:
            if invalid_rows == "error":
                if isinstance(exc, AssessmentValidationError):
                    raise
                raise AssessmentValidationError(
                    f"Invalid assessment row for patient {patient_id}: {exc}"
                ) from exc
            raw = "<NULL>" if assessment_type is None else str(assessment_type)
            invalid_by_type[raw] = invalid_by_type.get(raw, 0) + 1
            skipped += 1
            continue

        inputs.append(assessment)

    return inputs, {"skipped": skipped, "invalid_by_type": invalid_by_type}
