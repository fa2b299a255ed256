"""Recommendation lookups derived from an assessment result."""

from __future__ import annotations

from enum import Enum

from cr_calculators.risk_assessment_calculator.classifier import RISK_LEVEL_RANK, content_key
from cr_calculators.risk_assessment_calculator.models import (
    AssessmentType,
    ConsultationRequest,
    DVTScoringStrategy,
    PatientContext,
    PreventionMeasures,
    Recommendations,
    RiskLevel,
)
from cr_calculators.risk_assessment_calculator.table_loader import (
    load_consultations,
    load_recommendations,
)


def _key(value: Enum | str) -> str:
    return value.value if isinstance(value, Enum) else str(value)


def get_recommendations(
    assessment_type: AssessmentType | str,
    score: int | None,
    risk_level: RiskLevel | str,
    strategy: DVTScoringStrategy | str | None = DVTScoringStrategy.caprini,
) -> Recommendations:
    """Look up clinical guidance and interventions for an assessment result.

    The catalog is keyed by (assessment type, risk level) only; score is
    accepted for callers that pass a full result but does not change the
    lookup. Unknown combinations return empty lists.

    Args:
        assessment_type: dvt, pressure_sore or nutritional
        score: Total score (informational)
        risk_level: Risk level of the result
        strategy: DVT strategy the score was produced with (ignored for other types)

    Returns:
        Fresh Recommendations; mutating them never affects later lookups
    """
    try:
        key = content_key(assessment_type, strategy)
    except ValueError:
        return Recommendations()
    entry = load_recommendations().get(key, {}).get(_key(risk_level))
    if entry is None:
        return Recommendations()
    return Recommendations(
        clinical=list(entry["clinical"]),
        interventions=list(entry["interventions"]),
    )


def requires_meal_plan(assessment_type: AssessmentType | str, risk_level: RiskLevel | str) -> bool:
    """A meal plan is produced only for high nutritional risk."""
    return (
        _key(assessment_type) == AssessmentType.nutritional.value
        and _key(risk_level) == RiskLevel.high.value
    )


def derive_prevention_measures(risk_level: RiskLevel | str) -> PreventionMeasures:
    """DVT prevention measures for a risk level.

    Mobilization and hydration always apply; mechanical measures start at
    moderate risk and pharmacological prophylaxis at high risk.
    """
    rank = RISK_LEVEL_RANK[RiskLevel(_key(risk_level))]
    moderate = rank >= RISK_LEVEL_RANK[RiskLevel.moderate]
    high = rank >= RISK_LEVEL_RANK[RiskLevel.high]
    return PreventionMeasures(
        mechanical_prophylaxis=moderate,
        compression_stockings=moderate,
        pharmacological_prophylaxis=high,
        sequential_compression_device=high,
    )


def build_consultation_request(
    assessment_type: AssessmentType | str,
    score: int,
    risk_level: RiskLevel | str,
    patient: PatientContext | None = None,
    strategy: DVTScoringStrategy | str | None = DVTScoringStrategy.caprini,
) -> ConsultationRequest:
    """Assemble the specialist referral content handed to the document exporter.

    The score label and the clinical text follow the same DVT strategy.
    """
    assessment_type = AssessmentType(_key(assessment_type))
    level = _key(risk_level)
    entry = load_consultations()[assessment_type.value]

    label_template = entry["score_label"]
    if content_key(assessment_type, strategy) == "dvt_wells" and "score_label_wells" in entry:
        label_template = entry["score_label_wells"]

    recommendations = get_recommendations(assessment_type, score, level, strategy)
    return ConsultationRequest(
        assessment_type=assessment_type,
        specialist=entry["specialist"],
        title=entry["title"],
        subtitle=entry["subtitle"],
        urgency=entry["urgency"].get(level, "ROUTINE"),
        score_label=label_template.format(score=score),
        risk_level_label=level.replace("_", " ").upper(),
        clinical=recommendations.clinical,
        interventions=recommendations.interventions,
        patient=patient,
    )
