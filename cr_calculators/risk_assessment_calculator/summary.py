"""Cross-assessment views: patient risk summary and document export bundle."""

from __future__ import annotations

from datetime import UTC, datetime

from cr_calculators.risk_assessment_calculator.classifier import RISK_LEVEL_RANK
from cr_calculators.risk_assessment_calculator.models import (
    ActionStatus,
    AssessmentExportBundle,
    AssessmentRecord,
    AssessmentStatus,
    MealPlan,
    OverallRiskLevel,
    PatientContext,
    PatientRiskSummary,
    Priority,
    RiskLevel,
    RiskSummaryEntry,
)
from cr_calculators.risk_assessment_calculator.recommendations import (
    build_consultation_request,
    get_recommendations,
)

URGENT_LEVELS = frozenset({RiskLevel.high, RiskLevel.very_high})
HIGH_PRIORITIES = frozenset({Priority.urgent, Priority.high})

OVERALL_LEVEL: dict[RiskLevel, OverallRiskLevel] = {
    RiskLevel.low: OverallRiskLevel.low,
    RiskLevel.moderate: OverallRiskLevel.moderate,
    RiskLevel.high: OverallRiskLevel.high,
    RiskLevel.very_high: OverallRiskLevel.critical,
}


def _is_urgent(assessment: AssessmentRecord, now: datetime) -> bool:
    if assessment.risk_level in URGENT_LEVELS:
        return True
    return assessment.next_assessment_due is not None and assessment.next_assessment_due < now


def summarize_patient_risk(
    patient_id: str,
    assessments: list[AssessmentRecord],
    now: datetime | None = None,
) -> PatientRiskSummary:
    """Summarize a patient's active assessments.

    Entries are urgent when the risk level is high or very_high, or when the
    reassessment is overdue. Urgent entries sort first, then newest first.

    Args:
        patient_id: Patient the summary is for; other patients' records are ignored
        assessments: Assessment records, any status
        now: Reference time for overdue checks (defaults to the current UTC time)

    Returns:
        PatientRiskSummary
    """
    now = now or datetime.now(UTC)
    active = [
        a
        for a in assessments
        if a.patient_id == patient_id and a.status == AssessmentStatus.active
    ]

    urgent_ids = {a.id for a in active if _is_urgent(a, now)}
    ordered = sorted(active, key=lambda a: a.assessment_date, reverse=True)
    ordered.sort(key=lambda a: a.id not in urgent_ids)

    entries = [
        RiskSummaryEntry(
            assessment_id=a.id,
            assessment_type=a.assessment_type,
            risk_level=a.risk_level,
            score=a.score,
            assessment_date=a.assessment_date,
            assessed_by=a.assessed_by,
            next_due=a.next_assessment_due,
            urgent=a.id in urgent_ids,
        )
        for a in ordered
    ]

    overall = OverallRiskLevel.low
    if active:
        worst = max((a.risk_level for a in active), key=RISK_LEVEL_RANK.__getitem__)
        overall = OVERALL_LEVEL[worst]

    combined: list[str] = []
    seen: set[str] = set()
    for a in ordered:
        for line in a.recommendations:
            if line and line not in seen:
                seen.add(line)
                combined.append(line)

    actions = []
    for a in ordered:
        for item in a.action_plan:
            if item.status != ActionStatus.pending:
                continue
            if item.priority in HIGH_PRIORITIES or a.id in urgent_ids:
                actions.append(item)

    due_dates = [a.next_assessment_due for a in active if a.next_assessment_due is not None]

    return PatientRiskSummary(
        patient_id=patient_id,
        generated_at=now,
        overall_risk_level=overall,
        entries=entries,
        combined_recommendations=combined,
        high_priority_actions=actions,
        next_review_date=min(due_dates) if due_dates else None,
    )


def build_export_bundle(
    assessment: AssessmentRecord,
    patient: PatientContext | None = None,
    meal_plan: MealPlan | None = None,
) -> AssessmentExportBundle:
    """Assemble the assessment, recommendations, meal plan and referral for export."""
    strategy = assessment.strategy
    return AssessmentExportBundle(
        patient=patient,
        assessment=assessment,
        recommendations=get_recommendations(
            assessment.assessment_type, assessment.score, assessment.risk_level, strategy
        ),
        meal_plan=meal_plan or assessment.meal_plan,
        consultation=build_consultation_request(
            assessment.assessment_type,
            assessment.score,
            assessment.risk_level,
            patient=patient,
            strategy=strategy,
        ),
    )
