"""Turn intervention labels into dated, assignable action-plan items."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import uuid4

from cr_calculators.risk_assessment_calculator.errors import AssessmentValidationError
from cr_calculators.risk_assessment_calculator.models import (
    ActionPlanItem,
    ActionStatus,
    Priority,
    PriorityPolicy,
    RiskLevel,
)

DEFAULT_ASSIGNEE = "Registration System"
ACTION_DUE_AFTER = timedelta(hours=24)
REASSESSMENT_INTERVAL = timedelta(days=7)

SEVERITY_PRIORITY: dict[RiskLevel, Priority] = {
    RiskLevel.very_high: Priority.urgent,
    RiskLevel.high: Priority.high,
    RiskLevel.moderate: Priority.medium,
    RiskLevel.low: Priority.low,
}


def priority_for(policy: PriorityPolicy | str, risk_level: RiskLevel | str | None) -> Priority:
    """Priority for every item of a plan under the given policy."""
    policy = PriorityPolicy(policy)
    if policy == PriorityPolicy.flat:
        return Priority.medium
    if risk_level is None:
        raise AssessmentValidationError("risk_level is required for the severity priority policy")
    return SEVERITY_PRIORITY[RiskLevel(risk_level)]


def build_action_plan(
    interventions: list[str],
    *,
    risk_level: RiskLevel | str | None = None,
    policy: PriorityPolicy | str = PriorityPolicy.flat,
    assigned_to: str = DEFAULT_ASSIGNEE,
    now: datetime | None = None,
) -> list[ActionPlanItem]:
    """Build one pending action item per intervention, due 24 hours from now.

    Args:
        interventions: Intervention labels, kept verbatim as descriptions
        risk_level: Assessment risk level (required for the severity policy)
        policy: flat (every item medium) or severity (priority follows risk level)
        assigned_to: Role label the items are assigned to
        now: Creation time (defaults to the current UTC time)

    Returns:
        Action items in the same order as the interventions
    """
    now = now or datetime.now(UTC)
    priority = priority_for(policy, risk_level)
    return [
        ActionPlanItem(
            id=str(uuid4()),
            description=intervention,
            priority=priority,
            assigned_to=assigned_to,
            due_date=now + ACTION_DUE_AFTER,
            status=ActionStatus.pending,
            created_at=now,
        )
        for intervention in interventions
    ]


def next_assessment_due(assessed_at: datetime) -> datetime:
    return assessed_at + REASSESSMENT_INTERVAL
