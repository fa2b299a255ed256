"""Clinical risk score calculator.

This module implements the scoring functions and the calculator class that:
1. Validates a raw factor set against the model for its assessment type
2. Sums weighted flags (Caprini/Wells), subscales (Braden) or components (MUST)
3. Classifies the total into a risk level
4. Attaches the interpretation, recommendations and an action plan

Factor weights and all clinical text are loaded from:
    tables/
"""

from collections.abc import Mapping
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, ValidationError

from cr_calculators.risk_assessment_calculator.action_plan import (
    build_action_plan,
    next_assessment_due,
)
from cr_calculators.risk_assessment_calculator.classifier import (
    classify,
    get_interpretation,
)
from cr_calculators.risk_assessment_calculator.errors import AssessmentValidationError
from cr_calculators.risk_assessment_calculator.meal_plan import generate_meal_plan
from cr_calculators.risk_assessment_calculator.models import (
    AssessmentInput,
    AssessmentRecord,
    AssessmentType,
    BradenSubscores,
    CapriniRiskFactors,
    DVTScoringStrategy,
    NutritionalInput,
    NutritionalState,
    PriorityPolicy,
    ScoreOutput,
    WellsRiskFactors,
)
from cr_calculators.risk_assessment_calculator.recommendations import (
    get_recommendations,
    requires_meal_plan,
)
from cr_calculators.risk_assessment_calculator.table_loader import (
    load_dvt_labels,
    load_dvt_weights,
)

FACTOR_MODELS: dict[tuple[AssessmentType, DVTScoringStrategy | None], type[BaseModel]] = {
    (AssessmentType.dvt, DVTScoringStrategy.caprini): CapriniRiskFactors,
    (AssessmentType.dvt, DVTScoringStrategy.wells): WellsRiskFactors,
    (AssessmentType.pressure_sore, None): BradenSubscores,
    (AssessmentType.nutritional, None): NutritionalInput,
}


def _validate(model: type[BaseModel], data: BaseModel | Mapping[str, Any]) -> Any:
    """Validate raw input against a factor model, raising AssessmentValidationError."""
    if isinstance(data, model):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump()
    try:
        return model.model_validate(dict(data))
    except ValidationError as exc:
        raise AssessmentValidationError(
            f"Invalid {model.__name__}: {exc.error_count()} error(s)\n{exc}"
        ) from exc


def parse_factors(
    assessment_type: AssessmentType | str,
    factors: BaseModel | Mapping[str, Any],
    strategy: DVTScoringStrategy | str = DVTScoringStrategy.caprini,
) -> BaseModel:
    """Validate a raw factor mapping into the factor model for its assessment type.

    Args:
        assessment_type: dvt, pressure_sore or nutritional
        factors: Flag/subscore mapping, or an already-built factor model
        strategy: DVT scoring strategy (selects Caprini or Wells factors)

    Returns:
        CapriniRiskFactors, WellsRiskFactors, BradenSubscores or NutritionalInput
    """
    try:
        assessment_type = AssessmentType(assessment_type)
        strategy = DVTScoringStrategy(strategy)
    except ValueError as exc:
        raise AssessmentValidationError(str(exc)) from exc

    key = (assessment_type, strategy if assessment_type == AssessmentType.dvt else None)
    return _validate(FACTOR_MODELS[key], factors)


def _weighted_sum(flags: BaseModel, weights: Mapping[str, int]) -> dict[str, int]:
    """Return the points contributed by each true flag."""
    components: dict[str, int] = {}
    for name, value in flags.model_dump().items():
        if value:
            components[name] = weights[name]
    return components


def _factor_labels(components: Mapping[str, int], strategy: DVTScoringStrategy) -> list[str]:
    """Display labels of the scored flags, in factor order."""
    labels = load_dvt_labels(strategy.value)
    return [labels[name] for name in components]


def calculate_dvt_score(factors: CapriniRiskFactors | Mapping[str, Any]) -> ScoreOutput:
    """Calculate the Caprini DVT score.

    Each true flag contributes its weight class (1, 2, 3 or 5 points). The
    sum is not capped; scores of 9 and above all classify as very_high.

    Args:
        factors: Caprini risk factors (model or flag mapping)

    Returns:
        Score output with score, risk level and per-factor points
    """
    flags = _validate(CapriniRiskFactors, factors)
    components = _weighted_sum(flags, load_dvt_weights(DVTScoringStrategy.caprini.value))
    score = sum(components.values())
    risk_level = classify(AssessmentType.dvt, score, DVTScoringStrategy.caprini)

    return ScoreOutput(
        assessment_type=AssessmentType.dvt,
        score=score,
        risk_level=risk_level,
        interpretation=get_interpretation(AssessmentType.dvt, risk_level),
        components=components,
        details={
            "strategy": DVTScoringStrategy.caprini.value,
            "factor_labels": _factor_labels(components, DVTScoringStrategy.caprini),
        },
    )


def calculate_wells_score(factors: WellsRiskFactors | Mapping[str, Any]) -> ScoreOutput:
    """Calculate the Wells DVT score.

    Ten clinical signs score 1 point each; an alternative diagnosis at least
    as likely as DVT subtracts 2, so the score ranges from -2 to 10.
    """
    flags = _validate(WellsRiskFactors, factors)
    components = _weighted_sum(flags, load_dvt_weights(DVTScoringStrategy.wells.value))
    score = sum(components.values())
    risk_level = classify(AssessmentType.dvt, score, DVTScoringStrategy.wells)

    return ScoreOutput(
        assessment_type=AssessmentType.dvt,
        score=score,
        risk_level=risk_level,
        interpretation=get_interpretation(
            AssessmentType.dvt, risk_level, DVTScoringStrategy.wells
        ),
        components=components,
        details={
            "strategy": DVTScoringStrategy.wells.value,
            "factor_labels": _factor_labels(components, DVTScoringStrategy.wells),
        },
    )


def calculate_braden_score(subscores: BradenSubscores | Mapping[str, Any]) -> ScoreOutput:
    """Calculate the Braden pressure-injury score (6-23, lower is riskier).

    All six subscales must be supplied; a missing or zero subscale is
    rejected rather than silently lowering the total.
    """
    braden = _validate(BradenSubscores, subscores)
    components = braden.model_dump()
    score = sum(components.values())
    risk_level = classify(AssessmentType.pressure_sore, score)

    return ScoreOutput(
        assessment_type=AssessmentType.pressure_sore,
        score=score,
        risk_level=risk_level,
        interpretation=get_interpretation(AssessmentType.pressure_sore, risk_level),
        components=components,
    )


def calculate_bmi(height_cm: float, weight_kg: float) -> float:
    """Body mass index, weight / (height in metres)^2. Returns 0 for non-positive inputs."""
    if height_cm <= 0 or weight_kg <= 0:
        return 0.0
    height_m = height_cm / 100
    return weight_kg / (height_m * height_m)


def get_bmi_score(bmi: float) -> int:
    """MUST BMI component: < 18.5 scores 2, 18.5-20 scores 1, otherwise 0."""
    if bmi < 18.5:
        return 2
    if bmi < 20:
        return 1
    return 0


def weight_loss_score(weight_loss_percentage: float) -> int:
    """MUST weight-loss component: >= 10% scores 2, >= 5% scores 1."""
    if weight_loss_percentage >= 10:
        return 2
    if weight_loss_percentage >= 5:
        return 1
    return 0


def calculate_must_score(
    bmi_score: int,
    weight_loss_percentage: float,
    acute_disease_effect: bool,
) -> ScoreOutput:
    """Calculate the MUST malnutrition score (0-6).

    Args:
        bmi_score: Pre-computed BMI component (0, 1 or 2), see get_bmi_score
        weight_loss_percentage: Unplanned weight loss over 3-6 months, 0-100
        acute_disease_effect: Acutely ill with no nutritional intake likely for > 5 days

    Returns:
        Score output with the three component scores
    """
    if isinstance(bmi_score, bool) or bmi_score not in (0, 1, 2):
        raise AssessmentValidationError(f"bmi_score must be 0, 1 or 2, got {bmi_score!r}")
    if not 0 <= weight_loss_percentage <= 100:
        raise AssessmentValidationError(
            f"weight_loss_percentage must be between 0 and 100, got {weight_loss_percentage!r}"
        )

    components = {
        "bmi": int(bmi_score),
        "weight_loss": weight_loss_score(weight_loss_percentage),
        "acute_disease": 2 if acute_disease_effect else 0,
    }
    score = sum(components.values())
    risk_level = classify(AssessmentType.nutritional, score)

    return ScoreOutput(
        assessment_type=AssessmentType.nutritional,
        score=score,
        risk_level=risk_level,
        interpretation=get_interpretation(AssessmentType.nutritional, risk_level),
        components=components,
        details={"weight_loss_percentage": weight_loss_percentage},
    )


def score_nutrition(nutrition: NutritionalInput | Mapping[str, Any]) -> ScoreOutput:
    """Run a full MUST screen from height, weight and history."""
    nutrition = _validate(NutritionalInput, nutrition)
    bmi = calculate_bmi(nutrition.height_cm, nutrition.weight_kg)
    result = calculate_must_score(
        get_bmi_score(bmi),
        nutrition.weight_loss_percentage,
        nutrition.acute_disease_effect,
    )
    result.details["bmi"] = round(bmi, 1)
    return result


class RiskAssessmentCalculator:
    """Clinical risk assessment calculator.

    Bundles the scoring functions with an explicit DVT strategy and action-plan
    priority policy:
    1. Validate the factor set for the assessment type
    2. Score and classify it
    3. Look up recommendations for the (type, level) pair
    4. Build the action plan from the interventions
    5. Generate a meal plan when nutritional risk is high

    Example:
        >>> calculator = RiskAssessmentCalculator()
        >>> result = calculator.score("dvt", {"age_41_60": True, "malignancy": True})
        >>> print(result.score, result.risk_level.value)
        3 moderate
    """

    def __init__(
        self,
        dvt_strategy: DVTScoringStrategy | str = DVTScoringStrategy.caprini,
        priority_policy: PriorityPolicy | str = PriorityPolicy.flat,
        assessed_by: str = "Registration System",
    ):
        """Initialize calculator.

        Args:
            dvt_strategy: Scoring system used for DVT assessments
            priority_policy: How action-plan priorities are assigned
            assessed_by: Default assessor / action-plan assignee
        """
        try:
            self.dvt_strategy = DVTScoringStrategy(dvt_strategy)
            self.priority_policy = PriorityPolicy(priority_policy)
        except ValueError as exc:
            raise AssessmentValidationError(str(exc)) from exc
        self.assessed_by = assessed_by

    def score(
        self,
        assessment_type: AssessmentType | str,
        factors: BaseModel | Mapping[str, Any],
    ) -> ScoreOutput:
        """Score one factor set.

        Args:
            assessment_type: dvt, pressure_sore or nutritional
            factors: Factor mapping or factor model for that type

        Returns:
            Score output
        """
        parsed = parse_factors(assessment_type, factors, self.dvt_strategy)
        if isinstance(parsed, CapriniRiskFactors):
            return calculate_dvt_score(parsed)
        if isinstance(parsed, WellsRiskFactors):
            return calculate_wells_score(parsed)
        if isinstance(parsed, BradenSubscores):
            return calculate_braden_score(parsed)
        return score_nutrition(parsed)

    def assess(
        self,
        assessment: AssessmentInput,
        now: datetime | None = None,
        include_meal_plan: bool = True,
    ) -> AssessmentRecord:
        """Score an assessment and build the full record ready to be saved.

        Args:
            assessment: Assessment submission
            now: Assessment time (defaults to the current UTC time)
            include_meal_plan: Generate a meal plan when nutritional risk requires one

        Returns:
            Active assessment record
        """
        now = now or datetime.now(UTC)
        parsed = parse_factors(assessment.assessment_type, assessment.factors, self.dvt_strategy)
        result = self.score(assessment.assessment_type, parsed)

        strategy = None
        if result.assessment_type == AssessmentType.dvt:
            strategy = self.dvt_strategy

        recommendations = get_recommendations(
            result.assessment_type, result.score, result.risk_level, strategy
        )

        meal_plan = None
        if include_meal_plan and requires_meal_plan(result.assessment_type, result.risk_level):
            nutrition = parsed
            meal_plan = generate_meal_plan(
                NutritionalState(
                    weight_kg=nutrition.weight_kg,
                    height_cm=nutrition.height_cm,
                    bmi=result.details.get("bmi"),
                    activity_level=assessment.activity_level,
                ),
                assessment.clinical,
            )

        return AssessmentRecord(
            id=str(uuid4()),
            patient_id=assessment.patient_id,
            assessment_type=result.assessment_type,
            assessment_date=now,
            assessed_by=assessment.assessed_by or self.assessed_by,
            strategy=strategy,
            risk_factors=parsed.model_dump(),
            score=result.score,
            score_components=result.components,
            risk_level=result.risk_level,
            interpretation=result.interpretation,
            recommendations=recommendations.clinical,
            action_plan=build_action_plan(
                recommendations.interventions,
                risk_level=result.risk_level,
                policy=self.priority_policy,
                assigned_to=self.assessed_by,
                now=now,
            ),
            meal_plan=meal_plan,
            next_assessment_due=next_assessment_due(now),
            created_at=now,
            updated_at=now,
        )

    def score_batch(
        self, assessment_type: AssessmentType | str, factor_sets: list[Mapping[str, Any]]
    ) -> list[ScoreOutput]:
        """Score multiple factor sets of one type.

        Returns:
            List of score outputs in same order as inputs
        """
        return [self.score(assessment_type, factors) for factors in factor_sets]
