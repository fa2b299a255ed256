"""Clinical Risk Assessment Calculator.

Implements the Caprini (and opt-in Wells) DVT score, the Braden pressure-injury
scale and the MUST malnutrition screen, together with the recommendation,
action-plan and meal-plan content derived from each result.
Loads lookup content from tables/.
"""

from cr_calculators.risk_assessment_calculator.action_plan import build_action_plan
from cr_calculators.risk_assessment_calculator.calculator import (
    RiskAssessmentCalculator,
    calculate_bmi,
    calculate_braden_score,
    calculate_dvt_score,
    calculate_must_score,
    calculate_wells_score,
    get_bmi_score,
)
from cr_calculators.risk_assessment_calculator.errors import (
    AssessmentValidationError,
    PersistenceError,
)
from cr_calculators.risk_assessment_calculator.meal_plan import generate_meal_plan
from cr_calculators.risk_assessment_calculator.models import (
    AssessmentInput,
    AssessmentRecord,
    AssessmentType,
    DVTScoringStrategy,
    PriorityPolicy,
    RiskLevel,
    ScoreOutput,
)
from cr_calculators.risk_assessment_calculator.recommendations import get_recommendations
from cr_calculators.risk_assessment_calculator.summary import summarize_patient_risk

__all__ = [
    "AssessmentInput",
    "AssessmentRecord",
    "AssessmentType",
    "AssessmentValidationError",
    "DVTScoringStrategy",
    "PersistenceError",
    "PriorityPolicy",
    "RiskAssessmentCalculator",
    "RiskLevel",
    "ScoreOutput",
    "build_action_plan",
    "calculate_bmi",
    "calculate_braden_score",
    "calculate_dvt_score",
    "calculate_must_score",
    "calculate_wells_score",
    "generate_meal_plan",
    "get_bmi_score",
    "get_recommendations",
    "summarize_patient_risk",
]
