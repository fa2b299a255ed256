"""Seven-day therapeutic meal plan generation.

Menus rotate through the tables in meal_menus.json, picking the variant that
matches the patient's comorbidities. Daily macros are derived from weight,
activity level and diagnosis; the same inputs always produce the same plan.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from cr_calculators.risk_assessment_calculator.models import (
    ActivityLevel,
    ClinicalState,
    DailyRequirements,
    DayPlan,
    MealPlan,
    NutritionalInfo,
    NutritionalState,
    WeeklyRequirements,
)
from cr_calculators.risk_assessment_calculator.table_loader import load_meal_menus

ACTIVITY_MULTIPLIERS: dict[ActivityLevel, float] = {
    ActivityLevel.sedentary: 1.2,
    ActivityLevel.moderate: 1.5,
    ActivityLevel.active: 1.7,
}

DIABETES_ALIASES = frozenset({"diabetes", "type_2_diabetes"})
HYPERTENSION_ALIASES = frozenset({"hypertension", "high_blood_pressure"})
RENAL_ALIASES = frozenset({"renal_impairment", "chronic_kidney_disease"})
LIVER_ALIASES = frozenset({"liver_disease", "hepatitis"})
WOUND_KEYWORDS = ("wound", "surgery", "burn")

DAYS_IN_PLAN = 7


def _round(value: float) -> int:
    """Round half up (2.5 -> 3), unlike Python's banker's rounding."""
    return int(math.floor(value + 0.5))


def _normalize(comorbidity: str) -> str:
    return comorbidity.strip().lower().replace(" ", "_").replace("-", "_")


@dataclass(frozen=True)
class ComorbidityProfile:
    diabetes: bool
    hypertension: bool
    renal: bool
    liver: bool
    wound_healing: bool

    @classmethod
    def from_clinical(cls, clinical: ClinicalState) -> ComorbidityProfile:
        names = {_normalize(c) for c in clinical.comorbidities}
        diagnosis = clinical.primary_diagnosis.lower()
        return cls(
            diabetes=bool(names & DIABETES_ALIASES),
            hypertension=bool(names & HYPERTENSION_ALIASES),
            renal=bool(names & RENAL_ALIASES),
            liver=bool(names & LIVER_ALIASES),
            wound_healing=any(keyword in diagnosis for keyword in WOUND_KEYWORDS),
        )

    @property
    def protein_per_kg(self) -> float:
        # Renal protein restriction wins over the wound-healing increase
        if self.renal:
            return 0.6
        if self.wound_healing:
            return 1.5
        return 1.0

    @property
    def carbs_fraction(self) -> float:
        return 0.40 if self.diabetes else 0.50

    def special_instructions(self) -> list[str]:
        instructions = []
        if self.diabetes:
            instructions.append("Monitor blood glucose 2hrs after meals")
        if self.hypertension:
            instructions.append("NO added salt - use herbs (basil, thyme, ginger) for flavor")
        if self.renal:
            instructions.append("Limit protein to prescribed amount, avoid potassium-rich foods")
        if self.liver:
            instructions.append("Small frequent meals, avoid fried foods")
        if self.wound_healing:
            instructions.append("High protein for tissue repair, adequate vitamin C and zinc")
        return instructions

    def adjustments(self) -> dict[str, str]:
        adjustments = {}
        if self.diabetes:
            adjustments["diabetes"] = "Low GI foods, controlled carbohydrates"
        if self.hypertension:
            adjustments["hypertension"] = "Low sodium (<2000mg/day), DASH diet principles"
        if self.renal:
            adjustments["renal"] = "Protein restriction, phosphorus & potassium control"
        if self.liver:
            adjustments["liver"] = "Small frequent meals, adequate protein, low fat"
        return adjustments


def calculate_daily_requirements(
    nutrition: NutritionalState, profile: ComorbidityProfile
) -> DailyRequirements:
    """Daily macro targets.

    calories = weight * 24 * activity multiplier
    carbs = calories * (40% diabetic, else 50%) / 4 kcal per g
    fat = calories * 30% / 9 kcal per g
    """
    weight = nutrition.weight_kg
    calories = _round(weight * 24 * ACTIVITY_MULTIPLIERS[nutrition.activity_level])
    return DailyRequirements(
        calories=calories,
        protein=_round(weight * profile.protein_per_kg),
        carbs=_round(calories * profile.carbs_fraction / 4),
        fat=_round(calories * 0.30 / 9),
        fiber=_round(weight * 0.4),
    )


def generate_meal_plan(nutrition: NutritionalState, clinical: ClinicalState) -> MealPlan:
    """Generate a 7-day meal plan.

    Args:
        nutrition: Weight, height/BMI and activity level
        clinical: Primary diagnosis and comorbidities

    Returns:
        MealPlan with days numbered 1-7
    """
    profile = ComorbidityProfile.from_clinical(clinical)
    daily = calculate_daily_requirements(nutrition, profile)
    menus = load_meal_menus()

    breakfasts = menus["breakfast"]["diabetes" if profile.diabetes else "normal"]
    lunches = menus["lunch"]["hypertension" if profile.hypertension else "normal"]
    dinners = menus["dinner"]["renal" if profile.renal else "normal"]
    snacks = menus["snacks"]["liver_disease" if profile.liver else "normal"]

    info = NutritionalInfo(
        calories=daily.calories,
        # Per-day figure shown to renal patients is a further 20% lower
        protein=_round(daily.protein * 0.8) if profile.renal else daily.protein,
        carbs=daily.carbs,
        fat=daily.fat,
        fiber=daily.fiber,
        sodium="< 2000mg" if profile.hypertension else None,
        potassium="< 2000mg" if profile.renal else None,
        phosphorus="< 1000mg" if profile.renal else None,
    )
    instructions = profile.special_instructions()

    days = [
        DayPlan(
            day=day,
            breakfast=breakfasts[day % len(breakfasts)],
            lunch=lunches[day % len(lunches)],
            dinner=dinners[day % len(dinners)],
            snacks=[snacks[(day * 2) % len(snacks)], snacks[(day * 2 + 1) % len(snacks)]],
            nutritional_info=info.model_copy(),
            special_instructions=list(instructions),
        )
        for day in range(1, DAYS_IN_PLAN + 1)
    ]

    return MealPlan(
        days=days,
        daily_requirements=daily,
        weekly_requirements=WeeklyRequirements(
            total_calories=daily.calories * DAYS_IN_PLAN,
            total_protein=daily.protein * DAYS_IN_PLAN,
            total_carbs=daily.carbs * DAYS_IN_PLAN,
            total_fat=daily.fat * DAYS_IN_PLAN,
            total_fiber=daily.fiber * DAYS_IN_PLAN,
        ),
        comorbidity_adjustments=profile.adjustments(),
    )
