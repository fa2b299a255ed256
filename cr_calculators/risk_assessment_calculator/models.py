"""Data models for the clinical risk assessment calculator."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from cr_calculators.risk_assessment_calculator.errors import AssessmentValidationError


class AssessmentType(str, Enum):
    dvt = "dvt"
    pressure_sore = "pressure_sore"
    nutritional = "nutritional"


class RiskLevel(str, Enum):
    low = "low"
    moderate = "moderate"
    high = "high"
    very_high = "very_high"


class OverallRiskLevel(str, Enum):
    low = "low"
    moderate = "moderate"
    high = "high"
    critical = "critical"


class DVTScoringStrategy(str, Enum):
    """Which DVT scoring system produced (or should produce) a score.

    caprini is the canonical algorithm used at registration. wells is only
    used when a caller asks for it by name.
    """

    caprini = "caprini"
    wells = "wells"


class Priority(str, Enum):
    urgent = "urgent"
    high = "high"
    medium = "medium"
    low = "low"


class PriorityPolicy(str, Enum):
    """How action-plan priorities are assigned.

    flat: every item is 'medium'.
    severity: priority follows the assessment risk level.
    """

    flat = "flat"
    severity = "severity"


class ActionStatus(str, Enum):
    pending = "pending"
    in_progress = "in_progress"
    completed = "completed"
    cancelled = "cancelled"


class AssessmentStatus(str, Enum):
    active = "active"
    completed = "completed"
    superseded = "superseded"


class ActivityLevel(str, Enum):
    sedentary = "sedentary"
    moderate = "moderate"
    active = "active"


# Only an active assessment may change status; superseded/completed are final.
ALLOWED_STATUS_TRANSITIONS: dict[AssessmentStatus, set[AssessmentStatus]] = {
    AssessmentStatus.active: {AssessmentStatus.completed, AssessmentStatus.superseded},
    AssessmentStatus.completed: set(),
    AssessmentStatus.superseded: set(),
}


class CapriniRiskFactors(BaseModel):
    """Caprini VTE risk factors.

    Weight classes (points per true flag) live in tables/dvt_weights.csv:
        1 point: age 41-60, minor surgery, BMI > 25, swollen legs, ...
        2 points: age 61-74, malignancy, major surgery > 45 min, ...
        3 points: age >= 75, personal/family history of VTE, thrombophilias
        5 points: stroke, elective arthroplasty, hip/pelvis fracture, spinal injury
    """

    model_config = ConfigDict(extra="forbid")

    # 1 point
    age_41_60: bool = False
    minor_surgery: bool = False
    bmi_over_25: bool = False
    swollen_legs: bool = False
    varicose_veins: bool = False
    pregnancy_postpartum: bool = False
    oral_contraceptives: bool = False
    sepsis_1month: bool = False
    serious_lung_disease: bool = False
    abnormal_pulmonary: bool = False
    acute_mi: bool = False
    chf_1month: bool = False
    inflammatory_bowel: bool = False
    medical_patient_bedrest: bool = False

    # 2 points
    age_61_74: bool = False
    arthroscopic_surgery: bool = False
    malignancy: bool = False
    major_surgery_45min: bool = False
    laparoscopic_45min: bool = False
    patient_confined_bed: bool = False
    immobilizing_cast: bool = False
    central_venous_access: bool = False

    # 3 points
    age_over_75: bool = False
    personal_history_vte: bool = False
    family_history_vte: bool = False
    factor_v_leiden: bool = False
    prothrombin_mutation: bool = False
    elevated_homocysteine: bool = False
    lupus_anticoagulant: bool = False
    anticardiolipin_antibodies: bool = False
    heparin_thrombocytopenia: bool = False
    other_thrombophilia: bool = False

    # 5 points
    stroke_1month: bool = False
    elective_arthroplasty: bool = False
    hip_pelvis_fracture: bool = False
    acute_spinal_injury: bool = False


class WellsRiskFactors(BaseModel):
    """Wells DVT criteria. Each sign scores 1; alternative_diagnosis subtracts 2."""

    model_config = ConfigDict(extra="forbid")

    active_cancer: bool = False
    paralysis_paresis: bool = False
    recent_bedrest: bool = False
    major_surgery: bool = False
    localized_tenderness: bool = False
    swelling_entire_leg: bool = False
    calf_swelling: bool = False
    pitting_edema: bool = False
    collateral_veins: bool = False
    previous_dvt: bool = False
    alternative_diagnosis: bool = False


class BradenSubscores(BaseModel):
    """Braden scale subscores. Every subscale is required and must be a plain integer.

    Attributes:
        sensory_perception: 1 (completely limited) to 4 (no impairment)
        moisture: 1 (constantly moist) to 4 (rarely moist)
        activity: 1 (bedfast) to 4 (walks frequently)
        mobility: 1 (completely immobile) to 4 (no limitation)
        nutrition: 1 (very poor) to 4 (excellent)
        friction_shear: 1 (problem) to 3 (no apparent problem)
    """

    model_config = ConfigDict(extra="forbid")

    sensory_perception: int = Field(..., strict=True, ge=1, le=4)
    moisture: int = Field(..., strict=True, ge=1, le=4)
    activity: int = Field(..., strict=True, ge=1, le=4)
    mobility: int = Field(..., strict=True, ge=1, le=4)
    nutrition: int = Field(..., strict=True, ge=1, le=4)
    friction_shear: int = Field(..., strict=True, ge=1, le=3)


class NutritionalInput(BaseModel):
    """Anthropometric inputs for a MUST screen."""

    model_config = ConfigDict(extra="forbid")

    height_cm: float = Field(..., gt=0)
    weight_kg: float = Field(..., gt=0)
    weight_loss_percentage: float = Field(default=0.0, ge=0, le=100)
    acute_disease_effect: bool = False


class ScoreOutput(BaseModel):
    """Output from a single risk score calculation.

    Attributes:
        assessment_type: Which assessment produced the score
        score: Total score
        risk_level: Risk level derived from the score
        interpretation: One-line clinical reading of the risk level
        components: Points contributed by each factor or subscale
        details: Calculation details (strategy, BMI, ...)
    """

    assessment_type: AssessmentType
    score: int
    risk_level: RiskLevel
    interpretation: str = ""
    components: dict[str, int] = Field(default_factory=dict)
    details: dict[str, Any] = Field(default_factory=dict)


class Recommendations(BaseModel):
    clinical: list[str] = Field(default_factory=list)
    interventions: list[str] = Field(default_factory=list)


class ActionPlanItem(BaseModel):
    """A dated, assignable task derived from one intervention."""

    id: str
    description: str
    priority: Priority = Priority.medium
    assigned_to: str
    due_date: datetime | None = None
    status: ActionStatus = ActionStatus.pending
    completed_date: datetime | None = None
    notes: str | None = None
    created_at: datetime | None = None


class NutritionalInfo(BaseModel):
    calories: int
    protein: int
    carbs: int
    fat: int
    fiber: int
    sodium: str | None = None
    potassium: str | None = None
    phosphorus: str | None = None


class DayPlan(BaseModel):
    day: int = Field(..., ge=1, le=7)
    breakfast: str
    lunch: str
    dinner: str
    snacks: list[str]
    nutritional_info: NutritionalInfo
    special_instructions: list[str] = Field(default_factory=list)


class DailyRequirements(BaseModel):
    calories: int
    protein: int
    carbs: int
    fat: int
    fiber: int


class WeeklyRequirements(BaseModel):
    total_calories: int
    total_protein: int
    total_carbs: int
    total_fat: int
    total_fiber: int


class MealPlan(BaseModel):
    days: list[DayPlan]
    daily_requirements: DailyRequirements
    weekly_requirements: WeeklyRequirements
    comorbidity_adjustments: dict[str, str] = Field(default_factory=dict)


class NutritionalState(BaseModel):
    """Body measurements and activity used to size a meal plan."""

    weight_kg: float = Field(..., gt=0)
    height_cm: float | None = Field(default=None, gt=0)
    bmi: float | None = Field(default=None, ge=0)
    activity_level: ActivityLevel = ActivityLevel.moderate


class ClinicalState(BaseModel):
    primary_diagnosis: str = ""
    secondary_diagnoses: list[str] = Field(default_factory=list)
    comorbidities: list[str] = Field(default_factory=list)


class PatientContext(BaseModel):
    """Demographics from the patient-identity provider. Display only, never scored."""

    patient_id: str
    name: str = ""
    hospital_number: str | None = None
    age: int | None = Field(default=None, ge=0)
    sex: str | None = None
    ward: str | None = None
    comorbidities: list[str] = Field(default_factory=list)


class PreventionMeasures(BaseModel):
    mechanical_prophylaxis: bool = False
    pharmacological_prophylaxis: bool = False
    early_mobilization: bool = True
    hydration: bool = True
    compression_stockings: bool = False
    sequential_compression_device: bool = False


class ConsultationRequest(BaseModel):
    assessment_type: AssessmentType
    specialist: str
    title: str
    subtitle: str
    urgency: str = Field(pattern="^(EMERGENCY|URGENT|ROUTINE)$")
    score_label: str
    risk_level_label: str
    clinical: list[str] = Field(default_factory=list)
    interventions: list[str] = Field(default_factory=list)
    patient: PatientContext | None = None


class AssessmentInput(BaseModel):
    """One assessment submission: the raw factor set plus clinical context.

    factors holds a Caprini/Wells flag mapping, Braden subscores, or MUST
    anthropometrics depending on assessment_type.
    """

    patient_id: str
    assessment_type: AssessmentType
    assessed_by: str = "Registration System"
    factors: dict[str, Any] = Field(default_factory=dict)
    clinical: ClinicalState = Field(default_factory=ClinicalState)
    activity_level: ActivityLevel = ActivityLevel.moderate


class AssessmentRecord(BaseModel):
    """Persisted assessment. Only status changes after creation."""

    id: str
    patient_id: str
    assessment_type: AssessmentType
    assessment_date: datetime
    assessed_by: str
    strategy: DVTScoringStrategy | None = None
    risk_factors: dict[str, Any] = Field(default_factory=dict)
    score: int
    score_components: dict[str, int] = Field(default_factory=dict)
    risk_level: RiskLevel
    interpretation: str = ""
    recommendations: list[str] = Field(default_factory=list)
    action_plan: list[ActionPlanItem] = Field(default_factory=list)
    meal_plan: MealPlan | None = None
    next_assessment_due: datetime | None = None
    status: AssessmentStatus = AssessmentStatus.active
    created_at: datetime
    updated_at: datetime

    def with_status(self, status: AssessmentStatus | str, at: datetime) -> "AssessmentRecord":
        """Return a copy with a new status, rejecting illegal transitions."""
        new_status = AssessmentStatus(status)
        if new_status not in ALLOWED_STATUS_TRANSITIONS[self.status]:
            raise AssessmentValidationError(
                f"Cannot move assessment {self.id} from {self.status.value} to {new_status.value}"
            )
        return self.model_copy(update={"status": new_status, "updated_at": at})


class RiskSummaryEntry(BaseModel):
    assessment_id: str
    assessment_type: AssessmentType
    risk_level: RiskLevel
    score: int
    assessment_date: datetime
    assessed_by: str
    next_due: datetime | None = None
    urgent: bool = False


class PatientRiskSummary(BaseModel):
    patient_id: str
    generated_at: datetime
    overall_risk_level: OverallRiskLevel
    entries: list[RiskSummaryEntry] = Field(default_factory=list)
    combined_recommendations: list[str] = Field(default_factory=list)
    high_priority_actions: list[ActionPlanItem] = Field(default_factory=list)
    next_review_date: datetime | None = None


class AssessmentExportBundle(BaseModel):
    """Everything the document-export service needs to render one assessment."""

    patient: PatientContext | None = None
    assessment: AssessmentRecord
    recommendations: Recommendations
    meal_plan: MealPlan | None = None
    consultation: ConsultationRequest
