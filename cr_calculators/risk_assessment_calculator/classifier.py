"""Map numeric scores to ordinal risk levels.

Threshold tables are evaluated from the most severe band downwards, so a
score sitting exactly on a cutoff falls into the more severe band.
"""

from cr_calculators.risk_assessment_calculator.models import (
    AssessmentType,
    DVTScoringStrategy,
    RiskLevel,
)
from cr_calculators.risk_assessment_calculator.table_loader import load_interpretations

# (minimum score, level), most severe first
CAPRINI_THRESHOLDS: tuple[tuple[int, RiskLevel], ...] = (
    (9, RiskLevel.very_high),
    (5, RiskLevel.high),
    (3, RiskLevel.moderate),
)

WELLS_THRESHOLDS: tuple[tuple[int, RiskLevel], ...] = (
    (3, RiskLevel.high),
    (1, RiskLevel.moderate),
)

# (maximum score, level), most severe first; Braden is inverted
BRADEN_THRESHOLDS: tuple[tuple[int, RiskLevel], ...] = (
    (9, RiskLevel.very_high),
    (12, RiskLevel.high),
    (14, RiskLevel.moderate),
)

RISK_LEVEL_RANK: dict[RiskLevel, int] = {
    RiskLevel.low: 0,
    RiskLevel.moderate: 1,
    RiskLevel.high: 2,
    RiskLevel.very_high: 3,
}


def classify_caprini(score: int) -> RiskLevel:
    for minimum, level in CAPRINI_THRESHOLDS:
        if score >= minimum:
            return level
    return RiskLevel.low


def classify_wells(score: int) -> RiskLevel:
    for minimum, level in WELLS_THRESHOLDS:
        if score >= minimum:
            return level
    return RiskLevel.low


def classify_braden(score: int) -> RiskLevel:
    for maximum, level in BRADEN_THRESHOLDS:
        if score <= maximum:
            return level
    return RiskLevel.low


def classify_must(score: int) -> RiskLevel:
    """MUST bands: 0 low, exactly 1 moderate, 2 or more high."""
    if score >= 2:
        return RiskLevel.high
    if score == 1:
        return RiskLevel.moderate
    return RiskLevel.low


def classify(
    assessment_type: AssessmentType | str,
    score: int,
    strategy: DVTScoringStrategy | str = DVTScoringStrategy.caprini,
) -> RiskLevel:
    """Classify a score for any assessment type.

    Args:
        assessment_type: dvt, pressure_sore or nutritional
        score: Total score
        strategy: DVT strategy the score was produced with (ignored for other types)

    Returns:
        Risk level for the score
    """
    assessment_type = AssessmentType(assessment_type)
    if assessment_type == AssessmentType.dvt:
        if DVTScoringStrategy(strategy) == DVTScoringStrategy.wells:
            return classify_wells(score)
        return classify_caprini(score)
    if assessment_type == AssessmentType.pressure_sore:
        return classify_braden(score)
    return classify_must(score)


def content_key(
    assessment_type: AssessmentType | str,
    strategy: DVTScoringStrategy | str | None = DVTScoringStrategy.caprini,
) -> str:
    """Table key for the text of an assessment type.

    Wells DVT results have their own "dvt_wells" sections so that Caprini
    wording never appears next to a Wells score.
    """
    key = AssessmentType(assessment_type).value
    if (
        key == AssessmentType.dvt.value
        and strategy is not None
        and DVTScoringStrategy(strategy) == DVTScoringStrategy.wells
    ):
        return "dvt_wells"
    return key


def get_interpretation(
    assessment_type: AssessmentType | str,
    risk_level: RiskLevel | str,
    strategy: DVTScoringStrategy | str | None = DVTScoringStrategy.caprini,
) -> str:
    """Return the one-line interpretation of a risk level, or "" when none exists."""
    level = risk_level.value if isinstance(risk_level, RiskLevel) else str(risk_level)
    return load_interpretations().get(content_key(assessment_type, strategy), {}).get(level, "")
