"""Wardscore calculators - Clinical risk scoring implementations.

Available calculators:
    - RiskAssessmentCalculator: Caprini/Wells DVT, Braden and MUST scoring
"""

from cr_calculators.risk_assessment_calculator import (
    AssessmentInput,
    RiskAssessmentCalculator,
    ScoreOutput,
)

__all__ = ["AssessmentInput", "RiskAssessmentCalculator", "ScoreOutput"]
