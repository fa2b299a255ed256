"""Tests for the clinical risk calculator."""

from datetime import UTC, datetime, timedelta

import pytest

from cr_calculators.risk_assessment_calculator import (
    AssessmentInput,
    AssessmentValidationError,
    RiskAssessmentCalculator,
    calculate_bmi,
    calculate_braden_score,
    calculate_dvt_score,
    calculate_must_score,
    calculate_wells_score,
    get_bmi_score,
    get_recommendations,
)
from cr_calculators.risk_assessment_calculator.calculator import score_nutrition
from cr_calculators.risk_assessment_calculator.classifier import (
    classify,
    classify_braden,
    classify_caprini,
    classify_must,
    get_interpretation,
)
from cr_calculators.risk_assessment_calculator.models import (
    BradenSubscores,
    CapriniRiskFactors,
    DVTScoringStrategy,
    NutritionalInput,
    RiskLevel,
)
from cr_calculators.risk_assessment_calculator.recommendations import (
    build_consultation_request,
    derive_prevention_measures,
    requires_meal_plan,
)
from cr_calculators.risk_assessment_calculator.table_loader import (
    clear_cache,
    load_dvt_weights,
    load_meal_menus,
)

ALL_BRADEN_MAX = {
    "sensory_perception": 4,
    "moisture": 4,
    "activity": 4,
    "mobility": 4,
    "nutrition": 4,
    "friction_shear": 3,
}
ALL_BRADEN_MIN = {name: 1 for name in ALL_BRADEN_MAX}


class TestRiskFactorModels:
    """Tests for factor-set validation."""

    def test_caprini_defaults_false(self):
        factors = CapriniRiskFactors()
        assert not any(factors.model_dump().values())
        assert len(factors.model_dump()) == 36

    def test_caprini_rejects_unknown_flag(self):
        with pytest.raises(ValueError):
            CapriniRiskFactors(not_a_factor=True)

    def test_braden_requires_every_subscale(self):
        partial = dict(ALL_BRADEN_MAX)
        del partial["moisture"]
        with pytest.raises(ValueError):
            BradenSubscores(**partial)

    def test_braden_rejects_zero_subscale(self):
        with pytest.raises(ValueError):
            BradenSubscores(**{**ALL_BRADEN_MAX, "nutrition": 0})

    def test_friction_shear_max_is_three(self):
        with pytest.raises(ValueError):
            BradenSubscores(**{**ALL_BRADEN_MAX, "friction_shear": 4})

    def test_braden_rejects_bool_subscale(self):
        with pytest.raises(ValueError):
            BradenSubscores(**{**ALL_BRADEN_MAX, "sensory_perception": True})
        with pytest.raises(AssessmentValidationError):
            calculate_braden_score({**ALL_BRADEN_MIN, "friction_shear": True})

    def test_nutritional_input_rejects_non_positive_height(self):
        with pytest.raises(ValueError):
            NutritionalInput(height_cm=0, weight_kg=70)


class TestDVTScore:
    """Tests for Caprini and Wells DVT scoring."""

    def test_one_plus_two_is_moderate(self):
        result = calculate_dvt_score({"age_41_60": True, "malignancy": True})
        assert result.score == 3
        assert result.risk_level == RiskLevel.moderate
        assert result.components == {"age_41_60": 1, "malignancy": 2}
        assert result.details["strategy"] == "caprini"
        assert result.details["factor_labels"] == [
            "Age 41-60 years",
            "Malignancy (present or previous)",
        ]

    def test_no_factors_is_low(self):
        result = calculate_dvt_score({})
        assert result.score == 0
        assert result.risk_level == RiskLevel.low

    def test_high_risk_scenario(self):
        result = calculate_dvt_score(
            {"malignancy": True, "personal_history_vte": True, "major_surgery_45min": True}
        )
        assert result.score == 8
        assert result.risk_level == RiskLevel.high

        recs = get_recommendations("dvt", result.score, result.risk_level)
        assert "PHARMACOLOGICAL prophylaxis strongly recommended" in recs.clinical
        assert "PLUS mechanical prophylaxis (IPC or compression stockings)" in recs.clinical

    def test_score_is_not_capped(self):
        flags = {name: True for name, weight in load_dvt_weights("caprini").items() if weight == 5}
        result = calculate_dvt_score(flags)
        assert result.score == 20
        assert result.risk_level == RiskLevel.very_high

    def test_weight_classes(self):
        weights = load_dvt_weights("caprini")
        assert len(weights) == 36
        assert sorted({*weights.values()}) == [1, 2, 3, 5]
        assert weights["stroke_1month"] == 5
        assert weights["factor_v_leiden"] == 3

    def test_invalid_flag_raises_validation_error(self):
        with pytest.raises(AssessmentValidationError):
            calculate_dvt_score({"previous_dvt": True})

    def test_wells_alternative_diagnosis_subtracts(self):
        result = calculate_wells_score({"alternative_diagnosis": True})
        assert result.score == -2
        assert result.risk_level == RiskLevel.low
        assert result.details["strategy"] == "wells"
        assert result.details["factor_labels"] == [
            "Alternative diagnosis likely (subtract 2 points)"
        ]

    def test_wells_thresholds(self):
        assert calculate_wells_score({"calf_swelling": True}).risk_level == RiskLevel.moderate
        result = calculate_wells_score(
            {"active_cancer": True, "calf_swelling": True, "pitting_edema": True}
        )
        assert result.score == 3
        assert result.risk_level == RiskLevel.high
        assert "D-dimer" in result.interpretation

    def test_strategies_use_distinct_factor_sets(self):
        with pytest.raises(AssessmentValidationError):
            calculate_wells_score({"malignancy": True})


class TestBradenScore:
    def test_all_max_is_low(self):
        result = calculate_braden_score(ALL_BRADEN_MAX)
        assert result.score == 23
        assert result.risk_level == RiskLevel.low

    def test_all_min_is_very_high(self):
        result = calculate_braden_score(ALL_BRADEN_MIN)
        assert result.score == 6
        assert result.risk_level == RiskLevel.very_high
        assert result.interpretation.startswith("Very high risk for pressure injury")

    def test_missing_subscale_rejected(self):
        with pytest.raises(AssessmentValidationError):
            calculate_braden_score({"sensory_perception": 4})

    @pytest.mark.parametrize(
        "score,level",
        [(9, "very_high"), (10, "high"), (12, "high"), (13, "moderate"), (14, "moderate"), (15, "low")],
    )
    def test_band_edges(self, score, level):
        assert classify_braden(score) == RiskLevel(level)


class TestMUSTScore:
    def test_worst_case_is_high(self):
        result = calculate_must_score(2, 12, True)
        assert result.score == 6
        assert result.risk_level == RiskLevel.high

    def test_exactly_one_is_moderate(self):
        result = calculate_must_score(1, 0, False)
        assert result.score == 1
        assert result.risk_level == RiskLevel.moderate
        assert classify_must(0) == RiskLevel.low
        assert classify_must(2) == RiskLevel.high

    def test_weight_loss_bands(self):
        assert calculate_must_score(0, 4.9, False).score == 0
        assert calculate_must_score(0, 5, False).score == 1
        assert calculate_must_score(0, 10, False).score == 2

    def test_rejects_out_of_range_inputs(self):
        with pytest.raises(AssessmentValidationError):
            calculate_must_score(3, 0, False)
        with pytest.raises(AssessmentValidationError):
            calculate_must_score(0, -1, False)
        with pytest.raises(AssessmentValidationError):
            calculate_must_score(0, 101, False)

    def test_bmi(self):
        assert calculate_bmi(170, 70) == pytest.approx(24.22, abs=0.01)
        assert calculate_bmi(0, 70) == 0
        assert calculate_bmi(170, 0) == 0

    def test_bmi_score_bands(self):
        assert get_bmi_score(18.4) == 2
        assert get_bmi_score(18.5) == 1
        assert get_bmi_score(19.9) == 1
        assert get_bmi_score(20) == 0

    def test_score_nutrition_from_anthropometrics(self):
        result = score_nutrition({"height_cm": 170, "weight_kg": 50, "weight_loss_percentage": 6})
        # BMI 17.3 -> 2, weight loss 6% -> 1
        assert result.score == 3
        assert result.details["bmi"] == 17.3
        assert result.risk_level == RiskLevel.high


class TestClassifier:
    @pytest.mark.parametrize(
        "score,level",
        [(0, "low"), (2, "low"), (3, "moderate"), (4, "moderate"), (5, "high"), (8, "high"), (9, "very_high")],
    )
    def test_caprini_band_edges(self, score, level):
        assert classify_caprini(score) == RiskLevel(level)

    @pytest.mark.parametrize(
        "assessment_type,score,strategy,level",
        [
            ("dvt", 3, "caprini", "moderate"),
            ("dvt", 3, "wells", "high"),
            ("dvt", 0, "wells", "low"),
            ("pressure_sore", 9, "caprini", "very_high"),
            ("pressure_sore", 15, "wells", "low"),
            ("nutritional", 1, "caprini", "moderate"),
        ],
    )
    def test_classify_dispatches_by_type_and_strategy(self, assessment_type, score, strategy, level):
        assert classify(assessment_type, score, strategy) == RiskLevel(level)

    def test_classify_rejects_unknown_type(self):
        with pytest.raises(ValueError):
            classify("cardiac", 1)

    def test_unknown_interpretation_is_empty(self):
        assert get_interpretation("nutritional", "very_high") == ""

    def test_wells_interpretation_key(self):
        text = get_interpretation("dvt", "low", DVTScoringStrategy.wells)
        assert "DVT unlikely" in text


class TestRecommendations:
    def test_repeated_lookups_are_identical(self):
        first = get_recommendations("dvt", 7, "high")
        second = get_recommendations("dvt", 7, "high")
        assert first == second

    def test_mutating_result_does_not_leak(self):
        first = get_recommendations("dvt", 7, "high")
        first.clinical.append("extra")
        first.interventions.clear()
        second = get_recommendations("dvt", 7, "high")
        assert "extra" not in second.clinical
        assert second.interventions

    def test_unknown_combination_is_empty(self):
        recs = get_recommendations("nutritional", 9, "very_high")
        assert recs.clinical == []
        assert recs.interventions == []
        assert get_recommendations("cardiac", 1, "low").clinical == []

    def test_meal_plan_only_for_high_nutrition(self):
        assert requires_meal_plan("nutritional", "high")
        assert not requires_meal_plan("nutritional", "moderate")
        assert not requires_meal_plan("dvt", "high")

    def test_prevention_measures(self):
        low = derive_prevention_measures("low")
        assert low.early_mobilization and low.hydration
        assert not low.mechanical_prophylaxis

        moderate = derive_prevention_measures(RiskLevel.moderate)
        assert moderate.mechanical_prophylaxis and moderate.compression_stockings
        assert not moderate.pharmacological_prophylaxis

        high = derive_prevention_measures("very_high")
        assert high.pharmacological_prophylaxis and high.sequential_compression_device

    def test_consultation_request(self):
        request = build_consultation_request("dvt", 10, "very_high")
        assert request.urgency == "EMERGENCY"
        assert request.specialist == "Vascular Surgery / Hematology"
        assert request.score_label == "Caprini Score: 10"
        assert request.risk_level_label == "VERY HIGH"
        assert request.interventions

    def test_nutrition_consultation_is_never_emergency(self):
        assert build_consultation_request("nutritional", 4, "high").urgency == "URGENT"
        assert build_consultation_request("nutritional", 1, "moderate").urgency == "ROUTINE"

    def test_wells_score_label(self):
        request = build_consultation_request("dvt", 3, "high", strategy="wells")
        assert request.score_label == "Wells Score: 3"
        assert request.clinical[0].startswith("High probability of DVT (Wells Score 3 or more)")
        assert not any("Caprini" in line for line in request.clinical)

    @pytest.mark.parametrize("level", ["low", "moderate", "high"])
    def test_wells_guidance_has_no_caprini_text(self, level):
        recs = get_recommendations("dvt", None, level, DVTScoringStrategy.wells)
        assert recs.clinical
        assert recs.interventions
        assert not any("Caprini" in line for line in recs.clinical)

    def test_strategy_ignored_for_other_types(self):
        assert get_recommendations("pressure_sore", 10, "high", "wells") == get_recommendations(
            "pressure_sore", 10, "high"
        )


class TestRiskAssessmentCalculator:
    @pytest.fixture
    def calculator(self):
        return RiskAssessmentCalculator()

    @pytest.fixture
    def now(self):
        return datetime(2024, 5, 1, 9, 30, tzinfo=UTC)

    def test_score_dispatches_by_type(self, calculator):
        assert calculator.score("pressure_sore", ALL_BRADEN_MAX).score == 23
        assert calculator.score("nutritional", {"height_cm": 170, "weight_kg": 70}).score == 0

    def test_wells_strategy(self):
        calculator = RiskAssessmentCalculator(dvt_strategy="wells")
        result = calculator.score("dvt", {"previous_dvt": True})
        assert result.score == 1
        assert result.details["strategy"] == "wells"

    def test_wells_record_carries_wells_guidance_only(self, now):
        record = RiskAssessmentCalculator(dvt_strategy="wells").assess(
            AssessmentInput(patient_id="P1", assessment_type="dvt", factors={"previous_dvt": True}),
            now=now,
        )
        assert record.score == 1
        assert record.risk_level == RiskLevel.moderate
        assert record.interpretation.startswith("Moderate probability of DVT")
        assert record.recommendations[0] == "Moderate probability of DVT (Wells Score 1-2)"
        assert not any("Caprini" in line for line in record.recommendations)
        assert [item.description for item in record.action_plan] == [
            "D-dimer testing",
            "Compression stockings 15-20mmHg or IPC",
            "Daily risk reassessment",
        ]

    def test_record_keeps_score_components(self, calculator, now):
        record = calculator.assess(
            AssessmentInput(patient_id="P1", assessment_type="pressure_sore", factors=ALL_BRADEN_MAX),
            now=now,
        )
        assert record.score_components == ALL_BRADEN_MAX
        assert record.strategy is None

    def test_unknown_strategy_rejected(self):
        with pytest.raises(AssessmentValidationError):
            RiskAssessmentCalculator(dvt_strategy="padua")

    def test_assess_builds_record(self, calculator, now):
        record = calculator.assess(
            AssessmentInput(
                patient_id="P001",
                assessment_type="dvt",
                factors={"malignancy": True, "personal_history_vte": True},
            ),
            now=now,
        )
        assert record.score == 5
        assert record.risk_level == RiskLevel.high
        assert record.strategy == DVTScoringStrategy.caprini
        assert record.status.value == "active"
        assert record.next_assessment_due == now + timedelta(days=7)
        assert record.meal_plan is None
        assert [item.description for item in record.action_plan] == get_recommendations(
            "dvt", 5, "high"
        ).interventions
        assert all(item.priority.value == "medium" for item in record.action_plan)
        assert record.risk_factors["malignancy"] is True

    def test_assess_high_nutrition_attaches_meal_plan(self, calculator, now):
        record = calculator.assess(
            AssessmentInput(
                patient_id="P002",
                assessment_type="nutritional",
                factors={
                    "height_cm": 170,
                    "weight_kg": 50,
                    "weight_loss_percentage": 12,
                    "acute_disease_effect": True,
                },
            ),
            now=now,
        )
        assert record.risk_level == RiskLevel.high
        assert record.meal_plan is not None
        assert len(record.meal_plan.days) == 7

    def test_assess_can_skip_meal_plan(self, calculator, now):
        record = calculator.assess(
            AssessmentInput(
                patient_id="P002",
                assessment_type="nutritional",
                factors={"height_cm": 170, "weight_kg": 50, "weight_loss_percentage": 12},
            ),
            now=now,
            include_meal_plan=False,
        )
        assert record.meal_plan is None

    def test_severity_policy(self, now):
        calculator = RiskAssessmentCalculator(priority_policy="severity")
        record = calculator.assess(
            AssessmentInput(patient_id="P003", assessment_type="pressure_sore", factors=ALL_BRADEN_MIN),
            now=now,
        )
        assert {item.priority.value for item in record.action_plan} == {"urgent"}

    def test_identical_inputs_identical_scores(self, calculator):
        factors = {"age_61_74": True, "varicose_veins": True}
        results = calculator.score_batch("dvt", [factors, factors])
        assert results[0] == results[1]


class TestTableLoader:
    def test_menus_have_expected_sizes(self):
        menus = load_meal_menus()
        assert len(menus["breakfast"]["diabetes"]) == 4
        assert len(menus["lunch"]["hypertension"]) == 4
        assert len(menus["dinner"]["renal"]) == 6
        assert len(menus["dinner"]["normal"]) == 6

    def test_cached_tables_are_read_only(self):
        weights = load_dvt_weights("caprini")
        with pytest.raises(TypeError):
            weights["malignancy"] = 99

    def test_clear_cache_reloads(self):
        first = load_dvt_weights("caprini")
        clear_cache()
        second = load_dvt_weights("caprini")
        assert first is not second
        assert dict(first) == dict(second)

    def test_unknown_strategy_has_no_weights(self):
        with pytest.raises(ValueError):
            load_dvt_weights("padua")
