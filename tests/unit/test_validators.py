"""
Unit tests for validation rules.

Includes property-based testing with hypothesis for the survivor count rule.
"""

from datetime import datetime, timezone

import pytest
from hypothesis import given
from hypothesis import strategies as st

from impact_intake.core.models import ValidationResult
from impact_intake.core.validators import (
    CharacterLimitRule,
    CustomRule,
    DataConsistencyRule,
    DateRangeRule,
    DuplicateDetectionRule,
    RequiredFieldsRule,
    RuleContext,
    SurvivorCountRule,
)
from impact_intake.core.validators.messages import get_message, supported_locales
from impact_intake.core.validators.survivor_count_validator import coerce_count

NOW = datetime(2025, 9, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def context():
    return RuleContext(locale="en", now=NOW)


class TestRequiredFieldsRule:
    """Tests for RequiredFieldsRule"""

    def test_all_present_passes(self, context):
        data = {"content": "Report", "privacy_level": "ally", "partner_id": "p1"}
        result = RequiredFieldsRule().evaluate(data, context)
        assert result.is_valid
        assert result.confidence == 1.0

    def test_empty_content_fails(self, context):
        """Test empty content yields a non-overridable required_field error"""
        data = {"content": "", "privacy_level": "ally", "partner_id": "p1"}
        result = RequiredFieldsRule().evaluate(data, context)

        assert not result.is_valid
        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.field == "content"
        assert error.code == "required_field"
        assert error.severity == "high"
        assert error.can_override is False

    def test_whitespace_only_fails(self, context):
        data = {"content": "   ", "privacy_level": "ally", "partner_id": "p1"}
        assert not RequiredFieldsRule().evaluate(data, context).is_valid

    @pytest.mark.parametrize("partner_id", [0, 0.0, False, [], {}])
    def test_falsy_values_count_as_missing(self, context, partner_id):
        data = {"content": "Report", "privacy_level": "ally", "partner_id": partner_id}
        result = RequiredFieldsRule().evaluate(data, context)
        assert [e.field for e in result.errors] == ["partner_id"]

    @pytest.mark.parametrize("partner_id", [7, True, ["p1"]])
    def test_non_string_values_present(self, context, partner_id):
        data = {"content": "Report", "privacy_level": "ally", "partner_id": partner_id}
        assert RequiredFieldsRule().evaluate(data, context).is_valid

    def test_each_missing_field_reported(self, context):
        result = RequiredFieldsRule().evaluate({}, context)
        assert [e.field for e in result.errors] == ["content", "privacy_level", "partner_id"]

    @given(st.text(min_size=1).filter(lambda s: s.strip() != ""))
    def test_property_any_nonblank_content_passes(self, value):
        """Property test: any non-blank content satisfies the content requirement"""
        data = {"content": value, "privacy_level": "ally", "partner_id": "p1"}
        assert RequiredFieldsRule().evaluate(data, RuleContext(now=NOW)).is_valid


class TestSurvivorCountRule:
    """Tests for SurvivorCountRule"""

    def test_matching_counts_pass(self, context):
        data = {"new_survivors": 3, "existing_survivors": 5, "total_survivors": 8}
        result = SurvivorCountRule().evaluate(data, context)
        assert result.is_valid
        assert result.confidence == 0.95

    def test_mismatch_suggests_expected_total(self, context):
        """Test 3 + 5 != 9 reports the expected total of 8"""
        data = {"new_survivors": 3, "existing_survivors": 5, "total_survivors": 9}
        result = SurvivorCountRule().evaluate(data, context)

        assert not result.is_valid
        error = result.errors[0]
        assert error.field == "total_survivors"
        assert error.code == "survivor_count_mismatch"
        assert error.severity == "high"
        assert error.can_override is True
        assert error.suggestion == "Expected total: 8"

    def test_skipped_when_a_counter_is_missing(self, context):
        data = {"new_survivors": 3, "total_survivors": 9}
        assert SurvivorCountRule().evaluate(data, context).is_valid

    def test_large_new_count_warns(self, context):
        data = {"new_survivors": 101, "existing_survivors": 0, "total_survivors": 101}
        result = SurvivorCountRule().evaluate(data, context)

        assert result.is_valid
        assert [w.code for w in result.warnings] == ["large_survivor_count"]

    def test_exactly_one_hundred_does_not_warn(self, context):
        data = {"new_survivors": 100, "existing_survivors": 0, "total_survivors": 100}
        assert SurvivorCountRule().evaluate(data, context).warnings == []

    def test_non_numeric_counts_coerced_to_zero(self, context):
        data = {"new_survivors": "three", "existing_survivors": "5", "total_survivors": 5}
        assert SurvivorCountRule().evaluate(data, context).is_valid

    @pytest.mark.parametrize("value,expected", [
        (None, 0),
        ("12", 12),
        ("4.5", 4.5),
        ("twelve", 0),
        (True, 0),
        (7, 7),
    ])
    def test_coerce_count(self, value, expected):
        assert coerce_count(value) == expected

    @given(
        st.integers(min_value=0, max_value=10_000),
        st.integers(min_value=0, max_value=10_000),
        st.integers(min_value=0, max_value=20_000),
    )
    def test_property_mismatch_iff_sum_differs(self, new, existing, total):
        """Property test: an error is reported exactly when new + existing != total"""
        data = {"new_survivors": new, "existing_survivors": existing, "total_survivors": total}
        result = SurvivorCountRule().evaluate(data, RuleContext(now=NOW))

        mismatch = [e for e in result.errors if e.code == "survivor_count_mismatch"]
        assert bool(mismatch) == (new + existing != total)
        if mismatch:
            assert mismatch[0].suggestion == f"Expected total: {new + existing}"


class TestDateRangeRule:
    """Tests for DateRangeRule"""

    def test_past_dates_pass(self, context):
        data = {"report_date": "2025-08-31", "incident_date": "2025-08-30T10:00:00Z"}
        result = DateRangeRule().evaluate(data, context)
        assert result.is_valid
        assert result.confidence == 0.98

    def test_future_report_date_fails(self, context):
        result = DateRangeRule().evaluate({"report_date": "2025-09-02"}, context)

        assert not result.is_valid
        error = result.errors[0]
        assert error.code == "future_date"
        assert error.field == "report_date"
        assert error.severity == "medium"
        assert error.can_override is True

    def test_future_created_at_fails(self, context):
        data = {"created_at": datetime(2025, 9, 1, 12, 0, 1, tzinfo=timezone.utc)}
        assert not DateRangeRule().evaluate(data, context).is_valid

    def test_now_is_not_future(self, context):
        assert DateRangeRule().evaluate({"created_at": NOW}, context).is_valid

    def test_end_before_start_fails(self, context):
        data = {"start_date": "2025-08-10", "end_date": "2025-08-01"}
        result = DateRangeRule().evaluate(data, context)

        error = result.errors[0]
        assert error.code == "date_sequence_error"
        assert error.field == "end_date"
        assert error.severity == "high"
        assert error.can_override is False

    def test_equal_start_and_end_fails(self, context):
        data = {"start_date": "2025-08-10", "end_date": "2025-08-10"}
        assert not DateRangeRule().evaluate(data, context).is_valid

    @pytest.mark.parametrize("bad", ["not a date", "31/08/2025", "2025-13-45", 12345])
    def test_unparseable_dates_are_skipped(self, context, bad):
        """Test unparseable values neither raise nor fail the comparison"""
        data = {"report_date": bad, "start_date": bad, "end_date": "2025-08-01"}
        assert DateRangeRule().evaluate(data, context).is_valid


class TestCharacterLimitRule:
    """Tests for CharacterLimitRule"""

    def test_title_at_limit_passes(self, context):
        result = CharacterLimitRule().evaluate({"title": "a" * 200}, context)
        assert result.is_valid

    def test_title_over_limit_fails(self, context):
        result = CharacterLimitRule().evaluate({"title": "a" * 201}, context)

        assert not result.is_valid
        error = result.errors[0]
        assert error.code == "character_limit_exceeded"
        assert error.severity == "medium"
        assert error.can_override is True
        assert error.suggestion == "Current: 201, Max: 200"

    def test_title_near_limit_warns(self, context):
        """Test 181 characters (over 90% of 200) produces a warning only"""
        result = CharacterLimitRule().evaluate({"title": "a" * 181}, context)

        assert result.is_valid
        assert [w.code for w in result.warnings] == ["approaching_character_limit"]
        assert "181/200" in result.warnings[0].message

    def test_exactly_ninety_percent_does_not_warn(self, context):
        assert CharacterLimitRule().evaluate({"title": "a" * 180}, context).warnings == []

    def test_custom_limits(self, context):
        rule = CharacterLimitRule(limits={"location": 10})
        assert not rule.evaluate({"location": "x" * 11}, context).is_valid

    def test_invalid_limit_rejected(self):
        with pytest.raises(ValueError):
            CharacterLimitRule(limits={"title": 0})

    def test_non_string_values_ignored(self, context):
        assert CharacterLimitRule().evaluate({"title": 12345, "notes": None}, context).is_valid


class TestDataConsistencyRule:
    """Tests for DataConsistencyRule"""

    def test_repeated_characters_warn(self, context):
        result = DataConsistencyRule().evaluate({"content": "Report aaaaaaaaaaa done"}, context)

        assert result.is_valid
        assert [w.code for w in result.warnings] == ["suspicious_data"]
        assert result.confidence == 0.85

    def test_ten_repeats_do_not_warn(self, context):
        assert DataConsistencyRule().evaluate({"content": "a" * 10}, context).warnings == []

    def test_short_crisis_report_warns(self, context):
        data = {"content": "Help now", "submission_type": "crisis_report"}
        result = DataConsistencyRule().evaluate(data, context)
        assert [w.code for w in result.warnings] == ["insufficient_detail"]

    def test_short_general_report_does_not_warn(self, context):
        data = {"content": "Fine", "submission_type": "general_report"}
        assert DataConsistencyRule().evaluate(data, context).warnings == []


class TestDuplicateDetectionRule:
    """Tests for DuplicateDetectionRule"""

    def test_marker_warns(self, context):
        result = DuplicateDetectionRule().evaluate({"content": "this is a test entry"}, context)

        assert result.is_valid
        assert [w.code for w in result.warnings] == ["potential_duplicate"]
        assert result.confidence == 0.80

    def test_custom_marker(self, context):
        rule = DuplicateDetectionRule(marker="DUPLICATE")
        assert rule.evaluate({"content": "test"}, context).warnings == []
        assert rule.evaluate({"content": "DUPLICATE of #12"}, context).warnings

    def test_empty_marker_rejected(self):
        with pytest.raises(ValueError):
            DuplicateDetectionRule(marker="")


class TestCustomRule:
    """Tests for CustomRule"""

    def test_wraps_function(self, context):
        def requires_location(data, ctx):
            errors = []
            if not data.get("location"):
                errors.append(rule.make_error(ctx, "location", "required_field", "low", can_override=True))
            return rule.result(errors)

        rule = CustomRule("location_required", requires_location, confidence=0.7)

        result = rule.evaluate({}, context)
        assert not result.is_valid
        assert result.errors[0].field == "location"
        assert rule.evaluate({"location": "Pokhara"}, context).is_valid

    def test_requires_callable(self):
        with pytest.raises(ValueError):
            CustomRule("broken", "not callable")

    def test_submission_type_scope(self):
        rule = CustomRule(
            "crisis_only",
            lambda data, ctx: ValidationResult(is_valid=True),
            submission_types=["crisis_report"],
        )
        assert rule.applies_to("crisis_report")
        assert not rule.applies_to("general_report")


class TestMessages:
    """Tests for localized messages"""

    def test_nepali_message(self):
        assert get_message("required_field", "ne") == "यो फिल्ड आवश्यक छ"

    def test_unknown_locale_falls_back_to_english(self):
        assert get_message("future_date", "fr") == "Date cannot be in the future"

    def test_missing_key_falls_back_to_english(self):
        """Test a key absent from the Khmer table uses the English text"""
        assert get_message("insufficient_detail", "km") == "Crisis reports should contain more detail"

    def test_unknown_code_returns_code(self):
        assert get_message("no_such_code", "ne") == "no_such_code"

    def test_rule_messages_follow_context_locale(self):
        data = {"content": "", "privacy_level": "ally", "partner_id": "p1"}
        result = RequiredFieldsRule().evaluate(data, RuleContext(locale="km", now=NOW))

        assert result.errors[0].message == "វាលនេះត្រូវបានទាមទារ"
        assert result.errors[0].locale == "km"

    def test_supported_locales(self):
        assert supported_locales() == ["en", "km", "ne"]
