"""
SurvivorCountRule - reconciles new, existing and total survivor counts.
"""

from typing import Any

from impact_intake.core.models.validation_result import ValidationResult

from .base_validator import BaseRule, RuleContext

LARGE_NEW_SURVIVOR_COUNT = 100


def coerce_count(value: Any) -> int | float:
    """
    Numeric value of a survivor counter; absent or non-numeric values count as 0.

    Examples:
        >>> coerce_count("12")
        12
        >>> coerce_count("twelve")
        0
        >>> coerce_count(None)
        0
    """
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            return 0
    return 0


class SurvivorCountRule(BaseRule):
    """
    Checks new_survivors + existing_survivors == total_survivors.

    The rule only applies when all three counters are present. A mismatch is
    an overridable high-severity error on total_survivors whose suggestion
    carries the expected total. More than 100 new survivors adds a warning.
    """

    rule_id = "survivor_count_logic"
    name = "Survivor Count Logic"
    description = "Validates survivor count mathematics"
    severity = "error"
    confidence = 0.95

    def evaluate(self, data: dict[str, Any], context: RuleContext) -> ValidationResult:
        fields = ("new_survivors", "existing_survivors", "total_survivors")
        if any(data.get(field) is None for field in fields):
            return self.result()

        new_count = coerce_count(data.get("new_survivors"))
        existing_count = coerce_count(data.get("existing_survivors"))
        total_count = coerce_count(data.get("total_survivors"))

        errors = []
        warnings = []

        expected_total = new_count + existing_count
        if expected_total != total_count:
            errors.append(
                self.make_error(
                    context,
                    "total_survivors",
                    "survivor_count_mismatch",
                    "high",
                    can_override=True,
                    suggestion=f"Expected total: {expected_total}",
                )
            )

        if new_count > LARGE_NEW_SURVIVOR_COUNT:
            warnings.append(
                self.make_warning(
                    context,
                    "new_survivors",
                    "large_survivor_count",
                    suggestion="Double-check the count for accuracy",
                )
            )

        return self.result(errors, warnings)
