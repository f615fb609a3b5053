"""
RequiredFieldsRule - ensures mandatory submission fields are present and not blank.
"""

from typing import Any

from impact_intake.core.models.validation_result import ValidationResult

from .base_validator import BaseRule, RuleContext

DEFAULT_REQUIRED_FIELDS = ("content", "privacy_level", "partner_id")


class RequiredFieldsRule(BaseRule):
    """
    Fails for each required field that is missing, None, empty, whitespace-only,
    zero or False.

    Errors are high severity and cannot be overridden.
    """

    rule_id = "required_fields"
    name = "Required Fields"
    description = "Validates that all required fields are present"
    severity = "error"
    confidence = 1.0

    def __init__(
        self,
        active: bool = True,
        submission_types: list[str] | None = None,
        required_fields: list[str] | tuple[str, ...] = DEFAULT_REQUIRED_FIELDS,
    ):
        super().__init__(active, submission_types)
        self.required_fields = tuple(required_fields)

    def evaluate(self, data: dict[str, Any], context: RuleContext) -> ValidationResult:
        errors = []
        for field in self.required_fields:
            if _is_blank(data.get(field)):
                errors.append(
                    self.make_error(context, field, "required_field", "high", can_override=False)
                )
        return self.result(errors)


def _is_blank(value: Any) -> bool:
    # Zero and False count as missing, like any other falsy scalar
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    if isinstance(value, (bool, int, float)):
        return not value
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) == 0
    return False
