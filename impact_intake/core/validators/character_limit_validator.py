"""
CharacterLimitRule - enforces per-field text length caps.
"""

from typing import Any

from impact_intake.core.models.validation_result import ValidationResult

from .base_validator import BaseRule, RuleContext

DEFAULT_CHARACTER_LIMITS = {
    "content": 10000,
    "title": 200,
    "description": 1000,
    "notes": 5000,
}
WARNING_RATIO = 0.9


class CharacterLimitRule(BaseRule):
    """
    Validates text fields against fixed caps.

    - Longer than the cap: overridable medium-severity error
    - Longer than 90% of the cap: warning only

    Parameters:
    - limits: Mapping of field name to maximum length
    """

    rule_id = "character_limits"
    name = "Character Limits"
    description = "Validates text field character limits"
    severity = "warning"
    confidence = 1.0

    def __init__(
        self,
        active: bool = True,
        submission_types: list[str] | None = None,
        limits: dict[str, int] | None = None,
    ):
        super().__init__(active, submission_types)
        self.limits = dict(limits if limits is not None else DEFAULT_CHARACTER_LIMITS)
        for field, limit in self.limits.items():
            if not isinstance(limit, int) or limit <= 0:
                raise ValueError(f"Character limit for '{field}' must be a positive integer, got {limit!r}")

    def evaluate(self, data: dict[str, Any], context: RuleContext) -> ValidationResult:
        errors = []
        warnings = []

        for field, limit in self.limits.items():
            value = data.get(field)
            if not isinstance(value, str) or not value:
                continue

            length = len(value)
            if length > limit:
                errors.append(
                    self.make_error(
                        context,
                        field,
                        "character_limit_exceeded",
                        "medium",
                        can_override=True,
                        suggestion=f"Current: {length}, Max: {limit}",
                    )
                )
            elif length > limit * WARNING_RATIO:
                warnings.append(
                    self.make_warning(
                        context,
                        field,
                        "approaching_character_limit",
                        suggestion="Consider shortening the text",
                        length=length,
                        limit=limit,
                    )
                )

        return self.result(errors, warnings)
