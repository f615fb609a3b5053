"""
DuplicateDetectionRule - heuristic duplicate/test submission marker.
"""

from typing import Any

from impact_intake.core.models.validation_result import ValidationResult

from .base_validator import BaseRule, RuleContext

DEFAULT_DUPLICATE_MARKER = "test"


class DuplicateDetectionRule(BaseRule):
    """
    Warns when content contains a known marker string.

    This is a placeholder heuristic; it never produces errors.
    """

    rule_id = "duplicate_detection"
    name = "Duplicate Detection"
    description = "Detects potential duplicate submissions"
    severity = "warning"
    confidence = 0.80

    def __init__(
        self,
        active: bool = True,
        submission_types: list[str] | None = None,
        marker: str = DEFAULT_DUPLICATE_MARKER,
    ):
        super().__init__(active, submission_types)
        if not marker:
            raise ValueError("DuplicateDetectionRule requires a non-empty marker")
        self.marker = marker

    def evaluate(self, data: dict[str, Any], context: RuleContext) -> ValidationResult:
        content = data.get("content")
        warnings = []
        if isinstance(content, str) and self.marker in content:
            warnings.append(
                self.make_warning(
                    context,
                    "content",
                    "potential_duplicate",
                    suggestion="Check recent submissions for duplicates",
                )
            )
        return self.result(warnings=warnings)
