"""
DataConsistencyRule - flags suspicious content patterns.
"""

import re
from typing import Any

from impact_intake.core.models.validation_result import ValidationResult

from .base_validator import BaseRule, RuleContext

# Any character followed by ten or more repeats of itself
REPEATED_CHARACTER = re.compile(r"(.)\1{10,}", re.DOTALL)
MIN_CRISIS_REPORT_LENGTH = 10


class DataConsistencyRule(BaseRule):
    """Warning-only checks for test data and under-described crisis reports."""

    rule_id = "data_consistency"
    name = "Data Consistency"
    description = "Checks for data consistency and suspicious patterns"
    severity = "warning"
    confidence = 0.85

    def evaluate(self, data: dict[str, Any], context: RuleContext) -> ValidationResult:
        warnings = []
        content = data.get("content")

        if isinstance(content, str) and content:
            lowered = content.lower()

            if REPEATED_CHARACTER.search(lowered):
                warnings.append(
                    self.make_warning(
                        context,
                        "content",
                        "suspicious_data",
                        suggestion="Check for repeated characters or test data",
                    )
                )

            if len(lowered) < MIN_CRISIS_REPORT_LENGTH and data.get("submission_type") == "crisis_report":
                warnings.append(
                    self.make_warning(
                        context,
                        "content",
                        "insufficient_detail",
                        suggestion="Please provide more comprehensive information",
                    )
                )

        return self.result(warnings=warnings)
