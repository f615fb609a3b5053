"""
DateRangeRule - rejects future dates and inverted date ranges.
"""

from typing import Any

from impact_intake.core.models.validation_result import ValidationResult
from impact_intake.utils.timeutils import parse_datetime

from .base_validator import BaseRule, RuleContext

DEFAULT_DATE_FIELDS = ("report_date", "incident_date", "created_at")


class DateRangeRule(BaseRule):
    """
    Validates date fields against the evaluation time and each other.

    - report_date, incident_date and created_at must not be after now
      (medium severity, overridable)
    - end_date must be strictly after start_date when both are set
      (high severity, not overridable)

    Unparseable dates are skipped: a comparison involving them never fails.
    """

    rule_id = "date_range"
    name = "Date Range Validation"
    description = "Validates date ranges and sequences"
    severity = "error"
    confidence = 0.98

    def __init__(
        self,
        active: bool = True,
        submission_types: list[str] | None = None,
        date_fields: list[str] | tuple[str, ...] = DEFAULT_DATE_FIELDS,
    ):
        super().__init__(active, submission_types)
        self.date_fields = tuple(date_fields)

    def evaluate(self, data: dict[str, Any], context: RuleContext) -> ValidationResult:
        errors = []

        for field in self.date_fields:
            value = parse_datetime(data.get(field))
            if value is not None and value > context.now:
                errors.append(
                    self.make_error(context, field, "future_date", "medium", can_override=True)
                )

        start = parse_datetime(data.get("start_date"))
        end = parse_datetime(data.get("end_date"))
        if start is not None and end is not None and end <= start:
            errors.append(
                self.make_error(context, "end_date", "date_sequence_error", "high", can_override=False)
            )

        return self.result(errors)
