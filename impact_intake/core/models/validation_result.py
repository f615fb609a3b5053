"""
ValidationResult model: outcome of one rule or of a whole engine run.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from impact_intake.utils.timeutils import utcnow

ErrorSeverity = Literal["critical", "high", "medium", "low"]


class ValidationError(BaseModel):
    """
    A field-scoped validation failure.

    Attributes:
        field: Field the error refers to
        code: Machine-readable error code (e.g. "survivor_count_mismatch")
        message: Localized human-readable message
        severity: "critical", "high", "medium" or "low"
        suggestion: Optional hint for fixing the value
        can_override: Whether an override may waive this error
        locale: Locale the message was rendered in
    """

    field: str
    code: str
    message: str
    severity: ErrorSeverity
    suggestion: str | None = None
    can_override: bool = False
    locale: str | None = None


class ValidationWarning(BaseModel):
    """A non-blocking validation finding."""

    field: str
    code: str
    message: str
    suggestion: str | None = None
    locale: str | None = None


class ValidationResult(BaseModel):
    """
    Outcome of validating submission data.

    Attributes:
        is_valid: True when no (non-overridden) errors remain
        errors: Errors that block the submission
        warnings: Non-blocking findings; never affect is_valid
        confidence: Confidence in the result (0.0-1.0)
        timestamp: When validation ran
        overridden_errors: Errors suppressed by an active override, kept for audit
    """

    is_valid: bool
    errors: list[ValidationError] = Field(default_factory=list)
    warnings: list[ValidationWarning] = Field(default_factory=list)
    confidence: float = Field(1.0, ge=0.0, le=1.0)
    timestamp: datetime = Field(default_factory=utcnow)
    overridden_errors: list[ValidationError] = Field(default_factory=list)

    @classmethod
    def from_findings(
        cls,
        errors: list[ValidationError],
        warnings: list[ValidationWarning],
        confidence: float,
    ) -> "ValidationResult":
        """Build a rule-level result; validity follows from the error list."""
        return cls(
            is_valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
            confidence=confidence,
        )

    def error_codes(self) -> set[str]:
        return {error.code for error in self.errors}

    class Config:
        json_schema_extra = {
            "example": {
                "is_valid": False,
                "errors": [
                    {
                        "field": "total_survivors",
                        "code": "survivor_count_mismatch",
                        "message": "New survivors + existing survivors must equal total survivors",
                        "severity": "high",
                        "suggestion": "Expected total: 8",
                        "can_override": True,
                    }
                ],
                "warnings": [],
                "confidence": 0.96,
            }
        }
