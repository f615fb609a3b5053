"""
ValidationOverride model: a time-boxed waiver for one error code.
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from impact_intake.utils.timeutils import ensure_aware, utcnow


class ValidationOverride(BaseModel):
    """
    Suppresses a validation error code until it expires.

    Attributes:
        error_code: Error code being waived (e.g. "survivor_count_mismatch")
        reason: Justification for the waiver
        authorized_by: Identity that authorized the override
        timestamp: When the override was issued
        expires_at: Optional expiry; the override stops applying after it
    """

    error_code: str = Field(..., min_length=1)
    reason: str = Field(..., min_length=1)
    authorized_by: str = Field(..., min_length=1)
    timestamp: datetime = Field(default_factory=utcnow)
    expires_at: datetime | None = None

    @field_validator("timestamp", "expires_at")
    @classmethod
    def make_aware(cls, v):
        return ensure_aware(v) if v is not None else v

    def is_active(self, now: datetime) -> bool:
        """An override without expiry never lapses."""
        if self.expires_at is None:
            return True
        return not self.expires_at < ensure_aware(now)

    class Config:
        json_schema_extra = {
            "example": {
                "error_code": "survivor_count_mismatch",
                "reason": "Counts reconciled by phone with the shelter coordinator",
                "authorized_by": "hq-reviewer@example.org",
                "expires_at": "2025-09-30T00:00:00Z",
            }
        }
