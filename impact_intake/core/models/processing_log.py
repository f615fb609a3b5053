"""
ProcessingLogEntry model: one row of a submission's audit trail.
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from impact_intake.utils.timeutils import utcnow

StepStatus = Literal["started", "completed", "failed"]


class ProcessingLogEntry(BaseModel):
    """
    Immutable record of one processing step outcome.

    Attributes:
        timestamp: When the entry was written
        step: Pipeline step name ("validation", "transcription", ...)
        status: "started", "completed" or "failed"
        message: Optional message; exception text for failures
        duration_ms: Step duration in milliseconds (completed/failed only)
        details: Step-specific data (confidence, retry_count, next_retry_at)
    """

    model_config = ConfigDict(
        frozen=True,
        json_schema_extra={
            "example": {
                "timestamp": "2025-08-31T19:30:21Z",
                "step": "transcription",
                "status": "failed",
                "message": "Unsupported audio format",
                "duration_ms": 412.5,
                "details": {"retry_count": 1, "next_retry_at": "2025-08-31T19:30:22Z"},
            }
        },
    )

    timestamp: datetime = Field(default_factory=utcnow)
    step: str = Field(..., min_length=1)
    status: StepStatus
    message: str | None = None
    duration_ms: float | None = Field(None, ge=0.0)
    details: dict[str, Any] = Field(default_factory=dict)
