"""
AnalyticsEvent model: one entry of the submission analytics trail.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from impact_intake.utils.timeutils import utcnow


class AnalyticsEvent(BaseModel):
    """
    A pipeline event recorded for dashboards and reporting.

    Attributes:
        submission_id: Submission the event belongs to ("bulk_operation" for bulk updates)
        event_type: Event name ("submission_created", "crisis_detected", ...)
        event_data: Structured payload
        timestamp: When the event happened
    """

    submission_id: str
    event_type: str = Field(..., min_length=1)
    event_data: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)
