"""
Submission model: the unit of work flowing through the pipeline.
"""

import uuid
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field

from impact_intake.core.models.processing_log import ProcessingLogEntry
from impact_intake.utils.timeutils import utcnow

SubmissionType = Literal[
    "general_report",
    "crisis_report",
    "survivor_report",
    "monthly_summary",
    "story_submission",
    "financial_report",
]
PrivacyLevel = Literal["internal", "ally", "donor", "public"]
UrgencyLevel = Literal["low", "medium", "high", "critical"]
ProcessingStatus = Literal["pending", "processing", "completed", "failed", "retry"]

# Internal bookkeeping that validation rules never look at
_NON_VALIDATED_FIELDS = {
    "processing_log",
    "validation_result",
    "ai_analysis",
    "processing_status",
    "retry_count",
    "next_retry_at",
}


class Submission(BaseModel):
    """
    One field report (text, voice or photo) and its processing state.

    Created in "pending" state at intake. Afterwards only the processing
    pipeline changes its status, log and enrichment fields.

    Attributes:
        id: Unique identifier
        partner_id: Submitting partner
        content: Free-text report body
        audio_url: Reference to a voice recording, transcribed during processing
        image_urls: References to attached photos
        submission_type: Report classification
        privacy_level: Downstream visibility tier
        urgency_level: Submitter-declared urgency
        new_survivors / existing_survivors / total_survivors: Survivor counters
        processing_status: Position in the processing state machine
        retry_count: Failed processing attempts so far
        next_retry_at: Earliest time the next attempt may run
        transcribed_content / translated_content: Enrichment outputs
        crisis_flag: Set when crisis keywords are detected
        processing_log: Append-only audit trail of processing steps
    """

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), min_length=1)
    partner_id: str | None = None

    content: str | None = None
    audio_url: str | None = None
    image_urls: list[str] = Field(default_factory=list)
    title: str | None = None
    description: str | None = None
    notes: str | None = None
    location: str | None = None
    tags: list[str] = Field(default_factory=list)

    submission_type: SubmissionType = "general_report"
    privacy_level: PrivacyLevel | None = None
    urgency_level: UrgencyLevel = "low"

    new_survivors: int | None = Field(None, ge=0)
    existing_survivors: int | None = Field(None, ge=0)
    total_survivors: int | None = Field(None, ge=0)

    report_date: str | None = None
    incident_date: str | None = None
    start_date: str | None = None
    end_date: str | None = None

    processing_status: ProcessingStatus = "pending"
    retry_count: int = Field(0, ge=0)
    next_retry_at: datetime | None = None

    transcribed_content: str | None = None
    transcription_confidence: float | None = Field(None, ge=0.0, le=1.0)
    translated_content: str | None = None
    original_language: str | None = None
    translation_confidence: float | None = Field(None, ge=0.0, le=1.0)
    sentiment_score: float | None = None
    ai_analysis: dict[str, Any] = Field(default_factory=dict)
    validation_confidence: float | None = Field(None, ge=0.0, le=1.0)
    validation_result: dict[str, Any] | None = None
    crisis_flag: bool = False

    processing_log: list[ProcessingLogEntry] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    processed_at: datetime | None = None

    def to_validation_payload(self) -> dict[str, Any]:
        """Field-keyed view of the submission as seen by validation rules."""
        return self.model_dump(exclude=_NON_VALIDATED_FIELDS)

    @property
    def is_terminal(self) -> bool:
        return self.processing_status in ("completed", "failed")

    class Config:
        json_schema_extra = {
            "example": {
                "partner_id": "3f8a1c52-5d0e-4b7a-9a51-0e2f6c1d7a10",
                "content": "Two new girls arrived at the shelter this week.",
                "submission_type": "survivor_report",
                "privacy_level": "ally",
                "urgency_level": "medium",
                "new_survivors": 2,
                "existing_survivors": 14,
                "total_survivors": 16,
                "report_date": "2025-08-31",
            }
        }
