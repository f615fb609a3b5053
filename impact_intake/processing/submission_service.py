"""
Submission service: intake, lookup, listing, bulk updates, retry release
and recovery of submissions stuck in processing.
"""

from datetime import datetime, timedelta
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from impact_intake.core.errors import InvalidTransitionError, SubmissionNotFoundError, SubmissionRejectedError
from impact_intake.core.models import Submission
from impact_intake.core.rules.validation_engine import ValidationEngine
from impact_intake.observability import metrics
from impact_intake.observability.logger import get_logger
from impact_intake.processing.pipeline import ProcessingOutcome, SubmissionPipeline
from impact_intake.processing.state import check_transition
from impact_intake.utils.timeutils import Clock, utcnow
from impact_intake.utils.validation import (
    InputValidationError,
    validate_page,
    validate_submission_id,
    validate_submission_ids,
)
from impact_intake.warehouse.repository import SubmissionFilter, SubmissionPage

logger = get_logger(__name__)

# Fields a bulk update may change; processing state belongs to the pipeline
BULK_UPDATABLE_FIELDS = frozenset({
    "privacy_level",
    "urgency_level",
    "submission_type",
    "tags",
    "title",
    "notes",
    "location",
})

# Intake payloads cannot preset processing state
_SERVER_MANAGED_FIELDS = (
    "processing_status",
    "retry_count",
    "next_retry_at",
    "processing_log",
    "validation_result",
    "validation_confidence",
    "processed_at",
    "created_at",
    "updated_at",
)


class SubmissionService:
    """
    Front door for submissions.

    create_submission validates before storing; invalid submissions are
    rejected and never persisted.
    """

    def __init__(
        self,
        engine: ValidationEngine,
        repository,
        analytics,
        pipeline: SubmissionPipeline | None = None,
        clock: Clock = utcnow,
    ):
        self.engine = engine
        self.repository = repository
        self.analytics = analytics
        self.pipeline = pipeline
        self.clock = clock

    def create_submission(self, data: dict[str, Any], locale: str | None = None) -> Submission:
        """
        Validate and store a new submission in "pending" state.

        Args:
            data: Field-keyed submission payload
            locale: Locale for validation messages

        Returns:
            The stored submission

        Raises:
            SubmissionRejectedError: If validation finds blocking errors
            InputValidationError: If the payload cannot be turned into a submission
        """
        payload = {k: v for k, v in data.items() if k not in _SERVER_MANAGED_FIELDS}
        submission_type = payload.get("submission_type") or "general_report"

        result = self.engine.validate(payload, locale=locale)
        metrics.record_validation_result(result)
        if not result.is_valid:
            metrics.increment_counter(metrics.submissions_rejected_total, submission_type=submission_type)
            logger.info(
                "Submission rejected",
                extra={"error_codes": sorted(result.error_codes()), "submission_type": submission_type},
            )
            raise SubmissionRejectedError(result)

        now = self.clock()
        try:
            submission = Submission.model_validate({
                **payload,
                "processing_status": "pending",
                "validation_result": result.model_dump(mode="json"),
                "validation_confidence": result.confidence,
                "created_at": now,
                "updated_at": now,
            })
        except PydanticValidationError as e:
            raise InputValidationError(f"Invalid submission payload: {e}") from e

        stored = self.repository.create(submission)
        metrics.increment_counter(metrics.submissions_created_total, submission_type=stored.submission_type)
        logger.info(
            "Submission created",
            extra={"submission_id": stored.id, "submission_type": stored.submission_type},
        )
        self._emit(stored.id, "submission_created", {
            "submission_type": stored.submission_type,
            "privacy_level": stored.privacy_level,
            "has_audio": bool(stored.audio_url),
            "image_count": len(stored.image_urls),
            "validation_confidence": result.confidence,
            "warning_count": len(result.warnings),
        })
        return stored

    def get_submission(self, submission_id: str) -> Submission:
        submission_id = validate_submission_id(submission_id)
        submission = self.repository.get(submission_id)
        if submission is None:
            raise SubmissionNotFoundError(submission_id)
        return submission

    def list_submissions(
        self,
        filters: SubmissionFilter | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> SubmissionPage:
        page, page_size = validate_page(page, page_size)
        return self.repository.list(filters or SubmissionFilter(), page, page_size)

    def bulk_update(self, submission_ids: list[str], updates: dict[str, Any]) -> int:
        """
        Apply the same field updates to many submissions.

        Returns:
            Number of submissions updated; unknown ids are skipped

        Raises:
            InputValidationError: If ids are malformed or a field may not be bulk updated
        """
        submission_ids = validate_submission_ids(submission_ids)
        if not updates:
            raise InputValidationError("No updates given")
        forbidden = set(updates) - BULK_UPDATABLE_FIELDS
        if forbidden:
            raise InputValidationError(f"Fields cannot be bulk updated: {sorted(forbidden)}")

        updated = self.repository.bulk_update(submission_ids, updates)
        logger.info("Bulk update applied", extra={"requested": len(submission_ids), "updated": updated})
        self._emit("bulk_operation", "bulk_update", {
            "submission_ids": submission_ids,
            "updates": sorted(updates),
            "updated": updated,
        })
        return updated

    def release_due_retries(self, now: datetime | None = None, limit: int = 100) -> list[Submission]:
        """
        Move submissions whose retry time has come from "retry" back to "pending".

        A submission another worker released first is skipped.

        Returns:
            The released submissions, ready to be processed again
        """
        now = now or self.clock()
        released = []
        for submission in self.repository.due_for_retry(now, limit):
            status = check_transition(submission.id, submission.processing_status, "pending")
            try:
                released.append(self.repository.transition(submission.id, "retry", status))
            except InvalidTransitionError as e:
                logger.debug(str(e), extra={"submission_id": submission.id})

        if released:
            logger.info("Released due retries", extra={"count": len(released)})
        return released

    def reclaim_stale(self, now: datetime | None = None, limit: int = 100) -> list[ProcessingOutcome]:
        """
        Schedule retries for submissions stuck in "processing" past the processing lease.

        Returns:
            Outcomes of the reclaimed submissions
        """
        pipeline = self._require_pipeline()
        now = now or self.clock()
        cutoff = now - timedelta(seconds=pipeline.config.processing_lease_seconds)
        stale = self.repository.list(
            SubmissionFilter(statuses=["processing"], updated_before=cutoff), page=1, page_size=limit
        )

        outcomes = []
        for submission in stale.submissions:
            try:
                outcomes.append(pipeline.process(submission.id))
            except InvalidTransitionError as e:
                # Picked up or finished by another worker in the meantime
                logger.debug(str(e), extra={"submission_id": submission.id})

        if outcomes:
            logger.warning("Reclaimed stale submissions", extra={"count": len(outcomes)})
        return outcomes

    def process_due(self, limit: int = 100) -> list[ProcessingOutcome]:
        """Reclaim stale submissions, then release due retries and run the pipeline on each of them."""
        pipeline = self._require_pipeline()
        outcomes = self.reclaim_stale(limit=limit)
        for submission in self.release_due_retries(limit=limit):
            try:
                outcomes.append(pipeline.process(submission.id))
            except InvalidTransitionError as e:
                logger.debug(str(e), extra={"submission_id": submission.id})
        return outcomes

    def _require_pipeline(self) -> SubmissionPipeline:
        if self.pipeline is None:
            raise RuntimeError("SubmissionService was created without a pipeline")
        return self.pipeline

    def _emit(self, submission_id: str, event_type: str, payload: dict[str, Any]) -> None:
        try:
            self.analytics.record(submission_id, event_type, payload)
        except Exception as e:
            metrics.increment_counter(metrics.analytics_failures_total, event_type=event_type)
            logger.warning(
                f"Failed to record analytics event {event_type}: {e}",
                extra={"submission_id": submission_id, "event_type": event_type},
            )
