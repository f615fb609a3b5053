"""
Submission processing pipeline.

Drives one submission through validation, transcription, crisis detection,
translation and (optionally) content analysis, then persists the result.
Every step is recorded in the submission's processing log. A step failure
schedules a retry through RetryPolicy, or fails the submission once the
retry ceiling is exceeded; it is never raised to the caller.

Status changes are conditional writes: a run only moves a submission out of
the status it loaded it in, so two concurrent runs cannot both claim it. A
run that dies while holding a submission in "processing" leaves it there
until the processing lease expires; the next process() call then schedules
a retry for it.
"""

import time
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

from pydantic import BaseModel, Field

from impact_intake.core.errors import (
    CollaboratorUnavailableError,
    InvalidTransitionError,
    PersistenceError,
    ProcessingLeaseExpiredError,
    RetryNotDueError,
    SubmissionNotFoundError,
)
from impact_intake.core.models import ProcessingLogEntry, Submission, ValidationResult
from impact_intake.core.rules.validation_engine import ValidationEngine
from impact_intake.observability import metrics
from impact_intake.observability.logger import get_logger, log_operation
from impact_intake.processing.cache import ResultCache
from impact_intake.processing.collaborators import ContentAnalyzer, MediaFetcher, Transcriber, Translator
from impact_intake.processing.config import PipelineConfig
from impact_intake.processing.crisis import CrisisDetector
from impact_intake.processing.retry import RetryPolicy
from impact_intake.processing.state import check_transition
from impact_intake.utils.timeutils import Clock, ensure_aware, utcnow

logger = get_logger(__name__)

STEPS = ("validation", "transcription", "crisis_detection", "translation", "analysis", "persist")


class ProcessingOutcome(BaseModel):
    """
    Result of one pipeline invocation.

    Attributes:
        submission_id: Processed submission
        status: Processing status after the run
        retry_count: Failed attempts so far
        next_retry_at: Earliest next attempt when status is "retry"
        validation_result: Engine result of this run (None for terminal short-circuits)
        crisis_flag: Whether crisis keywords were found
        crisis_keywords: The matched keywords
        processed_content: Original content combined with the transcript
        transcribed_content / translated_content: Collaborator outputs
        error: Failure message of the failed step, verbatim
        failed_step: Name of the step that failed
        duration_ms: Wall time of the run
        persisted: False when the final status could not be stored; `status` is
            then the status the store still holds, as far as the run knows
    """

    submission_id: str
    status: str
    retry_count: int = 0
    next_retry_at: datetime | None = None
    validation_result: ValidationResult | None = None
    crisis_flag: bool = False
    crisis_keywords: list[str] = Field(default_factory=list)
    processed_content: str | None = None
    transcribed_content: str | None = None
    translated_content: str | None = None
    error: str | None = None
    failed_step: str | None = None
    duration_ms: float | None = None
    persisted: bool = True

    @property
    def succeeded(self) -> bool:
        return self.status == "completed"


class StepFailure(Exception):
    """Wraps the exception raised inside a step together with the step name."""

    def __init__(self, step: str, cause: Exception):
        self.step = step
        self.cause = cause
        super().__init__(str(cause))


class _Run:
    """Mutable state of one pipeline run."""

    def __init__(self, submission: Submission):
        self.submission = submission
        self.fields: dict[str, Any] = {}
        self.log: list[ProcessingLogEntry] = []
        self.content = submission.content or ""
        self.validation_result: ValidationResult | None = None
        self.crisis_keywords: list[str] = []


class SubmissionPipeline:
    """
    Processes submissions one at a time.

    All collaborators are injected. Transcription needs both a media fetcher
    and a transcriber; translation needs a translator; analysis runs only
    when an analyzer is configured.
    """

    def __init__(
        self,
        engine: ValidationEngine,
        repository,
        analytics,
        transcriber: Transcriber | None = None,
        translator: Translator | None = None,
        media_fetcher: MediaFetcher | None = None,
        analyzer: ContentAnalyzer | None = None,
        config: PipelineConfig | None = None,
        clock: Clock = utcnow,
        cache: ResultCache | None = None,
    ):
        self.engine = engine
        self.repository = repository
        self.analytics = analytics
        self.transcriber = transcriber
        self.translator = translator
        self.media_fetcher = media_fetcher
        self.analyzer = analyzer
        self.config = config or PipelineConfig()
        self.clock = clock
        self.retry_policy = RetryPolicy.from_config(self.config)
        self.crisis_detector = CrisisDetector(self.config.crisis_keywords)
        self.cache = cache if cache is not None else ResultCache(self.config.cache_size)

    def process(self, submission_or_id: Submission | str) -> ProcessingOutcome:
        """
        Run the pipeline for one submission.

        Completed and failed submissions are returned unchanged. A submission
        waiting for a retry is moved back to pending when its retry time has
        come. A submission left in processing past the lease counts as a
        failed attempt and is scheduled for retry (or failed) without running
        the steps.

        Args:
            submission_or_id: Submission or its id

        Returns:
            ProcessingOutcome describing the state after this run

        Raises:
            SubmissionNotFoundError: If the id is unknown
            RetryNotDueError: If the submission's next_retry_at is still in the future
            InvalidTransitionError: If another run holds the submission in
                "processing" and its lease has not expired
        """
        submission = self._load(submission_or_id)

        if submission.is_terminal:
            logger.info(
                "Submission already in terminal state",
                extra={"submission_id": submission.id, "status": submission.processing_status},
            )
            return self._outcome_from_submission(submission)

        if submission.processing_status == "retry":
            now = self.clock()
            if submission.next_retry_at is not None and ensure_aware(submission.next_retry_at) > now:
                raise RetryNotDueError(submission.id, submission.next_retry_at)
            submission = self._set_status(submission, "pending")

        if submission.processing_status == "processing" and self._lease_expired(submission):
            outcome = self._reclaim(submission)
            self.cache.put(submission.id, outcome)
            return outcome

        submission = self._set_status(submission, "processing")
        run = _Run(submission)
        started = time.perf_counter()

        self._emit(submission.id, "processing_started", {
            "submission_type": submission.submission_type,
            "retry_count": submission.retry_count,
        })

        with log_operation("Processing submission", logger=logger, submission_id=submission.id):
            try:
                self._run_step(run, "validation", self._validate)
                if submission.audio_url:
                    self._run_step(run, "transcription", self._transcribe)
                self._run_step(run, "crisis_detection", self._detect_crisis)
                if run.content.strip():
                    self._run_step(run, "translation", self._translate)
                if self.analyzer is not None:
                    self._run_step(run, "analysis", self._analyze)
                self._run_step(run, "persist", self._persist)
            except StepFailure as failure:
                outcome = self._handle_failure(run, failure, started)
            else:
                outcome = self._complete(run, started)

        self.cache.put(submission.id, outcome)
        return outcome

    def cached_outcome(self, submission_id: str) -> ProcessingOutcome | None:
        """Most recent outcome for a submission, if still cached."""
        return self.cache.get(submission_id)

    # -----------------------
    # Steps
    # -----------------------

    def _validate(self, run: _Run) -> dict[str, Any]:
        result = self.engine.validate(run.submission.to_validation_payload())
        metrics.record_validation_result(result)
        run.validation_result = result
        run.fields["validation_result"] = result.model_dump(mode="json")
        run.fields["validation_confidence"] = result.confidence

        self._emit(run.submission.id, "validation_completed", {
            "is_valid": result.is_valid,
            "confidence": result.confidence,
            "error_codes": sorted(result.error_codes()),
            "warning_count": len(result.warnings),
        })
        return {
            "confidence": result.confidence,
            "is_valid": result.is_valid,
            "error_count": len(result.errors),
            "warning_count": len(result.warnings),
        }

    def _transcribe(self, run: _Run) -> dict[str, Any]:
        if self.media_fetcher is None:
            raise CollaboratorUnavailableError("media fetcher")
        if self.transcriber is None:
            raise CollaboratorUnavailableError("transcription")

        audio = self.media_fetcher.fetch(run.submission.audio_url)
        result = self.transcriber.transcribe(audio, self.config.transcription_language)

        run.fields["transcribed_content"] = result.transcript
        run.fields["transcription_confidence"] = result.confidence
        run.content = "\n\n".join(part for part in (run.content, result.transcript) if part)

        self._emit(run.submission.id, "audio_transcribed", {
            "confidence": result.confidence,
            "duration_seconds": result.duration_seconds,
        })
        return {"confidence": result.confidence, "audio_duration_seconds": result.duration_seconds}

    def _detect_crisis(self, run: _Run) -> dict[str, Any]:
        keywords = self.crisis_detector.matches(run.content)
        run.crisis_keywords = keywords
        run.fields["crisis_flag"] = bool(keywords)

        if keywords:
            metrics.increment_counter(
                metrics.crisis_detections_total, submission_type=run.submission.submission_type
            )
            logger.warning(
                "Crisis keywords detected",
                extra={"submission_id": run.submission.id, "keywords": keywords},
            )
            self._emit(run.submission.id, "crisis_detected", {
                "keywords": keywords,
                "submission_type": run.submission.submission_type,
                "urgency_level": run.submission.urgency_level,
            })
        return {"crisis_flag": bool(keywords), "keywords": keywords}

    def _translate(self, run: _Run) -> dict[str, Any]:
        if self.translator is None:
            raise CollaboratorUnavailableError("translation")

        result = self.translator.translate(run.content, self.config.target_language)
        run.fields["translated_content"] = result.translated_text
        run.fields["original_language"] = result.source_language
        run.fields["translation_confidence"] = result.confidence

        self._emit(run.submission.id, "content_translated", {
            "source_language": result.source_language,
            "target_language": self.config.target_language,
            "confidence": result.confidence,
        })
        return {"confidence": result.confidence, "source_language": result.source_language}

    def _analyze(self, run: _Run) -> dict[str, Any]:
        text = run.fields.get("translated_content") or run.content
        result = self.analyzer.analyze(text, run.submission.submission_type)
        run.fields["sentiment_score"] = result.sentiment_score
        run.fields["ai_analysis"] = dict(result.analysis)

        self._emit(run.submission.id, "content_analyzed", {
            "sentiment_score": result.sentiment_score,
            "confidence": result.confidence,
        })
        return {"confidence": result.confidence, "sentiment_score": result.sentiment_score}

    def _persist(self, run: _Run) -> dict[str, Any]:
        status = check_transition(run.submission.id, "processing", "completed")
        fields = dict(run.fields)
        fields.update({
            "processed_at": self.clock(),
            "next_retry_at": None,
        })
        run.submission = self.repository.transition(run.submission.id, "processing", status, fields)
        return {"fields": sorted(run.fields)}

    # -----------------------
    # Bookkeeping
    # -----------------------

    def _run_step(self, run: _Run, step: str, func: Callable[[_Run], dict[str, Any]]) -> None:
        run.log.append(self._entry(step, "started"))
        started = time.perf_counter()
        try:
            details = func(run)
        except Exception as e:
            elapsed = time.perf_counter() - started
            metrics.observe_histogram(metrics.step_duration_seconds, elapsed, step=step, status="failed")
            run.log.append(self._entry(step, "failed", message=str(e), duration_ms=elapsed * 1000))
            logger.error(
                f"Step {step} failed: {e}",
                extra={"submission_id": run.submission.id, "step": step, "error_type": type(e).__name__},
            )
            raise StepFailure(step, e) from e

        elapsed = time.perf_counter() - started
        metrics.observe_histogram(metrics.step_duration_seconds, elapsed, step=step, status="completed")
        run.log.append(self._entry(step, "completed", duration_ms=elapsed * 1000, details=details))

    def _complete(self, run: _Run, started: float) -> ProcessingOutcome:
        self._append_log(run)
        duration_ms = (time.perf_counter() - started) * 1000

        metrics.increment_counter(metrics.submissions_processed_total, status="completed")
        metrics.observe_histogram(metrics.processing_duration_seconds, duration_ms / 1000, status="completed")
        self._emit(run.submission.id, "processing_completed", {
            "duration_ms": round(duration_ms, 3),
            "retry_count": run.submission.retry_count,
            "crisis_flag": run.fields.get("crisis_flag", False),
        })
        return self._outcome(run, "completed", duration_ms=duration_ms)

    def _handle_failure(self, run: _Run, failure: StepFailure, started: float) -> ProcessingOutcome:
        submission = run.submission
        now = self.clock()
        decision = self.retry_policy.on_failure(submission.retry_count, now)
        error = str(failure.cause)

        # Enrichment gathered before the failure is kept
        fields = dict(run.fields)
        fields["retry_count"] = decision.retry_count

        if decision.should_retry:
            status = check_transition(submission.id, "processing", "retry")
            fields["next_retry_at"] = decision.next_retry_at
            run.log.append(self._entry(
                "retry_scheduled",
                "completed",
                message=f"Retry {decision.retry_count} of {self.retry_policy.max_retries} "
                        f"after {failure.step} failure",
                details={
                    "retry_count": decision.retry_count,
                    "delay_ms": decision.delay_ms,
                    "next_retry_at": decision.next_retry_at.isoformat(),
                    "failed_step": failure.step,
                },
            ))
            event_type = "processing_retry"
        else:
            status = check_transition(submission.id, "processing", "failed")
            fields["next_retry_at"] = None
            fields["processed_at"] = now
            run.log.append(self._entry(
                "processing",
                "failed",
                message=error,
                details={"retry_count": decision.retry_count, "failed_step": failure.step},
            ))
            event_type = "processing_failed"

        duration_ms = (time.perf_counter() - started) * 1000
        try:
            run.submission = self.repository.transition(submission.id, "processing", status, fields)
        except (PersistenceError, InvalidTransitionError) as e:
            return self._unrecorded_failure(run, failure, status, e, duration_ms)
        self._append_log(run)

        if decision.should_retry:
            metrics.increment_counter(metrics.retries_total, step=failure.step)
            logger.warning(
                "Processing retry scheduled",
                extra={
                    "submission_id": submission.id,
                    "retry_count": decision.retry_count,
                    "next_retry_at": decision.next_retry_at.isoformat(),
                },
            )
        else:
            logger.error(
                "Processing failed permanently",
                extra={"submission_id": submission.id, "retry_count": decision.retry_count},
            )
        metrics.increment_counter(metrics.submissions_processed_total, status=status)
        metrics.observe_histogram(metrics.processing_duration_seconds, duration_ms / 1000, status=status)

        payload: dict[str, Any] = {
            "error": error,
            "failed_step": failure.step,
            "retry_count": decision.retry_count,
        }
        if decision.next_retry_at is not None:
            payload["next_retry_at"] = decision.next_retry_at.isoformat()
        self._emit(submission.id, event_type, payload)

        return self._outcome(
            run,
            status,
            error=error,
            failed_step=failure.step,
            duration_ms=duration_ms,
        )

    def _unrecorded_failure(
        self,
        run: _Run,
        failure: StepFailure,
        status: str,
        write_error: Exception,
        duration_ms: float,
    ) -> ProcessingOutcome:
        """
        Outcome for a failed run whose retry/failed status could not be written.

        The submission stays in whatever status the store holds. When that is
        still "processing", the lease lets a later call reclaim it.
        """
        current = write_error.current if isinstance(write_error, InvalidTransitionError) else "processing"
        metrics.increment_counter(metrics.persistence_failures_total, operation=f"status_{status}")
        logger.error(
            f"Could not record {status} status: {write_error}",
            extra={
                "submission_id": run.submission.id,
                "failed_step": failure.step,
                "stored_status": current,
                "error_type": type(write_error).__name__,
            },
        )
        return self._outcome(
            run,
            current,
            error=str(failure.cause),
            failed_step=failure.step,
            duration_ms=duration_ms,
            persisted=False,
        )

    def _lease_expired(self, submission: Submission) -> bool:
        lease = timedelta(seconds=self.config.processing_lease_seconds)
        return ensure_aware(submission.updated_at) + lease <= self.clock()

    def _reclaim(self, submission: Submission) -> ProcessingOutcome:
        """Treat a run that never finished as a failed attempt."""
        cause = ProcessingLeaseExpiredError(
            submission.id, submission.updated_at, self.config.processing_lease_seconds
        )
        logger.warning(
            "Reclaiming submission with an expired processing lease",
            extra={"submission_id": submission.id, "updated_at": ensure_aware(submission.updated_at).isoformat()},
        )
        run = _Run(submission)
        run.log.append(self._entry("lease", "failed", message=str(cause)))
        return self._handle_failure(run, StepFailure("lease", cause), time.perf_counter())

    def _append_log(self, run: _Run) -> None:
        # The status is already stored; a lost log write must not undo it
        try:
            self.repository.append_log(run.submission.id, run.log)
        except PersistenceError as e:
            metrics.increment_counter(metrics.persistence_failures_total, operation="append_log")
            logger.error(
                f"Could not append processing log: {e}",
                extra={"submission_id": run.submission.id, "entries": len(run.log)},
            )

    def _emit(self, submission_id: str, event_type: str, payload: dict[str, Any]) -> None:
        try:
            self.analytics.record(submission_id, event_type, payload)
        except Exception as e:
            # Analytics must never fail processing
            metrics.increment_counter(metrics.analytics_failures_total, event_type=event_type)
            logger.warning(
                f"Failed to record analytics event {event_type}: {e}",
                extra={"submission_id": submission_id, "event_type": event_type},
            )

    def _entry(
        self,
        step: str,
        status: str,
        message: str | None = None,
        duration_ms: float | None = None,
        details: dict[str, Any] | None = None,
    ) -> ProcessingLogEntry:
        return ProcessingLogEntry(
            timestamp=self.clock(),
            step=step,
            status=status,
            message=message,
            duration_ms=round(duration_ms, 3) if duration_ms is not None else None,
            details=details or {},
        )

    def _load(self, submission_or_id: Submission | str) -> Submission:
        submission_id = submission_or_id.id if isinstance(submission_or_id, Submission) else submission_or_id
        # Always work from the stored copy
        submission = self.repository.get(submission_id)
        if submission is None:
            raise SubmissionNotFoundError(submission_id)
        return submission

    def _set_status(self, submission: Submission, target: str) -> Submission:
        status = check_transition(submission.id, submission.processing_status, target)
        return self.repository.transition(submission.id, submission.processing_status, status)

    def _outcome(self, run: _Run, status: str, **extra) -> ProcessingOutcome:
        submission = run.submission
        return ProcessingOutcome(
            submission_id=submission.id,
            status=status,
            retry_count=submission.retry_count,
            next_retry_at=submission.next_retry_at,
            validation_result=run.validation_result,
            crisis_flag=run.fields.get("crisis_flag", False),
            crisis_keywords=run.crisis_keywords,
            processed_content=run.content or None,
            transcribed_content=run.fields.get("transcribed_content"),
            translated_content=run.fields.get("translated_content"),
            **extra,
        )

    @staticmethod
    def _outcome_from_submission(submission: Submission) -> ProcessingOutcome:
        result = None
        if submission.validation_result:
            result = ValidationResult.model_validate(submission.validation_result)
        return ProcessingOutcome(
            submission_id=submission.id,
            status=submission.processing_status,
            retry_count=submission.retry_count,
            next_retry_at=submission.next_retry_at,
            validation_result=result,
            crisis_flag=submission.crisis_flag,
            transcribed_content=submission.transcribed_content,
            translated_content=submission.translated_content,
        )
