"""
Exception hierarchy for the intake pipeline.

Validation problems found in submission data are reported as data
(ValidationResult), never raised. These exceptions cover everything else.
"""

from typing import Any


class ImpactIntakeError(Exception):
    """Base class for all pipeline errors."""


class ConfigurationError(ImpactIntakeError):
    """Raised when rule or pipeline configuration is invalid."""


class SubmissionRejectedError(ImpactIntakeError):
    """Raised when a new submission fails validation at intake."""

    def __init__(self, result: Any):
        self.result = result
        codes = ", ".join(f"{e.field}:{e.code}" for e in result.errors)
        super().__init__(f"Submission rejected by validation: {codes}")


class SubmissionNotFoundError(ImpactIntakeError):
    """Raised when a submission id does not exist in the repository."""

    def __init__(self, submission_id: str):
        self.submission_id = submission_id
        super().__init__(f"Submission not found: {submission_id}")


class InvalidTransitionError(ImpactIntakeError):
    """Raised on a processing status change the state machine does not allow."""

    def __init__(self, submission_id: str, current: str, target: str):
        self.submission_id = submission_id
        self.current = current
        self.target = target
        super().__init__(
            f"Submission {submission_id}: cannot move from '{current}' to '{target}'"
        )


class RetryNotDueError(ImpactIntakeError):
    """Raised when a submission in retry is processed before next_retry_at."""

    def __init__(self, submission_id: str, next_retry_at: Any):
        self.submission_id = submission_id
        self.next_retry_at = next_retry_at
        super().__init__(f"Submission {submission_id} is not due for retry until {next_retry_at}")


class CollaboratorError(ImpactIntakeError):
    """Raised when an external collaborator (transcription, translation, ...) fails."""


class CollaboratorUnavailableError(CollaboratorError):
    """Raised when a required collaborator is not configured."""

    def __init__(self, collaborator: str):
        self.collaborator = collaborator
        super().__init__(f"{collaborator} collaborator is not configured")


class PersistenceError(ImpactIntakeError):
    """Raised when the submission repository cannot complete an operation."""


class ProcessingLeaseExpiredError(ImpactIntakeError):
    """Raised for a submission left in processing longer than the processing lease."""

    def __init__(self, submission_id: str, updated_at: Any, lease_seconds: int):
        self.submission_id = submission_id
        self.updated_at = updated_at
        self.lease_seconds = lease_seconds
        super().__init__(
            f"Submission {submission_id} has been processing since {updated_at}, "
            f"longer than the {lease_seconds}s lease"
        )
