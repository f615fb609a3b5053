"""
Input validation utilities

Checks identifiers and paging arguments that arrive from the CLI or other
external callers before they reach the repository.
"""
import re
import uuid

from impact_intake.core.validators.messages import supported_locales

# Ids are UUIDs when generated here; imported ids may use a safe subset of characters
SAFE_ID_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.:-]{0,127}$")

MAX_PAGE_SIZE = 500
MAX_BULK_IDS = 1000


class InputValidationError(ValueError):
    """Raised when caller-supplied input is malformed."""


def validate_submission_id(submission_id: str) -> str:
    """
    Validate a submission id

    Args:
        submission_id: UUID string or safe identifier

    Returns:
        The normalized id (UUIDs in canonical lowercase form)

    Raises:
        InputValidationError: If the id is empty or contains unsafe characters
    """
    if not isinstance(submission_id, str) or not submission_id.strip():
        raise InputValidationError("Submission id must be a non-empty string")

    candidate = submission_id.strip()
    try:
        return str(uuid.UUID(candidate))
    except ValueError:
        pass

    if not SAFE_ID_PATTERN.match(candidate):
        raise InputValidationError(f"Invalid submission id: {candidate!r}")
    return candidate


def validate_submission_ids(submission_ids: list[str]) -> list[str]:
    """Validate a list of ids for bulk operations; duplicates are removed, order kept."""
    if not submission_ids:
        raise InputValidationError("At least one submission id is required")
    if len(submission_ids) > MAX_BULK_IDS:
        raise InputValidationError(f"Too many submission ids: {len(submission_ids)} > {MAX_BULK_IDS}")

    seen: dict[str, None] = {}
    for submission_id in submission_ids:
        seen.setdefault(validate_submission_id(submission_id), None)
    return list(seen)


def validate_locale(locale: str | None) -> str | None:
    """
    Validate a locale code such as "en" or "ne-NP".

    Unsupported but well-formed locales are accepted; messages fall back to English.
    """
    if locale is None:
        return None
    if not re.match(r"^[A-Za-z]{2,3}([-_][A-Za-z0-9]{2,8})?$", locale):
        raise InputValidationError(f"Invalid locale: {locale!r}")
    base = locale.split("-")[0].split("_")[0].lower()
    return base if base in supported_locales() else locale


def validate_page(page: int, page_size: int) -> tuple[int, int]:
    """Validate pagination arguments."""
    if page < 1:
        raise InputValidationError("page must be >= 1")
    if page_size < 1 or page_size > MAX_PAGE_SIZE:
        raise InputValidationError(f"page_size must be between 1 and {MAX_PAGE_SIZE}")
    return page, page_size
