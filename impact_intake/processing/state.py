"""
Processing status state machine.

    pending -> processing -> completed
    processing -> retry -> pending -> processing ...
    processing -> failed            (retry ceiling exceeded)
"""

from impact_intake.core.errors import InvalidTransitionError

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"processing"}),
    "processing": frozenset({"completed", "retry", "failed"}),
    "retry": frozenset({"pending"}),
    "completed": frozenset(),
    "failed": frozenset(),
}

TERMINAL_STATUSES = frozenset({"completed", "failed"})


def can_transition(current: str, target: str) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def check_transition(submission_id: str, current: str, target: str) -> str:
    """
    Validate a status change.

    Returns:
        The target status

    Raises:
        InvalidTransitionError: If the state machine does not allow the change
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(submission_id, current, target)
    return target
