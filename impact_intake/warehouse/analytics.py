"""
Analytics event sinks and reporting.

Sinks are fire-and-forget from the pipeline's point of view: the pipeline
swallows (and logs) any exception a sink raises.
"""

import threading
from collections import Counter
from collections.abc import Iterable
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from psycopg import Error as PsycopgError
from psycopg.types.json import Jsonb
from pydantic import BaseModel, Field

from impact_intake.core.errors import PersistenceError
from impact_intake.core.models import AnalyticsEvent
from impact_intake.observability.logger import get_logger
from impact_intake.utils.timeutils import Clock, ensure_aware, utcnow
from impact_intake.warehouse.connection import DatabaseConnectionPool

logger = get_logger(__name__)


@runtime_checkable
class AnalyticsSink(Protocol):
    def record(self, submission_id: str, event_type: str, payload: dict[str, Any]) -> None: ...


class InMemoryAnalyticsSink:
    """Keeps events in a list. Used by tests and the CLI when no database is configured."""

    def __init__(self, clock: Clock = utcnow):
        self._clock = clock
        self._events: list[AnalyticsEvent] = []
        self._lock = threading.Lock()

    def record(self, submission_id: str, event_type: str, payload: dict[str, Any]) -> None:
        event = AnalyticsEvent(
            submission_id=submission_id,
            event_type=event_type,
            event_data=dict(payload),
            timestamp=self._clock(),
        )
        with self._lock:
            self._events.append(event)

    def events(
        self,
        submission_id: str | None = None,
        event_type: str | None = None,
    ) -> list[AnalyticsEvent]:
        with self._lock:
            events = list(self._events)
        if submission_id is not None:
            events = [e for e in events if e.submission_id == submission_id]
        if event_type is not None:
            events = [e for e in events if e.event_type == event_type]
        return events

    def event_types(self, submission_id: str | None = None) -> list[str]:
        return [e.event_type for e in self.events(submission_id=submission_id)]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()


class PostgresAnalyticsSink:
    """Appends events to the `submission_analytics` table."""

    def __init__(self, pool: DatabaseConnectionPool, clock: Clock = utcnow):
        self.pool = pool
        self._clock = clock

    def record(self, submission_id: str, event_type: str, payload: dict[str, Any]) -> None:
        event = AnalyticsEvent(
            submission_id=submission_id,
            event_type=event_type,
            event_data=dict(payload),
            timestamp=self._clock(),
        )
        try:
            self.pool.execute_command(
                """
                INSERT INTO submission_analytics (submission_id, event_type, event_data, timestamp)
                VALUES (%s, %s, %s, %s)
                """,
                (
                    event.submission_id,
                    event.event_type,
                    Jsonb(event.model_dump(mode="json")["event_data"]),
                    event.timestamp,
                ),
            )
        except PsycopgError as e:
            raise PersistenceError(f"Failed to record analytics event {event_type}: {e}") from e

    def events(
        self,
        submission_id: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
    ) -> list[AnalyticsEvent]:
        clauses = []
        params: list[Any] = []
        if submission_id is not None:
            clauses.append("submission_id = %s")
            params.append(submission_id)
        if since is not None:
            clauses.append("timestamp >= %s")
            params.append(since)
        if until is not None:
            clauses.append("timestamp <= %s")
            params.append(until)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""

        try:
            rows = self.pool.execute_query(
                f"SELECT submission_id, event_type, event_data, timestamp "
                f"FROM submission_analytics {where} ORDER BY timestamp, id",
                tuple(params),
            )
        except PsycopgError as e:
            raise PersistenceError(f"Failed to query analytics events: {e}") from e
        return [AnalyticsEvent.model_validate(row) for row in rows]


class SubmissionAnalytics(BaseModel):
    """
    Aggregate view over analytics events.

    Attributes:
        total_submissions: submission_created events
        completed: processing_completed events
        failed: processing_failed events
        retries: processing_retry events
        crisis_detections: crisis_detected events
        success_rate: Percentage of created submissions that completed
        average_processing_time_ms: Mean of processing_completed durations
        events_by_type: Count per event type
    """

    total_submissions: int = 0
    completed: int = 0
    failed: int = 0
    retries: int = 0
    crisis_detections: int = 0
    success_rate: float = 0.0
    average_processing_time_ms: float = 0.0
    events_by_type: dict[str, int] = Field(default_factory=dict)


def summarize_events(
    events: Iterable[AnalyticsEvent],
    since: datetime | None = None,
    until: datetime | None = None,
) -> SubmissionAnalytics:
    """
    Build the aggregate report over a set of events, optionally limited
    to a time window.
    """
    selected = []
    for event in events:
        timestamp = ensure_aware(event.timestamp)
        if since is not None and timestamp < ensure_aware(since):
            continue
        if until is not None and timestamp > ensure_aware(until):
            continue
        selected.append(event)

    counts = Counter(e.event_type for e in selected)
    durations = [
        float(e.event_data["duration_ms"])
        for e in selected
        if e.event_type == "processing_completed"
        and isinstance(e.event_data.get("duration_ms"), (int, float))
    ]

    total = counts.get("submission_created", 0)
    completed = counts.get("processing_completed", 0)

    return SubmissionAnalytics(
        total_submissions=total,
        completed=completed,
        failed=counts.get("processing_failed", 0),
        retries=counts.get("processing_retry", 0),
        crisis_detections=counts.get("crisis_detected", 0),
        success_rate=round(completed / total * 100, 2) if total else 0.0,
        average_processing_time_ms=round(sum(durations) / len(durations), 2) if durations else 0.0,
        events_by_type=dict(counts),
    )
