"""
Submission repositories.

PostgresSubmissionRepository stores submissions in the `submissions` table
with the processing log as an append-only JSONB array.
InMemorySubmissionRepository offers the same interface for tests and
local runs.
"""

from __future__ import annotations

import threading
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from psycopg import Error as PsycopgError
from psycopg.types.json import Jsonb
from pydantic import BaseModel, Field

from impact_intake.core.errors import (
    InvalidTransitionError,
    PersistenceError,
    SubmissionNotFoundError,
)
from impact_intake.core.models import ProcessingLogEntry, Submission
from impact_intake.observability.logger import get_logger
from impact_intake.utils.timeutils import Clock, ensure_aware, utcnow
from impact_intake.warehouse.connection import DatabaseConnectionPool

logger = get_logger(__name__)

SUBMISSION_COLUMNS = tuple(Submission.model_fields)
JSON_COLUMNS = frozenset({"image_urls", "tags", "ai_analysis", "validation_result", "processing_log"})

# Columns that update() may not touch: identity and the append-only log
IMMUTABLE_COLUMNS = frozenset({"id", "created_at", "processing_log"})


class SubmissionFilter(BaseModel):
    """
    Criteria for listing submissions. Empty lists and None mean "any".

    Attributes:
        statuses: Processing statuses to include
        submission_types: Submission types to include
        privacy_levels: Privacy levels to include
        urgency_levels: Urgency levels to include
        partner_id: Only submissions from this partner
        created_from / created_to: Inclusive created_at range
        updated_before: Only submissions last written at or before this time
        search: Case-insensitive substring of content or translated content
    """

    statuses: list[str] = Field(default_factory=list)
    submission_types: list[str] = Field(default_factory=list)
    privacy_levels: list[str] = Field(default_factory=list)
    urgency_levels: list[str] = Field(default_factory=list)
    partner_id: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    updated_before: datetime | None = None
    search: str | None = None

    def matches(self, submission: Submission) -> bool:
        if self.statuses and submission.processing_status not in self.statuses:
            return False
        if self.submission_types and submission.submission_type not in self.submission_types:
            return False
        if self.privacy_levels and submission.privacy_level not in self.privacy_levels:
            return False
        if self.urgency_levels and submission.urgency_level not in self.urgency_levels:
            return False
        if self.partner_id is not None and submission.partner_id != self.partner_id:
            return False
        created_at = ensure_aware(submission.created_at)
        if self.created_from is not None and created_at < ensure_aware(self.created_from):
            return False
        if self.created_to is not None and created_at > ensure_aware(self.created_to):
            return False
        if self.updated_before is not None and (
            ensure_aware(submission.updated_at) > ensure_aware(self.updated_before)
        ):
            return False
        if self.search:
            needle = self.search.lower()
            haystacks = (submission.content or "", submission.translated_content or "")
            if not any(needle in text.lower() for text in haystacks):
                return False
        return True


class SubmissionPage(BaseModel):
    """One page of a submission listing, newest first."""

    submissions: list[Submission]
    total: int
    page: int
    page_size: int

    @property
    def pages(self) -> int:
        if self.page_size <= 0:
            return 0
        return (self.total + self.page_size - 1) // self.page_size


@runtime_checkable
class SubmissionRepository(Protocol):
    """Storage interface the service and pipeline depend on."""

    def create(self, submission: Submission) -> Submission: ...

    def get(self, submission_id: str) -> Submission | None: ...

    def update(self, submission_id: str, fields: dict[str, Any]) -> Submission: ...

    def transition(
        self,
        submission_id: str,
        expected: str,
        target: str,
        fields: dict[str, Any] | None = None,
    ) -> Submission: ...

    def append_log(self, submission_id: str, entries: list[ProcessingLogEntry]) -> None: ...

    def list(self, filters: SubmissionFilter, page: int, page_size: int) -> SubmissionPage: ...

    def due_for_retry(self, now: datetime, limit: int) -> list[Submission]: ...

    def bulk_update(self, submission_ids: list[str], fields: dict[str, Any]) -> int: ...


def _check_update_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - set(SUBMISSION_COLUMNS)
    if unknown:
        raise ValueError(f"Unknown submission fields: {sorted(unknown)}")
    immutable = set(fields) & IMMUTABLE_COLUMNS
    if immutable:
        raise ValueError(f"Fields cannot be updated: {sorted(immutable)}")


class InMemorySubmissionRepository:
    """
    Dictionary-backed repository.

    Stored and returned submissions are deep copies, so callers never share
    state with the store.
    """

    def __init__(self, clock: Clock = utcnow):
        self._clock = clock
        self._items: dict[str, Submission] = {}
        self._lock = threading.Lock()

    def create(self, submission: Submission) -> Submission:
        with self._lock:
            if submission.id in self._items:
                raise PersistenceError(f"Submission already exists: {submission.id}")
            self._items[submission.id] = submission.model_copy(deep=True)
        return submission.model_copy(deep=True)

    def get(self, submission_id: str) -> Submission | None:
        with self._lock:
            stored = self._items.get(submission_id)
            return stored.model_copy(deep=True) if stored else None

    def update(self, submission_id: str, fields: dict[str, Any]) -> Submission:
        _check_update_fields(fields)
        with self._lock:
            current = self._items.get(submission_id)
            if current is None:
                raise SubmissionNotFoundError(submission_id)
            return self._replace(current, fields)

    def transition(
        self,
        submission_id: str,
        expected: str,
        target: str,
        fields: dict[str, Any] | None = None,
    ) -> Submission:
        """
        Move a submission from `expected` to `target` status, writing `fields` too.

        The status check and the write happen under one lock.

        Raises:
            SubmissionNotFoundError: If the submission does not exist
            InvalidTransitionError: If the stored status is not `expected`
        """
        fields = {**(fields or {}), "processing_status": target}
        _check_update_fields(fields)
        with self._lock:
            current = self._items.get(submission_id)
            if current is None:
                raise SubmissionNotFoundError(submission_id)
            if current.processing_status != expected:
                raise InvalidTransitionError(submission_id, current.processing_status, target)
            return self._replace(current, fields)

    def _replace(self, current: Submission, fields: dict[str, Any]) -> Submission:
        # Caller holds the lock
        data = current.model_dump()
        data.update(fields)
        data["updated_at"] = self._clock()
        updated = Submission.model_validate(data)
        self._items[current.id] = updated
        return updated.model_copy(deep=True)

    def append_log(self, submission_id: str, entries: list[ProcessingLogEntry]) -> None:
        with self._lock:
            current = self._items.get(submission_id)
            if current is None:
                raise SubmissionNotFoundError(submission_id)
            current.processing_log.extend(entries)

    def list(self, filters: SubmissionFilter, page: int = 1, page_size: int = 20) -> SubmissionPage:
        with self._lock:
            matching = [s for s in self._items.values() if filters.matches(s)]
        matching.sort(key=lambda s: ensure_aware(s.created_at), reverse=True)
        start = (page - 1) * page_size
        return SubmissionPage(
            submissions=[s.model_copy(deep=True) for s in matching[start:start + page_size]],
            total=len(matching),
            page=page,
            page_size=page_size,
        )

    def due_for_retry(self, now: datetime, limit: int = 100) -> list[Submission]:
        now = ensure_aware(now)
        with self._lock:
            due = [
                s for s in self._items.values()
                if s.processing_status == "retry"
                and (s.next_retry_at is None or ensure_aware(s.next_retry_at) <= now)
            ]
        due.sort(key=lambda s: ensure_aware(s.next_retry_at or s.created_at))
        return [s.model_copy(deep=True) for s in due[:limit]]

    def bulk_update(self, submission_ids: list[str], fields: dict[str, Any]) -> int:
        _check_update_fields(fields)
        updated = 0
        for submission_id in submission_ids:
            try:
                self.update(submission_id, fields)
            except SubmissionNotFoundError:
                continue
            updated += 1
        return updated

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


class PostgresSubmissionRepository:
    """
    Repository backed by the `submissions` table.

    Every database error is re-raised as PersistenceError.
    """

    def __init__(self, pool: DatabaseConnectionPool, clock: Clock = utcnow):
        self.pool = pool
        self._clock = clock

    @staticmethod
    def _to_db(column: str, value: Any) -> Any:
        if column in JSON_COLUMNS and value is not None:
            return Jsonb(value)
        return value

    @staticmethod
    def _from_row(row: dict[str, Any]) -> Submission:
        return Submission.model_validate(row)

    def create(self, submission: Submission) -> Submission:
        data = submission.model_dump(mode="json")
        columns = ", ".join(SUBMISSION_COLUMNS)
        placeholders = ", ".join(f"%({c})s" for c in SUBMISSION_COLUMNS)
        params = {c: self._to_db(c, data[c]) for c in SUBMISSION_COLUMNS}
        # Timestamps keep their datetime type for TIMESTAMPTZ columns
        for column in ("next_retry_at", "created_at", "updated_at", "processed_at"):
            params[column] = getattr(submission, column)

        try:
            rows = self.pool.execute_returning(
                f"INSERT INTO submissions ({columns}) VALUES ({placeholders}) RETURNING *",
                params,
            )
        except PsycopgError as e:
            raise PersistenceError(f"Failed to create submission {submission.id}: {e}") from e

        logger.debug("Submission stored", extra={"submission_id": submission.id})
        return self._from_row(rows[0])

    def get(self, submission_id: str) -> Submission | None:
        try:
            rows = self.pool.execute_query(
                "SELECT * FROM submissions WHERE id = %s", (submission_id,)
            )
        except PsycopgError as e:
            raise PersistenceError(f"Failed to load submission {submission_id}: {e}") from e
        return self._from_row(rows[0]) if rows else None

    def update(self, submission_id: str, fields: dict[str, Any]) -> Submission:
        _check_update_fields(fields)
        params = self._update_params(fields)
        params["id"] = submission_id
        assignments = [f"{column} = %({column})s" for column in params if column != "id"]

        try:
            rows = self.pool.execute_returning(
                f"UPDATE submissions SET {', '.join(assignments)} WHERE id = %(id)s RETURNING *",
                params,
            )
        except PsycopgError as e:
            raise PersistenceError(f"Failed to update submission {submission_id}: {e}") from e

        if not rows:
            raise SubmissionNotFoundError(submission_id)
        return self._from_row(rows[0])

    def transition(
        self,
        submission_id: str,
        expected: str,
        target: str,
        fields: dict[str, Any] | None = None,
    ) -> Submission:
        """
        Conditional status change: the row is written only while its status is `expected`.

        Raises:
            SubmissionNotFoundError: If the submission does not exist
            InvalidTransitionError: If the stored status is not `expected`
            PersistenceError: On database errors
        """
        fields = {**(fields or {}), "processing_status": target}
        _check_update_fields(fields)
        params = self._update_params(fields)
        assignments = [f"{column} = %({column})s" for column in params]
        params["id"] = submission_id
        params["expected"] = expected

        try:
            rows = self.pool.execute_returning(
                f"UPDATE submissions SET {', '.join(assignments)} "
                "WHERE id = %(id)s AND processing_status = %(expected)s RETURNING *",
                params,
            )
        except PsycopgError as e:
            raise PersistenceError(f"Failed to update submission {submission_id}: {e}") from e

        if rows:
            return self._from_row(rows[0])
        current = self.get(submission_id)
        if current is None:
            raise SubmissionNotFoundError(submission_id)
        raise InvalidTransitionError(submission_id, current.processing_status, target)

    def append_log(self, submission_id: str, entries: list[ProcessingLogEntry]) -> None:
        if not entries:
            return
        payload = [entry.model_dump(mode="json") for entry in entries]
        try:
            affected = self.pool.execute_command(
                "UPDATE submissions SET processing_log = processing_log || %s WHERE id = %s",
                (Jsonb(payload), submission_id),
            )
        except PsycopgError as e:
            raise PersistenceError(f"Failed to append log for {submission_id}: {e}") from e
        if affected == 0:
            raise SubmissionNotFoundError(submission_id)

    def list(self, filters: SubmissionFilter, page: int = 1, page_size: int = 20) -> SubmissionPage:
        where, params = self._where_clause(filters)
        offset = (page - 1) * page_size

        try:
            with self.pool.get_cursor() as cur:
                cur.execute(f"SELECT COUNT(*) AS total FROM submissions {where}", params)
                total = cur.fetchone()["total"]
                cur.execute(
                    f"SELECT * FROM submissions {where} "
                    "ORDER BY created_at DESC, id LIMIT %(limit)s OFFSET %(offset)s",
                    {**params, "limit": page_size, "offset": offset},
                )
                rows = cur.fetchall()
        except PsycopgError as e:
            raise PersistenceError(f"Failed to list submissions: {e}") from e

        return SubmissionPage(
            submissions=[self._from_row(row) for row in rows],
            total=total,
            page=page,
            page_size=page_size,
        )

    def due_for_retry(self, now: datetime, limit: int = 100) -> list[Submission]:
        try:
            rows = self.pool.execute_query(
                """
                SELECT * FROM submissions
                WHERE processing_status = 'retry'
                  AND (next_retry_at IS NULL OR next_retry_at <= %s)
                ORDER BY COALESCE(next_retry_at, created_at)
                LIMIT %s
                """,
                (now, limit),
            )
        except PsycopgError as e:
            raise PersistenceError(f"Failed to query due retries: {e}") from e
        return [self._from_row(row) for row in rows]

    def bulk_update(self, submission_ids: list[str], fields: dict[str, Any]) -> int:
        _check_update_fields(fields)
        if not submission_ids:
            return 0
        params = self._update_params(fields)
        assignments = [f"{column} = %({column})s" for column in params]
        params["ids"] = list(submission_ids)

        try:
            return self.pool.execute_command(
                f"UPDATE submissions SET {', '.join(assignments)} WHERE id = ANY(%(ids)s)",
                params,
            )
        except PsycopgError as e:
            raise PersistenceError(f"Bulk update failed: {e}") from e

    def _update_params(self, fields: dict[str, Any]) -> dict[str, Any]:
        # Round-trip through the model so values are checked before hitting the table
        checked = Submission.model_validate(fields)
        dumped = checked.model_dump(mode="json")

        params: dict[str, Any] = {"updated_at": self._clock()}
        for column in fields:
            value = getattr(checked, column)
            if not isinstance(value, datetime):
                value = dumped[column]
            params[column] = self._to_db(column, value)
        return params

    @staticmethod
    def _where_clause(filters: SubmissionFilter) -> tuple[str, dict[str, Any]]:
        clauses = []
        params: dict[str, Any] = {}

        for column, values in (
            ("processing_status", filters.statuses),
            ("submission_type", filters.submission_types),
            ("privacy_level", filters.privacy_levels),
            ("urgency_level", filters.urgency_levels),
        ):
            if values:
                clauses.append(f"{column} = ANY(%({column})s)")
                params[column] = list(values)

        if filters.partner_id is not None:
            clauses.append("partner_id = %(partner_id)s")
            params["partner_id"] = filters.partner_id
        if filters.created_from is not None:
            clauses.append("created_at >= %(created_from)s")
            params["created_from"] = filters.created_from
        if filters.created_to is not None:
            clauses.append("created_at <= %(created_to)s")
            params["created_to"] = filters.created_to
        if filters.updated_before is not None:
            clauses.append("updated_at <= %(updated_before)s")
            params["updated_before"] = filters.updated_before
        if filters.search:
            clauses.append(
                "(content ILIKE %(search)s OR translated_content ILIKE %(search)s)"
            )
            escaped = filters.search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
            params["search"] = f"%{escaped}%"

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        return where, params
