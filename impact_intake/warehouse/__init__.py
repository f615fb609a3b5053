"""
Persistence for submissions, processing logs and analytics events.
"""

from .analytics import (
    AnalyticsSink,
    InMemoryAnalyticsSink,
    PostgresAnalyticsSink,
    SubmissionAnalytics,
    summarize_events,
)
from .repository import (
    InMemorySubmissionRepository,
    PostgresSubmissionRepository,
    SubmissionFilter,
    SubmissionPage,
    SubmissionRepository,
)

__all__ = [
    "AnalyticsSink",
    "InMemoryAnalyticsSink",
    "InMemorySubmissionRepository",
    "PostgresAnalyticsSink",
    "PostgresSubmissionRepository",
    "SubmissionAnalytics",
    "SubmissionFilter",
    "SubmissionPage",
    "SubmissionRepository",
    "summarize_events",
]
