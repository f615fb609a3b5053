"""
Pytest configuration and fixtures for impact-intake tests

This module provides shared fixtures for unit and integration tests.
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Generator

import pytest
from testcontainers.postgres import PostgresContainer

from impact_intake.core.errors import CollaboratorError
from impact_intake.core.models import Submission
from impact_intake.core.rules.validation_engine import ValidationEngine, create_validation_engine
from impact_intake.processing.collaborators import AnalysisResult, TranscriptionResult, TranslationResult
from impact_intake.processing.config import PipelineConfig
from impact_intake.processing.pipeline import SubmissionPipeline
from impact_intake.processing.submission_service import SubmissionService
from impact_intake.warehouse.analytics import InMemoryAnalyticsSink
from impact_intake.warehouse.connection import DatabaseConnectionPool
from impact_intake.warehouse.repository import InMemorySubmissionRepository
from impact_intake.warehouse.schema_mgmt import create_schema, truncate_tables

FIXED_NOW = datetime(2025, 9, 1, 12, 0, 0, tzinfo=timezone.utc)


# =======================
# PYTEST CONFIGURATION
# =======================

def pytest_configure(config):
    """Configure pytest with custom markers"""
    config.addinivalue_line(
        "markers", "unit: Unit tests that don't require external services"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests that require Docker containers"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds to run"
    )


# =======================
# TIME
# =======================

class FakeClock:
    """Deterministic clock; call it to read, advance() to move forward."""

    def __init__(self, now: datetime = FIXED_NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float = 0, milliseconds: float = 0) -> datetime:
        self.now = self.now + timedelta(seconds=seconds, milliseconds=milliseconds)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# =======================
# COLLABORATOR FAKES
# =======================

class FakeMediaFetcher:
    def __init__(self, payload: bytes = b"RIFF-audio"):
        self.payload = payload
        self.fetched: list[str] = []

    def fetch(self, reference: str) -> bytes:
        self.fetched.append(reference)
        return self.payload


class FakeTranscriber:
    """Returns a fixed transcript, failing the first `failures` calls."""

    def __init__(self, transcript: str = "Voice note from the field office", failures: int = 0,
                 error: str = "Transcription service timed out"):
        self.transcript = transcript
        self.failures = failures
        self.error = error
        self.calls = 0

    def transcribe(self, audio: bytes, language: str) -> TranscriptionResult:
        self.calls += 1
        if self.calls <= self.failures:
            raise CollaboratorError(self.error)
        return TranscriptionResult(transcript=self.transcript, confidence=0.92, duration_seconds=12.5)


class FakeTranslator:
    """Echoes text back, failing the first `failures` calls."""

    def __init__(self, failures: int = 0, source_language: str = "en"):
        self.failures = failures
        self.source_language = source_language
        self.calls = 0

    def translate(self, text: str, target_language: str, source_language: str | None = None) -> TranslationResult:
        self.calls += 1
        if self.calls <= self.failures:
            raise CollaboratorError("Translation quota exceeded")
        return TranslationResult(
            translated_text=text,
            source_language=self.source_language,
            confidence=0.95,
        )


class FakeAnalyzer:
    def analyze(self, text: str, submission_type: str) -> AnalysisResult:
        return AnalysisResult(
            sentiment_score=0.4,
            confidence=0.8,
            analysis={"topics": ["shelter"], "submission_type": submission_type},
        )


class BrokenAnalyticsSink:
    """Analytics sink whose every write fails."""

    def __init__(self):
        self.attempts = 0

    def record(self, submission_id, event_type, payload):
        self.attempts += 1
        raise ConnectionError("analytics store unreachable")


@pytest.fixture
def media_fetcher() -> FakeMediaFetcher:
    return FakeMediaFetcher()


@pytest.fixture
def translator() -> FakeTranslator:
    return FakeTranslator()


@pytest.fixture
def transcriber_factory():
    """FakeTranscriber class, for tests that need scripted failures"""
    return FakeTranscriber


@pytest.fixture
def translator_factory():
    return FakeTranslator


@pytest.fixture
def analyzer() -> FakeAnalyzer:
    return FakeAnalyzer()


@pytest.fixture
def broken_analytics() -> BrokenAnalyticsSink:
    return BrokenAnalyticsSink()


# =======================
# PIPELINE FIXTURES
# =======================

@pytest.fixture
def engine(clock) -> ValidationEngine:
    return create_validation_engine(clock=clock)


@pytest.fixture
def repository(clock) -> InMemorySubmissionRepository:
    return InMemorySubmissionRepository(clock=clock)


@pytest.fixture
def analytics(clock) -> InMemoryAnalyticsSink:
    return InMemoryAnalyticsSink(clock=clock)


@pytest.fixture
def valid_payload() -> dict:
    """A submission payload that passes every blocking rule."""
    return {
        "partner_id": "partner-kathmandu-01",
        "content": "Two new girls arrived at the shelter this week and are settling in well.",
        "submission_type": "survivor_report",
        "privacy_level": "ally",
        "urgency_level": "medium",
        "new_survivors": 2,
        "existing_survivors": 14,
        "total_survivors": 16,
        "report_date": "2025-08-31",
    }


@pytest.fixture
def make_submission(repository, clock, valid_payload):
    """Factory storing a pending submission in the in-memory repository."""

    def _make(**overrides) -> Submission:
        data = {**valid_payload, "created_at": clock(), "updated_at": clock(), **overrides}
        return repository.create(Submission(**data))

    return _make


@pytest.fixture
def make_pipeline(engine, repository, analytics, clock, media_fetcher, translator):
    """Factory building a pipeline over the shared fixtures; keyword arguments override them."""

    def _make(**overrides) -> SubmissionPipeline:
        kwargs = {
            "engine": engine,
            "repository": repository,
            "analytics": analytics,
            "transcriber": FakeTranscriber(),
            "translator": translator,
            "media_fetcher": media_fetcher,
            "config": PipelineConfig(),
            "clock": clock,
        }
        kwargs.update(overrides)
        return SubmissionPipeline(**kwargs)

    return _make


@pytest.fixture
def service(engine, repository, analytics, clock, make_pipeline) -> SubmissionService:
    return SubmissionService(engine, repository, analytics, pipeline=make_pipeline(), clock=clock)


# =======================
# DATABASE FIXTURES (Testcontainers)
# =======================

@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL container for integration tests

    Skips the requesting tests when Docker is not available.

    Yields:
        PostgresContainer instance
    """
    container = PostgresContainer(
        image="postgres:16.2-alpine",
        username="test_intake",
        password="test_password",
        dbname="test_impact_intake",
    )
    try:
        container.start()
    except Exception as e:
        pytest.skip(f"Docker is not available for integration tests: {e}")

    try:
        yield container
    finally:
        container.stop()


@pytest.fixture(scope="session")
def db_pool(postgres_container) -> Generator[DatabaseConnectionPool, None, None]:
    """Connection pool to the test container with the schema created"""
    pool = DatabaseConnectionPool(
        host=postgres_container.get_container_host_ip(),
        port=int(postgres_container.get_exposed_port(5432)),
        database="test_impact_intake",
        user="test_intake",
        password="test_password",
        min_size=1,
        max_size=4,
    )
    pool.open()
    create_schema(pool)
    yield pool
    pool.close()


@pytest.fixture(scope="function")
def clean_db(db_pool) -> DatabaseConnectionPool:
    """
    Provide a clean database by truncating all tables before each test

    Args:
        db_pool: Session-scoped connection pool

    Returns:
        The pool, with empty tables
    """
    truncate_tables(db_pool)
    return db_pool


# =======================
# CONFIGURATION FIXTURES
# =======================

@pytest.fixture(scope="session", autouse=True)
def test_env_vars():
    """
    Set test environment variables

    This fixture loads config/test.env when present
    """
    from dotenv import load_dotenv

    env_path = os.path.join(
        os.path.dirname(os.path.dirname(__file__)),
        "config",
        "test.env"
    )

    if os.path.exists(env_path):
        load_dotenv(env_path, override=True)


@pytest.fixture(scope="session")
def rules_config_path() -> str:
    """Path to the shipped validation rules file"""
    return os.path.join(
        os.path.dirname(os.path.dirname(__file__)),
        "config",
        "validation_rules.yaml"
    )
