"""
Database schema for submissions and analytics events.
"""

from impact_intake.observability.logger import get_logger
from impact_intake.warehouse.connection import DatabaseConnectionPool

logger = get_logger(__name__)

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS submissions (
    id TEXT PRIMARY KEY,
    partner_id TEXT,
    content TEXT,
    audio_url TEXT,
    image_urls JSONB NOT NULL DEFAULT '[]',
    title TEXT,
    description TEXT,
    notes TEXT,
    location TEXT,
    tags JSONB NOT NULL DEFAULT '[]',
    submission_type TEXT NOT NULL DEFAULT 'general_report' CHECK (submission_type IN (
        'general_report', 'crisis_report', 'survivor_report',
        'monthly_summary', 'story_submission', 'financial_report'
    )),
    privacy_level TEXT CHECK (privacy_level IN ('internal', 'ally', 'donor', 'public')),
    urgency_level TEXT NOT NULL DEFAULT 'low' CHECK (urgency_level IN ('low', 'medium', 'high', 'critical')),
    new_survivors INTEGER CHECK (new_survivors >= 0),
    existing_survivors INTEGER CHECK (existing_survivors >= 0),
    total_survivors INTEGER CHECK (total_survivors >= 0),
    report_date TEXT,
    incident_date TEXT,
    start_date TEXT,
    end_date TEXT,
    processing_status TEXT NOT NULL DEFAULT 'pending' CHECK (processing_status IN (
        'pending', 'processing', 'completed', 'failed', 'retry'
    )),
    retry_count INTEGER NOT NULL DEFAULT 0 CHECK (retry_count >= 0),
    next_retry_at TIMESTAMPTZ,
    transcribed_content TEXT,
    transcription_confidence DOUBLE PRECISION,
    translated_content TEXT,
    original_language TEXT,
    translation_confidence DOUBLE PRECISION,
    sentiment_score DOUBLE PRECISION,
    ai_analysis JSONB NOT NULL DEFAULT '{}',
    validation_confidence DOUBLE PRECISION,
    validation_result JSONB,
    crisis_flag BOOLEAN NOT NULL DEFAULT FALSE,
    processing_log JSONB NOT NULL DEFAULT '[]',
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    processed_at TIMESTAMPTZ
);

CREATE INDEX IF NOT EXISTS idx_submissions_status_retry
    ON submissions (processing_status, next_retry_at);
CREATE INDEX IF NOT EXISTS idx_submissions_created_at
    ON submissions (created_at DESC);

CREATE TABLE IF NOT EXISTS submission_analytics (
    id BIGSERIAL PRIMARY KEY,
    submission_id TEXT NOT NULL,
    event_type TEXT NOT NULL,
    event_data JSONB NOT NULL DEFAULT '{}',
    timestamp TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_submission_analytics_submission
    ON submission_analytics (submission_id, timestamp);
"""

TABLES = ("submission_analytics", "submissions")


def create_schema(pool: DatabaseConnectionPool) -> None:
    """Create tables and indexes if they do not exist."""
    pool.execute_command(SCHEMA_SQL)
    logger.info("Database schema ensured", extra={"tables": list(TABLES)})


def truncate_tables(pool: DatabaseConnectionPool) -> None:
    """Remove all rows from the pipeline tables."""
    pool.execute_command(f"TRUNCATE TABLE {', '.join(TABLES)} RESTART IDENTITY")
