"""
Admin CLI for the submission intake pipeline.

Usage:
    python -m impact_intake.cli.admin_cli validate --file <path> [--locale ne]
    python -m impact_intake.cli.admin_cli submit --file <path>
    python -m impact_intake.cli.admin_cli process --id <submission_id>
    python -m impact_intake.cli.admin_cli process-due [--limit 100] [--metrics-port 9100]
    python -m impact_intake.cli.admin_cli trace --id <submission_id>
    python -m impact_intake.cli.admin_cli analytics-report [--since <iso>] [--until <iso>]
    python -m impact_intake.cli.admin_cli rule-stats
    python -m impact_intake.cli.admin_cli init-db

Database settings default to the DB_* environment variables; a .env file in
the working directory is loaded first.
"""

import argparse
import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from impact_intake.core.errors import ImpactIntakeError, SubmissionRejectedError
from impact_intake.core.models import ValidationResult
from impact_intake.core.rules.rule_config import EngineConfig, RuleConfigLoader
from impact_intake.core.rules.validation_engine import ValidationEngine, create_validation_engine
from impact_intake.observability import metrics
from impact_intake.observability.logger import get_logger
from impact_intake.processing.config import PipelineConfig, load_pipeline_config
from impact_intake.processing.pipeline import ProcessingOutcome, SubmissionPipeline
from impact_intake.processing.submission_service import SubmissionService
from impact_intake.processing.translation import ScriptDetectingTranslator
from impact_intake.utils.timeutils import parse_datetime
from impact_intake.utils.validation import InputValidationError, validate_locale, validate_submission_id
from impact_intake.warehouse.analytics import PostgresAnalyticsSink, summarize_events
from impact_intake.warehouse.connection import DatabaseConnectionPool
from impact_intake.warehouse.repository import PostgresSubmissionRepository
from impact_intake.warehouse.schema_mgmt import create_schema

logger = get_logger(__name__)

DEFAULT_RULES_CONFIG = "config/validation_rules.yaml"


def format_timestamp(ts: datetime | str | None) -> str:
    """Format timestamp for display."""
    if isinstance(ts, str):
        return ts
    return ts.strftime("%Y-%m-%d %H:%M:%S") if ts else "N/A"


def load_payload(path: str) -> dict[str, Any]:
    """Read a submission payload from a JSON or YAML file."""
    file_path = Path(path)
    if not file_path.exists():
        raise InputValidationError(f"File not found: {path}")

    with open(file_path, "r", encoding="utf-8") as f:
        if file_path.suffix.lower() in (".yaml", ".yml"):
            payload = yaml.safe_load(f)
        else:
            payload = json.load(f)

    if not isinstance(payload, dict):
        raise InputValidationError(f"Submission file must contain an object: {path}")
    return payload


def load_engine_config(args) -> EngineConfig:
    path = Path(args.rules_config)
    if not path.exists():
        logger.info(f"Rules config {path} not found, using built-in defaults")
        return EngineConfig()
    return RuleConfigLoader(path).load_engine_config()


def load_pipeline_settings(args) -> PipelineConfig:
    path = Path(args.rules_config)
    if not path.exists():
        return PipelineConfig()
    return load_pipeline_config(path)


def build_engine(args) -> ValidationEngine:
    config = load_engine_config(args)
    locale = validate_locale(getattr(args, "locale", None))
    if locale:
        config = config.model_copy(update={"locale": locale})
    return create_validation_engine(config)


def build_pool(args) -> DatabaseConnectionPool:
    return DatabaseConnectionPool(
        host=args.db_host,
        port=args.db_port,
        database=args.db_name,
        user=args.db_user,
        password=args.db_password,
    )


def build_service(args, pool: DatabaseConnectionPool) -> SubmissionService:
    engine = build_engine(args)
    repository = PostgresSubmissionRepository(pool)
    analytics = PostgresAnalyticsSink(pool)
    pipeline = SubmissionPipeline(
        engine=engine,
        repository=repository,
        analytics=analytics,
        translator=ScriptDetectingTranslator(),
        config=load_pipeline_settings(args),
    )
    return SubmissionService(engine, repository, analytics, pipeline=pipeline)


def print_validation_result(result: ValidationResult) -> None:
    status = "VALID" if result.is_valid else "INVALID"
    print(f"\n{'=' * 60}")
    print(f"VALIDATION RESULT: {status} (confidence {result.confidence:.2f})")
    print(f"{'=' * 60}\n")

    if result.errors:
        print("Errors:")
        for error in result.errors:
            override = " [overridable]" if error.can_override else ""
            print(f"  {error.field:<20} {error.code:<28} {error.severity:<8} {error.message}{override}")
            if error.suggestion:
                print(f"  {'':<20} -> {error.suggestion}")
        print()

    if result.warnings:
        print("Warnings:")
        for warning in result.warnings:
            print(f"  {warning.field:<20} {warning.code:<28} {warning.message}")
        print()

    if result.overridden_errors:
        print("Overridden:")
        for error in result.overridden_errors:
            print(f"  {error.field:<20} {error.code}")
        print()


def print_outcome(outcome: ProcessingOutcome) -> None:
    print(f"\nSubmission: {outcome.submission_id}")
    print(f"  Status: {outcome.status}")
    print(f"  Retry count: {outcome.retry_count}")
    if outcome.next_retry_at:
        print(f"  Next retry: {format_timestamp(outcome.next_retry_at)}")
    if outcome.crisis_flag:
        print(f"  CRISIS: {', '.join(outcome.crisis_keywords) or 'flagged'}")
    if outcome.error:
        print(f"  Error ({outcome.failed_step}): {outcome.error}")


def validate_command(args):
    """
    Validate a submission file without storing it.

    Args:
        args: Command line arguments
    """
    try:
        payload = load_payload(args.file)
        engine = build_engine(args)
        result = engine.validate(payload, submission_type=args.submission_type)
    except (ImpactIntakeError, ValueError) as e:
        logger.error(f"Error validating submission: {e}")
        print(f"\nError: {e}")
        sys.exit(1)

    print_validation_result(result)
    if not result.is_valid:
        sys.exit(1)


def submit_command(args):
    """Validate and store a submission file."""
    pool = build_pool(args)
    try:
        pool.open()
        service = build_service(args, pool)
        submission = service.create_submission(load_payload(args.file), locale=args.locale)
        print(f"\nSubmission created: {submission.id}")
        print(f"  Type: {submission.submission_type}")
        print(f"  Status: {submission.processing_status}")

    except SubmissionRejectedError as e:
        print_validation_result(e.result)
        sys.exit(1)

    except Exception as e:
        logger.error(f"Error submitting: {e}", exc_info=True)
        print(f"\nError: {e}")
        sys.exit(1)

    finally:
        pool.close()


def process_command(args):
    """Run the processing pipeline for one submission."""
    pool = build_pool(args)
    try:
        submission_id = validate_submission_id(args.id)
        pool.open()
        service = build_service(args, pool)
        outcome = service.pipeline.process(submission_id)
        print_outcome(outcome)

    except Exception as e:
        logger.error(f"Error processing submission: {e}", exc_info=True)
        print(f"\nError: {e}")
        sys.exit(1)

    finally:
        pool.close()


def process_due_command(args):
    """Reclaim stale submissions, then release those whose retry time has come and process them."""
    if args.metrics_port:
        metrics.start_metrics_server(args.metrics_port)

    pool = build_pool(args)
    try:
        pool.open()
        service = build_service(args, pool)
        outcomes = service.process_due(limit=args.limit)

        if not outcomes:
            print("\nNo submissions due for retry.")
            return

        print(f"\nProcessed {len(outcomes)} submission(s):")
        print(f"{'Submission':<38} {'Status':<12} {'Retries':>7}")
        print(f"{'-' * 60}")
        for outcome in outcomes:
            note = "" if outcome.persisted else "  (status not stored)"
            print(f"{outcome.submission_id:<38} {outcome.status:<12} {outcome.retry_count:>7}{note}")

    except Exception as e:
        logger.error(f"Error processing due retries: {e}", exc_info=True)
        print(f"\nError: {e}")
        sys.exit(1)

    finally:
        pool.close()


def trace_command(args):
    """
    Show the processing log of a submission.

    Args:
        args: Command line arguments
    """
    pool = build_pool(args)
    try:
        pool.open()
        repository = PostgresSubmissionRepository(pool)
        service = SubmissionService(build_engine(args), repository, PostgresAnalyticsSink(pool))
        submission = service.get_submission(args.id)

        print(f"\n{'=' * 80}")
        print(f"PROCESSING LOG FOR SUBMISSION: {submission.id}")
        print(f"{'=' * 80}\n")
        print(f"Status: {submission.processing_status}   Retries: {submission.retry_count}   "
              f"Crisis: {'yes' if submission.crisis_flag else 'no'}\n")

        if not submission.processing_log:
            print("No processing steps recorded yet.")
            return

        print(f"{'Timestamp':<20} {'Step':<18} {'Status':<10} {'ms':>9}  {'Message'}")
        print(f"{'-' * 80}")
        for entry in submission.processing_log:
            duration = f"{entry.duration_ms:.1f}" if entry.duration_ms is not None else "-"
            print(
                f"{format_timestamp(entry.timestamp):<20} {entry.step:<18} "
                f"{entry.status:<10} {duration:>9}  {entry.message or ''}"
            )
        print(f"\n{'=' * 80}\n")

    except Exception as e:
        logger.error(f"Error tracing submission: {e}", exc_info=True)
        print(f"\nError: {e}")
        sys.exit(1)

    finally:
        pool.close()


def analytics_report_command(args):
    """Aggregate analytics events into a report."""
    since = parse_datetime(args.since) if args.since else None
    until = parse_datetime(args.until) if args.until else None

    pool = build_pool(args)
    try:
        pool.open()
        events = PostgresAnalyticsSink(pool).events(since=since, until=until)
        report = summarize_events(events)

        print(f"\n{'=' * 60}")
        print("SUBMISSION ANALYTICS")
        print(f"{'=' * 60}\n")
        print(f"  Total submissions:       {report.total_submissions}")
        print(f"  Completed:               {report.completed}")
        print(f"  Failed:                  {report.failed}")
        print(f"  Retries:                 {report.retries}")
        print(f"  Crisis detections:       {report.crisis_detections}")
        print(f"  Success rate:            {report.success_rate:.2f}%")
        print(f"  Avg processing time:     {report.average_processing_time_ms:.1f} ms\n")

        print("Events by Type:")
        for event_type, count in sorted(report.events_by_type.items(), key=lambda x: x[1], reverse=True):
            print(f"  {event_type:<30} {count:>8}")
        print(f"\n{'=' * 60}\n")

    except Exception as e:
        logger.error(f"Error generating analytics report: {e}", exc_info=True)
        print(f"\nError: {e}")
        sys.exit(1)

    finally:
        pool.close()


def rule_stats_command(args):
    """Display the configured validation rules."""
    try:
        engine = build_engine(args)
    except (ImpactIntakeError, ValueError) as e:
        print(f"\nError: {e}")
        sys.exit(1)

    stats = engine.get_validation_stats()
    print(f"\n{'=' * 60}")
    print("VALIDATION RULES")
    print(f"{'=' * 60}\n")
    print(f"  Total rules: {stats['total_rules']}")
    print(f"  Active rules: {stats['active_rules']}")
    print(f"  Overrides: {stats['total_overrides']}\n")

    print(f"{'Rule':<24} {'Severity':<10} {'Active':<7} {'Types'}")
    print(f"{'-' * 60}")
    for rule in engine.rules:
        types = ", ".join(rule.submission_types) if rule.submission_types else "all"
        print(f"{rule.rule_id:<24} {rule.severity:<10} {'yes' if rule.active else 'no':<7} {types}")
    print()


def init_db_command(args):
    """Create the database tables."""
    pool = build_pool(args)
    try:
        pool.open()
        create_schema(pool)
        print("\nDatabase schema is up to date.")

    except Exception as e:
        logger.error(f"Error creating schema: {e}", exc_info=True)
        print(f"\nError: {e}")
        sys.exit(1)

    finally:
        pool.close()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Admin CLI for the submission intake pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    # Global options; None falls back to DB_* environment variables
    parser.add_argument("--db-host", default=None, help="Database host (default: $DB_HOST)")
    parser.add_argument("--db-port", type=int, default=None, help="Database port (default: $DB_PORT)")
    parser.add_argument("--db-name", default=None, help="Database name (default: $DB_NAME)")
    parser.add_argument("--db-user", default=None, help="Database user (default: $DB_USER)")
    parser.add_argument("--db-password", default=None, help="Database password (default: $DB_PASSWORD)")
    parser.add_argument(
        "--rules-config",
        default=DEFAULT_RULES_CONFIG,
        help=f"Validation rules YAML file (default: {DEFAULT_RULES_CONFIG})"
    )
    parser.add_argument("--locale", default=None, help="Message locale (en, ne, km)")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    validate_parser = subparsers.add_parser("validate", help="Validate a submission file")
    validate_parser.add_argument("--file", required=True, help="JSON or YAML submission file")
    validate_parser.add_argument(
        "--type",
        dest="submission_type",
        help="Submission type (default: the file's submission_type)"
    )

    submit_parser = subparsers.add_parser("submit", help="Validate and store a submission")
    submit_parser.add_argument("--file", required=True, help="JSON or YAML submission file")

    process_parser = subparsers.add_parser("process", help="Process one submission")
    process_parser.add_argument("--id", required=True, help="Submission ID")

    due_parser = subparsers.add_parser("process-due", help="Process submissions due for retry")
    due_parser.add_argument(
        "--limit",
        type=int,
        default=100,
        help="Maximum number of submissions to process (default: 100)"
    )
    due_parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port while processing"
    )

    trace_parser = subparsers.add_parser("trace", help="Show the processing log of a submission")
    trace_parser.add_argument("--id", required=True, help="Submission ID")

    report_parser = subparsers.add_parser("analytics-report", help="Aggregate analytics events")
    report_parser.add_argument("--since", help="Only events at or after this ISO timestamp")
    report_parser.add_argument("--until", help="Only events at or before this ISO timestamp")

    subparsers.add_parser("rule-stats", help="Show configured validation rules")
    subparsers.add_parser("init-db", help="Create database tables")

    return parser


COMMANDS = {
    "validate": validate_command,
    "submit": submit_command,
    "process": process_command,
    "process-due": process_due_command,
    "trace": trace_command,
    "analytics-report": analytics_report_command,
    "rule-stats": rule_stats_command,
    "init-db": init_db_command,
}


def main(argv: list[str] | None = None):
    """Main entry point for admin CLI."""
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    COMMANDS[args.command](args)


if __name__ == "__main__":
    main()
