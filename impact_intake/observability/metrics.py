"""
Prometheus metrics collection for impact-intake

This module provides metrics instrumentation for monitoring submission
intake, processing throughput, validation quality and collaborator health.
"""
import os

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Global registry for metrics
REGISTRY = CollectorRegistry()


# =======================
# INTAKE METRICS
# =======================

submissions_created_total = Counter(
    name="intake_submissions_created_total",
    documentation="Total number of submissions accepted at intake",
    labelnames=["submission_type"],
    registry=REGISTRY,
)

submissions_rejected_total = Counter(
    name="intake_submissions_rejected_total",
    documentation="Total number of submissions rejected by validation at intake",
    labelnames=["submission_type"],
    registry=REGISTRY,
)

# =======================
# VALIDATION METRICS
# =======================

validation_errors_total = Counter(
    name="intake_validation_errors_total",
    documentation="Total number of validation errors by code",
    labelnames=["code", "field"],
    registry=REGISTRY,
)

validation_warnings_total = Counter(
    name="intake_validation_warnings_total",
    documentation="Total number of validation warnings (non-blocking issues) by code",
    labelnames=["code"],
    registry=REGISTRY,
)

# =======================
# PROCESSING METRICS
# =======================

submissions_processed_total = Counter(
    name="intake_submissions_processed_total",
    documentation="Total number of pipeline runs by resulting status",
    labelnames=["status"],  # status: completed, retry, failed
    registry=REGISTRY,
)

step_duration_seconds = Histogram(
    name="intake_step_duration_seconds",
    documentation="Time spent in each processing step in seconds",
    labelnames=["step", "status"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0],
    registry=REGISTRY,
)

processing_duration_seconds = Histogram(
    name="intake_processing_duration_seconds",
    documentation="End-to-end duration of one pipeline run in seconds",
    labelnames=["status"],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
    registry=REGISTRY,
)

crisis_detections_total = Counter(
    name="intake_crisis_detections_total",
    documentation="Total number of submissions flagged by crisis keyword detection",
    labelnames=["submission_type"],
    registry=REGISTRY,
)

# =======================
# ERROR METRICS
# =======================

retries_total = Counter(
    name="intake_retries_total",
    documentation="Total number of scheduled processing retries",
    labelnames=["step"],
    registry=REGISTRY,
)

analytics_failures_total = Counter(
    name="intake_analytics_failures_total",
    documentation="Total number of analytics events that could not be recorded",
    labelnames=["event_type"],
    registry=REGISTRY,
)

persistence_failures_total = Counter(
    name="intake_persistence_failures_total",
    documentation="Total number of pipeline status or log writes that could not be stored",
    labelnames=["operation"],
    registry=REGISTRY,
)


# =======================
# HELPER FUNCTIONS
# =======================

def generate_metrics() -> bytes:
    """
    Generate Prometheus metrics in text format

    Returns:
        Metrics in Prometheus text format
    """
    return generate_latest(REGISTRY)


def start_metrics_server(port: int | None = None) -> None:
    """
    Start HTTP server for Prometheus metrics

    Args:
        port: Port to listen on (defaults to env var METRICS_PORT or 8000)
    """
    # Imported lazily so importing this module never binds a port
    from prometheus_client import start_http_server

    metrics_port = port or int(os.getenv("METRICS_PORT", "8000"))
    start_http_server(metrics_port, registry=REGISTRY)


def increment_counter(counter: Counter, value: float = 1.0, **labels) -> None:
    counter.labels(**labels).inc(value)


def observe_histogram(histogram: Histogram, value: float, **labels) -> None:
    histogram.labels(**labels).observe(value)


def record_validation_result(result) -> None:
    """
    Record the errors and warnings of one ValidationResult.

    Args:
        result: ValidationResult produced by the engine
    """
    for error in result.errors:
        increment_counter(validation_errors_total, 1, code=error.code, field=error.field)
    for warning in result.warnings:
        increment_counter(validation_warnings_total, 1, code=warning.code)


def get_sample_value(name: str, labels: dict[str, str] | None = None) -> float | None:
    """Current value of a sample in the pipeline registry (used by tests and the CLI)."""
    return REGISTRY.get_sample_value(name, labels or {})
