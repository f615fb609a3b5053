"""
Core data models for the intake pipeline.

All models use Pydantic for runtime validation and type safety.
"""

from .analytics_event import AnalyticsEvent
from .processing_log import ProcessingLogEntry
from .submission import Submission
from .validation_override import ValidationOverride
from .validation_result import ValidationError, ValidationResult, ValidationWarning
from .validation_rule import RuleDefinition

__all__ = [
    "AnalyticsEvent",
    "ProcessingLogEntry",
    "RuleDefinition",
    "Submission",
    "ValidationError",
    "ValidationOverride",
    "ValidationResult",
    "ValidationWarning",
]
