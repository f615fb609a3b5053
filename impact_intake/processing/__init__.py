"""
Submission processing: state machine, retry policy, enrichment pipeline and
the intake service.
"""

from .config import PipelineConfig, load_pipeline_config
from .pipeline import ProcessingOutcome, SubmissionPipeline
from .retry import RetryDecision, RetryPolicy
from .submission_service import SubmissionService

__all__ = [
    "PipelineConfig",
    "ProcessingOutcome",
    "RetryDecision",
    "RetryPolicy",
    "SubmissionPipeline",
    "SubmissionService",
    "load_pipeline_config",
]
