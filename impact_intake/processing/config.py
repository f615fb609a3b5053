"""
Pipeline configuration.

Read from the `pipeline` section of the same YAML file as the validation
rules.
"""

from pathlib import Path

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from impact_intake.core.errors import ConfigurationError
from impact_intake.core.rules.rule_config import RuleConfigLoader

DEFAULT_CRISIS_KEYWORDS = (
    "emergency",
    "urgent",
    "crisis",
    "help",
    "danger",
    "immediate",
    "critical",
    "serious",
    "threat",
    "violence",
    "abuse",
    "attack",
)
DEFAULT_RETRY_DELAYS_MS = (1000, 2000, 4000, 8000, 16000)
DEFAULT_MAX_RETRIES = 3


class PipelineConfig(BaseModel):
    """
    Settings for the submission processing pipeline.

    Attributes:
        crisis_keywords: Keywords whose presence sets the crisis flag
        max_retries: Retry ceiling; beyond it a submission is failed
        retry_delays_ms: Backoff table, indexed by min(retry_count - 1, len - 1)
        target_language: Canonical working language for translation
        transcription_language: Language hint passed to the transcriber
        cache_size: Number of recent outcomes kept in the in-memory cache
        processing_lease_seconds: How long a run may hold a submission in
            "processing" before another call may reclaim it
    """

    crisis_keywords: list[str] = Field(default_factory=lambda: list(DEFAULT_CRISIS_KEYWORDS))
    max_retries: int = Field(DEFAULT_MAX_RETRIES, ge=0)
    retry_delays_ms: list[int] = Field(default_factory=lambda: list(DEFAULT_RETRY_DELAYS_MS), min_length=1)
    target_language: str = Field("en", min_length=2)
    transcription_language: str = Field("en", min_length=2)
    cache_size: int = Field(256, ge=0)
    processing_lease_seconds: int = Field(300, gt=0)

    @field_validator("retry_delays_ms")
    @classmethod
    def check_delays_positive(cls, v):
        if any(delay < 0 for delay in v):
            raise ValueError("retry delays must be non-negative")
        return v

    @field_validator("crisis_keywords")
    @classmethod
    def normalize_keywords(cls, v):
        keywords = [k.strip().lower() for k in v if k and k.strip()]
        if not keywords:
            raise ValueError("at least one crisis keyword is required")
        return keywords


def load_pipeline_config(config_path: str | Path) -> PipelineConfig:
    """
    Load the `pipeline` section of a rules YAML file.

    A missing section yields the defaults.

    Raises:
        ConfigurationError: If the section is not a mapping or holds invalid values
    """
    raw = RuleConfigLoader(config_path).load_raw()
    section = raw.get("pipeline") or {}
    if not isinstance(section, dict):
        raise ConfigurationError("'pipeline' section must be a mapping")
    try:
        return PipelineConfig(**section)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid pipeline configuration: {e}") from e
