"""
Interfaces of the external collaborators the pipeline depends on.

Concrete vendor integrations live outside this package; anything matching
these protocols can be injected into the pipeline.
"""

from typing import Any, Protocol, runtime_checkable

from pydantic import BaseModel, Field


class TranscriptionResult(BaseModel):
    """Output of a transcription call."""

    transcript: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    duration_seconds: float = Field(0.0, ge=0.0)


class TranslationResult(BaseModel):
    """Output of a translation call."""

    translated_text: str
    source_language: str
    confidence: float = Field(..., ge=0.0, le=1.0)


class AnalysisResult(BaseModel):
    """Output of a content analysis call."""

    sentiment_score: float | None = None
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    analysis: dict[str, Any] = Field(default_factory=dict)


@runtime_checkable
class Transcriber(Protocol):
    def transcribe(self, audio: bytes, language: str) -> TranscriptionResult:
        """Transcribe audio; raises on unsupported or corrupt audio."""
        ...


@runtime_checkable
class Translator(Protocol):
    def translate(
        self, text: str, target_language: str, source_language: str | None = None
    ) -> TranslationResult:
        """Translate text, auto-detecting the source language when not given."""
        ...


@runtime_checkable
class MediaFetcher(Protocol):
    def fetch(self, reference: str) -> bytes:
        """Download the media object behind a stored reference."""
        ...


@runtime_checkable
class ContentAnalyzer(Protocol):
    def analyze(self, text: str, submission_type: str) -> AnalysisResult:
        """Score sentiment and extract structured insights."""
        ...
