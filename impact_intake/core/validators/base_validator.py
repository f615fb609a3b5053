"""
Base interface for all validation rules.

Each rule inspects a submission's field data and reports its findings as a
ValidationResult. Rules are stateless between invocations.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any

from impact_intake.core.models.validation_result import (
    ErrorSeverity,
    ValidationError,
    ValidationResult,
    ValidationWarning,
)
from impact_intake.core.validators.messages import DEFAULT_LOCALE, get_message
from impact_intake.utils.timeutils import utcnow


class RuleContext:
    """
    Per-run evaluation context handed to every rule.

    Attributes:
        locale: Locale used to render messages
        now: Reference time for date comparisons
    """

    def __init__(self, locale: str = DEFAULT_LOCALE, now: datetime | None = None):
        self.locale = locale
        self.now = now or utcnow()

    def __repr__(self) -> str:
        return f"RuleContext(locale={self.locale!r}, now={self.now.isoformat()})"


class BaseRule(ABC):
    """
    Abstract base class for validation rules.

    Subclasses set the class attributes below and implement evaluate().
    Instances carry the mutable registry settings (active flag, applicable
    submission types) so one rule class can be configured per engine.
    """

    rule_id: str = ""
    name: str = ""
    description: str = ""
    severity: str = "error"
    confidence: float = 1.0
    default_submission_types: tuple[str, ...] = ()

    def __init__(
        self,
        active: bool = True,
        submission_types: list[str] | None = None,
    ):
        self.active = active
        if submission_types is None:
            submission_types = list(self.default_submission_types)
        self.submission_types = list(submission_types)

    def applies_to(self, submission_type: str | None) -> bool:
        """An empty type list means the rule applies to every submission type."""
        if not self.submission_types:
            return True
        return submission_type in self.submission_types

    @abstractmethod
    def evaluate(self, data: dict[str, Any], context: RuleContext) -> ValidationResult:
        """
        Validate submission data.

        Args:
            data: Field-keyed submission data
            context: Locale and reference time for this run

        Returns:
            ValidationResult with this rule's errors, warnings and confidence
        """

    def make_error(
        self,
        context: RuleContext,
        field: str,
        code: str,
        severity: ErrorSeverity,
        can_override: bool,
        suggestion: str | None = None,
    ) -> ValidationError:
        return ValidationError(
            field=field,
            code=code,
            message=get_message(code, context.locale),
            severity=severity,
            suggestion=suggestion,
            can_override=can_override,
            locale=context.locale,
        )

    def make_warning(
        self,
        context: RuleContext,
        field: str,
        code: str,
        suggestion: str | None = None,
        **params,
    ) -> ValidationWarning:
        return ValidationWarning(
            field=field,
            code=code,
            message=get_message(code, context.locale, **params),
            suggestion=suggestion,
            locale=context.locale,
        )

    def result(
        self,
        errors: list[ValidationError] | None = None,
        warnings: list[ValidationWarning] | None = None,
    ) -> ValidationResult:
        return ValidationResult.from_findings(errors or [], warnings or [], self.confidence)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(rule_id={self.rule_id}, active={self.active}, "
            f"submission_types={self.submission_types})"
        )
