"""
CustomRule - wraps a plain function as a registered validation rule.
"""

from collections.abc import Callable
from typing import Any

from impact_intake.core.models.validation_result import ValidationResult

from .base_validator import BaseRule, RuleContext

RuleFunction = Callable[[dict[str, Any], RuleContext], ValidationResult]


class CustomRule(BaseRule):
    """
    Validates using a caller-supplied function.

    The function signature should be:
        def my_rule(data: dict[str, Any], context: RuleContext) -> ValidationResult:
            ...

    Exceptions raised by the function are not caught here; the engine
    isolates them per rule.
    """

    def __init__(
        self,
        rule_id: str,
        func: RuleFunction,
        name: str | None = None,
        description: str = "",
        severity: str = "error",
        confidence: float = 1.0,
        active: bool = True,
        submission_types: list[str] | None = None,
    ):
        if not rule_id:
            raise ValueError("CustomRule requires a rule_id")
        if not callable(func):
            raise ValueError("CustomRule func must be callable")
        super().__init__(active, submission_types)
        self.rule_id = rule_id
        self.name = name or rule_id
        self.description = description
        self.severity = severity
        self.confidence = confidence
        self.func = func

    def evaluate(self, data: dict[str, Any], context: RuleContext) -> ValidationResult:
        return self.func(data, context)
