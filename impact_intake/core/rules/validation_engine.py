"""
Validation engine for evaluating submission data against registered rules.

The engine holds a mutable registry of rules and overrides, runs every
applicable rule against a submission and aggregates the findings into one
ValidationResult.
"""

import threading
from typing import Any

from impact_intake.core.models import (
    Submission,
    ValidationError,
    ValidationOverride,
    ValidationResult,
    ValidationWarning,
)
from impact_intake.core.rules.rule_config import BUILTIN_RULE_IDS, RULE_PARAMETERS, EngineConfig
from impact_intake.core.validators import (
    BaseRule,
    CharacterLimitRule,
    DataConsistencyRule,
    DateRangeRule,
    DuplicateDetectionRule,
    RequiredFieldsRule,
    RuleContext,
    SurvivorCountRule,
    get_message,
)
from impact_intake.core.validators.messages import DEFAULT_LOCALE
from impact_intake.observability.logger import get_logger
from impact_intake.utils.timeutils import Clock, utcnow

logger = get_logger(__name__)


class ValidationEngine:
    """
    Runs registered rules against submission data.

    Every active rule whose submission types include the submission's type
    (or that applies to all types) is evaluated; there is no short-circuit.
    A rule that raises is reported as a `validation_rule_error` warning and
    the remaining rules still run. Errors with an active override are moved
    to `overridden_errors`.

    Registry and override mutations are serialized with a lock; evaluation
    works on a snapshot and can run concurrently.
    """

    def __init__(
        self,
        rules: list[BaseRule] | None = None,
        locale: str = DEFAULT_LOCALE,
        clock: Clock | None = None,
    ):
        """
        Initialize the engine.

        Args:
            rules: Rules to register, in evaluation order
            locale: Default locale for messages
            clock: Callable returning the current aware UTC datetime
        """
        self.locale = locale
        self.clock = clock or utcnow
        self._lock = threading.RLock()
        self._rules: dict[str, BaseRule] = {}
        self._overrides: dict[str, ValidationOverride] = {}
        for rule in rules or []:
            self.add_rule(rule)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def validate(
        self,
        data: dict[str, Any] | Submission,
        submission_type: str | None = None,
        locale: str | None = None,
    ) -> ValidationResult:
        """
        Validate submission data against all applicable rules.

        Args:
            data: Field-keyed submission data, or a Submission
            submission_type: Declared type; defaults to data["submission_type"]
            locale: Message locale; defaults to the engine locale

        Returns:
            Aggregated ValidationResult
        """
        if isinstance(data, Submission):
            data = data.to_validation_payload()
        if submission_type is None:
            submission_type = data.get("submission_type")

        context = RuleContext(locale=locale or self.locale, now=self.clock())

        with self._lock:
            rules = list(self._rules.values())
            overrides = dict(self._overrides)

        errors: list[ValidationError] = []
        warnings: list[ValidationWarning] = []
        total_confidence = 0.0
        applicable_rules = 0

        for rule in rules:
            if not rule.active or not rule.applies_to(submission_type):
                continue

            try:
                result = rule.evaluate(data, context)
            except Exception as e:
                logger.error(
                    f"Validation rule {rule.rule_id} failed: {e}",
                    extra={"rule_id": rule.rule_id, "error_type": type(e).__name__},
                    exc_info=True,
                )
                warnings.append(
                    ValidationWarning(
                        field="system",
                        code="validation_rule_error",
                        message=get_message("validation_rule_error", context.locale, rule=rule.name or rule.rule_id),
                        suggestion=f"Rule '{rule.rule_id}' was skipped",
                        locale=context.locale,
                    )
                )
                continue

            errors.extend(result.errors)
            warnings.extend(result.warnings)
            total_confidence += result.confidence
            applicable_rules += 1

        remaining, overridden = self._apply_overrides(errors, overrides, context)

        confidence = total_confidence / applicable_rules if applicable_rules > 0 else 1.0

        return ValidationResult(
            is_valid=len(remaining) == 0,
            errors=remaining,
            warnings=warnings,
            confidence=max(0.0, min(1.0, confidence)),
            timestamp=context.now,
            overridden_errors=overridden,
        )

    @staticmethod
    def _apply_overrides(
        errors: list[ValidationError],
        overrides: dict[str, ValidationOverride],
        context: RuleContext,
    ) -> tuple[list[ValidationError], list[ValidationError]]:
        """Split errors into (still blocking, suppressed by an active override)."""
        remaining = []
        overridden = []
        for error in errors:
            override = overrides.get(error.code)
            if override is not None and override.is_active(context.now):
                overridden.append(error)
            else:
                remaining.append(error)
        return remaining, overridden

    # ------------------------------------------------------------------
    # Rule registry
    # ------------------------------------------------------------------

    def add_rule(self, rule: BaseRule) -> None:
        """Register a rule, replacing any rule with the same id in place."""
        if not rule.rule_id:
            raise ValueError("Rule must have a rule_id")
        with self._lock:
            self._rules[rule.rule_id] = rule
        logger.debug(f"Registered validation rule {rule.rule_id}")

    def remove_rule(self, rule_id: str) -> bool:
        """Remove a rule; returns False if it was not registered."""
        with self._lock:
            return self._rules.pop(rule_id, None) is not None

    def get_rule(self, rule_id: str) -> BaseRule | None:
        with self._lock:
            return self._rules.get(rule_id)

    def set_rule_active(self, rule_id: str, active: bool) -> None:
        """
        Toggle a rule on or off.

        Raises:
            KeyError: If no rule with this id is registered
        """
        with self._lock:
            if rule_id not in self._rules:
                raise KeyError(f"Unknown validation rule: {rule_id}")
            self._rules[rule_id].active = active

    @property
    def rules(self) -> list[BaseRule]:
        with self._lock:
            return list(self._rules.values())

    # ------------------------------------------------------------------
    # Overrides
    # ------------------------------------------------------------------

    def add_override(self, override: ValidationOverride) -> None:
        """Add or replace the override for an error code."""
        with self._lock:
            self._overrides[override.error_code] = override
        logger.info(
            f"Validation override added for {override.error_code}",
            extra={
                "error_code": override.error_code,
                "authorized_by": override.authorized_by,
                "expires_at": override.expires_at.isoformat() if override.expires_at else None,
            },
        )

    def remove_override(self, error_code: str) -> bool:
        """Remove an override; returns False if none existed."""
        with self._lock:
            return self._overrides.pop(error_code, None) is not None

    def active_overrides(self) -> list[ValidationOverride]:
        """Overrides that would suppress errors right now."""
        now = self.clock()
        with self._lock:
            return [o for o in self._overrides.values() if o.is_active(now)]

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def get_validation_stats(self) -> dict[str, Any]:
        """
        Get summary of registered rules and overrides.

        Returns:
            Dictionary with rule and override counts
        """
        with self._lock:
            rules = list(self._rules.values())
            total_overrides = len(self._overrides)

        by_severity: dict[str, int] = {}
        for rule in rules:
            by_severity[rule.severity] = by_severity.get(rule.severity, 0) + 1

        return {
            "total_rules": len(rules),
            "active_rules": sum(1 for r in rules if r.active),
            "total_overrides": total_overrides,
            "rules_by_severity": by_severity,
        }


def build_default_rules(config: EngineConfig | None = None) -> list[BaseRule]:
    """
    Instantiate the built-in rules configured by an EngineConfig.

    A rule's `parameters` override the engine-wide settings for that rule:
    `limits` is merged over `character_limits` and `marker` replaces
    `duplicate_marker`.

    Raises:
        ValueError: If a rule setting references an unknown rule id or parameter
    """
    config = config or EngineConfig()
    unknown = set(config.rules) - set(BUILTIN_RULE_IDS)
    if unknown:
        raise ValueError(f"Unknown validation rule(s) in configuration: {sorted(unknown)}")

    params: dict[str, dict[str, Any]] = {}
    for rule_id in BUILTIN_RULE_IDS:
        definition = config.rules.get(rule_id)
        values = dict(definition.parameters) if definition else {}
        bad = set(values) - RULE_PARAMETERS[rule_id]
        if bad:
            raise ValueError(f"Unknown parameter(s) for rule '{rule_id}': {sorted(bad)}")
        params[rule_id] = values

    limits = {**config.character_limits, **params["character_limits"].get("limits", {})}
    rules: list[BaseRule] = [
        RequiredFieldsRule(**params["required_fields"]),
        SurvivorCountRule(),
        DateRangeRule(**params["date_range"]),
        CharacterLimitRule(limits=limits),
        DataConsistencyRule(),
        DuplicateDetectionRule(marker=params["duplicate_detection"].get("marker", config.duplicate_marker)),
    ]

    for rule in rules:
        definition = config.rules.get(rule.rule_id)
        if definition is None:
            continue
        rule.active = definition.active
        if definition.submission_types is not None:
            rule.submission_types = list(definition.submission_types)
        if definition.name:
            rule.name = definition.name
        if definition.severity:
            rule.severity = definition.severity

    return rules


def create_validation_engine(
    config: EngineConfig | None = None,
    clock: Clock | None = None,
) -> ValidationEngine:
    """
    Create a validation engine with the built-in rules.

    Args:
        config: Engine settings; defaults to EngineConfig()
        clock: Callable returning the current aware UTC datetime

    Returns:
        Configured ValidationEngine
    """
    config = config or EngineConfig()
    return ValidationEngine(rules=build_default_rules(config), locale=config.locale, clock=clock)
