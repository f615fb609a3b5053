"""
Rule configuration management.

Loads validation engine settings from YAML files and provides a builder for
constructing the same settings in code.
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError

from impact_intake.core.errors import ConfigurationError
from impact_intake.core.models.validation_rule import RuleDefinition
from impact_intake.core.validators.character_limit_validator import DEFAULT_CHARACTER_LIMITS
from impact_intake.core.validators.duplicate_validator import DEFAULT_DUPLICATE_MARKER
from impact_intake.core.validators.messages import DEFAULT_LOCALE

BUILTIN_RULE_IDS = (
    "required_fields",
    "survivor_count_logic",
    "date_range",
    "character_limits",
    "data_consistency",
    "duplicate_detection",
)

# Parameters each built-in rule accepts under `params`/`parameters`
RULE_PARAMETERS: dict[str, frozenset[str]] = {
    "required_fields": frozenset({"required_fields"}),
    "survivor_count_logic": frozenset(),
    "date_range": frozenset({"date_fields"}),
    "character_limits": frozenset({"limits"}),
    "data_consistency": frozenset(),
    "duplicate_detection": frozenset({"marker"}),
}


class EngineConfig(BaseModel):
    """
    Settings for a validation engine with the built-in rules.

    Attributes:
        locale: Locale used for validation messages
        character_limits: Per-field maximum text lengths
        duplicate_marker: Marker string flagged by duplicate detection
        rules: Per-rule settings keyed by rule id (active flag, submission types)
    """

    locale: str = DEFAULT_LOCALE
    character_limits: dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_CHARACTER_LIMITS))
    duplicate_marker: str = DEFAULT_DUPLICATE_MARKER
    rules: dict[str, RuleDefinition] = Field(default_factory=dict)


class RuleConfigLoader:
    """
    Loads engine configuration from a YAML file.

    Expected YAML format:
    ```yaml
    locale: en
    character_limits:
      content: 10000
      title: 200
    duplicate_marker: test
    rules:
      survivor_count_logic:
        active: true
        submission_types: [survivor_report, monthly_summary]
      duplicate_detection:
        active: false
    pipeline:
      max_retries: 3
    ```
    The optional `pipeline` section is read by load_pipeline_config().
    """

    def __init__(self, config_path: str | Path):
        """
        Initialize the rule config loader.

        Args:
            config_path: Path to the YAML configuration file
        """
        self.config_path = Path(config_path)
        if not self.config_path.exists():
            raise FileNotFoundError(f"Rule configuration file not found: {config_path}")

    def load_raw(self) -> dict[str, Any]:
        """Parse the YAML document; an empty file yields an empty dict."""
        with open(self.config_path, encoding="utf-8") as f:
            try:
                config = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {self.config_path}: {e}") from e

        if config is None:
            return {}
        if not isinstance(config, dict):
            raise ConfigurationError(f"Configuration root in {self.config_path} must be a mapping")
        return config

    def load_engine_config(self) -> EngineConfig:
        """
        Load and validate the engine section of the configuration.

        Returns:
            EngineConfig suitable for create_validation_engine()

        Raises:
            ConfigurationError: If the file contents are invalid
        """
        config = self.load_raw()
        rules_section = config.get("rules") or {}
        if not isinstance(rules_section, dict):
            raise ConfigurationError("'rules' section must map rule ids to settings")

        rules = {}
        for rule_id, rule_def in rules_section.items():
            rules[rule_id] = self._parse_rule(rule_id, rule_def)

        engine_section = {k: v for k, v in config.items() if k in ("locale", "character_limits", "duplicate_marker")}
        try:
            return EngineConfig(**engine_section, rules=rules)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid engine configuration: {e}") from e

    def _parse_rule(self, rule_id: str, rule_def: Any) -> RuleDefinition:
        """
        Parse a single rule definition.

        Raises:
            ConfigurationError: If rule definition is invalid
        """
        if rule_def is None:
            rule_def = {}
        if not isinstance(rule_def, dict):
            raise ConfigurationError(f"Settings for rule '{rule_id}' must be a mapping")

        severity = rule_def.get("severity")
        if severity is not None and severity not in ("error", "warning", "info"):
            raise ConfigurationError(
                f"Invalid severity '{severity}' for rule '{rule_id}'. Must be 'error', 'warning' or 'info'"
            )

        parameters = rule_def.get("params", rule_def.get("parameters", {})) or {}
        if not isinstance(parameters, dict):
            raise ConfigurationError(f"Parameters for rule '{rule_id}' must be a mapping")
        unknown = set(parameters) - RULE_PARAMETERS.get(rule_id, frozenset())
        if unknown:
            raise ConfigurationError(f"Unknown parameter(s) for rule '{rule_id}': {sorted(unknown)}")

        try:
            return RuleDefinition(
                rule_id=rule_id,
                name=rule_def.get("name"),
                description=rule_def.get("description"),
                severity=severity,
                active=rule_def.get("active", rule_def.get("enabled", True)),
                submission_types=rule_def.get("submission_types"),
                parameters=parameters,
            )
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid settings for rule '{rule_id}': {e}") from e


class RuleConfigBuilder:
    """
    Programmatically build engine configurations (for testing or dynamic setups).
    """

    def __init__(self):
        """Start from the default configuration."""
        self._locale = DEFAULT_LOCALE
        self._limits = dict(DEFAULT_CHARACTER_LIMITS)
        self._marker = DEFAULT_DUPLICATE_MARKER
        self._rules: dict[str, RuleDefinition] = {}

    def with_locale(self, locale: str) -> "RuleConfigBuilder":
        self._locale = locale
        return self

    def with_character_limit(self, field_name: str, limit: int) -> "RuleConfigBuilder":
        self._limits[field_name] = limit
        return self

    def with_duplicate_marker(self, marker: str) -> "RuleConfigBuilder":
        self._marker = marker
        return self

    def disable_rule(self, rule_id: str) -> "RuleConfigBuilder":
        """Register the rule but keep it inactive."""
        self._rules[rule_id] = self._rule(rule_id).model_copy(update={"active": False})
        return self

    def restrict_rule(self, rule_id: str, submission_types: list[str]) -> "RuleConfigBuilder":
        """Apply a rule only to the given submission types."""
        self._rules[rule_id] = self._rule(rule_id).model_copy(update={"submission_types": list(submission_types)})
        return self

    def with_rule_parameters(self, rule_id: str, **parameters) -> "RuleConfigBuilder":
        rule = self._rule(rule_id)
        self._rules[rule_id] = rule.model_copy(update={"parameters": {**rule.parameters, **parameters}})
        return self

    def _rule(self, rule_id: str) -> RuleDefinition:
        return self._rules.get(rule_id) or RuleDefinition(rule_id=rule_id)

    def build(self) -> EngineConfig:
        """Build and return the engine configuration."""
        return EngineConfig(
            locale=self._locale,
            character_limits=dict(self._limits),
            duplicate_marker=self._marker,
            rules=dict(self._rules),
        )
