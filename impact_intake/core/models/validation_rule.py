"""
RuleDefinition model: configuration of one validation rule.
"""

from typing import Literal

from pydantic import BaseModel, Field

RuleSeverity = Literal["error", "warning", "info"]


class RuleDefinition(BaseModel):
    """
    Declarative settings for a registered rule, loaded from YAML or built in code.

    Attributes:
        rule_id: Registry key ("required_fields", "date_range", ...)
        name: Human-readable name
        description: What the rule checks
        severity: "error", "warning" or "info"
        active: Whether the engine evaluates the rule
        submission_types: Submission types the rule applies to (empty = all)
        parameters: Rule-specific settings (e.g. character limits)
    """

    rule_id: str = Field(..., min_length=1)
    name: str | None = None
    description: str | None = None
    severity: RuleSeverity | None = None
    active: bool = True
    submission_types: list[str] | None = None
    parameters: dict = Field(default_factory=dict)

    class Config:
        json_schema_extra = {
            "example": {
                "rule_id": "character_limits",
                "active": True,
                "submission_types": [],
                "parameters": {"limits": {"content": 10000, "title": 200}},
            }
        }
