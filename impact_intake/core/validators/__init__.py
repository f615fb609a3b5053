"""
Validation rule implementations.

Provides the built-in submission rules (required fields, survivor counts,
date ranges, character limits, data consistency, duplicate detection) and a
function-backed custom rule.
"""

from .base_validator import BaseRule, RuleContext
from .character_limit_validator import DEFAULT_CHARACTER_LIMITS, CharacterLimitRule
from .consistency_validator import DataConsistencyRule
from .custom_validator import CustomRule
from .date_range_validator import DateRangeRule
from .duplicate_validator import DuplicateDetectionRule
from .messages import get_message, supported_locales
from .required_field_validator import RequiredFieldsRule
from .survivor_count_validator import SurvivorCountRule, coerce_count

__all__ = [
    "BaseRule",
    "RuleContext",
    "RequiredFieldsRule",
    "SurvivorCountRule",
    "DateRangeRule",
    "CharacterLimitRule",
    "DataConsistencyRule",
    "DuplicateDetectionRule",
    "CustomRule",
    "DEFAULT_CHARACTER_LIMITS",
    "coerce_count",
    "get_message",
    "supported_locales",
]
