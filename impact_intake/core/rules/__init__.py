"""
Validation engine and rule configuration management.
"""

from .rule_config import BUILTIN_RULE_IDS, RULE_PARAMETERS, EngineConfig, RuleConfigBuilder, RuleConfigLoader
from .validation_engine import ValidationEngine, build_default_rules, create_validation_engine

__all__ = [
    "BUILTIN_RULE_IDS",
    "RULE_PARAMETERS",
    "EngineConfig",
    "RuleConfigBuilder",
    "RuleConfigLoader",
    "ValidationEngine",
    "build_default_rules",
    "create_validation_engine",
]
