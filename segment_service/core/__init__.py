"""Core rule engine components."""

from .attribute_catalog import AttributeCatalog, DEFAULT_CATALOG
from .membership_evaluator import MembershipEvaluator
from .rule_builder import RuleBuilder
from .rule_evaluator import RuleEvaluator, evaluate
from .rule_formatter import RuleFormatter, to_human_readable
from .rule_serializer import deserialize, serialize
from .rule_validator import RuleValidator, ValidationIssue, ValidationResult

__all__ = [
    'AttributeCatalog',
    'DEFAULT_CATALOG',
    'MembershipEvaluator',
    'RuleBuilder',
    'RuleEvaluator',
    'evaluate',
    'RuleFormatter',
    'to_human_readable',
    'serialize',
    'deserialize',
    'RuleValidator',
    'ValidationIssue',
    'ValidationResult',
]
