"""Enum definitions for the segment rule engine."""

from enum import StrEnum


class NodeKind(StrEnum):
    """Discriminator tag of a rule tree node."""
    CONDITION = "condition"
    GROUP = "group"


class LogicalOperator(StrEnum):
    """Logical operators of a rule group."""
    AND = "AND"
    OR = "OR"
    NOT = "NOT"


class AttributeType(StrEnum):
    """Value domains of worker attributes."""
    STRING = "string"
    ENUM = "enum"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class Operator(StrEnum):
    """Condition operators."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    GREATER_THAN_OR_EQUALS = "greater_than_or_equals"
    LESS_THAN_OR_EQUALS = "less_than_or_equals"
    BETWEEN = "between"
    IN = "in"
    NOT_IN = "not_in"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"
    HAS_ANY = "has_any"
    HAS_ALL = "has_all"


# Operators that take no value
VALUELESS_OPERATORS = frozenset({
    Operator.IS_EMPTY, Operator.IS_NOT_EMPTY, Operator.EXISTS, Operator.NOT_EXISTS,
})

# Operators whose value is a list of candidates
LIST_OPERATORS = frozenset({
    Operator.IN, Operator.NOT_IN, Operator.HAS_ANY, Operator.HAS_ALL,
})


class ValidationIssueType(StrEnum):
    """Kinds of problems reported by the rule validator."""
    UNSET_ATTRIBUTE = "UNSET_ATTRIBUTE"
    UNKNOWN_ATTRIBUTE = "UNKNOWN_ATTRIBUTE"
    UNSET_OPERATOR = "UNSET_OPERATOR"
    INVALID_OPERATOR = "INVALID_OPERATOR"
    MISSING_VALUE = "MISSING_VALUE"
    INVALID_VALUE_TYPE = "INVALID_VALUE_TYPE"
    EMPTY_GROUP = "EMPTY_GROUP"
    STRUCTURAL_ERROR = "STRUCTURAL_ERROR"


class Permission(StrEnum):
    """Permissions checked against the session context."""
    SEGMENTS_READ = "segments:read"
    SEGMENTS_WRITE = "segments:write"
