"""
Rule Formatter - Renders rule trees as plain English for segment listings and previews.
"""

from typing import Any, Optional

from segment_service.core.attribute_catalog import AttributeCatalog, DEFAULT_CATALOG
from segment_service.models.enums import LogicalOperator, NodeKind, Operator, VALUELESS_OPERATORS
from segment_service.models.rule import Condition, Group, RuleNode

OPERATOR_TEXT = {
    Operator.EQUALS: "is",
    Operator.NOT_EQUALS: "is not",
    Operator.CONTAINS: "contains",
    Operator.NOT_CONTAINS: "does not contain",
    Operator.STARTS_WITH: "starts with",
    Operator.ENDS_WITH: "ends with",
    Operator.GREATER_THAN: "is greater than",
    Operator.LESS_THAN: "is less than",
    Operator.GREATER_THAN_OR_EQUALS: "is at least",
    Operator.LESS_THAN_OR_EQUALS: "is at most",
    Operator.BETWEEN: "is between",
    Operator.IN: "is one of",
    Operator.NOT_IN: "is not one of",
    Operator.IS_EMPTY: "is empty",
    Operator.IS_NOT_EMPTY: "is not empty",
    Operator.EXISTS: "exists",
    Operator.NOT_EXISTS: "does not exist",
    Operator.HAS_ANY: "has any of",
    Operator.HAS_ALL: "has all of",
}


class RuleFormatter:
    """Formats rule trees into human readable text."""

    def __init__(self, catalog: Optional[AttributeCatalog] = None):
        self.catalog = catalog or DEFAULT_CATALOG

    def to_human_readable(self, rule: RuleNode) -> str:
        return self._format_node(rule, nested=False)

    def _format_node(self, node: RuleNode, nested: bool) -> str:
        if node.kind == NodeKind.GROUP:
            return self._format_group(node, nested)
        return self.format_condition(node)

    def _format_group(self, group: Group, nested: bool) -> str:
        if not group.children:
            return "(empty rule)"

        if group.logical_operator == LogicalOperator.NOT:
            inner = " AND ".join(self._format_node(c, nested=True) for c in group.children)
            return f"NOT ({inner})" if not inner.startswith("(") else f"NOT {inner}"

        joiner = " OR " if group.logical_operator == LogicalOperator.OR else " AND "
        parts = [self._format_node(child, nested=True) for child in group.children]
        text = joiner.join(parts)
        if nested and len(parts) > 1:
            return f"({text})"
        return text

    def format_condition(self, condition: Condition) -> str:
        if not condition.attribute:
            return "(incomplete condition)"

        label = self.catalog.get_attribute_label(condition.attribute)
        if not condition.operator:
            return f"{label} (no operator)"

        operator_text = OPERATOR_TEXT.get(condition.operator, str(condition.operator).replace("_", " "))
        if condition.operator in VALUELESS_OPERATORS:
            return f"{label} {operator_text}"

        if condition.operator == Operator.BETWEEN and isinstance(condition.value, tuple) \
                and len(condition.value) == 2:
            low, high = (self._format_scalar(condition.attribute, v) for v in condition.value)
            return f"{label} {operator_text} {low} and {high}"

        return f"{label} {operator_text} {self._format_value(condition.attribute, condition.value)}"

    def _format_scalar(self, attribute: str, value: Any) -> str:
        if value is None:
            return "nothing"
        if isinstance(value, bool):
            return "true" if value else "false"
        return self.catalog.get_attribute_value_label(attribute, value)

    def _format_value(self, attribute: str, value: Any) -> str:
        if not isinstance(value, tuple):
            return self._format_scalar(attribute, value)

        items = [self._format_scalar(attribute, v) for v in value]
        if not items:
            return "(empty list)"
        if len(items) == 1:
            return items[0]
        if len(items) == 2:
            return f"{items[0]} and {items[1]}"
        return f"{', '.join(items[:-1])}, and {items[-1]}"


def to_human_readable(rule: RuleNode, catalog: Optional[AttributeCatalog] = None) -> str:
    return RuleFormatter(catalog).to_human_readable(rule)
