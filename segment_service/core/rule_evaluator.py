"""
Rule Evaluator - Decides segment membership of a single worker.

Evaluation is pure and total over well-formed trees: unknown attributes,
unknown operators and values that do not coerce to the attribute type all
evaluate to False. The only hard error is a NOT group without exactly one
child, raised as RuleEvaluationError.

String matching operators (contains, starts_with, ends_with and array element
matching) compare lower-cased text. equals/in compare exactly.
"""

import json
from typing import Any, List, Optional, Tuple

from segment_service.core.attribute_catalog import AttributeCatalog, DEFAULT_CATALOG, OPERATORS_BY_TYPE
from segment_service.exceptions import RuleEvaluationError
from segment_service.models.attribute import AttributeDefinition
from segment_service.models.enums import AttributeType, LogicalOperator, NodeKind, Operator
from segment_service.models.rule import Condition, Group, RuleNode
from segment_service.utils.coercion import (
    as_candidates, coerce, coerce_scalar, coerce_string, resolve_path,
)


def is_empty_value(value: Any) -> bool:
    """None, empty string and empty collections count as empty."""
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def fold_text(value: Any) -> Optional[str]:
    text = coerce_string(value)
    return None if text is None else text.lower()


class RuleEvaluator:
    """Evaluates rule trees against worker attribute sets."""

    @classmethod
    def evaluate(cls,
                 node: RuleNode,
                 attributes: Any,
                 catalog: Optional[AttributeCatalog] = None) -> bool:
        """
        Evaluate a rule tree against one worker.

        Args:
            node: Root group (or any node) of the rule tree
            attributes: Worker attribute set, resolved by dot path
            catalog: Attribute catalog declaring attribute types

        Returns:
            True if the worker matches the rule

        Raises:
            RuleEvaluationError: if a NOT group does not have exactly one child
        """
        return cls._evaluate_node(node, attributes, catalog or DEFAULT_CATALOG, None)

    @classmethod
    def explain(cls,
                node: RuleNode,
                attributes: Any,
                catalog: Optional[AttributeCatalog] = None) -> Tuple[bool, List[str]]:
        """Evaluate and return the descriptions of the conditions that led to a match."""
        reasons: List[str] = []
        result = cls._evaluate_node(node, attributes, catalog or DEFAULT_CATALOG, reasons)
        return result, (reasons if result else [])

    @classmethod
    def _evaluate_node(cls, node: RuleNode, attributes: Any,
                       catalog: AttributeCatalog, reasons: Optional[List[str]]) -> bool:
        if node.kind == NodeKind.GROUP:
            return cls._evaluate_group(node, attributes, catalog, reasons)
        return cls._evaluate_condition(node, attributes, catalog, reasons)

    @classmethod
    def _evaluate_group(cls, group: Group, attributes: Any,
                        catalog: AttributeCatalog, reasons: Optional[List[str]]) -> bool:
        try:
            logical_operator = LogicalOperator(group.logical_operator)
        except ValueError:
            return False

        if logical_operator == LogicalOperator.NOT:
            if len(group.children) != 1:
                raise RuleEvaluationError(
                    f"NOT group '{group.id}' must have exactly one child, found {len(group.children)}"
                )
            # Matches inside a negated subtree do not explain the outer match
            return not cls._evaluate_node(group.children[0], attributes, catalog, None)

        # Every child is evaluated (no short circuit) so arity errors surface for every worker
        child_reasons: List[List[str]] = []
        results = []
        for child in group.children:
            collected: Optional[List[str]] = [] if reasons is not None else None
            results.append(cls._evaluate_node(child, attributes, catalog, collected))
            child_reasons.append(collected or [])

        if logical_operator == LogicalOperator.AND:
            result = all(results)
        else:
            result = any(results)

        if result and reasons is not None:
            for matched, collected in zip(results, child_reasons):
                if matched:
                    reasons.extend(collected)
        return result

    @classmethod
    def _evaluate_condition(cls, condition: Condition, attributes: Any,
                            catalog: AttributeCatalog, reasons: Optional[List[str]]) -> bool:
        definition = catalog.get(condition.attribute)
        if definition is None:
            return False
        try:
            operator = Operator(condition.operator)
        except ValueError:
            return False
        if operator not in OPERATORS_BY_TYPE[definition.type]:
            return False

        raw = resolve_path(attributes, condition.attribute)
        result = cls.apply_operator(operator, definition, raw, condition.value)

        if result and reasons is not None:
            reasons.append(describe_condition(condition))
        return result

    @classmethod
    def apply_operator(cls, operator: Operator, definition: AttributeDefinition,
                       raw: Any, expected: Any) -> bool:
        """Apply one operator to a resolved worker value and the stored condition value."""
        if operator == Operator.IS_EMPTY:
            return is_empty_value(raw)
        if operator == Operator.IS_NOT_EMPTY:
            return not is_empty_value(raw)
        if operator == Operator.EXISTS:
            return raw is not None
        if operator == Operator.NOT_EXISTS:
            return raw is None

        actual = coerce(raw, definition.type)
        if actual is None:
            return False

        if definition.type == AttributeType.ARRAY:
            return cls._apply_array_operator(operator, actual, expected)

        if operator in (Operator.CONTAINS, Operator.NOT_CONTAINS,
                        Operator.STARTS_WITH, Operator.ENDS_WITH):
            return cls._apply_text_operator(operator, actual, expected)

        if operator in (Operator.IN, Operator.NOT_IN):
            candidates = [coerce_scalar(v, definition.type) for v in as_candidates(expected)]
            found = actual in [c for c in candidates if c is not None]
            return found if operator == Operator.IN else not found

        if operator == Operator.BETWEEN:
            bounds = as_candidates(expected)
            if len(bounds) != 2:
                return False
            low = coerce_scalar(bounds[0], definition.type)
            high = coerce_scalar(bounds[1], definition.type)
            if low is None or high is None:
                return False
            return low <= actual <= high

        target = coerce_scalar(expected, definition.type)
        if target is None:
            return False

        comparisons = {
            Operator.EQUALS: lambda a, b: a == b,
            Operator.NOT_EQUALS: lambda a, b: a != b,
            Operator.GREATER_THAN: lambda a, b: a > b,
            Operator.LESS_THAN: lambda a, b: a < b,
            Operator.GREATER_THAN_OR_EQUALS: lambda a, b: a >= b,
            Operator.LESS_THAN_OR_EQUALS: lambda a, b: a <= b,
        }
        compare = comparisons.get(operator)
        return bool(compare(actual, target)) if compare else False

    @staticmethod
    def _apply_text_operator(operator: Operator, actual: str, expected: Any) -> bool:
        needle = fold_text(expected)
        if needle is None:
            return False
        haystack = actual.lower()
        if operator == Operator.CONTAINS:
            return needle in haystack
        if operator == Operator.NOT_CONTAINS:
            return needle not in haystack
        if operator == Operator.STARTS_WITH:
            return haystack.startswith(needle)
        return haystack.endswith(needle)

    @staticmethod
    def _apply_array_operator(operator: Operator, actual: Tuple[Any, ...], expected: Any) -> bool:
        elements = {fold_text(e) for e in actual} - {None}

        if operator in (Operator.CONTAINS, Operator.NOT_CONTAINS):
            needle = fold_text(expected)
            if needle is None:
                return False
            found = needle in elements
            return found if operator == Operator.CONTAINS else not found

        candidates = [fold_text(v) for v in as_candidates(expected)]
        candidates = [c for c in candidates if c is not None]
        if operator == Operator.HAS_ANY:
            return any(c in elements for c in candidates)
        if operator == Operator.HAS_ALL:
            return all(c in elements for c in candidates)
        return False


def describe_condition(condition: Condition) -> str:
    """Compact description used as a match reason."""
    value = list(condition.value) if isinstance(condition.value, tuple) else condition.value
    return f"{condition.attribute} {condition.operator} {json.dumps(value, default=str)}"


def evaluate(node: RuleNode, attributes: Any, catalog: Optional[AttributeCatalog] = None) -> bool:
    """Evaluate a rule tree against one worker attribute set."""
    return RuleEvaluator.evaluate(node, attributes, catalog)
