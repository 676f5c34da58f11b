"""
Membership Evaluator - Converts rule trees into Polars expressions for batch membership.

The expressions reproduce RuleEvaluator's truth table over a frame built by
WorkerFrameBuilder: nulls stand for unresolved or non-coercible values and
only the emptiness operators read the ::exists / ::empty flag columns.
"""

import logging
from typing import Dict, List, Mapping, Optional

import polars as pl
from opentelemetry import trace

from segment_service.core.attribute_catalog import AttributeCatalog, DEFAULT_CATALOG, OPERATORS_BY_TYPE
from segment_service.core.rule_builder import referenced_attributes
from segment_service.core.rule_evaluator import fold_text
from segment_service.core.worker_frame import (
    WORKER_ID_COLUMN, WorkerFrameBuilder, empty_column, exists_column,
)
from segment_service.exceptions import RuleEvaluationError
from segment_service.models.attribute import AttributeDefinition
from segment_service.models.enums import AttributeType, LogicalOperator, NodeKind, Operator
from segment_service.models.rule import Condition, Group, RuleNode
from segment_service.utils.coercion import as_candidates, coerce_scalar

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


class MembershipEvaluator:
    """Compiles rule trees into Polars expressions and evaluates them over worker frames."""

    @classmethod
    def to_expression(cls, node: RuleNode, catalog: Optional[AttributeCatalog] = None) -> pl.Expr:
        """
        Convert a rule tree into a boolean Polars expression.

        Raises:
            RuleEvaluationError: if a NOT group does not have exactly one child
        """
        catalog = catalog or DEFAULT_CATALOG
        if node.kind == NodeKind.GROUP:
            return cls._group_expression(node, catalog)
        return cls._condition_expression(node, catalog)

    @classmethod
    def _group_expression(cls, group: Group, catalog: AttributeCatalog) -> pl.Expr:
        try:
            logical_operator = LogicalOperator(group.logical_operator)
        except ValueError:
            return pl.lit(False)

        if logical_operator == LogicalOperator.NOT:
            if len(group.children) != 1:
                raise RuleEvaluationError(
                    f"NOT group '{group.id}' must have exactly one child, found {len(group.children)}"
                )
            return ~cls.to_expression(group.children[0], catalog)

        exprs = [cls.to_expression(child, catalog) for child in group.children]
        if logical_operator == LogicalOperator.AND:
            return pl.all_horizontal(exprs) if exprs else pl.lit(True)
        return pl.any_horizontal(exprs) if exprs else pl.lit(False)

    @classmethod
    def _condition_expression(cls, condition: Condition, catalog: AttributeCatalog) -> pl.Expr:
        definition = catalog.get(condition.attribute)
        if definition is None:
            return pl.lit(False)
        try:
            operator = Operator(condition.operator)
        except ValueError:
            return pl.lit(False)
        if operator not in OPERATORS_BY_TYPE[definition.type]:
            return pl.lit(False)

        key = definition.key
        if operator == Operator.IS_EMPTY:
            return pl.col(empty_column(key))
        if operator == Operator.IS_NOT_EMPTY:
            return ~pl.col(empty_column(key))
        if operator == Operator.EXISTS:
            return pl.col(exists_column(key))
        if operator == Operator.NOT_EXISTS:
            return ~pl.col(exists_column(key))

        if definition.type == AttributeType.ARRAY:
            return cls._array_expression(operator, key, condition.value)
        if operator in (Operator.CONTAINS, Operator.NOT_CONTAINS,
                        Operator.STARTS_WITH, Operator.ENDS_WITH):
            return cls._text_expression(operator, key, condition.value)
        return cls._value_expression(operator, definition, condition.value)

    @staticmethod
    def _text_expression(operator: Operator, column: str, value) -> pl.Expr:
        needle = fold_text(value)
        if needle is None:
            return pl.lit(False)
        text = pl.col(column).str.to_lowercase()
        if operator == Operator.CONTAINS:
            return text.str.contains(needle, literal=True).fill_null(False)
        if operator == Operator.NOT_CONTAINS:
            return text.str.contains(needle, literal=True).not_().fill_null(False)
        if operator == Operator.STARTS_WITH:
            return text.str.starts_with(needle).fill_null(False)
        return text.str.ends_with(needle).fill_null(False)

    @staticmethod
    def _array_expression(operator: Operator, column: str, value) -> pl.Expr:
        elements = pl.col(column).list.eval(pl.element().str.to_lowercase())

        if operator in (Operator.CONTAINS, Operator.NOT_CONTAINS):
            needle = fold_text(value)
            if needle is None:
                return pl.lit(False)
            found = elements.list.contains(needle)
            if operator == Operator.CONTAINS:
                return found.fill_null(False)
            return found.not_().fill_null(False)

        candidates = [c for c in (fold_text(v) for v in as_candidates(value)) if c is not None]
        if operator == Operator.HAS_ANY:
            if not candidates:
                return pl.lit(False)
            return pl.any_horizontal([elements.list.contains(c) for c in candidates]).fill_null(False)
        if operator == Operator.HAS_ALL:
            if not candidates:
                return pl.col(column).is_not_null()
            return pl.all_horizontal([elements.list.contains(c) for c in candidates]).fill_null(False)
        return pl.lit(False)

    @staticmethod
    def _value_expression(operator: Operator, definition: AttributeDefinition, value) -> pl.Expr:
        col = pl.col(definition.key)

        if operator in (Operator.IN, Operator.NOT_IN):
            candidates = [coerce_scalar(v, definition.type) for v in as_candidates(value)]
            candidates = [c for c in candidates if c is not None]
            if not candidates:
                return pl.lit(False) if operator == Operator.IN else col.is_not_null()
            found = col.is_in(candidates)
            if operator == Operator.IN:
                return found.fill_null(False)
            return found.not_().fill_null(False)

        if operator == Operator.BETWEEN:
            bounds = as_candidates(value)
            if len(bounds) != 2:
                return pl.lit(False)
            low = coerce_scalar(bounds[0], definition.type)
            high = coerce_scalar(bounds[1], definition.type)
            if low is None or high is None:
                return pl.lit(False)
            return col.is_between(pl.lit(low), pl.lit(high), closed="both").fill_null(False)

        target = coerce_scalar(value, definition.type)
        if target is None:
            return pl.lit(False)

        operators = {
            Operator.EQUALS: lambda c, v: c.eq(v),
            Operator.NOT_EQUALS: lambda c, v: c.ne(v),
            Operator.GREATER_THAN: lambda c, v: c.gt(v),
            Operator.LESS_THAN: lambda c, v: c.lt(v),
            Operator.GREATER_THAN_OR_EQUALS: lambda c, v: c.ge(v),
            Operator.LESS_THAN_OR_EQUALS: lambda c, v: c.le(v),
        }
        build = operators.get(operator)
        if build is None:
            return pl.lit(False)
        return build(col, pl.lit(target)).fill_null(False)

    # ==================== BATCH EVALUATION ====================

    @classmethod
    def members(cls,
                rule: RuleNode,
                frame: pl.DataFrame,
                catalog: Optional[AttributeCatalog] = None) -> List[str]:
        """Worker ids of the frame rows that match the rule, in frame order."""
        expr = cls.to_expression(rule, catalog)
        return (
            frame.lazy()
            .filter(expr)
            .select(WORKER_ID_COLUMN)
            .collect()
            .get_column(WORKER_ID_COLUMN)
            .to_list()
        )

    @classmethod
    def evaluate_segments(cls,
                          rules: Mapping[str, RuleNode],
                          workers: Mapping[str, object],
                          catalog: Optional[AttributeCatalog] = None) -> Dict[str, List[str]]:
        """
        Compute the members of several segments in a single pass over the workers.

        Args:
            rules: Mapping of segment id to rule tree
            workers: Mapping of worker id to worker attribute set
            catalog: Attribute catalog declaring attribute types

        Returns:
            Mapping of segment id to matching worker ids
        """
        catalog = catalog or DEFAULT_CATALOG
        if not rules:
            return {}
        if not workers:
            # Compile anyway so malformed NOT groups still raise
            for rule in rules.values():
                cls.to_expression(rule, catalog)
            return {segment_id: [] for segment_id in rules}

        with tracer.start_as_current_span("membership.evaluate_segments") as span:
            span.set_attribute("num_segments", len(rules))
            span.set_attribute("num_workers", len(workers))

            attributes: List[str] = []
            for rule in rules.values():
                for key in referenced_attributes(rule):
                    if key not in attributes:
                        attributes.append(key)
            frame = WorkerFrameBuilder.build(workers, catalog, attributes)

            # One boolean column per segment, named by position to avoid clashes with attribute keys
            segment_ids = list(rules.keys())
            exprs = [
                cls.to_expression(rules[segment_id], catalog).alias(f"__segment_{idx}")
                for idx, segment_id in enumerate(segment_ids)
            ]
            result = frame.lazy().select([pl.col(WORKER_ID_COLUMN)] + exprs).collect()

            worker_ids = result.get_column(WORKER_ID_COLUMN)
            memberships = {}
            for idx, segment_id in enumerate(segment_ids):
                mask = result.get_column(f"__segment_{idx}")
                memberships[segment_id] = worker_ids.filter(mask).to_list()
                logger.debug("Segment %s matched %d of %d workers",
                             segment_id, len(memberships[segment_id]), len(worker_ids))
            return memberships
