"""
Rule Builder - Immutable edits of a rule tree.

Every edit returns a new tree and leaves the previous one untouched; unchanged
subtrees are shared between the two. A rejected edit raises RuleStructureError
and produces no tree at all, so the caller's current tree is never malformed.
"""

import logging
from dataclasses import replace
from typing import Any, Callable, Iterable, Iterator, List, Mapping, Optional, Set
from uuid import uuid4

from segment_service.core.attribute_catalog import AttributeCatalog, DEFAULT_CATALOG
from segment_service.exceptions import RuleStructureError
from segment_service.models.enums import LogicalOperator, NodeKind, Operator
from segment_service.models.rule import Condition, Group, RuleNode, SegmentRule

logger = logging.getLogger(__name__)

ROOT_ID = "root"
_PATCHABLE_FIELDS = frozenset({"attribute", "operator", "value"})


# ==================== TREE HELPERS ====================

def iter_nodes(node: RuleNode) -> Iterator[RuleNode]:
    """Yield every node of the tree in pre-order."""
    yield node
    if node.kind == NodeKind.GROUP:
        for child in node.children:
            yield from iter_nodes(child)


def find_node(rule: RuleNode, node_id: str) -> Optional[RuleNode]:
    for node in iter_nodes(rule):
        if node.id == node_id:
            return node
    return None


def find_parent(rule: RuleNode, node_id: str) -> Optional[Group]:
    for node in iter_nodes(rule):
        if node.kind == NodeKind.GROUP and node.child_index(node_id) >= 0:
            return node
    return None


def referenced_attributes(rule: RuleNode) -> List[str]:
    """Distinct attribute keys used by the conditions of a tree, in tree order."""
    seen = []
    for node in iter_nodes(rule):
        if node.kind == NodeKind.CONDITION and node.attribute and node.attribute not in seen:
            seen.append(node.attribute)
    return seen


def references_any(rule: RuleNode, fields: Iterable[str]) -> bool:
    """
    True if a condition of the tree reads one of the given worker fields.

    A field matches its own key, the keys nested below it ("employment" covers
    "employment.department") and the object attribute it is nested in.
    """
    fields = [f for f in fields if f]
    for attribute in referenced_attributes(rule):
        for changed in fields:
            if attribute == changed or attribute.startswith(changed + ".") or changed.startswith(attribute + "."):
                return True
    return False


def _transform(node: RuleNode, node_id: str, fn: Callable[[RuleNode], RuleNode]) -> Optional[RuleNode]:
    """Rebuild the path to node_id with fn applied to it. None if node_id is absent."""
    if node.id == node_id:
        return fn(node)
    if node.kind != NodeKind.GROUP:
        return None
    for idx, child in enumerate(node.children):
        updated = _transform(child, node_id, fn)
        if updated is not None:
            children = node.children[:idx] + (updated,) + node.children[idx + 1:]
            return replace(node, children=children)
    return None


def _require_group(rule: SegmentRule, group_id: str) -> Group:
    node = find_node(rule, group_id)
    if node is None:
        raise RuleStructureError(f"Group '{group_id}' not found")
    if node.kind != NodeKind.GROUP:
        raise RuleStructureError(f"Node '{group_id}' is a condition, not a group")
    return node


def _require_new_id(rule: SegmentRule, node_id: str) -> None:
    if not node_id:
        raise RuleStructureError("Node id must not be empty")
    if find_node(rule, node_id) is not None:
        raise RuleStructureError(f"Node id '{node_id}' is already in use")


def _parse_logical_operator(operator: Any) -> LogicalOperator:
    try:
        return LogicalOperator(str(operator).upper())
    except ValueError:
        raise RuleStructureError(f"Unknown logical operator: {operator!r}")


def _append_child(rule: SegmentRule, parent_group_id: str, child: RuleNode) -> SegmentRule:
    parent = _require_group(rule, parent_group_id)
    if parent.logical_operator == LogicalOperator.NOT and parent.children:
        raise RuleStructureError(f"NOT group '{parent_group_id}' already has its single child")
    return _transform(rule, parent_group_id, lambda g: replace(g, children=g.children + (child,)))


# ==================== OPERATIONS ====================

def create_empty_rule(root_id: str = ROOT_ID) -> SegmentRule:
    """Root AND group without children."""
    return Group(id=root_id, logical_operator=LogicalOperator.AND, children=())


def add_condition(rule: SegmentRule, parent_group_id: str, node_id: str) -> SegmentRule:
    """Append an unset condition to a group."""
    _require_new_id(rule, node_id)
    return _append_child(rule, parent_group_id, Condition(id=node_id))


def add_group(rule: SegmentRule,
              parent_group_id: str,
              logical_operator: Any,
              node_id: str) -> SegmentRule:
    """Append an empty nested group to a group."""
    operator = _parse_logical_operator(logical_operator)
    _require_new_id(rule, node_id)
    return _append_child(rule, parent_group_id, Group(id=node_id, logical_operator=operator))


def update_condition(rule: SegmentRule,
                     condition_id: str,
                     patch: Mapping[str, Any],
                     catalog: Optional[AttributeCatalog] = None) -> SegmentRule:
    """
    Patch attribute, operator and/or value of a condition.

    Changing the attribute resets operator and value to the new attribute's
    defaults; an operator or value given in the same patch is applied on top
    of those defaults. Changing only the operator resets the value unless the
    patch also carries one.
    """
    catalog = catalog or DEFAULT_CATALOG
    unknown = set(patch) - _PATCHABLE_FIELDS
    if unknown:
        raise RuleStructureError(f"Cannot patch condition fields: {sorted(unknown)}")

    node = find_node(rule, condition_id)
    if node is None:
        raise RuleStructureError(f"Condition '{condition_id}' not found")
    if node.kind != NodeKind.CONDITION:
        raise RuleStructureError(f"Node '{condition_id}' is a group, not a condition")

    attribute, operator, value = node.attribute, node.operator, node.value

    if "attribute" in patch and patch["attribute"] != node.attribute:
        attribute = patch["attribute"] or ""
        default_operator = catalog.default_operator(attribute)
        operator = default_operator if default_operator is not None else ""
        value = catalog.default_value(attribute, operator) if operator else None

    if "operator" in patch and patch["operator"] != operator:
        operator = _check_operator(catalog, attribute, patch["operator"])
        value = catalog.default_value(attribute, operator) if operator else None

    if "value" in patch:
        value = patch["value"]

    try:
        updated = Condition(id=node.id, attribute=attribute, operator=operator, value=value)
    except ValueError as e:
        raise RuleStructureError(str(e)) from e
    return _transform(rule, condition_id, lambda _: updated)


def _check_operator(catalog: AttributeCatalog, attribute: str, operator: Any) -> str:
    operator = "" if operator is None else str(operator)
    if attribute not in catalog or not operator:
        return operator
    if not catalog.is_valid_operator(attribute, operator):
        raise RuleStructureError(f"Operator '{operator}' is not valid for attribute '{attribute}'")
    return Operator(operator)


def remove_node(rule: SegmentRule, node_id: str) -> SegmentRule:
    """Detach a node and its subtree from its parent. The root cannot be removed."""
    if node_id == rule.id:
        raise RuleStructureError("The root group cannot be removed")
    parent = find_parent(rule, node_id)
    if parent is None:
        raise RuleStructureError(f"Node '{node_id}' not found")
    return _transform(
        rule, parent.id,
        lambda g: replace(g, children=tuple(c for c in g.children if c.id != node_id)),
    )


def change_logical_operator(rule: SegmentRule, group_id: str, operator: Any) -> SegmentRule:
    """
    Switch a group between AND, OR and NOT.

    Switching to NOT while the group has more than one child is rejected;
    children are never dropped implicitly.
    """
    logical_operator = _parse_logical_operator(operator)
    group = _require_group(rule, group_id)
    if logical_operator == LogicalOperator.NOT and len(group.children) > 1:
        raise RuleStructureError(
            f"Group '{group_id}' has {len(group.children)} children; NOT accepts exactly one"
        )
    return _transform(rule, group_id, lambda g: replace(g, logical_operator=logical_operator))


def move_node(rule: SegmentRule,
              node_id: str,
              new_parent_id: str,
              index: Optional[int] = None) -> SegmentRule:
    """
    Move a node (with its subtree) under another group, or reorder it within
    its current group. index counts positions after the node was taken out;
    None appends.
    """
    if node_id == rule.id:
        raise RuleStructureError("The root group cannot be moved")
    node = find_node(rule, node_id)
    if node is None or find_parent(rule, node_id) is None:
        raise RuleStructureError(f"Node '{node_id}' not found")
    target = _require_group(rule, new_parent_id)
    if find_node(node, new_parent_id) is not None:
        raise RuleStructureError(f"Cannot move node '{node_id}' into its own subtree")
    if target.logical_operator == LogicalOperator.NOT and any(c.id != node_id for c in target.children):
        raise RuleStructureError(f"NOT group '{new_parent_id}' already has its single child")

    detached = remove_node(rule, node_id)

    def insert(group: Group) -> Group:
        children = list(group.children)
        position = len(children) if index is None else max(0, min(index, len(children)))
        children.insert(position, node)
        return replace(group, children=tuple(children))

    return _transform(detached, new_parent_id, insert)


# ==================== EDITING SESSION ====================

class RuleBuilder:
    """
    Editing session over one rule tree.

    Holds the current tree, hands out node ids that are never reused within the
    session, notifies the host with the whole updated tree after every edit and
    keeps an undo history. Saving is left to the host.
    """

    def __init__(self,
                 initial_rule: Optional[SegmentRule] = None,
                 on_change: Optional[Callable[[SegmentRule], None]] = None,
                 catalog: Optional[AttributeCatalog] = None,
                 id_factory: Optional[Callable[[], str]] = None):
        self._rule = initial_rule if initial_rule is not None else create_empty_rule()
        self._on_change = on_change
        self._catalog = catalog or DEFAULT_CATALOG
        self._id_factory = id_factory or (lambda: uuid4().hex)
        self._history: List[SegmentRule] = []
        self._issued_ids: Set[str] = {node.id for node in iter_nodes(self._rule)}
        self.last_created_id: Optional[str] = None

    @property
    def rule(self) -> SegmentRule:
        return self._rule

    @property
    def can_undo(self) -> bool:
        return bool(self._history)

    def _next_id(self) -> str:
        node_id = self._id_factory()
        if node_id in self._issued_ids:
            raise RuleStructureError(f"Id factory returned an already issued id '{node_id}'")
        self._issued_ids.add(node_id)
        return node_id

    def _commit(self, updated: SegmentRule) -> SegmentRule:
        self._history.append(self._rule)
        self._rule = updated
        if self._on_change is not None:
            self._on_change(updated)
        return updated

    def add_condition(self, parent_group_id: str) -> SegmentRule:
        node_id = self._next_id()
        updated = add_condition(self._rule, parent_group_id, node_id)
        self.last_created_id = node_id
        return self._commit(updated)

    def add_group(self, parent_group_id: str, logical_operator: Any = LogicalOperator.AND) -> SegmentRule:
        node_id = self._next_id()
        updated = add_group(self._rule, parent_group_id, logical_operator, node_id)
        self.last_created_id = node_id
        return self._commit(updated)

    def update_condition(self, condition_id: str, patch: Mapping[str, Any]) -> SegmentRule:
        return self._commit(update_condition(self._rule, condition_id, patch, self._catalog))

    def remove_node(self, node_id: str) -> SegmentRule:
        return self._commit(remove_node(self._rule, node_id))

    def change_logical_operator(self, group_id: str, operator: Any) -> SegmentRule:
        return self._commit(change_logical_operator(self._rule, group_id, operator))

    def move_node(self, node_id: str, new_parent_id: str, index: Optional[int] = None) -> SegmentRule:
        return self._commit(move_node(self._rule, node_id, new_parent_id, index))

    def undo(self) -> SegmentRule:
        """Restore the tree from before the last edit."""
        if not self._history:
            raise RuleStructureError("Nothing to undo")
        self._rule = self._history.pop()
        logger.debug("Undo restored rule %s", self._rule.id)
        if self._on_change is not None:
            self._on_change(self._rule)
        return self._rule
