"""
Rule Serializer - Converts rule trees to and from storage documents.

Document shape:
    group:     {"id": ..., "logicalOperator": "AND" | "OR" | "NOT", "children": [...]}
    condition: {"id": ..., "attribute": ..., "operator": ..., "value": ...}

Stored documents are wrapped in a versioned envelope {"version": 1, "rule": {...}}.
Unknown attributes, operators and logical operators are kept verbatim on load
so that the validator can report them instead of losing user data.
"""

import json
import logging
from typing import Any, Callable, Dict, Mapping, Optional, Set
from uuid import uuid4

from segment_service.exceptions import RuleDeserializationError
from segment_service.models.enums import LogicalOperator, NodeKind
from segment_service.models.rule import Condition, Group, RuleNode, SegmentRule

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

# Operator spellings used by older rule editors
LEGACY_OPERATOR_ALIASES = {
    "in_list": "in",
    "not_in_list": "not_in",
}

# Frontend group types of older rule editors
_LEGACY_GROUP_TYPES = {
    "all": "and",
    "any": "or",
    "none": "not",
}


# ==================== SERIALIZE ====================

def _plain(value: Any) -> Any:
    """Convert a normalized condition value into JSON primitives."""
    if isinstance(value, tuple):
        return [_plain(v) for v in value]
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items()}
    return value


def serialize(node: RuleNode) -> Dict[str, Any]:
    """Serialize a rule tree into a document of plain JSON primitives."""
    if node.kind == NodeKind.GROUP:
        return {
            "id": node.id,
            "logicalOperator": str(node.logical_operator),
            "children": [serialize(child) for child in node.children],
        }
    return {
        "id": node.id,
        "attribute": node.attribute,
        "operator": str(node.operator),
        "value": _plain(node.value),
    }


def dump_document(rule: SegmentRule) -> Dict[str, Any]:
    """Versioned storage document for a rule tree."""
    return {"version": SCHEMA_VERSION, "rule": serialize(rule)}


def dumps(rule: SegmentRule) -> str:
    return json.dumps(dump_document(rule))


# ==================== DESERIALIZE ====================

class _Loader:
    """Builds nodes from one document, handing out ids for missing or duplicate ones."""

    def __init__(self, id_factory: Callable[[], str]):
        self._id_factory = id_factory
        self._seen: Set[str] = set()

    def node_id(self, raw_id: Any, path: str) -> str:
        node_id = str(raw_id) if raw_id not in (None, "") else ""
        if node_id in self._seen:
            logger.warning("Duplicate node id '%s' at %s, assigning a new id", node_id, path)
            node_id = ""
        if not node_id:
            node_id = self._id_factory()
        self._seen.add(node_id)
        return node_id

    # ---------- current format ----------

    def node(self, doc: Any, path: str) -> RuleNode:
        if not isinstance(doc, Mapping):
            raise RuleDeserializationError(f"{path}: expected an object, got {type(doc).__name__}")

        kind = doc.get("kind")
        if kind == NodeKind.GROUP or (kind is None and ("children" in doc or "logicalOperator" in doc)):
            return self.group(doc, path)
        if kind == NodeKind.CONDITION or (kind is None and ("attribute" in doc or "operator" in doc)):
            return self.condition(doc, path)
        raise RuleDeserializationError(f"{path}: node is neither a group nor a condition")

    def group(self, doc: Mapping, path: str) -> Group:
        children_doc = doc.get("children", [])
        if children_doc is None:
            children_doc = []
        if not isinstance(children_doc, list):
            raise RuleDeserializationError(f"{path}.children: expected a list")

        node_id = self.node_id(doc.get("id"), path)
        children = tuple(
            self.node(child, f"{path}.children[{idx}]")
            for idx, child in enumerate(children_doc)
        )
        return Group(
            id=node_id,
            logical_operator=_logical_operator(doc.get("logicalOperator", LogicalOperator.AND)),
            children=children,
        )

    def condition(self, doc: Mapping, path: str) -> Condition:
        attribute = doc.get("attribute")
        operator = doc.get("operator")
        try:
            return Condition(
                id=self.node_id(doc.get("id"), path),
                attribute="" if attribute is None else str(attribute),
                operator="" if operator is None else str(operator),
                value=doc.get("value"),
            )
        except ValueError as e:
            raise RuleDeserializationError(f"{path}.value: {e}")

    # ---------- legacy formats ----------

    def legacy_group(self, doc: Any, path: str) -> Group:
        """
        Backend format {"operator": "and", "conditions": [...], "groups": [...]} or
        frontend format {"type": "all", "conditions": [...]}.
        """
        if not isinstance(doc, Mapping):
            raise RuleDeserializationError(f"{path}: expected an object, got {type(doc).__name__}")

        raw_operator = doc.get("operator", doc.get("type", "and"))
        operator = _LEGACY_GROUP_TYPES.get(str(raw_operator).lower(), str(raw_operator).lower())

        items = []
        for key in ("conditions", "groups"):
            value = doc.get(key) or []
            if not isinstance(value, list):
                raise RuleDeserializationError(f"{path}.{key}: expected a list")
            items.extend((f"{path}.{key}[{idx}]", item) for idx, item in enumerate(value))

        children = tuple(self.legacy_item(item, item_path) for item_path, item in items)

        if operator == "not":
            # "none of the conditions": NOT over an OR of all children
            inner = Group(id=self._id_factory(), logical_operator=LogicalOperator.OR, children=children)
            return Group(id=self._id_factory(), logical_operator=LogicalOperator.NOT, children=(inner,))
        return Group(id=self._id_factory(), logical_operator=_logical_operator(operator), children=children)

    def legacy_item(self, doc: Any, path: str) -> RuleNode:
        if isinstance(doc, Mapping) and "conditions" in doc:
            return self.legacy_group(doc, path)
        if not isinstance(doc, Mapping):
            raise RuleDeserializationError(f"{path}: expected an object, got {type(doc).__name__}")

        attribute = doc.get("field", doc.get("attribute"))
        operator = doc.get("operator")
        operator = "" if operator is None else str(operator)
        try:
            condition = Condition(
                id=self._id_factory(),
                attribute="" if attribute is None else str(attribute),
                operator=LEGACY_OPERATOR_ALIASES.get(operator, operator),
                value=doc.get("value"),
            )
        except ValueError as e:
            raise RuleDeserializationError(f"{path}.value: {e}")
        if doc.get("negate"):
            return Group(id=self._id_factory(), logical_operator=LogicalOperator.NOT, children=(condition,))
        return condition


def _logical_operator(raw: Any) -> str:
    """Known logical operators as enum members, anything else kept verbatim."""
    text = str(raw)
    try:
        return LogicalOperator(text.upper())
    except ValueError:
        return text


def deserialize(document: Any, id_factory: Optional[Callable[[], str]] = None) -> SegmentRule:
    """
    Load a rule tree from a stored document.

    Accepts a node document, a versioned envelope, a JSON string of either,
    and the legacy {"rootGroup": ...} and {"type": ..., "conditions": ...}
    formats. Node ids are preserved; missing or duplicate ids get fresh ones.

    Raises:
        RuleDeserializationError: if the document is corrupt
    """
    loader = _Loader(id_factory or (lambda: uuid4().hex))

    if isinstance(document, (str, bytes)):
        try:
            document = json.loads(document)
        except json.JSONDecodeError as e:
            raise RuleDeserializationError(f"Rule document is not valid JSON: {e}")

    if not isinstance(document, Mapping):
        raise RuleDeserializationError(
            f"Rule document must be an object, got {type(document).__name__}"
        )

    if "version" in document and "rule" in document:
        version = document.get("version")
        if not isinstance(version, int) or isinstance(version, bool) or version > SCHEMA_VERSION:
            raise RuleDeserializationError(f"Unsupported rule document version: {version!r}")
        document = document["rule"]
        if not isinstance(document, Mapping):
            raise RuleDeserializationError("rule: expected an object")

    if "rootGroup" in document:
        return loader.legacy_group(document["rootGroup"], "rootGroup")
    if "type" in document and "conditions" in document:
        return loader.legacy_group(document, "rule")

    rule = loader.node(document, "rule")
    if rule.kind != NodeKind.GROUP:
        raise RuleDeserializationError("rule: the root node must be a group")
    return rule


def loads(text: str) -> SegmentRule:
    return deserialize(text)
