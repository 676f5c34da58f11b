"""
Rule tree dataclasses: conditions (leaves) and groups (composites).
"""

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any, ClassVar, Mapping, Tuple, Union

from segment_service.models.enums import LogicalOperator, NodeKind


def _freeze(value: Any) -> Any:
    """
    Normalize a condition value to the form it takes in a stored document.

    Lists become tuples so nodes stay immutable, dates become ISO strings and
    mapping keys become strings.

    Raises:
        ValueError: for values that have no JSON representation
    """
    if value is None or isinstance(value, (str, int)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"Condition value {value!r} is not a finite number")
        return value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(_freeze(v) for v in value)
    if isinstance(value, Mapping):
        return {str(k): _freeze(v) for k, v in value.items()}
    raise ValueError(f"Condition value of type {type(value).__name__} cannot be stored")


@dataclass(frozen=True)
class Condition:
    """A single attribute-operator-value predicate.

    ``operator`` is kept as a plain string so unknown operators loaded from
    storage survive until the validator reports them. An empty attribute or
    operator marks a condition that has not been filled in yet.
    """
    id: str
    attribute: str = ""
    operator: str = ""
    value: Any = None

    kind: ClassVar[NodeKind] = NodeKind.CONDITION

    def __post_init__(self):
        object.__setattr__(self, "value", _freeze(self.value))

    @property
    def is_unset(self) -> bool:
        return not self.attribute or not self.operator


@dataclass(frozen=True)
class Group:
    """A logical group of child conditions and groups."""
    id: str
    logical_operator: str = LogicalOperator.AND
    children: Tuple["RuleNode", ...] = field(default_factory=tuple)

    kind: ClassVar[NodeKind] = NodeKind.GROUP

    def __post_init__(self):
        if not isinstance(self.children, tuple):
            object.__setattr__(self, "children", tuple(self.children))

    def child_index(self, node_id: str) -> int:
        """Position of a direct child, -1 if the node is not a direct child."""
        for idx, child in enumerate(self.children):
            if child.id == node_id:
                return idx
        return -1


RuleNode = Union[Condition, Group]

# The root group owned by a segment
SegmentRule = Group
