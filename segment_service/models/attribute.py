"""
Attribute catalog dataclasses.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from segment_service.models.enums import AttributeType, Operator


@dataclass(frozen=True)
class AttributeOption:
    """Enumerated choice for an attribute with a closed value domain."""
    value: str
    label: str


@dataclass(frozen=True)
class AttributeDefinition:
    """A worker attribute that conditions can reference."""
    key: str
    label: str
    type: AttributeType
    options: Tuple[AttributeOption, ...] = ()
    default_operator: Optional[Operator] = None
    control: Optional[Dict[str, Any]] = field(default=None, compare=False, hash=False)
