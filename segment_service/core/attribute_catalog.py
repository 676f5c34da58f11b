"""
Attribute Catalog - Registry of worker attributes, their value domains and operators.
"""

from datetime import date
from typing import Any, Dict, Iterable, List, Optional, Tuple

from segment_service.models.attribute import AttributeDefinition, AttributeOption
from segment_service.models.enums import AttributeType, Operator, LIST_OPERATORS, VALUELESS_OPERATORS
from segment_service.utils.worker_attributes import SUPPORTED_ATTRIBUTES, NAME_LIKE_MARKERS

_EMPTINESS = (Operator.IS_EMPTY, Operator.IS_NOT_EMPTY, Operator.EXISTS, Operator.NOT_EXISTS)
_COMPARISONS = (
    Operator.EQUALS, Operator.NOT_EQUALS,
    Operator.GREATER_THAN, Operator.LESS_THAN,
    Operator.GREATER_THAN_OR_EQUALS, Operator.LESS_THAN_OR_EQUALS,
    Operator.BETWEEN,
)

OPERATORS_BY_TYPE: Dict[AttributeType, Tuple[Operator, ...]] = {
    AttributeType.STRING: (
        Operator.EQUALS, Operator.NOT_EQUALS,
        Operator.CONTAINS, Operator.NOT_CONTAINS,
        Operator.STARTS_WITH, Operator.ENDS_WITH,
        Operator.IN, Operator.NOT_IN,
    ) + _EMPTINESS,
    AttributeType.ENUM: (
        Operator.EQUALS, Operator.NOT_EQUALS, Operator.IN, Operator.NOT_IN,
    ) + _EMPTINESS,
    AttributeType.NUMBER: _COMPARISONS + (Operator.IN, Operator.NOT_IN) + _EMPTINESS,
    AttributeType.DATE: _COMPARISONS + _EMPTINESS,
    AttributeType.BOOLEAN: (
        Operator.EQUALS, Operator.NOT_EQUALS, Operator.EXISTS, Operator.NOT_EXISTS,
    ),
    AttributeType.ARRAY: (
        Operator.CONTAINS, Operator.NOT_CONTAINS, Operator.HAS_ANY, Operator.HAS_ALL,
    ) + _EMPTINESS,
    AttributeType.OBJECT: _EMPTINESS,
}


def get_label_for_value(options: Iterable[AttributeOption], value: Any) -> str:
    """Label of the option matching value, or the raw value as a string."""
    for option in options or ():
        if option.value == value:
            return option.label
    return "" if value is None else str(value)


class AttributeCatalog:
    """Static registry mapping attribute keys to value domains and operators."""

    def __init__(self, definitions: Optional[Iterable[AttributeDefinition]] = None):
        self._definitions: Dict[str, AttributeDefinition] = {}
        if definitions is None:
            self._load_supported_attributes()
        else:
            for definition in definitions:
                self.register(definition)

    def _load_supported_attributes(self) -> None:
        """Load attributes from the hardcoded SUPPORTED_ATTRIBUTES dict."""
        for key, attr_def in SUPPORTED_ATTRIBUTES.items():
            options = tuple(
                AttributeOption(value=value, label=label)
                for value, label in attr_def.get("options", [])
            )
            self.register(AttributeDefinition(
                key=key,
                label=attr_def["label"],
                type=AttributeType(attr_def["type"]),
                options=options,
                control=attr_def.get("control"),
            ))

    def register(self, definition: AttributeDefinition) -> None:
        """Add or replace an attribute, e.g. an organization specific custom field."""
        if definition.default_operator is None:
            definition = AttributeDefinition(
                key=definition.key,
                label=definition.label,
                type=definition.type,
                options=definition.options,
                default_operator=self._infer_default_operator(definition.key, definition.type),
                control=definition.control,
            )
        self._definitions[definition.key] = definition

    @staticmethod
    def _infer_default_operator(key: str, attribute_type: AttributeType) -> Operator:
        if attribute_type == AttributeType.ARRAY:
            return Operator.CONTAINS
        if attribute_type == AttributeType.OBJECT:
            return Operator.IS_NOT_EMPTY
        if attribute_type == AttributeType.STRING and any(m in key for m in NAME_LIKE_MARKERS):
            return Operator.CONTAINS
        return Operator.EQUALS

    def __contains__(self, attribute: str) -> bool:
        return attribute in self._definitions

    def __len__(self) -> int:
        return len(self._definitions)

    def get(self, attribute: str) -> Optional[AttributeDefinition]:
        return self._definitions.get(attribute)

    def attributes(self) -> List[AttributeDefinition]:
        return list(self._definitions.values())

    def get_options_for_attribute(self, attribute: str) -> List[AttributeOption]:
        definition = self._definitions.get(attribute)
        return list(definition.options) if definition else []

    def get_attribute_value_label(self, attribute: str, value: Any) -> str:
        return get_label_for_value(self.get_options_for_attribute(attribute), value)

    def get_attribute_label(self, attribute: str) -> str:
        definition = self._definitions.get(attribute)
        return definition.label if definition else attribute

    def operators_for(self, attribute: str) -> Tuple[Operator, ...]:
        """Operators valid for the attribute's type. Empty for unknown attributes."""
        definition = self._definitions.get(attribute)
        if definition is None:
            return ()
        return OPERATORS_BY_TYPE[definition.type]

    def is_valid_operator(self, attribute: str, operator: str) -> bool:
        return operator in self.operators_for(attribute)

    def default_operator(self, attribute: str) -> Optional[Operator]:
        definition = self._definitions.get(attribute)
        return definition.default_operator if definition else None

    def default_value(self, attribute: str, operator: Optional[str] = None) -> Any:
        """
        Default value for a freshly selected attribute/operator pair.

        Value-less operators get None, list operators an empty list, between a
        two element range; otherwise the default depends on the attribute type.
        """
        definition = self._definitions.get(attribute)
        if definition is None:
            return None
        if operator is None:
            operator = definition.default_operator
        if operator in VALUELESS_OPERATORS:
            return None
        if operator in LIST_OPERATORS:
            return []

        if definition.type == AttributeType.NUMBER:
            if operator == Operator.BETWEEN:
                return [0, 0]
            return 0
        if definition.type == AttributeType.DATE:
            today = date.today().isoformat()
            if operator == Operator.BETWEEN:
                return [today, today]
            return today
        if definition.type == AttributeType.BOOLEAN:
            return True
        # strings, enums and the single element of array contains
        return ""

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        """JSON friendly description of every attribute."""
        result = {}
        for key, definition in self._definitions.items():
            entry = {
                "label": definition.label,
                "type": str(definition.type),
                "operators": [str(op) for op in OPERATORS_BY_TYPE[definition.type]],
                "defaultOperator": str(definition.default_operator),
                "options": [{"value": o.value, "label": o.label} for o in definition.options],
            }
            if definition.control:
                entry["control"] = dict(definition.control)
            result[key] = entry
        return result


DEFAULT_CATALOG = AttributeCatalog()
