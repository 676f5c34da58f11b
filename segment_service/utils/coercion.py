"""
Value coercion and attribute path resolution shared by the evaluators.

Every coercion returns None when the value does not fit the target type.
Callers treat None as "does not match" so evaluation never raises.
"""

import math
from datetime import date, datetime
from typing import Any, Mapping, Optional, Tuple

from segment_service.models.enums import AttributeType

_TRUE_STRINGS = frozenset({"true", "1", "yes", "y"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "n"})


def coerce_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, float):
        return None if math.isnan(value) else value
    if isinstance(value, int):
        # JSON integers are unbounded, floats are not
        try:
            return float(value)
        except OverflowError:
            return None
    if isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
        return None if math.isnan(number) else number
    return None


def coerce_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            return None
    return None


def coerce_boolean(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    return None


def coerce_string(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        try:
            return str(value)
        except ValueError:
            # int longer than sys.get_int_max_str_digits()
            return None
    return None


def coerce_array(value: Any) -> Optional[Tuple[Any, ...]]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(value)
    return None


def coerce_object(value: Any) -> Optional[Mapping]:
    return value if isinstance(value, Mapping) else None


_COERCERS = {
    AttributeType.STRING: coerce_string,
    AttributeType.ENUM: coerce_string,
    AttributeType.NUMBER: coerce_number,
    AttributeType.DATE: coerce_date,
    AttributeType.BOOLEAN: coerce_boolean,
    AttributeType.ARRAY: coerce_array,
    AttributeType.OBJECT: coerce_object,
}


def coerce(value: Any, attribute_type: AttributeType) -> Any:
    """Coerce a value to the declared attribute type, None if it does not fit."""
    if value is None:
        return None
    return _COERCERS[attribute_type](value)


def coerce_scalar(value: Any, attribute_type: AttributeType) -> Any:
    """Coerce a single list element. Array attributes hold string elements."""
    if attribute_type == AttributeType.ARRAY:
        return coerce_string(value)
    return coerce(value, attribute_type)


def as_candidates(value: Any) -> Tuple[Any, ...]:
    """Stored value of a list operator as a tuple. Scalars become one-element tuples."""
    if value is None:
        return ()
    if isinstance(value, (list, tuple, set, frozenset)):
        return tuple(value)
    return (value,)


def resolve_path(attributes: Any, path: str) -> Any:
    """
    Look up a dot path ("employment.department") in a worker attribute set.

    Flat dotted keys take precedence over nested lookup. Returns None when any
    segment of the path is missing.
    """
    if not path or attributes is None:
        return None
    if isinstance(attributes, Mapping) and path in attributes:
        return attributes[path]

    current = attributes
    for key in path.split("."):
        if current is None:
            return None
        if isinstance(current, Mapping):
            current = current.get(key)
        else:
            current = getattr(current, key, None)
    return current
