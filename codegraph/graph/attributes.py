"""
codegraph.graph.attributes -- Attribute bags for nodes and edges.

Attribute values form a closed sum type::

    AttrValue = str | int | float | bool | None
              | list[AttrValue] | dict[str, AttrValue]

which is exactly what the JSON store can represent.  Validation happens
once at the write boundary so merge, filter and search code can assume
well-formed values.
"""

from __future__ import annotations

import copy
import math
from typing import Any, Dict, List, Mapping, Optional, Union

from codegraph.core.errors import ValidationError

AttrScalar = Union[str, int, float, bool, None]
AttrValue = Union[AttrScalar, List["AttrValue"], Dict[str, "AttrValue"]]
Attributes = Dict[str, AttrValue]

#: Keys that merges may never overwrite once a node/edge exists.
RESERVED_KEYS = frozenset({"type"})


def check_value(value: Any, path: str = "value") -> None:
    """Raise ValidationError unless *value* belongs to ``AttrValue``."""
    if value is None or isinstance(value, (str, bool, int)):
        return
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValidationError(f"{path}: non-finite number {value!r} is not storable")
        return
    if isinstance(value, list):
        for i, item in enumerate(value):
            check_value(item, f"{path}[{i}]")
        return
    if isinstance(value, dict):
        for key, item in value.items():
            if not isinstance(key, str):
                raise ValidationError(f"{path}: map keys must be strings, got {key!r}")
            check_value(item, f"{path}.{key}")
        return
    raise ValidationError(
        f"{path}: unsupported attribute type {type(value).__name__}"
    )


def check_attributes(attrs: Optional[Mapping[str, Any]]) -> Attributes:
    """Validate an attribute mapping and return a private deep copy."""
    if attrs is None:
        return {}
    if not isinstance(attrs, Mapping):
        raise ValidationError(
            f"attributes must be an object, got {type(attrs).__name__}"
        )
    for key, value in attrs.items():
        if not isinstance(key, str):
            raise ValidationError(f"attribute keys must be strings, got {key!r}")
        check_value(value, key)
    return copy.deepcopy(dict(attrs))


def copy_attributes(attrs: Mapping[str, AttrValue]) -> Attributes:
    return copy.deepcopy(dict(attrs))


def merge_attributes(
    target: Attributes,
    update: Mapping[str, AttrValue],
    protect: frozenset = RESERVED_KEYS,
) -> List[str]:
    """Shallow-merge *update* into *target* in place.

    Keys present in *update* overwrite, keys absent are preserved.
    Keys in *protect* keep their existing value when *target* already
    has one.  Returns the keys that were ignored because of that.
    """
    ignored: List[str] = []
    for key, value in update.items():
        if key in protect and key in target and target[key] != value:
            ignored.append(key)
            continue
        target[key] = copy.deepcopy(value)
    return ignored


def values_equal(left: Any, right: Any) -> bool:
    """JSON-style strict equality: booleans never equal numbers."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, list) and isinstance(right, list):
        return len(left) == len(right) and all(
            values_equal(a, b) for a, b in zip(left, right)
        )
    if isinstance(left, dict) and isinstance(right, dict):
        return left.keys() == right.keys() and all(
            values_equal(left[k], right[k]) for k in left
        )
    if isinstance(left, (list, dict)) or isinstance(right, (list, dict)):
        return False
    return left == right


def stringify_scalar(value: AttrValue) -> Optional[str]:
    """Text form of a scalar for substring search; None for containers/null."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    return None
