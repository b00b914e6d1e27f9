"""
codegraph.graph.conditions -- Attribute predicates for advanced queries.

A condition is ``{"attribute": key, "operator": op, "value": v}``.
Operators:

``equals``      strict equality (``True`` never equals ``1``)
``contains``    substring of a string, or member of a list
``startsWith``  string prefix
``regex``       ``re.search`` against a string value
``in_array``    attribute value is one of ``v`` (a list)

An attribute that is absent never satisfies a condition.  Conditions
in a list are ANDed.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional, Pattern

from codegraph.core.errors import ValidationError
from codegraph.graph.attributes import values_equal

OPERATORS = ("equals", "contains", "startsWith", "regex", "in_array")

_ALIASES = {"starts_with": "startsWith", "eq": "equals", "in": "in_array"}


@dataclass(frozen=True)
class Condition:
    attribute: str
    operator: str
    value: Any
    _pattern: Optional[Pattern[str]] = field(default=None, repr=False, compare=False)

    def test(self, attrs: Mapping[str, Any]) -> bool:
        if self.attribute not in attrs:
            return False
        actual = attrs[self.attribute]

        if self.operator == "equals":
            return values_equal(actual, self.value)
        if self.operator == "contains":
            if isinstance(actual, str):
                return isinstance(self.value, str) and self.value in actual
            if isinstance(actual, list):
                return any(values_equal(item, self.value) for item in actual)
            return False
        if self.operator == "startsWith":
            return isinstance(actual, str) and actual.startswith(self.value)
        if self.operator == "regex":
            return isinstance(actual, str) and self._pattern.search(actual) is not None
        # in_array
        return any(values_equal(actual, candidate) for candidate in self.value)


def compile_condition(raw: Mapping[str, Any]) -> Condition:
    if not isinstance(raw, Mapping):
        raise ValidationError(f"Condition must be an object, got {type(raw).__name__}")
    attribute = raw.get("attribute")
    if not isinstance(attribute, str) or not attribute:
        raise ValidationError("Condition is missing 'attribute'")
    if "value" not in raw:
        raise ValidationError(f"Condition on {attribute!r} is missing 'value'")

    operator = raw.get("operator", "equals")
    operator = _ALIASES.get(operator, operator)
    if operator not in OPERATORS:
        raise ValidationError(
            f"Unknown condition operator {operator!r}. Use one of: {', '.join(OPERATORS)}"
        )

    value = raw["value"]
    pattern = None
    if operator == "startsWith" and not isinstance(value, str):
        raise ValidationError(f"startsWith on {attribute!r} needs a string value")
    if operator == "regex":
        if not isinstance(value, str):
            raise ValidationError(f"regex on {attribute!r} needs a string pattern")
        try:
            pattern = re.compile(value)
        except re.error as exc:
            raise ValidationError(f"Invalid regex {value!r}: {exc}") from exc
    if operator == "in_array" and not isinstance(value, list):
        raise ValidationError(f"in_array on {attribute!r} needs a list value")

    return Condition(attribute=attribute, operator=operator, value=value, _pattern=pattern)


def compile_conditions(raw: Optional[Iterable[Mapping[str, Any]]]) -> List[Condition]:
    if raw is None:
        return []
    if isinstance(raw, Mapping) or isinstance(raw, str):
        raise ValidationError("Conditions must be a list of objects")
    return [compile_condition(item) for item in raw]


def matches_all(conditions: List[Condition], attrs: Mapping[str, Any]) -> bool:
    return all(cond.test(attrs) for cond in conditions)
