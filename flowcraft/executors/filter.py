"""Item filter executor."""

from __future__ import annotations

from typing import Any, Callable, Dict, Optional

from ..errors import ConfigError
from .base import NodeExecutor, input_items
from .paths import get_nested_value, stringify


def _as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _numeric(op: Callable[[float, float], bool]) -> Callable[[Any, Any], bool]:
    def compare(left: Any, right: Any) -> bool:
        a, b = _as_number(left), _as_number(right)
        if a is None or b is None:
            return False
        return op(a, b)

    return compare


OPERATORS: Dict[str, Callable[[Any, Any], bool]] = {
    "equals": lambda a, b: stringify(a) == stringify(b),
    "not_equals": lambda a, b: stringify(a) != stringify(b),
    "contains": lambda a, b: stringify(b) in stringify(a),
    "greater_than": _numeric(lambda a, b: a > b),
    "less_than": _numeric(lambda a, b: a < b),
}


def compare_values(left: Any, right: Any, operator: str) -> bool:
    """Apply ``operator``; unknown operators never match."""
    compare = OPERATORS.get(operator)
    return compare(left, right) if compare else False


class FilterExecutor(NodeExecutor):
    """Keep the items whose ``field`` satisfies ``operator`` against ``value``.

    ``greater_than`` and ``less_than`` compare numerically; either side
    failing to parse as a number excludes the item.
    """

    async def execute(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Any:
        field = config.get("field") or ""
        if not isinstance(field, str):
            raise ConfigError("field must be a string")
        operator = config.get("operator") or "equals"
        expected = config.get("value")

        return [
            item
            for item in input_items(inputs)
            if compare_values(get_nested_value(item, field), expected, operator)
        ]
