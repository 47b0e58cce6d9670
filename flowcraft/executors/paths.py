"""Dotted-path lookup and value formatting for executors."""

from __future__ import annotations

import json
import re
from typing import Any

PLACEHOLDER = re.compile(r"\{\{(.*?)\}\}")


def get_nested_value(item: Any, path: str) -> Any:
    """Resolve ``a.b.c`` against nested mappings.

    An empty path returns ``item`` itself. Returns ``None`` when a segment
    is missing or the current value is not a mapping.
    """
    if not path:
        return item
    current = item
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def stringify(value: Any) -> str:
    """Render a decoded JSON value the way it appears in templates."""
    if isinstance(value, str):
        return value
    if value is None or isinstance(value, (bool, dict, list)):
        return json.dumps(value, separators=(",", ":"))
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
