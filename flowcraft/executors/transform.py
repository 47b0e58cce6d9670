"""Template-driven item transformation executor."""

from __future__ import annotations

import re
from typing import Any, Dict

from ..errors import ConfigError
from .base import NodeExecutor, input_items
from .paths import PLACEHOLDER, get_nested_value, stringify


def render_template(item: Any, template: str) -> Any:
    """Resolve ``{{ path }}`` placeholders in ``template`` against ``item``.

    A template that is exactly one placeholder yields the raw looked-up
    value; embedded placeholders are substituted as text, and those that
    resolve to nothing are left as written.
    """
    stripped = template.strip()
    if stripped.startswith("{{") and stripped.endswith("}}"):
        inner = stripped[2:-2]
        if "{{" not in inner and "}}" not in inner:
            return get_nested_value(item, inner.strip())
    if "{{" not in template:
        return template

    def substitute(match: re.Match) -> str:
        value = get_nested_value(item, match.group(1).strip())
        return match.group(0) if value is None else stringify(value)

    return PLACEHOLDER.sub(substitute, template)


def apply_mapping(item: Any, mapping: Any) -> Any:
    """Walk ``mapping`` recursively, resolving string templates per item."""
    if isinstance(mapping, dict):
        return {key: apply_mapping(item, value) for key, value in mapping.items()}
    if isinstance(mapping, list):
        return [apply_mapping(item, value) for value in mapping]
    if isinstance(mapping, str):
        return render_template(item, mapping)
    return mapping


class TransformExecutor(NodeExecutor):
    """Reshape every input item according to the ``mapping`` template."""

    async def execute(self, config: Dict[str, Any], inputs: Dict[str, Any]) -> Any:
        if "mapping" not in config:
            raise ConfigError("mapping is required in config")
        mapping = config["mapping"]
        return [apply_mapping(item, mapping) for item in input_items(inputs)]
