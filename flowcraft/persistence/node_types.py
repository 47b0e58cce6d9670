"""Node types available in every store."""

from __future__ import annotations

from ..models import NodeTypeEntry

DEFAULT_NODE_TYPES: list[NodeTypeEntry] = [
    NodeTypeEntry(
        key="httpRequest",
        name="HTTP Request",
        description="Executes HTTP requests",
        icon="globe",
        category="API",
        config_schema={
            "properties": {
                "url": {"type": "string"},
                "method": {
                    "type": "string",
                    "enum": ["GET", "POST", "PUT", "PATCH", "DELETE"],
                },
                "headers": {"type": "object"},
                "json_data": {"type": "object"},
                "timeout": {"type": "number"},
            }
        },
        executor_class="httpRequest",
    ),
    NodeTypeEntry(
        key="filter",
        name="Filter",
        description="Filters data based on conditions",
        icon="filter",
        category="Data Processing",
        config_schema={
            "properties": {
                "field": {"type": "string"},
                "operator": {
                    "type": "string",
                    "enum": [
                        "equals",
                        "not_equals",
                        "contains",
                        "greater_than",
                        "less_than",
                    ],
                },
                "value": {"type": "string"},
            }
        },
        executor_class="filter",
    ),
    NodeTypeEntry(
        key="transform",
        name="Transform",
        description="Transforms data based on a mapping",
        icon="rotate",
        category="Data Processing",
        config_schema={"properties": {"mapping": {"type": "object"}}},
        executor_class="transform",
    ),
]
