"""Executor plugin loaded with the ``plugin:<path>`` executor reference.

Register it as a node type, for example::

    await repository.register_node_type(
        NodeTypeEntry(key="uppercase", executor_class="plugin:guides/uppercase_plugin.py")
    )
"""


class UppercaseExecutor:
    async def execute(self, config, inputs):
        field = config.get("field", "name")
        items = inputs.get("input", [])
        if not isinstance(items, list):
            items = [items]
        return [
            {**item, field: str(item.get(field, "")).upper()}
            for item in items
            if isinstance(item, dict)
        ]


def new_executor():
    return UppercaseExecutor()
