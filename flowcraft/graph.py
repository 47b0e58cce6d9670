"""Indexed view of a workflow's nodes and connections."""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, List

from .errors import CyclicGraphError, NoStartNodeError
from .models import Connection, Node


class WorkflowGraph:
    """Nodes keyed by id with incoming and outgoing connection lists.

    Connection lists keep the order the connections were given in; node
    order follows declaration order.
    """

    def __init__(self, nodes: List[Node], connections: List[Connection]) -> None:
        self.nodes: Dict[int, Node] = {node.id: node for node in nodes}
        self._order: List[int] = [node.id for node in nodes]
        self.incoming: Dict[int, List[Connection]] = defaultdict(list)
        self.outgoing: Dict[int, List[Connection]] = defaultdict(list)
        for conn in connections:
            self.incoming[conn.target_node_id].append(conn)
            self.outgoing[conn.source_node_id].append(conn)

    def source_nodes(self) -> List[Node]:
        """Nodes without incoming connections, in declaration order."""
        return [self.nodes[nid] for nid in self._order if not self.incoming.get(nid)]

    def require_sources(self) -> List[Node]:
        sources = self.source_nodes()
        if not sources:
            raise NoStartNodeError()
        return sources

    def find_cycle(self) -> List[int]:
        """Return node ids that lie on or behind a cycle, empty if acyclic."""
        in_degree = {nid: 0 for nid in self._order}
        for nid in self._order:
            for conn in self.outgoing.get(nid, []):
                if conn.target_node_id in in_degree:
                    in_degree[conn.target_node_id] += 1

        ready = [nid for nid in self._order if in_degree[nid] == 0]
        visited = 0
        while ready:
            nid = ready.pop()
            visited += 1
            for conn in self.outgoing.get(nid, []):
                target = conn.target_node_id
                if target not in in_degree:
                    continue
                in_degree[target] -= 1
                if in_degree[target] == 0:
                    ready.append(target)

        if visited == len(in_degree):
            return []
        return [nid for nid in self._order if in_degree[nid] > 0]

    def validate(self) -> List[Node]:
        """Check the graph is executable and return its source nodes."""
        sources = self.require_sources()
        cycle = self.find_cycle()
        if cycle:
            raise CyclicGraphError(cycle)
        return sources

    def successors(self, node_id: int) -> List[int]:
        """Direct successor ids in connection order."""
        return [conn.target_node_id for conn in self.outgoing.get(node_id, [])]

    def predecessors(self, node_id: int) -> List[int]:
        return [conn.source_node_id for conn in self.incoming.get(node_id, [])]
