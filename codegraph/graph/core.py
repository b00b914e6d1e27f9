"""
codegraph.graph.core -- The node/edge identity table.

``GraphCore`` wraps a ``networkx.MultiDiGraph``.  Edge ids are global
(networkx keys are only unique per node pair), so an id -> endpoints
index sits next to the networkx graph.  Undirected edges are stored once,
in their declared orientation, and flagged; adjacency iteration treats
them as traversable in both directions.

This layer is strict: creating an existing node raises.  Merge-on-create
semantics live one level up, in ``MutationManager``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Optional, Set, Tuple

import networkx as nx

from codegraph.core.errors import (
    DuplicateEdgeIdError,
    DuplicateNodeError,
    NotFoundError,
    UnknownEndpointError,
    ValidationError,
)
from codegraph.core.types import EdgeRecord, NodeRecord
from codegraph.graph.attributes import Attributes, check_attributes, copy_attributes, merge_attributes

GRAPH_TYPES = ("mixed", "directed", "undirected")
DIRECTIONS = ("out", "in", "both")


@dataclass(frozen=True)
class GraphOptions:
    """Global structural options, persisted with every snapshot."""

    type: str = "mixed"
    multi: bool = True
    allow_self_loops: bool = True

    def __post_init__(self) -> None:
        if self.type not in GRAPH_TYPES:
            raise ValidationError(
                f"Unknown graph type {self.type!r}. Use one of: {', '.join(GRAPH_TYPES)}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "multi": self.multi,
            "allowSelfLoops": self.allow_self_loops,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "GraphOptions":
        return cls(
            type=data.get("type", "mixed"),
            multi=bool(data.get("multi", True)),
            allow_self_loops=bool(data.get("allowSelfLoops", True)),
        )


class GraphCore:
    """In-memory property multigraph with stable string ids."""

    def __init__(self, options: Optional[GraphOptions] = None) -> None:
        self.options = options or GraphOptions()
        self.attributes: Attributes = {}
        self._g = nx.MultiDiGraph()
        self._edges: Dict[str, Tuple[str, str]] = {}
        self._undirected: Set[str] = set()

    # -------------------- Nodes --------------------

    def add_node(self, node_id: str, attrs: Optional[Mapping[str, Any]] = None) -> None:
        if node_id in self._g:
            raise DuplicateNodeError(f"Node {node_id!r} already exists")
        self._g.add_node(node_id, data=check_attributes(attrs))

    def has_node(self, node_id: str) -> bool:
        return node_id in self._g

    def get_node(self, node_id: str) -> Optional[Attributes]:
        if node_id not in self._g:
            return None
        return copy_attributes(self._g.nodes[node_id]["data"])

    def node_record(self, node_id: str) -> Optional[NodeRecord]:
        attrs = self.get_node(node_id)
        if attrs is None:
            return None
        return NodeRecord(id=node_id, attributes=attrs)

    def merge_node(self, node_id: str, attrs: Mapping[str, Any]) -> List[str]:
        """Shallow-merge into a node; returns the protected keys ignored."""
        if node_id not in self._g:
            raise NotFoundError(f"Node {node_id!r} not found")
        return merge_attributes(self._g.nodes[node_id]["data"], check_attributes(attrs))

    def drop_node(self, node_id: str) -> List[str]:
        """Remove a node and every incident edge; returns the dropped edge ids."""
        if node_id not in self._g:
            raise NotFoundError(f"Node {node_id!r} not found")
        dropped = self.incident_edge_ids(node_id)
        for edge_id in dropped:
            del self._edges[edge_id]
            self._undirected.discard(edge_id)
        self._g.remove_node(node_id)
        return dropped

    def nodes(self) -> List[NodeRecord]:
        return [
            NodeRecord(id=node_id, attributes=copy_attributes(data))
            for node_id, data in self._g.nodes(data="data")
        ]

    def node_ids(self) -> List[str]:
        return list(self._g.nodes)

    # -------------------- Edges --------------------

    def add_edge(
        self,
        edge_id: str,
        source: str,
        target: str,
        type: str,
        attrs: Optional[Mapping[str, Any]] = None,
        undirected: bool = False,
    ) -> None:
        if source not in self._g:
            raise UnknownEndpointError(f"Source node {source!r} does not exist")
        if target not in self._g:
            raise UnknownEndpointError(f"Target node {target!r} does not exist")
        if edge_id in self._edges:
            raise DuplicateEdgeIdError(f"Relation with id {edge_id!r} already exists")

        if self.options.type == "undirected":
            undirected = True
        elif self.options.type == "directed" and undirected:
            raise ValidationError("Undirected edges are not allowed in a directed graph")
        if source == target and not self.options.allow_self_loops:
            raise ValidationError(f"Self-loops are not allowed (node {source!r})")
        if not self.options.multi and self._has_parallel(source, target, undirected):
            raise ValidationError(
                f"Graph is not a multigraph: {source!r} and {target!r} are already connected"
            )

        data = check_attributes(attrs)
        data["type"] = type
        self._g.add_edge(source, target, key=edge_id, data=data)
        self._edges[edge_id] = (source, target)
        if undirected:
            self._undirected.add(edge_id)

    def has_edge(self, edge_id: str) -> bool:
        return edge_id in self._edges

    def get_edge(self, edge_id: str) -> Optional[EdgeRecord]:
        if edge_id not in self._edges:
            return None
        return self._record(edge_id)

    def is_undirected(self, edge_id: str) -> bool:
        return edge_id in self._undirected

    def merge_edge(self, edge_id: str, attrs: Mapping[str, Any]) -> List[str]:
        if edge_id not in self._edges:
            raise NotFoundError(f"Relation {edge_id!r} not found")
        return merge_attributes(self._edge_data(edge_id), check_attributes(attrs))

    def drop_edge(self, edge_id: str) -> None:
        if edge_id not in self._edges:
            raise NotFoundError(f"Relation {edge_id!r} not found")
        source, target = self._edges.pop(edge_id)
        self._g.remove_edge(source, target, key=edge_id)
        self._undirected.discard(edge_id)

    def edges(self) -> List[EdgeRecord]:
        return [self._record(edge_id) for edge_id in self._edges]

    def edge_ids(self) -> List[str]:
        return list(self._edges)

    def induced_edges(self, node_ids: Iterable[str]) -> List[EdgeRecord]:
        """Edges whose both endpoints are in *node_ids*, in insertion order."""
        keep = set(node_ids)
        return [
            self._record(edge_id)
            for edge_id, (source, target) in self._edges.items()
            if source in keep and target in keep
        ]

    # -------------------- Adjacency --------------------

    def iter_incident(
        self, node_id: str, direction: str = "both"
    ) -> Iterator[Tuple[str, str, str, str]]:
        """Yield ``(edge_id, source, target, neighbor)`` once per incident edge.

        Directed edges are followed along their orientation for ``out`` /
        ``in``; undirected edges qualify for every direction.  A self-loop
        is reported once, not once per endpoint.
        """
        if direction not in DIRECTIONS:
            raise ValidationError(
                f"Unknown direction {direction!r}. Use one of: {', '.join(DIRECTIONS)}"
            )
        if node_id not in self._g:
            raise NotFoundError(f"Node {node_id!r} not found")

        seen: Set[str] = set()
        for _, target, key in self._g.out_edges(node_id, keys=True):
            if direction == "in" and key not in self._undirected:
                continue
            if key in seen:
                continue
            seen.add(key)
            yield key, node_id, target, target
        for source, _, key in self._g.in_edges(node_id, keys=True):
            if direction == "out" and key not in self._undirected:
                continue
            if key in seen:
                continue
            seen.add(key)
            yield key, source, node_id, source

    def for_each_neighbor(
        self,
        node_id: str,
        direction: str,
        visitor: Callable[[str, str], None],
    ) -> None:
        """Call ``visitor(neighbor_id, edge_id)`` for each incident edge."""
        for edge_id, _, _, neighbor in self.iter_incident(node_id, direction):
            visitor(neighbor, edge_id)

    def neighbors(self, node_id: str, direction: str = "both") -> List[str]:
        result: List[str] = []
        for _, _, _, neighbor in self.iter_incident(node_id, direction):
            if neighbor not in result:
                result.append(neighbor)
        return result

    def incident_edge_ids(self, node_id: str) -> List[str]:
        return [edge_id for edge_id, _, _, _ in self.iter_incident(node_id, "both")]

    # -------------------- Analytics --------------------

    @property
    def order(self) -> int:
        return self._g.number_of_nodes()

    @property
    def size(self) -> int:
        return len(self._edges)

    def clear(self) -> None:
        self.attributes.clear()
        self._g.clear()
        self._edges.clear()
        self._undirected.clear()

    # -------------------- Internals --------------------

    def _edge_data(self, edge_id: str) -> Attributes:
        source, target = self._edges[edge_id]
        return self._g.edges[source, target, edge_id]["data"]

    def _record(self, edge_id: str) -> EdgeRecord:
        source, target = self._edges[edge_id]
        return EdgeRecord(
            id=edge_id,
            source=source,
            target=target,
            attributes=copy_attributes(self._edge_data(edge_id)),
            undirected=edge_id in self._undirected,
        )

    def _has_parallel(self, source: str, target: str, undirected: bool) -> bool:
        for key in self._g.get_edge_data(source, target, default={}):
            if (key in self._undirected) == undirected:
                return True
        if undirected:
            for key in self._g.get_edge_data(target, source, default={}):
                if key in self._undirected:
                    return True
        return False
