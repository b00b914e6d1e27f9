"""
codegraph.graph.query -- The read API.

``QueryEngine`` never mutates the graph.  "Nothing found" is a normal
result (an empty view, ``None`` for a missing neighborhood start, an
empty path); only malformed requests raise ``ValidationError``.

Advanced queries come in two flavours:

* ``traversal`` -- breadth-first from one or more start nodes, bounded
  by ``max_depth``.  Node/edge conditions decide what is *reported*,
  never what is *walked*: a node failing its conditions is still
  expanded.
* ``shortest_path`` -- bidirectional Dijkstra (networkx) between two
  nodes with a per-edge weight.

The ``composition`` option picks the result variant
(``NodesOnlyResult``, ``NodesAndEdgesResult`` or ``PathsResult``).
"""

from __future__ import annotations

import logging
import math
from collections import deque
from numbers import Real
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import networkx as nx

from codegraph.core.errors import ValidationError
from codegraph.core.types import (
    EdgeRecord,
    GraphView,
    NodeRecord,
    NodesAndEdgesResult,
    NodesOnlyResult,
    PathResult,
    PathsResult,
    QueryResult,
)
from codegraph.graph.attributes import stringify_scalar, values_equal
from codegraph.graph.conditions import Condition, compile_conditions, matches_all
from codegraph.graph.core import GraphCore

log = logging.getLogger(__name__)

QUERY_TYPES = ("traversal", "shortest_path")
COMPOSITIONS = ("nodes_only", "nodes_and_edges", "paths")
ALGORITHMS = ("bfs",)

_DIRECTIONS = {
    "out": "out",
    "outbound": "out",
    "outgoing": "out",
    "in": "in",
    "inbound": "in",
    "incoming": "in",
    "both": "both",
    "all": "both",
}

EdgeWeight = Union[None, str, Callable[[EdgeRecord], float]]


def normalize_direction(direction: str) -> str:
    """Map every accepted direction spelling onto ``out``/``in``/``both``."""
    try:
        return _DIRECTIONS[direction]
    except (KeyError, TypeError):
        raise ValidationError(
            f"Unknown direction {direction!r}. Use outbound, inbound or all"
        ) from None


def _check_depth(value: Any, name: str = "max_depth") -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    if value < 0:
        raise ValidationError(f"{name} must be >= 0, got {value}")
    return value


def _string_list(value: Any, name: str) -> List[str]:
    if isinstance(value, (str, bytes)) or not isinstance(value, Sequence):
        raise ValidationError(f"{name} must be a list of ids")
    if not all(isinstance(v, str) for v in value):
        raise ValidationError(f"{name} must contain only strings")
    return list(value)


class QueryEngine:
    """Read-only queries over a ``GraphCore``."""

    def __init__(self, graph: GraphCore) -> None:
        self.graph = graph

    # -------------------- Filtering --------------------

    def read_graph(self, filter: Optional[Mapping[str, Any]] = None) -> GraphView:
        """Nodes matching *filter* plus the edges induced on them.

        Filter keys (all optional, ANDed): ``nodeIds`` / ``node_ids``,
        ``types``, ``attributes`` (strict equality per key).
        """
        if filter is None:
            filter = {}
        if not isinstance(filter, Mapping):
            raise ValidationError("filter must be an object")

        node_ids = filter.get("nodeIds", filter.get("node_ids"))
        wanted_ids = set(_string_list(node_ids, "nodeIds")) if node_ids is not None else None
        types = filter.get("types")
        wanted_types = set(_string_list(types, "types")) if types is not None else None
        attrs = filter.get("attributes")
        if attrs is not None and not isinstance(attrs, Mapping):
            raise ValidationError("attributes filter must be an object")

        nodes = []
        for node in self.graph.nodes():
            if wanted_ids is not None and node.id not in wanted_ids:
                continue
            if wanted_types is not None and node.type not in wanted_types:
                continue
            if attrs and not all(
                key in node.attributes and values_equal(node.attributes[key], value)
                for key, value in attrs.items()
            ):
                continue
            nodes.append(node)
        return self._view(nodes)

    def open_nodes(self, ids: Sequence[str]) -> GraphView:
        """The listed nodes (unknown ids are skipped) and their induced edges."""
        nodes = []
        for node_id in dict.fromkeys(_string_list(ids, "ids")):
            record = self.graph.node_record(node_id)
            if record is not None:
                nodes.append(record)
        return self._view(nodes)

    def search_nodes(self, query: str) -> GraphView:
        """Case-insensitive substring search.

        Looks at the node id, every attribute key, every scalar attribute
        value (booleans as ``true``/``false``) and scalar items of list
        values such as ``tags``.  An empty query matches every node.
        """
        if not isinstance(query, str):
            raise ValidationError("query must be a string")
        needle = query.strip().lower()
        if not needle:
            return self._view(self.graph.nodes())
        nodes = [
            node for node in self.graph.nodes()
            if any(needle in text.lower() for text in _searchable(node))
        ]
        return self._view(nodes)

    # -------------------- Neighborhood --------------------

    def get_neighborhood(
        self, start_id: str, max_depth: int = 1, direction: str = "all"
    ) -> Optional[GraphView]:
        """Induced subgraph of everything within *max_depth* hops.

        Returns None when *start_id* does not exist.
        """
        max_depth = _check_depth(max_depth)
        step = normalize_direction(direction)
        if not self.graph.has_node(start_id):
            return None

        depth = {start_id: 0}
        queue = deque([start_id])
        while queue:
            current = queue.popleft()
            if depth[current] >= max_depth:
                continue
            for _, _, _, neighbor in self.graph.iter_incident(current, step):
                if neighbor not in depth:
                    depth[neighbor] = depth[current] + 1
                    queue.append(neighbor)

        return self._view([self.graph.node_record(n) for n in depth])

    # -------------------- Advanced queries --------------------

    def query_advanced(self, request: Mapping[str, Any]) -> QueryResult:
        if not isinstance(request, Mapping):
            raise ValidationError("query must be an object")
        query_type = request.get("query_type")
        if query_type not in QUERY_TYPES:
            raise ValidationError(
                f"Unsupported query_type {query_type!r}. Use one of: {', '.join(QUERY_TYPES)}"
            )
        result_options = request.get("result_options") or {}
        if not isinstance(result_options, Mapping):
            raise ValidationError("result_options must be an object")
        composition = result_options.get("composition", "nodes_and_edges")
        if composition not in COMPOSITIONS:
            raise ValidationError(
                f"Unknown composition {composition!r}. Use one of: {', '.join(COMPOSITIONS)}"
            )
        start_ids = request.get("start_node_ids")
        if not start_ids:
            raise ValidationError(f"{query_type} requires start_node_ids")
        start_ids = _string_list(start_ids, "start_node_ids")

        if query_type == "traversal":
            return self._traversal_request(request, start_ids, composition)
        return self._shortest_path_request(request, start_ids[0], composition)

    def traverse(
        self,
        start_ids: Sequence[str],
        max_depth: int = 3,
        direction: str = "outgoing",
        edge_types: Optional[Sequence[str]] = None,
        node_conditions: Optional[List[Condition]] = None,
        edge_conditions: Optional[List[Condition]] = None,
    ) -> Tuple[List[NodeRecord], List[EdgeRecord], List[PathResult]]:
        """BFS from each start node; returns (nodes, edges, paths).

        A node is reported if it passes *node_conditions*; an edge if it
        passes *edge_conditions* and both its endpoints pass
        *node_conditions*.  Only edges walked within the depth bound are
        considered.  ``paths`` holds the BFS-tree path from the start to
        every reported node, cost being the hop count.
        """
        max_depth = _check_depth(max_depth)
        step = normalize_direction(direction)
        allowed = set(edge_types) if edge_types else None
        node_conditions = node_conditions or []
        edge_conditions = edge_conditions or []

        nodes: Dict[str, NodeRecord] = {}
        edges: Dict[str, EdgeRecord] = {}
        paths: Dict[str, PathResult] = {}
        node_ok: Dict[str, bool] = {}

        def passes(node_id: str) -> bool:
            if node_id not in node_ok:
                node_ok[node_id] = matches_all(node_conditions, self.graph.get_node(node_id))
            return node_ok[node_id]

        for start in start_ids:
            if not self.graph.has_node(start):
                log.warning("Traversal start node %s not found; skipping", start)
                continue

            depth = {start: 0}
            parent: Dict[str, Tuple[str, str]] = {}
            order = [start]
            queue = deque([start])
            while queue:
                current = queue.popleft()
                if depth[current] >= max_depth:
                    continue
                for edge_id, source, target, neighbor in self.graph.iter_incident(current, step):
                    edge = self.graph.get_edge(edge_id)
                    if allowed is not None and edge.type not in allowed:
                        continue
                    if (
                        edge_id not in edges
                        and matches_all(edge_conditions, edge.attributes)
                        and passes(source)
                        and passes(target)
                    ):
                        edges[edge_id] = edge
                    if neighbor not in depth:
                        depth[neighbor] = depth[current] + 1
                        parent[neighbor] = (current, edge_id)
                        order.append(neighbor)
                        queue.append(neighbor)

            for node_id in order:
                if node_id in nodes or not passes(node_id):
                    continue
                nodes[node_id] = self.graph.node_record(node_id)
                paths[node_id] = self._tree_path(node_id, parent)

        return list(nodes.values()), list(edges.values()), list(paths.values())

    def shortest_path(
        self, start_id: str, target_id: str, weight: EdgeWeight = "weight"
    ) -> Optional[PathResult]:
        """Cheapest path from *start_id* to *target_id*, or None.

        *weight* is an edge attribute name (absent or non-numeric values
        count as 1), a callable ``f(EdgeRecord) -> number``, or None for
        unit weights.  Negative weights raise ``ValidationError``.
        Undirected edges can be used in either direction.
        """
        if not self.graph.has_node(start_id) or not self.graph.has_node(target_id):
            return None

        weigh = _weight_function(weight)
        aux = nx.DiGraph()
        aux.add_nodes_from(self.graph.node_ids())
        for edge in self.graph.edges():
            if edge.source == edge.target:
                continue
            cost = weigh(edge)
            hops = [(edge.source, edge.target)]
            if edge.undirected:
                hops.append((edge.target, edge.source))
            for u, v in hops:
                best = aux.get_edge_data(u, v)
                if best is None or cost < best["weight"]:
                    aux.add_edge(u, v, weight=cost, id=edge.id)

        try:
            cost, node_path = nx.bidirectional_dijkstra(aux, start_id, target_id, weight="weight")
        except nx.NetworkXNoPath:
            return None

        edge_path = [
            self.graph.get_edge(aux[u][v]["id"]) for u, v in zip(node_path, node_path[1:])
        ]
        return PathResult(
            nodes=[self.graph.node_record(n) for n in node_path],
            edges=edge_path,
            cost=float(cost),
        )

    # -------------------- Internals --------------------

    def _view(self, nodes: List[NodeRecord]) -> GraphView:
        edges = self.graph.induced_edges(n.id for n in nodes)
        return GraphView(nodes=list(nodes), edges=edges)

    def _tree_path(self, node_id: str, parent: Mapping[str, Tuple[str, str]]) -> PathResult:
        node_ids = [node_id]
        edge_ids: List[str] = []
        while node_ids[-1] in parent:
            prev, edge_id = parent[node_ids[-1]]
            node_ids.append(prev)
            edge_ids.append(edge_id)
        node_ids.reverse()
        edge_ids.reverse()
        return PathResult(
            nodes=[self.graph.node_record(n) for n in node_ids],
            edges=[self.graph.get_edge(e) for e in edge_ids],
            cost=float(len(edge_ids)),
        )

    def _traversal_request(
        self, request: Mapping[str, Any], start_ids: List[str], composition: str
    ) -> QueryResult:
        options = request.get("traversal_options") or {}
        if not isinstance(options, Mapping):
            raise ValidationError("traversal_options must be an object")
        algorithm = options.get("algorithm", "bfs")
        if algorithm not in ALGORITHMS:
            raise ValidationError(f"Traversal algorithm {algorithm!r} is not supported; use bfs")
        edge_types = options.get("edge_types_filter")
        if edge_types is not None:
            edge_types = _string_list(edge_types, "edge_types_filter")

        nodes, edges, paths = self.traverse(
            start_ids,
            max_depth=options.get("max_depth", 3),
            direction=options.get("direction", "outgoing"),
            edge_types=edge_types,
            node_conditions=compile_conditions(request.get("node_conditions")),
            edge_conditions=compile_conditions(request.get("edge_conditions")),
        )
        if composition == "nodes_only":
            return NodesOnlyResult(query_type="traversal", nodes=nodes)
        if composition == "paths":
            return PathsResult(query_type="traversal", paths=paths)
        return NodesAndEdgesResult(query_type="traversal", nodes=nodes, edges=edges)

    def _shortest_path_request(
        self, request: Mapping[str, Any], start_id: str, composition: str
    ) -> QueryResult:
        target_id = request.get("target_node_id")
        if not isinstance(target_id, str) or not target_id:
            raise ValidationError("shortest_path requires target_node_id")

        weight: EdgeWeight = "weight"
        for key in ("weight", "weight_attribute", "getEdgeWeight"):
            if key in request:
                weight = request[key]
                break

        path = self.shortest_path(start_id, target_id, weight)
        if composition == "nodes_only":
            return NodesOnlyResult(
                query_type="shortest_path", nodes=path.nodes if path else []
            )
        if composition == "paths":
            return PathsResult(query_type="shortest_path", paths=[path] if path else [])
        if path is None:
            return NodesAndEdgesResult(query_type="shortest_path")
        return NodesAndEdgesResult(
            query_type="shortest_path", nodes=path.nodes, edges=path.edges, cost=path.cost
        )


def _searchable(node: NodeRecord):
    yield node.id
    for key, value in node.attributes.items():
        yield key
        items = value if isinstance(value, list) else [value]
        for item in items:
            text = stringify_scalar(item)
            if text is not None:
                yield text


def _weight_function(weight: EdgeWeight) -> Callable[[EdgeRecord], float]:
    if weight is None:
        return lambda edge: 1.0
    if callable(weight):
        fn = weight
    elif isinstance(weight, str):
        def fn(edge: EdgeRecord) -> float:
            value = edge.attributes.get(weight)
            if isinstance(value, bool) or not isinstance(value, Real):
                return 1.0
            return value
    else:
        raise ValidationError(f"weight must be an attribute name, a function or null, got {weight!r}")

    def checked(edge: EdgeRecord) -> float:
        value = fn(edge)
        if isinstance(value, bool) or not isinstance(value, Real) or not math.isfinite(value):
            raise ValidationError(f"Weight of edge {edge.id!r} is not a finite number: {value!r}")
        if value < 0:
            raise ValidationError(f"Negative weight {value} on edge {edge.id!r}")
        return float(value)

    return checked
