"""
codegraph -- MCP server exposing the code knowledge graph as tools.

Run with:
    codegraph serve --graph-path ./codegraph.json

Or configure in your MCP client as:
    {
        "mcpServers": {
            "codegraph": {
                "command": "codegraph",
                "args": ["serve"],
                "env": {"CODEGRAPH_GRAPH_PATH": "/path/to/codegraph.json"}
            }
        }
    }

Tools exposed (16 total):
    Write:
        create_entities      -- Create or merge entity nodes
        create_relations     -- Create typed edges between entities
        create_observations  -- Create observation nodes linked to entities
        add_observations     -- Attach new observations to one entity
        delete_observations  -- Delete observations linked to an entity
        update_entities      -- Merge attributes into existing entities
        update_relations     -- Merge attributes into existing relations
        delete_entities      -- Delete entities and their incident relations
        delete_relations     -- Delete relations by id
    Query:
        read_graph           -- Filtered nodes plus induced edges
        open_nodes           -- Specific nodes plus induced edges
        search_nodes         -- Case-insensitive substring search
        get_neighborhood     -- Bounded breadth-first neighborhood
        query_graph_advanced -- Traversal or weighted shortest path
    Code:
        analyze_codebase     -- Chunk source files into the graph
    Maintenance:
        graph_stats          -- Node/edge counts by type
"""

import dataclasses
import functools
import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from codegraph.core.config import Config
from codegraph.core.errors import GraphError, ValidationError
from codegraph.system import GraphSystem

log = logging.getLogger(__name__)

#: Maximum byte length for free-text inputs (100 KB).
MAX_INPUT_BYTES = 100_000

INSTRUCTIONS = (
    "Persistent knowledge graph of a codebase. Entities are nodes with a "
    "type and attributes; relations are typed edges; observations are "
    "notes linked to entities with relates_to edges."
)

TOOL_NAMES = (
    "create_entities",
    "create_relations",
    "create_observations",
    "add_observations",
    "delete_observations",
    "read_graph",
    "open_nodes",
    "update_entities",
    "update_relations",
    "delete_entities",
    "delete_relations",
    "search_nodes",
    "get_neighborhood",
    "query_graph_advanced",
    "analyze_codebase",
    "graph_stats",
)


def _validate_length(text: str, name: str) -> str:
    """Raise ValidationError if *text* exceeds MAX_INPUT_BYTES."""
    if len(text.encode("utf-8", errors="replace")) > MAX_INPUT_BYTES:
        raise ValidationError(
            f"'{name}' exceeds maximum length ({MAX_INPUT_BYTES} bytes)"
        )
    return text


# ---------------------------------------------------------------------------
# Error-safe tool decorator
# ---------------------------------------------------------------------------


def _safe_json(fn):
    """Wrap a tool so exceptions return JSON errors instead of crashing.

    ``GraphError`` becomes its structured ``to_dict()``; anything else is
    logged with its traceback and reported as ``InternalError``.
    """

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> str:
        try:
            return fn(*args, **kwargs)
        except GraphError as exc:
            log.warning("Tool %s rejected: %s", fn.__name__, exc)
            payload = exc.to_dict()
        except Exception as exc:
            log.exception("Tool %s failed", fn.__name__)
            payload = {"error": True, "kind": "InternalError", "message": str(exc)}
        payload["tool"] = fn.__name__
        return json.dumps(payload)

    return wrapper


def _dump(data: Any) -> str:
    return json.dumps(data, ensure_ascii=False)


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


class GraphTools:
    """The tool surface, bound to one GraphSystem.

    Every method returns a JSON string, the same payload the MCP client
    sees.  Tests call these methods directly.
    """

    def __init__(self, system: GraphSystem) -> None:
        self.system = system

    # -- write --------------------------------------------------------------

    @_safe_json
    def create_entities(self, entities: List[Dict[str, Any]]) -> str:
        """Create entities, or merge attributes into ones that already exist.

        Each entity: {"id", "type", "attributes"}; "name"/"entityType"
        are accepted as aliases.  Returns created_ids, existing_ids, errors.
        """
        return _dump(self.system.mutations.create_entities(entities).to_dict())

    @_safe_json
    def create_relations(self, relations: List[Dict[str, Any]]) -> str:
        """Create typed relations between existing entities.

        Each relation: {"id"?, "source", "target", "type", "attributes"?,
        "undirected"?}; "from"/"to"/"relationType" are accepted as
        aliases.  Bad items are reported in errors; the rest are created.
        """
        return _dump(self.system.mutations.create_relations(relations).to_dict())

    @_safe_json
    def create_observations(self, observations: List[Dict[str, Any]]) -> str:
        """Create observation nodes and link them to related entities.

        Each observation: {"id"?, "content", "relatedEntityIds", "tags"?,
        "attributes"?}.  Unknown related entities produce warnings.
        """
        for obs in observations:
            if isinstance(obs, dict) and isinstance(obs.get("content"), str):
                _validate_length(obs["content"], "content")
        return _dump(self.system.mutations.create_observations(observations).to_dict())

    @_safe_json
    def add_observations(self, observations: List[Dict[str, Any]]) -> str:
        """Attach new observations to existing entities.

        Each item: {"entityId", "observationsToAdd": [{"content", ...}]}.
        """
        return _dump(self.system.mutations.add_observations(observations).to_dict())

    @_safe_json
    def delete_observations(self, deletions: List[Dict[str, Any]]) -> str:
        """Delete observations from entities.

        Each item: {"entityId", "observationIds": [...]}.  Only observation
        nodes linked to that entity are removed.
        """
        return _dump(self.system.mutations.delete_observations(deletions).to_dict())

    @_safe_json
    def update_entities(self, updates: List[Dict[str, Any]]) -> str:
        """Merge attributes into existing entities: [{"id", "attributes"}]."""
        return _dump(self.system.mutations.update_entities(updates).to_dict())

    @_safe_json
    def update_relations(self, updates: List[Dict[str, Any]]) -> str:
        """Merge attributes into existing relations: [{"id", "attributes"}]."""
        return _dump(self.system.mutations.update_relations(updates).to_dict())

    @_safe_json
    def delete_entities(self, ids: List[str]) -> str:
        """Delete entities by id, together with every relation touching them."""
        return _dump(self.system.mutations.delete_entities(ids).to_dict())

    @_safe_json
    def delete_relations(self, ids: List[str]) -> str:
        """Delete relations by id."""
        return _dump(self.system.mutations.delete_relations(ids).to_dict())

    # -- query --------------------------------------------------------------

    @_safe_json
    def read_graph(self, filter: Optional[Dict[str, Any]] = None) -> str:
        """Read nodes matching an optional filter plus the edges between them.

        filter keys: "nodeIds", "types", "attributes" (exact match, ANDed).
        """
        return _dump(self.system.queries.read_graph(filter).to_dict())

    @_safe_json
    def open_nodes(self, ids: List[str]) -> str:
        """Read specific nodes by id plus the edges between them."""
        return _dump(self.system.queries.open_nodes(ids).to_dict())

    @_safe_json
    def search_nodes(self, query: str) -> str:
        """Case-insensitive substring search over ids, attribute keys and values."""
        _validate_length(query, "query")
        return _dump(self.system.queries.search_nodes(query).to_dict())

    @_safe_json
    def get_neighborhood(
        self,
        start_node_id: str,
        max_depth: Optional[int] = None,
        direction: str = "all",
    ) -> str:
        """Nodes within max_depth hops of start_node_id and the edges between them.

        direction: "outbound", "inbound" or "all".
        """
        if max_depth is None:
            max_depth = self.system.config.default_max_depth
        view = self.system.queries.get_neighborhood(start_node_id, max_depth, direction)
        if view is None:
            return _dump(
                {"found": False, "message": f"Node {start_node_id!r} not found"}
            )
        return _dump({"found": True, **view.to_dict()})

    @_safe_json
    def query_graph_advanced(
        self,
        query_type: str,
        start_node_ids: List[str],
        target_node_id: Optional[str] = None,
        traversal_options: Optional[Dict[str, Any]] = None,
        node_conditions: Optional[List[Dict[str, Any]]] = None,
        edge_conditions: Optional[List[Dict[str, Any]]] = None,
        result_options: Optional[Dict[str, Any]] = None,
        weight_attribute: Optional[str] = "weight",
    ) -> str:
        """Run a traversal or shortest-path query.

        query_type "traversal": BFS from start_node_ids, traversal_options
        {"max_depth", "direction": "outgoing"|"incoming"|"both",
        "edge_types_filter"}.  query_type "shortest_path": from
        start_node_ids[0] to target_node_id, weighted by weight_attribute
        (null for hop count).  Conditions: [{"attribute", "operator":
        "equals"|"contains"|"startsWith"|"regex"|"in_array", "value"}].
        result_options.composition: "nodes_only", "nodes_and_edges", "paths".
        """
        request: Dict[str, Any] = {
            "query_type": query_type,
            "start_node_ids": start_node_ids,
            "target_node_id": target_node_id,
            "traversal_options": traversal_options,
            "node_conditions": node_conditions,
            "edge_conditions": edge_conditions,
            "result_options": result_options,
            "weight_attribute": weight_attribute,
        }
        return _dump(self.system.queries.query_advanced(request).to_dict())

    # -- code ---------------------------------------------------------------

    @_safe_json
    def analyze_codebase(self, file_paths: List[str]) -> str:
        """Chunk source files matching the glob patterns into file/code nodes."""
        return _dump(self.system.analyzer.analyze(file_paths).to_dict())

    # -- maintenance --------------------------------------------------------

    @_safe_json
    def graph_stats(self) -> str:
        """Node and edge counts, broken down by type."""
        return _dump(self.system.get_stats().to_dict())


# ---------------------------------------------------------------------------
# Server assembly
# ---------------------------------------------------------------------------


def create_server(system: GraphSystem) -> FastMCP:
    """Build a FastMCP server whose tools operate on *system*."""
    tools = GraphTools(system)
    mcp = FastMCP("codegraph", instructions=INSTRUCTIONS)
    for name in TOOL_NAMES:
        mcp.add_tool(getattr(tools, name), name=name)
    return mcp


def load_config(
    graph_path: Optional[str] = None,
    config_path: Optional[str] = None,
) -> Config:
    """YAML file if given, else environment; an explicit graph_path wins."""
    if config_path:
        config = Config.from_yaml(config_path)
        if graph_path:
            config = dataclasses.replace(config, graph_path=Path(graph_path))
        return config
    return Config.from_env(graph_path=graph_path)


def run_server(
    graph_path: Optional[str] = None,
    config_path: Optional[str] = None,
    transport: str = "stdio",
    host: str = "127.0.0.1",
    port: int = 8765,
) -> None:
    """Initialize and run the MCP server.

    Args:
        graph_path: Path to the JSON graph snapshot.
        config_path: Path to YAML config file.
        transport: MCP transport: "stdio", "streamable-http", or "sse".
        host: Bind address for HTTP transports.
        port: Port for HTTP transports.
    """
    config = load_config(graph_path, config_path)
    system = GraphSystem(config=config)
    mcp = create_server(system)
    log.info("Starting codegraph MCP server (transport=%s, graph=%s)", transport, config.graph_path)
    if transport in ("streamable-http", "sse"):
        mcp.settings.host = host
        mcp.settings.port = port
        log.info("HTTP endpoint: http://%s:%d", host, port)
    try:
        mcp.run(transport=transport)  # type: ignore[arg-type]
    finally:
        system.close()
