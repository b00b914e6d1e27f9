"""
codegraph -- Persistent property graph of a codebase, served over MCP.

    from codegraph import GraphSystem

    with GraphSystem(graph_path="./codegraph.json") as system:
        system.mutations.create_entities([{"id": "f1", "type": "function"}])
        system.mutations.create_relations(
            [{"source": "f1", "target": "f1", "type": "calls"}]
        )
        view = system.queries.get_neighborhood("f1", max_depth=1)
"""

from codegraph.core.config import Config
from codegraph.core.errors import GraphError
from codegraph.core.types import EdgeRecord, GraphStats, GraphView, NodeRecord
from codegraph.system import GraphSystem

__version__ = "0.1.0"

__all__ = [
    "GraphSystem",
    "Config",
    "GraphError",
    "NodeRecord",
    "EdgeRecord",
    "GraphView",
    "GraphStats",
]
