"""
codegraph.graph -- The in-memory graph engine and its persistence.

  GraphCore        -- node/edge identity table (networkx-backed)
  encode/decode    -- JSON snapshot codec
  GraphStore       -- atomic, locked snapshot file
  MutationManager  -- every write; merge vs create vs reject
  QueryEngine      -- filters, search, neighborhoods, traversal, shortest path
"""

from codegraph.graph.codec import GraphStore, decode, encode
from codegraph.graph.core import GraphCore, GraphOptions
from codegraph.graph.mutations import MutationManager
from codegraph.graph.query import QueryEngine

__all__ = [
    "GraphCore",
    "GraphOptions",
    "GraphStore",
    "MutationManager",
    "QueryEngine",
    "decode",
    "encode",
]
