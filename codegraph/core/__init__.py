"""codegraph.core -- Configuration, error taxonomy, and record types."""

from codegraph.core.config import Config
from codegraph.core.errors import (
    ChunkingError,
    CorruptStoreError,
    DuplicateEdgeIdError,
    DuplicateIdError,
    DuplicateNodeError,
    GraphError,
    NotFoundError,
    PersistenceError,
    UnknownEndpointError,
    ValidationError,
)
from codegraph.core.types import EdgeRecord, GraphView, NodeRecord

__all__ = [
    "Config",
    "ChunkingError",
    "CorruptStoreError",
    "DuplicateEdgeIdError",
    "DuplicateIdError",
    "DuplicateNodeError",
    "GraphError",
    "NotFoundError",
    "PersistenceError",
    "UnknownEndpointError",
    "ValidationError",
    "EdgeRecord",
    "GraphView",
    "NodeRecord",
]
