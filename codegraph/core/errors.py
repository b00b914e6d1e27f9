"""
codegraph.core.errors -- Error taxonomy for the graph engine.

Every error raised by codegraph derives from ``GraphError`` so the
tool layer can turn it into a structured ``{"error", "kind", "message"}``
payload instead of a stack trace.
"""

from __future__ import annotations

from typing import Any, Dict


class GraphError(Exception):
    """Base class for all codegraph errors."""

    @property
    def kind(self) -> str:
        return type(self).__name__

    def to_dict(self) -> Dict[str, Any]:
        return {"error": True, "kind": self.kind, "message": str(self)}


class ValidationError(GraphError):
    """Malformed or missing input (bad shape, unknown operator, ...)."""


class NotFoundError(GraphError):
    """A referenced node or edge does not exist."""


class UnknownEndpointError(NotFoundError):
    """An edge references a source or target node that does not exist."""


class DuplicateIdError(GraphError):
    """An id is already in use where strict creation was requested."""


class DuplicateNodeError(DuplicateIdError):
    pass


class DuplicateEdgeIdError(DuplicateIdError):
    pass


class CorruptStoreError(GraphError):
    """The durable snapshot exists but cannot be read or parsed."""


class PersistenceError(GraphError):
    """Writing the snapshot failed after the in-memory graph changed.

    The in-memory state is NOT rolled back: until the next successful
    save, memory and disk disagree.
    """


class ChunkingError(GraphError):
    """Source code could not be parsed cleanly into chunks."""
