"""
codegraph.graph.codec -- Snapshot encoding and the on-disk store.

The snapshot is one JSON document::

    {
      "attributes": {},
      "options": {"type": "mixed", "multi": true, "allowSelfLoops": true},
      "nodes": [{"key": "...", "attributes": {...}}],
      "edges": [{"key": "...", "source": "...", "target": "...",
                 "attributes": {...}, "undirected": true}]
    }

``undirected`` is only written for undirected edges.  Node and edge
``type`` live inside ``attributes``.

``decode(encode(g))`` reproduces ``g`` exactly: ids, attributes,
orientation, self-loops and parallel edges.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from codegraph.core.errors import CorruptStoreError, GraphError, PersistenceError
from codegraph.core.filelock import FileLock
from codegraph.graph.core import GraphCore, GraphOptions

log = logging.getLogger(__name__)


def encode(graph: GraphCore, indent: Optional[int] = 2) -> bytes:
    """Serialize *graph* to UTF-8 JSON bytes."""
    nodes = [{"key": n.id, "attributes": n.attributes} for n in graph.nodes()]
    edges: List[Dict[str, Any]] = []
    for e in graph.edges():
        entry: Dict[str, Any] = {
            "key": e.id,
            "source": e.source,
            "target": e.target,
            "attributes": e.attributes,
        }
        if e.undirected:
            entry["undirected"] = True
        edges.append(entry)

    doc = {
        "attributes": graph.attributes,
        "options": graph.options.to_dict(),
        "nodes": nodes,
        "edges": edges,
    }
    return json.dumps(doc, indent=indent, ensure_ascii=False).encode("utf-8")


def decode(
    data: Optional[Union[bytes, str]], default_options: Optional[GraphOptions] = None
) -> GraphCore:
    """Rebuild a graph from snapshot bytes.

    ``None`` (no snapshot yet) and blank content give an empty graph
    with *default_options*.
    Anything else that is not a well-formed snapshot raises
    ``CorruptStoreError``.
    """
    if data is None:
        return GraphCore(default_options)
    if isinstance(data, bytes):
        try:
            data = data.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CorruptStoreError(f"Snapshot is not valid UTF-8: {exc}") from exc
    if not data.strip():
        return GraphCore(default_options)

    try:
        doc = json.loads(data)
    except json.JSONDecodeError as exc:
        raise CorruptStoreError(f"Snapshot is not valid JSON: {exc}") from exc

    if not isinstance(doc, dict):
        raise CorruptStoreError("Snapshot root must be a JSON object")

    try:
        return _build(doc)
    except CorruptStoreError:
        raise
    except GraphError as exc:
        raise CorruptStoreError(f"Snapshot is inconsistent: {exc}") from exc


def _build(doc: Mapping[str, Any]) -> GraphCore:
    options = doc.get("options") or {}
    if not isinstance(options, dict):
        raise CorruptStoreError("'options' must be an object")
    graph = GraphCore(GraphOptions.from_dict(options))

    graph_attrs = doc.get("attributes") or {}
    if not isinstance(graph_attrs, dict):
        raise CorruptStoreError("'attributes' must be an object")
    graph.attributes.update(graph_attrs)

    nodes = doc.get("nodes", [])
    edges = doc.get("edges", [])
    if not isinstance(nodes, list) or not isinstance(edges, list):
        raise CorruptStoreError("'nodes' and 'edges' must be arrays")

    for i, entry in enumerate(nodes):
        if not isinstance(entry, dict) or not isinstance(entry.get("key"), str):
            raise CorruptStoreError(f"nodes[{i}]: expected an object with a string 'key'")
        graph.add_node(entry["key"], _attrs_of(entry, f"nodes[{i}]"))

    for i, entry in enumerate(edges):
        where = f"edges[{i}]"
        if not isinstance(entry, dict):
            raise CorruptStoreError(f"{where}: expected an object")
        for field in ("key", "source", "target"):
            if not isinstance(entry.get(field), str):
                raise CorruptStoreError(f"{where}: missing string '{field}'")
        attrs = _attrs_of(entry, where)
        edge_type = attrs.pop("type", "")
        if not isinstance(edge_type, str):
            raise CorruptStoreError(f"{where}: 'type' must be a string")
        undirected = entry.get("undirected", False)
        if not isinstance(undirected, bool):
            raise CorruptStoreError(f"{where}: 'undirected' must be a boolean")
        graph.add_edge(
            entry["key"],
            entry["source"],
            entry["target"],
            edge_type,
            attrs,
            undirected=undirected,
        )
    return graph


def _attrs_of(entry: Mapping[str, Any], where: str) -> Dict[str, Any]:
    attrs = entry.get("attributes") or {}
    if not isinstance(attrs, dict):
        raise CorruptStoreError(f"{where}: 'attributes' must be an object")
    return dict(attrs)


class GraphStore:
    """Durable home of one graph snapshot.

    Writes go to a temp file in the same directory which is then
    ``os.replace``d over the snapshot, under an advisory ``FileLock``.
    A crash mid-write leaves the previous snapshot intact.
    """

    def __init__(
        self,
        path: Union[str, Path],
        indent: Optional[int] = 2,
        lock_timeout: float = 5.0,
    ) -> None:
        self.path = Path(path)
        self.indent = indent
        self.lock_timeout = lock_timeout

    def exists(self) -> bool:
        return self.path.exists()

    def load(self, default_options: Optional[GraphOptions] = None) -> GraphCore:
        """Read the snapshot; a missing file gives an empty graph."""
        if not self.path.exists():
            log.info("No graph snapshot at %s; starting empty", self.path)
            return decode(None, default_options)
        try:
            raw = self.path.read_bytes()
        except OSError as exc:
            raise CorruptStoreError(f"Cannot read {self.path}: {exc}") from exc
        graph = decode(raw, default_options)
        log.info(
            "Loaded graph from %s (%d nodes, %d edges)",
            self.path, graph.order, graph.size,
        )
        return graph

    def save(self, graph: GraphCore) -> None:
        payload = encode(graph, indent=self.indent)
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with FileLock(self.path, timeout=self.lock_timeout):
                self._replace(payload)
        except (OSError, TimeoutError) as exc:
            raise PersistenceError(f"Failed to save graph to {self.path}: {exc}") from exc
        log.debug("Saved graph to %s (%d bytes)", self.path, len(payload))

    def _replace(self, payload: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(
            dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise
