"""
codegraph.system -- Top-level GraphSystem: the composition root.

    from codegraph import GraphSystem

    with GraphSystem(graph_path="./codegraph.json") as system:
        system.mutations.create_entities([{"id": "f1", "type": "function"}])
        view = system.queries.read_graph()

Everything is wired up here: config, store, graph, mutation and query
engines, code analyzer.  There is no module-level graph; whoever builds
a GraphSystem owns the graph it loads.
"""

from __future__ import annotations

import logging
from collections import Counter
from pathlib import Path
from typing import Any, Optional

from codegraph.core.config import Config
from codegraph.core.errors import PersistenceError
from codegraph.core.logging import configure_logging
from codegraph.core.types import GraphStats
from codegraph.extraction.analyzer import CodebaseAnalyzer
from codegraph.graph.codec import GraphStore
from codegraph.graph.mutations import MutationManager
from codegraph.graph.query import QueryEngine

log = logging.getLogger(__name__)


class GraphSystem:
    """Load the graph once and hand out the engines that share it.

    Parameters
    ----------
    config:
        Full ``Config`` object.  If not given, ``graph_path`` and
        ``**kwargs`` are forwarded to ``Config``.
    graph_path:
        Shortcut for the snapshot location.
    **kwargs:
        Extra keyword args forwarded to ``Config()``.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        graph_path: Optional[str | Path] = None,
        **kwargs: Any,
    ) -> None:
        if config is not None:
            self.config = config
        elif graph_path is not None:
            self.config = Config(graph_path=Path(graph_path), **kwargs)
        else:
            self.config = Config(**kwargs)

        if self.config.structured_logging:
            configure_logging(structured=True, level=self.config.log_level)

        self.store = GraphStore(
            self.config.graph_path,
            indent=self.config.json_indent,
            lock_timeout=self.config.lock_timeout,
        )
        # CorruptStoreError propagates: never continue on a partial graph
        self.graph = self.store.load(default_options=self.config.graph_options())
        if self.graph.options != self.config.graph_options() and self.store.exists():
            log.info(
                "Snapshot options %s override configured %s",
                self.graph.options.to_dict(),
                self.config.graph_options().to_dict(),
            )

        self.mutations = MutationManager(self.graph, self.store)
        self.queries = QueryEngine(self.graph)
        self.analyzer = CodebaseAnalyzer(
            self.mutations, max_file_bytes=self.config.max_file_bytes
        )

    def get_stats(self) -> GraphStats:
        """Node/edge counts broken down by type."""
        nodes = self.graph.nodes()
        edges = self.graph.edges()
        return GraphStats(
            node_count=len(nodes),
            edge_count=len(edges),
            node_types=dict(Counter(n.type for n in nodes)),
            edge_types=dict(Counter(e.type for e in edges)),
            self_loops=sum(1 for e in edges if e.source == e.target),
            undirected_edges=sum(1 for e in edges if e.undirected),
            graph_path=str(self.config.graph_path),
        )

    def close(self) -> None:
        """Flush changes a failed save left behind."""
        if not self.mutations.dirty:
            return
        try:
            self.mutations.save()
        except PersistenceError as exc:
            log.warning("Unsaved graph changes lost on close: %s", exc)

    def __enter__(self) -> "GraphSystem":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
