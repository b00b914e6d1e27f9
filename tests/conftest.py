"""Shared fixtures for codegraph tests."""

import pytest

from codegraph.core.config import Config
from codegraph.graph.codec import GraphStore
from codegraph.graph.core import GraphCore
from codegraph.graph.mutations import MutationManager
from codegraph.graph.query import QueryEngine
from codegraph.system import GraphSystem


@pytest.fixture
def graph_path(tmp_path):
    """Snapshot location inside the per-test temp directory."""
    return tmp_path / "graph.json"


@pytest.fixture
def config(graph_path):
    """Provide a Config pointing at a temp snapshot."""
    return Config(graph_path=graph_path)


@pytest.fixture
def system(config):
    """A real GraphSystem backed by a temp snapshot."""
    gs = GraphSystem(config=config)
    yield gs
    gs.close()


@pytest.fixture
def graph():
    """An empty in-memory graph with default options."""
    return GraphCore()


@pytest.fixture
def store(graph_path):
    return GraphStore(graph_path)


@pytest.fixture
def mutations(graph):
    """MutationManager with no store: changes stay in memory."""
    return MutationManager(graph)


@pytest.fixture
def queries(graph):
    return QueryEngine(graph)


@pytest.fixture
def weighted(mutations):
    """A -> B (2), B -> C (2), A -> C (10)."""
    mutations.create_entities(
        [{"id": n, "type": "node"} for n in ("A", "B", "C")]
    )
    mutations.create_relations(
        [
            {"id": "ab", "source": "A", "target": "B", "type": "next", "attributes": {"weight": 2}},
            {"id": "bc", "source": "B", "target": "C", "type": "next", "attributes": {"weight": 2}},
            {"id": "ac", "source": "A", "target": "C", "type": "jump", "attributes": {"weight": 10}},
        ]
    )
    return mutations.graph


@pytest.fixture
def chain(mutations):
    """a -> b -> c -> d, plus x -> a and an isolated node z."""
    mutations.create_entities(
        [
            {"id": "a", "type": "module", "attributes": {"layer": "core"}},
            {"id": "b", "type": "class", "attributes": {"layer": "core"}},
            {"id": "c", "type": "function", "attributes": {"layer": "api"}},
            {"id": "d", "type": "function", "attributes": {"layer": "core"}},
            {"id": "x", "type": "file"},
            {"id": "z", "type": "file"},
        ]
    )
    mutations.create_relations(
        [
            {"id": "ab", "source": "a", "target": "b", "type": "contains"},
            {"id": "bc", "source": "b", "target": "c", "type": "calls"},
            {"id": "cd", "source": "c", "target": "d", "type": "calls"},
            {"id": "xa", "source": "x", "target": "a", "type": "imports"},
        ]
    )
    return mutations.graph
