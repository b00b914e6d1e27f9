"""Tests for codegraph.system -- GraphSystem wiring and lifecycle."""

import json

import pytest

from codegraph import GraphSystem
from codegraph.core.config import Config
from codegraph.core.errors import CorruptStoreError, PersistenceError


class TestLifecycle:
    def test_fresh_system_is_empty(self, system):
        assert system.graph.order == 0
        assert not system.store.exists()

    def test_engines_share_one_graph(self, system):
        assert system.mutations.graph is system.graph
        assert system.queries.graph is system.graph
        assert system.analyzer.mutations is system.mutations

    def test_reload_sees_previous_writes(self, graph_path):
        with GraphSystem(graph_path=graph_path) as first:
            first.mutations.create_entities([{"id": "a", "type": "file"}])
            first.mutations.create_entities([{"id": "b", "type": "file"}])
            first.mutations.create_relations([{"source": "a", "target": "b", "type": "imports"}])

        with GraphSystem(graph_path=graph_path) as second:
            assert second.graph.node_ids() == ["a", "b"]
            assert second.graph.edge_ids() == ["a-imports->b"]

    def test_corrupt_snapshot_refuses_to_start(self, graph_path):
        graph_path.write_text("{nope", encoding="utf-8")
        with pytest.raises(CorruptStoreError):
            GraphSystem(graph_path=graph_path)

    def test_snapshot_options_win(self, graph_path):
        with GraphSystem(graph_path=graph_path, graph_type="directed") as gs:
            gs.mutations.create_entities([{"id": "a", "type": "t"}])
        with GraphSystem(graph_path=graph_path, graph_type="mixed") as gs:
            assert gs.graph.options.type == "directed"

    def test_config_kwargs(self, graph_path):
        gs = GraphSystem(graph_path=graph_path, allow_self_loops=False)
        assert gs.config.allow_self_loops is False
        assert gs.graph.options.allow_self_loops is False

    def test_close_flushes_pending_changes(self, system, monkeypatch):
        original = system.store.save

        def fail_once(graph):
            monkeypatch.setattr(system.store, "save", original)
            raise PersistenceError("disk full")

        monkeypatch.setattr(system.store, "save", fail_once)
        with pytest.raises(PersistenceError):
            system.mutations.create_entities([{"id": "a", "type": "t"}])
        assert not system.store.exists()

        system.close()
        doc = json.loads(system.config.graph_path.read_text(encoding="utf-8"))
        assert [n["key"] for n in doc["nodes"]] == ["a"]

    def test_close_swallows_persistence_error(self, system, monkeypatch, caplog):
        def fail(graph):
            raise PersistenceError("still full")

        monkeypatch.setattr(system.store, "save", fail)
        with pytest.raises(PersistenceError):
            system.mutations.create_entities([{"id": "a", "type": "t"}])
        system.close()
        assert "Unsaved graph changes" in caplog.text


class TestStats:
    def test_counts(self, system):
        system.mutations.create_entities(
            [{"id": "a", "type": "file"}, {"id": "b", "type": "class"}, {"id": "c", "type": "class"}]
        )
        system.mutations.create_relations(
            [
                {"source": "a", "target": "b", "type": "contains"},
                {"source": "b", "target": "b", "type": "recurses"},
                {"source": "b", "target": "c", "type": "peer", "undirected": True},
            ]
        )
        stats = system.get_stats()
        assert stats.node_count == 3
        assert stats.edge_count == 3
        assert stats.node_types == {"file": 1, "class": 2}
        assert stats.edge_types == {"contains": 1, "recurses": 1, "peer": 1}
        assert stats.self_loops == 1
        assert stats.undirected_edges == 1
        assert stats.to_dict()["graph_path"] == str(system.config.graph_path)


class TestConstruction:
    def test_explicit_config(self, tmp_path):
        config = Config(graph_path=tmp_path / "x.json", json_indent=None)
        gs = GraphSystem(config=config)
        assert gs.config is config
        assert gs.store.indent is None
