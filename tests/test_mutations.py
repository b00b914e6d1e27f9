"""Tests for codegraph.graph.mutations -- the write API."""

import pytest

from codegraph.core.errors import PersistenceError, ValidationError
from codegraph.graph.codec import GraphStore
from codegraph.graph.core import GraphCore
from codegraph.graph.mutations import MutationManager, relation_id


@pytest.fixture
def persisted(graph_path):
    """MutationManager writing through to a temp snapshot."""
    store = GraphStore(graph_path)
    return MutationManager(GraphCore(), store)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------


class TestCreateEntities:
    def test_creates_with_default_name(self, mutations):
        result = mutations.create_entities(
            [{"id": "svc", "type": "class", "attributes": {"language": "python"}}]
        )
        assert result.created_ids == ["svc"]
        assert result.existing_ids == [] and result.errors == []
        assert mutations.graph.get_node("svc") == {
            "type": "class",
            "language": "python",
            "name": "svc",
        }

    def test_legacy_field_names(self, mutations):
        result = mutations.create_entities(
            [{"name": "X", "entityType": "module", "metadata": {"a": 1}, "attributes": {"a": 2}}]
        )
        assert result.created_ids == ["X"]
        assert mutations.graph.get_node("X")["a"] == 2
        assert mutations.graph.get_node("X")["type"] == "module"

    def test_existing_entity_is_merged(self, mutations):
        mutations.create_entities([{"id": "n", "type": "class", "attributes": {"a": 1, "b": 1}}])
        result = mutations.create_entities(
            [{"id": "n", "type": "function", "attributes": {"b": 2, "c": 3}}]
        )
        assert result.created_ids == []
        assert result.existing_ids == ["n"]
        assert mutations.graph.get_node("n") == {
            "type": "class", "a": 1, "b": 2, "c": 3, "name": "n",
        }

    def test_merge_is_idempotent(self, mutations):
        batch = [{"id": "n", "type": "class", "attributes": {"a": [1, 2]}}]
        mutations.create_entities(batch)
        before = mutations.graph.get_node("n")
        mutations.create_entities(batch)
        assert mutations.graph.get_node("n") == before
        assert mutations.graph.order == 1

    def test_bad_items_reported_individually(self, mutations):
        result = mutations.create_entities(
            [
                {"id": "ok", "type": "file"},
                {"type": "file"},
                {"id": "untyped"},
                "not-an-object",
                {"id": "bad", "type": "file", "attributes": {"v": {1, 2}}},
            ]
        )
        assert result.created_ids == ["ok"]
        assert len(result.errors) == 4
        assert result.errors[0].startswith("entities[1]:")
        assert result.errors[1].startswith("entities[2]:")
        assert not mutations.graph.has_node("bad")

    def test_non_list_input_raises(self, mutations):
        with pytest.raises(ValidationError):
            mutations.create_entities({"id": "x", "type": "y"})


class TestUpdateEntities:
    def test_merges_and_reports_missing(self, mutations):
        mutations.create_entities([{"id": "n", "type": "class"}])
        result = mutations.update_entities(
            [{"id": "n", "attributes": {"doc": "hi"}}, {"id": "ghost", "attributes": {}}]
        )
        assert result.updated_ids == ["n"]
        assert result.not_found_ids == ["ghost"]
        assert mutations.graph.get_node("n")["doc"] == "hi"

    def test_type_cannot_change(self, mutations):
        mutations.create_entities([{"id": "n", "type": "class"}])
        mutations.update_entities([{"id": "n", "attributes": {"type": "file"}}])
        assert mutations.graph.get_node("n")["type"] == "class"

    def test_missing_id_is_error(self, mutations):
        result = mutations.update_entities([{"attributes": {}}])
        assert result.errors == ["updates[0]: missing 'id'"]


class TestDeleteEntities:
    def test_cascades_edges(self, chain, mutations):
        result = mutations.delete_entities(["b", "ghost"])
        assert result.deleted_ids == ["b"]
        assert result.not_found_ids == ["ghost"]
        assert sorted(result.cascaded_edge_ids) == ["ab", "bc"]
        assert mutations.graph.edge_ids() == ["cd", "xa"]

    def test_ids_must_be_strings(self, mutations):
        with pytest.raises(ValidationError):
            mutations.delete_entities([1])


# ---------------------------------------------------------------------------
# Relations
# ---------------------------------------------------------------------------


class TestCreateRelations:
    def test_generated_id(self, mutations):
        mutations.create_entities([{"id": "a", "type": "t"}, {"id": "b", "type": "t"}])
        result = mutations.create_relations([{"source": "a", "target": "b", "type": "calls"}])
        assert result.created_ids == ["a-calls->b"]
        assert relation_id("a", "calls", "b") == "a-calls->b"

    def test_legacy_field_names(self, mutations):
        mutations.create_entities([{"id": "a", "type": "t"}, {"id": "b", "type": "t"}])
        result = mutations.create_relations([{"from": "a", "to": "b", "relationType": "uses"}])
        edge = mutations.graph.get_edge(result.created_ids[0])
        assert (edge.source, edge.target, edge.type) == ("a", "b", "uses")

    def test_missing_endpoint_is_rejected(self, mutations):
        mutations.create_entities([{"id": "a", "type": "t"}])
        result = mutations.create_relations(
            [{"source": "a", "target": "ghost", "type": "calls"}]
        )
        assert result.created_ids == []
        assert len(result.errors) == 1
        assert "ghost" in result.errors[0]
        assert mutations.graph.size == 0

    def test_duplicate_id_is_rejected(self, mutations):
        mutations.create_entities([{"id": "a", "type": "t"}, {"id": "b", "type": "t"}])
        first = mutations.create_relations([{"source": "a", "target": "b", "type": "calls"}])
        second = mutations.create_relations([{"source": "a", "target": "b", "type": "calls"}])
        assert first.created_ids == ["a-calls->b"]
        assert second.created_ids == []
        assert second.errors[0].startswith("relations[0]:")
        assert mutations.graph.size == 1

    def test_parallel_edges_with_explicit_ids(self, mutations):
        mutations.create_entities([{"id": "a", "type": "t"}, {"id": "b", "type": "t"}])
        result = mutations.create_relations(
            [
                {"id": "r1", "source": "a", "target": "b", "type": "calls"},
                {"id": "r2", "source": "a", "target": "b", "type": "calls"},
            ]
        )
        assert result.created_ids == ["r1", "r2"]

    def test_missing_fields(self, mutations):
        result = mutations.create_relations([{"source": "a"}])
        assert result.errors == ["relations[0]: missing target, type"]

    def test_undirected_flag(self, mutations):
        mutations.create_entities([{"id": "a", "type": "t"}, {"id": "b", "type": "t"}])
        mutations.create_relations(
            [{"id": "p", "source": "a", "target": "b", "type": "peer", "undirected": True}]
        )
        assert mutations.graph.neighbors("b", "out") == ["a"]


class TestUpdateDeleteRelations:
    def test_update(self, chain, mutations):
        result = mutations.update_relations(
            [{"id": "bc", "attributes": {"weight": 4, "type": "other"}}, {"id": "nope"}]
        )
        assert result.updated_ids == ["bc"]
        assert result.not_found_ids == ["nope"]
        assert mutations.graph.get_edge("bc").attributes == {"type": "calls", "weight": 4}

    def test_delete(self, chain, mutations):
        result = mutations.delete_relations(["bc", "bc"])
        assert result.deleted_ids == ["bc"]
        assert result.not_found_ids == ["bc"]
        assert mutations.graph.has_node("b") and mutations.graph.has_node("c")


# ---------------------------------------------------------------------------
# Observations
# ---------------------------------------------------------------------------


class TestObservations:
    def test_create_links_to_entities(self, chain, mutations):
        result = mutations.create_observations(
            [
                {
                    "id": "obs1",
                    "content": "b is slow",
                    "tags": ["perf"],
                    "relatedEntityIds": ["b", "ghost"],
                }
            ]
        )
        assert result.created_ids == ["obs1"]
        assert result.linked_edge_ids == ["obs1-relates_to->b"]
        assert len(result.warnings) == 1 and "ghost" in result.warnings[0]
        node = mutations.graph.get_node("obs1")
        assert node["type"] == "observation"
        assert node["content"] == "b is slow"
        assert node["tags"] == ["perf"]

    def test_generated_id(self, mutations):
        result = mutations.create_observations([{"content": "note"}])
        assert len(result.created_ids) == 1
        assert len(result.created_ids[0]) == 12

    def test_recreate_merges_without_relinking(self, chain, mutations):
        obs = [{"id": "o", "content": "v1", "relatedEntityIds": ["a"]}]
        mutations.create_observations(obs)
        result = mutations.create_observations(
            [{"id": "o", "content": "v2", "relatedEntityIds": ["a"]}]
        )
        assert result.existing_ids == ["o"]
        assert result.linked_edge_ids == []
        assert mutations.graph.get_node("o")["content"] == "v2"

    def test_missing_content(self, mutations):
        result = mutations.create_observations([{"id": "o"}])
        assert result.errors == ["observations[0]: missing 'content'"]

    def test_add_observations(self, chain, mutations):
        result = mutations.add_observations(
            [
                {"entityId": "c", "observationsToAdd": ["first", {"content": "second", "observationType": "bug"}]},
                {"entityId": "ghost", "observationsToAdd": ["lost"]},
            ]
        )
        assert result.not_found_ids == ["ghost"]
        assert len(result.results) == 1
        added = result.results[0]
        assert added.entity_id == "c"
        assert len(added.added_observation_ids) == 2
        second = mutations.graph.get_node(added.added_observation_ids[1])
        assert second["observationType"] == "bug"
        assert second["type"] == "observation"
        assert "c" in mutations.graph.neighbors(added.added_observation_ids[0], "out")

    def test_add_observations_contents_alias(self, chain, mutations):
        result = mutations.add_observations([{"entityName": "a", "contents": ["x"]}])
        assert len(result.results[0].added_observation_ids) == 1

    def test_add_observations_bad_item(self, chain, mutations):
        result = mutations.add_observations([{"entityId": "a", "observationsToAdd": [{"nope": 1}]}])
        assert result.results == []
        assert result.errors[0].startswith("observations[0]:")

    def test_id_of_non_observation_node_is_rejected(self, mutations):
        mutations.create_entities([{"id": "f1", "type": "function"}, {"id": "c1", "type": "class"}])
        result = mutations.create_observations(
            [{"id": "f1", "content": "note", "relatedEntityIds": ["c1"]}]
        )
        assert result.existing_ids == [] and result.created_ids == []
        assert result.linked_edge_ids == []
        assert result.errors == ["observations[0]: id 'f1' belongs to a function node"]
        assert mutations.graph.get_node("f1") == {"type": "function", "name": "f1"}
        assert mutations.graph.size == 0


class TestDeleteObservations:
    @pytest.fixture
    def noted(self, chain, mutations):
        mutations.create_observations(
            [
                {"id": "o1", "content": "one", "relatedEntityIds": ["a"]},
                {"id": "o2", "content": "two", "relatedEntityIds": ["a"]},
                {"id": "o3", "content": "three", "relatedEntityIds": ["b"]},
            ]
        )
        return mutations

    def test_deletes_linked_observations(self, noted):
        result = noted.delete_observations([{"entityId": "a", "observationIds": ["o1"]}])
        assert [r.to_dict() for r in result.results] == [
            {"entity_id": "a", "deleted_ids": ["o1"], "not_found_ids": []}
        ]
        assert result.cascaded_edge_ids == ["o1-relates_to->a"]
        assert not noted.graph.has_node("o1")
        assert noted.graph.has_node("o2")

    def test_only_observations_of_that_entity(self, noted):
        result = noted.delete_observations(
            [{"entityId": "a", "observationIds": ["o3", "b", "ghost"]}]
        )
        assert result.results[0].deleted_ids == []
        assert result.results[0].not_found_ids == ["o3", "b", "ghost"]
        assert noted.graph.has_node("o3") and noted.graph.has_node("b")

    def test_unknown_entity_and_bad_items(self, noted):
        result = noted.delete_observations(
            [
                {"entityId": "ghost", "observationIds": ["o1"]},
                {"observationIds": ["o1"]},
                {"entityName": "a", "observationIds": [1]},
            ]
        )
        assert result.not_found_ids == ["ghost"]
        assert result.results == []
        assert len(result.errors) == 2
        assert result.errors[0] == "deletions[1]: missing 'entityId'"
        assert result.errors[1].startswith("deletions[2]:")
        assert noted.graph.has_node("o1")

    def test_saves_when_something_was_deleted(self, graph_path):
        manager = MutationManager(GraphCore(), GraphStore(graph_path))
        manager.create_entities([{"id": "a", "type": "t"}])
        manager.create_observations([{"id": "o1", "content": "x", "relatedEntityIds": ["a"]}])
        manager.delete_observations([{"entityId": "a", "observationIds": ["o1"]}])
        assert GraphStore(graph_path).load().node_ids() == ["a"]


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class TestPersistence:
    def test_each_changing_call_saves(self, persisted, graph_path):
        persisted.create_entities([{"id": "a", "type": "t"}])
        assert graph_path.exists()
        assert GraphStore(graph_path).load().node_ids() == ["a"]

    def test_no_change_no_save(self, persisted, graph_path):
        persisted.delete_entities(["ghost"])
        assert not graph_path.exists()

    def test_batch_saves_once(self, persisted, monkeypatch):
        calls = []
        original = persisted.store.save
        monkeypatch.setattr(persisted.store, "save", lambda g: (calls.append(1), original(g)))
        with persisted.batch():
            persisted.create_entities([{"id": "a", "type": "t"}])
            persisted.create_entities([{"id": "b", "type": "t"}])
            persisted.create_relations([{"source": "a", "target": "b", "type": "x"}])
            assert calls == []
            assert persisted.dirty
        assert calls == [1]
        assert not persisted.dirty

    def test_failed_batch_does_not_save(self, persisted, graph_path):
        with pytest.raises(RuntimeError):
            with persisted.batch():
                persisted.create_entities([{"id": "a", "type": "t"}])
                raise RuntimeError("boom")
        assert not graph_path.exists()
        assert persisted.dirty
        persisted.save()
        assert GraphStore(graph_path).load().node_ids() == ["a"]

    def test_save_failure_keeps_memory(self, persisted, monkeypatch):
        def fail(graph):
            raise PersistenceError("disk full")

        monkeypatch.setattr(persisted.store, "save", fail)
        with pytest.raises(PersistenceError):
            persisted.create_entities([{"id": "a", "type": "t"}])
        assert persisted.graph.has_node("a")
        assert persisted.dirty


# ---------------------------------------------------------------------------
# End-to-end scenarios
# ---------------------------------------------------------------------------


class TestScenarios:
    def test_entity_relation_delete(self, mutations, queries):
        mutations.create_entities([{"id": "f1", "type": "function"}])
        mutations.create_entities([{"id": "c1", "type": "class"}])
        mutations.create_relations([{"id": "r1", "source": "f1", "target": "c1", "type": "uses"}])
        view = queries.read_graph()
        assert (len(view.nodes), len(view.edges)) == (2, 1)

        mutations.delete_entities(["c1"])
        view = queries.read_graph()
        assert (len(view.nodes), len(view.edges)) == (1, 0)

    def test_observation_with_missing_entity(self, mutations):
        mutations.create_entities([{"id": "f1", "type": "function"}])
        result = mutations.create_observations(
            [{"id": "o1", "content": "note", "relatedEntityIds": ["f1", "missing"]}]
        )
        assert result.created_ids == ["o1"]
        assert result.errors == []
        assert mutations.graph.neighbors("o1", "out") == ["f1"]

    def test_repeat_equals_union(self, mutations):
        mutations.create_entities([{"id": "X", "type": "t", "attributes": {"a": 1}}])
        mutations.create_entities([{"id": "X", "type": "t", "attributes": {"b": 2}}])
        other = MutationManager(GraphCore())
        other.create_entities([{"id": "X", "type": "t", "attributes": {"a": 1, "b": 2}}])
        assert mutations.graph.get_node("X") == other.graph.get_node("X")
        assert mutations.graph.node_ids() == ["X"]
