"""
codegraph.graph.mutations -- The write API.

``MutationManager`` is the only place that decides between create,
merge and reject.  Batch calls never fail as a whole because of one bad
item: each item is validated on its own and reported in the result.
Only a structurally invalid call (e.g. ``inputs`` is not a list) raises.

Every call that changed the graph saves the whole snapshot before it
returns.  If that save fails, ``PersistenceError`` propagates and the
in-memory change stays in place.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple

from codegraph.core.errors import GraphError, ValidationError
from codegraph.core.types import (
    AddedObservations,
    AddObservationsResult,
    DeletedObservations,
    DeleteObservationsResult,
    DeleteResult,
    EntityBatchResult,
    ObservationBatchResult,
    RelationBatchResult,
    UpdateResult,
)
from codegraph.graph.codec import GraphStore
from codegraph.graph.core import GraphCore

log = logging.getLogger(__name__)

OBSERVATION_TYPE = "observation"
RELATES_TO = "relates_to"


def relation_id(source: str, relation_type: str, target: str) -> str:
    return f"{source}-{relation_type}->{target}"


def observation_link_id(observation_id: str, entity_id: str) -> str:
    return relation_id(observation_id, RELATES_TO, entity_id)


def new_observation_id() -> str:
    return uuid.uuid4().hex[:12]


def _require_list(value: Any, what: str) -> Sequence[Any]:
    if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Sequence):
        raise ValidationError(f"{what} must be a list, got {type(value).__name__}")
    return value


def _require_mapping(item: Any) -> Mapping[str, Any]:
    if not isinstance(item, Mapping):
        raise ValidationError(f"expected an object, got {type(item).__name__}")
    return item


def _text_field(item: Mapping[str, Any], *keys: str) -> Optional[str]:
    """First non-empty string among *keys*."""
    for key in keys:
        value = item.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _attributes_of(item: Mapping[str, Any]) -> Dict[str, Any]:
    """``metadata`` (legacy) overlaid by ``attributes``."""
    attrs: Dict[str, Any] = {}
    for key in ("metadata", "attributes"):
        part = item.get(key)
        if part is None:
            continue
        if not isinstance(part, Mapping):
            raise ValidationError(f"'{key}' must be an object")
        attrs.update(part)
    return attrs


class MutationManager:
    """All graph writes.

    Parameters
    ----------
    graph : GraphCore
        The live graph, shared with the query side.
    store : GraphStore, optional
        Where to persist after each changing call.  ``None`` keeps the
        graph in memory only.
    """

    def __init__(self, graph: GraphCore, store: Optional[GraphStore] = None) -> None:
        self.graph = graph
        self.store = store
        self._batch_depth = 0
        self._dirty = False

    # -------------------- Persistence --------------------

    @contextmanager
    def batch(self) -> Iterator["MutationManager"]:
        """Defer saving until the outermost ``batch()`` exits.

        If the block raises, nothing is saved here; the pending changes
        go out with the next successful save.
        """
        self._batch_depth += 1
        try:
            yield self
        finally:
            self._batch_depth -= 1
        self._commit(False)

    @property
    def dirty(self) -> bool:
        """True when changes are waiting for the end of a batch or a retry."""
        return self._dirty

    def save(self) -> None:
        if self.store is None:
            return
        self.store.save(self.graph)
        self._dirty = False

    def _commit(self, changed: bool) -> None:
        if changed:
            self._dirty = True
        if self._batch_depth == 0 and self._dirty:
            self.save()

    # -------------------- Entities --------------------

    def create_entities(self, inputs: Sequence[Mapping[str, Any]]) -> EntityBatchResult:
        result = EntityBatchResult()
        for i, item in enumerate(_require_list(inputs, "entities")):
            where = f"entities[{i}]"
            try:
                node_id, attrs = self._entity_input(item)
                if self.graph.has_node(node_id):
                    self._merge_node(node_id, attrs)
                    result.existing_ids.append(node_id)
                    log.debug("Entity %s exists; attributes merged", node_id)
                else:
                    attrs.setdefault("name", node_id)
                    self.graph.add_node(node_id, attrs)
                    result.created_ids.append(node_id)
            except GraphError as exc:
                result.errors.append(f"{where}: {exc}")
        self._commit(result.changed)
        return result

    def update_entities(self, updates: Sequence[Mapping[str, Any]]) -> UpdateResult:
        result = UpdateResult()
        for i, item in enumerate(_require_list(updates, "updates")):
            where = f"updates[{i}]"
            try:
                item = _require_mapping(item)
                node_id = _text_field(item, "id", "name")
                if node_id is None:
                    raise ValidationError("missing 'id'")
                if not self.graph.has_node(node_id):
                    result.not_found_ids.append(node_id)
                    continue
                self._merge_node(node_id, _attributes_of(item))
                result.updated_ids.append(node_id)
            except GraphError as exc:
                result.errors.append(f"{where}: {exc}")
        self._commit(result.changed)
        return result

    def delete_entities(self, ids: Sequence[str]) -> DeleteResult:
        result = DeleteResult()
        for node_id in self._id_list(ids, "ids"):
            if not self.graph.has_node(node_id):
                result.not_found_ids.append(node_id)
                continue
            result.cascaded_edge_ids.extend(self.graph.drop_node(node_id))
            result.deleted_ids.append(node_id)
        self._commit(result.changed)
        return result

    # -------------------- Relations --------------------

    def create_relations(self, inputs: Sequence[Mapping[str, Any]]) -> RelationBatchResult:
        result = RelationBatchResult()
        for i, item in enumerate(_require_list(inputs, "relations")):
            where = f"relations[{i}]"
            try:
                item = _require_mapping(item)
                source = _text_field(item, "source", "from")
                target = _text_field(item, "target", "to")
                rel_type = _text_field(item, "type", "relationType")
                missing = [
                    name
                    for name, value in (("source", source), ("target", target), ("type", rel_type))
                    if value is None
                ]
                if missing:
                    raise ValidationError(f"missing {', '.join(missing)}")
                edge_id = _text_field(item, "id") or relation_id(source, rel_type, target)
                attrs = _attributes_of(item)
                attrs.pop("type", None)
                self.graph.add_edge(
                    edge_id,
                    source,
                    target,
                    rel_type,
                    attrs,
                    undirected=bool(item.get("undirected", False)),
                )
                result.created_ids.append(edge_id)
            except GraphError as exc:
                result.errors.append(f"{where}: {exc}")
        self._commit(result.changed)
        return result

    def update_relations(self, updates: Sequence[Mapping[str, Any]]) -> UpdateResult:
        result = UpdateResult()
        for i, item in enumerate(_require_list(updates, "updates")):
            where = f"updates[{i}]"
            try:
                item = _require_mapping(item)
                edge_id = _text_field(item, "id", "key")
                if edge_id is None:
                    raise ValidationError("missing 'id'")
                if not self.graph.has_edge(edge_id):
                    result.not_found_ids.append(edge_id)
                    continue
                ignored = self.graph.merge_edge(edge_id, _attributes_of(item))
                if ignored:
                    log.warning("Ignoring change to reserved %s on relation %s", ignored, edge_id)
                result.updated_ids.append(edge_id)
            except GraphError as exc:
                result.errors.append(f"{where}: {exc}")
        self._commit(result.changed)
        return result

    def delete_relations(self, ids: Sequence[str]) -> DeleteResult:
        result = DeleteResult()
        for edge_id in self._id_list(ids, "ids"):
            if not self.graph.has_edge(edge_id):
                result.not_found_ids.append(edge_id)
                continue
            self.graph.drop_edge(edge_id)
            result.deleted_ids.append(edge_id)
        self._commit(result.changed)
        return result

    # -------------------- Observations --------------------

    def create_observations(self, inputs: Sequence[Mapping[str, Any]]) -> ObservationBatchResult:
        result = ObservationBatchResult()
        for i, item in enumerate(_require_list(inputs, "observations")):
            where = f"observations[{i}]"
            try:
                item = _require_mapping(item)
                content = item.get("content")
                if not isinstance(content, str):
                    raise ValidationError("missing 'content'")
                related = item.get("relatedEntityIds", item.get("related_entity_ids", []))
                related = self._id_list(related, "relatedEntityIds")

                obs_id = _text_field(item, "id") or new_observation_id()
                attrs = _attributes_of(item)
                attrs["content"] = content
                if item.get("tags") is not None:
                    attrs["tags"] = item["tags"]

                if self.graph.has_node(obs_id):
                    existing_type = self.graph.get_node(obs_id).get("type")
                    if existing_type != OBSERVATION_TYPE:
                        raise ValidationError(
                            f"id {obs_id!r} belongs to a {existing_type} node"
                        )
                    self._merge_node(obs_id, attrs)
                    result.existing_ids.append(obs_id)
                else:
                    self._add_observation_node(obs_id, attrs)
                    result.created_ids.append(obs_id)

                for entity_id in related:
                    if not self.graph.has_node(entity_id):
                        msg = f"Observation {obs_id}: related entity {entity_id} not found"
                        log.warning(msg)
                        result.warnings.append(msg)
                        continue
                    edge_id = self._link(obs_id, entity_id)
                    if edge_id is not None:
                        result.linked_edge_ids.append(edge_id)
            except GraphError as exc:
                result.errors.append(f"{where}: {exc}")
        self._commit(result.changed)
        return result

    def add_observations(self, inputs: Sequence[Mapping[str, Any]]) -> AddObservationsResult:
        """Attach new observation nodes to existing entities.

        Each input is ``{"entityId": ..., "observationsToAdd": [...]}``
        where an observation is either a string or an object with
        ``content`` plus any extra attributes (``observationType``, ...).
        ``contents`` (a list of strings) is accepted in place of
        ``observationsToAdd``.
        """
        result = AddObservationsResult()
        for i, item in enumerate(_require_list(inputs, "observations")):
            where = f"observations[{i}]"
            try:
                item = _require_mapping(item)
                entity_id = _text_field(item, "entityId", "entityName", "id")
                if entity_id is None:
                    raise ValidationError("missing 'entityId'")
                raw = item.get("observationsToAdd", item.get("contents"))
                if raw is None:
                    raise ValidationError("missing 'observationsToAdd'")
                pending = [self._observation_attrs(obs) for obs in _require_list(raw, "observationsToAdd")]
                if not self.graph.has_node(entity_id):
                    result.not_found_ids.append(entity_id)
                    continue

                added = AddedObservations(entity_id=entity_id)
                for attrs in pending:
                    obs_id = new_observation_id()
                    self._add_observation_node(obs_id, attrs)
                    self._link(obs_id, entity_id)
                    added.added_observation_ids.append(obs_id)
                result.results.append(added)
            except GraphError as exc:
                result.errors.append(f"{where}: {exc}")
        self._commit(result.changed)
        return result

    def delete_observations(self, deletions: Sequence[Mapping[str, Any]]) -> DeleteObservationsResult:
        """Delete observation nodes attached to an entity.

        Each input is ``{"entityId": ..., "observationIds": [...]}``.  An id
        is deleted only when it names an ``observation`` node with a
        ``relates_to`` link to that entity; anything else is reported in
        ``not_found_ids`` for that entity.
        """
        result = DeleteObservationsResult()
        for i, item in enumerate(_require_list(deletions, "deletions")):
            where = f"deletions[{i}]"
            try:
                item = _require_mapping(item)
                entity_id = _text_field(item, "entityId", "entityName", "id")
                if entity_id is None:
                    raise ValidationError("missing 'entityId'")
                obs_ids = self._id_list(item.get("observationIds", []), "observationIds")
                if not self.graph.has_node(entity_id):
                    result.not_found_ids.append(entity_id)
                    continue

                deleted = DeletedObservations(entity_id=entity_id)
                for obs_id in obs_ids:
                    if not self._observes(obs_id, entity_id):
                        deleted.not_found_ids.append(obs_id)
                        continue
                    result.cascaded_edge_ids.extend(self.graph.drop_node(obs_id))
                    deleted.deleted_ids.append(obs_id)
                result.results.append(deleted)
            except GraphError as exc:
                result.errors.append(f"{where}: {exc}")
        self._commit(result.changed)
        return result

    # -------------------- Internals --------------------

    def _entity_input(self, item: Any) -> Tuple[str, Dict[str, Any]]:
        item = _require_mapping(item)
        node_id = _text_field(item, "id", "name")
        node_type = _text_field(item, "type", "entityType")
        if node_id is None:
            raise ValidationError("missing 'id'")
        if node_type is None:
            raise ValidationError(f"missing 'type' for {node_id!r}")
        attrs = _attributes_of(item)
        attrs["type"] = node_type
        return node_id, attrs

    def _merge_node(self, node_id: str, attrs: Mapping[str, Any]) -> None:
        ignored = self.graph.merge_node(node_id, attrs)
        if ignored:
            log.warning("Ignoring change to reserved %s on %s", ignored, node_id)

    def _add_observation_node(self, obs_id: str, attrs: Dict[str, Any]) -> None:
        attrs["type"] = OBSERVATION_TYPE
        attrs.setdefault("name", f"Observation {obs_id}")
        self.graph.add_node(obs_id, attrs)

    def _link(self, obs_id: str, entity_id: str) -> Optional[str]:
        """Create the observation link unless it already exists."""
        edge_id = observation_link_id(obs_id, entity_id)
        if self.graph.has_edge(edge_id):
            return None
        self.graph.add_edge(edge_id, obs_id, entity_id, RELATES_TO)
        return edge_id

    def _observes(self, obs_id: str, entity_id: str) -> bool:
        """True if *obs_id* is an observation node linked to *entity_id*."""
        node = self.graph.get_node(obs_id)
        if node is None or node.get("type") != OBSERVATION_TYPE:
            return False
        for edge_id in self.graph.incident_edge_ids(obs_id):
            edge = self.graph.get_edge(edge_id)
            if edge.type == RELATES_TO and edge.source == obs_id and edge.target == entity_id:
                return True
        return False

    @staticmethod
    def _observation_attrs(obs: Any) -> Dict[str, Any]:
        if isinstance(obs, str):
            return {"content": obs}
        obs = _require_mapping(obs)
        if not isinstance(obs.get("content"), str):
            raise ValidationError("observation is missing 'content'")
        attrs = dict(obs)
        attrs.pop("type", None)
        return attrs

    @staticmethod
    def _id_list(ids: Any, what: str) -> List[str]:
        ids = _require_list(ids, what)
        for value in ids:
            if not isinstance(value, str):
                raise ValidationError(f"{what} must contain strings, got {value!r}")
        return list(ids)
