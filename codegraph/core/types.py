"""
codegraph.core.types -- Data types for the codegraph engine.

Every structure here is a plain dataclass, serialisable to a dict/JSON
in one call.  Attribute maps are always copies: mutating a record never
touches the live graph.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Union


# ---------------------------------------------------------------------------
# Graph records
# ---------------------------------------------------------------------------


@dataclass
class NodeRecord:
    """Snapshot of one node: its id plus a copy of its attributes."""

    id: str
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def type(self) -> str:
        return self.attributes.get("type", "")

    @property
    def name(self) -> str:
        return self.attributes.get("name", self.id)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "attributes": self.attributes}


@dataclass
class EdgeRecord:
    """Snapshot of one edge."""

    id: str
    source: str
    target: str
    attributes: Dict[str, Any] = field(default_factory=dict)
    undirected: bool = False

    @property
    def type(self) -> str:
        return self.attributes.get("type", "")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "attributes": self.attributes,
            "undirected": self.undirected,
        }


@dataclass
class GraphView:
    """A set of nodes plus the edges induced on them."""

    nodes: List[NodeRecord] = field(default_factory=list)
    edges: List[EdgeRecord] = field(default_factory=list)

    def node_ids(self) -> List[str]:
        return [n.id for n in self.nodes]

    def edge_ids(self) -> List[str]:
        return [e.id for e in self.edges]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }


# ---------------------------------------------------------------------------
# Mutation results
# ---------------------------------------------------------------------------


@dataclass
class EntityBatchResult:
    created_ids: List[str] = field(default_factory=list)
    existing_ids: List[str] = field(default_factory=list)  # merged
    errors: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created_ids or self.existing_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "created_ids": self.created_ids,
            "existing_ids": self.existing_ids,
            "errors": self.errors,
        }


@dataclass
class RelationBatchResult:
    created_ids: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {"created_ids": self.created_ids, "errors": self.errors}


@dataclass
class ObservationBatchResult:
    created_ids: List[str] = field(default_factory=list)
    existing_ids: List[str] = field(default_factory=list)
    linked_edge_ids: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created_ids or self.existing_ids or self.linked_edge_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "created_ids": self.created_ids,
            "existing_ids": self.existing_ids,
            "linked_edge_ids": self.linked_edge_ids,
            "warnings": self.warnings,
            "errors": self.errors,
        }


@dataclass
class AddedObservations:
    """Observations attached to one entity by ``add_observations``."""

    entity_id: str
    added_observation_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "added_observation_ids": self.added_observation_ids,
        }


@dataclass
class AddObservationsResult:
    results: List[AddedObservations] = field(default_factory=list)
    not_found_ids: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return any(r.added_observation_ids for r in self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "not_found_ids": self.not_found_ids,
            "errors": self.errors,
        }


@dataclass
class DeletedObservations:
    """Observations removed from one entity by ``delete_observations``."""

    entity_id: str
    deleted_ids: List[str] = field(default_factory=list)
    not_found_ids: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "deleted_ids": self.deleted_ids,
            "not_found_ids": self.not_found_ids,
        }


@dataclass
class DeleteObservationsResult:
    results: List[DeletedObservations] = field(default_factory=list)
    not_found_ids: List[str] = field(default_factory=list)  # entities
    cascaded_edge_ids: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return any(r.deleted_ids for r in self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "not_found_ids": self.not_found_ids,
            "cascaded_edge_ids": self.cascaded_edge_ids,
            "errors": self.errors,
        }


@dataclass
class UpdateResult:
    updated_ids: List[str] = field(default_factory=list)
    not_found_ids: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.updated_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "updated_ids": self.updated_ids,
            "not_found_ids": self.not_found_ids,
            "errors": self.errors,
        }


@dataclass
class DeleteResult:
    deleted_ids: List[str] = field(default_factory=list)
    not_found_ids: List[str] = field(default_factory=list)
    cascaded_edge_ids: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.deleted_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deleted_ids": self.deleted_ids,
            "not_found_ids": self.not_found_ids,
            "cascaded_edge_ids": self.cascaded_edge_ids,
        }


# ---------------------------------------------------------------------------
# Advanced query results
#
# One variant per composition mode, so a caller never has to guess which
# optional fields were filled in.
# ---------------------------------------------------------------------------


@dataclass
class PathResult:
    nodes: List[NodeRecord] = field(default_factory=list)
    edges: List[EdgeRecord] = field(default_factory=list)
    cost: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
            "cost": self.cost,
        }


@dataclass
class NodesOnlyResult:
    composition: ClassVar[str] = "nodes_only"

    query_type: str
    nodes: List[NodeRecord] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query_type": self.query_type,
            "composition": self.composition,
            "nodes": [n.to_dict() for n in self.nodes],
        }


@dataclass
class NodesAndEdgesResult:
    composition: ClassVar[str] = "nodes_and_edges"

    query_type: str
    nodes: List[NodeRecord] = field(default_factory=list)
    edges: List[EdgeRecord] = field(default_factory=list)
    cost: Optional[float] = None  # shortest_path only

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "query_type": self.query_type,
            "composition": self.composition,
            "nodes": [n.to_dict() for n in self.nodes],
            "edges": [e.to_dict() for e in self.edges],
        }
        if self.cost is not None:
            data["cost"] = self.cost
        return data


@dataclass
class PathsResult:
    composition: ClassVar[str] = "paths"

    query_type: str
    paths: List[PathResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "query_type": self.query_type,
            "composition": self.composition,
            "paths": [p.to_dict() for p in self.paths],
        }


QueryResult = Union[NodesOnlyResult, NodesAndEdgesResult, PathsResult]


# ---------------------------------------------------------------------------
# Stats
# ---------------------------------------------------------------------------


@dataclass
class GraphStats:
    node_count: int = 0
    edge_count: int = 0
    node_types: Dict[str, int] = field(default_factory=dict)
    edge_types: Dict[str, int] = field(default_factory=dict)
    self_loops: int = 0
    undirected_edges: int = 0
    graph_path: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_count": self.node_count,
            "edge_count": self.edge_count,
            "node_types": self.node_types,
            "edge_types": self.edge_types,
            "self_loops": self.self_loops,
            "undirected_edges": self.undirected_edges,
            "graph_path": self.graph_path,
        }
