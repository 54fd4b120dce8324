from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType

from letter_logic.graph.context import VariableDefinition
from letter_logic.graph.registry import BranchingKind, NodeConfig


@dataclass(frozen=True, slots=True)
class Node:
    id: str
    type: str
    config: NodeConfig
    branching: BranchingKind = "sequence"


@dataclass(frozen=True, slots=True)
class Edge:
    id: str
    source: str
    target: str
    label: str | None = None


@dataclass(frozen=True, slots=True)
class Graph:
    """
    Immutable, validated graph snapshot.

    Built only by the loader's finalize pass. ``outgoing`` keeps each node's
    edges in document order, which is the order sequence nodes follow them.
    """

    graph_id: str
    entry_id: str
    nodes: Mapping[str, Node]
    edges: tuple[Edge, ...]
    outgoing: Mapping[str, tuple[Edge, ...]]
    in_degree: Mapping[str, int]
    topology: tuple[str, ...]
    variables: tuple[VariableDefinition, ...] = ()
    snapshot_hash: str = ""
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def node(self, node_id: str) -> Node:
        return self.nodes[node_id]

    def edges_from(self, node_id: str) -> tuple[Edge, ...]:
        return self.outgoing.get(node_id, ())

    def edges_labeled(self, node_id: str, label: str) -> tuple[Edge, ...]:
        return tuple(edge for edge in self.edges_from(node_id) if edge.label == label)

    def is_shared(self, node_id: str) -> bool:
        return self.in_degree.get(node_id, 0) > 1


def freeze_mapping(values: dict) -> Mapping:
    return MappingProxyType(dict(values))
