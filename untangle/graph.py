"""
The semantic graph of one analysis run.

A thin wrapper around a networkx MultiDiGraph: vertices are entity and
hunk nodes, edges are typed and weighted references between them.
Multi-edges and self-loops (recursive calls) are allowed. The wrapper
enforces that no two nodes share the same (kind, qualified_name) and
hands out monotonically increasing node and edge ids.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Set, Tuple

import networkx as nx

from .domain import Version
from .errors import GraphIntegrityError


class NodeKind(Enum):
    CLASS = "class"
    INTERFACE = "interface"
    METHOD = "method"
    FIELD = "field"
    IMPORT = "import"
    HUNK = "hunk"


class EdgeKind(Enum):
    CONTAIN = "contain"
    CALL = "call"
    ACCESS = "access"
    RETURN = "return"
    PARAM = "param"
    INITIALIZE = "initialize"
    TYPE = "type"

    @property
    def weight(self) -> float:
        return EDGE_WEIGHTS[self]


EDGE_WEIGHTS = {
    EdgeKind.CONTAIN: 1.0,
    EdgeKind.CALL: 1.0,
    EdgeKind.ACCESS: 1.0,
    EdgeKind.RETURN: 0.75,
    EdgeKind.PARAM: 0.75,
    EdgeKind.TYPE: 0.75,
    EdgeKind.INITIALIZE: 0.5,
}


@dataclass(eq=False)
class Node:
    """
    A vertex of the semantic graph.

    `qualified_name` is version scoped ("current:pkg.A.foo()"). The
    structural context (`package`, `owner`, `member`) is version free
    so nodes of both revisions compare equal on it.
    """

    id: int
    kind: NodeKind
    identifier: str
    qualified_name: str
    version: Version
    package: Optional[str] = None
    owner: Optional[str] = None
    member: Optional[str] = None
    touched_by_hunk: bool = False
    hunk_index: Optional[str] = None
    hunk_indices: Set[str] = field(default_factory=set)

    @property
    def entity_name(self) -> str:
        """The qualified name without its version prefix."""
        return self.qualified_name.split(":", 1)[1]

    def mark(self, hunk_index: str) -> None:
        self.touched_by_hunk = True
        self.hunk_index = hunk_index
        self.hunk_indices.add(hunk_index)

    def __repr__(self) -> str:
        return f"Node({self.id}, {self.kind.value}, {self.qualified_name!r})"


@dataclass(frozen=True)
class Edge:
    id: int
    kind: EdgeKind
    weight: float


class SemanticGraph:
    """
    Directed, weighted multigraph of entity and hunk nodes.
    """

    def __init__(self) -> None:
        self._graph = nx.MultiDiGraph()
        self._undirected = self._graph.to_undirected(as_view=True)
        self._nodes: Dict[int, Node] = {}
        self._by_name: Dict[Tuple[NodeKind, str], Node] = {}
        self._next_edge_id = 0

    def add_node(
        self,
        kind: NodeKind,
        identifier: str,
        qualified_name: str,
        version: Version,
        package: Optional[str] = None,
        owner: Optional[str] = None,
        member: Optional[str] = None,
    ) -> Node:
        if (kind, qualified_name) in self._by_name:
            raise GraphIntegrityError(f"duplicate {kind.value} node {qualified_name}")
        node = Node(
            id=len(self._nodes) + 1,
            kind=kind,
            identifier=identifier,
            qualified_name=qualified_name,
            version=version,
            package=package,
            owner=owner,
            member=member,
        )
        self._nodes[node.id] = node
        self._by_name[(kind, qualified_name)] = node
        self._graph.add_node(node.id)
        return node

    def add_edge(self, source: Node, target: Node, kind: EdgeKind) -> Edge:
        edge = Edge(id=self._next_edge_id, kind=kind, weight=kind.weight)
        self._next_edge_id += 1
        self._graph.add_edge(source.id, target.id, key=edge.id, edge=edge)
        return edge

    def nodes(self) -> List[Node]:
        return list(self._nodes.values())

    def touched_nodes(self) -> List[Node]:
        return [node for node in self._nodes.values() if node.touched_by_hunk]

    def edges(self) -> List[Tuple[Node, Node, Edge]]:
        return [
            (self._nodes[u], self._nodes[v], data["edge"])
            for u, v, data in self._graph.edges(data=True)
        ]

    def out_edges(self, node: Node) -> List[Tuple[Node, Edge]]:
        return [
            (self._nodes[v], data["edge"])
            for _, v, data in self._graph.out_edges(node.id, data=True)
        ]

    def in_edges(self, node: Node) -> List[Tuple[Node, Edge]]:
        return [
            (self._nodes[u], data["edge"])
            for u, _, data in self._graph.in_edges(node.id, data=True)
        ]

    def edges_between(self, a: Node, b: Node) -> List[Edge]:
        """
        Every edge joining a and b, in either direction.
        """

        found = [data["edge"] for data in self._graph.get_edge_data(a.id, b.id, default={}).values()]
        if a.id != b.id:
            found.extend(
                data["edge"] for data in self._graph.get_edge_data(b.id, a.id, default={}).values()
            )
        return found

    def neighbors(self, node: Node) -> List[Node]:
        return [self._nodes[n] for n in sorted(self._undirected.neighbors(node.id))]

    def find_node(self, kind: NodeKind, qualified_name: str) -> Optional[Node]:
        return self._by_name.get((kind, qualified_name))

    def find_by_identifier(
        self, kind: NodeKind, identifier: str, version: Version
    ) -> Optional[Node]:
        for node in self._nodes.values():
            if node.kind is kind and node.version is version and node.identifier == identifier:
                return node
        return None

    def distances_from(self, node: Node, cutoff: Optional[int] = None) -> Dict[int, int]:
        """
        Hop counts from `node` to every node reachable within `cutoff`,
        ignoring edge direction.
        """

        return dict(nx.single_source_shortest_path_length(self._undirected, node.id, cutoff=cutoff))

    def shortest_distance(self, a: Node, b: Node, cutoff: Optional[int] = None) -> Optional[int]:
        return self.distances_from(a, cutoff).get(b.id)

    def number_of_nodes(self) -> int:
        return self._graph.number_of_nodes()

    def number_of_edges(self) -> int:
        return self._graph.number_of_edges()

    def __iter__(self) -> Iterator[Node]:
        return iter(self._nodes.values())

    def __len__(self) -> int:
        return len(self._nodes)
