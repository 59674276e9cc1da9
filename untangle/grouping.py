"""
Agglomerative grouping of touched graph nodes into atomic changes.

Every touched node starts as its own candidate group (nodes sharing a
hunk start together). Pairs of groups are merged greedily, closest and
most similar first, while three gates hold:

- distance: the closest pair of member nodes is at most `max_distance`
  apart, where the distance of two nodes is the smaller of their
  structural tier (0 same node, 1 same member, 2 same type, 3 same
  package) and their undirected hop count in the graph;
- similarity: the overlap coefficient of the groups' fact sets reaches
  `min_similarity`;
- weight: the edges joining the groups weigh more than `weight_threshold`.

Hunks the builder could not anchor end up in singleton groups.
"""

from __future__ import annotations

import heapq
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from itertools import combinations
from typing import Any, Dict, List, Optional, Set, Tuple

from .config import Config
from .domain import DiffFile, Group, hunk_sort_key, hunk_unique_name
from .graph import EdgeKind, Node, NodeKind, SemanticGraph

LOG = logging.getLogger(__name__)

_MAX_DESCRIBED = 3


def structural_tier(a: Node, b: Node) -> Optional[int]:
    if a is b:
        return 0
    if a.member is not None and a.member == b.member:
        return 1
    if a.owner is not None and a.owner == b.owner:
        return 2
    if a.package is not None and a.package == b.package:
        return 3
    return None


def node_distance(graph: SemanticGraph, a: Node, b: Node, cutoff: Optional[int] = None) -> Optional[int]:
    """
    Distance between two nodes, None when they are unrelated within
    `cutoff`.
    """

    found = [d for d in (structural_tier(a, b), graph.shortest_distance(a, b, cutoff)) if d is not None]
    return min(found) if found else None


def contain_parents(graph: SemanticGraph, node: Node) -> List[Node]:
    if node.kind is not NodeKind.HUNK:
        return []
    return [source for source, edge in graph.in_edges(node) if edge.kind is EdgeKind.CONTAIN]


def node_facts(graph: SemanticGraph, node: Node) -> Set[str]:
    """
    The entity names a node stands for and refers to.

    A hunk node stands for its containing declaration.
    """

    parents = contain_parents(graph, node)
    facts = {parent.entity_name for parent in parents} if parents else {node.entity_name}
    for target, edge in graph.out_edges(node):
        if edge.kind is not EdgeKind.CONTAIN:
            facts.add(target.entity_name)
    return facts


_Pair = Tuple[int, int]


def _pair(a: int, b: int) -> _Pair:
    return (a, b) if a < b else (b, a)


@dataclass(eq=False)
class _Cluster:
    nodes: List[Node]
    hunks: Set[str] = field(default_factory=set)
    facts: Set[str] = field(default_factory=set)
    id: int = 0
    # Bumped on every merge; heap entries carrying an older stamp are stale.
    stamp: int = 0
    alive: bool = True

    @property
    def first_hunk(self) -> str:
        return min(self.hunks, key=hunk_sort_key)

    def absorb(self, other: "_Cluster") -> None:
        self.nodes.extend(other.nodes)
        self.nodes.sort(key=lambda node: node.id)
        self.hunks |= other.hunks
        self.facts |= other.facts
        self.stamp += 1
        other.alive = False


class GroupingEngine:
    """
    Partition the hunks of one diff into groups over a semantic graph.
    """

    def __init__(self, config: Config):
        self.config = config

    def group(self, graph: SemanticGraph, diff_files: List[DiffFile]) -> Dict[str, Group]:
        paths: Dict[str, str] = {}
        for diff_file in diff_files:
            for hunk in diff_file.hunks:
                paths[hunk_unique_name(diff_file.index, hunk.index)] = diff_file.display_path
        if not paths:
            return {}

        touched = sorted(graph.touched_nodes(), key=lambda node: node.id)
        facts = {node.id: node_facts(graph, node) for node in touched}
        hops = {node.id: graph.distances_from(node, self.config.max_distance) for node in touched}

        candidates = self._initial_clusters(touched, facts)
        clusters = self._merge(graph, candidates, hops)
        LOG.info("Merged %d candidate groups into %d", len(candidates), len(clusters))

        grouped: List[Tuple[Set[str], str]] = [
            (cluster.hunks, self._describe(graph, cluster)) for cluster in clusters
        ]
        anchored = set().union(*(cluster.hunks for cluster in clusters)) if clusters else set()
        for unique in paths:
            if unique not in anchored:
                grouped.append(({unique}, f"standalone change in {paths[unique]}"))

        grouped.sort(key=lambda item: hunk_sort_key(min(item[0], key=hunk_sort_key)))
        result: Dict[str, Group] = {}
        for index, (hunks, description) in enumerate(grouped):
            group_id = f"group{index}"
            result[group_id] = Group(
                id=group_id,
                hunk_ids=sorted(hunks, key=hunk_sort_key),
                description=description,
            )
        return result

    def _initial_clusters(self, touched: List[Node], facts: Dict[int, Set[str]]) -> List[_Cluster]:
        clusters: List[_Cluster] = []
        owner_of: Dict[str, _Cluster] = {}
        for node in touched:
            cluster = _Cluster(nodes=[node], hunks=set(node.hunk_indices), facts=set(facts[node.id]))
            for unique in sorted(node.hunk_indices, key=hunk_sort_key):
                other = owner_of.get(unique)
                if other is not None and other is not cluster and other in clusters:
                    cluster.absorb(other)
                    clusters.remove(other)
            clusters.append(cluster)
            for unique in cluster.hunks:
                owner_of[unique] = cluster
        clusters.sort(key=lambda c: hunk_sort_key(c.first_hunk))
        for index, cluster in enumerate(clusters):
            cluster.id = index
        return clusters

    def _merge(
        self,
        graph: SemanticGraph,
        clusters: List[_Cluster],
        hops: Dict[int, Dict[int, int]],
    ) -> List[_Cluster]:
        """
        Merge the best qualifying pair of clusters until none is left.

        The distance and the joining edges of a merged cluster follow from
        those of its two parts, so a merge only rescores the pairs that
        involve the surviving cluster.
        """

        distances = self._pair_distances(clusters, hops)
        links = self._pair_links(graph, clusters)
        weights = {edge.id: edge.weight for _, _, edge in graph.edges()}

        heap: List[Tuple[Any, ...]] = []
        for a, b in combinations(clusters, 2):
            self._score(heap, a, b, distances, links, weights)

        by_id = {cluster.id: cluster for cluster in clusters}
        while heap:
            _, keep_id, keep_stamp, drop_id, drop_stamp = heapq.heappop(heap)
            keep, drop = by_id[keep_id], by_id[drop_id]
            if not (keep.alive and drop.alive) or (keep.stamp, drop.stamp) != (keep_stamp, drop_stamp):
                continue

            keep.absorb(drop)
            distances.pop(_pair(keep.id, drop.id), None)
            links.pop(_pair(keep.id, drop.id), None)
            for other in clusters:
                if other is keep or not other.alive:
                    continue
                survivor, gone = _pair(keep.id, other.id), _pair(drop.id, other.id)
                found = [d for d in (distances.get(survivor), distances.pop(gone, None)) if d is not None]
                if found:
                    distances[survivor] = min(found)
                joined = links.pop(gone, None)
                if joined:
                    links.setdefault(survivor, set()).update(joined)
                self._score(heap, keep, other, distances, links, weights)

        return [cluster for cluster in clusters if cluster.alive]

    def _score(
        self,
        heap: List[Tuple[Any, ...]],
        a: _Cluster,
        b: _Cluster,
        distances: Dict[_Pair, int],
        links: Dict[_Pair, Set[int]],
        weights: Dict[int, float],
    ) -> None:
        pair = _pair(a.id, b.id)
        distance = distances.get(pair)
        if distance is None or distance > self.config.max_distance:
            return
        similarity = self.similarity(a, b)
        if similarity < self.config.min_similarity:
            return
        if sum(weights[edge_id] for edge_id in links.get(pair, ())) <= self.config.weight_threshold:
            return

        if hunk_sort_key(b.first_hunk) < hunk_sort_key(a.first_hunk):
            a, b = b, a
        key = (distance, -similarity, hunk_sort_key(a.first_hunk), hunk_sort_key(b.first_hunk))
        heapq.heappush(heap, (key, a.id, a.stamp, b.id, b.stamp))

    @staticmethod
    def _pair_distances(clusters: List[_Cluster], hops: Dict[int, Dict[int, int]]) -> Dict[_Pair, int]:
        owner = {node.id: cluster.id for cluster in clusters for node in cluster.nodes}
        nodes = [node for cluster in clusters for node in cluster.nodes]

        distances: Dict[_Pair, int] = {}
        for left, right in combinations(nodes, 2):
            if owner[left.id] == owner[right.id]:
                continue
            found = [d for d in (structural_tier(left, right), hops[left.id].get(right.id)) if d is not None]
            if not found:
                continue
            pair = _pair(owner[left.id], owner[right.id])
            if pair not in distances or min(found) < distances[pair]:
                distances[pair] = min(found)
        return distances

    @staticmethod
    def _pair_links(graph: SemanticGraph, clusters: List[_Cluster]) -> Dict[_Pair, Set[int]]:
        """
        Ids of the edges joining each pair of clusters.

        An edge joins two clusters when one end is a member of one of them
        and the other end is a member of the other, or the containing
        declaration of one of its hunk nodes.
        """

        member_of: Dict[int, int] = {}
        reached_by: Dict[int, Set[int]] = defaultdict(set)
        for cluster in clusters:
            for node in cluster.nodes:
                member_of[node.id] = cluster.id
                reached_by[node.id].add(cluster.id)
                for parent in contain_parents(graph, node):
                    reached_by[parent.id].add(cluster.id)

        links: Dict[_Pair, Set[int]] = defaultdict(set)
        for source, target, edge in graph.edges():
            for end, other_end in ((source, target), (target, source)):
                owner = member_of.get(end.id)
                if owner is None:
                    continue
                for reached in reached_by.get(other_end.id, ()):
                    if reached != owner:
                        links[_pair(owner, reached)].add(edge.id)
        return dict(links)

    @staticmethod
    def similarity(a: _Cluster, b: _Cluster) -> float:
        if not a.facts or not b.facts:
            return 0.0
        return len(a.facts & b.facts) / min(len(a.facts), len(b.facts))

    def _describe(self, graph: SemanticGraph, cluster: _Cluster) -> str:
        names: List[str] = []
        for node in cluster.nodes:
            if node.kind is NodeKind.HUNK:
                parents = contain_parents(graph, node)
                label = f"code in {parents[0].entity_name}" if parents else "code"
            else:
                label = f"{node.kind.value} {node.entity_name}"
            if label not in names:
                names.append(label)
        described = ", ".join(names[:_MAX_DESCRIBED])
        if len(names) > _MAX_DESCRIBED:
            described += f" and {len(names) - _MAX_DESCRIBED} more"
        count = len(cluster.hunks)
        return f"{count} hunk{'s' if count != 1 else ''} touching {described}"
