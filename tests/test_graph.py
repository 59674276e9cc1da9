import pytest

from untangle.domain import Version
from untangle.errors import GraphIntegrityError
from untangle.graph import EdgeKind, NodeKind, SemanticGraph


def _graph():
    graph = SemanticGraph()
    a = graph.add_node(NodeKind.METHOD, "a", "current:p.A.a()", Version.CURRENT, "p", "p.A", "p.A.a()")
    b = graph.add_node(NodeKind.METHOD, "b", "current:p.A.b()", Version.CURRENT, "p", "p.A", "p.A.b()")
    f = graph.add_node(NodeKind.FIELD, "f", "current:p.A.f", Version.CURRENT, "p", "p.A", "p.A.f")
    return graph, a, b, f


def test_duplicate_kind_and_name_is_rejected():
    graph, _, _, _ = _graph()
    with pytest.raises(GraphIntegrityError):
        graph.add_node(NodeKind.METHOD, "a", "current:p.A.a()", Version.CURRENT)
    # Same name, other kind or other version, is a different node.
    graph.add_node(NodeKind.FIELD, "a", "current:p.A.a()", Version.CURRENT)
    graph.add_node(NodeKind.METHOD, "a", "base:p.A.a()", Version.BASE)
    assert len(graph) == 5


def test_multi_edges_and_self_loops():
    graph, a, b, f = _graph()
    first = graph.add_edge(a, b, EdgeKind.CALL)
    second = graph.add_edge(a, b, EdgeKind.CALL)
    loop = graph.add_edge(a, a, EdgeKind.CALL)
    back = graph.add_edge(b, a, EdgeKind.CALL)

    assert [first.id, second.id, loop.id, back.id] == [0, 1, 2, 3]
    assert len(graph.edges_between(a, b)) == 3
    assert [edge.id for edge in graph.edges_between(a, a)] == [loop.id]
    assert graph.number_of_edges() == 4


def test_edge_weights_follow_kind():
    graph, a, b, f = _graph()
    assert graph.add_edge(a, f, EdgeKind.ACCESS).weight == 1.0
    assert graph.add_edge(a, b, EdgeKind.PARAM).weight == 0.75
    assert graph.add_edge(f, b, EdgeKind.INITIALIZE).weight == 0.5


def test_bounded_shortest_distance_ignores_direction():
    graph, a, b, f = _graph()
    graph.add_edge(a, f, EdgeKind.ACCESS)
    graph.add_edge(b, f, EdgeKind.ACCESS)

    assert graph.shortest_distance(a, b) == 2
    assert graph.shortest_distance(b, a, cutoff=1) is None
    assert graph.distances_from(f, cutoff=1) == {f.id: 0, a.id: 1, b.id: 1}
    assert graph.neighbors(f) == [a, b]


def test_lookup_and_touched_nodes():
    graph, a, b, f = _graph()
    f.mark("0:1")
    f.mark("0:2")

    assert graph.find_node(NodeKind.FIELD, "current:p.A.f") is f
    assert graph.find_node(NodeKind.FIELD, "base:p.A.f") is None
    assert graph.find_by_identifier(NodeKind.METHOD, "b", Version.CURRENT) is b
    assert graph.find_by_identifier(NodeKind.METHOD, "b", Version.BASE) is None
    assert graph.touched_nodes() == [f]
    assert f.hunk_index == "0:2"
    assert f.hunk_indices == {"0:1", "0:2"}
    assert f.entity_name == "p.A.f"
