import pytest

from untangle.builder import GraphBuilder
from untangle.config import Config
from untangle.domain import DiffFile, DiffHunk, Version
from untangle.graph import EdgeKind, NodeKind, SemanticGraph
from untangle.grouping import GroupingEngine, node_distance

from test_builder import _scenario_tree


def _hunk(index):
    return DiffHunk(index, 1, 1, 1, 1, ["int a;"], ["int b;"])


def _method(graph, owner, name, package):
    return graph.add_node(
        NodeKind.METHOD,
        name,
        f"current:{owner}.{name}()",
        Version.CURRENT,
        package=package,
        owner=owner,
        member=f"{owner}.{name}()",
    )


def _two_packages():
    graph = SemanticGraph()
    a = _method(graph, "p.A", "a", "p")
    b = _method(graph, "q.B", "b", "q")
    graph.add_edge(a, b, EdgeKind.CALL)
    a.mark("0:0")
    b.mark("1:0")
    diff_files = [DiffFile(0, "A.java", "A.java", [_hunk(0)]), DiffFile(1, "B.java", "B.java", [_hunk(0)])]
    return graph, diff_files


def _partition(groups):
    return {group_id: group.hunk_ids for group_id, group in groups.items()}


def test_scenarios_group_related_hunks_only(tmp_path):
    diff_files = _scenario_tree(tmp_path)
    graph = GraphBuilder(Config()).build(str(tmp_path), diff_files)

    groups = GroupingEngine(Config()).group(graph, diff_files)

    assert _partition(groups) == {
        "group0": ["0:0", "0:1"],
        "group1": ["0:2"],
        "group2": ["1:0"],
    }
    assert "field p.X.bar" in groups["group0"].description
    assert groups["group1"].description == "standalone change in src/p/X.java"


def test_zero_distance_keeps_scenario_hunks_apart(tmp_path):
    diff_files = _scenario_tree(tmp_path)
    graph = GraphBuilder(Config()).build(str(tmp_path), diff_files)

    groups = GroupingEngine(Config(max_distance=0)).group(graph, diff_files)

    assert sorted(_partition(groups).values()) == [["0:0"], ["0:1"], ["0:2"], ["1:0"]]


def test_weight_threshold_blocks_merges(tmp_path):
    diff_files = _scenario_tree(tmp_path)
    graph = GraphBuilder(Config()).build(str(tmp_path), diff_files)

    groups = GroupingEngine(Config(weight_threshold=10.0)).group(graph, diff_files)

    assert len(groups) == 4


def test_distance_is_a_hard_ceiling():
    graph, diff_files = _two_packages()
    permissive = dict(min_similarity=0.0, weight_threshold=0.0)

    apart = GroupingEngine(Config(max_distance=0, **permissive)).group(graph, diff_files)
    together = GroupingEngine(Config(max_distance=1, **permissive)).group(graph, diff_files)

    assert _partition(apart) == {"group0": ["0:0"], "group1": ["1:0"]}
    assert _partition(together) == {"group0": ["0:0", "1:0"]}


def test_grouping_is_deterministic(tmp_path):
    diff_files = _scenario_tree(tmp_path)
    graph = GraphBuilder(Config()).build(str(tmp_path), diff_files)
    engine = GroupingEngine(Config())

    first = [str(group) for group in engine.group(graph, diff_files).values()]
    second = [str(group) for group in engine.group(graph, diff_files).values()]
    rebuilt = GraphBuilder(Config()).build(str(tmp_path), diff_files)
    third = [str(group) for group in engine.group(rebuilt, diff_files).values()]

    assert first == second == third


def test_distance_tiers_bound_hop_distance():
    graph = SemanticGraph()
    foo = _method(graph, "p.X", "foo", "p")
    bar = _method(graph, "p.X", "bar", "p")
    hunk_a = graph.add_node(NodeKind.HUNK, "0:0", "current:hunk#0:0", Version.CURRENT, "p", "p.X", "p.X.foo()")
    hunk_b = graph.add_node(NodeKind.HUNK, "0:1", "current:hunk#0:1", Version.CURRENT, "p", "p.X", "p.X.foo()")
    other = _method(graph, "p.Y", "baz", "p")

    assert node_distance(graph, hunk_a, hunk_a) == 0
    assert node_distance(graph, hunk_a, hunk_b) <= 1
    assert node_distance(graph, foo, bar) <= 2
    assert node_distance(graph, foo, other) == 3


def test_nodes_sharing_a_hunk_start_in_one_group():
    graph = SemanticGraph()
    a = _method(graph, "p.A", "a", "p")
    b = _method(graph, "q.B", "b", "q")
    a.mark("0:0")
    a.mark("0:1")
    b.mark("0:1")
    diff_files = [DiffFile(0, "A.java", "A.java", [_hunk(0), _hunk(1)])]

    groups = GroupingEngine(Config()).group(graph, diff_files)

    assert _partition(groups) == {"group0": ["0:0", "0:1"]}


@pytest.mark.parametrize("diff_files", [[], [DiffFile(0, "A.java", "A.java", [])]])
def test_empty_diff_yields_no_groups(diff_files):
    assert GroupingEngine(Config()).group(SemanticGraph(), diff_files) == {}


def test_merging_rescores_only_pairs_with_the_merged_group(monkeypatch):
    size = 60
    graph = SemanticGraph()
    methods = [_method(graph, "p.A", f"m{index}", "p") for index in range(size)]
    for caller, callee in zip(methods, methods[1:]):
        graph.add_edge(caller, callee, EdgeKind.CALL)
    for index, method in enumerate(methods):
        method.mark(f"0:{index}")
    diff_files = [DiffFile(0, "A.java", "A.java", [_hunk(index) for index in range(size)])]

    calls = []
    similarity = GroupingEngine.similarity

    def counting_similarity(a, b):
        calls.append((a, b))
        return similarity(a, b)

    monkeypatch.setattr(GroupingEngine, "similarity", staticmethod(counting_similarity))

    groups = GroupingEngine(Config(min_similarity=0.0)).group(graph, diff_files)

    assert _partition(groups) == {"group0": [f"0:{index}" for index in range(size)]}
    # One score per initial pair plus one per surviving pair after each merge.
    assert len(calls) <= size * size


def test_comment_only_diff_keeps_each_hunk_on_its_own():
    comment = DiffHunk(0, 0, 0, 2, 2, [], ["    // note"])
    diff_files = [DiffFile(0, "A.java", "A.java", [comment])]

    groups = GroupingEngine(Config()).group(SemanticGraph(), diff_files)

    assert _partition(groups) == {"group0": ["0:0"]}
    assert groups["group0"].description == "standalone change in A.java"
