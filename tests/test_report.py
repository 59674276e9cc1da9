import json

from untangle.domain import DiffFile, DiffHunk, Group
from untangle.report import render_json, render_text


def _diff_files():
    return [
        DiffFile(
            0,
            "src/A.java",
            "src/A.java",
            [
                DiffHunk(0, 3, 3, 3, 4, ["int a;"], ["int a;", "int b;"]),
                DiffHunk(1, 9, 10, 0, 0, ["x();", "y();"], []),
            ],
        )
    ]


def test_render_text_lists_hunk_locations():
    groups = {
        "group0": Group("group0", ["0:0"], "1 hunk touching field p.A.a"),
        "group1": Group("group1", ["0:1"], "standalone change in src/A.java"),
    }

    text = render_text(groups, _diff_files())

    assert text.splitlines() == [
        "group0: 1 hunk touching field p.A.a",
        "  0:0      src/A.java +3,2",
        "group1: standalone change in src/A.java",
        "  0:1      src/A.java -9,2",
    ]


def test_render_text_without_groups():
    assert render_text({}, []) == "No changes to untangle."


def test_render_json_round_trips_through_json():
    groups = {"group0": Group("group0", ["0:0", "0:1"], "2 hunks")}
    assert json.loads(render_json(groups)) == {"group0": {"hunks": ["0:0", "0:1"], "description": "2 hunks"}}
