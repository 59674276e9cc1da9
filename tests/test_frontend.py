import pytest

from untangle.errors import ParseError
from untangle.frontend import (
    JavaFrontend,
    anchor_candidate,
    enclosing_members,
    is_named_member,
    iter_type_declarations,
    type_qualified_name,
)

SOURCE = "\n".join(
    [
        "package com.example;",  # 1
        "",
        "import java.util.List;",  # 3
        "",
        "public class Outer {",  # 5
        "    private int count;",  # 6
        "",
        "    public void run() {",  # 8
        "        Runnable r = new Runnable() {",  # 9
        "            public void run() {}",  # 10
        "        };",
        "        count++;",  # 12
        "        // trailing note",  # 13
        "    }",
        "",
        "    static class Inner {",  # 16
        "        void go() {}",  # 17
        "    }",
        "}",
        "",
    ]
).encode("utf-8")


@pytest.fixture
def unit():
    return JavaFrontend().parse(SOURCE, "Outer.java")


def _covered(unit, start_line, end_line):
    return unit.covered_nodes(*unit.line_span(start_line, end_line))


def test_package_and_nested_type_names(unit):
    assert unit.package == "com.example"
    names = [type_qualified_name(unit, node) for node in iter_type_declarations(unit)]
    assert names == ["com.example.Outer", "com.example.Outer.Inner"]


def test_statement_line_covers_the_statement(unit):
    covered = _covered(unit, 12, 12)
    assert [node.type for node in covered] == ["expression_statement"]
    assert anchor_candidate(covered[0]).type == "expression_statement"


def test_field_line_anchors_on_the_field(unit):
    covered = _covered(unit, 6, 6)
    assert [node.type for node in covered] == ["field_declaration"]
    candidate = anchor_candidate(covered[0])
    assert candidate.type == "field_declaration"
    assert is_named_member(candidate)


def test_import_line_anchors_on_the_import(unit):
    covered = _covered(unit, 3, 3)
    assert anchor_candidate(covered[0]).type == "import_declaration"


def test_anonymous_class_members_belong_to_the_enclosing_statement(unit):
    covered = _covered(unit, 10, 10)
    assert [node.type for node in covered] == ["method_declaration"]
    assert not is_named_member(covered[0])
    assert anchor_candidate(covered[0]).type == "local_variable_declaration"
    chain = [node.type for node in enclosing_members(covered[0])]
    assert chain == ["method_declaration", "class_declaration"]


def test_blank_and_comment_lines_cover_nothing(unit):
    assert _covered(unit, 7, 7) == []
    assert _covered(unit, 13, 13) == []


def test_syntax_errors_raise_parse_error():
    with pytest.raises(ParseError) as excinfo:
        JavaFrontend().parse(b"class Broken {", "Broken.java")
    assert "Broken.java" in str(excinfo.value)


def test_invalid_utf8_raises_parse_error():
    with pytest.raises(ParseError):
        JavaFrontend().parse(b"class A { String s = \"\xff\"; }", "A.java")


def test_missing_file_raises_parse_error(tmp_path):
    with pytest.raises(ParseError):
        JavaFrontend().parse_file(tmp_path / "Missing.java")
