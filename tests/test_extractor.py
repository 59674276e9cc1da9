from untangle.domain import Version
from untangle.entities import CallRef, ClassInfo, FieldInfo, HunkInfo, ImportInfo, InterfaceInfo, MethodInfo
from untangle.extractor import collect_statement_facts, extract_entities
from untangle.frontend import JavaFrontend

SOURCE = b"""\
package com.example;

import java.util.List;
import java.util.ArrayList;
import static java.lang.Math.max;

public class Shop extends Base implements Named {
    private final List<Item> items = new ArrayList<>();
    private int total;

    public Shop(int total) {
        this.total = total;
    }

    public int add(Item item, String... tags) throws ShopException {
        if (item == null) {
            throw new ShopException("missing");
        }
        for (Item other : items) {
            other.touch();
        }
        items.add(item);
        total = max(total, item.price());
        return total;
    }

    private void reset() {
        int total = 0;
        describe(total);
    }

    void describe(int value) {}

    enum Kind { SMALL, LARGE }
}

interface Named {
    String name();
}
"""


def _entities():
    unit = JavaFrontend().parse(SOURCE, "Shop.java")
    return unit, {info.qualified_name: info for info in extract_entities(unit, Version.CURRENT, 3)}


def test_every_declaration_becomes_an_info():
    _, infos = _entities()

    assert isinstance(infos["com.example.Shop"], ClassInfo)
    assert isinstance(infos["com.example.Named"], InterfaceInfo)
    assert isinstance(infos["com.example.Shop.Kind"], ClassInfo)
    assert isinstance(infos["com.example.Shop.items"], FieldInfo)
    assert isinstance(infos["com.example.Shop.Kind.SMALL"], FieldInfo)
    assert isinstance(infos["com.example.Shop.Shop(int)"], MethodInfo)
    assert isinstance(infos["com.example.Shop.add(Item,String...)"], MethodInfo)
    assert isinstance(infos["com.example.Named.name()"], MethodInfo)
    assert isinstance(infos["3#java.util.List"], ImportInfo)
    assert infos["3#java.lang.Math.max"].is_static


def test_class_records_super_types_and_identity():
    _, infos = _entities()
    shop = infos["com.example.Shop"]
    assert shop.super_class == "Base"
    assert shop.super_interfaces == ["com.example.Named"]
    assert shop.visibility == "public"
    assert shop.file_index == 3
    assert shop.key == "current:com.example.Shop"


def test_method_signature_and_body_facts():
    _, infos = _entities()
    add = infos["com.example.Shop.add(Item,String...)"]

    assert add.arity == 2
    assert add.owner == "com.example.Shop"
    assert add.param_types == {"Item", "String"}
    assert add.return_types == set()
    assert add.exception_throws == ["ShopException"]
    assert "ShopException" in add.type_uses
    assert "Item" in add.type_uses

    assert "com.example.Shop.items" in add.field_uses
    assert "com.example.Shop.total" in add.field_uses
    assert CallRef("java.util.List", "add", 1) in add.method_calls
    assert CallRef("Item", "touch", 0) in add.method_calls
    assert CallRef("Item", "price", 0) in add.method_calls
    assert CallRef("java.lang.Math", "max", 2) in add.method_calls


def test_constructor_assignment_through_this_is_a_field_use():
    _, infos = _entities()
    constructor = infos["com.example.Shop.Shop(int)"]
    assert constructor.is_constructor
    assert constructor.field_uses == {"com.example.Shop.total"}


def test_locals_shadow_fields():
    _, infos = _entities()
    reset = infos["com.example.Shop.reset()"]
    assert reset.field_uses == set()
    assert CallRef("com.example.Shop", "describe", 1) in reset.method_calls


def test_field_initializer_facts():
    _, infos = _entities()
    items = infos["com.example.Shop.items"]
    assert items.types == {"java.util.List", "Item"}
    assert "java.util.ArrayList" in items.type_uses


def test_statement_facts_fill_a_hunk_info():
    unit, _ = _entities()
    statement = next(
        node
        for node in unit.covered_nodes(*unit.line_span(22, 22))
        if node.type == "expression_statement"
    )
    hunk = HunkInfo(name="3:0", qualified_name="hunk#3:0", version=Version.CURRENT, file_index=3)

    collect_statement_facts(unit, statement, hunk)

    assert hunk.field_uses == {"com.example.Shop.items"}
    assert hunk.method_calls == {CallRef("java.util.List", "add", 1)}
