"""
Entity extraction over one parsed Java file.

`extract_file` is a pure function: it reads a ParsedUnit and returns the
Info records of every import, type, field and method declared in it,
together with the symbol table used to resolve names. Nothing here
touches the entity pool or the graph; the graph builder merges the
results afterwards.

Name resolution is best effort. Types are qualified from the file's own
declarations and its single-type imports; anything else is recorded as
written and left to the builder's fuzzy lookup. Receivers are typed
from parameters, local variables and fields of the enclosing types.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

from .domain import Version
from .entities import (
    CallRef,
    ClassInfo,
    EntityInfo,
    FieldInfo,
    ImportInfo,
    InterfaceInfo,
    MethodInfo,
)
from .frontend import (
    COMMENTS,
    FIELD_DECLARATIONS,
    INTERFACE_DECLARATIONS,
    MEMBER_DECLARATIONS,
    METHOD_DECLARATIONS,
    TYPE_DECLARATIONS,
    ParsedUnit,
    declared_name,
    enclosing_members,
    field_names,
    iter_type_declarations,
    modifiers,
    node_text,
    same_node,
    type_members,
    type_qualified_name,
)
from .graph import NodeKind

LOG = logging.getLogger(__name__)

_GENERICS_RE = re.compile(r"<.*>")

# Parent node types (and the child fields, None meaning any child) in
# which a bare identifier is read as a value.
_VALUE_ROLES: Dict[str, Optional[Tuple[str, ...]]] = {
    "assignment_expression": None,
    "binary_expression": None,
    "unary_expression": None,
    "update_expression": None,
    "parenthesized_expression": None,
    "ternary_expression": None,
    "argument_list": None,
    "array_access": None,
    "array_initializer": None,
    "return_statement": None,
    "throw_statement": None,
    "yield_statement": None,
    "assert_statement": None,
    "dimensions_expr": None,
    "method_invocation": ("object",),
    "field_access": ("object",),
    "variable_declarator": ("value",),
    "enhanced_for_statement": ("value",),
    "resource": ("value",),
    "lambda_expression": ("body",),
    "cast_expression": ("value",),
    "instanceof_expression": ("left",),
    "for_statement": ("condition",),
    "element_value_pair": ("value",),
}


def import_parts(node: Any) -> Tuple[str, bool, bool]:
    """
    Return (imported name, is_static, is_wildcard) of an import declaration.
    """

    imported = ""
    is_static = False
    is_wildcard = False
    for child in node.children:
        if child.type == "static":
            is_static = True
        elif child.type == "asterisk":
            is_wildcard = True
        elif child.type in ("scoped_identifier", "identifier"):
            imported = node_text(child)
    if is_wildcard:
        imported = f"{imported}.*"
    return imported, is_static, is_wildcard


class SymbolTable:
    """
    Names declared or imported by one compilation unit.
    """

    def __init__(self, unit: ParsedUnit):
        self.unit = unit
        self.package = unit.package
        self.imports: Dict[str, str] = {}
        self.static_members: Dict[str, str] = {}
        self.types: Dict[str, str] = {}
        self.field_types: Dict[str, Dict[str, Optional[str]]] = {}
        self.method_names: Dict[str, Set[str]] = {}
        self.super_classes: Dict[str, Optional[str]] = {}
        self._scan()

    def _scan(self) -> None:
        for node in self.unit.root.named_children:
            if node.type != "import_declaration":
                continue
            imported, is_static, is_wildcard = import_parts(node)
            if is_wildcard or "." not in imported:
                continue
            owner, _, simple = imported.rpartition(".")
            if is_static:
                self.static_members[simple] = owner
            else:
                self.imports[simple] = imported

        type_nodes = list(iter_type_declarations(self.unit))
        for type_node in type_nodes:
            self.types.setdefault(declared_name(type_node), type_qualified_name(self.unit, type_node))

        for type_node in type_nodes:
            qualified = type_qualified_name(self.unit, type_node)
            fields: Dict[str, Optional[str]] = {}
            methods: Set[str] = set()
            for member in type_members(type_node):
                if member.type in FIELD_DECLARATIONS:
                    declared = self.primary_type(member.child_by_field_name("type"))
                    for declarator in member.children_by_field_name("declarator"):
                        fields[declared_name(declarator)] = declared
                elif member.type == "enum_constant":
                    fields[declared_name(member)] = qualified
                elif member.type in METHOD_DECLARATIONS:
                    methods.add(declared_name(member))
            if type_node.type == "record_declaration":
                for name, declared in self.parameters(type_node.child_by_field_name("parameters")):
                    fields[name] = declared
                    methods.add(name)
            self.field_types[qualified] = fields
            self.method_names[qualified] = methods

            superclass = type_node.child_by_field_name("superclass")
            if superclass is not None and superclass.named_children:
                self.super_classes[qualified] = self.primary_type(superclass.named_children[0])
            else:
                self.super_classes[qualified] = None

    def resolve_type(self, name: str) -> str:
        head, dot, rest = name.partition(".")
        resolved = self.types.get(head) or self.imports.get(head) or head
        if not dot:
            return resolved
        return f"{resolved}.{rest}"

    def primary_type(self, type_node: Optional[Any]) -> Optional[str]:
        """
        The main type of a declaration, without type arguments or array
        dimensions; None for primitives, void and `var`.
        """

        if type_node is None:
            return None
        kind = type_node.type
        if kind == "generic_type":
            for child in type_node.named_children:
                if child.type in ("type_identifier", "scoped_type_identifier"):
                    return self.primary_type(child)
            return None
        if kind == "array_type":
            return self.primary_type(type_node.child_by_field_name("element"))
        if kind == "annotated_type" and type_node.named_children:
            return self.primary_type(type_node.named_children[-1])
        if kind in ("type_identifier", "scoped_type_identifier"):
            text = node_text(type_node)
            return None if text == "var" else self.resolve_type(text)
        return None

    def type_names(self, type_node: Optional[Any]) -> Set[str]:
        """
        Every class type mentioned by a type expression, type arguments
        included.
        """

        names: Set[str] = set()
        if type_node is None:
            return names
        stack = [type_node]
        while stack:
            node = stack.pop()
            if node.type in ("type_identifier", "scoped_type_identifier"):
                text = node_text(node)
                if text != "var":
                    names.add(self.resolve_type(text))
                continue
            stack.extend(node.named_children)
        return names

    def parameters(self, params_node: Optional[Any]) -> List[Tuple[str, Optional[str]]]:
        result: List[Tuple[str, Optional[str]]] = []
        if params_node is None:
            return result
        for param in params_node.named_children:
            if param.type == "formal_parameter":
                result.append(
                    (declared_name(param), self.primary_type(param.child_by_field_name("type")))
                )
            elif param.type == "spread_parameter":
                declared = None
                name = ""
                for child in param.named_children:
                    if child.type == "variable_declarator":
                        name = declared_name(child)
                    elif child.type != "modifiers" and declared is None:
                        declared = self.primary_type(child)
                result.append((name, declared))
        return result

    def declaring_type(self, types: List[str], member: str, is_call: bool) -> Optional[str]:
        """
        The innermost enclosing type declaring `member`, else the
        innermost enclosing type.
        """

        for qualified in types:
            declared = self.method_names if is_call else self.field_types
            if member in declared.get(qualified, ()):
                return qualified
        return types[0] if types else None

    def field_owner(self, types: List[str], name: str) -> Optional[str]:
        for qualified in types:
            if name in self.field_types.get(qualified, {}):
                return qualified
        return None

    def looks_like_type(self, name: str) -> bool:
        return name in self.types or name in self.imports or name[:1].isupper()


@dataclass
class _Scope:
    types: List[str]
    locals: Dict[str, Optional[str]] = field(default_factory=dict)


@dataclass
class FileExtraction:
    """
    The contribution of one source file to the entity pool.
    """

    unit: ParsedUnit
    version: Version
    file_index: int
    entities: List[EntityInfo]
    extractor: "EntityExtractor"


class EntityExtractor:
    """
    Walk one compilation unit and build Info records for its entities.
    """

    def __init__(self, unit: ParsedUnit, version: Version, file_index: int):
        self.unit = unit
        self.version = version
        self.file_index = file_index
        self.symbols = SymbolTable(unit)
        self._handlers: Dict[str, Callable[[Any, _Scope, EntityInfo], None]] = {
            "method_invocation": self._on_invocation,
            "object_creation_expression": self._on_declared_type,
            "explicit_constructor_invocation": self._on_constructor_invocation,
            "local_variable_declaration": self._on_declared_type,
            "enhanced_for_statement": self._on_declared_type,
            "resource": self._on_declared_type,
            "cast_expression": self._on_declared_type,
            "array_creation_expression": self._on_declared_type,
            "catch_formal_parameter": self._on_catch_parameter,
            "instanceof_expression": self._on_instanceof,
            "class_literal": self._on_class_literal,
            "field_access": self._on_field_access,
            "identifier": self._on_identifier,
        }

    def extract(self) -> List[EntityInfo]:
        infos: List[EntityInfo] = []
        for node in self.unit.root.named_children:
            if node.type == "import_declaration":
                infos.append(self._import_info(node))

        for type_node in iter_type_declarations(self.unit):
            qualified = type_qualified_name(self.unit, type_node)
            infos.append(self._type_info(type_node, qualified))
            for member in type_members(type_node):
                if member.type in FIELD_DECLARATIONS:
                    infos.extend(self._field_infos(member, qualified))
                elif member.type == "enum_constant":
                    infos.append(self._enum_constant_info(member, qualified))
                elif member.type in METHOD_DECLARATIONS:
                    infos.append(self._method_info(member, qualified))

        LOG.debug("Extracted %d entities from %s", len(infos), self.unit.path)
        return infos

    def collect_statement_facts(self, statement: Any, info: EntityInfo) -> None:
        """
        Add the calls, field uses and type uses of one statement to `info`.
        """

        self._collect_facts([statement], self.scope_for(statement), info)

    def scope_for(self, node: Any) -> _Scope:
        members = enclosing_members(node)
        types = [
            type_qualified_name(self.unit, member)
            for member in members
            if member.type in TYPE_DECLARATIONS
        ]
        innermost = next((m for m in members if m.type in MEMBER_DECLARATIONS), None)
        local_vars = self._collect_locals(innermost) if innermost is not None else {}
        return _Scope(types=types, locals=local_vars)

    def _common(self, node: Any, name: str, qualified: str, owner: Optional[str]) -> Dict[str, Any]:
        mods = set(modifiers(node))
        return {
            "name": name,
            "qualified_name": qualified,
            "version": self.version,
            "file_index": self.file_index,
            "package": self.unit.package,
            "owner": owner,
            "visibility": _visibility(mods),
            "modifiers": mods,
        }

    def _import_info(self, node: Any) -> ImportInfo:
        imported, is_static, is_wildcard = import_parts(node)
        return ImportInfo(
            name=imported,
            qualified_name=f"{self.file_index}#{imported}",
            version=self.version,
            file_index=self.file_index,
            package=self.unit.package,
            visibility="public",
            is_static=is_static,
            is_wildcard=is_wildcard,
        )

    def _type_info(self, node: Any, qualified: str) -> EntityInfo:
        outer = [
            type_qualified_name(self.unit, member)
            for member in enclosing_members(node)[1:]
            if member.type in TYPE_DECLARATIONS
        ]
        common = self._common(node, declared_name(node), qualified, outer[0] if outer else None)

        if node.type in INTERFACE_DECLARATIONS:
            extended = next((c for c in node.named_children if c.type == "extends_interfaces"), None)
            return InterfaceInfo(**common, super_interfaces=self._type_list(extended))

        super_class = self.symbols.super_classes.get(qualified)
        interfaces = node.child_by_field_name("interfaces")
        return ClassInfo(
            **common,
            super_class=super_class,
            super_interfaces=self._type_list(interfaces),
        )

    def _type_list(self, node: Optional[Any]) -> List[str]:
        if node is None:
            return []
        names: List[str] = []
        for child in node.named_children:
            if child.type == "type_list":
                for item in child.named_children:
                    declared = self.symbols.primary_type(item)
                    if declared:
                        names.append(declared)
        return names

    def _field_infos(self, node: Any, owner: str) -> List[FieldInfo]:
        type_node = node.child_by_field_name("type")
        types = self.symbols.type_names(type_node)
        scope = _Scope(types=self._enclosing_types(node))

        infos: List[FieldInfo] = []
        for declarator in node.children_by_field_name("declarator"):
            name = declared_name(declarator)
            info = FieldInfo(
                **self._common(node, name, f"{owner}.{name}", owner),
                type_string=node_text(type_node),
                types=set(types),
            )
            value = declarator.child_by_field_name("value")
            if value is not None:
                scope.locals = self._collect_locals(value)
                self._collect_facts([value], scope, info)
            infos.append(info)
        return infos

    def _enum_constant_info(self, node: Any, owner: str) -> FieldInfo:
        name = declared_name(node)
        info = FieldInfo(
            **self._common(node, name, f"{owner}.{name}", owner),
            type_string=owner.rpartition(".")[2],
            types={owner},
        )
        parts = [child for child in node.named_children if child.type in ("argument_list", "class_body")]
        self._collect_facts(parts, _Scope(types=self._enclosing_types(node)), info)
        return info

    def declared_entities(self, node: Any) -> List[Tuple[NodeKind, str, str]]:
        """
        (kind, qualified name, identifier) of every entity declared by a
        type or member declaration node.
        """

        if node.type in TYPE_DECLARATIONS:
            kind = NodeKind.INTERFACE if node.type in INTERFACE_DECLARATIONS else NodeKind.CLASS
            return [(kind, type_qualified_name(self.unit, node), declared_name(node))]
        owners = self._enclosing_types(node)
        if not owners:
            return []
        owner = owners[0]
        if node.type in METHOD_DECLARATIONS:
            signature, _, _ = self._signature(node)
            name = declared_name(node)
            return [(NodeKind.METHOD, f"{owner}.{name}({','.join(signature)})", name)]
        return [(NodeKind.FIELD, f"{owner}.{name}", name) for name in field_names(node)]

    def _signature(self, node: Any) -> Tuple[List[str], List[str], Set[str]]:
        params = node.child_by_field_name("parameters")
        signature: List[str] = []
        param_strings: List[str] = []
        param_types: Set[str] = set()
        if params is None:
            return signature, param_strings, param_types
        for param in params.named_children:
            if param.type not in ("formal_parameter", "spread_parameter"):
                continue
            type_node = param.child_by_field_name("type")
            if type_node is None:
                type_node = next(
                    (c for c in param.named_children if c.type not in ("modifiers", "variable_declarator")),
                    None,
                )
            type_text = node_text(type_node)
            if param.type == "spread_parameter":
                type_text += "..."
            signature.append(_GENERICS_RE.sub("", type_text).replace(" ", ""))
            param_strings.append(" ".join(node_text(param).split()))
            param_types.update(self.symbols.type_names(type_node))
        return signature, param_strings, param_types

    def _method_info(self, node: Any, owner: str) -> MethodInfo:
        name = declared_name(node)
        signature, param_strings, param_types = self._signature(node)
        return_node = node.child_by_field_name("type")
        throws = next((c for c in node.named_children if c.type == "throws"), None)
        info = MethodInfo(
            **self._common(node, name, f"{owner}.{name}({','.join(signature)})", owner),
            param_string=", ".join(param_strings),
            param_types=param_types,
            return_string=node_text(return_node) if return_node is not None else "void",
            return_types=self.symbols.type_names(return_node),
            exception_throws=sorted(self.symbols.type_names(throws)),
            is_constructor=node.type == "constructor_declaration",
            arity=len(signature),
        )

        body = node.child_by_field_name("body")
        if body is not None:
            scope = _Scope(types=self._enclosing_types(node), locals=self._collect_locals(node))
            self._collect_facts([body], scope, info)
        return info

    def _enclosing_types(self, node: Any) -> List[str]:
        return [
            type_qualified_name(self.unit, member)
            for member in enclosing_members(node)
            if member.type in TYPE_DECLARATIONS
        ]

    def _collect_locals(self, root: Any) -> Dict[str, Optional[str]]:
        """
        Parameters and local variables declared anywhere below `root`.

        The map is flow insensitive; it only needs to tell locals from
        fields and to type receivers.
        """

        found: Dict[str, Optional[str]] = {}
        stack = [root]
        while stack:
            node = stack.pop()
            kind = node.type
            if kind == "formal_parameters":
                for name, declared in self.symbols.parameters(node):
                    found[name] = declared
            elif kind == "local_variable_declaration":
                declared = self.symbols.primary_type(node.child_by_field_name("type"))
                for declarator in node.children_by_field_name("declarator"):
                    found[declared_name(declarator)] = declared
            elif kind in ("enhanced_for_statement", "resource"):
                name = node.child_by_field_name("name")
                if name is not None:
                    found[node_text(name)] = self.symbols.primary_type(node.child_by_field_name("type"))
            elif kind == "catch_formal_parameter":
                catch_type = next((c for c in node.named_children if c.type == "catch_type"), None)
                first = catch_type.named_children[0] if catch_type is not None and catch_type.named_children else None
                found[declared_name(node)] = self.symbols.primary_type(first)
            elif kind == "lambda_expression":
                params = node.child_by_field_name("parameters")
                if params is not None and params.type == "identifier":
                    found[node_text(params)] = None
                elif params is not None and params.type == "inferred_parameters":
                    for ident in params.named_children:
                        found[node_text(ident)] = None
            elif kind == "instanceof_expression":
                name = node.child_by_field_name("name")
                if name is not None:
                    found[node_text(name)] = self.symbols.primary_type(node.child_by_field_name("right"))
            stack.extend(node.named_children)
        return found

    def _collect_facts(self, roots: List[Any], scope: _Scope, info: EntityInfo) -> None:
        stack = list(reversed(roots))
        while stack:
            node = stack.pop()
            handler = self._handlers.get(node.type)
            if handler is not None:
                handler(node, scope, info)
            stack.extend(reversed([c for c in node.named_children if c.type not in COMMENTS]))

    def _on_invocation(self, node: Any, scope: _Scope, info: EntityInfo) -> None:
        name = node_text(node.child_by_field_name("name"))
        arguments = node.child_by_field_name("arguments")
        arity = 0
        if arguments is not None:
            arity = len([c for c in arguments.named_children if c.type not in COMMENTS])
        receiver = node.child_by_field_name("object")
        declared_here = any(name in self.symbols.method_names.get(t, ()) for t in scope.types)
        if receiver is None and not declared_here and name in self.symbols.static_members:
            owner: Optional[str] = self.symbols.static_members[name]
        else:
            owner = self._receiver_type(receiver, scope, name, is_call=True)
        info.method_calls.add(CallRef(owner=owner, name=name, arity=arity))

    def _on_declared_type(self, node: Any, scope: _Scope, info: EntityInfo) -> None:
        info.type_uses.update(self.symbols.type_names(node.child_by_field_name("type")))

    def _on_constructor_invocation(self, node: Any, scope: _Scope, info: EntityInfo) -> None:
        if not scope.types:
            return
        constructor = node.child_by_field_name("constructor")
        if constructor is not None and constructor.type == "super":
            target = self.symbols.super_classes.get(scope.types[0])
        else:
            target = scope.types[0]
        if target:
            info.type_uses.add(target)

    def _on_catch_parameter(self, node: Any, scope: _Scope, info: EntityInfo) -> None:
        for child in node.named_children:
            if child.type == "catch_type":
                info.type_uses.update(self.symbols.type_names(child))

    def _on_instanceof(self, node: Any, scope: _Scope, info: EntityInfo) -> None:
        info.type_uses.update(self.symbols.type_names(node.child_by_field_name("right")))

    def _on_class_literal(self, node: Any, scope: _Scope, info: EntityInfo) -> None:
        for child in node.named_children:
            info.type_uses.update(self.symbols.type_names(child))

    def _on_field_access(self, node: Any, scope: _Scope, info: EntityInfo) -> None:
        name_node = node.child_by_field_name("field")
        if name_node is None or name_node.type != "identifier":
            return
        name = node_text(name_node)
        owner = self._receiver_type(node.child_by_field_name("object"), scope, name, is_call=False)
        if owner:
            info.field_uses.add(f"{owner}.{name}")

    def _on_identifier(self, node: Any, scope: _Scope, info: EntityInfo) -> None:
        if not _is_value_identifier(node):
            return
        name = node_text(node)
        if name in scope.locals:
            return
        owner = self.symbols.field_owner(scope.types, name)
        if owner is None:
            owner = self.symbols.static_members.get(name)
        if owner:
            info.field_uses.add(f"{owner}.{name}")

    def _receiver_type(
        self,
        receiver: Optional[Any],
        scope: _Scope,
        member: str,
        is_call: bool,
    ) -> Optional[str]:
        """
        The type a member access is dispatched on, or None if unknown.
        """

        if receiver is None or receiver.type == "this":
            return self.symbols.declaring_type(scope.types, member, is_call)
        kind = receiver.type
        if kind == "super":
            return self.symbols.super_classes.get(scope.types[0]) if scope.types else None
        if kind == "identifier":
            name = node_text(receiver)
            if name in scope.locals:
                return scope.locals[name]
            owner = self.symbols.field_owner(scope.types, name)
            if owner is not None:
                return self.symbols.field_types[owner][name]
            if self.symbols.looks_like_type(name):
                return self.symbols.resolve_type(name)
            return None
        if kind == "field_access":
            inner = receiver.child_by_field_name("object")
            field_name = node_text(receiver.child_by_field_name("field"))
            if inner is not None and inner.type == "this":
                owner = self.symbols.declaring_type(scope.types, field_name, False)
                return self.symbols.field_types.get(owner or "", {}).get(field_name)
            text = node_text(receiver)
            if re.fullmatch(r"[A-Za-z_$][\w$]*(\.[A-Za-z_$][\w$]*)+", text) and field_name[:1].isupper():
                return self.symbols.resolve_type(text)
            return None
        if kind == "object_creation_expression":
            return self.symbols.primary_type(receiver.child_by_field_name("type"))
        if kind == "cast_expression":
            return self.symbols.primary_type(receiver.child_by_field_name("type"))
        if kind == "parenthesized_expression" and receiver.named_children:
            return self._receiver_type(receiver.named_children[0], scope, member, is_call)
        return None


def extract_file(unit: ParsedUnit, version: Version, file_index: int) -> FileExtraction:
    """
    Extract every entity of one parsed file without side effects.
    """

    extractor = EntityExtractor(unit, version, file_index)
    return FileExtraction(
        unit=unit,
        version=version,
        file_index=file_index,
        entities=extractor.extract(),
        extractor=extractor,
    )


def extract_entities(unit: ParsedUnit, version: Version, file_index: int) -> List[EntityInfo]:
    return extract_file(unit, version, file_index).entities


def collect_statement_facts(unit: ParsedUnit, statement: Any, target: EntityInfo) -> None:
    """
    Fill `target` with the facts of one statement of `unit`.
    """

    EntityExtractor(unit, target.version, target.file_index).collect_statement_facts(statement, target)


def _is_value_identifier(node: Any) -> bool:
    parent = node.parent
    if parent is None or parent.type not in _VALUE_ROLES:
        return False
    roles = _VALUE_ROLES[parent.type]
    if roles is None:
        return True
    return any(same_node(parent.child_by_field_name(role), node) for role in roles)


def _visibility(mods: Set[str]) -> str:
    for visibility in ("private", "protected", "public"):
        if visibility in mods:
            return visibility
    return "package"
