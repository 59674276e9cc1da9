"""
Entity descriptors and the per-run entity pool.

Every Info record carries the declared identity of one entity (or one
hunk) plus the semantic facts recovered by the extractor: the types it
references, the methods it calls and the fields it uses. The pool keys
every record by its version-scoped qualified name so the BASE and
CURRENT revisions of the same declaration never overwrite each other.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Set, Tuple

from .domain import Version
from .graph import Node, NodeKind


@dataclass(frozen=True)
class CallRef:
    """
    A method call as far as the extractor could resolve it.

    `owner` is the (possibly unqualified) type the call is dispatched
    on, or None when the receiver could not be typed.
    """

    owner: Optional[str]
    name: str
    arity: int

    @property
    def key(self) -> str:
        return f"{self.owner or '?'}.{self.name}/{self.arity}"


@dataclass(eq=False)
class EntityInfo:
    name: str
    qualified_name: str
    version: Version
    file_index: int
    package: str = ""
    owner: Optional[str] = None
    visibility: str = "package"
    modifiers: Set[str] = field(default_factory=set)
    type_uses: Set[str] = field(default_factory=set)
    method_calls: Set[CallRef] = field(default_factory=set)
    field_uses: Set[str] = field(default_factory=set)
    node: Optional[Node] = None

    kind: ClassVar[NodeKind]

    @property
    def key(self) -> str:
        return self.version.scope(self.qualified_name)

    @property
    def member(self) -> Optional[str]:
        return None


@dataclass(eq=False)
class ClassInfo(EntityInfo):
    super_class: Optional[str] = None
    super_interfaces: List[str] = field(default_factory=list)

    kind: ClassVar[NodeKind] = NodeKind.CLASS


@dataclass(eq=False)
class InterfaceInfo(EntityInfo):
    super_interfaces: List[str] = field(default_factory=list)

    kind: ClassVar[NodeKind] = NodeKind.INTERFACE


@dataclass(eq=False)
class FieldInfo(EntityInfo):
    type_string: str = ""
    types: Set[str] = field(default_factory=set)

    kind: ClassVar[NodeKind] = NodeKind.FIELD

    @property
    def member(self) -> Optional[str]:
        return self.qualified_name


@dataclass(eq=False)
class MethodInfo(EntityInfo):
    param_string: str = ""
    param_types: Set[str] = field(default_factory=set)
    return_string: str = "void"
    return_types: Set[str] = field(default_factory=set)
    exception_throws: List[str] = field(default_factory=list)
    is_constructor: bool = False
    arity: int = 0

    kind: ClassVar[NodeKind] = NodeKind.METHOD

    @property
    def member(self) -> Optional[str]:
        return self.qualified_name


@dataclass(eq=False)
class ImportInfo(EntityInfo):
    is_static: bool = False
    is_wildcard: bool = False

    kind: ClassVar[NodeKind] = NodeKind.IMPORT


@dataclass(eq=False)
class HunkInfo(EntityInfo):
    """
    Facts gathered for one diff hunk in one revision.

    `anchor` is the node the hunk was last placed on; `anchors` keeps
    every declaration node it touched, in classification order.
    """

    covered_nodes: List[Any] = field(default_factory=list)
    type_defs: Set[str] = field(default_factory=set)
    field_defs: Set[str] = field(default_factory=set)
    method_defs: Set[str] = field(default_factory=set)
    anchors: List[Node] = field(default_factory=list)
    member_context: Optional[str] = None

    kind: ClassVar[NodeKind] = NodeKind.HUNK

    @property
    def unique_name(self) -> str:
        return self.name

    @property
    def anchor(self) -> Optional[Node]:
        return self.node

    @property
    def member(self) -> Optional[str]:
        return self.member_context


def hunk_info_for(unique_name: str, version: Version, file_index: int, package: str) -> HunkInfo:
    return HunkInfo(
        name=unique_name,
        qualified_name=f"hunk#{unique_name}",
        version=version,
        file_index=file_index,
        package=package,
    )


class EntityPool:
    """
    Registry of all entity and hunk descriptors of one analysis run.
    """

    def __init__(self, src_dir: str):
        self.src_dir = src_dir
        self.classes: Dict[str, ClassInfo] = {}
        self.interfaces: Dict[str, InterfaceInfo] = {}
        self.fields: Dict[str, FieldInfo] = {}
        self.methods: Dict[str, MethodInfo] = {}
        self.imports: Dict[str, ImportInfo] = {}
        self.hunks: Dict[str, HunkInfo] = {}
        # Imported names owned by the hunk that covers their import.
        self.hunk_imports: Dict[str, HunkInfo] = {}
        self._method_index: Dict[Tuple[Version, str, str, int], List[MethodInfo]] = defaultdict(list)
        self._file_imports: Dict[Tuple[Version, int], List[ImportInfo]] = defaultdict(list)
        self._file_hunk_imports: Dict[Tuple[Version, int], Dict[str, HunkInfo]] = defaultdict(dict)

    def add(self, info: EntityInfo) -> None:
        if isinstance(info, HunkInfo):
            self.hunks[info.key] = info
        elif isinstance(info, ClassInfo):
            self.classes[info.key] = info
        elif isinstance(info, InterfaceInfo):
            self.interfaces[info.key] = info
        elif isinstance(info, FieldInfo):
            self.fields[info.key] = info
        elif isinstance(info, MethodInfo):
            self.methods[info.key] = info
            if info.owner:
                self._method_index[(info.version, info.owner, info.name, info.arity)].append(info)
        elif isinstance(info, ImportInfo):
            self.imports[info.key] = info
            self._file_imports[(info.version, info.file_index)].append(info)
        else:
            raise TypeError(f"unsupported entity info: {type(info).__name__}")

    def register_import_owner(self, imported: str, hunk: HunkInfo) -> None:
        self.hunk_imports[hunk.version.scope(imported)] = hunk
        self._file_hunk_imports[(hunk.version, hunk.file_index)][imported] = hunk

    def methods_named(self, version: Version, owner: str, name: str, arity: int) -> List[MethodInfo]:
        return self._method_index.get((version, owner, name, arity), [])

    def file_imports(self, version: Version, file_index: int) -> List[ImportInfo]:
        return self._file_imports.get((version, file_index), [])

    def file_hunk_imports(self, version: Version, file_index: int) -> Dict[str, HunkInfo]:
        return self._file_hunk_imports.get((version, file_index), {})

    def __len__(self) -> int:
        return (
            len(self.classes)
            + len(self.interfaces)
            + len(self.fields)
            + len(self.methods)
            + len(self.imports)
            + len(self.hunks)
        )
