"""
Semantic graph construction and hunk placement.

The GraphBuilder turns a directory holding the materialized `base/` and
`current/` revisions plus the parsed diff into a SemanticGraph:

- every Java file matched by a diff file is parsed and its entities are
  extracted (optionally in a thread pool);
- the owning thread merges the per-file contributions into the entity
  pool and the graph, in path order;
- each code hunk is placed on the declarations it covers, or on a
  synthesized hunk node contained by its nearest enclosing declaration;
- call, access and type edges are wired from the collected facts.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Optional, Set

from .config import Config
from .domain import DiffFile, DiffHunk, Version, hunk_unique_name
from .entities import EntityInfo, EntityPool, HunkInfo, MethodInfo, hunk_info_for
from .errors import AnchorNotFound, FrontendError, ParseError
from .extractor import FileExtraction, extract_file, import_parts
from .frontend import (
    STATEMENTS,
    JavaFrontend,
    anchor_candidate,
    enclosing_members,
    same_node,
)
from .graph import EdgeKind, Node, NodeKind, SemanticGraph

LOG = logging.getLogger(__name__)

_TYPE_KINDS = (NodeKind.CLASS, NodeKind.INTERFACE)


@dataclass
class _SourceFile:
    path: Path
    relative_path: str
    version: Version
    diff_file: DiffFile


def version_of(relative_path: str) -> Version:
    """
    Decide the revision of a materialized file from its path segments.
    """

    parts = relative_path.split("/")
    if parts[0] in (Version.BASE.value, Version.CURRENT.value):
        return Version(parts[0])
    return Version.CURRENT if Version.CURRENT.value in parts[:-1] else Version.BASE


def get_diff_file_by_path(
    diff_files: Iterable[DiffFile],
    path: str,
    version: Version,
) -> Optional[DiffFile]:
    """
    Return the diff file whose path for `version` matches `path`.

    A path equal to `<version>/<relative>` wins; otherwise the longest
    relative path that is a `/`-bounded suffix of `path` does.
    """

    rooted = f"{version.value}/"
    best: Optional[DiffFile] = None
    best_length = -1
    for diff_file in diff_files:
        relative = diff_file.relative_path(version)
        if not relative:
            continue
        if path in (relative, rooted + relative):
            return diff_file
        if path.endswith("/" + relative) and len(relative) > best_length:
            best, best_length = diff_file, len(relative)
    return best


class GraphBuilder:
    """
    Build the semantic graph of one analysis run.

    A builder instance owns its entity pool and graph; `build` creates
    fresh ones on every call.
    """

    def __init__(self, config: Config, frontend: Optional[JavaFrontend] = None):
        self.config = config
        self.frontend = frontend or JavaFrontend()
        self.graph = SemanticGraph()
        self.pool = EntityPool("")

    def build(self, source_directory: str, diff_files: List[DiffFile]) -> SemanticGraph:
        root = Path(source_directory)
        self.graph = SemanticGraph()
        self.pool = EntityPool(str(root))

        sources = self._enumerate(root, diff_files)
        extractions = self._extract_all(sources)

        for extraction in extractions:
            self._merge(extraction)
        for source, extraction in zip(sources, extractions):
            if extraction is not None:
                self._place_hunks(extraction, source.diff_file)

        self._wire_edges()
        LOG.info(
            "Built semantic graph: %d nodes, %d edges, %d touched",
            self.graph.number_of_nodes(),
            self.graph.number_of_edges(),
            len(self.graph.touched_nodes()),
        )
        return self.graph

    # Step 1: enumerate and match files.

    def _enumerate(self, root: Path, diff_files: List[DiffFile]) -> List[_SourceFile]:
        if not root.is_dir():
            raise FrontendError(f"source directory does not exist: {root}")
        try:
            paths = sorted(path for path in root.rglob("*.java") if path.is_file())
        except OSError as exc:
            raise FrontendError(f"cannot enumerate {root}: {exc}") from exc

        sources: List[_SourceFile] = []
        for path in paths:
            relative = path.relative_to(root).as_posix()
            version = version_of(relative)
            diff_file = get_diff_file_by_path(diff_files, relative, version)
            if diff_file is None:
                LOG.debug("Skipping %s: not part of the diff", relative)
                continue
            sources.append(_SourceFile(path, relative, version, diff_file))
        LOG.info("Found %d changed Java files under %s", len(sources), root)
        return sources

    # Step 2: parse and extract.

    def _extract_all(self, sources: List[_SourceFile]) -> List[Optional[FileExtraction]]:
        if self.config.workers > 1 and len(sources) > 1:
            with ThreadPoolExecutor(max_workers=self.config.workers) as executor:
                return list(executor.map(self._extract_one, sources))
        return [self._extract_one(source) for source in sources]

    def _extract_one(self, source: _SourceFile) -> Optional[FileExtraction]:
        try:
            unit = self.frontend.parse_file(source.path)
        except ParseError as exc:
            LOG.warning("Skipping %s", exc)
            return None
        return extract_file(unit, source.version, source.diff_file.index)

    def _merge(self, extraction: Optional[FileExtraction]) -> None:
        if extraction is None:
            return
        for info in extraction.entities:
            if self.graph.find_node(info.kind, info.key) is not None:
                LOG.warning("Duplicate %s %s in %s ignored", info.kind.value, info.key, extraction.unit.path)
                continue
            owner = info.qualified_name if info.kind in _TYPE_KINDS else info.owner
            info.node = self.graph.add_node(
                info.kind,
                info.name,
                info.key,
                info.version,
                package=info.package,
                owner=owner,
                member=info.member,
            )
            self.pool.add(info)

    # Steps 3 to 7: hunk placement.

    def _place_hunks(self, extraction: FileExtraction, diff_file: DiffFile) -> None:
        unit = extraction.unit
        for hunk in diff_file.hunks:
            if not hunk.contains_code():
                continue
            line_range = hunk.line_range(extraction.version)
            if line_range is None:
                continue
            start, end = unit.line_span(*line_range)
            if end <= start:
                continue
            covered = unit.covered_nodes(start, end)
            if covered:
                self._place_hunk(extraction, diff_file, hunk, covered)

    def _place_hunk(
        self,
        extraction: FileExtraction,
        diff_file: DiffFile,
        hunk: DiffHunk,
        covered: List[Any],
    ) -> None:
        version = extraction.version
        unique = hunk_unique_name(diff_file.index, hunk.index)
        info = hunk_info_for(unique, version, diff_file.index, extraction.unit.package)
        info.covered_nodes = covered

        candidates: List[Any] = []
        for node in covered:
            candidate = anchor_candidate(node)
            if candidate is not None and not any(same_node(candidate, c) for c in candidates):
                candidates.append(candidate)
        if not candidates:
            LOG.debug("Hunk %s covers no declaration or statement", unique)
            return

        for candidate in candidates:
            if candidate.type == "import_declaration":
                self._place_on_import(extraction, candidate, info)
            elif candidate.type in STATEMENTS:
                extraction.extractor.collect_statement_facts(candidate, info)
            else:
                try:
                    self._place_on_declaration(extraction, candidate, info)
                except AnchorNotFound as exc:
                    LOG.error("Hunk %s: %s", unique, exc)

        if not info.anchors:
            self._synthesize_hunk_node(extraction, candidates, info)
        self.pool.add(info)

    def _place_on_import(self, extraction: FileExtraction, candidate: Any, info: HunkInfo) -> None:
        imported, _, _ = import_parts(candidate)
        info.type_defs.add(imported)
        self.pool.register_import_owner(imported, info)
        node = self.graph.find_node(
            NodeKind.IMPORT, extraction.version.scope(f"{extraction.file_index}#{imported}")
        )
        if node is not None:
            self._touch(node, info)

    def _place_on_declaration(self, extraction: FileExtraction, candidate: Any, info: HunkInfo) -> None:
        for kind, qualified, identifier in extraction.extractor.declared_entities(candidate):
            node = self.find_node_by_name_and_type(qualified, kind, extraction.version, True)
            if node is None:
                node = self.find_node_by_name_and_type(identifier, kind, extraction.version, False)
            if node is None:
                raise AnchorNotFound(f"no {kind.value} node for {qualified}")
            if kind in _TYPE_KINDS:
                info.type_defs.add(node.entity_name)
            elif kind is NodeKind.FIELD:
                info.field_defs.add(node.entity_name)
            else:
                info.method_defs.add(node.entity_name)
            self._touch(node, info)

    def _touch(self, node: Node, info: HunkInfo) -> None:
        node.mark(info.unique_name)
        info.node = node
        info.anchors.append(node)

    def _synthesize_hunk_node(self, extraction: FileExtraction, candidates: List[Any], info: HunkInfo) -> None:
        parent = self.find_parent_node(extraction, candidates)
        if parent is not None:
            info.owner = parent.owner
            info.member_context = parent.member
        node = self.graph.add_node(
            NodeKind.HUNK,
            info.unique_name,
            info.key,
            info.version,
            package=info.package,
            owner=info.owner,
            member=info.member_context,
        )
        self._touch(node, info)
        if parent is None:
            LOG.error("Hunk %s has no enclosing declaration in the graph", info.unique_name)
            return
        self.graph.add_edge(parent, node, EdgeKind.CONTAIN)

    def find_parent_node(self, extraction: FileExtraction, candidates: List[Any]) -> Optional[Node]:
        """
        Find the graph node of the nearest declaration enclosing all
        candidates. Declarations without a node are passed over.
        """

        chains = [enclosing_members(c) for c in candidates if c.type != "import_declaration"]
        chains = [chain for chain in chains if chain]
        if not chains:
            return None

        for declaration in chains[0]:
            if not all(any(same_node(declaration, other) for other in chain) for chain in chains[1:]):
                continue
            entities = extraction.extractor.declared_entities(declaration)
            if not entities:
                continue
            kind, qualified, identifier = entities[0]
            node = self.find_node_by_name_and_type(qualified, kind, extraction.version, True)
            if node is None:
                node = self.find_node_by_name_and_type(identifier, kind, extraction.version, False)
            if node is not None:
                return node
        return None

    def find_node_by_name_and_type(
        self,
        name: str,
        kind: NodeKind,
        version: Version,
        is_qualified: bool,
    ) -> Optional[Node]:
        if is_qualified:
            return self.graph.find_node(kind, version.scope(name))
        return self.graph.find_by_identifier(kind, name, version)

    # Step 8: edge wiring.

    def _wire_edges(self) -> None:
        for method in list(self.pool.methods.values()):
            self._wire_calls(method)
            self._wire_field_uses(method)
            self._wire_types(method, method.return_types, EdgeKind.RETURN)
            self._wire_types(method, method.param_types, EdgeKind.PARAM)
            self._wire_types(method, method.type_uses, EdgeKind.INITIALIZE)
            self._wire_types(method, method.exception_throws, EdgeKind.TYPE)

        for field_info in list(self.pool.fields.values()):
            self._wire_types(field_info, field_info.types, EdgeKind.TYPE)
            self._wire_calls(field_info)
            self._wire_field_uses(field_info)
            self._wire_types(field_info, field_info.type_uses, EdgeKind.INITIALIZE)

        for type_info in list(self.pool.classes.values()) + list(self.pool.interfaces.values()):
            supers = list(getattr(type_info, "super_interfaces", []))
            if getattr(type_info, "super_class", None):
                supers.append(type_info.super_class)
            self._wire_types(type_info, supers, EdgeKind.TYPE)

        for import_info in list(self.pool.imports.values()):
            for kind in _TYPE_KINDS:
                target = self.graph.find_node(kind, import_info.version.scope(import_info.name))
                if target is not None and import_info.node is not None:
                    self.graph.add_edge(import_info.node, target, EdgeKind.TYPE)

        # Statement facts belong to the statement's own member, so only a
        # synthesized hunk node carries them.
        for hunk in list(self.pool.hunks.values()):
            if hunk.node is None or hunk.node.kind is not NodeKind.HUNK:
                continue
            self._wire_calls(hunk)
            self._wire_field_uses(hunk)
            self._wire_types(hunk, hunk.type_uses, EdgeKind.INITIALIZE)

    def _wire_calls(self, info: EntityInfo) -> None:
        if info.node is None:
            return
        for call in sorted(info.method_calls, key=lambda c: c.key):
            if call.owner is None:
                continue
            for target in self._resolve_call(info, call.owner, call.name, call.arity):
                if target.node is not None:
                    self.graph.add_edge(info.node, target.node, EdgeKind.CALL)

    def _resolve_call(self, info: EntityInfo, owner: str, name: str, arity: int) -> List[MethodInfo]:
        """
        Overloads of `name` with matching arity on `owner` or the nearest
        superclass declaring them.
        """

        seen: Set[str] = set()
        current: Optional[str] = self._qualify(owner, info)
        while current and current not in seen:
            seen.add(current)
            targets = self.pool.methods_named(info.version, current, name, arity)
            if targets:
                return targets
            declared = self.pool.classes.get(info.version.scope(current))
            if declared is None or not declared.super_class:
                break
            current = self._qualify(declared.super_class, declared)
        return []

    def _wire_field_uses(self, info: EntityInfo) -> None:
        if info.node is None:
            return
        for use in sorted(info.field_uses):
            owner, _, name = use.rpartition(".")
            qualified_owner = self._qualify(owner, info) or owner
            target = self.pool.fields.get(info.version.scope(f"{qualified_owner}.{name}"))
            if target is not None and target.node is not None:
                self.graph.add_edge(info.node, target.node, EdgeKind.ACCESS)

    def _wire_types(self, info: EntityInfo, types: Iterable[str], kind: EdgeKind) -> None:
        if info.node is None:
            return
        for type_name in sorted(set(types)):
            target = self.find_type_node(type_name, info.version, info.file_index, info.package)
            if target is not None:
                self.graph.add_edge(info.node, target, kind)

    def _qualify(self, type_name: str, info: EntityInfo) -> Optional[str]:
        node = self.find_type_node(type_name, info.version, info.file_index, info.package)
        if node is not None and node.kind in _TYPE_KINDS:
            return node.entity_name
        return None

    def find_type_node(
        self,
        type_name: str,
        version: Version,
        file_index: int,
        package: str = "",
    ) -> Optional[Node]:
        """
        Resolve a possibly unqualified type name to a class, interface,
        import or hunk node.

        Suffix matching over the file's imports is deliberately loose and
        can pick a wrong type sharing a simple name.
        """

        scoped = version.scope(type_name)
        for table in (self.pool.classes, self.pool.interfaces):
            if scoped in table:
                return table[scoped].node

        owned = self.pool.hunk_imports.get(scoped)
        if owned is not None and owned.node is not None:
            return owned.node

        imports = self.pool.file_imports(version, file_index)
        for import_info in imports:
            if import_info.name == type_name:
                return import_info.node

        if package and "." not in type_name:
            same_package = version.scope(f"{package}.{type_name}")
            for table in (self.pool.classes, self.pool.interfaces):
                if same_package in table:
                    return table[same_package].node

        suffix = "." + type_name
        for imported, hunk in sorted(self.pool.file_hunk_imports(version, file_index).items()):
            if imported.endswith(suffix) and hunk.node is not None:
                return hunk.node
        for import_info in imports:
            if import_info.name.endswith(suffix):
                return import_info.node
        return None

