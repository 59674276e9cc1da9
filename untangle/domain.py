"""
Core domain models for untangle.

These dataclasses describe the diff input handed to the graph builder
and the groups produced by the grouping engine. They intentionally
avoid any direct git or parser dependencies so they can be reused by
different parts of the system.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class Version(Enum):
    """
    The revision a materialized source file belongs to.
    """

    BASE = "base"
    CURRENT = "current"

    def scope(self, name: str) -> str:
        """Prefix a name so BASE and CURRENT entities never collide."""
        return f"{self.value}:{name}"


class ContentType(Enum):
    """
    Coarse classification of the lines of one side of a hunk.
    """

    EMPTY = "empty"
    BLANKLINE = "blankline"
    COMMENT = "comment"
    IMPORT = "import"
    CODE = "code"


_IMPORT_LINE = re.compile(r"^import\s+(static\s+)?[\w.]+(\.\*)?\s*;")


def _is_comment(stripped: str) -> bool:
    if stripped.startswith("//"):
        return True
    if not stripped.startswith(("/*", "*")):
        return False
    # Code after a closing `*/` makes the line code.
    end = stripped.find("*/", 2 if stripped.startswith("/*") else 0)
    if end < 0:
        return True
    rest = stripped[end + 2 :].strip()
    return not rest or (rest.startswith("/") and _is_comment(rest))


def classify_lines(lines: List[str]) -> ContentType:
    """
    Classify source lines as blank, comment, import or code.

    Code wins over imports, and imports mixed with comments still count
    as imports.
    """

    if not lines:
        return ContentType.EMPTY

    kinds = set()
    for line in lines:
        stripped = line.strip()
        if not stripped:
            continue
        if _IMPORT_LINE.match(stripped):
            kinds.add(ContentType.IMPORT)
        elif _is_comment(stripped):
            kinds.add(ContentType.COMMENT)
        else:
            kinds.add(ContentType.CODE)

    if not kinds:
        return ContentType.BLANKLINE
    if ContentType.CODE in kinds:
        return ContentType.CODE
    if ContentType.IMPORT in kinds:
        return ContentType.IMPORT
    return ContentType.COMMENT


@dataclass
class DiffHunk:
    """
    A contiguous block of changed lines in a single file.

    Line numbers are 1-based and inclusive. A side without lines (pure
    addition or pure deletion) has start and end set to 0.
    """

    index: int
    base_start_line: int
    base_end_line: int
    current_start_line: int
    current_end_line: int
    base_lines: List[str] = field(default_factory=list)
    current_lines: List[str] = field(default_factory=list)

    @property
    def base_content_type(self) -> ContentType:
        return classify_lines(self.base_lines)

    @property
    def current_content_type(self) -> ContentType:
        return classify_lines(self.current_lines)

    def contains_code(self) -> bool:
        code_types = (ContentType.CODE, ContentType.IMPORT)
        return self.base_content_type in code_types or self.current_content_type in code_types

    def line_range(self, version: Version) -> Optional[tuple[int, int]]:
        """
        Return the (start, end) lines of the given side, or None if empty.
        """

        if version is Version.BASE:
            start, end, lines = self.base_start_line, self.base_end_line, self.base_lines
        else:
            start, end, lines = self.current_start_line, self.current_end_line, self.current_lines
        if not lines or start <= 0:
            return None
        return start, end


@dataclass
class DiffFile:
    """
    All hunks associated with a single changed file.

    Relative paths are repository-relative and use forward slashes; a
    file added in CURRENT has no base path and vice versa.
    """

    index: int
    base_relative_path: Optional[str]
    current_relative_path: Optional[str]
    hunks: List[DiffHunk] = field(default_factory=list)

    def relative_path(self, version: Version) -> Optional[str]:
        if version is Version.BASE:
            return self.base_relative_path
        return self.current_relative_path

    @property
    def display_path(self) -> str:
        return self.current_relative_path or self.base_relative_path or "unknown"


def hunk_unique_name(file_index: int, hunk_index: int) -> str:
    return f"{file_index}:{hunk_index}"


def hunk_sort_key(unique_name: str) -> tuple[int, int]:
    """
    Order hunk unique names numerically ("2:10" after "2:9").
    """

    file_part, _, hunk_part = unique_name.partition(":")
    return int(file_part), int(hunk_part or 0)


@dataclass
class Group:
    """
    A small, coherent unit of change made up of one or more hunks.
    """

    id: str
    hunk_ids: List[str]
    description: str = ""

    def __str__(self) -> str:
        return f"{self.id}: {self.description} [{', '.join(self.hunk_ids)}]"
