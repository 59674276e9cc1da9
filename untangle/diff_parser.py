"""
Unified diff parsing for untangle.

The parser converts a raw unified diff string into the DiffFile and
DiffHunk records consumed by the graph builder.

The implementation focuses on the unified diff format produced by git
(e.g. `git diff --unified=0`, `git show`) and ignores metadata that is
not needed for placing hunks (such as modes and indexes). Each hunk
records the line range of its removed lines in the base revision and
of its added lines in the current revision; context lines never widen
those ranges.
"""

from __future__ import annotations

import re
from typing import List, Optional, Sequence, Tuple

from .domain import DiffFile, DiffHunk
from .errors import DiffParseError


_HUNK_HEADER_RE = re.compile(
    r"^@@ -(?P<old_start>\d+)(?:,(?P<old_count>\d+))?"
    r" \+(?P<new_start>\d+)(?:,(?P<new_count>\d+))?"
    r" @@"
)


def parse_unified_diff(raw_diff: str) -> List[DiffFile]:
    """
    Parse a unified diff into DiffFile records indexed in diff order.

    Binary files and files without textual hunks are kept (with no
    hunks) so file indexes stay stable across runs.
    """

    lines = raw_diff.splitlines()
    files: List[DiffFile] = []

    i = 0
    # Skip any preamble (e.g. commit headers) until the first file diff.
    while i < len(lines) and not lines[i].startswith("diff --git "):
        i += 1

    while i < len(lines):
        if not lines[i].startswith("diff --git "):
            i += 1
            continue

        diff_file, i = _parse_single_file_diff(lines, i, file_index=len(files))
        if diff_file is not None:
            files.append(diff_file)

    return files


def _parse_single_file_diff(
    lines: Sequence[str],
    start_index: int,
    file_index: int,
) -> Tuple[Optional[DiffFile], int]:
    """
    Parse a single `diff --git` section starting at start_index.

    Returns a tuple of (DiffFile | None, next_index).
    """

    i = start_index
    header_line = lines[i]
    i += 1

    # Example: "diff --git a/path b/path"
    parts = header_line.split()
    if len(parts) < 4:
        # Malformed; skip to next diff.
        while i < len(lines) and not lines[i].startswith("diff --git "):
            i += 1
        return None, i

    path_old: Optional[str] = _strip_prefix(parts[-2], "a/")
    path_new: Optional[str] = _strip_prefix(parts[-1], "b/")
    is_binary = False

    while i < len(lines):
        line = lines[i]
        if line.startswith("diff --git "):
            return DiffFile(file_index, path_old, path_new, []), i
        if line.startswith("rename from "):
            path_old = line[len("rename from ") :].strip()
        elif line.startswith("rename to "):
            path_new = line[len("rename to ") :].strip()
        elif line.startswith("Binary files ") or line.startswith("GIT binary patch"):
            is_binary = True
        elif line.startswith("--- "):
            break
        i += 1

    if is_binary:
        while i < len(lines) and not lines[i].startswith("diff --git "):
            i += 1
        return DiffFile(file_index, path_old, path_new, []), i

    if i < len(lines) and lines[i].startswith("--- "):
        old_label = lines[i][4:].strip()
        path_old = None if old_label == "/dev/null" else _strip_prefix(old_label, "a/")
        i += 1
    if i < len(lines) and lines[i].startswith("+++ "):
        new_label = lines[i][4:].strip()
        path_new = None if new_label == "/dev/null" else _strip_prefix(new_label, "b/")
        i += 1

    hunks: List[DiffHunk] = []
    while i < len(lines) and not lines[i].startswith("diff --git "):
        if lines[i].startswith("@@"):
            hunk, i = _parse_hunk(lines, i, hunk_index=len(hunks))
            hunks.append(hunk)
        else:
            i += 1

    return DiffFile(file_index, path_old, path_new, hunks), i


def _parse_hunk(
    lines: Sequence[str],
    start_index: int,
    hunk_index: int,
) -> Tuple[DiffHunk, int]:
    """
    Parse a single hunk starting at `start_index`.
    """

    header = lines[start_index]
    match = _HUNK_HEADER_RE.match(header)
    if not match:
        raise DiffParseError(f"malformed hunk header: {header!r}")

    base_lineno = int(match.group("old_start"))
    current_lineno = int(match.group("new_start"))
    base_numbers: List[int] = []
    current_numbers: List[int] = []
    base_lines: List[str] = []
    current_lines: List[str] = []

    i = start_index + 1
    while i < len(lines):
        line = lines[i]
        if line.startswith("diff --git ") or line.startswith("@@"):
            break
        if line.startswith("\\ No newline at end of file"):
            i += 1
            continue

        marker = line[:1]
        if marker == "-":
            base_numbers.append(base_lineno)
            base_lines.append(line[1:])
            base_lineno += 1
        elif marker == "+":
            current_numbers.append(current_lineno)
            current_lines.append(line[1:])
            current_lineno += 1
        else:
            # Context line (or an empty line inside a hunk).
            base_lineno += 1
            current_lineno += 1
        i += 1

    hunk = DiffHunk(
        index=hunk_index,
        base_start_line=base_numbers[0] if base_numbers else 0,
        base_end_line=base_numbers[-1] if base_numbers else 0,
        current_start_line=current_numbers[0] if current_numbers else 0,
        current_end_line=current_numbers[-1] if current_numbers else 0,
        base_lines=base_lines,
        current_lines=current_lines,
    )
    return hunk, i


def _strip_prefix(path: str, prefix: str) -> str:
    if path.startswith(prefix):
        return path[len(prefix) :]
    return path


def java_diff_files(diff_files: List[DiffFile]) -> List[DiffFile]:
    """
    Keep only the files whose either side is a Java source file.
    """

    return [
        diff_file
        for diff_file in diff_files
        if any(
            path and path.endswith(".java")
            for path in (diff_file.base_relative_path, diff_file.current_relative_path)
        )
    ]
