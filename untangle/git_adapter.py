"""
Git integration for untangle.

This module is responsible for interacting with the git CLI to obtain
zero-context diffs and to materialize the two revisions of every
changed file into a scratch directory laid out as `base/<path>` and
`current/<path>`, which is what the graph builder consumes.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

from .domain import DiffFile, Version
from .errors import GitError

LOG = logging.getLogger(__name__)

# The well-known id of git's empty tree, used as the base of root commits.
EMPTY_TREE = "4b825dc642cb6eb9a060e54bf8d69288fbee4904"


@dataclass
class GitDiffResult:
    """
    Result of running a git diff command for untangle.

    raw_diff contains the unified diff text; base_commit and
    target_commit identify the revisions being compared. A None
    target_commit means the working tree.
    """

    raw_diff: str
    base_commit: Optional[str]
    target_commit: Optional[str]


def _decode(output: bytes) -> str:
    return output.decode("utf-8", errors="replace")


def _run_git(
    args: list[str],
    cwd: Optional[str] = None,
    binary: bool = False,
) -> subprocess.CompletedProcess:
    """
    Run a git command and return the completed process.

    All git invocations go through this helper so that error handling
    and logging are centralized. Output is captured as bytes; unless
    `binary` is set, stdout is decoded as UTF-8 with undecodable bytes
    replaced.
    """

    cmd = ["git", *args]
    LOG.debug("Running git command: %s", " ".join(cmd))
    try:
        completed = subprocess.run(
            cmd,
            cwd=cwd,
            check=False,
            capture_output=True,
        )
    except OSError as exc:
        raise GitError(f"failed to execute git: {exc}") from exc

    stderr = _decode(completed.stderr)
    if completed.returncode != 0:
        LOG.debug("git stderr: %s", stderr)
        raise GitError(
            f"git command failed: {' '.join(cmd)}: {stderr.strip()}"
        )

    stdout = completed.stdout if binary else _decode(completed.stdout)
    return subprocess.CompletedProcess(cmd, completed.returncode, stdout, stderr)


def get_diff_for_commit(commit: str, cwd: Optional[str] = None) -> GitDiffResult:
    """
    Return the zero-context diff and metadata for a single commit.

    For normal commits, this returns the diff between the commit's
    first parent and the commit itself. For a root commit (with no
    parents), the diff is taken against the empty tree.
    """

    target = _run_git(["rev-parse", commit], cwd=cwd).stdout.strip()

    try:
        base: Optional[str] = _run_git(["rev-parse", f"{target}^"], cwd=cwd).stdout.strip()
    except GitError:
        base = None

    diff_output = _run_git(
        ["diff", "--unified=0", "--find-renames", base or EMPTY_TREE, target],
        cwd=cwd,
    ).stdout
    return GitDiffResult(raw_diff=diff_output, base_commit=base, target_commit=target)


def get_diff_for_working_tree(cwd: Optional[str] = None) -> GitDiffResult:
    """
    Return the zero-context diff of tracked working-tree changes.

    The base commit is HEAD; the target is the working tree itself.
    """

    base = _run_git(["rev-parse", "HEAD"], cwd=cwd).stdout.strip()
    diff_output = _run_git(["diff", "--unified=0", "--find-renames", "HEAD"], cwd=cwd).stdout
    return GitDiffResult(raw_diff=diff_output, base_commit=base, target_commit=None)


def read_file_at(revision: str, path: str, cwd: Optional[str] = None) -> bytes:
    """
    Return the raw content of `path` as stored in `revision`.
    """

    return _run_git(["show", f"{revision}:{path}"], cwd=cwd, binary=True).stdout


def materialize(
    diff_files: Iterable[DiffFile],
    git_diff: GitDiffResult,
    dest: Path,
    cwd: Optional[str] = None,
) -> Path:
    """
    Write both revisions of every changed file under `dest`.

    BASE content comes from the base commit (absent for root commits),
    CURRENT content from the target commit or, when the target is the
    working tree, straight from disk.
    """

    repo = Path(cwd or ".")
    for diff_file in diff_files:
        base_path = diff_file.relative_path(Version.BASE)
        if base_path and git_diff.base_commit:
            _write(dest / Version.BASE.value / base_path,
                   read_file_at(git_diff.base_commit, base_path, cwd=cwd))

        current_path = diff_file.relative_path(Version.CURRENT)
        if not current_path:
            continue
        if git_diff.target_commit:
            content = read_file_at(git_diff.target_commit, current_path, cwd=cwd)
        else:
            try:
                content = (repo / current_path).read_bytes()
            except OSError as exc:
                raise GitError(f"cannot read working tree file {current_path}: {exc}") from exc
        _write(dest / Version.CURRENT.value / current_path, content)

    LOG.info("Materialized revisions under %s", dest)
    return dest


def _write(path: Path, content: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
