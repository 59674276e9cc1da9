"""
High-level orchestration of one untangle run.

The analyzer is responsible for:
  - obtaining a zero-context diff from git (a commit or the working tree),
  - parsing it into DiffFile records,
  - materializing both revisions of the changed Java files,
  - building the semantic graph and grouping its hunks, and
  - checking that the groups partition the diff.
"""

from __future__ import annotations

import logging
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

from .builder import GraphBuilder
from .config import Config
from .diff_parser import java_diff_files, parse_unified_diff
from .domain import DiffFile, Group, hunk_unique_name
from .errors import PartitionError
from .git_adapter import GitDiffResult, get_diff_for_commit, get_diff_for_working_tree, materialize
from .graph import SemanticGraph
from .grouping import GroupingEngine

LOG = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    git_diff: GitDiffResult
    diff_files: List[DiffFile]
    graph: SemanticGraph
    groups: Dict[str, Group]


def analyze(config: Config) -> AnalysisResult:
    """
    Untangle the change selected by `config` into groups.
    """

    config.validate()
    LOG.debug("Starting untangle with config: %s", config)

    git_diff = _obtain_git_diff(config)
    diff_files = parse_unified_diff(git_diff.raw_diff)
    java_files = java_diff_files(diff_files)
    LOG.info("Diff touches %d files, %d of them Java", len(diff_files), len(java_files))

    with tempfile.TemporaryDirectory(prefix="untangle-") as workdir:
        materialize(java_files, git_diff, Path(workdir), cwd=config.repo_path)
        graph = GraphBuilder(config).build(workdir, java_files)

    groups = GroupingEngine(config).group(graph, diff_files)
    validate_groups(groups, diff_files)
    return AnalysisResult(git_diff=git_diff, diff_files=diff_files, graph=graph, groups=groups)


def _obtain_git_diff(config: Config) -> GitDiffResult:
    if config.working_tree:
        LOG.info("Using working tree changes as diff source")
        return get_diff_for_working_tree(cwd=config.repo_path)

    target = config.target or "HEAD"
    LOG.info("Using commit %s as diff source", target)
    return get_diff_for_commit(target, cwd=config.repo_path)


def validate_groups(groups: Dict[str, Group], diff_files: List[DiffFile]) -> None:
    """
    Check that every hunk of the diff lands in exactly one group.
    """

    expected = {
        hunk_unique_name(diff_file.index, hunk.index)
        for diff_file in diff_files
        for hunk in diff_file.hunks
    }
    assigned: List[str] = [hunk_id for group in groups.values() for hunk_id in group.hunk_ids]

    unknown = set(assigned) - expected
    if unknown:
        raise PartitionError(f"groups reference unknown hunks {sorted(unknown)}")
    if len(assigned) != len(set(assigned)):
        raise PartitionError("at least one hunk was assigned to several groups")
    missing = expected - set(assigned)
    if missing:
        raise PartitionError(f"hunks missing from every group: {sorted(missing)}")
