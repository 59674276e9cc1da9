"""
Command-line interface for untangle.

This module is responsible for argument parsing and delegating to the
orchestration in the analyzer module.
"""

from __future__ import annotations

import argparse
import sys
from typing import List, Optional

from .analyzer import analyze
from .config import Config
from .errors import UntangleError
from .logging_utils import configure_logging
from .report import render_json, render_text


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="untangle",
        description=(
            "Split a tangled Java commit or working-tree change into "
            "semantically cohesive groups of hunks."
        ),
    )

    parser.add_argument(
        "target",
        nargs="?",
        help="Commit-ish to untangle (default: HEAD).",
    )
    parser.add_argument(
        "--working-tree",
        action="store_true",
        help="Untangle uncommitted changes against HEAD instead of a commit.",
    )
    parser.add_argument(
        "-C",
        "--repo",
        dest="repo_path",
        default=".",
        help="Path of the git repository (default: current directory).",
    )
    parser.add_argument(
        "--max-distance",
        type=int,
        default=2,
        choices=(0, 1, 2, 3),
        help="Largest distance tier allowed between merged groups "
        "(0 node, 1 member, 2 type, 3 package).",
    )
    parser.add_argument(
        "--min-similarity",
        type=float,
        default=0.8,
        help="Smallest fact overlap, in [0, 1], required to merge two groups.",
    )
    parser.add_argument(
        "--weight-threshold",
        type=float,
        default=0.0,
        help="Edge weight between two groups must exceed this value to merge them.",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="Number of threads used to parse source files.",
    )
    parser.add_argument(
        "--json",
        dest="output_json",
        action="store_true",
        help="Print the groups as JSON.",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (can be specified multiple times).",
    )

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_arg_parser()
    args = parser.parse_args(argv)

    config = Config(
        repo_path=args.repo_path,
        target=args.target,
        working_tree=args.working_tree,
        weight_threshold=args.weight_threshold,
        min_similarity=args.min_similarity,
        max_distance=args.max_distance,
        workers=args.workers,
        output_json=args.output_json,
        verbosity=args.verbose,
    )

    configure_logging(verbosity=config.verbosity)

    try:
        result = analyze(config)
    except KeyboardInterrupt:
        return 130
    except UntangleError as exc:
        print(f"untangle: error: {exc}", file=sys.stderr)
        return 1

    if config.output_json:
        print(render_json(result.groups))
    else:
        print(render_text(result.groups, result.diff_files))
    return 0


if __name__ == "__main__":  # pragma: no cover - manual invocation
    raise SystemExit(main())
