"""
Configuration model for untangle.

The CLI constructs a Config instance and passes it down into the graph
builder and grouping engine so thresholds can be adjusted without
relying on global state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .errors import ConfigError

# {hunk: 0, member: 1, class: 2, package: 3}
DISTANCE_TIERS = (0, 1, 2, 3)


@dataclass
class Config:
    """
    Top-level configuration for an untangle run.
    """

    repo_path: str = "."
    target: Optional[str] = None
    working_tree: bool = False
    weight_threshold: float = 0.0
    min_similarity: float = 0.8
    max_distance: int = 2
    workers: int = 1
    output_json: bool = False
    verbosity: int = 0

    def validate(self) -> "Config":
        if self.max_distance not in DISTANCE_TIERS:
            raise ConfigError(
                f"max_distance must be one of {DISTANCE_TIERS}, got {self.max_distance}"
            )
        if not 0.0 <= self.min_similarity <= 1.0:
            raise ConfigError(
                f"min_similarity must be within [0, 1], got {self.min_similarity}"
            )
        if self.weight_threshold < 0:
            raise ConfigError(
                f"weight_threshold must be non-negative, got {self.weight_threshold}"
            )
        if self.workers < 1:
            raise ConfigError(f"workers must be at least 1, got {self.workers}")
        if self.working_tree and self.target:
            raise ConfigError("a commit target cannot be combined with --working-tree")
        return self
