"""
Rendering of group maps for the terminal or for other tools.
"""

from __future__ import annotations

import json
from typing import Dict, List

from .domain import DiffFile, Group, hunk_unique_name


def _hunk_locations(diff_files: List[DiffFile]) -> Dict[str, str]:
    locations: Dict[str, str] = {}
    for diff_file in diff_files:
        for hunk in diff_file.hunks:
            if hunk.current_lines:
                where = f"+{hunk.current_start_line},{len(hunk.current_lines)}"
            else:
                where = f"-{hunk.base_start_line},{len(hunk.base_lines)}"
            locations[hunk_unique_name(diff_file.index, hunk.index)] = f"{diff_file.display_path} {where}"
    return locations


def render_text(groups: Dict[str, Group], diff_files: List[DiffFile]) -> str:
    if not groups:
        return "No changes to untangle."

    locations = _hunk_locations(diff_files)
    out: List[str] = []
    for group in groups.values():
        out.append(f"{group.id}: {group.description}")
        for hunk_id in group.hunk_ids:
            out.append(f"  {hunk_id:<8} {locations.get(hunk_id, '')}".rstrip())
    return "\n".join(out)


def render_json(groups: Dict[str, Group]) -> str:
    payload = {
        group_id: {"hunks": list(group.hunk_ids), "description": group.description}
        for group_id, group in groups.items()
    }
    return json.dumps(payload, indent=2)
