"""Unified-diff helpers shared by ingestion, the graph builder and the analyzer."""

from __future__ import annotations

import re

_HUNK_RE = re.compile(r"^@@ -\d+(?:,\d+)? \+(\d+)(?:,(\d+))? @@")
_DIFF_GIT_RE = re.compile(r"^diff --git a/(.+?) b/(.+)$")


class MalformedPatch(ValueError):
    pass


def _hunk_start(header: str) -> int:
    match = _HUNK_RE.match(header)
    if match is None:
        raise MalformedPatch(f"Unparseable hunk header: {header!r}")
    return int(match.group(1))


def changed_lines(patch_text: str) -> tuple[list[str], list[str]]:
    """Return (added, removed) line bodies of a patch, without the +/- marker.

    Raises MalformedPatch when a hunk header cannot be parsed.
    """
    added: list[str] = []
    removed: list[str] = []
    for line in patch_text.splitlines():
        if line.startswith("@@"):
            _hunk_start(line)
        elif line.startswith("+++") or line.startswith("---"):
            continue
        elif line.startswith("+"):
            added.append(line[1:])
        elif line.startswith("-"):
            removed.append(line[1:])
    return added, removed


def new_side_lines(patch_text: str) -> list[str]:
    """Added and context lines: what the patch shows of the new file."""
    lines = []
    for line in patch_text.splitlines():
        if line.startswith("@@") or line.startswith("+++") or line.startswith("---"):
            continue
        if line.startswith("-"):
            continue
        lines.append(line[1:] if line[:1] in ("+", " ") else line)
    return lines


def get_patch_line_content(patch_text: str, target_line: int) -> str:
    """Return the source content of a specific new-file line number from a patch."""
    file_line: int | None = None
    for line in patch_text.splitlines():
        if line.startswith("@@"):
            try:
                file_line = _hunk_start(line)
            except MalformedPatch:
                file_line = None
            continue
        if line.startswith("-") and not line.startswith("---"):
            continue
        if file_line is not None:
            if file_line == target_line:
                return line[1:] if line and line[0] in ("+", " ") else line
            file_line += 1
    return ""


def reviewable_lines(patch_text: str) -> set[int]:
    """New-file line numbers a finding may point at (added or context lines)."""
    lines: set[int] = set()
    file_line: int | None = None
    for line in patch_text.splitlines():
        if line.startswith("@@"):
            try:
                file_line = _hunk_start(line)
            except MalformedPatch:
                file_line = None
            continue
        if line.startswith("-") and not line.startswith("---"):
            continue
        if file_line is not None:
            lines.add(file_line)
            file_line += 1
    return lines


def split_unified_diff(diff_text: str) -> dict[str, str]:
    """Split a multi-file unified diff into {path: patch}, preserving file order.

    The returned patch for each file starts at its first hunk header, which
    is the same shape the GitHub files API returns in ``file.patch``.
    """
    files: dict[str, list[str]] = {}
    current: str | None = None
    in_hunks = False

    for line in diff_text.splitlines():
        header = _DIFF_GIT_RE.match(line)
        if header:
            current = header.group(2)
            files.setdefault(current, [])
            in_hunks = False
            continue
        if current is None:
            continue
        if line.startswith("+++ "):
            target = line[4:].strip()
            if target.startswith("b/"):
                # Renames: the +++ line carries the authoritative new path.
                renamed = target[2:]
                if renamed != current:
                    files[renamed] = files.pop(current)
                    current = renamed
            continue
        if line.startswith("@@"):
            in_hunks = True
        if in_hunks:
            files[current].append(line)

    return {path: "\n".join(lines) for path, lines in files.items()}
