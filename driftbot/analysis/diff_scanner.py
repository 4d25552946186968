"""Walk a unified-diff patch and track line numbers in the resulting file."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterator, Literal

HUNK_HEADER = re.compile(r"^@@ -\d+(?:,\d+)? \+(\d+)")

LineKind = Literal["added", "removed", "context"]


@dataclass(frozen=True, slots=True)
class DiffLine:
    kind: LineKind
    target_line: int | None
    content: str


def scan_patch(patch: str) -> Iterator[DiffLine]:
    """Yield every non-header line of ``patch`` with its target-file line number.

    A hunk header resets the counter to ``new_start - 1``. Added and context
    lines advance it; removed lines do not exist in the target file and carry
    ``target_line=None``.
    """

    current_line = 0
    for raw in patch.split("\n"):
        header = HUNK_HEADER.match(raw)
        if header:
            current_line = int(header.group(1)) - 1
            continue

        if raw.startswith("+"):
            current_line += 1
            yield DiffLine("added", current_line, raw[1:])
        elif raw.startswith("-"):
            yield DiffLine("removed", None, raw[1:])
        else:
            current_line += 1
            yield DiffLine("context", current_line, raw[1:] if raw.startswith(" ") else raw)


def iter_added_lines(patch: str) -> Iterator[tuple[int, str]]:
    """Yield ``(line_number, content)`` for each added line, in file order."""

    for line in scan_patch(patch):
        if line.kind == "added":
            yield line.target_line, line.content
