"""Line-level diff between two plain-text document versions.

The edit script comes from Myers' greedy shortest-edit-script algorithm,
which runs in O((N + M) * D) time for inputs of N and M lines that differ by
D edits. Near-identical revisions of long policies therefore diff quickly
even though a naive LCS table would be quadratic.

Texts are split on ``"\\n"`` only, so joining the emitted lines back with
``"\\n"`` reproduces each input exactly (trailing newline and ``"\\r"``
included).
"""

from __future__ import annotations

import time
from typing import List, Sequence, Tuple

from regsync.errors import InvalidInputError
from regsync.metrics.observability import PipelineMetrics, get_logger
from regsync.models import DiffLine, DiffResult, DiffStats

_logger = get_logger("diff")

# (op, old_index, new_index); op is "=", "-" or "+"
_Edit = Tuple[str, int, int]

# Beyond this many line edits the differing middle is reported as one block
DEFAULT_MAX_EDIT_DISTANCE = 1000


def split_lines(text: str) -> list[str]:
    """Split ``text`` into lines; the empty string has no lines."""

    if not text:
        return []
    return text.split("\n")


def _shortest_edit_trace(old: Sequence[str], new: Sequence[str], max_edits: int) -> list[list[int]] | None:
    """Run the forward Myers pass, keeping the frontier window of each round.

    ``trace[d]`` holds the furthest-reaching x for diagonals ``-d-1 .. d+1``
    as they stood before round ``d``. Returns ``None`` when no script of at
    most ``max_edits`` edits exists; the trace grows with the square of the
    edit count, so the bound also caps memory.
    """

    n, m = len(old), len(new)
    offset = n + m + 1
    frontier = [0] * (2 * offset + 1)
    trace: list[list[int]] = []
    for d in range(min(n + m, max_edits) + 1):
        trace.append(frontier[offset - d - 1 : offset + d + 2])
        for k in range(-d, d + 1, 2):
            if k == -d or (k != d and frontier[offset + k - 1] < frontier[offset + k + 1]):
                x = frontier[offset + k + 1]
            else:
                x = frontier[offset + k - 1] + 1
            y = x - k
            while x < n and y < m and old[x] == new[y]:
                x += 1
                y += 1
            frontier[offset + k] = x
            if x >= n and y >= m:
                return trace
    return None


def _backtrack(old: Sequence[str], new: Sequence[str], trace: list[list[int]]) -> list[_Edit]:
    x, y = len(old), len(new)
    edits: list[_Edit] = []
    for d in range(len(trace) - 1, -1, -1):
        window = trace[d]

        def reached(diagonal: int) -> int:
            return window[diagonal + d + 1]

        k = x - y
        if k == -d or (k != d and reached(k - 1) < reached(k + 1)):
            prev_k = k + 1
        else:
            prev_k = k - 1
        prev_x = reached(prev_k)
        prev_y = prev_x - prev_k
        while x > prev_x and y > prev_y:
            x -= 1
            y -= 1
            edits.append(("=", x, y))
        if d > 0:
            if x == prev_x:
                edits.append(("+", x, y - 1))
            else:
                edits.append(("-", x - 1, y))
        x, y = prev_x, prev_y
    edits.reverse()
    return edits


def _edit_script(old: Sequence[str], new: Sequence[str], max_edits: int) -> tuple[list[_Edit], bool]:
    """Return the edit script and whether the middle fell back to one block."""

    prefix = 0
    limit = min(len(old), len(new))
    while prefix < limit and old[prefix] == new[prefix]:
        prefix += 1
    suffix = 0
    while suffix < limit - prefix and old[len(old) - 1 - suffix] == new[len(new) - 1 - suffix]:
        suffix += 1

    edits: list[_Edit] = [("=", index, index) for index in range(prefix)]
    old_middle = old[prefix : len(old) - suffix]
    new_middle = new[prefix : len(new) - suffix]
    trace = _shortest_edit_trace(old_middle, new_middle, max_edits) if old_middle and new_middle else None
    if trace is not None:
        for op, old_index, new_index in _backtrack(old_middle, new_middle, trace):
            edits.append((op, old_index + prefix, new_index + prefix))
    else:
        # Replace the whole middle; still reconstructs both sides
        edits.extend(("-", prefix + index, prefix) for index in range(len(old_middle)))
        edits.extend(("+", len(old) - suffix, prefix + index) for index in range(len(new_middle)))
    edits.extend(
        ("=", len(old) - suffix + index, len(new) - suffix + index) for index in range(suffix)
    )
    return edits, bool(old_middle and new_middle and trace is None)


def _emit(old: Sequence[str], new: Sequence[str], edits: Sequence[_Edit]) -> List[DiffLine]:
    lines: List[DiffLine] = []
    removed: List[DiffLine] = []
    added: List[DiffLine] = []

    def flush() -> None:
        # Removals lead within a hunk
        lines.extend(removed)
        lines.extend(added)
        removed.clear()
        added.clear()

    for op, old_index, new_index in edits:
        if op == "=":
            flush()
            lines.append(DiffLine(type="unchanged", content=new[new_index], line_number=new_index + 1))
        elif op == "-":
            removed.append(DiffLine(type="removed", content=old[old_index], line_number=old_index + 1))
        else:
            added.append(DiffLine(type="added", content=new[new_index], line_number=new_index + 1))
    flush()
    return lines


def diff(old_text: str, new_text: str, *, max_edit_distance: int | None = DEFAULT_MAX_EDIT_DISTANCE) -> DiffResult:
    """Compute a reconstructible line diff of ``old_text`` against ``new_text``.

    The edit script is minimal whenever the texts differ by at most
    ``max_edit_distance`` line edits (after trimming the common prefix and
    suffix). Past that bound, the differing middle is reported as one block
    of removed lines followed by one block of added lines, which keeps the
    cost of near-total rewrites bounded. ``None`` disables the bound.
    """

    if not isinstance(old_text, str) or not isinstance(new_text, str):
        raise InvalidInputError("diff() expects two str values")
    if max_edit_distance is not None and max_edit_distance < 0:
        raise InvalidInputError("max_edit_distance must not be negative")
    start = time.perf_counter()
    old_lines = split_lines(old_text)
    new_lines = split_lines(new_text)
    bound = len(old_lines) + len(new_lines) if max_edit_distance is None else max_edit_distance
    edits, block_fallback = _edit_script(old_lines, new_lines, bound)
    lines = _emit(old_lines, new_lines, edits)
    stats = DiffStats.from_lines(lines)

    duration = time.perf_counter() - start
    PipelineMetrics.observe_diff(duration, stats.total_changes)
    if block_fallback:
        _logger.warning("diff.edit_bound_exceeded", max_edit_distance=bound)
    _logger.info(
        "diff.complete",
        old_line_count=len(old_lines),
        new_line_count=len(new_lines),
        added_lines=stats.added_lines,
        removed_lines=stats.removed_lines,
        duration_seconds=duration,
    )
    return DiffResult(stats=stats, lines=tuple(lines), old_text=old_text, new_text=new_text)


__all__ = ["DEFAULT_MAX_EDIT_DISTANCE", "diff", "split_lines"]
