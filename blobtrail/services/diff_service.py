"""Line-oriented diff between two stored snapshots.

One computation drives both renderings: ``DiffResult.lines`` is the unified
sequence and ``DiffResult.split()`` pairs it into side-by-side rows.
"""

from __future__ import annotations

import difflib
import re
from dataclasses import dataclass, field
from enum import StrEnum

_LINE_RE = re.compile(r"[^\n]*\n|[^\n]+")


class LineType(StrEnum):
    CONTEXT = "context"
    ADDED = "added"
    REMOVED = "removed"


class EditOp(StrEnum):
    EQUAL = "equal"
    DELETE = "delete"
    INSERT = "insert"


@dataclass(frozen=True)
class Edit:
    """A run of lines that are kept, deleted from the old side or inserted on the new side."""

    op: EditOp
    lines: tuple[str, ...]


@dataclass(frozen=True)
class DiffLine:
    """One row of the unified projection. Line numbers are 1-based and side-local."""

    type: LineType
    content: str
    old_line_number: int | None = None
    new_line_number: int | None = None


@dataclass(frozen=True)
class DiffStats:
    lines_added: int = 0
    lines_removed: int = 0
    # min(added, removed): an approximation, not pairwise line matching
    lines_changed: int = 0


@dataclass(frozen=True)
class SplitRow:
    """A side-by-side row; ``None`` marks an empty cell."""

    left: DiffLine | None
    right: DiffLine | None


@dataclass(frozen=True)
class DiffResult:
    has_changes: bool
    lines: list[DiffLine] = field(default_factory=list)
    stats: DiffStats = field(default_factory=DiffStats)
    unified_diff: str = ""

    def unified(self) -> list[DiffLine]:
        return list(self.lines)

    def split(self) -> list[SplitRow]:
        """Pair the line sequence into rows for a side-by-side view.

        Context lines fill both cells. A removed line directly followed by an
        added line shares one row; any other change gets an empty opposite cell.
        """
        rows: list[SplitRow] = []
        i = 0
        while i < len(self.lines):
            line = self.lines[i]
            if line.type is LineType.CONTEXT:
                rows.append(SplitRow(left=line, right=line))
            elif line.type is LineType.REMOVED:
                following = self.lines[i + 1] if i + 1 < len(self.lines) else None
                if following is not None and following.type is LineType.ADDED:
                    rows.append(SplitRow(left=line, right=following))
                    i += 1
                else:
                    rows.append(SplitRow(left=line, right=None))
            else:
                rows.append(SplitRow(left=None, right=line))
            i += 1
        return rows


def split_lines(text: str) -> list[str]:
    """Split ``text`` into lines, keeping each line's terminator."""
    return _LINE_RE.findall(text)


def compute_edit_script(old_lines: list[str], new_lines: list[str]) -> list[Edit]:
    """Compute an edit script turning ``old_lines`` into ``new_lines``.

    The matcher always sees the inputs in the same order, so the script for
    (b, a) is the exact mirror of the script for (a, b).
    """
    swapped = new_lines < old_lines
    first, second = (new_lines, old_lines) if swapped else (old_lines, new_lines)
    matcher = difflib.SequenceMatcher(a=first, b=second, autojunk=False)

    edits: list[Edit] = []
    for tag, i1, i2, j1, j2 in matcher.get_opcodes():
        removed = tuple(first[i1:i2])
        added = tuple(second[j1:j2])
        if swapped:
            removed, added = added, removed
        if tag == "equal":
            edits.append(Edit(EditOp.EQUAL, removed))
            continue
        if removed:
            edits.append(Edit(EditOp.DELETE, removed))
        if added:
            edits.append(Edit(EditOp.INSERT, added))
    return edits


def _blocks(edits: list[Edit]) -> list[list[tuple[str, ...]]]:
    """Group edits into ``[equal_lines]`` and ``[deleted_lines, inserted_lines]`` blocks."""
    blocks: list[list[tuple[str, ...]]] = []
    for edit in edits:
        if edit.op is EditOp.EQUAL:
            if blocks and len(blocks[-1]) == 1:
                blocks[-1] = [blocks[-1][0] + edit.lines]
            else:
                blocks.append([edit.lines])
            continue
        if not blocks or len(blocks[-1]) == 1:
            blocks.append([(), ()])
        deleted, inserted = blocks[-1]
        if edit.op is EditOp.DELETE:
            blocks[-1] = [deleted + edit.lines, inserted]
        else:
            blocks[-1] = [deleted, inserted + edit.lines]
    return [block for block in blocks if any(block)]


def cleanup_semantic(edits: list[Edit]) -> list[Edit]:
    """Fold short equalities sandwiched between changes into one larger change.

    An equality is absorbed when it is no longer than the bigger side of the
    change before it and of the change after it. Runs until nothing folds.
    """
    blocks = _blocks(edits)
    changed = True
    while changed:
        changed = False
        for i in range(1, len(blocks) - 1):
            before, equal, after = blocks[i - 1], blocks[i], blocks[i + 1]
            if len(equal) != 1 or len(before) != 2 or len(after) != 2:
                continue
            size = len(equal[0])
            if size <= max(map(len, before)) and size <= max(map(len, after)):
                blocks[i - 1 : i + 2] = [
                    [before[0] + equal[0] + after[0], before[1] + equal[0] + after[1]]
                ]
                changed = True
                break

    result: list[Edit] = []
    for block in blocks:
        if len(block) == 1:
            result.append(Edit(EditOp.EQUAL, block[0]))
            continue
        deleted, inserted = block
        if deleted:
            result.append(Edit(EditOp.DELETE, deleted))
        if inserted:
            result.append(Edit(EditOp.INSERT, inserted))
    return result


def _strip_terminator(line: str) -> str:
    return line.removesuffix("\n").removesuffix("\r")


def _expand(edits: list[Edit]) -> tuple[list[DiffLine], DiffStats]:
    lines: list[DiffLine] = []
    old_no = new_no = 1
    added = removed = 0
    for edit in edits:
        for raw in edit.lines:
            content = _strip_terminator(raw)
            if edit.op is EditOp.EQUAL:
                lines.append(DiffLine(LineType.CONTEXT, content, old_no, new_no))
                old_no += 1
                new_no += 1
            elif edit.op is EditOp.DELETE:
                lines.append(DiffLine(LineType.REMOVED, content, old_line_number=old_no))
                old_no += 1
                removed += 1
            else:
                lines.append(DiffLine(LineType.ADDED, content, new_line_number=new_no))
                new_no += 1
                added += 1
    stats = DiffStats(lines_added=added, lines_removed=removed, lines_changed=min(added, removed))
    return lines, stats


_PREFIX = {LineType.CONTEXT: " ", LineType.ADDED: "+", LineType.REMOVED: "-"}


def render_unified(lines: list[DiffLine], old_label: str = "old", new_label: str = "new") -> str:
    """Render a plain-text unified diff of ``lines``."""
    out = [f"--- {old_label}\n", f"+++ {new_label}\n"]
    out.extend(f"{_PREFIX[line.type]}{line.content}\n" for line in lines)
    return "".join(out)


def diff(
    old_text: str, new_text: str, *, old_label: str = "old", new_label: str = "new"
) -> DiffResult:
    """Compare two texts line by line."""
    if old_text == new_text:
        return DiffResult(has_changes=False)

    edits = cleanup_semantic(compute_edit_script(split_lines(old_text), split_lines(new_text)))
    lines, stats = _expand(edits)
    return DiffResult(
        has_changes=True,
        lines=lines,
        stats=stats,
        unified_diff=render_unified(lines, old_label, new_label),
    )


def decode_content(data: bytes) -> str:
    """Decode stored bytes for display. Invalid UTF-8 bytes become ``\\xNN`` escapes."""
    return data.decode("utf-8", errors="backslashreplace")


def _escaped(data: bytes) -> str:
    # Doubling literal backslashes keeps the decoding one-to-one.
    return data.replace(b"\\", b"\\\\").decode("utf-8", errors="backslashreplace")


def _decode_pair(old: bytes, new: bytes) -> tuple[str, str]:
    """Decode two snapshots so that different bytes never yield the same text."""
    try:
        return old.decode("utf-8"), new.decode("utf-8")
    except UnicodeDecodeError:
        return _escaped(old), _escaped(new)


def compare_versions(old: bytes, new: bytes, old_label: str, new_label: str) -> DiffResult:
    """Diff two stored snapshots, labelling the unified text headers."""
    if old == new:
        return DiffResult(has_changes=False)
    old_text, new_text = _decode_pair(old, new)
    return diff(old_text, new_text, old_label=old_label, new_label=new_label)
