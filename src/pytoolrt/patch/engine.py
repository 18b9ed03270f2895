"""Parser and applier for the `*** Begin Patch` edit format.

Hunks carry no line numbers. Each one is located by searching its old lines
(context + removed) verbatim in the source, starting where the previous hunk
ended, so hunks must appear in file order.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Sequence

from ..util.fs import lexists, read_text, resolve_path, write_text
from .models import (
    ADD_HEADER,
    BEGIN_MARKER,
    DELETE_HEADER,
    END_MARKER,
    MOVE_HEADER,
    UPDATE_HEADER,
    AddFile,
    AddTargetExists,
    ApplyStats,
    DeleteFile,
    DeleteTargetMissing,
    EmptyPatchOperations,
    Hunk,
    InvalidAddFileLine,
    InvalidPatchHeader,
    InvalidPatchPath,
    InvalidUpdateLine,
    MissingBeginPatch,
    MissingEndPatch,
    Operation,
    PatchApplyFailed,
    PatchContextNotFound,
    PatchDocument,
    PatchLine,
    UpdateFile,
    UpdateTargetMissing,
)

_PREFIX_KIND = {" ": "context", "+": "add", "-": "remove"}


def split_lines(text: str) -> tuple[list[str], bool]:
    """Split on LF, dropping one trailing CR per line.

    Returns (lines, had_trailing_newline); a final newline does not produce an
    empty last line.
    """
    trailing = text.endswith("\n")
    if not text:
        return [], False
    parts = text.split("\n")
    if trailing:
        parts.pop()
    return [p[:-1] if p.endswith("\r") else p for p in parts], trailing


def join_lines(lines: Sequence[str], trailing_newline: bool) -> str:
    out = "\n".join(lines)
    if trailing_newline and lines:
        out += "\n"
    return out


def _header_path(line: str, header: str) -> str:
    path = line[len(header):].strip(" \t")
    if not path:
        raise InvalidPatchPath()
    return path


def parse_patch(text: str) -> PatchDocument:
    lines, _ = split_lines(text.strip(" \t\r\n"))
    if not lines or lines[0] != BEGIN_MARKER:
        raise MissingBeginPatch()

    ops: list[Operation] = []
    i = 1
    saw_end = False
    while i < len(lines):
        line = lines[i]
        if line == END_MARKER:
            saw_end = True
            break

        if line.startswith(ADD_HEADER):
            add = AddFile(_header_path(line, ADD_HEADER))
            i += 1
            while i < len(lines) and not lines[i].startswith("*** "):
                body = lines[i]
                if not body.startswith("+"):
                    raise InvalidAddFileLine(add.path)
                add.lines.append(body[1:])
                i += 1
            ops.append(add)
            continue

        if line.startswith(DELETE_HEADER):
            ops.append(DeleteFile(_header_path(line, DELETE_HEADER)))
            i += 1
            continue

        if line.startswith(UPDATE_HEADER):
            upd = UpdateFile(_header_path(line, UPDATE_HEADER))
            i += 1
            if i < len(lines) and lines[i].startswith(MOVE_HEADER):
                upd.move_to = _header_path(lines[i], MOVE_HEADER)
                i += 1

            hunk = Hunk()
            while i < len(lines) and not lines[i].startswith("*** "):
                change = lines[i]
                i += 1
                if change.startswith("@@"):
                    if hunk.lines:
                        upd.hunks.append(hunk)
                        hunk = Hunk()
                    continue
                kind = _PREFIX_KIND.get(change[:1])
                if kind is None:
                    raise InvalidUpdateLine(upd.path)
                hunk.lines.append(PatchLine(kind, change[1:]))  # type: ignore[arg-type]
            if hunk.lines:
                upd.hunks.append(hunk)

            if upd.move_to is None and not upd.hunks:
                raise InvalidUpdateLine(upd.path)
            ops.append(upd)
            continue

        raise InvalidPatchHeader()

    if not saw_end:
        raise MissingEndPatch()
    if not ops:
        raise EmptyPatchOperations()
    return PatchDocument(ops)


def find_subsequence(haystack: Sequence[str], needle: Sequence[str], start: int = 0) -> int | None:
    """Index of the first contiguous occurrence of needle at or after start."""
    n = len(needle)
    if n == 0:
        return start
    last = len(haystack) - n
    first = needle[0]
    for i in range(start, last + 1):
        if haystack[i] == first and list(haystack[i:i + n]) == list(needle):
            return i
    return None


def apply_hunks(source: list[str], hunks: Sequence[Hunk], path: str = "") -> list[str]:
    out: list[str] = []
    cursor = 0
    for hunk in hunks:
        old, new = hunk.patterns()
        if not old:
            # pure insertion at the cursor
            out.extend(new)
            continue
        at = find_subsequence(source, old, cursor)
        if at is None:
            raise PatchContextNotFound(path or None)
        out.extend(source[cursor:at])
        out.extend(new)
        cursor = at + len(old)
    out.extend(source[cursor:])
    return out


def _apply_add(root: Path, op: AddFile) -> None:
    target = resolve_path(root, op.path)
    if lexists(target):
        raise AddTargetExists(op.path)
    write_text(target, join_lines(op.lines, True))


def _apply_delete(root: Path, op: DeleteFile) -> None:
    target = resolve_path(root, op.path)
    try:
        target.unlink()
    except FileNotFoundError as e:
        raise DeleteTargetMissing(op.path) from e


def _apply_update(root: Path, op: UpdateFile) -> bool:
    source_path = resolve_path(root, op.path)
    try:
        source = read_text(source_path)
    except FileNotFoundError as e:
        raise UpdateTargetMissing(op.path) from e

    if op.hunks:
        lines, trailing = split_lines(source)
        updated = join_lines(apply_hunks(lines, op.hunks, op.path), trailing)
    else:
        updated = source

    target = resolve_path(root, op.move_to) if op.move_to is not None else source_path
    write_text(target, updated)
    # `Move to: ./a.txt` names the file being updated
    moved = op.move_to is not None and not os.path.samefile(source_path, target)
    if moved:
        source_path.unlink()
    return moved


def apply_document(doc: PatchDocument, root: Path) -> ApplyStats:
    """Apply operations in order.

    The first failure raises PatchApplyFailed carrying the stats of the
    operations that were already written; those are not rolled back.
    """
    stats = ApplyStats(operations=len(doc.operations))
    for op in doc.operations:
        try:
            if isinstance(op, AddFile):
                _apply_add(root, op)
                stats.added += 1
            elif isinstance(op, DeleteFile):
                _apply_delete(root, op)
                stats.deleted += 1
            else:
                if _apply_update(root, op):
                    stats.moved += 1
                stats.updated += 1
        except (PatchContextNotFound, AddTargetExists, DeleteTargetMissing, UpdateTargetMissing, OSError) as e:
            raise PatchApplyFailed(e, stats) from e
        stats.files_changed += 1
    return stats


def apply_patch(text: str, root: Path) -> ApplyStats:
    """Parse then apply. Parse errors raise before anything is written."""
    return apply_document(parse_patch(text), root)
