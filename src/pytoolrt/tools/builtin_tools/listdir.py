from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator

from ..base import ToolSpec, ToolResult, ToolContext, ResultText
from ..payload import (
    LIST_DIR_DEFAULT_MAX_ENTRIES,
    LIST_DIR_MAX_ENTRIES,
    clamp_limit,
    decode_payload,
    field_bool,
    field_int,
    field_str,
)
from ...util.fs import resolve_path, entry_kind_label, describe_os_error


@dataclass(frozen=True)
class ListDirArgs:
    path: str
    recursive: bool = False
    max_entries: int = LIST_DIR_DEFAULT_MAX_ENTRIES


def iter_entries(root: Path, recursive: bool, rel: str = "") -> Iterator[tuple[str, str]]:
    """Yield (kind, relative entry) sorted by name; recursion is pre-order.

    Symlinked directories are listed but not entered.
    """
    with os.scandir(root / rel if rel else root) as it:
        entries = sorted(it, key=lambda e: e.name)
    for entry in entries:
        name = f"{rel}/{entry.name}" if rel else entry.name
        try:
            mode = entry.stat(follow_symlinks=False).st_mode
        except OSError:
            yield "other", name
            continue
        kind = entry_kind_label(mode)
        yield kind, name
        if recursive and kind == "dir":
            try:
                yield from iter_entries(root, True, name)
            except OSError:
                # unreadable subdirectory: keep listing its siblings
                continue


@dataclass
class ListDirTool:
    spec: ToolSpec = ToolSpec(
        name="LIST_DIR",
        result_tag="list-dir",
        description="List a directory, optionally recursive.",
        usage="expected plain path or JSON with path, recursive, max_entries",
        permission_key="read",
    )

    def parse(self, payload: str) -> ListDirArgs:
        obj = decode_payload(payload, primary="path")
        return ListDirArgs(
            path=field_str(obj, "path", "dir", default=".") or ".",
            recursive=bool(field_bool(obj, "recursive", "recurse")),
            max_entries=clamp_limit(field_int(obj, "max_entries", "limit"), LIST_DIR_DEFAULT_MAX_ENTRIES, LIST_DIR_MAX_ENTRIES),
        )

    def execute(self, ctx: ToolContext, args: ListDirArgs) -> ToolResult:
        root = resolve_path(Path(ctx.cwd), args.path)
        out = ResultText("list-dir").field("path", args.path)
        if not root.is_dir():
            if not root.exists():
                return out.error("file not found")
            return out.error("not a directory")

        out.field("recursive", "true" if args.recursive else "false")
        out.field("max_entries", args.max_entries)

        count = 0
        truncated = False
        try:
            for kind, name in iter_entries(root, args.recursive):
                if count >= args.max_entries:
                    truncated = True
                    break
                count += 1
                out.line(f"{count}. [{kind}] {name}")
        except OSError as e:
            return out.error(describe_os_error(e))

        if count == 0:
            out.note("no entries")
        if truncated:
            out.note("truncated by max_entries")
        return out.ok()
