"""Text search shared by GREP_FILES and PROJECT_SEARCH.

ripgrep is used when available. The Python searcher walks the tree itself
and prints the same `path:line:col:text` lines with rg's exit codes
(0 match, 1 no match, 2 error), so the tools never see a difference.
"""

from __future__ import annotations

import os
import re
import shutil
from fnmatch import fnmatch
from pathlib import Path
from typing import Iterator

from ..util.fs import resolve_path
from ..util.subprocess import CmdResult, run_cmd
from .base import ToolContext

SEARCH_TIMEOUT_S = 60.0


def rg_argv(query: str, path: str, glob: str | None = None, max_count: int | None = None) -> list[str]:
    argv = ["rg", "--line-number", "--column", "--no-heading", "--color", "never", "--smart-case", "--sort", "path"]
    if max_count is not None:
        argv += ["--max-count", str(max_count)]
    if glob:
        argv += ["--glob", glob]
    argv += ["--", query, path]
    return argv


def pick_backend(preference: str) -> str:
    if preference in ("rg", "python"):
        return preference
    return "rg" if shutil.which("rg") else "python"


def run_search(ctx: ToolContext, query: str, path: str, glob: str | None = None, max_count: int | None = None) -> CmdResult:
    limit = ctx.config.search_max_output_bytes
    if pick_backend(ctx.config.search_backend) == "rg":
        return run_cmd(rg_argv(query, path, glob, max_count), cwd=ctx.cwd, timeout=SEARCH_TIMEOUT_S, max_output_bytes=limit)
    return python_search(Path(ctx.cwd), query, path, glob, max_count, max_output_bytes=limit)


# ---------------------------------------------------------------------------
# Python fallback
# ---------------------------------------------------------------------------

def _compile(query: str) -> re.Pattern[str]:
    flags = 0 if any(ch.isupper() for ch in query) else re.IGNORECASE
    return re.compile(query, flags)


def _glob_matches(rel: str, glob: str) -> bool:
    negate = glob.startswith("!")
    pat = glob[1:] if negate else glob
    target = rel if "/" in pat else os.path.basename(rel)
    hit = fnmatch(target, pat)
    return not hit if negate else hit


def _walk(root: Path, rel: str = "") -> Iterator[str]:
    """Depth-first, name-ordered walk yielding file paths relative to root."""
    try:
        entries = sorted(os.scandir(root / rel if rel else root), key=lambda e: e.name)
    except OSError:
        return
    for entry in entries:
        if entry.name.startswith("."):
            continue
        child = f"{rel}/{entry.name}" if rel else entry.name
        if entry.is_dir(follow_symlinks=False):
            yield from _walk(root, child)
        elif entry.is_file():
            yield child


def _search_file(path: Path, display: str, rx: re.Pattern[str], max_count: int | None, out: list[str]) -> bool:
    try:
        data = path.read_bytes()
    except OSError:
        return False
    if b"\x00" in data[:8192]:
        return False
    lines = data.decode("utf-8", errors="replace").split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    hits = 0
    for no, line in enumerate(lines, start=1):
        m = rx.search(line)
        if m is None:
            continue
        out.append(f"{display}:{no}:{m.start() + 1}:{line}")
        hits += 1
        if max_count is not None and hits >= max_count:
            break
    return hits > 0


def python_search(
    cwd: Path,
    query: str,
    path: str,
    glob: str | None = None,
    max_count: int | None = None,
    *,
    max_output_bytes: int | None = None,
) -> CmdResult:
    try:
        rx = _compile(query)
    except re.error as e:
        return CmdResult(2, "", f"regex parse error: {e}\n")

    target = resolve_path(cwd, path)
    if not target.exists():
        return CmdResult(2, "", f"{path}: No such file or directory\n")

    out: list[str] = []
    matched = False
    if target.is_file():
        matched = _search_file(target, path, rx, max_count, out)
    else:
        size = 0
        for rel in _walk(target):
            if glob and not _glob_matches(rel, glob):
                continue
            display = os.path.join(path, rel)
            start = len(out)
            if _search_file(target / rel, display, rx, max_count, out):
                matched = True
            size += sum(len(line.encode("utf-8", errors="replace")) + 1 for line in out[start:])
            # stop like rg does once killed at the cap
            if max_output_bytes is not None and size > max_output_bytes:
                break

    stdout = "".join(line + "\n" for line in out)
    overflow = max_output_bytes is not None and len(stdout.encode("utf-8", errors="replace")) > max_output_bytes
    return CmdResult(0 if matched else 1, stdout, "", overflow)
