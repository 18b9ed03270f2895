from __future__ import annotations
import subprocess
from dataclasses import dataclass

from ..base import ToolSpec, ToolResult, ToolContext, ResultText
from ..payload import (
    GREP_FILES_DEFAULT_MAX_MATCHES,
    GREP_FILES_MAX_MATCHES,
    clamp_limit,
    decode_payload,
    field_int,
    field_str,
)
from ..search import run_search
from ...util.fs import describe_os_error
from ...util.subprocess import CmdResult


@dataclass(frozen=True)
class GrepArgs:
    query: str
    path: str = "."
    glob: str | None = None
    max_matches: int = GREP_FILES_DEFAULT_MAX_MATCHES


def search_failure(res: CmdResult, limit: int) -> str | None:
    """Error text for a search that neither matched nor cleanly found nothing."""
    if res.overflow:
        return f"search output exceeds {limit} bytes; narrow the path or glob"
    if res.returncode < 0:
        return f"rg terminated by signal {-res.returncode}"
    if res.returncode not in (0, 1):
        stderr = res.stderr.strip(" \t\r\n")
        return f"rg failed ({res.returncode}) {stderr}" if stderr else f"rg failed ({res.returncode})"
    return None


def result_lines(stdout: str) -> list[str]:
    lines = []
    for raw in stdout.split("\n"):
        line = raw.rstrip("\r")
        if line:
            lines.append(line)
    return lines


def run_search_safely(ctx: ToolContext, out: ResultText, *, query: str, path: str,
                      glob: str | None = None, max_count: int | None = None) -> CmdResult | ToolResult:
    try:
        return run_search(ctx, query, path, glob, max_count)
    except subprocess.TimeoutExpired:
        return out.error("search timed out")
    except OSError as e:
        return out.error(f"{describe_os_error(e)} (rg)")


@dataclass
class GrepTool:
    spec: ToolSpec = ToolSpec(
        name="GREP_FILES",
        result_tag="grep-files",
        description="Search file contents; prints path:line:col:text per match.",
        usage="expected plain query or JSON with query/path/glob/max_matches",
        permission_key="read",
    )

    def parse(self, payload: str) -> GrepArgs:
        obj = decode_payload(payload, primary="query")
        return GrepArgs(
            query=field_str(obj, "query", "pattern", required=True) or "",
            path=field_str(obj, "path", "dir") or ".",
            glob=field_str(obj, "glob") or None,
            max_matches=clamp_limit(field_int(obj, "max_matches", "limit"), GREP_FILES_DEFAULT_MAX_MATCHES, GREP_FILES_MAX_MATCHES),
        )

    def execute(self, ctx: ToolContext, args: GrepArgs) -> ToolResult:
        if not args.query:
            return ResultText("grep-files").error("empty query")

        out = ResultText("grep-files").field("query", args.query).field("path", args.path)
        if args.glob:
            out.field("glob", args.glob)

        res = run_search_safely(ctx, out, query=args.query, path=args.path, glob=args.glob)
        if isinstance(res, ToolResult):
            return res

        if res.returncode == 1:
            out.field("matches", 0).note("no matches")
            return out.ok()
        failure = search_failure(res, ctx.config.search_max_output_bytes)
        if failure:
            return out.error(failure)

        lines = result_lines(res.stdout)
        for line in lines[: args.max_matches]:
            out.line(line)
        out.field("matches", len(lines))
        hidden = len(lines) - min(len(lines), args.max_matches)
        if hidden > 0:
            out.note(f"truncated output ({hidden} hidden)")
        return out.ok()
