from __future__ import annotations
import re
from dataclasses import dataclass

from ..base import ToolSpec, ToolResult, ToolContext, ResultText
from ..payload import (
    PROJECT_SEARCH_DEFAULT_MAX_FILES,
    PROJECT_SEARCH_DEFAULT_MAX_MATCHES,
    PROJECT_SEARCH_MAX_FILES,
    PROJECT_SEARCH_MAX_MATCHES,
    WHITESPACE,
    clamp_limit,
    decode_payload,
    field_int,
    field_str,
)
from .grep_tool import result_lines, run_search_safely, search_failure

# rg --max-count: hits per file before moving on
PER_FILE_MAX_COUNT = 8

_RG_LINE = re.compile(r"^(.*?):(\d+):(\d+):(.*)$")


@dataclass(frozen=True)
class ProjectSearchArgs:
    query: str
    path: str = "."
    max_files: int = PROJECT_SEARCH_DEFAULT_MAX_FILES
    max_matches: int = PROJECT_SEARCH_DEFAULT_MAX_MATCHES


@dataclass
class FileHits:
    path: str
    hits: int
    first_line: int
    first_col: int
    snippet: str

    def sort_key(self) -> tuple[int, int, str]:
        return (-self.hits, self.first_line, self.path)


def parse_rg_line(line: str) -> tuple[str, int, int, str] | None:
    m = _RG_LINE.match(line)
    if m is None:
        return None
    return m.group(1), int(m.group(2)), int(m.group(3)), m.group(4)


def aggregate(lines: list[str], max_matches: int) -> tuple[list[FileHits], int]:
    """Fold match lines into per-file rows, ordered by hits desc, line asc, path asc.

    Only the first max_matches parseable lines count; the second value is the
    number of parseable lines left out.
    """
    by_path: dict[str, FileHits] = {}
    parsed = 0
    omitted = 0
    for line in lines:
        hit = parse_rg_line(line)
        if hit is None:
            continue
        if parsed >= max_matches:
            omitted += 1
            continue
        parsed += 1
        path, lno, col, text = hit
        row = by_path.get(path)
        if row is None:
            by_path[path] = FileHits(path, 1, lno, col, text)
            continue
        row.hits += 1
        if (lno, col) < (row.first_line, row.first_col):
            row.first_line, row.first_col, row.snippet = lno, col, text
    rows = sorted(by_path.values(), key=FileHits.sort_key)
    return rows, omitted


@dataclass
class ProjectSearchTool:
    spec: ToolSpec = ToolSpec(
        name="PROJECT_SEARCH",
        result_tag="project-search",
        description="Rank files by how often they match a query, with the first hit of each.",
        usage="expected plain query or JSON with query/path/max_files/max_matches",
        permission_key="read",
    )

    def parse(self, payload: str) -> ProjectSearchArgs:
        obj = decode_payload(payload, primary="query")
        return ProjectSearchArgs(
            query=field_str(obj, "query", "q", required=True) or "",
            path=field_str(obj, "path") or ".",
            max_files=clamp_limit(field_int(obj, "max_files", "max_results"), PROJECT_SEARCH_DEFAULT_MAX_FILES, PROJECT_SEARCH_MAX_FILES),
            max_matches=clamp_limit(field_int(obj, "max_matches", "max_hits"), PROJECT_SEARCH_DEFAULT_MAX_MATCHES, PROJECT_SEARCH_MAX_MATCHES),
        )

    def execute(self, ctx: ToolContext, args: ProjectSearchArgs) -> ToolResult:
        if not args.query:
            return ResultText("project-search").error("empty query")

        out = ResultText("project-search").field("query", args.query).field("path", args.path)
        res = run_search_safely(ctx, out, query=args.query, path=args.path, max_count=PER_FILE_MAX_COUNT)
        if isinstance(res, ToolResult):
            return res

        if res.returncode == 1:
            out.field("files", 0).note("no matches")
            return out.ok()
        failure = search_failure(res, ctx.config.search_max_output_bytes)
        if failure:
            return out.error(failure)

        rows, omitted_matches = aggregate(result_lines(res.stdout), args.max_matches)
        if not rows:
            out.field("files", 0).note("no parseable matches")
            return out.ok()

        out.field("files", len(rows))
        shown = rows[: args.max_files]
        for i, row in enumerate(shown, start=1):
            out.line(f"{i}. {row.path} (hits:{row.hits})")
            snippet = row.snippet.strip(WHITESPACE)
            out.line(f"   first: {row.first_line}:{row.first_col}: {snippet}")
        if len(rows) > len(shown):
            out.note(f"omitted {len(rows) - len(shown)} files")
        if omitted_matches:
            out.note(f"omitted {omitted_matches} matches beyond max_matches:{args.max_matches}")
        return out.ok()
