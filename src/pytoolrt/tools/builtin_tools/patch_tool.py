from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path

from ..base import ToolSpec, ToolResult, ToolContext, ResultText
from ..payload import trim
from ...patch.engine import apply_patch
from ...patch.models import BEGIN_MARKER, END_MARKER, PatchApplyFailed, PatchError
from ...util.fs import describe_os_error

_PREVIEW_PREFIXES = ("***", "@@", "+", "-", " ")


@dataclass(frozen=True)
class PatchArgs:
    patch: str


def build_preview(patch: str, max_lines: int) -> tuple[list[str], int]:
    """Patch lines worth echoing back, and how many were cut."""
    shown: list[str] = []
    omitted = 0
    for raw in patch.split("\n"):
        line = raw.rstrip("\r")
        if not line.startswith(_PREVIEW_PREFIXES):
            continue
        if len(shown) >= max_lines:
            omitted += 1
            continue
        shown.append(line)
    return shown, omitted


def describe_failure(err: Exception) -> str:
    if isinstance(err, PatchError):
        return str(err)
    if isinstance(err, OSError):
        msg = describe_os_error(err)
        return f"{msg} ({err.filename})" if err.filename else msg
    return str(err)


@dataclass
class PatchTool:
    spec: ToolSpec = ToolSpec(
        name="APPLY_PATCH",
        result_tag="apply-patch",
        description="Apply a *** Begin Patch / *** End Patch document (Add File, Delete File, Update File with @@ hunks).",
        usage="expected *** Begin Patch ... *** End Patch",
        permission_key="edit",
    )

    def parse(self, payload: str) -> PatchArgs:
        return PatchArgs(trim(payload or ""))

    def execute(self, ctx: ToolContext, args: PatchArgs) -> ToolResult:
        out = ResultText("apply-patch")
        text = args.patch
        if not text:
            return out.error("empty patch payload")

        size = len(text.encode("utf-8", errors="surrogateescape"))
        limit = ctx.config.patch_max_bytes
        if size > limit:
            return out.error(f"patch too large ({size} bytes > {limit})")
        if not text.startswith(BEGIN_MARKER) or END_MARKER not in text:
            return out.error(f"invalid patch payload; {self.spec.usage}")

        try:
            stats = apply_patch(text, Path(ctx.cwd))
        except PatchError as e:
            return out.error(str(e))
        except PatchApplyFailed as e:
            out.field("error", describe_failure(e.error))
            done = e.committed.files_changed
            if done:
                out.note(f"{done} earlier operation(s) already applied; no rollback")
            return ToolResult(out.render(), is_error=True)

        out.field("bytes", size)
        out.line(stats.summary())
        out.field("status", "ok")
        shown, omitted = build_preview(text, ctx.config.patch_preview_max_lines)
        if shown:
            out.section("diff_preview", "\n".join(shown))
        if omitted:
            out.note(f"preview truncated ({omitted} patch lines omitted)")
        return out.ok()
