from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path

from ..base import ToolSpec, ToolResult, ToolContext, ResultText
from ..payload import (
    READ_FILE_DEFAULT_MAX_BYTES,
    READ_FILE_MAX_BYTES,
    clamp_limit,
    decode_payload,
    field_int,
    field_str,
)
from ...util.fs import resolve_path, looks_binary, describe_os_error


@dataclass(frozen=True)
class ReadFileArgs:
    path: str
    max_bytes: int = READ_FILE_DEFAULT_MAX_BYTES


@dataclass
class ReadFileTool:
    spec: ToolSpec = ToolSpec(
        name="READ_FILE",
        result_tag="read-file",
        description="Read a file up to max_bytes; binary files report size only.",
        usage="expected plain path or JSON with path and optional max_bytes",
        permission_key="read",
    )

    def parse(self, payload: str) -> ReadFileArgs:
        obj = decode_payload(payload, primary="path")
        return ReadFileArgs(
            path=field_str(obj, "path", "file", required=True) or "",
            max_bytes=clamp_limit(field_int(obj, "max_bytes", "limit"), READ_FILE_DEFAULT_MAX_BYTES, READ_FILE_MAX_BYTES),
        )

    def execute(self, ctx: ToolContext, args: ReadFileArgs) -> ToolResult:
        p = resolve_path(Path(ctx.cwd), args.path)
        out = ResultText("read-file").field("path", args.path)
        try:
            with p.open("rb") as f:
                # one extra byte tells "exactly max_bytes" from "larger"
                content = f.read(args.max_bytes + 1)
        except OSError as e:
            return out.error(describe_os_error(e))

        if len(content) > args.max_bytes:
            return out.error(f"file too big (max_bytes:{args.max_bytes})")

        out.field("bytes", len(content))
        if looks_binary(content):
            out.note("file appears binary; content omitted")
            return out.ok()

        out.section("content", content.decode("utf-8", errors="replace"))
        return out.ok()
