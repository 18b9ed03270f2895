from __future__ import annotations
import subprocess
from dataclasses import dataclass

from ..base import ToolSpec, ToolResult, ToolContext, ResultText
from ..payload import decode_payload, field_str
from ..permissions import CommandRejected, parse_read_command
from ...util.fs import describe_os_error
from ...util.subprocess import run_cmd, describe_returncode


def overflow_hint(binary: str) -> str:
    if binary in ("rg", "grep"):
        return 'narrow the search path/glob and rerun READ (example: `rg -n "pattern" src/main.py`).'
    if binary == "cat":
        return "read a smaller slice with head/tail/sed (example: `sed -n '1,200p' <file>`)."
    return "rerun READ with a narrower command (smaller path/scope) to keep output short."


def append_streams(out: ResultText, stdout: str, stderr: str) -> None:
    if stdout:
        out.section("stdout", stdout)
    if stderr:
        out.section("stderr", stderr)
    if not stdout and not stderr:
        out.section("stdout", "(no output)")


@dataclass(frozen=True)
class ReadArgs:
    command: str


@dataclass
class ReadTool:
    spec: ToolSpec = ToolSpec(
        name="READ",
        result_tag="read",
        description="Run an allowlisted read-only command (rg, grep, ls, cat, find, head, tail, sed, wc, stat, pwd, git status/diff/show/log/rev-parse/ls-files).",
        usage="expected plain command or JSON with command",
        permission_key="read",
    )

    def parse(self, payload: str) -> ReadArgs:
        obj = decode_payload(payload, primary="command")
        return ReadArgs(field_str(obj, "command", "cmd", required=True) or "")

    def execute(self, ctx: ToolContext, args: ReadArgs) -> ToolResult:
        out = ResultText("read").field("command", args.command)
        try:
            argv = parse_read_command(args.command)
        except CommandRejected as e:
            return out.error(str(e))

        limit = ctx.config.read_max_output_bytes
        try:
            res = run_cmd(argv, cwd=ctx.cwd, timeout=ctx.config.read_timeout_s, max_output_bytes=limit)
        except subprocess.TimeoutExpired:
            return out.error(f"command timed out after {ctx.config.read_timeout_s:g}s")
        except OSError as e:
            return out.error(f"{describe_os_error(e)} ({argv[0]})")

        if res.overflow:
            out.field("error", f"output exceeds READ limit ({limit} bytes)")
            out.field("hint", overflow_hint(argv[0]))
            return ToolResult(out.render(), is_error=True)

        out.field("term", describe_returncode(res.returncode))
        append_streams(out, res.stdout, res.stderr)
        return out.ok()
