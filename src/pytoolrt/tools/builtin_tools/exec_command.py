from __future__ import annotations
from dataclasses import dataclass

from ..base import ToolSpec, ToolResult, ToolContext, ResultText
from ..payload import COMMAND_DEFAULT_YIELD_MS, decode_payload, field_int, field_str, sanitize_yield_ms
from ...session.models import CommandSession, DrainResult
from ...util.fs import describe_os_error
from ...util.subprocess import decode_output
from .read_tool import append_streams


@dataclass(frozen=True)
class ExecArgs:
    cmd: str
    yield_ms: int = COMMAND_DEFAULT_YIELD_MS


def append_state(out: ResultText, session: CommandSession) -> None:
    if session.finished:
        out.field("state", "finished")
        if session.exit_info is not None:
            out.field("exit", session.exit_info)
    else:
        out.field("state", "running")


def append_drain(out: ResultText, drained: DrainResult) -> None:
    append_streams(out, decode_output(drained.stdout), decode_output(drained.stderr))
    if drained.output_limited:
        out.note("output truncated by limit")


@dataclass
class ExecCommandTool:
    spec: ToolSpec = ToolSpec(
        name="EXEC_COMMAND",
        result_tag="exec",
        description="Start a shell command as a session; returns output produced within yield_ms. Poll or feed it with WRITE_STDIN.",
        usage="expected JSON with cmd and optional yield_ms",
        permission_key="exec",
    )

    def parse(self, payload: str) -> ExecArgs:
        obj = decode_payload(payload, primary="cmd")
        return ExecArgs(
            cmd=field_str(obj, "cmd", "command", required=True) or "",
            yield_ms=sanitize_yield_ms(field_int(obj, "yield_ms", "yield_time_ms")),
        )

    def execute(self, ctx: ToolContext, args: ExecArgs) -> ToolResult:
        out = ResultText("exec")
        if not args.cmd:
            return out.error("empty command")
        if ctx.sessions is None:
            return out.error("command sessions unavailable")

        ctx.sessions.prune_for_capacity()
        try:
            session = ctx.sessions.start(args.cmd)
        except OSError as e:
            return out.error(f"spawn failed: {describe_os_error(e)}")

        drained = ctx.sessions.drain(session, args.yield_ms)
        out.field("session_id", session.id).field("command", session.command_line)
        append_state(out, session)
        append_drain(out, drained)
        return out.ok()
