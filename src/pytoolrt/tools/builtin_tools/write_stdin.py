from __future__ import annotations
from dataclasses import dataclass

from ..base import ToolSpec, ToolResult, ToolContext, ResultText
from ..payload import COMMAND_DEFAULT_YIELD_MS, InvalidPayload, decode_payload, field_int, sanitize_yield_ms
from ...session.manager import SessionNotFound, StdinClosed
from ...util.fs import describe_os_error
from .exec_command import append_drain, append_state


@dataclass(frozen=True)
class WriteStdinArgs:
    session_id: int
    chars: str = ""
    yield_ms: int = COMMAND_DEFAULT_YIELD_MS


@dataclass
class WriteStdinTool:
    spec: ToolSpec = ToolSpec(
        name="WRITE_STDIN",
        result_tag="write-stdin",
        description="Write chars to a running session's stdin (empty chars just polls) and drain new output.",
        usage="expected JSON with session_id, chars, optional yield_ms",
        permission_key="exec",
    )

    def parse(self, payload: str) -> WriteStdinArgs:
        obj = decode_payload(payload, primary=None, bare=False)
        sid = field_int(obj, "session_id", "session")
        if not sid:
            raise InvalidPayload("session_id must be a positive integer")
        chars = obj.get("chars", "")
        if chars is None:
            chars = ""
        if not isinstance(chars, str):
            raise InvalidPayload("field chars must be a string")
        # chars are sent verbatim: no trimming, newlines matter
        return WriteStdinArgs(sid, chars, sanitize_yield_ms(field_int(obj, "yield_ms", "yield_time_ms")))

    def execute(self, ctx: ToolContext, args: WriteStdinArgs) -> ToolResult:
        out = ResultText("write-stdin")
        if ctx.sessions is None:
            return out.error("command sessions unavailable")
        try:
            session = ctx.sessions.find(args.session_id)
        except SessionNotFound:
            return out.error(f"session not found ({args.session_id})")

        out.field("session_id", session.id)
        out.field("command", session.command_line)
        session.refresh()
        if session.finished:
            out.field("chars_written", 0)
            append_state(out, session)
            return out.ok()

        try:
            written = ctx.sessions.write_stdin(session, args.chars)
        except StdinClosed:
            return out.error("session stdin is closed")
        except OSError as e:
            return out.error(describe_os_error(e))

        drained = ctx.sessions.drain(session, args.yield_ms)
        out.field("chars_written", written)
        append_state(out, session)
        append_drain(out, drained)
        return out.ok()
