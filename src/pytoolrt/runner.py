from __future__ import annotations

import re
import subprocess
import time
from dataclasses import dataclass
from typing import Any, Iterable

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from .app_context import AppContext
from .tools.base import ToolResult, error_result
from .tools.builtin import register_builtin_tools
from .tools.payload import InvalidPayload
from .tools.registry import ToolRegistry
from .util.fs import describe_os_error

console = Console(stderr=True)

PREVIEW_CHARS = 2000


@dataclass(frozen=True)
class ToolInvocation:
    tool_name: str
    raw_payload: str


def _preview(payload: str) -> str:
    if len(payload) > PREVIEW_CHARS:
        return payload[:PREVIEW_CHARS] + "\n... (truncated)"
    return payload


def _record(ctx: AppContext, event_type: str, data: dict[str, Any]) -> None:
    if ctx.events is None:
        return
    try:
        ctx.events.append(event_type, data)
    except OSError as e:
        if ctx.trace:
            console.print(f"[yellow]event log write failed[/yellow]: {e}")


def _execute(ctx: AppContext, tool: Any, payload: str) -> ToolResult:
    tag = tool.spec.result_tag
    try:
        args = tool.parse(payload)
        return tool.execute(ctx.tool_context(), args)
    except InvalidPayload as e:
        return error_result(tag, f"invalid payload ({e.usage or tool.spec.usage})")
    except OSError as e:
        return error_result(tag, describe_os_error(e))
    except subprocess.SubprocessError as e:
        return error_result(tag, str(e))
    except Exception as e:
        return error_result(tag, f"{type(e).__name__}: {e}")


def run_tool(ctx: AppContext, name: str, payload: str) -> str:
    """Dispatch one tool call and return its result text.

    Never raises for a bad payload or a failing tool: both come back as
    `[<tag>-result]` text with an `error:` line.
    """
    name = (name or "").strip()
    tool = ctx.tools.get_optional(name)
    if tool is None:
        _record(ctx, "tool.missing", {"tool": name})
        return f"[{name}-result]\nerror: unknown tool ({name})\n"

    spec = tool.spec
    payload = payload or ""
    if not ctx.permissions.decide(spec.permission_key, spec.name, _preview(payload)):
        _record(ctx, "tool.denied", {"tool": spec.name, "permission_key": spec.permission_key})
        return error_result(spec.result_tag, f"denied by permissions ({spec.permission_key})").content

    _record(ctx, "tool.call", {"tool": spec.name, "permission_key": spec.permission_key,
                               "payload_preview": _preview(payload)})

    t0 = time.perf_counter()
    res = _execute(ctx, tool, payload)
    elapsed_ms = int((time.perf_counter() - t0) * 1000)

    content = res.content if res.content.endswith("\n") else res.content + "\n"
    _record(ctx, "tool.result", {
        "tool": spec.name,
        "is_error": bool(res.is_error),
        "elapsed_ms": elapsed_ms,
        "content_len": len(content),
        "content_preview": content[:4000],
    })

    if ctx.trace:
        console.print(
            Panel.fit(
                Text(content[:4000]),
                title=f"{spec.name} ({elapsed_ms} ms)",
                border_style="red" if res.is_error else "green",
            )
        )
    return content


# ---------------------------------------------------------------------------
# Directives in assistant text
# ---------------------------------------------------------------------------

_TAG_OPEN = re.compile(r"<([A-Za-z_]+)>")


def _builtin_names() -> list[str]:
    reg = ToolRegistry()
    register_builtin_tools(reg)
    return reg.names()


def extract_directive(text: str, names: Iterable[str] | None = None) -> ToolInvocation | None:
    """Find a tool directive at the start of assistant text.

    Accepted forms: `<NAME>payload</NAME>`, a ```name fenced block, and
    `READ: cmd` / `READ cmd`.
    """
    known = {n.upper() for n in (names if names is not None else _builtin_names())}
    body = (text or "").strip()
    if not body:
        return None

    m = _TAG_OPEN.match(body)
    if m and m.group(1).upper() in known:
        close = f"</{m.group(1)}>"
        end = body.find(close, m.end())
        if end >= 0:
            return ToolInvocation(m.group(1).upper(), body[m.end():end].strip())
        return None

    if body.startswith("```"):
        nl = body.find("\n")
        if nl < 0:
            return None
        lang = body[3:nl].strip()
        if lang.upper() not in known:
            return None
        rest = body[nl + 1:]
        end = rest.find("```")
        if end < 0:
            return None
        return ToolInvocation(lang.upper(), rest[:end].strip())

    if "READ" in known:
        for prefix in ("READ:", "READ "):
            if body.startswith(prefix):
                cmd = body[len(prefix):].strip()
                if cmd:
                    return ToolInvocation("READ", cmd)
    return None


def run_directive(ctx: AppContext, text: str) -> str | None:
    inv = extract_directive(text, ctx.tools.names())
    if inv is None:
        return None
    return run_tool(ctx, inv.tool_name, inv.raw_payload)
