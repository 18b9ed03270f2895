from __future__ import annotations
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from ..config.models import RuntimeConfig
    from ..session.manager import CommandSessionManager
    from ..skills.catalog import SkillCatalog
    from .builtin_tools.plan_tool import PlanState

@dataclass(frozen=True)
class ToolSpec:
    name: str                    # dispatch name, e.g. "GREP_FILES"
    result_tag: str              # header tag, e.g. "grep-files" -> [grep-files-result]
    description: str
    usage: str                   # shown when the payload cannot be parsed
    permission_key: str          # "read" | "edit" | "exec" | "plan"

class Tool(Protocol):
    spec: ToolSpec
    def parse(self, payload: str) -> Any: ...
    def execute(self, ctx: "ToolContext", args: Any) -> "ToolResult": ...

@dataclass
class ToolResult:
    content: str
    is_error: bool = False

@dataclass
class ToolContext:
    cwd: str
    config: "RuntimeConfig"
    # Owned by the AppContext; shared across calls so sessions outlive a single call.
    sessions: "CommandSessionManager | None" = None
    plan: "PlanState | None" = None
    skills: "SkillCatalog | None" = None


class ResultText:
    """Builder for the `[<tag>-result]` text blob every tool returns.

    Fields render as `key: value`; sections render as `name:` followed by the
    body, which always ends up newline-terminated.
    """

    def __init__(self, tag: str) -> None:
        self.tag = tag
        self._parts: list[str] = [f"[{tag}-result]\n"]

    def field(self, key: str, value: Any) -> "ResultText":
        self._parts.append(f"{key}: {value}\n")
        return self

    def line(self, text: str) -> "ResultText":
        self._parts.append(text if text.endswith("\n") else text + "\n")
        return self

    def section(self, name: str, body: str) -> "ResultText":
        self._parts.append(f"{name}:\n")
        return self.line(body)

    def note(self, text: str) -> "ResultText":
        return self.field("note", text)

    def render(self) -> str:
        return "".join(self._parts)

    def ok(self) -> ToolResult:
        return ToolResult(self.render())

    def error(self, message: str) -> ToolResult:
        self.field("error", message)
        return ToolResult(self.render(), is_error=True)


def error_result(tag: str, message: str, **fields: Any) -> ToolResult:
    out = ResultText(tag)
    for k, v in fields.items():
        out.field(k, v)
    return out.error(message)
