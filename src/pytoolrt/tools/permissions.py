from __future__ import annotations

import os
import shlex
from dataclasses import dataclass, field
from fnmatch import fnmatch
from typing import Any, Literal, Sequence

from rich.console import Console
from rich.markup import escape

Decision = Literal["allow", "ask", "deny"]

console = Console(stderr=True)


# ---------------------------------------------------------------------------
# READ command policy
# ---------------------------------------------------------------------------

READ_ALLOWLIST = frozenset({"rg", "grep", "ls", "cat", "find", "head", "tail", "sed", "wc", "stat", "pwd", "git"})
GIT_SUBCOMMANDS = frozenset({"status", "diff", "show", "log", "rev-parse", "ls-files"})
READ_MAX_TOKENS = 64

_FIND_WRITE_FLAGS = frozenset({
    "-delete", "-exec", "-execdir", "-ok", "-okdir",
    "-fprint", "-fprint0", "-fprintf", "-fls",
})


class CommandRejected(ValueError):
    """READ command refused by policy; the message is the user-facing error."""


def tokenize_command(command: str) -> list[str]:
    try:
        return shlex.split(command, posix=True)
    except ValueError as e:
        raise CommandRejected("unbalanced quotes") from e


def _write_flag(binary: str, args: Sequence[str]) -> str | None:
    for a in args:
        if binary == "find" and a in _FIND_WRITE_FLAGS:
            return a
        if binary == "sed" and (a.startswith("--in-place") or (a.startswith("-") and not a.startswith("--") and "i" in a[1:])):
            return a
        if binary == "rg" and a.startswith("--pre"):
            return a
        if binary == "git" and a.startswith("--output"):
            return a
    return None


def check_read_command(argv: Sequence[str]) -> None:
    """Raise CommandRejected unless argv is an allowlisted read-only command."""
    if not argv:
        raise CommandRejected("empty command")
    if len(argv) > READ_MAX_TOKENS:
        raise CommandRejected("too many arguments")

    binary = argv[0]
    if "/" in binary or os.sep in binary or binary not in READ_ALLOWLIST:
        raise CommandRejected(f"command not allowed ({binary})")

    if binary == "git":
        sub = argv[1] if len(argv) > 1 else ""
        if sub not in GIT_SUBCOMMANDS:
            raise CommandRejected(f"command not allowed ({' '.join(['git', sub]).strip()})")

    flag = _write_flag(binary, argv[1:])
    if flag is not None:
        raise CommandRejected(f"argument not allowed ({flag})")


def parse_read_command(command: str) -> list[str]:
    argv = tokenize_command(command)
    check_read_command(argv)
    return argv


# ---------------------------------------------------------------------------
# Per-tool permission gate
# ---------------------------------------------------------------------------

@dataclass
class PermissionRule:
    """A single permission rule.

    match supports:
    - "tool:<name_or_pattern>"  -> matches tool name only
    - otherwise: fnmatch against both permission_key and tool_name
    """

    match: str
    decision: Decision

    @staticmethod
    def from_obj(obj: Any) -> "PermissionRule | None":
        if not isinstance(obj, dict):
            return None
        m = obj.get("match")
        d = obj.get("decision")
        if not isinstance(m, str) or d not in {"allow", "ask", "deny"}:
            return None
        return PermissionRule(match=m, decision=d)


@dataclass
class PermissionConfig:
    defaults: dict[str, Decision] = field(
        default_factory=lambda: {"read": "allow", "edit": "allow", "exec": "allow", "plan": "allow"}
    )
    rules: list[PermissionRule] = field(default_factory=list)

    def set(self, key: str, decision: Decision) -> None:
        self.defaults[key] = decision

    def apply_rules(self, rules: list[PermissionRule]) -> None:
        # appended after defaults; later rules win
        self.rules.extend(rules)

    def _match_rules(self, permission_key: str, tool_name: str) -> Decision | None:
        decision: Decision | None = None
        for rule in self.rules:
            m = rule.match
            if m.startswith("tool:"):
                if fnmatch(tool_name.upper(), m[len("tool:"):].upper()):
                    decision = rule.decision
            elif fnmatch(permission_key, m) or fnmatch(tool_name.upper(), m.upper()):
                decision = rule.decision
        return decision

    def decide(self, permission_key: str, tool_name: str) -> Decision:
        r = self._match_rules(permission_key, tool_name)
        if r is not None:
            return r
        return self.defaults.get(permission_key, "allow")


class PermissionGate:
    def __init__(self, config: PermissionConfig, auto_approve: bool = False, interactive: bool = False):
        self.config = config
        self.auto_approve = auto_approve
        self.interactive = interactive

    def decide(self, permission_key: str, tool_name: str, args_preview: str) -> bool:
        decision = self.config.decide(permission_key, tool_name)
        if decision == "allow":
            return True
        if decision == "deny":
            return False

        # ask
        if self.auto_approve:
            return True
        if not self.interactive:
            return False

        console.print(f"\n[yellow]Tool requires approval[/yellow]: [bold]{tool_name}[/bold]\n{escape(args_preview)}")
        resp = console.input("Approve? [y/N] ").strip().lower()
        return resp in {"y", "yes"}
