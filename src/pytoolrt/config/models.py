from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from ..tools.permissions import PermissionRule

SEARCH_BACKENDS = ("auto", "rg", "python")


@dataclass
class RuntimeConfig:
    """Runtime config loaded from JSON (or YAML when given explicitly).

    Every key is optional; unknown or ill-typed values keep the default.
    """

    read_timeout_s: float = 30.0
    read_max_output_bytes: int = 24 * 1024

    search_backend: str = "auto"
    search_max_output_bytes: int = 128 * 1024

    command_max_sessions: int = 8
    command_max_output_bytes: int = 24 * 1024
    command_shell: str | None = None  # None: bash if available, else sh

    patch_max_bytes: int = 256 * 1024
    patch_preview_max_lines: int = 120

    permissions: list[PermissionRule] = field(default_factory=list)
    events: bool = True

    loaded_from: Path | None = None

    def apply(self, obj: dict[str, Any]) -> None:
        for key in ("read_max_output_bytes", "search_max_output_bytes", "command_max_sessions",
                    "command_max_output_bytes", "patch_max_bytes", "patch_preview_max_lines"):
            v = obj.get(key)
            if isinstance(v, int) and not isinstance(v, bool) and v > 0:
                setattr(self, key, v)

        t = obj.get("read_timeout_s")
        if isinstance(t, (int, float)) and not isinstance(t, bool) and t > 0:
            self.read_timeout_s = float(t)

        sb = obj.get("search_backend")
        if isinstance(sb, str) and sb.strip().lower() in SEARCH_BACKENDS:
            self.search_backend = sb.strip().lower()

        sh = obj.get("command_shell")
        if isinstance(sh, str) and sh.strip():
            self.command_shell = sh.strip()

        ev = obj.get("events")
        if isinstance(ev, bool):
            self.events = ev

        perms = obj.get("permissions", [])
        if isinstance(perms, list):
            for it in perms:
                r = PermissionRule.from_obj(it)
                if r is not None:
                    self.permissions.append(r)
