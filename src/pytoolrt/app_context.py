from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from .config.loader import load_runtime_config
from .config.models import RuntimeConfig
from .events.store import EventStore, new_run_id
from .session.manager import CommandSessionManager
from .skills.catalog import SkillCatalog
from .tools.base import ToolContext
from .tools.builtin import register_builtin_tools
from .tools.builtin_tools.plan_tool import PlanState
from .tools.permissions import PermissionConfig, PermissionGate
from .tools.registry import ToolRegistry


@dataclass
class AppContext:
    """Everything a dispatch needs, owned in one place.

    The command-session registry lives here so sessions survive between
    calls; close() kills whatever is still running.
    """

    cwd: Path
    config: RuntimeConfig
    tools: ToolRegistry
    permissions: PermissionGate
    sessions: CommandSessionManager
    plan: PlanState = field(default_factory=PlanState)
    skills: SkillCatalog | None = None
    events: EventStore | None = None
    trace: bool = False
    run_id: Optional[str] = None

    def tool_context(self) -> ToolContext:
        return ToolContext(cwd=str(self.cwd), config=self.config, sessions=self.sessions, plan=self.plan,
                           skills=self.skills)

    def close(self) -> None:
        self.sessions.close_all()

    def __enter__(self) -> "AppContext":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @staticmethod
    def build(
        cwd: Path,
        config: RuntimeConfig | None = None,
        *,
        events: EventStore | None = None,
        auto_approve: bool = False,
        interactive: bool = False,
        trace: bool = False,
        run_id: str | None = None,
    ) -> "AppContext":
        cfg = config or RuntimeConfig()

        tools = ToolRegistry()
        register_builtin_tools(tools)

        perm_cfg = PermissionConfig()
        perm_cfg.apply_rules(cfg.permissions)
        permissions = PermissionGate(config=perm_cfg, auto_approve=auto_approve, interactive=interactive)

        sessions = CommandSessionManager(
            str(cwd),
            max_sessions=cfg.command_max_sessions,
            max_output_bytes=cfg.command_max_output_bytes,
            shell=cfg.command_shell,
            events=events,
        )
        return AppContext(
            cwd=cwd,
            config=cfg,
            tools=tools,
            permissions=permissions,
            sessions=sessions,
            skills=SkillCatalog.for_project(Path(cwd)),
            events=events,
            trace=trace,
            run_id=run_id,
        )

    @staticmethod
    def from_env(
        cwd: Path,
        *,
        config_path: Path | None = None,
        auto_approve: bool = False,
        interactive: bool = False,
        trace: bool = False,
        run_id: str | None = None,
    ) -> "AppContext":
        cfg = load_runtime_config(cwd=cwd, explicit_path=config_path)
        run_id = run_id or new_run_id()
        events = EventStore.open(run_id) if cfg.events else None
        return AppContext.build(
            cwd,
            cfg,
            events=events,
            auto_approve=auto_approve,
            interactive=interactive,
            trace=trace,
            run_id=run_id,
        )
