from __future__ import annotations

from .registry import ToolRegistry

from .builtin_tools.read_tool import ReadTool
from .builtin_tools.listdir import ListDirTool
from .builtin_tools.file_read import ReadFileTool
from .builtin_tools.grep_tool import GrepTool
from .builtin_tools.project_search import ProjectSearchTool
from .builtin_tools.patch_tool import PatchTool
from .builtin_tools.exec_command import ExecCommandTool
from .builtin_tools.write_stdin import WriteStdinTool
from .builtin_tools.plan_tool import UpdatePlanTool
from .builtin_tools.view_image import ViewImageTool
from .builtin_tools.skill_tool import SkillTool

def register_builtin_tools(registry: ToolRegistry) -> None:
    registry.register(ReadTool())
    registry.register(ListDirTool())
    registry.register(ReadFileTool())
    registry.register(GrepTool())
    registry.register(ProjectSearchTool())
    registry.register(PatchTool())
    registry.register(ExecCommandTool())
    registry.register(WriteStdinTool())
    registry.register(UpdatePlanTool())
    registry.register(ViewImageTool())
    registry.register(SkillTool())
