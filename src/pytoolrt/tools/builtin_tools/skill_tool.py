from __future__ import annotations

from dataclasses import dataclass

from ..base import ResultText, ToolContext, ToolResult, ToolSpec, error_result
from ..payload import InvalidPayload, decode_payload, field_str, trim
from ...skills.catalog import sample_files
from ...util.fs import describe_os_error

SKILL_MAX_FILE_BYTES = 256 * 1024
SKILL_MAX_LISTED_FILES = 12


@dataclass(frozen=True)
class SkillArgs:
    name: str


@dataclass
class SkillTool:
    spec: ToolSpec = ToolSpec(
        name="SKILL",
        result_tag="skill",
        description=(
            "Load a skill's SKILL.md by name so the assistant can follow it. "
            "Skills live in .pytoolrt/skills/<name>/ or the user config dir."
        ),
        usage="expected plain name or JSON with field name",
        permission_key="read",
    )

    def parse(self, payload: str) -> SkillArgs:
        text = trim(payload or "")
        # `$name` is how skills are mentioned in prompts
        if text.startswith("$"):
            text = trim(text[1:])
        obj = decode_payload(text, primary="name")
        name = field_str(obj, "name", "skill", required=True)
        if not name:
            raise InvalidPayload("empty skill name")
        return SkillArgs(name)

    def execute(self, ctx: ToolContext, args: SkillArgs) -> ToolResult:
        skill = ctx.skills.find(args.name) if ctx.skills is not None else None
        if skill is None:
            return error_result("skill", "skill not found", name=args.name)

        out = ResultText("skill").field("name", skill.name).field("path", skill.path)
        try:
            with skill.path.open("rb") as f:
                data = f.read(SKILL_MAX_FILE_BYTES + 1)
        except OSError as e:
            return out.error(describe_os_error(e))
        if len(data) > SKILL_MAX_FILE_BYTES:
            return out.error(f"skill file too large (max:{SKILL_MAX_FILE_BYTES} bytes)")

        out.field("description", skill.description)
        out.field("base_dir", skill.base_dir)
        out.field("scope", skill.scope)
        samples = sample_files(skill.base_dir, SKILL_MAX_LISTED_FILES)
        if samples:
            out.section("sample_files", "\n".join(f"- {s}" for s in samples))
        content = data.decode("utf-8", errors="replace")
        if not content.endswith("\n"):
            content += "\n"
        out.section("content", f'<skill_content name="{skill.name}" path="{skill.path}">\n{content}</skill_content>')
        return out.ok()
