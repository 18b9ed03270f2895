"""Skill discovery.

A skill is a directory holding a SKILL.md, optionally opening with a YAML
front matter block that carries `name` and `description`. Skills are looked
up in the project (`<cwd>/.pytoolrt/skills/`) and then in the user config
directory; a project skill shadows a global one of the same name.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator

import yaml
from platformdirs import user_config_dir

from ..config.loader import APP_NAME

SKILL_FILE = "SKILL.md"
FRONT_MATTER_MAX_BYTES = 8 * 1024


@dataclass(frozen=True)
class Skill:
    name: str
    description: str
    path: Path
    base_dir: Path
    scope: str  # "project" | "global"


def default_roots(cwd: Path) -> list[tuple[str, Path]]:
    return [
        ("project", cwd / ".pytoolrt" / "skills"),
        ("global", Path(user_config_dir(APP_NAME)) / "skills"),
    ]


def parse_front_matter(text: str) -> dict[str, Any]:
    """The leading `---` block as a dict; {} when absent or unreadable."""
    text = text.replace("\r\n", "\n")
    if not text.startswith("---\n"):
        return {}
    end = text.find("\n---", 4)
    if end == -1:
        return {}
    try:
        obj = yaml.safe_load(text[4:end + 1])
    except yaml.YAMLError:
        return {}
    return obj if isinstance(obj, dict) else {}


def _read_head(p: Path) -> str:
    with p.open("rb") as f:
        return f.read(FRONT_MATTER_MAX_BYTES).decode("utf-8", errors="replace")


def load_skill(skill_dir: Path, scope: str) -> Skill | None:
    path = skill_dir / SKILL_FILE
    try:
        meta = parse_front_matter(_read_head(path))
    except OSError:
        return None
    name = meta.get("name")
    description = meta.get("description")
    return Skill(
        name=name.strip() if isinstance(name, str) and name.strip() else skill_dir.name,
        description=" ".join(description.split()) if isinstance(description, str) else "",
        path=path,
        base_dir=skill_dir,
        scope=scope,
    )


def _scan(root: Path, scope: str) -> Iterator[Skill]:
    try:
        entries = sorted(os.scandir(root), key=lambda e: e.name)
    except OSError:
        return
    for entry in entries:
        if entry.name.startswith(".") or not entry.is_dir():
            continue
        skill = load_skill(Path(entry.path), scope)
        if skill is not None:
            yield skill


class SkillCatalog:
    """Skills found under the given roots, scanned on first use."""

    def __init__(self, roots: list[tuple[str, Path]]):
        self.roots = roots
        self._skills: list[Skill] | None = None

    @classmethod
    def for_project(cls, cwd: Path) -> "SkillCatalog":
        return cls(default_roots(cwd))

    def skills(self) -> list[Skill]:
        if self._skills is None:
            seen: set[str] = set()
            found: list[Skill] = []
            for scope, root in self.roots:
                for skill in _scan(root, scope):
                    key = skill.name.lower()
                    if key in seen:
                        continue
                    seen.add(key)
                    found.append(skill)
            self._skills = found
        return self._skills

    def find(self, name: str) -> Skill | None:
        key = name.strip().lower()
        for skill in self.skills():
            if skill.name.lower() == key:
                return skill
        return None


def sample_files(base_dir: Path, limit: int) -> list[str]:
    """Up to `limit` files under base_dir other than SKILL.md files, name-ordered."""
    found: list[str] = []
    for dirpath, dirnames, filenames in os.walk(base_dir):
        dirnames.sort()
        rel_dir = os.path.relpath(dirpath, base_dir)
        for fn in sorted(filenames):
            if fn.lower() == SKILL_FILE.lower():
                continue
            found.append(fn if rel_dir == "." else f"{rel_dir}/{fn}".replace(os.sep, "/"))
            if len(found) >= limit:
                return found
    return found
