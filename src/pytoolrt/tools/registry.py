from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, Optional

from .base import Tool

@dataclass
class ToolRegistry:
    _tools: Dict[str, Tool] = None  # type: ignore

    def __post_init__(self):
        if self._tools is None:
            self._tools = {}

    def register(self, tool: Tool) -> None:
        # names are stored upper-case; lookups ignore case
        name = tool.spec.name.upper()
        if name in self._tools:
            raise ValueError(f"Tool already registered: {name}")
        self._tools[name] = tool

    def get_optional(self, name: str) -> Optional[Tool]:
        """Return a tool if registered, otherwise None.

        The model may name tools that do not exist; callers report those
        instead of crashing.
        """
        return self._tools.get(name.strip().upper())

    def names(self) -> list[str]:
        return list(self._tools)

    def list_specs(self):
        return [t.spec for t in self._tools.values()]
