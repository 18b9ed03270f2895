from __future__ import annotations

from pathlib import Path

import pytest

from pytoolrt.app_context import AppContext
from pytoolrt.config.models import RuntimeConfig


def make_config(**overrides) -> RuntimeConfig:
    """Test config: no event log, deterministic Python search backend."""
    values = {"events": False, "search_backend": "python", **overrides}
    return RuntimeConfig(**values)


@pytest.fixture
def make_ctx(tmp_path: Path):
    made: list[AppContext] = []

    def _make(**overrides) -> AppContext:
        ctx = AppContext.build(tmp_path, make_config(**overrides))
        made.append(ctx)
        return ctx

    yield _make
    for ctx in made:
        ctx.close()


@pytest.fixture
def ctx(make_ctx) -> AppContext:
    return make_ctx()


@pytest.fixture
def tree(tmp_path: Path) -> Path:
    """a.txt, src/b.py and a hidden directory."""
    (tmp_path / "a.txt").write_text("hello\nworld\n")
    (tmp_path / "src").mkdir()
    (tmp_path / "src" / "b.py").write_text("hello = 1\nprint(hello)\n")
    (tmp_path / ".hidden").mkdir()
    (tmp_path / ".hidden" / "c.txt").write_text("hello\n")
    return tmp_path
