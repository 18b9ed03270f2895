from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import yaml
from platformdirs import user_config_dir

from .models import RuntimeConfig

APP_NAME = "pytoolrt"


def _candidate_paths(cwd: Path) -> list[Path]:
    # project-level (higher priority)
    return [
        cwd / ".pytoolrt.json",
        cwd / "pytoolrt.json",
    ]


def _global_candidate_paths() -> list[Path]:
    cfg_dir = Path(user_config_dir(APP_NAME))
    return [cfg_dir / "pytoolrt.json"]


def _load_json(p: Path) -> dict[str, Any] | None:
    try:
        obj = json.loads(p.read_text(encoding="utf-8"))
        if isinstance(obj, dict):
            return obj
        return None
    except (OSError, ValueError):
        return None


def _load_yaml(p: Path) -> dict[str, Any] | None:
    try:
        obj = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError):
        return None
    return obj if isinstance(obj, dict) else None


def _load_any(p: Path) -> dict[str, Any] | None:
    if p.suffix.lower() in {".yaml", ".yml"}:
        return _load_yaml(p)
    return _load_json(p)


def _merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge_dicts(out[k], v)  # type: ignore
        elif isinstance(v, list) and isinstance(out.get(k), list):
            # permission rules accumulate; later files append
            out[k] = list(out[k]) + v
        else:
            out[k] = v
    return out


def load_runtime_config(*, cwd: Path, explicit_path: Path | None = None, use_global: bool = True) -> RuntimeConfig:
    """Load runtime config.

    Merge order: global < project < explicit_path.
    """
    merged: dict[str, Any] = {}
    loaded_from: Path | None = None

    if use_global:
        for p in _global_candidate_paths():
            if p.exists() and p.is_file():
                obj = _load_json(p)
                if obj is not None:
                    merged = _merge_dicts(merged, obj)
                    loaded_from = p

    for p in _candidate_paths(cwd):
        if p.exists() and p.is_file():
            obj = _load_json(p)
            if obj is not None:
                merged = _merge_dicts(merged, obj)
                loaded_from = p
                break  # first match wins for project-level

    if explicit_path is not None:
        p = explicit_path.expanduser().resolve()
        if not p.exists() or not p.is_file():
            raise FileNotFoundError(f"Config not found: {p}")
        obj = _load_any(p)
        if obj is None:
            raise ValueError(f"Config must be a JSON/YAML mapping: {p}")
        merged = _merge_dicts(merged, obj)
        loaded_from = p

    cfg = RuntimeConfig()
    cfg.apply(merged)
    cfg.loaded_from = loaded_from
    return cfg
