from __future__ import annotations

import json
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable

from platformdirs import user_data_dir

APP_NAME = "pytoolrt"


def _events_dir() -> Path:
    root = Path(user_data_dir(APP_NAME))
    d = root / "events"
    d.mkdir(parents=True, exist_ok=True)
    return d


def new_run_id() -> str:
    return time.strftime("%Y%m%d-%H%M%S") + "-" + uuid.uuid4().hex[:8]


@dataclass
class Event:
    ts: float
    type: str
    data: dict[str, Any]


@dataclass
class EventStore:
    """Append-only jsonl event log, one file per runtime run.

    Reading skips lines that fail to parse.
    """

    run_id: str
    path: Path

    @staticmethod
    def open(run_id: str, directory: Path | None = None) -> "EventStore":
        d = directory if directory is not None else _events_dir()
        d.mkdir(parents=True, exist_ok=True)
        return EventStore(run_id=run_id, path=d / f"{run_id}.jsonl")

    def append(self, event_type: str, data: dict[str, Any]) -> None:
        ev = Event(ts=time.time(), type=event_type, data=data)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(ev.__dict__, ensure_ascii=False) + "\n")

    def iter_events(self) -> Iterable[Event]:
        if not self.path.exists():
            return []
        out: list[Event] = []
        for line in self.path.read_text(encoding="utf-8", errors="replace").splitlines():
            if not line.strip():
                continue
            try:
                obj = json.loads(line)
            except ValueError:
                continue
            if not isinstance(obj, dict):
                continue
            out.append(Event(ts=float(obj.get("ts", 0.0)), type=str(obj.get("type")), data=obj.get("data") or {}))
        return out
