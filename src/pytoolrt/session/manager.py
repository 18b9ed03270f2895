from __future__ import annotations

import os
import queue
import shutil
import subprocess
import time
from typing import TYPE_CHECKING

from .models import CommandSession, DrainResult

if TYPE_CHECKING:
    from ..events.store import EventStore

DEFAULT_MAX_SESSIONS = 8
DEFAULT_MAX_OUTPUT_BYTES = 24 * 1024

# After the first chunk, stop once output pauses this long.
SETTLE_S = 0.1


class SessionNotFound(KeyError):
    pass


class StdinClosed(RuntimeError):
    pass


def shell_argv(command: str, shell: str | None = None) -> list[str]:
    sh = shell or shutil.which("bash") or "sh"
    flag = "-lc" if os.path.basename(sh) == "bash" else "-c"
    return [sh, flag, command]


class CommandSessionManager:
    """Registry of live command sessions, keyed by monotonically increasing id.

    Calls are expected one at a time, so there is no locking.
    """

    def __init__(
        self,
        cwd: str,
        *,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        max_output_bytes: int = DEFAULT_MAX_OUTPUT_BYTES,
        shell: str | None = None,
        events: "EventStore | None" = None,
    ):
        self.cwd = cwd
        self.max_sessions = max(1, max_sessions)
        self.max_output_bytes = max_output_bytes
        self.shell = shell
        self.events = events
        self._sessions: list[CommandSession] = []
        self._next_id = 1

    def __len__(self) -> int:
        return len(self._sessions)

    def sessions(self) -> list[CommandSession]:
        return list(self._sessions)

    def _record(self, event_type: str, data: dict) -> None:
        if self.events is not None:
            try:
                self.events.append(event_type, data)
            except OSError:
                pass

    def find(self, session_id: int) -> CommandSession:
        for s in self._sessions:
            if s.id == session_id:
                return s
        raise SessionNotFound(session_id)

    def _destroy(self, session: CommandSession, reason: str) -> None:
        session.kill()
        self._sessions.remove(session)
        self._record("session.evict", {"session_id": session.id, "reason": reason})

    def prune_for_capacity(self) -> None:
        """Make room for one more session.

        Finished sessions go first, oldest first. If every session is still
        running, the oldest one is killed.
        """
        if len(self._sessions) < self.max_sessions:
            return
        for s in list(self._sessions):
            s.refresh()
            if s.finished:
                self._destroy(s, "finished")
                if len(self._sessions) < self.max_sessions:
                    return
        while len(self._sessions) >= self.max_sessions:
            self._destroy(self._sessions[0], "capacity")

    def start(self, command: str) -> CommandSession:
        proc = subprocess.Popen(
            shell_argv(command, self.shell),
            cwd=self.cwd,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            bufsize=0,
            start_new_session=(os.name == "posix"),
        )
        session = CommandSession(id=self._next_id, command_line=command, process=proc,
                                 buffer_limit=self.max_output_bytes)
        session.start_readers()
        self._next_id += 1
        self._sessions.append(session)
        self._record("session.spawn", {"session_id": session.id, "command": command, "pid": proc.pid})
        return session

    def write_stdin(self, session: CommandSession, chars: str) -> int:
        """Write chars to the session's stdin; returns bytes written.

        A broken pipe closes stdin and reports what was written so far.
        """
        if not chars:
            return 0
        stdin = session.stdin
        if stdin is None:
            raise StdinClosed(session.id)
        data = chars.encode("utf-8")
        written = 0
        try:
            while written < len(data):
                n = stdin.write(data[written:])
                written += n or 0
            stdin.flush()
        except (BrokenPipeError, ConnectionResetError):
            session.close_stdin()
        return written

    def drain(self, session: CommandSession, yield_ms: int) -> DrainResult:
        """Collect output produced since the last drain.

        Waits up to yield_ms for the first chunk, then keeps reading while
        output keeps coming. Returns early when both pipes reach EOF.
        """
        deadline = time.monotonic() + yield_ms / 1000.0
        bufs = {"stdout": bytearray(), "stderr": bytearray()}
        limited = False
        got_data = False

        while session.open_streams > 0:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            timeout = min(remaining, SETTLE_S) if got_data else remaining
            try:
                kind, chunk = session.chunks.get(timeout=timeout)
            except queue.Empty:
                # exited but pipes not at EOF yet: keep waiting for the tail
                if got_data and session.process.poll() is None:
                    break
                continue
            if chunk is None:
                session.open_streams -= 1
                continue
            session.consumed(kind, len(chunk))
            got_data = True
            buf = bufs[kind]
            room = self.max_output_bytes - len(buf)
            if len(chunk) > room:
                limited = True
                chunk = chunk[:max(room, 0)]
            buf.extend(chunk)

        if session.open_streams == 0 and session.process.poll() is None:
            remaining = deadline - time.monotonic()
            if remaining > 0:
                try:
                    session.process.wait(timeout=remaining)
                except subprocess.TimeoutExpired:
                    pass

        if session.take_dropped():
            limited = True
        session.refresh(allow_open_pipes=time.monotonic() >= deadline)
        return DrainResult(bytes(bufs["stdout"]), bytes(bufs["stderr"]), limited)

    def close_all(self) -> None:
        for s in list(self._sessions):
            s.kill()
        self._sessions.clear()
