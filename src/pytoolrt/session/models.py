from __future__ import annotations

import os
import queue
import signal
import subprocess
import threading
from dataclasses import dataclass, field
from typing import IO, Optional

from ..util.subprocess import describe_returncode

READ_CHUNK = 2048

# (stream name, chunk); chunk None marks EOF on that stream
Chunk = tuple[str, Optional[bytes]]


@dataclass
class DrainResult:
    stdout: bytes = b""
    stderr: bytes = b""
    output_limited: bool = False


@dataclass
class CommandSession:
    """A shell command spawned by EXEC_COMMAND.

    Output is pumped by one daemon thread per pipe into `chunks`; drains
    consume it. At most `buffer_limit` bytes per pipe wait in the queue, the
    rest is dropped and reported by the next drain. `finished` flips once the
    process has exited and nothing is left to read.
    """

    id: int
    command_line: str
    process: subprocess.Popen
    chunks: "queue.Queue[Chunk]" = field(default_factory=queue.Queue)
    open_streams: int = 0
    finished: bool = False
    returncode: int | None = None
    readers: list[threading.Thread] = field(default_factory=list)
    buffer_limit: int | None = None
    buffered: dict[str, int] = field(default_factory=lambda: {"stdout": 0, "stderr": 0})
    dropped: bool = False
    lock: threading.Lock = field(default_factory=threading.Lock)

    def start_readers(self) -> None:
        for kind in ("stdout", "stderr"):
            stream = getattr(self.process, kind)
            if stream is None:
                continue
            t = threading.Thread(target=self._pump, args=(stream, kind), daemon=True,
                                 name=f"session-{self.id}-{kind}")
            self.readers.append(t)
            self.open_streams += 1
            t.start()

    def _pump(self, stream: IO[bytes], kind: str) -> None:
        try:
            while True:
                chunk = stream.read(READ_CHUNK)
                if not chunk:
                    break
                with self.lock:
                    if self.buffer_limit is not None:
                        room = max(self.buffer_limit - self.buffered[kind], 0)
                        if len(chunk) > room:
                            self.dropped = True
                            chunk = chunk[:room]
                    self.buffered[kind] += len(chunk)
                if chunk:
                    self.chunks.put((kind, chunk))
        except (OSError, ValueError):
            # pipe closed underneath us by kill()/close()
            pass
        finally:
            self.chunks.put((kind, None))

    def consumed(self, kind: str, size: int) -> None:
        with self.lock:
            self.buffered[kind] -= size

    def take_dropped(self) -> bool:
        with self.lock:
            dropped, self.dropped = self.dropped, False
        return dropped

    @property
    def stdin(self) -> IO[bytes] | None:
        return self.process.stdin

    def close_stdin(self) -> None:
        if self.process.stdin is not None:
            try:
                self.process.stdin.close()
            except OSError:
                pass
            self.process.stdin = None

    def refresh(self, *, allow_open_pipes: bool = False) -> None:
        """Mark finished when the process is gone and no output is pending.

        Pipes can outlive the shell when it leaves background children
        behind; `allow_open_pipes` accepts that once a drain window is spent.
        """
        if self.finished:
            return
        rc = self.process.poll()
        if rc is None or not self.chunks.empty():
            return
        if self.open_streams > 0 and not allow_open_pipes:
            return
        self.returncode = rc
        self.finished = True

    @property
    def exit_info(self) -> str | None:
        if not self.finished or self.returncode is None:
            return None
        return describe_returncode(self.returncode)

    def kill(self) -> None:
        """Kill the session's whole process group, then close its pipes."""
        if os.name == "posix":
            # background children share the group and would keep the pipes open
            try:
                os.killpg(self.process.pid, signal.SIGKILL)
            except (ProcessLookupError, PermissionError):
                pass
        elif self.process.poll() is None:
            self.process.kill()
        if self.process.poll() is None:
            try:
                self.process.wait(timeout=1.0)
            except subprocess.TimeoutExpired:
                pass
        self.close_stdin()
        for stream in (self.process.stdout, self.process.stderr):
            if stream is not None:
                try:
                    stream.close()
                except OSError:
                    pass
