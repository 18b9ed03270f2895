from __future__ import annotations
import subprocess
import threading
from dataclasses import dataclass
from typing import IO, Sequence, Optional

READ_CHUNK = 64 * 1024

@dataclass
class CmdResult:
    returncode: int
    stdout: str
    stderr: str
    # combined stdout+stderr went over max_output_bytes; the child was killed
    overflow: bool = False

def decode_output(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")

def describe_returncode(returncode: int) -> str:
    # Popen reports death-by-signal as a negative return code.
    if returncode < 0:
        return f"signal:{-returncode}"
    return f"exited:{returncode}"

class _Capture:
    """Collects both pipes, holding at most max_output_bytes between them."""

    def __init__(self, proc: subprocess.Popen, max_output_bytes: Optional[int]):
        self.proc = proc
        self.limit = max_output_bytes
        self.buffers = {"stdout": bytearray(), "stderr": bytearray()}
        self.total = 0
        self.overflow = False
        self.lock = threading.Lock()

    def pump(self, stream: IO[bytes], kind: str) -> None:
        try:
            while True:
                chunk = stream.read1(READ_CHUNK)
                if not chunk:
                    return
                with self.lock:
                    if self.overflow:
                        continue
                    if self.limit is not None and self.total + len(chunk) > self.limit:
                        keep = self.limit - self.total
                        self.buffers[kind] += chunk[:keep]
                        self.total = self.limit
                        self.overflow = True
                        self.proc.kill()
                        continue
                    self.buffers[kind] += chunk
                    self.total += len(chunk)
        except (OSError, ValueError):
            pass

def run_cmd(
    cmd: Sequence[str],
    cwd: str,
    timeout: Optional[float] = 120,
    max_output_bytes: Optional[int] = None,
) -> CmdResult:
    p = subprocess.Popen(
        list(cmd),
        cwd=cwd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        shell=False,
    )
    cap = _Capture(p, max_output_bytes)
    readers = [
        threading.Thread(target=cap.pump, args=(stream, kind), daemon=True)
        for kind, stream in (("stdout", p.stdout), ("stderr", p.stderr))
    ]
    for t in readers:
        t.start()
    try:
        p.wait(timeout=timeout)
    except subprocess.TimeoutExpired:
        p.kill()
        p.wait()
        raise
    finally:
        for t in readers:
            t.join(timeout=1.0)
        for stream in (p.stdout, p.stderr):
            if stream is not None:
                stream.close()
    return CmdResult(
        p.returncode,
        decode_output(bytes(cap.buffers["stdout"])),
        decode_output(bytes(cap.buffers["stderr"])),
        cap.overflow,
    )
