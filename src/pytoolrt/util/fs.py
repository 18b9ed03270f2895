from __future__ import annotations

import os
import stat
from pathlib import Path

# Text decoding for files the runtime rewrites: undecodable bytes survive a
# read/modify/write cycle unchanged.
TEXT_ENCODING = "utf-8"
TEXT_ERRORS = "surrogateescape"


def resolve_path(cwd: Path, path_str: str) -> Path:
    """Relative paths resolve against cwd; absolute paths are used as-is."""
    p = Path(path_str).expanduser()
    if not p.is_absolute():
        p = Path(cwd) / p
    return p


def read_text(path: Path) -> str:
    return path.read_bytes().decode(TEXT_ENCODING, errors=TEXT_ERRORS)


def write_text(path: Path, content: str) -> None:
    """Write text, creating parent directories as needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content.encode(TEXT_ENCODING, errors=TEXT_ERRORS))


def looks_binary(content: bytes) -> bool:
    """NUL anywhere, or more than 10% control bytes in the first KiB."""
    if b"\x00" in content:
        return True
    if not content:
        return False
    sample = content[:1024]
    control = 0
    for byte in sample:
        if byte in (0x0A, 0x0D, 0x09):
            continue
        if byte < 0x20 or byte == 0x7F:
            control += 1
    return control * 10 > len(sample)


def entry_kind_label(mode: int) -> str:
    if stat.S_ISLNK(mode):
        return "link"
    if stat.S_ISDIR(mode):
        return "dir"
    if stat.S_ISREG(mode):
        return "file"
    if stat.S_ISFIFO(mode):
        return "pipe"
    if stat.S_ISCHR(mode):
        return "char"
    if stat.S_ISBLK(mode):
        return "block"
    if stat.S_ISSOCK(mode):
        return "sock"
    return "other"


def describe_os_error(e: OSError) -> str:
    if isinstance(e, FileNotFoundError):
        return "file not found"
    if isinstance(e, NotADirectoryError):
        return "not a directory"
    if isinstance(e, IsADirectoryError):
        return "is a directory"
    if isinstance(e, PermissionError):
        return "permission denied"
    return e.strerror or str(e) or type(e).__name__


def lexists(path: Path) -> bool:
    return os.path.lexists(path)
