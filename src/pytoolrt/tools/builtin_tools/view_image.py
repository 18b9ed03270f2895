from __future__ import annotations

import hashlib
import struct
from dataclasses import dataclass
from pathlib import Path

from ..base import ResultText, ToolContext, ToolResult, ToolSpec
from ..payload import decode_payload, field_str
from ...util.fs import describe_os_error, resolve_path

MAX_HASH_BYTES = 64 * 1024 * 1024
HEADER_BYTES = 32


@dataclass(frozen=True)
class ImageInfo:
    format: str
    mime: str
    width: int | None = None
    height: int | None = None

    @property
    def dimensions(self) -> str:
        if self.width and self.height:
            return f"{self.width}x{self.height}"
        return "unknown"


def sniff_image(header: bytes) -> ImageInfo | None:
    if header.startswith(b"\x89PNG\r\n\x1a\n"):
        w = h = None
        if len(header) >= 24:
            w, h = struct.unpack(">II", header[16:24])
        return ImageInfo("png", "image/png", w or None, h or None)
    if header[:3] == b"\xff\xd8\xff":
        return ImageInfo("jpeg", "image/jpeg")
    if header[:4] == b"RIFF" and header[8:12] == b"WEBP":
        return ImageInfo("webp", "image/webp")
    if header[:6] in (b"GIF87a", b"GIF89a"):
        w = h = None
        if len(header) >= 10:
            w, h = struct.unpack("<HH", header[6:10])
        return ImageInfo("gif", "image/gif", w or None, h or None)
    if header[:2] == b"BM":
        return ImageInfo("bmp", "image/bmp")
    if header[:4] in (b"II*\x00", b"MM\x00*"):
        return ImageInfo("tiff", "image/tiff")
    return None


@dataclass(frozen=True)
class ViewImageArgs:
    path: str


@dataclass
class ViewImageTool:
    spec: ToolSpec = ToolSpec(
        name="VIEW_IMAGE",
        result_tag="view-image",
        description="Inspect an image file: format, size, dimensions, sha256.",
        usage="expected plain path or JSON with path",
        permission_key="read",
    )

    def parse(self, payload: str) -> ViewImageArgs:
        obj = decode_payload(payload, primary="path")
        return ViewImageArgs(field_str(obj, "path", "file", required=True) or "")

    def execute(self, ctx: ToolContext, args: ViewImageArgs) -> ToolResult:
        if not args.path:
            return ResultText("view-image").error("empty path")
        out = ResultText("view-image").field("path", args.path)
        p = resolve_path(Path(ctx.cwd), args.path)
        try:
            size = p.stat().st_size
            with p.open("rb") as f:
                header = f.read(HEADER_BYTES)
        except FileNotFoundError:
            return out.error("unsupported or unknown image format")
        except OSError as e:
            return out.error(describe_os_error(e))

        info = sniff_image(header) if size else None
        if info is None:
            return out.error("unsupported or unknown image format")

        out.field("bytes", size).field("format", info.format).field("mime", info.mime)
        out.field("dimensions", info.dimensions)
        if size <= MAX_HASH_BYTES:
            digest = hashlib.sha256()
            with p.open("rb") as f:
                for block in iter(lambda: f.read(1 << 16), b""):
                    digest.update(block)
            out.field("sha256", digest.hexdigest())
        out.note("metadata-only")
        return out.ok()
