from __future__ import annotations

import hashlib
import struct

import pytest

from pytoolrt.runner import run_tool
from pytoolrt.tools.builtin_tools.view_image import sniff_image

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00\x00\x00\rIHDR" + struct.pack(">II", 3, 2) + b"\x08\x02\x00\x00\x00"
GIF = b"GIF89a" + struct.pack("<HH", 5, 7) + b"\x00" * 8


class TestSniff:
    """Format detection from the file header."""

    @pytest.mark.parametrize(
        "header, fmt, dims",
        [
            (PNG, "png", "3x2"),
            (GIF, "gif", "5x7"),
            (b"\xff\xd8\xff\xe0" + b"\x00" * 12, "jpeg", "unknown"),
            (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "webp", "unknown"),
            (b"BM" + b"\x00" * 14, "bmp", "unknown"),
            (b"II*\x00" + b"\x00" * 8, "tiff", "unknown"),
        ],
    )
    def test_formats(self, header, fmt, dims):
        info = sniff_image(header)
        assert info is not None
        assert (info.format, info.dimensions) == (fmt, dims)

    def test_text_is_not_an_image(self):
        assert sniff_image(b"hello world") is None


class TestViewImage:
    """VIEW_IMAGE reports metadata only."""

    def test_png(self, ctx, tmp_path):
        (tmp_path / "dot.png").write_bytes(PNG)
        out = run_tool(ctx, "VIEW_IMAGE", "dot.png")
        assert out == (
            f"[view-image-result]\npath: dot.png\nbytes: {len(PNG)}\nformat: png\nmime: image/png\n"
            f"dimensions: 3x2\nsha256: {hashlib.sha256(PNG).hexdigest()}\nnote: metadata-only\n"
        )

    def test_not_an_image(self, ctx, tmp_path):
        (tmp_path / "a.txt").write_text("plain text\n")
        assert run_tool(ctx, "VIEW_IMAGE", "a.txt").endswith("error: unsupported or unknown image format\n")

    def test_missing(self, ctx):
        assert run_tool(ctx, "VIEW_IMAGE", "gone.png").endswith("error: unsupported or unknown image format\n")

    def test_empty_path(self, ctx):
        assert run_tool(ctx, "VIEW_IMAGE", '{"path": ""}') == "[view-image-result]\nerror: empty path\n"
