from __future__ import annotations

import json
import os
import shutil
import sys

import pytest

from pytoolrt.runner import run_tool
from pytoolrt.tools.builtin_tools.project_search import aggregate, parse_rg_line
from pytoolrt.tools.search import python_search, rg_argv


class TestListDir:
    """LIST_DIR ordering, recursion and limits."""

    def test_top_level_sorted(self, ctx, tree):
        out = run_tool(ctx, "LIST_DIR", ".")
        assert out == (
            "[list-dir-result]\npath: .\nrecursive: false\nmax_entries: 200\n"
            "1. [dir] .hidden\n2. [file] a.txt\n3. [dir] src\n"
        )

    def test_recursive_pre_order(self, ctx, tree):
        out = run_tool(ctx, "LIST_DIR", json.dumps({"path": ".", "recursive": True}))
        assert out.endswith(
            "1. [dir] .hidden\n2. [file] .hidden/c.txt\n3. [file] a.txt\n4. [dir] src\n5. [file] src/b.py\n"
        )

    def test_truncated(self, ctx, tree):
        out = run_tool(ctx, "LIST_DIR", json.dumps({"path": ".", "recursive": True, "max_entries": 2}))
        assert "2. [file] .hidden/c.txt\n" in out
        assert "3." not in out
        assert out.endswith("note: truncated by max_entries\n")

    def test_empty_directory(self, ctx, tmp_path):
        (tmp_path / "empty").mkdir()
        out = run_tool(ctx, "LIST_DIR", "empty")
        assert out.endswith("note: no entries\n")

    def test_missing(self, ctx):
        assert run_tool(ctx, "LIST_DIR", "nope") == "[list-dir-result]\npath: nope\nerror: file not found\n"

    def test_not_a_directory(self, ctx, tree):
        assert run_tool(ctx, "LIST_DIR", "a.txt").endswith("error: not a directory\n")

    @pytest.mark.skipif(sys.platform == "win32", reason="symlinks")
    def test_symlinked_dir_not_followed(self, ctx, tree):
        os.symlink(tree / "src", tree / "link")
        out = run_tool(ctx, "LIST_DIR", json.dumps({"path": ".", "recursive": True}))
        assert "[link] link\n" in out
        assert "link/b.py" not in out


class TestReadFile:
    """READ_FILE size cap and binary handling."""

    def test_text_file(self, ctx, tree):
        out = run_tool(ctx, "READ_FILE", "a.txt")
        assert out == "[read-file-result]\npath: a.txt\nbytes: 12\ncontent:\nhello\nworld\n"

    def test_too_big_has_no_content(self, ctx, tree):
        out = run_tool(ctx, "READ_FILE", json.dumps({"path": "a.txt", "max_bytes": 4}))
        assert out == "[read-file-result]\npath: a.txt\nerror: file too big (max_bytes:4)\n"

    def test_exactly_max_bytes_is_read(self, ctx, tree):
        out = run_tool(ctx, "READ_FILE", json.dumps({"path": "a.txt", "max_bytes": 12}))
        assert "bytes: 12\n" in out
        assert "content:\n" in out

    def test_binary_file(self, ctx, tmp_path):
        (tmp_path / "blob.bin").write_bytes(b"\x00abc")
        out = run_tool(ctx, "READ_FILE", "blob.bin")
        assert out == (
            "[read-file-result]\npath: blob.bin\nbytes: 4\nnote: file appears binary; content omitted\n"
        )

    def test_missing(self, ctx):
        assert run_tool(ctx, "READ_FILE", "nope.txt").endswith("error: file not found\n")

    def test_no_trailing_newline_gets_one(self, ctx, tmp_path):
        (tmp_path / "n.txt").write_text("abc")
        assert run_tool(ctx, "READ_FILE", "n.txt").endswith("content:\nabc\n")


class TestGrepFiles:
    """GREP_FILES over the Python search backend."""

    def test_matches_in_path_order(self, ctx, tree):
        out = run_tool(ctx, "GREP_FILES", "hello")
        assert out == (
            "[grep-files-result]\nquery: hello\npath: .\n"
            "./a.txt:1:1:hello\n./src/b.py:1:1:hello = 1\n./src/b.py:2:7:print(hello)\n"
            "matches: 3\n"
        )

    @pytest.mark.parametrize("max_matches", [1, 2, 3, 4, 50])
    def test_shown_plus_hidden_is_total(self, ctx, tree, max_matches):
        out = run_tool(ctx, "GREP_FILES", json.dumps({"query": "hello", "max_matches": max_matches}))
        shown = sum(1 for line in out.splitlines() if line.startswith("./"))
        hidden = 3 - shown
        assert shown == min(3, max_matches)
        assert "matches: 3\n" in out
        if hidden:
            assert out.endswith(f"note: truncated output ({hidden} hidden)\n")
        else:
            assert "note:" not in out

    def test_glob_filter(self, ctx, tree):
        out = run_tool(ctx, "GREP_FILES", json.dumps({"query": "hello", "glob": "*.py"}))
        assert "glob: *.py\n" in out
        assert "a.txt" not in out
        assert "matches: 2\n" in out

    def test_smart_case(self, ctx, tree):
        """An upper-case letter makes the search case-sensitive."""
        out = run_tool(ctx, "GREP_FILES", "Hello")
        assert out.endswith("matches: 0\nnote: no matches\n")

    def test_lower_case_query_ignores_case(self, ctx, tmp_path):
        (tmp_path / "t.txt").write_text("Hello\n")
        assert "matches: 1\n" in run_tool(ctx, "GREP_FILES", "hello")

    def test_bad_regex_is_error(self, ctx, tree):
        assert "error: rg failed (2)" in run_tool(ctx, "GREP_FILES", "(")

    def test_empty_query(self, ctx):
        assert run_tool(ctx, "GREP_FILES", '{"query": ""}') == "[grep-files-result]\nerror: empty query\n"

    def test_overflow(self, make_ctx, tree):
        ctx = make_ctx(search_max_output_bytes=10)
        out = run_tool(ctx, "GREP_FILES", "hello")
        assert out.endswith("error: search output exceeds 10 bytes; narrow the path or glob\n")

    @pytest.mark.skipif(shutil.which("rg") is None, reason="ripgrep not installed")
    def test_rg_overflow(self, make_ctx, tree):
        ctx = make_ctx(search_backend="rg", search_max_output_bytes=10)
        out = run_tool(ctx, "GREP_FILES", "hello")
        assert out.endswith("error: search output exceeds 10 bytes; narrow the path or glob\n")

    @pytest.mark.skipif(shutil.which("rg") is None, reason="ripgrep not installed")
    def test_rg_backend_agrees(self, make_ctx, tree):
        py = run_tool(make_ctx(search_backend="python"), "GREP_FILES", "hello")
        rg = run_tool(make_ctx(search_backend="rg"), "GREP_FILES", "hello")
        assert rg == py


class TestPythonSearch:
    """The fallback searcher mimics rg output and exit codes."""

    def test_single_file_path(self, tree):
        res = python_search(tree, "world", "a.txt")
        assert res.returncode == 0
        assert res.stdout == "a.txt:2:1:world\n"

    def test_missing_path(self, tree):
        assert python_search(tree, "x", "nope").returncode == 2

    def test_binary_skipped(self, tmp_path):
        (tmp_path / "blob.bin").write_bytes(b"hello\x00world")
        assert python_search(tmp_path, "hello", ".").returncode == 1

    def test_negated_glob(self, tree):
        res = python_search(tree, "hello", ".", "!*.py")
        assert res.stdout == "./a.txt:1:1:hello\n"

    def test_max_count_per_file(self, tree):
        res = python_search(tree, "hello", "src", max_count=1)
        assert res.stdout == "src/b.py:1:1:hello = 1\n"

    def test_rg_argv_shape(self):
        argv = rg_argv("foo", "src", "*.py", 8)
        assert argv[0] == "rg"
        assert argv[-3:] == ["--", "foo", "src"]
        assert "--max-count" in argv and "--glob" in argv


class TestProjectSearch:
    """PROJECT_SEARCH ranking and limits."""

    def test_ranked_by_hits(self, ctx, tree):
        out = run_tool(ctx, "PROJECT_SEARCH", "hello")
        assert out == (
            "[project-search-result]\nquery: hello\npath: .\nfiles: 2\n"
            "1. ./src/b.py (hits:2)\n   first: 1:1: hello = 1\n"
            "2. ./a.txt (hits:1)\n   first: 1:1: hello\n"
        )

    def test_max_files(self, ctx, tree):
        out = run_tool(ctx, "PROJECT_SEARCH", json.dumps({"query": "hello", "max_files": 1}))
        assert "2. " not in out
        assert out.endswith("note: omitted 1 files\n")

    def test_max_matches(self, ctx, tree):
        out = run_tool(ctx, "PROJECT_SEARCH", json.dumps({"query": "hello", "max_matches": 1}))
        assert "files: 1\n1. ./a.txt (hits:1)\n" in out
        assert out.endswith("note: omitted 2 matches beyond max_matches:1\n")

    def test_no_matches(self, ctx, tree):
        assert run_tool(ctx, "PROJECT_SEARCH", "zzz").endswith("files: 0\nnote: no matches\n")


class TestAggregate:
    """Folding rg lines into ranked per-file rows."""

    LINES = ["b:5:1:x", "a:5:1:y", "c:9:1:w", "c:1:3:z", "not a match line"]

    def test_order(self):
        rows, omitted = aggregate(self.LINES, 100)
        assert [r.path for r in rows] == ["c", "a", "b"]
        assert omitted == 0

    def test_first_hit_is_earliest(self):
        rows, _ = aggregate(self.LINES, 100)
        assert (rows[0].first_line, rows[0].first_col, rows[0].snippet) == (1, 3, "z")

    def test_hits_monotonic_in_max_matches(self):
        """Raising max_matches never lowers any file's count."""
        previous: dict[str, int] = {}
        for m in range(1, 6):
            rows, omitted = aggregate(self.LINES, m)
            counts = {r.path: r.hits for r in rows}
            for path, hits in previous.items():
                assert counts[path] >= hits
            assert sum(counts.values()) + omitted == 4
            previous = counts

    def test_colon_in_text(self):
        assert parse_rg_line("src/a.py:3:5:x = {'k': 1}") == ("src/a.py", 3, 5, "x = {'k': 1}")
