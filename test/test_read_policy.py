from __future__ import annotations

import sys

import pytest

from pytoolrt.runner import run_tool
from pytoolrt.tools.permissions import (
    READ_MAX_TOKENS,
    CommandRejected,
    check_read_command,
    parse_read_command,
    tokenize_command,
)
from pytoolrt.util.subprocess import run_cmd


class TestReadAllowlist:
    """Which argv the READ tool accepts."""

    @pytest.mark.parametrize(
        "argv",
        [
            ["ls", "-la"],
            ["cat", "a.txt"],
            ["rg", "-n", "pattern", "src"],
            ["sed", "-n", "1,20p", "a.txt"],
            ["find", ".", "-name", "*.py"],
            ["git", "status"],
            ["git", "log", "--oneline", "-5"],
            ["git", "rev-parse", "HEAD"],
            ["pwd"],
        ],
    )
    def test_allowed(self, argv):
        check_read_command(argv)

    def test_git_push_rejected(self):
        with pytest.raises(CommandRejected, match=r"command not allowed \(git push\)"):
            check_read_command(["git", "push"])

    def test_bare_git_rejected(self):
        with pytest.raises(CommandRejected, match=r"command not allowed \(git\)"):
            check_read_command(["git"])

    @pytest.mark.parametrize("binary", ["rm", "python", "bash", "curl", "touch"])
    def test_outside_allowlist(self, binary):
        with pytest.raises(CommandRejected, match=rf"command not allowed \({binary}\)"):
            check_read_command([binary, "x"])

    def test_path_separator_rejected(self):
        """An allowlisted name given by path is still refused."""
        with pytest.raises(CommandRejected):
            check_read_command(["/bin/ls"])

    @pytest.mark.parametrize(
        "argv, flag",
        [
            (["find", ".", "-delete"], "-delete"),
            (["find", ".", "-exec", "rm", "{}", ";"], "-exec"),
            (["sed", "-i", "s/a/b/", "f"], "-i"),
            (["sed", "-ni", "p", "f"], "-ni"),
            (["sed", "--in-place=.bak", "s/a/b/", "f"], "--in-place=.bak"),
            (["rg", "--pre=sh", "x"], "--pre=sh"),
            (["git", "diff", "--output=out.txt"], "--output=out.txt"),
        ],
    )
    def test_write_flags_rejected(self, argv, flag):
        with pytest.raises(CommandRejected) as exc:
            check_read_command(argv)
        assert str(exc.value) == f"argument not allowed ({flag})"

    def test_empty_command(self):
        with pytest.raises(CommandRejected, match="empty command"):
            check_read_command([])

    def test_too_many_arguments(self):
        with pytest.raises(CommandRejected, match="too many arguments"):
            check_read_command(["ls"] + ["x"] * READ_MAX_TOKENS)


class TestTokenize:
    """Quote-aware splitting."""

    def test_quotes_group_words(self):
        assert tokenize_command("grep 'a b' file") == ["grep", "a b", "file"]

    def test_unbalanced_quotes(self):
        with pytest.raises(CommandRejected, match="unbalanced quotes"):
            tokenize_command("grep 'oops file")

    def test_parse_combines_both(self):
        assert parse_read_command('rg -n "x y" src') == ["rg", "-n", "x y", "src"]


class TestReadTool:
    """READ runs argv directly and reports termination and streams."""

    def test_cat_file(self, ctx, tree):
        out = run_tool(ctx, "READ", "cat a.txt")
        assert out == "[read-result]\ncommand: cat a.txt\nterm: exited:0\nstdout:\nhello\nworld\n"

    def test_rejected_command_not_run(self, ctx):
        out = run_tool(ctx, "READ", "git push")
        assert out == "[read-result]\ncommand: git push\nerror: command not allowed (git push)\n"

    def test_no_output_marker(self, ctx, tmp_path):
        (tmp_path / "empty").mkdir()
        out = run_tool(ctx, "READ", "ls empty")
        assert out.endswith("term: exited:0\nstdout:\n(no output)\n")

    def test_nonzero_exit_with_stderr(self, ctx):
        out = run_tool(ctx, "READ", "cat missing.txt")
        assert "term: exited:1\n" in out
        assert "\nstderr:\n" in out
        assert "error:" not in out

    def test_json_payload(self, ctx, tree):
        out = run_tool(ctx, "READ", '{"command": "head -n 1 a.txt"}')
        assert out.endswith("stdout:\nhello\n")

    def test_shell_operators_are_plain_arguments(self, ctx, tree):
        """No shell: `;` reaches cat as a filename."""
        out = run_tool(ctx, "READ", "cat a.txt ; rm a.txt")
        assert (tree / "a.txt").exists()
        assert "term: exited:1" in out

    def test_overflow_is_error_with_hint(self, make_ctx, tmp_path):
        ctx = make_ctx(read_max_output_bytes=1000)
        (tmp_path / "big.txt").write_text("x" * 5000)
        out = run_tool(ctx, "READ", "cat big.txt")
        assert "error: output exceeds READ limit (1000 bytes)\n" in out
        assert "hint: read a smaller slice" in out
        assert "stdout:" not in out

    def test_overflow_hint_for_search(self, make_ctx, tmp_path):
        ctx = make_ctx(read_max_output_bytes=100)
        (tmp_path / "big.txt").write_text("x\n" * 500)
        out = run_tool(ctx, "READ", "grep x big.txt")
        assert "hint: narrow the search path/glob" in out

    @pytest.mark.skipif(sys.platform == "win32", reason="needs /dev/zero")
    def test_endless_output_is_cut_off(self, make_ctx):
        """The child is killed at the limit instead of being buffered to the end."""
        ctx = make_ctx(read_max_output_bytes=4096, read_timeout_s=10)
        out = run_tool(ctx, "READ", "cat /dev/zero")
        assert "error: output exceeds READ limit (4096 bytes)\n" in out
        assert "hint: read a smaller slice with head/tail/sed" in out


class TestRunCmd:
    """Bounded capture of a child's output."""

    @pytest.mark.skipif(sys.platform == "win32", reason="needs /dev/zero")
    def test_stops_at_limit(self, tmp_path):
        res = run_cmd(["cat", "/dev/zero"], cwd=str(tmp_path), timeout=10, max_output_bytes=1000)
        assert res.overflow
        assert len(res.stdout) == 1000

    def test_under_limit(self, tmp_path):
        (tmp_path / "a.txt").write_text("hello\n")
        res = run_cmd(["cat", "a.txt", "missing.txt"], cwd=str(tmp_path), max_output_bytes=1000)
        assert not res.overflow
        assert res.returncode == 1
        assert res.stdout == "hello\n"
        assert "missing.txt" in res.stderr
