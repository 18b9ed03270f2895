from __future__ import annotations

import json

import pytest

from pytoolrt.app_context import AppContext
from pytoolrt.events.store import EventStore
from pytoolrt.runner import ToolInvocation, extract_directive, run_directive, run_tool
from pytoolrt.tools.base import ToolSpec
from pytoolrt.tools.permissions import PermissionConfig, PermissionGate, PermissionRule

from conftest import make_config


class Boom:
    spec = ToolSpec(name="BOOM", result_tag="boom", description="always fails", usage="anything",
                    permission_key="read")

    def parse(self, payload):
        return payload

    def execute(self, ctx, args):
        raise RuntimeError("kaput")


class TestRunTool:
    """Dispatch by name; every outcome is result text."""

    def test_unknown_tool(self, ctx):
        assert run_tool(ctx, "FROB", "x") == "[FROB-result]\nerror: unknown tool (FROB)\n"

    def test_name_case_insensitive(self, ctx, tree):
        assert run_tool(ctx, " read_file ", "a.txt").startswith("[read-file-result]\n")

    def test_invalid_payload_uses_usage(self, ctx):
        assert run_tool(ctx, "LIST_DIR", "{bad json") == (
            "[list-dir-result]\nerror: invalid payload (expected plain path or JSON with path, recursive, max_entries)\n"
        )

    def test_tool_exception_becomes_error(self, ctx):
        ctx.tools.register(Boom())
        assert run_tool(ctx, "BOOM", "x") == "[boom-result]\nerror: RuntimeError: kaput\n"

    @pytest.mark.parametrize("name", ["READ_FILE", "LIST_DIR", "GREP_FILES", "VIEW_IMAGE", "NOPE"])
    def test_always_newline_terminated(self, ctx, name):
        assert run_tool(ctx, name, "missing-thing").endswith("\n")

    def test_registered_tools(self, ctx):
        assert set(ctx.tools.names()) == {
            "READ", "LIST_DIR", "READ_FILE", "GREP_FILES", "PROJECT_SEARCH", "APPLY_PATCH",
            "EXEC_COMMAND", "WRITE_STDIN", "UPDATE_PLAN", "VIEW_IMAGE", "SKILL",
        }


class TestPermissions:
    """Per-tool decisions from config rules."""

    def test_deny_by_key(self, make_ctx):
        ctx = make_ctx(permissions=[PermissionRule("exec", "deny")])
        assert run_tool(ctx, "EXEC_COMMAND", "echo hi") == "[exec-result]\nerror: denied by permissions (exec)\n"
        assert len(ctx.sessions) == 0

    def test_deny_by_tool_name(self, make_ctx, tree):
        ctx = make_ctx(permissions=[PermissionRule("tool:read_file", "deny")])
        assert run_tool(ctx, "READ_FILE", "a.txt").endswith("error: denied by permissions (read)\n")
        assert "error:" not in run_tool(ctx, "LIST_DIR", ".")

    def test_later_rule_wins(self):
        cfg = PermissionConfig()
        cfg.apply_rules([PermissionRule("edit", "deny"), PermissionRule("tool:APPLY_*", "allow")])
        assert cfg.decide("edit", "APPLY_PATCH") == "allow"

    def test_ask_without_terminal_denies(self):
        cfg = PermissionConfig()
        cfg.set("edit", "ask")
        assert PermissionGate(cfg).decide("edit", "APPLY_PATCH", "") is False
        assert PermissionGate(cfg, auto_approve=True).decide("edit", "APPLY_PATCH", "") is True

    def test_denied_patch_writes_nothing(self, make_ctx, tmp_path):
        ctx = make_ctx(permissions=[PermissionRule("edit", "ask")])
        run_tool(ctx, "APPLY_PATCH", "*** Begin Patch\n*** Add File: x.txt\n+x\n*** End Patch")
        assert not (tmp_path / "x.txt").exists()


class TestEvents:
    """Dispatch records structured events when a store is attached."""

    def test_event_types(self, tmp_path, tree):
        store = EventStore.open("t1", tmp_path / "events")
        cfg = make_config(permissions=[PermissionRule("tool:LIST_DIR", "deny")])
        with AppContext.build(tmp_path, cfg, events=store) as ctx:
            run_tool(ctx, "READ_FILE", "a.txt")
            run_tool(ctx, "LIST_DIR", ".")
            run_tool(ctx, "NOPE", "")
        types = [e.type for e in store.iter_events()]
        assert types == ["tool.call", "tool.result", "tool.denied", "tool.missing"]
        result = list(store.iter_events())[1]
        assert result.data["tool"] == "READ_FILE"
        assert result.data["is_error"] is False
        assert isinstance(result.data["elapsed_ms"], int)

    def test_corrupt_lines_skipped(self, tmp_path):
        store = EventStore.open("t2", tmp_path)
        store.append("tool.call", {"tool": "READ"})
        with store.path.open("a", encoding="utf-8") as f:
            f.write("{not json\n\n[1, 2]\n")
        store.append("tool.result", {"tool": "READ"})
        assert [e.type for e in store.iter_events()] == ["tool.call", "tool.result"]


class TestDirectives:
    """Finding a tool call in assistant text."""

    def test_tag(self):
        assert extract_directive("<READ_FILE>\na.txt\n</READ_FILE>") == ToolInvocation("READ_FILE", "a.txt")

    def test_lower_case_tag(self):
        assert extract_directive("<list_dir>src</list_dir>") == ToolInvocation("LIST_DIR", "src")

    def test_fence(self):
        assert extract_directive("```grep_files\nhello\n```") == ToolInvocation("GREP_FILES", "hello")

    def test_read_prefix(self):
        assert extract_directive("READ: ls -la") == ToolInvocation("READ", "ls -la")
        assert extract_directive("READ cat a.txt") == ToolInvocation("READ", "cat a.txt")

    @pytest.mark.parametrize(
        "text",
        ["hello world", "", "<NOPE>x</NOPE>", "<READ_FILE>a.txt", "```python\nprint(1)\n```", "READ:"],
    )
    def test_no_directive(self, text):
        assert extract_directive(text) is None

    def test_run_directive(self, ctx, tree):
        assert run_directive(ctx, "<READ_FILE>a.txt</READ_FILE>").startswith("[read-file-result]\npath: a.txt\n")
        assert run_directive(ctx, "just chatting") is None


class TestUpdatePlan:
    """UPDATE_PLAN validates and replaces the working plan."""

    PLAN = {
        "explanation": "doing work",
        "plan": [
            {"step": "Audit files", "status": "completed"},
            {"step": "Implement change", "status": "in-progress"},
            {"step": "Run tests", "status": "pending"},
        ],
    }

    def test_accepted(self, ctx):
        out = run_tool(ctx, "UPDATE_PLAN", json.dumps(self.PLAN))
        assert out == (
            "[update-plan-result]\nstatus: ok\nexplanation: doing work\nsteps: 3\nin_progress: 1\nplan:\n"
            "- [completed] Audit files\n- [in_progress] Implement change\n- [pending] Run tests\n"
        )
        assert [s.status for s in ctx.plan.steps] == ["completed", "in_progress", "pending"]
        assert ctx.plan.revision == 1
        assert ctx.plan.render().splitlines()[1] == "- [in_progress] Implement change"

    @pytest.mark.parametrize("wrap", ["<UPDATE_PLAN>{}</UPDATE_PLAN>", "```update_plan\n{}\n```"])
    def test_wrapped(self, ctx, wrap):
        out = run_tool(ctx, "UPDATE_PLAN", wrap.replace("{}", json.dumps(self.PLAN)))
        assert "status: ok\n" in out

    def test_two_in_progress(self, ctx):
        plan = {"plan": [{"step": "a", "status": "in_progress"}, {"step": "b", "status": "in_progress"}]}
        assert run_tool(ctx, "UPDATE_PLAN", json.dumps(plan)) == (
            "[update-plan-result]\nerror: invalid payload (at most one in_progress step is allowed)\n"
        )
        assert ctx.plan.steps == []

    def test_empty_plan(self, ctx):
        out = run_tool(ctx, "UPDATE_PLAN", '{"plan": []}')
        assert out.endswith("error: invalid payload (plan must contain at least one step)\n")

    def test_too_many_steps(self, ctx):
        plan = {"plan": [{"step": f"s{i}", "status": "pending"} for i in range(65)]}
        out = run_tool(ctx, "UPDATE_PLAN", json.dumps(plan))
        assert out.endswith("error: invalid payload (plan has too many steps; max:64)\n")

    @pytest.mark.parametrize(
        "payload",
        ["just text", '{"plan": [{"step": "a", "status": "done"}]}', '{"plan": [{"step": "", "status": "pending"}]}'],
    )
    def test_malformed(self, ctx, payload):
        assert run_tool(ctx, "UPDATE_PLAN", payload).endswith(
            "error: invalid payload (expected JSON object with plan:[{step,status}])\n"
        )
