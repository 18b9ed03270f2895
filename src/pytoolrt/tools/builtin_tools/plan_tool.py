from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Literal

from ..base import ResultText, ToolContext, ToolResult, ToolSpec
from ..payload import WHITESPACE, InvalidPayload, trim

Status = Literal["pending", "in_progress", "completed"]

MAX_PLAN_STEPS = 64

_STATUS_WORDS: dict[str, Status] = {
    "pending": "pending",
    "in_progress": "in_progress",
    "in-progress": "in_progress",
    "completed": "completed",
}

USAGE = "expected JSON object with plan:[{step,status}]"


@dataclass(frozen=True)
class PlanStep:
    step: str
    status: Status


@dataclass(frozen=True)
class PlanArgs:
    steps: tuple[PlanStep, ...]
    explanation: str | None = None

    @property
    def in_progress(self) -> int:
        return sum(1 for s in self.steps if s.status == "in_progress")


def render_steps(steps) -> str:
    return "\n".join(f"- [{s.status}] {s.step}" for s in steps)


@dataclass
class PlanState:
    """The current plan; each UPDATE_PLAN call replaces it whole."""

    steps: list[PlanStep] = field(default_factory=list)
    explanation: str | None = None
    revision: int = 0

    def replace(self, args: PlanArgs) -> None:
        self.steps = list(args.steps)
        self.explanation = args.explanation
        self.revision += 1

    def render(self) -> str:
        if not self.steps:
            return "(no plan)"
        return render_steps(self.steps)


def unwrap_payload(payload: str) -> str:
    """Strip an <UPDATE_PLAN> tag or ```update_plan fence if present."""
    text = trim(payload or "")
    if text.startswith("<UPDATE_PLAN>"):
        rest = text[len("<UPDATE_PLAN>"):]
        end = rest.find("</UPDATE_PLAN>")
        if end < 0:
            raise InvalidPayload("unterminated <UPDATE_PLAN>", usage=USAGE)
        return trim(rest[:end])
    if text.startswith("```update_plan"):
        nl = text.find("\n")
        if nl < 0:
            raise InvalidPayload("unterminated fence", usage=USAGE)
        body = text[nl + 1:]
        end = body.find("```")
        if end < 0:
            raise InvalidPayload("unterminated fence", usage=USAGE)
        return trim(body[:end])
    return text


def _step(entry: Any) -> PlanStep:
    if not isinstance(entry, dict):
        raise InvalidPayload("plan entries must be objects", usage=USAGE)
    step = entry.get("step")
    status = entry.get("status")
    if not isinstance(step, str) or not step.strip(WHITESPACE):
        raise InvalidPayload("step must be a non-empty string", usage=USAGE)
    if not isinstance(status, str):
        raise InvalidPayload("status must be a string", usage=USAGE)
    word = _STATUS_WORDS.get(status.strip(WHITESPACE).lower())
    if word is None:
        raise InvalidPayload(f"unknown status {status!r}", usage=USAGE)
    return PlanStep(step.strip(WHITESPACE), word)


def parse_plan(payload: str) -> PlanArgs:
    body = unwrap_payload(payload)
    if not body.startswith("{"):
        raise InvalidPayload("expected a JSON object", usage=USAGE)
    try:
        obj = json.loads(body)
    except json.JSONDecodeError as e:
        raise InvalidPayload(f"malformed JSON: {e.msg}", usage=USAGE) from e
    if not isinstance(obj, dict):
        raise InvalidPayload("expected a JSON object", usage=USAGE)

    explanation = obj.get("explanation")
    if explanation is not None and not isinstance(explanation, str):
        raise InvalidPayload("explanation must be a string", usage=USAGE)
    explanation = (explanation or "").strip(WHITESPACE) or None

    plan = obj.get("plan")
    if not isinstance(plan, list):
        raise InvalidPayload("plan must be a list", usage=USAGE)
    if not plan:
        raise InvalidPayload("empty plan", usage="plan must contain at least one step")
    if len(plan) > MAX_PLAN_STEPS:
        raise InvalidPayload("plan too large", usage=f"plan has too many steps; max:{MAX_PLAN_STEPS}")

    args = PlanArgs(tuple(_step(e) for e in plan), explanation)
    if args.in_progress > 1:
        raise InvalidPayload("multiple in_progress", usage="at most one in_progress step is allowed")
    return args


class UpdatePlanTool:
    spec = ToolSpec(
        name="UPDATE_PLAN",
        result_tag="update-plan",
        description="Replace the working plan: JSON {explanation?, plan:[{step, status: pending|in_progress|completed}]}.",
        usage=USAGE,
        permission_key="plan",
    )

    def parse(self, payload: str) -> PlanArgs:
        return parse_plan(payload)

    def execute(self, ctx: ToolContext, args: PlanArgs) -> ToolResult:
        if ctx.plan is not None:
            ctx.plan.replace(args)

        out = ResultText("update-plan").field("status", "ok")
        if args.explanation:
            out.field("explanation", args.explanation)
        out.field("steps", len(args.steps))
        out.field("in_progress", args.in_progress)
        out.section("plan", render_steps(args.steps))
        return out.ok()
