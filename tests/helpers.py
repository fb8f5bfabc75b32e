"""Scripted model client and builders for tool calls used across the tests."""

from dataclasses import dataclass, field
from typing import Any

from claimdesk.errors import ModelServiceError
from claimdesk.models.llm import LLMMessage, LLMResponse, ResponseComplete, TextBlock, TextChunk, ToolUseBlock


@dataclass
class ScriptedStep:
    """One scripted model step: streamed text, then tool calls or a failure."""

    text: list[str] = field(default_factory=list)
    tool_calls: list[ToolUseBlock] = field(default_factory=list)
    error: Exception | None = None


def text_step(*chunks: str) -> ScriptedStep:
    return ScriptedStep(text=list(chunks))


def tool_call(name: str, tool_input: dict[str, Any], call_id: str) -> ToolUseBlock:
    return ToolUseBlock(id=call_id, name=name, input=tool_input)


def tool_step(*calls: ToolUseBlock, text: str | None = None) -> ScriptedStep:
    return ScriptedStep(text=[text] if text else [], tool_calls=list(calls))


def failing_step(*chunks: str, error: Exception | None = None) -> ScriptedStep:
    return ScriptedStep(text=list(chunks), error=error or ModelServiceError("upstream timed out"))


class FakeModelClient:
    """Model client that replays scripted steps and records what it was sent."""

    def __init__(self, steps: list[ScriptedStep] | None = None):
        self.steps = list(steps or [])
        self.calls: list[list[LLMMessage]] = []

    async def stream_message(self, messages, system_prompt, tools=None):
        self.calls.append([message.model_copy(deep=True) for message in messages])
        if not self.steps:
            raise AssertionError("Model called more times than scripted")
        step = self.steps.pop(0)

        for chunk in step.text:
            yield TextChunk(text=chunk)
        if step.error is not None:
            raise step.error

        content: list = [TextBlock(text="".join(step.text))] if step.text else []
        content.extend(step.tool_calls)
        yield ResponseComplete(
            response=LLMResponse(
                content=content,
                stop_reason="tool_use" if step.tool_calls else "end_turn",
                model="fake-model",
            )
        )


async def collect(events) -> list:
    return [event async for event in events]


def lookup_step(claim_id: str, call_id: str, text: str | None = None) -> ScriptedStep:
    return tool_step(tool_call("lookupClaim", {"claimId": claim_id}, call_id), text=text)


def suggest_action_input(claim_id: str = "CLM-1001", action: str = "appeal", **overrides) -> dict[str, Any]:
    tool_input = {
        "claimId": claim_id,
        "action": action,
        "label": "File a formal appeal",
        "reasoning": "CO-197 denial with documented emergency",
        "urgency": "high",
        "steps": ["Gather records", "Submit appeal"],
    }
    tool_input.update(overrides)
    return tool_input


def draft_appeal_input(claim_id: str = "CLM-1001") -> dict[str, Any]:
    return {
        "claimId": claim_id,
        "letterType": "appeal",
        "subject": f"Appeal of denied claim {claim_id}",
        "body": "Dear Appeals Department,\nWe request reconsideration.",
    }
