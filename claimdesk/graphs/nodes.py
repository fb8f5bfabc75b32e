"""Node implementations for the turn graph."""

import json
from typing import Any

from langchain_core.runnables import RunnableConfig
from pydantic import ValidationError

from claimdesk.errors import ModelServiceError
from claimdesk.graphs.state import TurnContext, TurnState, get_turn_context
from claimdesk.models.events import (
    FinishEvent,
    StartStepEvent,
    TextDeltaEvent,
    ToolCallErrorEvent,
    ToolCallOutputEvent,
    ToolCallProposedEvent,
)
from claimdesk.models.llm import (
    ContentBlock,
    LLMMessage,
    LLMResponse,
    ResponseComplete,
    TextChunk,
    ToolResultBlock,
    ToolUseBlock,
)
from claimdesk.utils.logging import get_logger

logger = get_logger(__name__)


async def agent_node(state: TurnState, config: RunnableConfig) -> dict[str, Any]:
    """Run one model step, streaming its text as it arrives.

    Tool calls are collected from the completed step and handed to the
    router; nothing is executed here.
    """
    context = get_turn_context(config)
    step = state.steps + 1
    logger.info(f"Model step {step} for message {state.message_id} ({len(state.messages)} messages)")

    context.cancel_token.raise_if_cancelled()

    response: LLMResponse | None = None
    started = False
    async for chunk in context.model_client.stream_message(state.messages, context.system_prompt, context.tools):
        context.cancel_token.raise_if_cancelled()

        if not started:
            context.emit(StartStepEvent(step=step, message_id=state.message_id))
            started = True

        if isinstance(chunk, TextChunk):
            if chunk.text:
                context.emit(TextDeltaEvent(delta=chunk.text))
        elif isinstance(chunk, ResponseComplete):
            response = chunk.response

    if response is None:
        raise ModelServiceError("Model stream ended without a complete response")

    context.steps = step
    context.usage.add(response.usage)

    tool_calls = response.tool_uses
    logger.debug(f"Step {step} stop reason: {response.stop_reason}, tool calls: {[c.name for c in tool_calls]}")

    return {
        "messages": [LLMMessage(role="assistant", content=response.content)] if response.content else [],
        "steps": step,
        "pending_tool_calls": tool_calls,
    }


async def tools_node(state: TurnState, config: RunnableConfig) -> dict[str, Any]:
    """Handle the tool calls of the latest step in emission order.

    Server tools are validated and resolved inline. Gated tools are
    validated, registered as proposals and left for a human. Calls that fail
    validation never reach a resolver or a human; the error goes back to the
    model instead.
    """
    context = get_turn_context(config)
    results: list[ContentBlock] = []
    awaiting_decision = False

    for call in state.pending_tool_calls:
        context.cancel_token.raise_if_cancelled()

        tool = context.registry.get(call.name)
        if tool is None:
            logger.error(f"Unknown tool requested: {call.name}")
            error_text = f"Unknown tool {call.name}. Available tools: {', '.join(context.registry.get_tool_names())}"
            _report_error(context, call, error_text, results)
            continue

        try:
            parsed_input = tool.parse_input(call.input)
        except ValidationError as e:
            error_text = format_validation_error(e)
            logger.warning(f"Invalid input for {call.name} ({call.id}): {error_text}")
            _report_error(context, call, error_text, results)
            continue

        context.emit(ToolCallProposedEvent(tool_name=call.name, call_id=call.id, input=call.input, mode=tool.mode))

        if tool.mode == "gated":
            context.decisions.register_proposal(call.id, call.name, call.input)
            awaiting_decision = True
            continue

        try:
            output = await tool.resolver(parsed_input)
        except Exception as e:
            logger.error(f"Tool {call.name} failed: {e}", exc_info=True)
            error_text = f"{call.name} failed: {e}"
            _report_error(context, call, error_text, results)
            continue

        logger.debug(f"Tool {call.name} succeeded: {str(output)[:100]}...")
        context.emit(ToolCallOutputEvent(call_id=call.id, output=output))
        results.append(ToolResultBlock(tool_use_id=call.id, content=json.dumps(output)))

    tool_rounds = state.tool_rounds + 1
    context.tool_rounds = tool_rounds

    update: dict[str, Any] = {
        "pending_tool_calls": [],
        "tool_rounds": tool_rounds,
        "awaiting_decision": awaiting_decision,
    }
    if results and not awaiting_decision:
        update["messages"] = [LLMMessage(role="user", content=results)]
    return update


def finish_node(state: TurnState, config: RunnableConfig) -> dict[str, Any]:
    """Emit the terminal event of the turn."""
    context = get_turn_context(config)
    if state.awaiting_decision:
        reason = "awaiting-decision"
    elif state.pending_tool_calls:
        # The model asked for another round after the budget was spent
        reason = "max-steps"
        logger.warning(
            f"Tool round limit ({state.max_tool_rounds}) reached, dropping "
            f"{len(state.pending_tool_calls)} requested call(s)"
        )
    else:
        reason = "stop"

    logger.info(f"Turn {state.message_id} finished: {reason} after {state.steps} steps")
    context.emit(FinishEvent(finish_reason=reason, steps=state.steps, tool_rounds=state.tool_rounds))
    return {}


def format_validation_error(error: ValidationError) -> str:
    """Summarize a validation error for the model."""
    problems = []
    for item in error.errors():
        location = ".".join(str(part) for part in item.get("loc", ())) or "input"
        problems.append(f"{location}: {item.get('msg', 'invalid value')}")
    return "Invalid input: " + "; ".join(problems)


def _report_error(context: TurnContext, call: ToolUseBlock, error_text: str, results: list[ContentBlock]) -> None:
    context.emit(ToolCallErrorEvent(tool_name=call.name, call_id=call.id, input=call.input, error_text=error_text))
    results.append(ToolResultBlock(tool_use_id=call.id, content=f"Error: {error_text}", is_error=True))
