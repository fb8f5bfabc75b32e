"""Conversation history: decision write-back, hydration and model conversion."""

import json

from claimdesk.models.conversation import Message, TextPart, ToolInvocationPart
from claimdesk.models.llm import ContentBlock, LLMMessage, TextBlock, ToolResultBlock, ToolUseBlock
from claimdesk.services.tool_states import GatedToolCall, ToolStateStore
from claimdesk.utils.logging import get_logger

logger = get_logger(__name__)

CLAIM_CONTEXT_TEMPLATE = "\n\n(Current claim: {claim_id})"


def attach_decision(messages: list[Message], call: GatedToolCall) -> list[Message]:
    """Write a decided call's state and output into its tool-invocation part.

    Returns a new message list; the input is left untouched.
    """
    updated: list[Message] = []
    for message in messages:
        message = message.model_copy(deep=True)
        for part in message.tool_parts():
            if part.tool_call_id == call.call_id and call.is_terminal:
                part.state = call.state
                part.output = call.output
        updated.append(message)
    return updated


def hydrate(messages: list[Message], tool_states: ToolStateStore) -> list[Message]:
    """Apply the stored lifecycle of every gated call to a conversation.

    The store is the only authority on gated card state. Whatever state or
    output a client sends back for a stored call is replaced, and a call the
    store still holds as proposed goes back to proposed with no output, so
    it is left out of the model history.
    """
    hydrated: list[Message] = []
    for message in messages:
        message = message.model_copy(deep=True)
        for part in message.tool_parts():
            call = tool_states.get(part.tool_call_id)
            if call is None:
                continue
            if part.state != call.state:
                logger.warning(
                    f"Tool call {call.call_id} arrived as {part.state}, stored as {call.state}; using stored state"
                )
            part.state = call.state
            part.output = call.output
            part.error_text = None
        hydrated.append(message)
    return hydrated


def with_claim_context(messages: list[Message], claim_id: str | None) -> list[Message]:
    """Append the selected claim to the last user message."""
    if not claim_id or not messages or messages[-1].role != "user":
        return messages

    last = messages[-1].model_copy(deep=True)
    suffix = CLAIM_CONTEXT_TEMPLATE.format(claim_id=claim_id)
    if last.plain_text().endswith(suffix):
        return messages
    last.parts.append(TextPart(text=suffix))
    return [*messages[:-1], last]


def to_llm_messages(messages: list[Message]) -> list[LLMMessage]:
    """Convert conversation messages into model messages.

    Tool-invocation parts with an output become a tool_use block followed by
    a tool_result in the next user message. Parts still awaiting a human
    decision are left out entirely, since the model cannot reason about a
    call whose outcome is unknown.

    Raises:
        ValueError: If the history does not end with a user turn or tool results
    """
    llm_messages: list[LLMMessage] = []

    for message in messages:
        if message.role == "user":
            text = message.plain_text()
            if text.strip():
                _append(llm_messages, LLMMessage(role="user", content=[TextBlock(text=text)]))
            continue

        blocks: list[ContentBlock] = []
        results: list[ContentBlock] = []
        for part in message.parts:
            if isinstance(part, TextPart):
                if results:
                    # Text after resolved tool calls belongs to the next model step
                    _append(llm_messages, LLMMessage(role="assistant", content=blocks))
                    _append(llm_messages, LLMMessage(role="user", content=results))
                    blocks, results = [], []
                if part.text:
                    blocks.append(TextBlock(text=part.text))
            elif isinstance(part, ToolInvocationPart):
                result = _tool_result(part)
                if result is None:
                    logger.debug(f"Skipping undecided tool call {part.tool_call_id} ({part.tool_name})")
                    continue
                blocks.append(ToolUseBlock(id=part.tool_call_id, name=part.tool_name, input=part.input))
                results.append(result)

        if blocks:
            _append(llm_messages, LLMMessage(role="assistant", content=blocks))
        if results:
            _append(llm_messages, LLMMessage(role="user", content=results))

    if not llm_messages or llm_messages[-1].role != "user":
        raise ValueError("Conversation must end with a user message or decided tool calls")

    return llm_messages


def _tool_result(part: ToolInvocationPart) -> ToolResultBlock | None:
    if part.state == "output-error":
        return ToolResultBlock(
            tool_use_id=part.tool_call_id,
            content=f"Error: {part.error_text or 'invalid tool call'}",
            is_error=True,
        )
    if not part.is_terminal or part.output is None:
        return None
    return ToolResultBlock(tool_use_id=part.tool_call_id, content=json.dumps(part.output))


def _append(llm_messages: list[LLMMessage], message: LLMMessage) -> None:
    """Append, merging consecutive same-role messages so roles alternate."""
    if llm_messages and llm_messages[-1].role == message.role:
        previous = llm_messages[-1]
        previous_blocks = _as_blocks(previous.content)
        new_blocks = _as_blocks(message.content)
        if message.role == "user":
            # Tool results must lead the user message that answers them
            merged = [b for b in previous_blocks if isinstance(b, ToolResultBlock)]
            merged += [b for b in new_blocks if isinstance(b, ToolResultBlock)]
            merged += [b for b in previous_blocks + new_blocks if not isinstance(b, ToolResultBlock)]
        else:
            merged = previous_blocks + new_blocks
        llm_messages[-1] = LLMMessage(role=message.role, content=merged)
        return
    llm_messages.append(message)


def _as_blocks(content: str | list[ContentBlock]) -> list[ContentBlock]:
    if isinstance(content, str):
        return [TextBlock(text=content)]
    return list(content)
