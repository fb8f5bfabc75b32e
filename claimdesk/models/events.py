"""Turn stream events and the reducer that rebuilds a message from them."""

from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter

from claimdesk.models.conversation import Message, TextPart, ToolInvocationPart, ToolMode

FinishReason = Literal["stop", "awaiting-decision", "max-steps", "cancelled"]


class _Event(BaseModel):
    class Config:
        populate_by_name = True


class StartStepEvent(_Event):
    """A model step began producing output."""

    type: Literal["start-step"] = "start-step"
    step: int
    message_id: str = Field(alias="messageId")


class TextDeltaEvent(_Event):
    """Fragment of assistant text."""

    type: Literal["text-delta"] = "text-delta"
    delta: str


class ToolCallProposedEvent(_Event):
    """The model emitted a tool call with schema-valid input."""

    type: Literal["tool-call-proposed"] = "tool-call-proposed"
    tool_name: str = Field(alias="toolName")
    call_id: str = Field(alias="callId")
    input: dict[str, Any]
    mode: ToolMode


class ToolCallOutputEvent(_Event):
    """A server-executed tool call was resolved inline."""

    type: Literal["tool-call-output-available"] = "tool-call-output-available"
    call_id: str = Field(alias="callId")
    output: Any


class ToolCallErrorEvent(_Event):
    """A tool call was rejected before reaching a resolver or a human."""

    type: Literal["tool-call-error"] = "tool-call-error"
    tool_name: str = Field(alias="toolName")
    call_id: str = Field(alias="callId")
    input: dict[str, Any] = Field(default_factory=dict)
    error_text: str = Field(alias="errorText")


class FinishEvent(_Event):
    """The turn ended normally."""

    type: Literal["finish"] = "finish"
    finish_reason: FinishReason = Field(alias="finishReason")
    steps: int
    tool_rounds: int = Field(alias="toolRounds")


class ErrorEvent(_Event):
    """The turn was aborted by a model service failure."""

    type: Literal["error"] = "error"
    error: str


StreamEvent = Annotated[
    StartStepEvent
    | TextDeltaEvent
    | ToolCallProposedEvent
    | ToolCallOutputEvent
    | ToolCallErrorEvent
    | FinishEvent
    | ErrorEvent,
    Field(discriminator="type"),
]

stream_event_adapter: TypeAdapter[StreamEvent] = TypeAdapter(StreamEvent)


def format_sse(event: _Event) -> str:
    """Frame an event as a Server-Sent Event."""
    data = event.model_dump_json(by_alias=True)
    return f"event: {event.type}\ndata: {data}\n\n"


def parse_sse(raw: str) -> list[StreamEvent]:
    """Parse a Server-Sent Events body back into events."""
    events: list[StreamEvent] = []
    for frame in raw.split("\n\n"):
        data_lines = [line[len("data: ") :] for line in frame.splitlines() if line.startswith("data: ")]
        if data_lines:
            events.append(stream_event_adapter.validate_json("\n".join(data_lines)))
    return events


class TranscriptBuilder:
    """Rebuild the assistant message of a turn from its event stream.

    Parts are appended in the order events arrive, so replaying a stored
    stream reproduces the original part order.
    """

    def __init__(self, message_id: str | None = None):
        self.message = Message(id=message_id, role="assistant", parts=[])
        self.finish_reason: FinishReason | None = None
        self.error: str | None = None

    def apply(self, event: _Event) -> None:
        """Fold one event into the message."""
        parts = self.message.parts

        if isinstance(event, StartStepEvent):
            if self.message.id is None:
                self.message.id = event.message_id

        elif isinstance(event, TextDeltaEvent):
            if parts and isinstance(parts[-1], TextPart):
                parts[-1].text += event.delta
            else:
                parts.append(TextPart(text=event.delta))

        elif isinstance(event, ToolCallProposedEvent):
            parts.append(
                ToolInvocationPart(
                    tool_name=event.tool_name,
                    tool_call_id=event.call_id,
                    input=event.input,
                    state="proposed",
                )
            )

        elif isinstance(event, ToolCallOutputEvent):
            part = self._find_tool_part(event.call_id)
            if part is not None:
                part.state = "output-available"
                part.output = event.output

        elif isinstance(event, ToolCallErrorEvent):
            part = self._find_tool_part(event.call_id)
            if part is not None:
                part.state = "output-error"
                part.error_text = event.error_text
                return
            parts.append(
                ToolInvocationPart(
                    tool_name=event.tool_name,
                    tool_call_id=event.call_id,
                    input=event.input,
                    state="output-error",
                    error_text=event.error_text,
                )
            )

        elif isinstance(event, FinishEvent):
            self.finish_reason = event.finish_reason

        elif isinstance(event, ErrorEvent):
            self.error = event.error

    def _find_tool_part(self, call_id: str) -> ToolInvocationPart | None:
        for part in self.message.parts:
            if isinstance(part, ToolInvocationPart) and part.tool_call_id == call_id:
                return part
        return None
