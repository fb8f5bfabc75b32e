"""Conversation, request and response models."""

from datetime import datetime
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, model_validator

ToolMode = Literal["server", "gated"]

ToolCallState = Literal[
    "proposed",
    "approved",
    "rejected",
    "accepted",
    "discarded",
    "confirmed",
    "cancelled",
    "output-available",
    "output-error",
]

GATED_TERMINAL_STATES: frozenset[str] = frozenset(
    {"approved", "rejected", "accepted", "discarded", "confirmed", "cancelled"}
)


class TextPart(BaseModel):
    """Text fragment of a message."""

    type: Literal["text"] = "text"
    text: str


class ToolInvocationPart(BaseModel):
    """A model-proposed tool call and, once resolved, its output."""

    type: Literal["tool-invocation"] = "tool-invocation"
    tool_name: str = Field(alias="toolName")
    tool_call_id: str = Field(alias="toolCallId")
    input: dict[str, Any] = Field(default_factory=dict)
    state: ToolCallState = "proposed"
    output: Any | None = None
    error_text: str | None = Field(default=None, alias="errorText")

    class Config:
        populate_by_name = True

    @property
    def is_terminal(self) -> bool:
        """Whether the call has left the proposed state."""
        return self.state != "proposed"


Part = Annotated[TextPart | ToolInvocationPart, Field(discriminator="type")]


class Message(BaseModel):
    """A conversation message made of ordered parts."""

    id: str | None = None
    role: Literal["user", "assistant"]
    parts: list[Part] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _text_shorthand(cls, data: Any) -> Any:
        # {"role": "user", "text": "..."} is accepted for single-text messages
        if isinstance(data, dict) and "text" in data and "parts" not in data:
            data = dict(data)
            data["parts"] = [{"type": "text", "text": data.pop("text")}]
        return data

    def plain_text(self) -> str:
        """Concatenate the text parts of the message."""
        return "".join(part.text for part in self.parts if isinstance(part, TextPart))

    def tool_parts(self) -> list[ToolInvocationPart]:
        """Return the tool-invocation parts in emission order."""
        return [part for part in self.parts if isinstance(part, ToolInvocationPart)]


class ChatRequest(BaseModel):
    """Request body for the chat endpoint."""

    messages: list[Message] = Field(min_length=1)
    claim_id: str | None = Field(default=None, alias="claimId")

    class Config:
        populate_by_name = True


class HydrateRequest(BaseModel):
    """Request body for re-rendering a stored conversation."""

    messages: list[Message]


class HydrateResponse(BaseModel):
    """Conversation with persisted decisions applied."""

    messages: list[Message]


class DecisionRequest(BaseModel):
    """A human decision on a gated tool call."""

    outcome: str = Field(min_length=1)
    final_body: str | None = Field(default=None, alias="finalBody")

    class Config:
        populate_by_name = True


class DecisionResponse(BaseModel):
    """Result of recording a human decision."""

    call_id: str = Field(alias="callId")
    tool_name: str = Field(alias="toolName")
    state: ToolCallState
    output: dict[str, Any] | None = None
    applied: bool
    claim: dict[str, Any] | None = None

    class Config:
        populate_by_name = True


class ToolDescription(BaseModel):
    """Public description of a registered tool."""

    name: str
    description: str
    input_schema: dict[str, Any] = Field(alias="inputSchema")
    mode: ToolMode

    class Config:
        populate_by_name = True


class HealthResponse(BaseModel):
    """Response model for health check endpoint."""

    status: str
    timestamp: datetime
    version: str
