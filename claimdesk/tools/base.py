"""Base types and definitions for tools."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, ClassVar

from pydantic import BaseModel

from claimdesk.models.claim import Claim
from claimdesk.models.conversation import ToolCallState, ToolMode

ToolResolver = Callable[[BaseModel], Awaitable[dict[str, Any]]]


class ToolInput(BaseModel):
    """Base for tool input schemas.

    Model-proposed input is untrusted: values are never coerced and unknown
    fields are rejected.
    """

    class Config:
        strict = True
        extra = "forbid"
        populate_by_name = True


class GatedDecisionPolicy:
    """Two-outcome lifecycle of a human-gated tool.

    Subclasses name their positive and negative terminal states, the domain
    side effect of the positive outcome, and the feedback payload the model
    sees on its next turn.
    """

    positive: ClassVar[ToolCallState]
    negative: ClassVar[ToolCallState]
    # Whether the human may edit the proposal before accepting it
    accepts_edits: ClassVar[bool] = False

    @property
    def outcomes(self) -> tuple[ToolCallState, ToolCallState]:
        """Terminal states reachable from proposed."""
        return self.positive, self.negative

    async def apply(self, tool_input: BaseModel, final_body: str | None) -> Claim | None:
        """Apply the side effect of the positive outcome, returning the changed claim."""
        return None

    def feedback(self, tool_input: BaseModel, accepted: bool, final_body: str | None) -> dict[str, Any]:
        """Build the tool result payload for the decision."""
        raise NotImplementedError


@dataclass
class ToolDefinition:
    """Definition of a tool available to the assistant."""

    name: str
    description: str
    input_schema_class: type[BaseModel]
    mode: ToolMode
    resolver: ToolResolver | None = None
    decision: GatedDecisionPolicy | None = None

    def __post_init__(self) -> None:
        if self.mode == "server" and self.resolver is None:
            raise ValueError(f"Server tool {self.name} needs a resolver")
        if self.mode == "gated" and (self.decision is None or self.resolver is not None):
            raise ValueError(f"Gated tool {self.name} needs a decision policy and no resolver")

    def get_json_schema(self) -> dict[str, Any]:
        """Get JSON schema for this tool's input."""
        return self.input_schema_class.model_json_schema()

    def parse_input(self, raw_input: dict[str, Any]) -> BaseModel:
        """Parse and validate tool input.

        Raises:
            pydantic.ValidationError: If the input does not match the schema
        """
        return self.input_schema_class.model_validate(raw_input)
