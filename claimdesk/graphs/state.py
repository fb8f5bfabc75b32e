"""State definitions for the turn graph."""

import asyncio
import operator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Annotated

from langchain_core.runnables import RunnableConfig
from pydantic import BaseModel, Field

from claimdesk.clients.anthropic import AnthropicTool, ModelClient
from claimdesk.config import DEFAULT_MAX_TOOL_ROUNDS
from claimdesk.errors import TurnCancelledError
from claimdesk.models.llm import LLMMessage, LLMUsage, ToolUseBlock
from claimdesk.tools.registry import ToolsRegistry

if TYPE_CHECKING:
    from claimdesk.services.decisions import DecisionService


class TurnState(BaseModel):
    """State carried through the agent/tools loop of a single turn."""

    # Model-facing history; nodes append to it
    messages: Annotated[list[LLMMessage], operator.add]
    message_id: str

    steps: int = 0
    tool_rounds: int = 0
    max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS

    # Tool calls requested by the latest model step, in emission order
    pending_tool_calls: list[ToolUseBlock] = Field(default_factory=list)
    awaiting_decision: bool = False


class CancellationToken:
    """Cooperative cancellation flag checked at every chunk boundary."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise TurnCancelledError("Turn cancelled")


@dataclass
class TurnContext:
    """Collaborators and progress counters for one turn."""

    model_client: ModelClient
    registry: ToolsRegistry
    decisions: "DecisionService"
    system_prompt: str
    tools: list[AnthropicTool]
    cancel_token: CancellationToken
    usage: LLMUsage
    events: asyncio.Queue = field(default_factory=asyncio.Queue)
    steps: int = 0
    tool_rounds: int = 0

    def emit(self, event: BaseModel) -> None:
        """Queue a stream event for the caller of the turn."""
        self.events.put_nowait(event)


TURN_CONTEXT_KEY = "turn_context"


def get_turn_context(config: RunnableConfig) -> TurnContext:
    """Extract the turn context from the runnable config."""
    context = config.get("configurable", {}).get(TURN_CONTEXT_KEY)
    if context is None:
        raise ValueError("Turn context missing from graph config")
    return context
