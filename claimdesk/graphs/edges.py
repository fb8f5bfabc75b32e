"""Edge logic and routing for the turn graph."""

from typing import Literal

from claimdesk.graphs.state import TurnState
from claimdesk.utils.logging import get_logger

logger = get_logger(__name__)


def route_agent_output(state: TurnState) -> Literal["tools", "finish"]:
    """Route from the agent node.

    A step without tool calls ends the turn. A step that asks for tools after
    the round budget is spent also ends it, before anything is executed.
    """
    if not state.pending_tool_calls:
        return "finish"

    if state.tool_rounds >= state.max_tool_rounds:
        logger.warning(f"Model requested tool round {state.tool_rounds + 1} of max {state.max_tool_rounds}")
        return "finish"

    return "tools"


def route_tool_output(state: TurnState) -> Literal["agent", "finish"]:
    """Route from the tools node.

    Gated proposals wait for a human outside the turn, so the turn ends;
    otherwise the model sees the tool results and continues.
    """
    if state.awaiting_decision:
        return "finish"
    return "agent"
