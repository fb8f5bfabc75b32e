"""Human decisions on gated tool calls.

Every gated call moves exactly once from ``proposed`` to one of its two
terminal states. The positive outcome may carry a domain side effect; both
outcomes produce the feedback payload that is written back into the
conversation as the call's output.
"""

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from claimdesk.errors import InvalidDecisionError, ToolCallNotFoundError
from claimdesk.models.claim import Claim
from claimdesk.services.tool_states import GatedToolCall, ToolStateStore
from claimdesk.tools.registry import ToolsRegistry
from claimdesk.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class DecisionResult:
    """Outcome of recording a decision."""

    call: GatedToolCall
    applied: bool
    claim: Claim | None = None

    @property
    def output(self) -> dict[str, Any] | None:
        return self.call.output


class DecisionService:
    """Records human decisions and applies their side effects exactly once."""

    def __init__(self, registry: ToolsRegistry, tool_states: ToolStateStore):
        self.registry = registry
        self.tool_states = tool_states
        self._lock = asyncio.Lock()

    def register_proposal(self, call_id: str, tool_name: str, tool_input: dict[str, Any]) -> GatedToolCall:
        """Record a gated call the moment the model emits it.

        A call id is never recreated: registering a known id returns the
        stored call unchanged.
        """
        proposal = GatedToolCall(
            call_id=call_id,
            tool_name=tool_name,
            claim_id=tool_input.get("claimId"),
            input=tool_input,
        )
        stored = self.tool_states.add(proposal)
        logger.info(f"Registered {tool_name} proposal {call_id} (state: {stored.state})")
        return stored

    def get_call(self, call_id: str) -> GatedToolCall:
        """Get a gated call.

        Raises:
            ToolCallNotFoundError: If no such call was proposed
        """
        call = self.tool_states.get(call_id)
        if call is None:
            raise ToolCallNotFoundError(call_id)
        return call

    async def record_decision(self, call_id: str, outcome: str, final_body: str | None = None) -> DecisionResult:
        """Record a human decision on a gated call.

        Deciding a call that is already terminal is a no-op that returns the
        stored result.

        Args:
            call_id: Identifier of the proposed call
            outcome: One of the tool's two terminal states
            final_body: Human-edited letter body (draftAppeal only)

        Raises:
            ToolCallNotFoundError: If no such call was proposed
            InvalidDecisionError: If the outcome is not valid for the tool
        """
        async with self._lock:
            call = self.get_call(call_id)

            if call.is_terminal:
                logger.info(f"Tool call {call_id} already {call.state}, ignoring {outcome}")
                return DecisionResult(call=call, applied=False)

            tool = self.registry.get(call.tool_name)
            if tool is None or tool.decision is None:
                raise InvalidDecisionError(f"Tool {call.tool_name} does not take human decisions")

            policy = tool.decision
            if outcome not in policy.outcomes:
                allowed = " or ".join(policy.outcomes)
                raise InvalidDecisionError(f"Outcome for {call.tool_name} must be {allowed}, got {outcome!r}")

            accepted = outcome == policy.positive
            if final_body is not None and not (policy.accepts_edits and accepted):
                logger.warning(f"Ignoring edited body for {call.tool_name} {outcome} on {call_id}")
                final_body = None
            if accepted and final_body is not None and not final_body.strip():
                raise InvalidDecisionError("Edited letter body must not be empty")

            tool_input = tool.parse_input(call.input)

            # Side effect first: if it fails the call stays proposed
            claim = await policy.apply(tool_input, final_body) if accepted else None

            call.state = policy.positive if accepted else policy.negative
            call.output = policy.feedback(tool_input, accepted, final_body)
            call.decided_at = datetime.now(UTC)
            self.tool_states.save(call)

            logger.info(f"Tool call {call_id} ({call.tool_name}) -> {call.state}")
            return DecisionResult(call=call, applied=True, claim=claim)
