"""API endpoints for the claims review assistant."""

from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from pydantic import ValidationError

from claimdesk import __version__
from claimdesk.api.deps import (
    get_claim_repository,
    get_decision_service,
    get_registry,
    get_tool_state_store,
    get_turn_runner,
)
from claimdesk.errors import ClaimNotFoundError, InvalidDecisionError, ToolCallNotFoundError
from claimdesk.graphs.nodes import format_validation_error
from claimdesk.graphs.state import CancellationToken
from claimdesk.graphs.turn import TurnRunner, prepare_history
from claimdesk.models.conversation import (
    ChatRequest,
    DecisionRequest,
    DecisionResponse,
    HealthResponse,
    HydrateRequest,
    HydrateResponse,
    ToolDescription,
)
from claimdesk.models.events import ErrorEvent, format_sse
from claimdesk.models.llm import LLMMessage
from claimdesk.services.claims import ClaimRepository
from claimdesk.services.decisions import DecisionService
from claimdesk.services.history import hydrate
from claimdesk.services.tool_states import GatedToolCall, ToolStateStore
from claimdesk.tools.registry import ToolsRegistry
from claimdesk.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


@dataclass
class ChatTurn:
    """A validated chat request and the model history built from it."""

    request: ChatRequest
    llm_messages: list[LLMMessage]


async def parse_chat_turn(
    request: Request,
    tool_states: ToolStateStore = Depends(get_tool_state_store),
) -> ChatTurn:
    """Parse and check a chat body without touching the model service."""
    try:
        raw = await request.json()
    except ValueError as e:
        raise HTTPException(status_code=400, detail="Request body must be valid JSON") from e

    if not isinstance(raw, dict) or not isinstance(raw.get("messages"), list):
        raise HTTPException(status_code=400, detail="messages must be a list")

    try:
        chat_request = ChatRequest.model_validate(raw)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=format_validation_error(e)) from e

    try:
        llm_messages = prepare_history(chat_request.messages, tool_states, chat_request.claim_id)
    except ValueError as e:
        logger.warning(f"Rejected chat history: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e

    return ChatTurn(request=chat_request, llm_messages=llm_messages)


async def _sse_stream(
    request: Request,
    first_event: Any,
    events: AsyncIterator,
    cancel_token: CancellationToken,
) -> AsyncIterator[str]:
    try:
        yield format_sse(first_event)
        async for event in events:
            if not cancel_token.cancelled and await request.is_disconnected():
                logger.info("Client disconnected, cancelling turn")
                cancel_token.cancel()
            yield format_sse(event)
    finally:
        await events.aclose()


@router.post("/chat", tags=["Chat"])
async def chat(
    request: Request,
    # Declared before the runner so malformed requests fail before the model client is built
    turn: ChatTurn = Depends(parse_chat_turn),
    runner: TurnRunner = Depends(get_turn_runner),
) -> StreamingResponse:
    """Run one turn of the conversation and stream it as Server-Sent Events.

    The body is ``{messages, claimId?}``. Model failures before the first
    event are reported as 502; failures after that arrive in-stream as a
    single ``error`` event.
    """
    logger.info(f"Chat turn requested with {len(turn.request.messages)} messages (claim: {turn.request.claim_id})")

    cancel_token = CancellationToken()
    events = runner.stream_prepared(turn.llm_messages, cancel_token=cancel_token)

    first_event = await anext(events, None)
    if first_event is None:
        raise HTTPException(status_code=502, detail="The AI service returned no response")
    if isinstance(first_event, ErrorEvent):
        await events.aclose()
        raise HTTPException(status_code=502, detail=first_event.error)

    return StreamingResponse(
        _sse_stream(request, first_event, events, cancel_token),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )


@router.post("/chat/hydrate", response_model=HydrateResponse, tags=["Chat"])
async def hydrate_conversation(
    body: HydrateRequest,
    decisions: DecisionService = Depends(get_decision_service),
) -> HydrateResponse:
    """Apply every recorded decision to a stored conversation."""
    return HydrateResponse(messages=hydrate(body.messages, decisions.tool_states))


@router.post("/tool-calls/{call_id}/decision", response_model=DecisionResponse, tags=["Decisions"])
async def decide_tool_call(
    call_id: str,
    body: DecisionRequest,
    decisions: DecisionService = Depends(get_decision_service),
) -> DecisionResponse:
    """Record a human decision on a gated tool call."""
    try:
        result = await decisions.record_decision(call_id, body.outcome, body.final_body)
    except ToolCallNotFoundError as e:
        logger.warning(f"Decision for unknown tool call {call_id}")
        raise HTTPException(status_code=404, detail=str(e)) from e
    except InvalidDecisionError as e:
        logger.warning(f"Invalid decision for {call_id}: {e}")
        raise HTTPException(status_code=400, detail=str(e)) from e
    except ClaimNotFoundError as e:
        logger.warning(f"Decision for {call_id} targets a missing claim: {e}")
        raise HTTPException(status_code=404, detail=str(e)) from e

    return DecisionResponse(
        call_id=result.call.call_id,
        tool_name=result.call.tool_name,
        state=result.call.state,
        output=result.output,
        applied=result.applied,
        claim=result.claim.to_wire() if result.claim else None,
    )


@router.get("/tool-calls/{call_id}", response_model=GatedToolCall, tags=["Decisions"])
async def get_tool_call(
    call_id: str,
    decisions: DecisionService = Depends(get_decision_service),
) -> GatedToolCall:
    """Get the lifecycle state of a gated tool call."""
    try:
        return decisions.get_call(call_id)
    except ToolCallNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


@router.get("/tools", response_model=list[ToolDescription], tags=["Tools"])
async def list_tools(registry: ToolsRegistry = Depends(get_registry)) -> list[ToolDescription]:
    """Describe the tools offered to the model."""
    return registry.describe()


@router.get("/claims", tags=["Claims"])
async def list_claims(repository: ClaimRepository = Depends(get_claim_repository)) -> list[dict[str, Any]]:
    """List the claims the assistant works against."""
    return [claim.to_wire() for claim in await repository.list_claims()]


@router.get("/claims/{claim_id}", tags=["Claims"])
async def get_claim(claim_id: str, repository: ClaimRepository = Depends(get_claim_repository)) -> dict[str, Any]:
    """Get one claim by identifier."""
    claim = await repository.find_by_key(claim_id)
    if claim is None:
        raise HTTPException(status_code=404, detail=f"Claim {claim_id} not found")
    return claim.to_wire()


@router.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check() -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(UTC),
        version=__version__,
    )
