"""Dependency providers for the API.

Each provider builds its collaborator once per process. Tests replace them
through ``app.dependency_overrides``.
"""

from functools import lru_cache

from fastapi import Depends, HTTPException

from claimdesk.clients.anthropic import ModelClient, get_anthropic_client
from claimdesk.config import Settings, get_settings
from claimdesk.graphs.turn import TurnRunner
from claimdesk.services.claims import ClaimRepository, InMemoryClaimRepository
from claimdesk.services.decisions import DecisionService
from claimdesk.services.tool_states import InMemoryToolStateStore, JsonFileToolStateStore, ToolStateStore
from claimdesk.tools.registry import ToolsRegistry
from claimdesk.utils.logging import get_logger

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def get_claim_repository() -> ClaimRepository:
    settings = get_settings()
    if settings.claims_path:
        return InMemoryClaimRepository.from_json_file(settings.claims_path)
    logger.info("No claims file configured, using the built-in sample claims")
    return InMemoryClaimRepository()


@lru_cache(maxsize=1)
def get_tool_state_store() -> ToolStateStore:
    settings = get_settings()
    if settings.tool_state_path:
        return JsonFileToolStateStore(settings.tool_state_path)
    return InMemoryToolStateStore()


@lru_cache(maxsize=1)
def get_registry() -> ToolsRegistry:
    return ToolsRegistry(get_claim_repository())


@lru_cache(maxsize=1)
def get_decision_service() -> DecisionService:
    return DecisionService(get_registry(), get_tool_state_store())


def get_model_client(settings: Settings = Depends(get_settings)) -> ModelClient:
    # Created on first chat request so the API starts without credentials
    try:
        return get_anthropic_client(settings.anthropic)
    except ValueError as e:
        logger.error(f"Model client unavailable: {e}")
        raise HTTPException(status_code=502, detail="The AI service is not configured") from e


def get_turn_runner(
    settings: Settings = Depends(get_settings),
    model_client: ModelClient = Depends(get_model_client),
    registry: ToolsRegistry = Depends(get_registry),
    decisions: DecisionService = Depends(get_decision_service),
    tool_states: ToolStateStore = Depends(get_tool_state_store),
) -> TurnRunner:
    return TurnRunner(
        model_client=model_client,
        registry=registry,
        decisions=decisions,
        tool_states=tool_states,
        max_tool_rounds=settings.max_tool_rounds,
    )
