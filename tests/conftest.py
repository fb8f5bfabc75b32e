"""Shared fixtures: wired-up services and an API client backed by a scripted model."""

import pytest
from fastapi.testclient import TestClient

from claimdesk.api import deps
from claimdesk.clients import anthropic as anthropic_client
from claimdesk.config import Settings
from claimdesk.graphs.turn import TurnRunner
from claimdesk.main import app
from claimdesk.services.claims import InMemoryClaimRepository
from claimdesk.services.decisions import DecisionService
from claimdesk.services.tool_states import InMemoryToolStateStore
from claimdesk.tools.registry import ToolsRegistry
from tests.helpers import FakeModelClient


@pytest.fixture
def claim_repository():
    return InMemoryClaimRepository()


@pytest.fixture
def tool_states():
    return InMemoryToolStateStore()


@pytest.fixture
def registry(claim_repository):
    return ToolsRegistry(claim_repository)


@pytest.fixture
def decisions(registry, tool_states):
    return DecisionService(registry, tool_states)


@pytest.fixture
def fake_model():
    return FakeModelClient()


@pytest.fixture
def runner(fake_model, registry, decisions, tool_states):
    return TurnRunner(model_client=fake_model, registry=registry, decisions=decisions, tool_states=tool_states)


@pytest.fixture
def client(fake_model, claim_repository, tool_states, registry, decisions):
    """Test client with every service dependency replaced."""
    app.dependency_overrides[deps.get_settings] = lambda: Settings()
    app.dependency_overrides[deps.get_model_client] = lambda: fake_model
    app.dependency_overrides[deps.get_claim_repository] = lambda: claim_repository
    app.dependency_overrides[deps.get_tool_state_store] = lambda: tool_states
    app.dependency_overrides[deps.get_registry] = lambda: registry
    app.dependency_overrides[deps.get_decision_service] = lambda: decisions
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def unconfigured_client(monkeypatch, claim_repository, tool_states, registry, decisions):
    """Test client whose model service has no API key."""
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    monkeypatch.setattr(anthropic_client, "_anthropic_client", None)
    app.dependency_overrides[deps.get_settings] = lambda: Settings()
    app.dependency_overrides[deps.get_claim_repository] = lambda: claim_repository
    app.dependency_overrides[deps.get_tool_state_store] = lambda: tool_states
    app.dependency_overrides[deps.get_registry] = lambda: registry
    app.dependency_overrides[deps.get_decision_service] = lambda: decisions
    yield TestClient(app)
    app.dependency_overrides.clear()
