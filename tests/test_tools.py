"""Tests for tool definitions and the registry."""

import pytest
from pydantic import ValidationError

from claimdesk.tools.base import ToolDefinition, ToolInput
from claimdesk.tools.lookup_claim import LookupClaimInput
from tests.helpers import draft_appeal_input, suggest_action_input


class TestInputValidation:
    """Strict schema validation of model-proposed input."""

    def test_valid_suggestion(self, registry):
        """Test that a well-formed suggestion parses."""
        parsed = registry.get("suggestAction").parse_input(suggest_action_input())
        assert parsed.claim_id == "CLM-1001"
        assert parsed.action == "appeal"

    @pytest.mark.parametrize(
        "overrides",
        [
            {"action": "escalate"},
            {"urgency": "urgent"},
            {"steps": "Gather records"},
            {"label": ""},
        ],
    )
    def test_invalid_suggestion_values(self, registry, overrides):
        """Test that out-of-enum and mistyped values are rejected."""
        with pytest.raises(ValidationError):
            registry.get("suggestAction").parse_input(suggest_action_input(**overrides))

    def test_missing_field(self, registry):
        """Test that a missing required field is rejected."""
        tool_input = draft_appeal_input()
        del tool_input["body"]

        with pytest.raises(ValidationError):
            registry.get("draftAppeal").parse_input(tool_input)

    def test_no_type_coercion(self, registry):
        """Test that numbers are not coerced into claim ids."""
        with pytest.raises(ValidationError):
            registry.get("lookupClaim").parse_input({"claimId": 1001})

    def test_unknown_field(self, registry):
        """Test that unknown fields are rejected rather than dropped."""
        with pytest.raises(ValidationError):
            registry.get("lookupClaim").parse_input({"claimId": "CLM-1001", "includeHistory": True})

    def test_invalid_status(self, registry):
        """Test that statuses outside the claim lifecycle are rejected."""
        with pytest.raises(ValidationError):
            registry.get("updateClaimStatus").parse_input(
                {"claimId": "CLM-1001", "status": "closed", "notes": "Done"}
            )

    def test_invalid_letter_type(self, registry):
        """Test that unknown letter types are rejected."""
        with pytest.raises(ValidationError):
            registry.get("draftAppeal").parse_input({**draft_appeal_input(), "letterType": "complaint"})


class TestLookupClaim:
    """Tests for the server-side claim lookup."""

    @pytest.mark.asyncio
    async def test_found(self, registry):
        """Test that a known claim is returned in wire format."""
        tool = registry.get("lookupClaim")

        output = await tool.resolver(tool.parse_input({"claimId": "CLM-1002"}))

        assert output["claim"]["claimId"] == "CLM-1002"
        assert output["claim"]["denialCode"] == "CO-29"

    @pytest.mark.asyncio
    async def test_case_insensitive(self, registry):
        """Test that lookup ignores case."""
        tool = registry.get("lookupClaim")

        output = await tool.resolver(LookupClaimInput(claim_id="clm-1006"))

        assert output["claim"]["claimId"] == "CLM-1006"

    @pytest.mark.asyncio
    async def test_not_found_lists_ids(self, registry):
        """Test that an unknown id returns the available ids."""
        tool = registry.get("lookupClaim")

        output = await tool.resolver(LookupClaimInput(claim_id="CLM-42"))

        assert output == {
            "error": (
                "Claim CLM-42 not found. "
                "Available IDs: CLM-1001, CLM-1002, CLM-1003, CLM-1004, CLM-1005, CLM-1006"
            )
        }


class TestToolsRegistry:
    """Tests for the tool registry."""

    def test_modes(self, registry):
        """Test that only the lookup runs without a human."""
        modes = {d.name: d.mode for d in registry.describe()}
        assert modes == {
            "lookupClaim": "server",
            "suggestAction": "gated",
            "draftAppeal": "gated",
            "updateClaimStatus": "gated",
        }

    def test_schema_uses_wire_names(self, registry):
        """Test that the schema the model sees uses camelCase field names."""
        schema = registry.get("draftAppeal").get_json_schema()
        assert set(schema["required"]) == {"claimId", "letterType", "subject", "body"}
        assert schema["properties"]["letterType"]["enum"] == [
            "appeal",
            "resubmission",
            "peer_to_peer_request",
            "cob_update",
            "retroactive_auth",
        ]

    def test_cache_marker_on_last_tool(self, registry):
        """Test that only the last model-facing tool carries the cache marker."""
        tools = registry.anthropic_tools()
        assert [t.cache_control is not None for t in tools] == [False, False, False, True]

    def test_duplicate_registration(self, registry):
        """Test that a tool name can only be registered once."""
        with pytest.raises(ValueError, match="already registered"):
            registry.register_tool(registry.get("lookupClaim"))

    def test_gated_tool_needs_policy(self):
        """Test that a gated tool without a decision policy is refused."""

        class EmptyInput(ToolInput):
            pass

        with pytest.raises(ValueError, match="decision policy"):
            ToolDefinition(name="noop", description="", input_schema_class=EmptyInput, mode="gated")
