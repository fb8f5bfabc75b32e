"""Tests for the gated tool call lifecycle."""

import pytest

from claimdesk.errors import ClaimNotFoundError, InvalidDecisionError, ToolCallNotFoundError
from claimdesk.services.decisions import DecisionService
from claimdesk.services.tool_states import GatedToolCall, InMemoryToolStateStore, JsonFileToolStateStore
from tests.helpers import draft_appeal_input, suggest_action_input


class TestSuggestAction:
    """approved / rejected."""

    @pytest.mark.asyncio
    async def test_write_off_approval_closes_claim(self, decisions, claim_repository):
        """Test that an approved write-off writes the claim off and stamps it."""
        decisions.register_proposal("call_1", "suggestAction", suggest_action_input(action="write_off"))

        result = await decisions.record_decision("call_1", "approved")

        assert result.applied is True
        assert result.call.state == "approved"
        claim = await claim_repository.find_by_key("CLM-1001")
        assert claim.status == "written_off"
        assert claim.resolved_at is not None

    @pytest.mark.asyncio
    async def test_call_payer_approval_leaves_status(self, decisions, claim_repository):
        """Test that approving a payer call does not touch the claim."""
        decisions.register_proposal("call_1", "suggestAction", suggest_action_input(action="call_payer"))

        result = await decisions.record_decision("call_1", "approved")

        assert result.output == {"approved": True, "action": "call_payer"}
        assert result.claim is None
        claim = await claim_repository.find_by_key("CLM-1001")
        assert claim.status == "denied"
        assert claim.notes is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action", ["appeal", "resubmit", "request_peer_review", "submit_documentation"])
    async def test_follow_up_actions_mark_pending(self, decisions, claim_repository, action):
        """Test that follow-up actions move the claim to pending."""
        decisions.register_proposal("call_1", "suggestAction", suggest_action_input(action=action))

        await decisions.record_decision("call_1", "approved")

        assert (await claim_repository.find_by_key("CLM-1001")).status == "pending"

    @pytest.mark.asyncio
    async def test_rejection_has_no_side_effect(self, decisions, claim_repository):
        """Test that rejecting a suggestion never mutates the claim."""
        before = (await claim_repository.find_by_key("CLM-1001")).model_copy(deep=True)
        decisions.register_proposal("call_1", "suggestAction", suggest_action_input(action="write_off"))

        result = await decisions.record_decision("call_1", "rejected")

        assert result.output == {"approved": False}
        assert await claim_repository.find_by_key("CLM-1001") == before

    @pytest.mark.asyncio
    async def test_decision_is_recorded_once(self, decisions, claim_repository):
        """Test that repeating a decision applies the side effect only once."""
        decisions.register_proposal("call_1", "suggestAction", suggest_action_input())
        first = await decisions.record_decision("call_1", "approved")

        # A concurrent status change must survive the duplicate decision
        await claim_repository.apply_status("CLM-1001", "resolved", "Paid")
        second = await decisions.record_decision("call_1", "approved")

        assert first.applied is True
        assert second.applied is False
        assert second.call.state == "approved"
        assert second.output == first.output
        assert (await claim_repository.find_by_key("CLM-1001")).status == "resolved"


class TestDraftAppeal:
    """accepted / discarded."""

    @pytest.mark.asyncio
    async def test_accept_without_edit_keeps_draft(self, decisions):
        """Test that accepting unedited records the original body."""
        decisions.register_proposal("call_1", "draftAppeal", draft_appeal_input())

        result = await decisions.record_decision("call_1", "accepted")

        assert result.output == {"accepted": True, "finalBody": draft_appeal_input()["body"]}

    @pytest.mark.asyncio
    async def test_accept_with_edit_records_edit(self, decisions, claim_repository):
        """Test that an edited body replaces the draft and the claim is untouched."""
        decisions.register_proposal("call_1", "draftAppeal", draft_appeal_input())

        result = await decisions.record_decision("call_1", "accepted", final_body="Revised letter.")

        assert result.output == {"accepted": True, "finalBody": "Revised letter."}
        assert result.claim is None
        assert (await claim_repository.find_by_key("CLM-1001")).status == "denied"

    @pytest.mark.asyncio
    async def test_discard(self, decisions):
        """Test that a discarded draft carries no body."""
        decisions.register_proposal("call_1", "draftAppeal", draft_appeal_input())

        result = await decisions.record_decision("call_1", "discarded", final_body="ignored")

        assert result.call.state == "discarded"
        assert result.output == {"accepted": False}

    @pytest.mark.asyncio
    async def test_empty_edit_is_rejected(self, decisions):
        """Test that an accepted edit must carry text."""
        decisions.register_proposal("call_1", "draftAppeal", draft_appeal_input())

        with pytest.raises(InvalidDecisionError):
            await decisions.record_decision("call_1", "accepted", final_body="   ")

        assert decisions.get_call("call_1").state == "proposed"


class TestUpdateClaimStatus:
    """confirmed / cancelled."""

    @pytest.mark.asyncio
    async def test_confirm_applies_status_and_notes(self, decisions, claim_repository):
        """Test that confirming applies exactly what was proposed."""
        decisions.register_proposal(
            "call_1",
            "updateClaimStatus",
            {"claimId": "CLM-1005", "status": "resolved", "notes": "Underpayment recovered"},
        )

        result = await decisions.record_decision("call_1", "confirmed")

        assert result.output == {"confirmed": True, "claimId": "CLM-1005", "status": "resolved"}
        claim = await claim_repository.find_by_key("CLM-1005")
        assert claim.status == "resolved"
        assert claim.notes == "Underpayment recovered"
        assert claim.resolved_at is not None

    @pytest.mark.asyncio
    async def test_cancel_has_no_side_effect(self, decisions, claim_repository):
        """Test that cancelling leaves the claim alone."""
        decisions.register_proposal(
            "call_1", "updateClaimStatus", {"claimId": "CLM-1005", "status": "resolved", "notes": "Done"}
        )

        result = await decisions.record_decision("call_1", "cancelled")

        assert result.output == {"confirmed": False}
        assert (await claim_repository.find_by_key("CLM-1005")).status == "underpaid"

    @pytest.mark.asyncio
    async def test_missing_claim_keeps_call_proposed(self, decisions):
        """Test that a failed side effect leaves the call undecided."""
        decisions.register_proposal(
            "call_1", "updateClaimStatus", {"claimId": "CLM-0000", "status": "resolved", "notes": "Done"}
        )

        with pytest.raises(ClaimNotFoundError):
            await decisions.record_decision("call_1", "confirmed")

        assert decisions.get_call("call_1").state == "proposed"


class TestDecisionErrors:
    """Decisions that cannot be recorded."""

    @pytest.mark.asyncio
    async def test_unknown_call(self, decisions):
        """Test that an unknown call id raises."""
        with pytest.raises(ToolCallNotFoundError):
            await decisions.record_decision("call_missing", "approved")

    @pytest.mark.asyncio
    async def test_foreign_outcome(self, decisions):
        """Test that another tool's outcome label is rejected."""
        decisions.register_proposal("call_1", "draftAppeal", draft_appeal_input())

        with pytest.raises(InvalidDecisionError, match="accepted or discarded"):
            await decisions.record_decision("call_1", "approved")

    def test_register_is_idempotent(self, decisions):
        """Test that re-registering a call id keeps the stored call."""
        first = decisions.register_proposal("call_1", "suggestAction", suggest_action_input())
        second = decisions.register_proposal("call_1", "suggestAction", suggest_action_input(action="write_off"))

        assert second.input == first.input


class TestToolStateStores:
    """Persistence of call lifecycles."""

    def test_in_memory_returns_copies(self):
        """Test that callers cannot mutate stored calls in place."""
        store = InMemoryToolStateStore()
        store.add(GatedToolCall(call_id="call_1", tool_name="draftAppeal", input={}))

        fetched = store.get("call_1")
        fetched.state = "accepted"

        assert store.get("call_1").state == "proposed"

    @pytest.mark.asyncio
    async def test_json_store_survives_restart(self, tmp_path, registry):
        """Test that decisions persist across store instances."""
        path = tmp_path / "tool_states.json"
        decisions = DecisionService(registry, JsonFileToolStateStore(path))
        decisions.register_proposal("call_1", "suggestAction", suggest_action_input(action="call_payer"))
        await decisions.record_decision("call_1", "approved")

        reloaded = JsonFileToolStateStore(path)
        call = reloaded.get("call_1")

        assert call.state == "approved"
        assert call.output == {"approved": True, "action": "call_payer"}
        assert call.decided_at is not None
