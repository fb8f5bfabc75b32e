"""Claim status update tool, applied only when a human confirms."""

from typing import Any, ClassVar

from pydantic import Field

from claimdesk.models.claim import Claim, ClaimStatus
from claimdesk.models.conversation import ToolCallState
from claimdesk.services.claims import ClaimRepository
from claimdesk.tools.base import GatedDecisionPolicy, ToolDefinition, ToolInput


class UpdateClaimStatusInput(ToolInput):
    """Input schema for the status update tool."""

    claim_id: str = Field(..., alias="claimId", min_length=1, description="The claim ID to update")
    status: ClaimStatus = Field(..., description="The new status to set")
    notes: str = Field(..., description="Brief notes documenting what action was taken and why")


UPDATE_CLAIM_STATUS_DESCRIPTION = (
    "Record a status update for a claim. This renders a confirmation card; the update only happens "
    "when the human clicks Confirm. Call this ONLY when the human explicitly asks to change a claim's "
    "status (e.g. 'mark this as resolved', 'write this off'). Never call it automatically after suggestAction."
)


class UpdateClaimStatusDecision(GatedDecisionPolicy):
    """Confirm applies the proposed status and notes exactly as proposed."""

    positive: ClassVar[ToolCallState] = "confirmed"
    negative: ClassVar[ToolCallState] = "cancelled"

    def __init__(self, claim_repository: ClaimRepository):
        self.claim_repository = claim_repository

    async def apply(self, tool_input: UpdateClaimStatusInput, final_body: str | None) -> Claim | None:
        return await self.claim_repository.apply_status(tool_input.claim_id, tool_input.status, tool_input.notes)

    def feedback(
        self, tool_input: UpdateClaimStatusInput, accepted: bool, final_body: str | None
    ) -> dict[str, Any]:
        if accepted:
            return {"confirmed": True, "claimId": tool_input.claim_id, "status": tool_input.status}
        return {"confirmed": False}


def create_update_claim_status_tool(claim_repository: ClaimRepository) -> ToolDefinition:
    return ToolDefinition(
        name="updateClaimStatus",
        description=UPDATE_CLAIM_STATUS_DESCRIPTION,
        input_schema_class=UpdateClaimStatusInput,
        mode="gated",
        decision=UpdateClaimStatusDecision(claim_repository),
    )
