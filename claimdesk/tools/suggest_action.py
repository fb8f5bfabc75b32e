"""Action suggestion tool, approved or rejected by a human."""

from typing import Any, ClassVar, Literal

from pydantic import Field

from claimdesk.models.claim import Claim, ClaimStatus
from claimdesk.models.conversation import ToolCallState
from claimdesk.services.claims import ClaimRepository
from claimdesk.tools.base import GatedDecisionPolicy, ToolDefinition, ToolInput

ActionType = Literal[
    "appeal",
    "resubmit",
    "call_payer",
    "write_off",
    "request_peer_review",
    "submit_documentation",
    "update_cob",
]

# Claim status an approved action moves the claim to; call_payer leaves it alone
ACTION_TO_STATUS: dict[str, ClaimStatus | None] = {
    "appeal": "pending",
    "resubmit": "pending",
    "call_payer": None,
    "write_off": "written_off",
    "request_peer_review": "pending",
    "submit_documentation": "pending",
    "update_cob": "pending",
}


class SuggestActionInput(ToolInput):
    """Input schema for the action suggestion tool."""

    claim_id: str = Field(..., alias="claimId", min_length=1, description="The claim ID to analyze")
    action: ActionType = Field(..., description="The recommended action type")
    label: str = Field(
        ...,
        min_length=1,
        description="Short human-readable label for the action, e.g. 'File a formal appeal'",
    )
    reasoning: str = Field(
        ...,
        description=(
            "Clear explanation of why this action is recommended, referencing specific denial codes "
            "and clinical context"
        ),
    )
    urgency: Literal["high", "medium", "low"] = Field(..., description="How urgently this action should be taken")
    steps: list[str] = Field(
        ...,
        description="Ordered list of concrete steps the biller should take to execute this action",
    )


SUGGEST_ACTION_DESCRIPTION = (
    "Analyze a claim and suggest a specific resolution action. "
    "This renders a structured card with Approve/Reject buttons that the human must interact with. "
    "Use this whenever you want to propose a next step instead of describing the recommendation in text. "
    "After calling suggestAction, STOP: do not call any other tool in the same step and do not call "
    "updateClaimStatus; approving the card updates the claim."
)


class SuggestActionDecision(GatedDecisionPolicy):
    """Approve applies the status mapped from the action; reject changes nothing."""

    positive: ClassVar[ToolCallState] = "approved"
    negative: ClassVar[ToolCallState] = "rejected"

    def __init__(self, claim_repository: ClaimRepository):
        self.claim_repository = claim_repository

    async def apply(self, tool_input: SuggestActionInput, final_body: str | None) -> Claim | None:
        target = ACTION_TO_STATUS.get(tool_input.action)
        if target is None:
            return None
        return await self.claim_repository.apply_status(
            tool_input.claim_id, target, f"Action approved: {tool_input.label}"
        )

    def feedback(self, tool_input: SuggestActionInput, accepted: bool, final_body: str | None) -> dict[str, Any]:
        if accepted:
            return {"approved": True, "action": tool_input.action}
        return {"approved": False}


def create_suggest_action_tool(claim_repository: ClaimRepository) -> ToolDefinition:
    return ToolDefinition(
        name="suggestAction",
        description=SUGGEST_ACTION_DESCRIPTION,
        input_schema_class=SuggestActionInput,
        mode="gated",
        decision=SuggestActionDecision(claim_repository),
    )
