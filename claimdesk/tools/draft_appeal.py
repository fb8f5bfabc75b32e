"""Appeal letter drafting tool, accepted (optionally edited) or discarded by a human."""

from typing import Any, ClassVar, Literal

from pydantic import Field

from claimdesk.models.conversation import ToolCallState
from claimdesk.tools.base import GatedDecisionPolicy, ToolDefinition, ToolInput

LetterType = Literal["appeal", "resubmission", "peer_to_peer_request", "cob_update", "retroactive_auth"]


class DraftAppealInput(ToolInput):
    """Input schema for the appeal drafting tool."""

    claim_id: str = Field(..., alias="claimId", min_length=1, description="The claim ID this letter is for")
    letter_type: LetterType = Field(..., alias="letterType", description="Type of letter or correspondence to draft")
    subject: str = Field(..., description="Subject line for the letter")
    body: str = Field(
        ...,
        min_length=1,
        description=(
            "Full professional letter body. Include: date placeholder, recipient salutation, clear opening "
            "statement, clinical/administrative argument, specific evidence cited, requested action, and "
            "professional closing. Use \\n for line breaks."
        ),
    )


DRAFT_APPEAL_DESCRIPTION = (
    "Generate a professional appeal letter or correspondence draft for a claim. "
    "Renders an editable card so the human can review and modify the letter before accepting it. "
    "Use this whenever an appeal, resubmission cover letter, or payer correspondence is needed; "
    "never write the letter in chat text. Accepting a draft does not change the claim's status."
)


class DraftAppealDecision(GatedDecisionPolicy):
    """Accept records the final (possibly edited) body; drafting never touches the claim."""

    positive: ClassVar[ToolCallState] = "accepted"
    negative: ClassVar[ToolCallState] = "discarded"
    accepts_edits: ClassVar[bool] = True

    def feedback(self, tool_input: DraftAppealInput, accepted: bool, final_body: str | None) -> dict[str, Any]:
        if accepted:
            return {"accepted": True, "finalBody": final_body if final_body is not None else tool_input.body}
        return {"accepted": False}


def create_draft_appeal_tool() -> ToolDefinition:
    return ToolDefinition(
        name="draftAppeal",
        description=DRAFT_APPEAL_DESCRIPTION,
        input_schema_class=DraftAppealInput,
        mode="gated",
        decision=DraftAppealDecision(),
    )
