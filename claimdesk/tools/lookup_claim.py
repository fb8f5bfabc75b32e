"""Claim lookup tool, resolved on the server without human review."""

from typing import Any

from pydantic import Field

from claimdesk.services.claims import ClaimRepository
from claimdesk.tools.base import ToolDefinition, ToolInput


class LookupClaimInput(ToolInput):
    """Input schema for the claim lookup tool."""

    claim_id: str = Field(
        ...,
        alias="claimId",
        min_length=1,
        max_length=50,
        description="The claim ID, e.g. CLM-1001",
        examples=["CLM-1001", "CLM-1004"],
    )


LOOKUP_CLAIM_DESCRIPTION = (
    "Retrieve full details of a specific claim by its ID. "
    "Always call this before analyzing or discussing a claim; never analyze a claim from memory. "
    "Returns {claim} on success, or {error} listing the available claim IDs when the ID is unknown."
)


def create_lookup_claim_tool(claim_repository: ClaimRepository) -> ToolDefinition:
    async def lookup_claim(params: LookupClaimInput) -> dict[str, Any]:
        claim = await claim_repository.find_by_key(params.claim_id)
        if claim is None:
            available = ", ".join(c.claim_id for c in await claim_repository.list_claims())
            return {"error": f"Claim {params.claim_id} not found. Available IDs: {available}"}
        return {"claim": claim.to_wire()}

    return ToolDefinition(
        name="lookupClaim",
        description=LOOKUP_CLAIM_DESCRIPTION,
        input_schema_class=LookupClaimInput,
        mode="server",
        resolver=lookup_claim,
    )
