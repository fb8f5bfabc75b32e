"""Claim domain models.

Claims are an external data source to the assistant. Only the identifier,
status, notes and resolution timestamp are ever touched here; everything
else is surfaced to the model verbatim.
"""

from typing import Literal

from pydantic import BaseModel, Field

ClaimStatus = Literal["denied", "rejected", "pending", "underpaid", "resolved", "written_off"]

CLAIM_STATUSES: tuple[ClaimStatus, ...] = ("denied", "rejected", "pending", "underpaid", "resolved", "written_off")
CLOSED_STATUSES: tuple[ClaimStatus, ...] = ("resolved", "written_off")


class _CamelModel(BaseModel):
    class Config:
        populate_by_name = True
        extra = "allow"


class Patient(_CamelModel):
    """Patient on the claim."""

    name: str
    date_of_birth: str = Field(alias="dateOfBirth")
    member_id: str = Field(alias="memberId")


class Provider(_CamelModel):
    """Rendering provider."""

    name: str
    npi: str
    specialty: str
    facility: str


class Payer(_CamelModel):
    """Insurance payer."""

    name: str
    payer_id: str = Field(alias="payerId")


class LineItem(_CamelModel):
    """Billed service line."""

    cpt_code: str = Field(alias="cptCode")
    description: str
    modifier: str | None = None
    units: int
    billed_amount: float = Field(alias="billedAmount")
    allowed_amount: float | None = Field(default=None, alias="allowedAmount")
    paid_amount: float = Field(alias="paidAmount")


class PriorAction(_CamelModel):
    """Previous follow-up on the claim."""

    date: str
    type: str
    description: str
    outcome: str


class Claim(_CamelModel):
    """Insurance claim record."""

    claim_id: str = Field(alias="claimId")
    patient: Patient
    provider: Provider
    payer: Payer
    date_of_service: str = Field(alias="dateOfService")
    date_submitted: str = Field(alias="dateSubmitted")
    line_items: list[LineItem] = Field(default_factory=list, alias="lineItems")
    total_billed_amount: float = Field(alias="totalBilledAmount")
    total_allowed_amount: float | None = Field(default=None, alias="totalAllowedAmount")
    total_paid_amount: float = Field(alias="totalPaidAmount")
    status: ClaimStatus
    denial_reason: str | None = Field(default=None, alias="denialReason")
    denial_code: str | None = Field(default=None, alias="denialCode")
    payer_notes: str | None = Field(default=None, alias="payerNotes")
    prior_actions: list[PriorAction] = Field(default_factory=list, alias="priorActions")
    filing_deadline: str | None = Field(default=None, alias="filingDeadline")

    # Set when a human confirms a status change
    notes: str | None = None
    resolved_at: str | None = Field(default=None, alias="resolvedAt")

    def to_wire(self) -> dict:
        """Serialize with the camelCase field names clients and the model see."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)
