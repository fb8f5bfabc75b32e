"""Claim data source and mutation store."""

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from claimdesk.errors import ClaimNotFoundError
from claimdesk.models.claim import CLOSED_STATUSES, Claim, ClaimStatus
from claimdesk.utils.logging import get_logger

logger = get_logger(__name__)


class ClaimRepository(Protocol):
    """Interface for the claim records the assistant works against.

    The assistant only reads claims by key and applies human-confirmed
    status changes; the record schema itself belongs to the billing system.
    """

    async def find_by_key(self, claim_id: str) -> Claim | None:
        """Find a claim by identifier (case-insensitive exact match).

        Args:
            claim_id: Claim identifier, e.g. CLM-1001

        Returns:
            The claim, or None if no claim has that identifier
        """
        ...

    async def list_claims(self) -> list[Claim]:
        """List every claim."""
        ...

    async def apply_status(self, claim_id: str, status: ClaimStatus, notes: str | None) -> Claim:
        """Set a claim's status and notes.

        Applying the same (id, status, notes) twice leaves the record as
        after the first call.

        Raises:
            ClaimNotFoundError: If the claim does not exist
        """
        ...


class InMemoryClaimRepository:
    """In-memory claim repository seeded from a JSON file or built-in samples."""

    def __init__(self, claims: list[Claim] | None = None):
        """Initialize with claims (defaults to the built-in sample set)."""
        source = claims if claims is not None else [Claim.model_validate(raw) for raw in SAMPLE_CLAIMS]
        self._claims: dict[str, Claim] = {claim.claim_id.lower(): claim.model_copy(deep=True) for claim in source}

    @classmethod
    def from_json_file(cls, path: str | Path) -> "InMemoryClaimRepository":
        """Load claims from a JSON array of claim records."""
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(raw, list):
            raise ValueError(f"Claims file {path} must contain a JSON array")
        claims = [Claim.model_validate(item) for item in raw]
        logger.info(f"Loaded {len(claims)} claims from {path}")
        return cls(claims)

    async def find_by_key(self, claim_id: str) -> Claim | None:
        """Find a claim by identifier."""
        return self._claims.get(claim_id.strip().lower())

    async def list_claims(self) -> list[Claim]:
        """List every claim."""
        return list(self._claims.values())

    async def apply_status(self, claim_id: str, status: ClaimStatus, notes: str | None) -> Claim:
        """Set a claim's status and notes."""
        claim = await self.find_by_key(claim_id)
        if claim is None:
            raise ClaimNotFoundError(claim_id)

        if claim.status == status and (notes is None or claim.notes == notes):
            logger.info(f"Claim {claim.claim_id} already {status}, nothing to apply")
            return claim

        logger.info(f"Updating claim {claim.claim_id} status {claim.status} -> {status}")
        claim.status = status
        if notes is not None:
            claim.notes = notes
        if status in CLOSED_STATUSES:
            claim.resolved_at = datetime.now(UTC).isoformat()
        return claim


def _claim(
    claim_id: str,
    patient: tuple[str, str, str],
    provider: tuple[str, str, str, str],
    payer: tuple[str, str],
    date_of_service: str,
    date_submitted: str,
    line_items: list[dict[str, Any]],
    status: str,
    denial_code: str | None,
    denial_reason: str | None,
    payer_notes: str | None,
    filing_deadline: str | None,
    prior_actions: list[dict[str, str]] | None = None,
) -> dict[str, Any]:
    billed = sum(item["billedAmount"] for item in line_items)
    allowed_values = [item["allowedAmount"] for item in line_items if item.get("allowedAmount") is not None]
    return {
        "claimId": claim_id,
        "patient": {"name": patient[0], "dateOfBirth": patient[1], "memberId": patient[2]},
        "provider": {"name": provider[0], "npi": provider[1], "specialty": provider[2], "facility": provider[3]},
        "payer": {"name": payer[0], "payerId": payer[1]},
        "dateOfService": date_of_service,
        "dateSubmitted": date_submitted,
        "lineItems": line_items,
        "totalBilledAmount": billed,
        "totalAllowedAmount": sum(allowed_values) if allowed_values else None,
        "totalPaidAmount": sum(item["paidAmount"] for item in line_items),
        "status": status,
        "denialReason": denial_reason,
        "denialCode": denial_code,
        "payerNotes": payer_notes,
        "priorActions": prior_actions or [],
        "filingDeadline": filing_deadline,
    }


def _line(cpt: str, description: str, billed: float, allowed: float | None, paid: float, modifier: str | None = None):
    item: dict[str, Any] = {
        "cptCode": cpt,
        "description": description,
        "units": 1,
        "billedAmount": billed,
        "allowedAmount": allowed,
        "paidAmount": paid,
    }
    if modifier:
        item["modifier"] = modifier
    return item


SAMPLE_CLAIMS: list[dict[str, Any]] = [
    _claim(
        "CLM-1001",
        ("Maria Gonzalez", "1968-04-12", "BCX449201"),
        ("Dr. Alan Park", "1437281956", "Orthopedic Surgery", "Riverside Orthopedics"),
        ("Blue Cross Blue Shield", "BCBS01"),
        "2025-01-14",
        "2025-01-21",
        [_line("29881", "Knee arthroscopy, meniscectomy", 4850.00, None, 0.00)],
        "denied",
        "CO-197",
        "Precertification/authorization absent",
        "No prior authorization on file for date of service.",
        "2025-07-14",
        [
            {
                "date": "2025-02-03",
                "type": "phone_call",
                "description": "Called payer to confirm denial reason",
                "outcome": "Rep confirmed missing auth; retro auth window is 90 days",
            }
        ],
    ),
    _claim(
        "CLM-1002",
        ("Robert Chen", "1951-09-30", "MCR77120A"),
        ("Dr. Susan Lee", "1588392041", "Internal Medicine", "Lakeside Primary Care"),
        ("Medicare", "MCR00"),
        "2024-03-02",
        "2024-06-28",
        [_line("99214", "Office visit, established patient", 210.00, None, 0.00)],
        "denied",
        "CO-29",
        "Time limit for filing has expired",
        "Claim received after timely filing limit.",
        None,
    ),
    _claim(
        "CLM-1003",
        ("Denise Walker", "1979-11-05", "AET220981"),
        ("Dr. Priya Raman", "1699203847", "Physical Therapy", "Motion PT Center"),
        ("Aetna", "AET02"),
        "2025-02-10",
        "2025-02-14",
        [
            _line("97110", "Therapeutic exercise", 180.00, None, 0.00),
            _line("97140", "Manual therapy", 150.00, None, 0.00),
        ],
        "denied",
        "CO-50",
        "Not deemed a medical necessity by the payer",
        "Visits exceed plan threshold without documented functional improvement.",
        "2025-08-10",
    ),
    _claim(
        "CLM-1004",
        ("James O'Neil", "1990-06-18", "UHC558120"),
        ("Dr. Karen Holt", "1720394856", "Dermatology", "Clearview Dermatology"),
        ("UnitedHealthcare", "UHC03"),
        "2025-01-28",
        "2025-02-01",
        [_line("11102", "Tangential skin biopsy", 320.00, None, 0.00, modifier="59")],
        "rejected",
        "CO-4",
        "Procedure code inconsistent with the modifier used",
        "Modifier 59 not valid for this procedure combination.",
        "2025-07-28",
    ),
    _claim(
        "CLM-1005",
        ("Linda Foster", "1962-02-22", "CIG330471"),
        ("Dr. Omar Haddad", "1801928374", "Cardiology", "Heartline Cardiology"),
        ("Cigna", "CIG04"),
        "2024-12-16",
        "2024-12-20",
        [_line("93306", "Echocardiography, complete", 1200.00, 640.00, 512.00)],
        "underpaid",
        "CO-45",
        "Charge exceeds fee schedule/maximum allowable",
        "Paid at non-contracted rate.",
        "2025-06-16",
    ),
    _claim(
        "CLM-1006",
        ("Kevin Brooks", "2001-08-09", "HUM902214"),
        ("Dr. Elena Vasquez", "1912837465", "Family Medicine", "Northside Family Clinic"),
        ("Humana", "HUM05"),
        "2025-02-05",
        "2025-02-09",
        [_line("99213", "Office visit, established patient", 160.00, None, 0.00)],
        "denied",
        "CO-22",
        "This care may be covered by another payer per coordination of benefits",
        "Other coverage on file as primary.",
        "2025-08-05",
    ),
]
