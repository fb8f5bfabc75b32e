"""Exception hierarchy for the claims assistant."""


class ClaimdeskError(Exception):
    """Base exception for all service errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ModelServiceError(ClaimdeskError):
    """The upstream model service failed (timeout, non-2xx, network error)."""

    def __init__(self, message: str, *, status_code: int | None = None, hint: str | None = None) -> None:
        super().__init__(message, hint=hint)
        self.status_code = status_code


class ClaimNotFoundError(ClaimdeskError):
    """No claim exists for the requested identifier."""

    def __init__(self, claim_id: str) -> None:
        super().__init__(f"Claim {claim_id} not found")
        self.claim_id = claim_id


class ToolCallNotFoundError(ClaimdeskError):
    """No gated tool call was proposed under the requested identifier."""

    def __init__(self, call_id: str) -> None:
        super().__init__(f"Tool call {call_id} not found")
        self.call_id = call_id


class InvalidDecisionError(ClaimdeskError):
    """The decision outcome does not belong to the tool's lifecycle."""


class TurnCancelledError(ClaimdeskError):
    """The turn was aborted by its caller."""
