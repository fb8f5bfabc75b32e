"""Lifecycle store for gated tool calls, keyed by call identifier."""

import json
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from pydantic import BaseModel, Field

from claimdesk.models.conversation import ToolCallState
from claimdesk.utils.logging import get_logger

logger = get_logger(__name__)


class GatedToolCall(BaseModel):
    """A model-proposed call awaiting, or carrying, a human decision."""

    call_id: str = Field(alias="callId")
    tool_name: str = Field(alias="toolName")
    claim_id: str | None = Field(default=None, alias="claimId")
    input: dict[str, Any]
    state: ToolCallState = "proposed"
    output: dict[str, Any] | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC), alias="createdAt")
    decided_at: datetime | None = Field(default=None, alias="decidedAt")

    class Config:
        populate_by_name = True

    @property
    def is_terminal(self) -> bool:
        """Whether a human decision has been recorded."""
        return self.state != "proposed"


class ToolStateStore(Protocol):
    """Key-value store of gated call lifecycles.

    The store lives independently of any conversation object so a stored
    conversation can be re-rendered with the same card states.
    """

    def get(self, call_id: str) -> GatedToolCall | None:
        """Get a call by identifier."""
        ...

    def add(self, call: GatedToolCall) -> GatedToolCall:
        """Store a new proposal; an existing call with the same id wins."""
        ...

    def save(self, call: GatedToolCall) -> None:
        """Persist an updated call."""
        ...


class InMemoryToolStateStore:
    """Tool state store held in process memory."""

    def __init__(self):
        self._calls: dict[str, GatedToolCall] = {}
        self._lock = threading.Lock()

    def get(self, call_id: str) -> GatedToolCall | None:
        """Get a call by identifier."""
        call = self._calls.get(call_id)
        return call.model_copy(deep=True) if call else None

    def add(self, call: GatedToolCall) -> GatedToolCall:
        """Store a new proposal unless the id is already known."""
        with self._lock:
            existing = self._calls.get(call.call_id)
            if existing is not None:
                return existing.model_copy(deep=True)
            self._calls[call.call_id] = call.model_copy(deep=True)
            return call

    def save(self, call: GatedToolCall) -> None:
        """Persist an updated call."""
        with self._lock:
            self._calls[call.call_id] = call.model_copy(deep=True)

    def __len__(self) -> int:
        return len(self._calls)


class JsonFileToolStateStore(InMemoryToolStateStore):
    """Tool state store mirrored to a JSON file so card states survive restarts."""

    def __init__(self, path: str | Path):
        super().__init__()
        self.path = Path(path)
        if self.path.exists():
            raw = json.loads(self.path.read_text(encoding="utf-8"))
            for call_id, data in raw.items():
                self._calls[call_id] = GatedToolCall.model_validate(data)
            logger.info(f"Loaded {len(self._calls)} tool call states from {self.path}")

    def add(self, call: GatedToolCall) -> GatedToolCall:
        """Store a new proposal and flush to disk."""
        stored = super().add(call)
        self._flush()
        return stored

    def save(self, call: GatedToolCall) -> None:
        """Persist an updated call and flush to disk."""
        super().save(call)
        self._flush()

    def _flush(self) -> None:
        with self._lock:
            data = {call_id: call.model_dump(mode="json", by_alias=True) for call_id, call in self._calls.items()}
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path.write_text(json.dumps(data, indent=2), encoding="utf-8")
        tmp_path.replace(self.path)
