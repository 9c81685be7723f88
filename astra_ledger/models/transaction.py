"""
Ledger Data Models for Astra Ledger

These models define the schemas for every record that flows between the
AI agents, the orchestrator and the storage backends.

DESIGN DECISION: The language model is NOT trusted.
Whatever Gemini returns is decoded through `decode_candidates`, which
validates each proposed transaction on its own and drops the ones that
do not fit the schema. Amounts must be finite and non-negative before they
can reach storage.

DESIGN DECISION: There is exactly ONE timestamp representation inside the
domain: a timezone-aware UTC `datetime`. Firestore server timestamps and the
local `{seconds, nanoseconds}` shape are converted at the storage boundary.
"""

import json
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

import structlog
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
)

logger = structlog.get_logger(__name__)


# =============================================================================
# TIMESTAMPS - one canonical representation
# =============================================================================

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def from_epoch_parts(seconds: int, nanoseconds: int = 0) -> datetime:
    """
    Build a canonical timestamp from epoch seconds + nanos.

    Raises:
        ValueError: If the parts do not describe a representable time
    """
    try:
        value = datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError) as e:
        raise ValueError(f"Timestamp out of range: {seconds}") from e
    return value.replace(microsecond=nanoseconds // 1000)


def to_epoch_parts(value: datetime) -> tuple[int, int]:
    """Split a timestamp into (epoch seconds, nanoseconds)."""
    value = ensure_utc(value)
    seconds = int(value.replace(microsecond=0).timestamp())
    return seconds, value.microsecond * 1000


def to_millis(value: Optional[datetime]) -> int:
    """Milliseconds since the epoch; missing timestamps count as 0."""
    if value is None:
        return 0
    seconds, nanoseconds = to_epoch_parts(value)
    return seconds * 1000 + nanoseconds // 1_000_000


# =============================================================================
# RECORDS
# =============================================================================

class ExtractedTransaction(BaseModel):
    """
    A transaction PROPOSED by an extraction agent.

    This is not a stored record yet: it has no id and no timestamp.
    The orchestrator commits it through the storage adapter.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    item: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="What the money was spent on (merchant or item)"
    )
    amount: float = Field(
        ...,
        ge=0,
        allow_inf_nan=False,
        description="Amount spent, in the ledger currency"
    )
    category: str = Field(
        ...,
        max_length=100,
        description="Free-text category label"
    )


class Transaction(BaseModel):
    """
    A stored ledger record.

    `id` is assigned by the storage backend and is unique per user.
    `created_at` is None only while a server timestamp is still pending.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Backend-assigned identifier"
    )
    item: str = Field(
        default="",
        description="What the money was spent on"
    )
    amount: float = Field(
        default=0.0,
        ge=0,
        allow_inf_nan=False,
        description="Amount spent"
    )
    category: str = Field(
        default="",
        description="Free-text category label"
    )
    created_at: Optional[datetime] = Field(
        default=None,
        description="Creation time (UTC)"
    )
    original_text: Optional[str] = Field(
        default=None,
        description="The user utterance this record was extracted from"
    )

    @field_validator('created_at')
    @classmethod
    def normalize_timestamp(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v) if v is not None else None

    @property
    def sort_millis(self) -> int:
        return to_millis(self.created_at)

    def snapshot(self) -> dict[str, Any]:
        """Compact {i, a, c} form sent to the summary and advisor agents."""
        return {"i": self.item, "a": self.amount, "c": self.category}


def sort_newest_first(records: Iterable[Transaction]) -> list[Transaction]:
    """Descending by creation time; records without a timestamp go last."""
    return sorted(records, key=lambda record: record.sort_millis, reverse=True)


def decode_candidates(payload: Any) -> list[ExtractedTransaction]:
    """
    Validate raw agent output into candidate transactions.

    Accepts a JSON string or already-parsed data. A single object counts
    as a one-element list. Invalid elements are dropped individually so one
    bad line on a receipt does not discard the rest.
    """
    if payload is None:
        return []

    data = payload
    if isinstance(payload, (str, bytes)):
        text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        text = text.strip()
        if not text:
            return []
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            logger.warning("candidate_payload_not_json", error=str(e))
            return []

    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        logger.warning("candidate_payload_not_a_list", payload_type=type(data).__name__)
        return []

    candidates: list[ExtractedTransaction] = []
    for index, raw in enumerate(data):
        try:
            candidates.append(ExtractedTransaction.model_validate(raw))
        except ValidationError as e:
            logger.warning(
                "candidate_rejected",
                index=index,
                errors=[err["msg"] for err in e.errors()],
            )
    return candidates


# =============================================================================
# DERIVED VIEWS
# =============================================================================

class CategoryStat(BaseModel):
    """Spending grouped under one normalized category name."""

    name: str
    amount: float = Field(ge=0)
    percentage: int = Field(ge=0, le=100)


class CommitOutcome(BaseModel):
    """Result of committing a single candidate."""

    candidate: ExtractedTransaction
    record_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.record_id is not None


class BatchCommitResult(BaseModel):
    """
    Per-record outcome of committing one turn's candidates.

    The orchestrator still treats any failure as a failed turn, but the
    individual outcomes are kept for logging.
    """

    outcomes: list[CommitOutcome] = Field(default_factory=list)

    @property
    def committed(self) -> list[CommitOutcome]:
        return [outcome for outcome in self.outcomes if outcome.succeeded]

    @property
    def failed(self) -> list[CommitOutcome]:
        return [outcome for outcome in self.outcomes if not outcome.succeeded]

    @property
    def all_succeeded(self) -> bool:
        return not self.failed

    @property
    def total_amount(self) -> float:
        return sum(outcome.candidate.amount for outcome in self.committed)
