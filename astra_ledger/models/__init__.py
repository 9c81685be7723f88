"""
Data Models Package

This package contains all Pydantic models used in Astra Ledger.
All data flowing through the system must conform to these schemas.
"""

from astra_ledger.models.transaction import (
    BatchCommitResult,
    CategoryStat,
    CommitOutcome,
    ExtractedTransaction,
    Transaction,
    decode_candidates,
    ensure_utc,
    from_epoch_parts,
    sort_newest_first,
    to_epoch_parts,
    to_millis,
    utc_now,
)
from astra_ledger.models.conversation import (
    AgentStatus,
    ChatTurn,
    ImageAttachment,
    TurnRole,
    UserIdentity,
)
from astra_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "BatchCommitResult",
    "CategoryStat",
    "CommitOutcome",
    "ExtractedTransaction",
    "Transaction",
    "decode_candidates",
    "ensure_utc",
    "from_epoch_parts",
    "sort_newest_first",
    "to_epoch_parts",
    "to_millis",
    "utc_now",
    # Conversation models
    "AgentStatus",
    "ChatTurn",
    "ImageAttachment",
    "TurnRole",
    "UserIdentity",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
