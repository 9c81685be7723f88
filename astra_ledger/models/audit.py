"""
Audit Models for Astra Ledger

Every significant action in a user turn is recorded as an audit event:
what the agents returned, what was written to the ledger, and what failed.

DESIGN DECISION: Audit events go to the structured log only.
Conversation content is never sent to a storage backend, and the
audit trail carries the same restriction.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Conversation
    TURN_RECEIVED = "turn_received"
    TURN_REJECTED_BUSY = "turn_rejected_busy"

    # Extraction
    EXTRACTION_COMPLETED = "extraction_completed"
    EXTRACTION_FAILED = "extraction_failed"

    # Persistence
    TRANSACTION_SAVED = "transaction_saved"
    TRANSACTION_DELETED = "transaction_deleted"
    SAVE_FAILED = "save_failed"
    SUBSCRIPTION_FAILED = "subscription_failed"

    # Questions and insights
    QUESTION_ANSWERED = "question_answered"
    INSIGHT_GENERATED = "insight_generated"

    # Identity
    USER_SIGNED_IN = "user_signed_in"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'turn', 'agent')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (all events of one user turn)"
    )

    # Event details
    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.turn_received(correlation_id, has_text=True, has_image=False)
        event = AuditEventBuilder.transaction_saved(record_id, item, amount, correlation_id)
    """

    @staticmethod
    def turn_received(
        correlation_id: UUID,
        has_text: bool,
        has_image: bool,
        is_question: bool,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TURN_RECEIVED,
            entity_type="turn",
            correlation_id=correlation_id,
            description="User turn received",
            details={
                "has_text": has_text,
                "has_image": has_image,
                "is_question": is_question,
            },
            is_user_action=True,
        )

    @staticmethod
    def turn_rejected_busy() -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TURN_REJECTED_BUSY,
            severity=AuditSeverity.WARNING,
            entity_type="turn",
            description="Turn rejected: another turn is still processing",
            is_user_action=True,
        )

    @staticmethod
    def extraction_completed(
        agent: str,
        candidate_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_COMPLETED,
            entity_type="agent",
            entity_id=agent,
            correlation_id=correlation_id,
            description=f"{agent} agent proposed {candidate_count} transactions",
            details={
                "candidate_count": candidate_count,
            },
        )

    @staticmethod
    def extraction_failed(
        agent: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="agent",
            entity_id=agent,
            correlation_id=correlation_id,
            description=f"{agent} agent failed; treated as no transactions",
            error_message=error_message,
        )

    @staticmethod
    def transaction_saved(
        record_id: str,
        item: str,
        amount: float,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            entity_type="transaction",
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Transaction saved: {item} - {amount}",
            details={
                "item": item,
                "amount": amount,
            },
        )

    @staticmethod
    def transaction_deleted(record_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_DELETED,
            entity_type="transaction",
            entity_id=record_id,
            description="Transaction deleted",
            is_user_action=True,
        )

    @staticmethod
    def save_failed(
        failed_count: int,
        total_count: int,
        errors: list[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"{failed_count} of {total_count} transactions failed to save",
            details={
                "errors": errors,
            },
        )

    @staticmethod
    def subscription_failed(user_id: str, error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SUBSCRIPTION_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="user",
            entity_id=user_id,
            description="Live ledger subscription could not be opened",
            error_message=error_message,
        )

    @staticmethod
    def question_answered(
        question: str,
        snapshot_size: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.QUESTION_ANSWERED,
            entity_type="turn",
            correlation_id=correlation_id,
            description="Question answered by the summary agent",
            details={
                "question_length": len(question),
                "snapshot_size": snapshot_size,
            },
        )

    @staticmethod
    def insight_generated(snapshot_size: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.INSIGHT_GENERATED,
            entity_type="agent",
            entity_id="advisor",
            description="Dashboard insight generated",
            details={
                "snapshot_size": snapshot_size,
            },
        )

    @staticmethod
    def user_signed_in(uid: str, mode: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_SIGNED_IN,
            entity_type="user",
            entity_id=uid,
            description=f"User identity available ({mode} mode)",
            details={
                "mode": mode,
            },
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
