"""
Audit Logger

DESIGN DECISION: Every significant action in a user turn is logged.
This provides:
1. Traceability of what the agents proposed and what reached the ledger
2. Debugging capability when a turn ends in the generic error message
3. Correlation ids that tie all events of one turn together
"""

import logging
import sys
from typing import Optional
from uuid import UUID, uuid4

import structlog

from astra_ledger.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


def configure_logging(level: str = "INFO", json_logs: bool = True) -> None:
    """Configure structlog on top of the stdlib logging module."""
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper(), logging.INFO),
    )
    renderer = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()


class AuditLogger:
    """
    Central audit logging service.

    Writes each AuditEvent through structlog at the level that matches
    its severity.
    """

    def __init__(self, logger: Optional[structlog.stdlib.BoundLogger] = None):
        self._logger = logger or structlog.get_logger("astra_ledger.audit")

    def log(self, event: AuditEvent) -> None:
        """Log an audit event."""
        log_dict = event.to_log_dict()

        if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
            self._logger.error("audit_event", **log_dict)
        elif event.severity == AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        elif event.severity == AuditSeverity.DEBUG:
            self._logger.debug("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

    def log_turn_received(
        self,
        correlation_id: UUID,
        has_text: bool,
        has_image: bool,
        is_question: bool,
    ) -> None:
        self.log(AuditEventBuilder.turn_received(
            correlation_id=correlation_id,
            has_text=has_text,
            has_image=has_image,
            is_question=is_question,
        ))

    def log_turn_rejected_busy(self) -> None:
        self.log(AuditEventBuilder.turn_rejected_busy())

    def log_extraction_completed(
        self,
        agent: str,
        candidate_count: int,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.extraction_completed(
            agent=agent,
            candidate_count=candidate_count,
            correlation_id=correlation_id,
        ))

    def log_extraction_failed(
        self,
        agent: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        self.log(AuditEventBuilder.extraction_failed(
            agent=agent,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    def log_transaction_saved(
        self,
        record_id: str,
        item: str,
        amount: float,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.transaction_saved(
            record_id=record_id,
            item=item,
            amount=amount,
            correlation_id=correlation_id,
        ))

    def log_transaction_deleted(self, record_id: str) -> None:
        self.log(AuditEventBuilder.transaction_deleted(record_id))

    def log_save_failed(
        self,
        failed_count: int,
        total_count: int,
        errors: list[str],
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.save_failed(
            failed_count=failed_count,
            total_count=total_count,
            errors=errors,
            correlation_id=correlation_id,
        ))

    def log_subscription_failed(self, user_id: str, error_message: str) -> None:
        self.log(AuditEventBuilder.subscription_failed(user_id, error_message))

    def log_question_answered(
        self,
        question: str,
        snapshot_size: int,
        correlation_id: UUID,
    ) -> None:
        self.log(AuditEventBuilder.question_answered(
            question=question,
            snapshot_size=snapshot_size,
            correlation_id=correlation_id,
        ))

    def log_insight_generated(self, snapshot_size: int) -> None:
        self.log(AuditEventBuilder.insight_generated(snapshot_size))

    def log_user_signed_in(self, uid: str, mode: str) -> None:
        self.log(AuditEventBuilder.user_signed_in(uid, mode))

    def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))

    def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log external service error."""
        self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user turn and pass it through
    every step of that turn.
    """
    return uuid4()
