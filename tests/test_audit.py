"""Tests for the audit logger."""

from unittest.mock import MagicMock

from astra_ledger.audit import AuditLogger, create_correlation_id


class TestAuditLogger:

    def test_info_events_log_at_info(self):
        logger = MagicMock()
        audit = AuditLogger(logger=logger)

        audit.log_transaction_saved(
            record_id="abc",
            item="Coffee",
            amount=120.0,
            correlation_id=create_correlation_id(),
        )

        logger.info.assert_called_once()
        event_name = logger.info.call_args.args[0]
        fields = logger.info.call_args.kwargs
        assert event_name == "audit_event"
        assert fields["event_type"] == "transaction_saved"
        assert fields["entity_id"] == "abc"

    def test_errors_log_at_error(self):
        logger = MagicMock()
        audit = AuditLogger(logger=logger)

        audit.log_error(error_type="RuntimeError", error_message="boom")

        logger.error.assert_called_once()
        assert logger.error.call_args.kwargs["error_message"] == "boom"

    def test_turn_received_carries_flags(self):
        logger = MagicMock()
        audit = AuditLogger(logger=logger)

        audit.log_turn_received(
            correlation_id=create_correlation_id(),
            has_text=True,
            has_image=False,
            is_question=True,
        )

        details = logger.info.call_args.kwargs["details"]
        assert details == {"has_text": True, "has_image": False, "is_question": True}
