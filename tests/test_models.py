"""
Tests for Astra Ledger

Test strategy:
1. Unit tests for individual components (models, storage, agents)
2. Integration tests for flows (with fake agents and a temp-dir ledger)
3. No real API calls in tests (use mocks)
"""

import json
from datetime import datetime, timedelta, timezone
from io import BytesIO
from uuid import uuid4

import pytest
from PIL import Image
from pydantic import ValidationError

from astra_ledger.models.transaction import (
    BatchCommitResult,
    CommitOutcome,
    ExtractedTransaction,
    Transaction,
    decode_candidates,
    from_epoch_parts,
    sort_newest_first,
    to_epoch_parts,
    to_millis,
)
from astra_ledger.models.conversation import (
    AgentStatus,
    ChatTurn,
    ImageAttachment,
    TurnRole,
)
from astra_ledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)


class TestTransactionModels:
    """Tests for ledger records."""

    def test_extracted_transaction_creation(self):
        """Test ExtractedTransaction model creation."""
        candidate = ExtractedTransaction(item="Coffee", amount=120, category="Food")
        assert candidate.item == "Coffee"
        assert candidate.amount == 120.0

    def test_extracted_transaction_strips_whitespace(self):
        candidate = ExtractedTransaction(item="  Taxi  ", amount=300, category=" Transport ")
        assert candidate.item == "Taxi"
        assert candidate.category == "Transport"

    def test_extracted_transaction_rejects_negative_amount(self):
        """Test that negative amounts are rejected."""
        with pytest.raises(ValueError):
            ExtractedTransaction(item="Refund", amount=-50, category="Other")

    def test_extracted_transaction_rejects_non_finite_amount(self):
        with pytest.raises(ValueError):
            ExtractedTransaction(item="Glitch", amount=float("inf"), category="Other")
        with pytest.raises(ValueError):
            ExtractedTransaction(item="Glitch", amount=float("nan"), category="Other")

    def test_extracted_transaction_requires_item(self):
        with pytest.raises(ValueError):
            ExtractedTransaction(item="", amount=10, category="Other")

    def test_transaction_normalizes_naive_timestamp_to_utc(self):
        record = Transaction(id="a", created_at=datetime(2024, 3, 1, 12, 0))
        assert record.created_at.tzinfo == timezone.utc

    def test_transaction_converts_aware_timestamp_to_utc(self):
        ist = timezone(timedelta(hours=5, minutes=30))
        record = Transaction(id="a", created_at=datetime(2024, 3, 1, 17, 30, tzinfo=ist))
        assert record.created_at == datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)

    def test_transaction_snapshot_is_compact(self):
        record = Transaction(id="a", item="Coffee", amount=120, category="Food")
        assert record.snapshot() == {"i": "Coffee", "a": 120.0, "c": "Food"}

    def test_sort_newest_first_puts_pending_timestamps_last(self):
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        older = Transaction(id="old", created_at=base)
        newer = Transaction(id="new", created_at=base + timedelta(minutes=5))
        pending = Transaction(id="pending", created_at=None)

        ordered = sort_newest_first([older, pending, newer])
        assert [record.id for record in ordered] == ["new", "old", "pending"]


class TestTimestamps:
    """The single canonical timestamp and its boundary conversions."""

    def test_epoch_parts_round_trip(self):
        value = from_epoch_parts(1_700_000_000, 500_000_000)
        assert value.tzinfo == timezone.utc
        assert to_epoch_parts(value) == (1_700_000_000, 500_000_000)

    def test_to_millis(self):
        value = from_epoch_parts(1_700_000_000, 250_000_000)
        assert to_millis(value) == 1_700_000_000_250

    def test_out_of_range_epoch_raises_value_error(self):
        with pytest.raises(ValueError):
            from_epoch_parts(10**20)

    def test_to_millis_missing_is_zero(self):
        assert to_millis(None) == 0


class TestDecodeCandidates:
    """Agent output is validated before it can reach storage."""

    def test_decodes_json_array(self):
        payload = json.dumps([
            {"item": "Coffee", "amount": 120, "category": "Food"},
            {"item": "Taxi", "amount": 300, "category": "Transport"},
        ])
        candidates = decode_candidates(payload)
        assert [c.item for c in candidates] == ["Coffee", "Taxi"]

    def test_single_object_becomes_one_element_list(self):
        candidates = decode_candidates('{"item": "Lunch", "amount": 250, "category": "Food"}')
        assert len(candidates) == 1
        assert candidates[0].amount == 250.0

    def test_invalid_elements_are_dropped_individually(self):
        payload = [
            {"item": "Coffee", "amount": 120, "category": "Food"},
            {"item": "Refund", "amount": -40, "category": "Other"},
            {"item": "Mystery", "amount": "lots", "category": "Other"},
            {"amount": 10, "category": "Other"},
            "not an object",
        ]
        candidates = decode_candidates(payload)
        assert [c.item for c in candidates] == ["Coffee"]

    def test_numeric_strings_are_coerced(self):
        candidates = decode_candidates([{"item": "Tea", "amount": "30.5", "category": "Food"}])
        assert candidates[0].amount == 30.5

    @pytest.mark.parametrize("payload", [None, "", "   ", "not json", "42", b"{oops"])
    def test_unusable_payloads_yield_nothing(self, payload):
        assert decode_candidates(payload) == []


class TestBatchCommitResult:

    def test_all_succeeded(self):
        coffee = ExtractedTransaction(item="Coffee", amount=120, category="Food")
        taxi = ExtractedTransaction(item="Taxi", amount=300, category="Transport")
        result = BatchCommitResult(outcomes=[
            CommitOutcome(candidate=coffee, record_id="1"),
            CommitOutcome(candidate=taxi, record_id="2"),
        ])
        assert result.all_succeeded
        assert result.total_amount == 420.0
        assert result.failed == []

    def test_partial_failure(self):
        coffee = ExtractedTransaction(item="Coffee", amount=120, category="Food")
        taxi = ExtractedTransaction(item="Taxi", amount=300, category="Transport")
        result = BatchCommitResult(outcomes=[
            CommitOutcome(candidate=coffee, record_id="1"),
            CommitOutcome(candidate=taxi, error="StorageWriteError: disk full"),
        ])
        assert not result.all_succeeded
        assert len(result.committed) == 1
        assert result.failed[0].candidate.item == "Taxi"
        assert result.total_amount == 120.0


class TestConversationModels:

    def test_chat_turn_factories(self):
        user_turn = ChatTurn.user("coffee 120")
        reply = ChatTurn.assistant(
            "Ledger updated.",
            transactions=(ExtractedTransaction(item="Coffee", amount=120, category="Food"),),
        )
        assert user_turn.role == TurnRole.USER
        assert reply.role == TurnRole.ASSISTANT
        assert reply.transactions[0].item == "Coffee"
        assert user_turn.id != reply.id

    def test_chat_turn_is_frozen(self):
        turn = ChatTurn.user("coffee 120")
        with pytest.raises(ValidationError):
            turn.text = "edited"

    def test_status_labels(self):
        assert AgentStatus.VISION.label == "Scanning Receipt..."
        assert AgentStatus.PARSING.label == "Parsing Text..."
        assert AgentStatus.LEDGER.label == "Updating Ledger..."
        assert AgentStatus.SUMMARY.label == "Analyzing..."

    def test_image_attachment_rejects_non_image_type(self):
        with pytest.raises(ValueError):
            ImageAttachment(data=b"%PDF-1.4", mime_type="application/pdf")

    def test_image_attachment_sniffs_mime_type(self):
        buffer = BytesIO()
        Image.new("RGB", (4, 4), color="white").save(buffer, format="PNG")

        attachment = ImageAttachment.from_bytes(buffer.getvalue(), filename="receipt.png")
        assert attachment.mime_type == "image/png"

    def test_image_attachment_rejects_unreadable_bytes(self):
        with pytest.raises(ValueError):
            ImageAttachment.from_bytes(b"definitely not an image")


class TestAuditModels:
    """Tests for audit-related models."""

    def test_audit_event_creation(self):
        """Test AuditEvent model creation."""
        event = AuditEvent(
            event_type=AuditEventType.TRANSACTION_SAVED,
            description="Transaction saved",
        )
        assert event.event_type == AuditEventType.TRANSACTION_SAVED
        assert event.severity == AuditSeverity.INFO
        assert event.event_id is not None

    def test_audit_event_to_log_dict(self):
        """Test conversion to log dictionary."""
        correlation_id = uuid4()
        event = AuditEvent(
            event_type=AuditEventType.TURN_RECEIVED,
            correlation_id=correlation_id,
            description="Turn received",
            details={"has_text": True},
        )
        log_dict = event.to_log_dict()
        assert log_dict["event_type"] == "turn_received"
        assert log_dict["correlation_id"] == str(correlation_id)
        assert log_dict["details"] == {"has_text": True}

    def test_audit_event_builder_transaction_saved(self):
        correlation_id = uuid4()
        event = AuditEventBuilder.transaction_saved(
            record_id="abc",
            item="Coffee",
            amount=120.0,
            correlation_id=correlation_id,
        )
        assert event.event_type == AuditEventType.TRANSACTION_SAVED
        assert event.entity_id == "abc"
        assert event.details["item"] == "Coffee"

    def test_audit_event_builder_save_failed_is_error(self):
        event = AuditEventBuilder.save_failed(
            failed_count=1,
            total_count=2,
            errors=["StorageWriteError: disk full"],
            correlation_id=uuid4(),
        )
        assert event.severity == AuditSeverity.ERROR
        assert "1 of 2" in event.description

    def test_audit_event_builder_extraction_failed_is_warning(self):
        event = AuditEventBuilder.extraction_failed(agent="vision", error_message="timeout")
        assert event.event_type == AuditEventType.EXTRACTION_FAILED
        assert event.severity == AuditSeverity.WARNING
        assert event.entity_id == "vision"

    def test_audit_event_builder_subscription_failed(self):
        event = AuditEventBuilder.subscription_failed("uid-1", "offline")
        assert event.event_type == AuditEventType.SUBSCRIPTION_FAILED
        assert event.entity_id == "uid-1"
        assert event.error_message == "offline"

    def test_audit_event_builder_external_service_error(self):
        event = AuditEventBuilder.external_service_error(service="summary", error_message="quota")
        assert event.event_type == AuditEventType.EXTERNAL_SERVICE_ERROR
        assert event.details == {"service": "summary"}
