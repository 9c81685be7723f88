"""Tests for the Firestore adapter (client mocked, no network)."""

import asyncio
import itertools
from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest
from google.cloud import firestore

from astra_ledger.audit import AuditLogger
from astra_ledger.config import FirebaseSettings
from astra_ledger.models.transaction import ExtractedTransaction
from astra_ledger.services.storage import (
    FirestoreTransactionStorage,
    StorageWriteError,
    noop_unsubscribe,
)


def _snapshot(doc_id, data):
    snapshot = MagicMock()
    snapshot.id = doc_id
    snapshot.to_dict.return_value = data
    return snapshot


@pytest.fixture
def client():
    return MagicMock()


@pytest.fixture
def cloud_storage(client):
    return FirestoreTransactionStorage(
        client=client,
        app_id="test-app",
        settings=FirebaseSettings(api_key="real-key", project_id="demo"),
    )


class TestFirestoreStorage:

    @pytest.mark.anyio
    async def test_create_writes_under_user_collection(self, client, cloud_storage):
        collection = client.collection.return_value
        collection.add.return_value = (None, MagicMock(id="doc-1"))

        record_id = await cloud_storage.create(
            "uid-1",
            ExtractedTransaction(item="Coffee", amount=120, category="Food"),
            "coffee 120",
        )

        assert record_id == "doc-1"
        client.collection.assert_called_with("artifacts", "test-app", "users", "uid-1", "expenses")
        payload = collection.add.call_args.args[0]
        assert payload["item"] == "Coffee"
        assert payload["originalText"] == "coffee 120"
        assert payload["createdAt"] is firestore.SERVER_TIMESTAMP

    @pytest.mark.anyio
    async def test_create_failure_raises_storage_error(self, client, cloud_storage):
        client.collection.return_value.add.side_effect = RuntimeError("permission denied")

        with pytest.raises(StorageWriteError):
            await cloud_storage.create(
                "uid-1",
                ExtractedTransaction(item="Coffee", amount=120, category="Food"),
                "coffee 120",
            )

    @pytest.mark.anyio
    async def test_delete_targets_document(self, client, cloud_storage):
        document = client.collection.return_value.document.return_value

        await cloud_storage.delete("uid-1", "doc-9")

        client.collection.return_value.document.assert_called_once_with("doc-9")
        document.delete.assert_called_once()

    def test_subscription_converts_and_orders_snapshots(self, client, cloud_storage):
        watch = MagicMock()
        callbacks = []

        def on_snapshot(callback):
            callbacks.append(callback)
            return watch

        client.collection.return_value.on_snapshot.side_effect = on_snapshot
        received = []

        unsubscribe = cloud_storage.subscribe("uid-1", received.append)
        callbacks[0](
            [
                _snapshot("old", {
                    "item": "Tea", "amount": 30, "category": "Food",
                    "createdAt": datetime(2024, 1, 1, tzinfo=timezone.utc),
                }),
                _snapshot("pending", {
                    "item": "Cab", "amount": 200, "category": "Transport",
                    "createdAt": None,
                }),
                _snapshot("new", {
                    "item": "Lunch", "amount": 250, "category": "Food",
                    "createdAt": datetime(2024, 2, 1, tzinfo=timezone.utc),
                }),
                _snapshot("broken", {"item": "Refund", "amount": -10}),
            ],
            [],
            None,
        )

        assert [record.id for record in received[0]] == ["new", "old", "pending"]
        assert received[0][2].created_at is None

        unsubscribe()
        watch.unsubscribe.assert_called_once()

    def test_subscription_failure_returns_noop(self, client, cloud_storage):
        client.collection.return_value.on_snapshot.side_effect = RuntimeError("offline")

        unsubscribe = cloud_storage.subscribe("uid-1", lambda records: None)

        assert unsubscribe is noop_unsubscribe

    def test_subscription_failure_is_audited(self, client):
        audit_logger = MagicMock(spec=AuditLogger)
        cloud_storage = FirestoreTransactionStorage(
            client=client,
            app_id="test-app",
            settings=FirebaseSettings(api_key="real-key", project_id="demo"),
            audit_logger=audit_logger,
        )
        client.collection.return_value.on_snapshot.side_effect = RuntimeError("offline")

        cloud_storage.subscribe("uid-1", lambda records: None)

        audit_logger.log_subscription_failed.assert_called_once_with("uid-1", "offline")

    @pytest.mark.anyio
    async def test_concurrent_creates_return_unique_ids(self, client, cloud_storage):
        counter = itertools.count(1)
        client.collection.return_value.add.side_effect = (
            lambda payload: (None, MagicMock(id=f"doc-{next(counter)}"))
        )
        candidates = [
            ExtractedTransaction(item=f"Item {i}", amount=i, category="Other")
            for i in range(10)
        ]

        ids = await asyncio.gather(
            *(cloud_storage.create("uid-1", c, "batch") for c in candidates)
        )

        assert len(set(ids)) == 10
        assert client.collection.return_value.add.call_count == 10

    @pytest.mark.anyio
    async def test_list_transactions(self, client, cloud_storage):
        client.collection.return_value.stream.return_value = iter([
            _snapshot("a", {"item": "Tea", "amount": 30, "category": "Food"}),
        ])

        records = await cloud_storage.list_transactions("uid-1")

        assert [record.item for record in records] == ["Tea"]
