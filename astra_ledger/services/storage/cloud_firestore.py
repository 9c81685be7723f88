"""
Cloud Firestore Storage Implementation

DESIGN DECISION: Firestore is used as the cloud backend because:
1. Live queries push every change to every open client
2. Server-assigned timestamps give one ordering across devices
3. Anonymous Firebase users map directly onto per-user collections

Records live under `artifacts/{app_id}/users/{uid}/expenses`.

FAILURE SEMANTICS:
- A subscription that cannot be opened is logged; the caller simply never
  receives updates. There is no retry.
- A failed write raises StorageWriteError for the orchestrator to handle.
"""

import asyncio
from datetime import datetime
from typing import Any, Optional

import structlog
from google.cloud import firestore
from google.oauth2.service_account import Credentials
from pydantic import ValidationError

from astra_ledger.audit import AuditLogger
from astra_ledger.config import FirebaseSettings, get_settings
from astra_ledger.models.transaction import (
    ExtractedTransaction,
    Transaction,
    sort_newest_first,
)
from astra_ledger.services.storage.interface import (
    ChangeCallback,
    StorageConnectionError,
    StorageError,
    StorageWriteError,
    TransactionStorageInterface,
    Unsubscribe,
    noop_unsubscribe,
)

logger = structlog.get_logger(__name__)


class FirestoreTransactionStorage(TransactionStorageInterface):
    """
    Firestore implementation of ledger storage.

    The client is created lazily so the object can be built at startup
    even when credentials are mounted later.
    """

    mode = "cloud"

    def __init__(
        self,
        client: Optional[firestore.Client] = None,
        app_id: Optional[str] = None,
        settings: Optional[FirebaseSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._client = client
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().firebase
        self._app_id = app_id or get_settings().app.app_id

    def _get_client(self) -> firestore.Client:
        """Get or create the Firestore client."""
        if self._client is None:
            try:
                credentials = None
                if self._settings.credentials_path:
                    credentials = Credentials.from_service_account_file(
                        self._settings.credentials_path
                    )
                self._client = firestore.Client(
                    project=self._settings.project_id,
                    credentials=credentials,
                )
            except FileNotFoundError:
                raise StorageConnectionError(
                    f"Firebase credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise StorageConnectionError(f"Failed to connect to Firestore: {e}") from e
        return self._client

    def _collection(self, user_id: str):
        return self._get_client().collection(
            "artifacts", self._app_id, "users", user_id, "expenses"
        )

    def _from_document(self, snapshot: Any) -> Optional[Transaction]:
        """Convert a document snapshot; pending server timestamps become None."""
        data = snapshot.to_dict() or {}
        created_at = data.get("createdAt")
        if not isinstance(created_at, datetime):
            created_at = None
        try:
            return Transaction(
                id=snapshot.id,
                item=data.get("item") or "",
                amount=data.get("amount") or 0,
                category=data.get("category") or "",
                created_at=created_at,
                original_text=data.get("originalText"),
            )
        except ValidationError as e:
            logger.warning("firestore_record_skipped", record_id=snapshot.id, error=str(e))
            return None

    def _to_records(self, snapshots: Any) -> list[Transaction]:
        records = [self._from_document(snapshot) for snapshot in snapshots]
        return sort_newest_first(record for record in records if record is not None)

    # -------------------------------------------------------------------------
    # TransactionStorageInterface
    # -------------------------------------------------------------------------

    def subscribe(self, user_id: str, on_change: ChangeCallback) -> Unsubscribe:
        def on_snapshot(snapshots, changes, read_time) -> None:
            on_change(self._to_records(snapshots))

        try:
            watch = self._collection(user_id).on_snapshot(on_snapshot)
        except Exception as e:
            logger.error("firestore_subscription_failed", user_id=user_id, error=str(e))
            if self._audit_logger:
                self._audit_logger.log_subscription_failed(user_id, str(e))
            return noop_unsubscribe
        return watch.unsubscribe

    async def create(
        self,
        user_id: str,
        candidate: ExtractedTransaction,
        source_text: str,
    ) -> str:
        payload = {
            "item": candidate.item,
            "amount": candidate.amount,
            "category": candidate.category,
            "originalText": source_text,
            "createdAt": firestore.SERVER_TIMESTAMP,
        }
        try:
            _, document = await asyncio.to_thread(self._collection(user_id).add, payload)
        except StorageError:
            raise
        except Exception as e:
            raise StorageWriteError(f"Failed to save transaction: {e}") from e
        return document.id

    async def delete(self, user_id: str, record_id: str) -> None:
        # Firestore treats deleting a missing document as success.
        try:
            document = self._collection(user_id).document(record_id)
            await asyncio.to_thread(document.delete)
        except StorageError:
            raise
        except Exception as e:
            raise StorageWriteError(f"Failed to delete transaction {record_id}: {e}") from e

    async def list_transactions(self, user_id: str) -> list[Transaction]:
        try:
            snapshots = await asyncio.to_thread(
                lambda: list(self._collection(user_id).stream())
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageConnectionError(f"Failed to read transactions: {e}") from e
        return self._to_records(snapshots)
