"""
Local JSON Storage Implementation

Used when Firebase is not configured. The whole ledger is one serialized
list in a single file, the Python counterpart of a browser key-value slot.

TRADEOFFS:
- Every write rewrites the full list
- Change notification only reaches subscribers in this process
- Read or parse problems degrade to an empty ledger instead of failing

Records are stored with `createdAt: {"seconds", "nanoseconds"}` so the file
has the same timestamp shape as a cloud export. The conversion to the
canonical datetime happens here and nowhere else.
"""

import json
import os
import threading
from pathlib import Path
from typing import Any, Callable, Optional
from uuid import uuid4

import structlog
from pydantic import ValidationError

from astra_ledger.config import get_settings
from astra_ledger.models.transaction import (
    ExtractedTransaction,
    Transaction,
    from_epoch_parts,
    sort_newest_first,
    to_epoch_parts,
    utc_now,
)
from astra_ledger.services.storage.interface import (
    ChangeCallback,
    StorageWriteError,
    TransactionStorageInterface,
    Unsubscribe,
)

logger = structlog.get_logger(__name__)


class LocalChangeSignal:
    """
    In-process broadcast fired after every local write.

    Any component holding the same signal is told to reload.
    """

    def __init__(self):
        self._listeners: list[Callable[[], None]] = []
        self._lock = threading.Lock()

    def connect(self, listener: Callable[[], None]) -> Unsubscribe:
        with self._lock:
            self._listeners.append(listener)

        def disconnect() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return disconnect

    def send(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            listener()

    @property
    def receiver_count(self) -> int:
        with self._lock:
            return len(self._listeners)


class LocalJsonTransactionStorage(TransactionStorageInterface):
    """
    File-backed implementation of ledger storage.

    The ledger slot is shared by every local user id: local mode only
    ever has the single placeholder identity.
    """

    mode = "local"

    def __init__(
        self,
        data_dir: Optional[str | Path] = None,
        app_id: Optional[str] = None,
        signal: Optional[LocalChangeSignal] = None,
    ):
        settings = get_settings().app
        self._data_dir = Path(data_dir) if data_dir is not None else settings.local_data_path
        self._path = self._data_dir / f"astra_ledger_{app_id or settings.app_id}_data.json"
        self._signal = signal or LocalChangeSignal()
        self._write_lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def signal(self) -> LocalChangeSignal:
        return self._signal

    # -------------------------------------------------------------------------
    # Serialization boundary
    # -------------------------------------------------------------------------

    def _to_stored(self, record: Transaction) -> dict[str, Any]:
        stored: dict[str, Any] = {
            "id": record.id,
            "item": record.item,
            "amount": record.amount,
            "category": record.category,
            "originalText": record.original_text,
        }
        if record.created_at is not None:
            seconds, nanoseconds = to_epoch_parts(record.created_at)
            stored["createdAt"] = {"seconds": seconds, "nanoseconds": nanoseconds}
        return stored

    def _from_stored(self, entry: dict[str, Any]) -> Transaction:
        created_at = None
        raw_created = entry.get("createdAt")
        if isinstance(raw_created, dict) and "seconds" in raw_created:
            created_at = from_epoch_parts(
                int(raw_created["seconds"]),
                int(raw_created.get("nanoseconds") or 0),
            )
        elif isinstance(raw_created, (int, float)) and not isinstance(raw_created, bool):
            created_at = from_epoch_parts(int(raw_created))

        return Transaction(
            id=entry.get("id") or "",
            item=entry.get("item") or "",
            amount=entry.get("amount") or 0,
            category=entry.get("category") or "",
            created_at=created_at,
            original_text=entry.get("originalText"),
        )

    # -------------------------------------------------------------------------
    # Raw slot access
    # -------------------------------------------------------------------------

    def _read_entries(self) -> list[dict[str, Any]]:
        """Read the raw list; any problem yields an empty ledger."""
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError as e:
            logger.warning("local_ledger_unreadable", path=str(self._path), error=str(e))
            return []

        try:
            data = json.loads(text) if text.strip() else []
        except json.JSONDecodeError as e:
            logger.warning("local_ledger_corrupt", path=str(self._path), error=str(e))
            return []

        if not isinstance(data, list):
            logger.warning("local_ledger_corrupt", path=str(self._path), error="not a list")
            return []
        return [entry for entry in data if isinstance(entry, dict)]

    def _write_entries(self, entries: list[dict[str, Any]]) -> None:
        """Replace the slot atomically."""
        try:
            self._data_dir.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_name(self._path.name + ".tmp")
            tmp_path.write_text(json.dumps(entries, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as e:
            raise StorageWriteError(f"Failed to write local ledger {self._path}: {e}") from e

    def _load(self) -> list[Transaction]:
        records = []
        for entry in self._read_entries():
            try:
                records.append(self._from_stored(entry))
            except (ValidationError, TypeError, ValueError, OverflowError) as e:
                logger.warning("local_record_skipped", record_id=entry.get("id"), error=str(e))
        return sort_newest_first(records)

    # -------------------------------------------------------------------------
    # TransactionStorageInterface
    # -------------------------------------------------------------------------

    def subscribe(self, user_id: str, on_change: ChangeCallback) -> Unsubscribe:
        def reload() -> None:
            on_change(self._load())

        reload()
        return self._signal.connect(reload)

    async def create(
        self,
        user_id: str,
        candidate: ExtractedTransaction,
        source_text: str,
    ) -> str:
        # No await between read and write: concurrent creates on one
        # event loop cannot interleave and lose records.
        record = Transaction(
            id=str(uuid4()),
            item=candidate.item,
            amount=candidate.amount,
            category=candidate.category,
            created_at=utc_now(),
            original_text=source_text,
        )
        with self._write_lock:
            entries = self._read_entries()
            entries.append(self._to_stored(record))
            self._write_entries(entries)
        self._signal.send()
        return record.id

    async def delete(self, user_id: str, record_id: str) -> None:
        with self._write_lock:
            entries = self._read_entries()
            remaining = [entry for entry in entries if entry.get("id") != record_id]
            if len(remaining) == len(entries):
                return
            self._write_entries(remaining)
        self._signal.send()

    async def list_transactions(self, user_id: str) -> list[Transaction]:
        return self._load()
