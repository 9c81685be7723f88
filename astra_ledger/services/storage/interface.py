"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for ledger storage.
This allows us to:
1. Run against Firestore when Firebase is configured
2. Fall back to a local JSON file when it is not
3. Substitute an in-memory fake in tests without restarting anything

The chosen backend is injected into every consumer at construction time.
Nothing in the business logic knows which backend it is talking to.

CONTRACT:
- subscribe(user_id, on_change) delivers the FULL record set, newest first,
  every time it changes. It returns a function that stops delivery.
- create(user_id, candidate, source_text) is the only way records are added.
- delete(user_id, record_id) of an unknown id is a no-op.
"""

from abc import ABC, abstractmethod
from typing import Callable

from astra_ledger.models.transaction import ExtractedTransaction, Transaction


ChangeCallback = Callable[[list[Transaction]], None]
Unsubscribe = Callable[[], None]


def noop_unsubscribe() -> None:
    """Returned when a subscription could not be opened."""


class TransactionStorageInterface(ABC):
    """
    Abstract interface for ledger storage operations.

    Any storage implementation (Firestore, local JSON, in-memory)
    must implement these methods.
    """

    #: Short name used in logs and the UI footer.
    mode: str = "unknown"

    @abstractmethod
    def subscribe(self, user_id: str, on_change: ChangeCallback) -> Unsubscribe:
        """
        Watch a user's records.

        Args:
            user_id: Owner of the records
            on_change: Called with the full, newest-first record set

        Returns:
            A callable that cancels the subscription
        """
        pass

    @abstractmethod
    async def create(
        self,
        user_id: str,
        candidate: ExtractedTransaction,
        source_text: str,
    ) -> str:
        """
        Store a new record built from an extracted candidate.

        Args:
            user_id: Owner of the record
            candidate: The extracted item/amount/category
            source_text: The utterance the candidate came from

        Returns:
            The id assigned to the new record

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(self, user_id: str, record_id: str) -> None:
        """
        Delete a record by id. Unknown ids are ignored.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def list_transactions(self, user_id: str) -> list[Transaction]:
        """
        One-shot read of a user's records, newest first.
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class StorageConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


class StorageWriteError(StorageError):
    """A create or delete did not reach the backend."""
    pass
