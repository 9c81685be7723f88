"""
Storage Services Package

Provides the abstract ledger storage interface and its two implementations:
Cloud Firestore (cloud mode) and a local JSON file (local mode).
"""

from astra_ledger.services.storage.interface import (
    ChangeCallback,
    StorageConnectionError,
    StorageError,
    StorageWriteError,
    TransactionStorageInterface,
    Unsubscribe,
    noop_unsubscribe,
)
from astra_ledger.services.storage.local_json import (
    LocalChangeSignal,
    LocalJsonTransactionStorage,
)
from astra_ledger.services.storage.cloud_firestore import FirestoreTransactionStorage

__all__ = [
    # Interface
    "ChangeCallback",
    "TransactionStorageInterface",
    "Unsubscribe",
    "noop_unsubscribe",
    # Exceptions
    "StorageConnectionError",
    "StorageError",
    "StorageWriteError",
    # Implementations
    "FirestoreTransactionStorage",
    "LocalChangeSignal",
    "LocalJsonTransactionStorage",
]
