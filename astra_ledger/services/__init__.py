"""Services package."""

from astra_ledger.services.identity import (
    LOCAL_USER_ID,
    AnonymousFirebaseIdentity,
    IdentityError,
    IdentityProvider,
    LocalIdentity,
)
from astra_ledger.services.storage import (
    FirestoreTransactionStorage,
    LocalJsonTransactionStorage,
    StorageConnectionError,
    StorageError,
    StorageWriteError,
    TransactionStorageInterface,
)

__all__ = [
    # Identity services
    "LOCAL_USER_ID",
    "AnonymousFirebaseIdentity",
    "IdentityError",
    "IdentityProvider",
    "LocalIdentity",
    # Storage services
    "FirestoreTransactionStorage",
    "LocalJsonTransactionStorage",
    "StorageConnectionError",
    "StorageError",
    "StorageWriteError",
    "TransactionStorageInterface",
]
