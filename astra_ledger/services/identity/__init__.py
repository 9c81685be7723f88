"""Identity services package."""

from astra_ledger.services.identity.provider import (
    LOCAL_USER_ID,
    AnonymousFirebaseIdentity,
    IdentityError,
    IdentityProvider,
    LocalIdentity,
    OnUserChanged,
)

__all__ = [
    "LOCAL_USER_ID",
    "AnonymousFirebaseIdentity",
    "IdentityError",
    "IdentityProvider",
    "LocalIdentity",
    "OnUserChanged",
]
