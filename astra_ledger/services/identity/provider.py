"""
Identity Providers

Supplies the stable user id that scopes a ledger.

- Cloud mode: anonymous Firebase sign-in through the Identity Toolkit REST
  API. The uid is cached for the life of the provider. No logout, token
  refresh or re-authentication.
- Local mode: a fixed placeholder identity, announced after a short delay
  so callers always see the same asynchronous contract.

CONTRACT:
    unsubscribe = provider.init(on_user_changed)

`init` must be called from a running event loop. The listener is invoked
later on that loop with a UserIdentity, or None if sign-in failed.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Callable, Optional

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from astra_ledger.config import FirebaseSettings, get_settings
from astra_ledger.models.conversation import UserIdentity

logger = structlog.get_logger(__name__)


LOCAL_USER_ID = "local_user"

OnUserChanged = Callable[[Optional[UserIdentity]], None]
Unsubscribe = Callable[[], None]


class IdentityError(Exception):
    """Sign-in returned no usable identity."""
    pass


class IdentityProvider(ABC):
    """Abstract source of the current user."""

    mode: str = "unknown"

    @abstractmethod
    def init(self, on_user_changed: OnUserChanged) -> Unsubscribe:
        """
        Start resolving the user and register a listener.

        Returns:
            A callable that stops further notifications
        """
        pass

    async def wait_for_user(self, timeout: Optional[float] = None) -> Optional[UserIdentity]:
        """Resolve the user once, for callers that prefer to await."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def deliver(user: Optional[UserIdentity]) -> None:
            if not future.done():
                future.set_result(user)

        unsubscribe = self.init(deliver)
        try:
            return await asyncio.wait_for(future, timeout)
        finally:
            unsubscribe()


class LocalIdentity(IdentityProvider):
    """Placeholder identity used when Firebase is not configured."""

    mode = "local"

    def __init__(self, delay_seconds: Optional[float] = None):
        if delay_seconds is None:
            delay_seconds = get_settings().app.local_identity_delay_seconds
        self._delay = delay_seconds
        self.user = UserIdentity(uid=LOCAL_USER_ID, is_anonymous=True)

    def init(self, on_user_changed: OnUserChanged) -> Unsubscribe:
        handle = asyncio.get_running_loop().call_later(
            self._delay, on_user_changed, self.user
        )
        return handle.cancel


class AnonymousFirebaseIdentity(IdentityProvider):
    """
    Anonymous Firebase sign-in.

    The sign-in request is retried on transport errors only; an HTTP error
    response (bad key, disabled provider) is final.
    """

    mode = "cloud"

    def __init__(
        self,
        settings: Optional[FirebaseSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings or get_settings().firebase
        self._http_client = http_client
        self._listeners: list[OnUserChanged] = []
        self._user: Optional[UserIdentity] = None
        self._resolved = False
        self._sign_in_task: Optional[asyncio.Task] = None

    @property
    def user(self) -> Optional[UserIdentity]:
        return self._user

    @retry(
        retry=retry_if_exception_type(httpx.TransportError),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _sign_up(self) -> UserIdentity:
        """Call accounts:signUp and return the new anonymous identity."""
        url = f"{self._settings.auth_endpoint.rstrip('/')}/accounts:signUp"
        params = {"key": self._settings.api_key}
        body = {"returnSecureToken": True}

        if self._http_client is not None:
            response = await self._http_client.post(url, params=params, json=body)
        else:
            async with httpx.AsyncClient() as client:
                response = await client.post(url, params=params, json=body)
        response.raise_for_status()

        uid = response.json().get("localId")
        if not uid:
            raise IdentityError("Sign-in response carried no localId")
        return UserIdentity(uid=uid, is_anonymous=True)

    async def _sign_in(self) -> None:
        try:
            user: Optional[UserIdentity] = await self._sign_up()
        except (httpx.HTTPError, IdentityError, ValueError) as e:
            logger.error("anonymous_sign_in_failed", error=str(e))
            user = None

        self._user = user
        self._resolved = True
        for listener in list(self._listeners):
            listener(user)

    def init(self, on_user_changed: OnUserChanged) -> Unsubscribe:
        loop = asyncio.get_running_loop()
        self._listeners.append(on_user_changed)

        if self._resolved:
            loop.call_soon(on_user_changed, self._user)
        elif self._sign_in_task is None or self._sign_in_task.done():
            self._sign_in_task = loop.create_task(self._sign_in())

        def unsubscribe() -> None:
            if on_user_changed in self._listeners:
                self._listeners.remove(on_user_changed)

        return unsubscribe
