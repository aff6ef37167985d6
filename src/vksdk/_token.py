"""
Access token lifecycle for the vksdk SDK.

TokenManager owns the current credential of a VkApi client, knows when it
expires and notifies registered listeners when the expiration timer fires.

Example:
    >>> from vksdk._token import TokenManager
    >>> manager = TokenManager(token="abc", user_id=1, expire_time=86400)
    >>> manager.add_listener(lambda api: print("token expired"))
    >>> manager.is_expired
    False
    >>> manager.close()
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Any

from vksdk._errors import ConfigurationError

if TYPE_CHECKING:
    from vksdk._api import VkApi

logger = logging.getLogger(__name__)

TokenExpiresListener = Callable[["VkApi | None"], None]


@dataclass(frozen=True)
class Credential:
    """
    Immutable snapshot of an access credential.

    Attributes:
        token: The access token. Empty when unauthorized.
        user_id: Id of the user the token was issued for, if known.
        expire_time: Lifetime in seconds. 0 means the token never expires.
        issued_at: Wall-clock time (Unix seconds) the lifetime is counted from.
    """

    token: str = ""
    user_id: int | None = None
    expire_time: int = 0
    issued_at: float = 0.0

    @property
    def is_authorized(self) -> bool:
        return bool(self.token and self.token.strip())

    def is_expired_at(self, now: float) -> bool:
        return self.expire_time != 0 and now > self.issued_at + self.expire_time


class TokenManager:
    """
    Holds the access token of a client and tracks its expiration.

    Setting `expire_time` arms a one-shot timer; when it fires every
    listener is called with the owning api on the timer thread. Rearming
    or closing cancels a pending notification, and a closed manager never
    notifies.

    Example:
        >>> manager = TokenManager(api, token="abc", expire_time=3600)
        >>> manager.add_listener(on_expired)
        >>> manager.token_value()
        'abc'

    Args:
        api: The owning VkApi, passed to listeners and used by refresh_token().
        token: Initial access token.
        user_id: Id of the authorized user.
        expire_time: Token lifetime in seconds, 0 for a non-expiring token.
        listeners: Initial expiration listeners.
        clock: Wall clock used for `is_expired`, injectable for tests.
        timer_factory: Builds the expiration timer as `factory(seconds, callback)`.
    """

    def __init__(
        self,
        api: VkApi | None = None,
        *,
        token: str = "",
        user_id: int | None = None,
        expire_time: int = 0,
        listeners: tuple[TokenExpiresListener, ...] | list[TokenExpiresListener] = (),
        clock: Callable[[], float] = time.time,
        timer_factory: Callable[[float, Callable[[], None]], Any] = threading.Timer,
    ):
        self._api = api
        self._clock = clock
        self._timer_factory = timer_factory
        self._lock = threading.RLock()
        self._listeners: list[TokenExpiresListener] = list(listeners)
        self._timer: Any = None
        self._generation = 0
        self._closed = False
        self._credential = Credential(token=token or "", user_id=user_id, issued_at=clock())

        self.expire_time = expire_time

    @classmethod
    def from_string(cls, token: str, user_id: int | None = None) -> TokenManager:
        """Create a non-expiring manager holding the given token."""
        return cls(token=token, user_id=user_id)

    # -------------------------------------------------------------------------
    # Credential
    # -------------------------------------------------------------------------

    @property
    def credential(self) -> Credential:
        return self._credential

    @property
    def token(self) -> str:
        return self._credential.token

    def token_value(self) -> str:
        """Return the raw token string, as sent in the `access_token` parameter."""
        return self._credential.token

    def set_token(self, token: str) -> None:
        """Replace the stored token. The expiration settings are kept."""
        with self._lock:
            self._credential = replace(self._credential, token=token or "")

    @property
    def user_id(self) -> int | None:
        return self._credential.user_id

    @user_id.setter
    def user_id(self, value: int | None) -> None:
        with self._lock:
            self._credential = replace(self._credential, user_id=value)

    @property
    def is_authorized(self) -> bool:
        return self._credential.is_authorized

    @property
    def expire_time(self) -> int:
        """Token lifetime in seconds, 0 for a token that never expires."""
        return self._credential.expire_time

    @expire_time.setter
    def expire_time(self, value: int) -> None:
        if value is None or value < 0:
            raise ConfigurationError(f"expire_time must be >= 0, got {value}")

        with self._lock:
            self._cancel_timer()
            self._credential = replace(self._credential, expire_time=value, issued_at=self._clock())
            if value > 0 and not self._closed:
                self._arm_timer(value)

    @property
    def is_expired(self) -> bool:
        return self._credential.is_expired_at(self._clock())

    # -------------------------------------------------------------------------
    # Refresh
    # -------------------------------------------------------------------------

    def refresh_token(self) -> bool:
        """
        Re-run the owning api's authorization flow.

        Returns:
            False when there is no owning api or it has no authorization flow,
            otherwise whether the new credential is authorized.
        """
        api = self._api
        if api is None or api.authorization_flow is None:
            logger.warning("⚠️ Unable to refresh the access token: no api or authorization flow attached.")
            return False

        api.authorize(api.authorization_flow)
        return api.access_token.is_authorized

    # -------------------------------------------------------------------------
    # Listeners
    # -------------------------------------------------------------------------

    def add_listener(self, listener: TokenExpiresListener) -> None:
        assert listener is not None, "Token listener can not be None."
        with self._lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: TokenExpiresListener) -> None:
        with self._lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    @property
    def listeners(self) -> tuple[TokenExpiresListener, ...]:
        return tuple(self._listeners)

    # -------------------------------------------------------------------------
    # Timer
    # -------------------------------------------------------------------------

    def _arm_timer(self, seconds: int) -> None:
        self._generation += 1
        generation = self._generation
        timer = self._timer_factory(seconds, lambda: self._on_timer(generation))
        if isinstance(timer, threading.Timer):
            timer.daemon = True
        self._timer = timer
        timer.start()

    def _cancel_timer(self) -> None:
        self._generation += 1
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self, generation: int) -> None:
        with self._lock:
            if self._closed or generation != self._generation:
                return
            self._timer = None
            listeners = list(self._listeners)

        logger.debug(f"Access token expired, notifying {len(listeners)} listener(s).")
        for listener in listeners:
            try:
                listener(self._api)
            except Exception as e:
                logger.warning(f"Token expiration listener `{listener!r}` raised an exception: {e}")

    # -------------------------------------------------------------------------
    # Disposal
    # -------------------------------------------------------------------------

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Cancel and release the expiration timer. Safe to call more than once."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._cancel_timer()

    def __enter__(self) -> TokenManager:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"TokenManager(authorized={self.is_authorized}, user_id={self.user_id}, "
            f"expire_time={self.expire_time})"
        )
