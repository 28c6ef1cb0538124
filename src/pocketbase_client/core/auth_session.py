"""Authentication session for the PocketBase client.

Holds the single live credential, persists it through an ``AuthStore``,
decorates outgoing requests with it and coordinates the single-flight
refresh performed after the server rejects a token.

States: UNAUTHENTICATED, AUTHENTICATED and EXPIRED. ``set`` always leads to
AUTHENTICATED, ``clear`` always leads to UNAUTHENTICATED, and a 401 on a
request carrying the live token moves AUTHENTICATED to EXPIRED.
"""

import asyncio
import logging
import threading
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from ..models import SUPERUSERS_COLLECTION, RecordModel
from .auth_stores import AuthStore, MemoryAuthStore
from .cookie import DEFAULT_COOKIE_KEY, export_auth_cookie, parse_auth_cookie
from .credential import Credential
from .jwt_token_manager import JWTTokenManager

logger = logging.getLogger(__name__)

AUTH_FAILURE_STATUS = 401
AUTHORIZATION_HEADER = "Authorization"
# collection id PocketBase assigns to the built-in _superusers collection
SUPERUSERS_COLLECTION_ID = "pbc_3142635823"


class AuthState(Enum):
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"


RefreshHandler = Callable[["AuthSession"], Awaitable[Optional[Credential]]]
ChangeListener = Callable[[Optional[Credential]], None]


class AuthSession:
    """Owns the credential slot shared by every request of one client.

    A ``threading.Lock`` guards the slot: ``set``, ``clear`` and the expiry
    transition are exclusive, while readers copy out an immutable
    ``(state, credential)`` snapshot.
    """

    def __init__(
        self,
        store: Optional[AuthStore] = None,
        jwt_manager: Optional[JWTTokenManager] = None,
    ):
        self.store = store or MemoryAuthStore()
        self.jwt_manager = jwt_manager or JWTTokenManager()
        self._lock = threading.Lock()
        self._credential: Optional[Credential] = None
        self._state = AuthState.UNAUTHENTICATED
        self._listeners: List[ChangeListener] = []
        # created lazily so the session can be built outside an event loop
        self._refresh_lock: Optional[asyncio.Lock] = None

    def snapshot(self) -> Tuple[AuthState, Optional[Credential]]:
        with self._lock:
            return self._state, self._credential

    @property
    def state(self) -> AuthState:
        return self.snapshot()[0]

    @property
    def credential(self) -> Optional[Credential]:
        return self.snapshot()[1]

    @property
    def token(self) -> str:
        credential = self.credential
        return credential.token if credential is not None else ""

    @property
    def record(self) -> Optional[RecordModel]:
        credential = self.credential
        return credential.record if credential is not None else None

    @property
    def is_valid(self) -> bool:
        """True if a token is held and its exp claim has not passed."""
        state, credential = self.snapshot()
        if credential is None or state is AuthState.UNAUTHENTICATED:
            return False
        return not self.jwt_manager.is_token_expired(credential.token)

    @property
    def is_superuser(self) -> bool:
        credential = self.credential
        if credential is None:
            return False
        if self.jwt_manager.get_claim(credential.token, "type") != "auth":
            return False
        record = credential.record
        if record is not None and record.collection_name == SUPERUSERS_COLLECTION:
            return True
        return (
            self.jwt_manager.get_claim(credential.token, "collectionId")
            == SUPERUSERS_COLLECTION_ID
        )

    def needs_refresh(self, threshold_seconds: Optional[int] = None) -> bool:
        """True if the held token expires within ``threshold_seconds``.

        Defaults to the JWT manager's refresh threshold.
        """
        credential = self.credential
        if credential is None:
            return False
        if threshold_seconds is None:
            return self.jwt_manager.is_token_near_expiry(credential.token)
        return self.jwt_manager.is_token_expired(credential.token, threshold_seconds)

    def set(self, credential: Credential) -> None:
        """Install a credential and persist it.

        Persistence failures are logged; the in-memory session still
        switches to the new credential.
        """
        with self._lock:
            self._credential = credential
            self._state = AuthState.AUTHENTICATED

        try:
            self.store.save(credential)
        except OSError as e:
            logger.warning(f"Failed to persist credential: {e}")
        self._notify(credential)

    def save(self, token: str, record: Optional[RecordModel] = None) -> Credential:
        """Build a credential from a token/record pair and ``set`` it."""
        credential = Credential.from_token(token, record, self.jwt_manager)
        self.set(credential)
        return credential

    def clear(self) -> None:
        """Drop the credential and erase it from the store."""
        with self._lock:
            self._credential = None
            self._state = AuthState.UNAUTHENTICATED

        try:
            self.store.clear()
        except OSError as e:
            logger.warning(f"Failed to clear stored credential: {e}")
        self._notify(None)

    def restore(self) -> bool:
        """Load a persisted credential. Expired tokens are discarded.

        Returns:
            True if a usable credential was restored
        """
        credential = self.store.load()
        if credential is None:
            return False
        if self.jwt_manager.is_token_expired(credential.token):
            logger.info("Discarding expired stored credential")
            self.clear()
            return False

        with self._lock:
            self._credential = credential
            self._state = AuthState.AUTHENTICATED
        self._notify(credential)
        return True

    def export_to_cookie(self, key: str = DEFAULT_COOKIE_KEY, **options: Any) -> str:
        """Serialize the held credential as a ``Set-Cookie`` header value.

        Options are passed to ``export_auth_cookie`` (path, secure,
        http_only, same_site).
        """
        return export_auth_cookie(self.credential, key, **options)

    def load_from_cookie(self, cookie_header: str, key: str = DEFAULT_COOKIE_KEY) -> bool:
        """Install the credential found in a ``Cookie`` header.

        A missing or unreadable cookie clears the session.

        Returns:
            True if a credential was installed
        """
        credential = parse_auth_cookie(cookie_header, key)
        if credential is None:
            self.clear()
            return False
        self.set(credential)
        return True

    def decorate(self, headers: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """Return a copy of ``headers`` with the token attached when authenticated."""
        state, credential = self.snapshot()
        decorated = dict(headers or {})
        if state is AuthState.AUTHENTICATED and credential is not None:
            decorated[AUTHORIZATION_HEADER] = credential.token
        return decorated

    def on_response_signal(self, status: int, sent_token: Optional[str]) -> bool:
        """Inspect a response status for credential rejection.

        A 401 on a request that carried a token moves the session from
        AUTHENTICATED to EXPIRED if that token is still the live one. A 401
        on a request sent without a token counts only while an EXPIRED
        credential is still held.

        Args:
            status: HTTP status of the response
            sent_token: Token attached to the request, or None

        Returns:
            True if the response means the credential expired (the caller
            should refresh and retry), False otherwise
        """
        if status != AUTH_FAILURE_STATUS:
            return False

        with self._lock:
            if self._credential is None:
                return False
            if not sent_token:
                return self._state is AuthState.EXPIRED
            if (
                self._state is AuthState.AUTHENTICATED
                and self._credential.token == sent_token
            ):
                self._state = AuthState.EXPIRED
                logger.info("Credential rejected by server, session expired")
        return True

    def _get_refresh_lock(self) -> asyncio.Lock:
        if self._refresh_lock is None:
            self._refresh_lock = asyncio.Lock()
        return self._refresh_lock

    async def refresh(self, handler: RefreshHandler, stale_token: str) -> bool:
        """Run the refresh handler once for concurrent callers.

        If another caller already replaced ``stale_token`` the handler is not
        called again. A handler that raises or returns None leaves the
        session EXPIRED.

        Returns:
            True if a fresh credential is available
        """
        async with self._get_refresh_lock():
            state, credential = self.snapshot()
            if (
                state is AuthState.AUTHENTICATED
                and credential is not None
                and credential.token != stale_token
            ):
                logger.debug("Credential already refreshed by a concurrent request")
                return True

            try:
                new_credential = await handler(self)
            except Exception as e:
                logger.warning(f"Credential refresh failed: {e}")
                return False

            if new_credential is None:
                logger.warning("Credential refresh returned no credential")
                return False

            # handler may already have installed it (e.g. via auth_refresh)
            state, credential = self.snapshot()
            if credential is not new_credential or state is not AuthState.AUTHENTICATED:
                self.set(new_credential)
            logger.info("Credential refreshed")
            return True

    def on_change(self, listener: ChangeListener) -> Callable[[], None]:
        """Register a listener called with the new credential (None on clear).

        Returns:
            Callable that unregisters the listener
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, credential: Optional[Credential]) -> None:
        for listener in list(self._listeners):
            try:
                listener(credential)
            except Exception as e:
                logger.warning(f"Auth change listener failed: {e}")
