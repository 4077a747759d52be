"""Yahoo Finance session (cookie + crumb) management

Yahoo's chart API wants a session cookie and a matching "crumb" token on
every request. The crumb is short-lived and shared by every fetch worker,
so this module owns it:

- get_valid_credential() returns a crumb that is not expired, refreshing
  first when it is missing, expired or was invalidated.
- Refreshes are single-flight: concurrent callers that find the crumb
  stale all await the same handshake and receive the same credential
  (or the same error).
- invalidate() is called by a worker after a 401/403 so the next caller
  refreshes instead of reusing the rejected crumb.
"""
import asyncio
from typing import Optional

import httpx

from analyser.config import settings
from analyser.core.exceptions import SessionRefreshError
from analyser.logger import logger
from analyser.managers.refresh_manager.outcomes import SessionCredential
from analyser.managers.refresh_manager.time_provider import TimeProvider, get_time_provider


def build_http_client(
    user_agent: Optional[str] = None,
    timeout_seconds: Optional[float] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> httpx.AsyncClient:
    """HTTP client shared by the session handshake and the chart requests.

    One client keeps one cookie jar, so the cookie set during the handshake
    is sent with every chart request.
    """
    return httpx.AsyncClient(
        headers={"User-Agent": user_agent or settings.YAHOO.user_agent},
        timeout=timeout_seconds or settings.YAHOO.request_timeout_seconds,
        follow_redirects=True,
        transport=transport,
    )


class YahooSessionManager:
    """Owns the Yahoo crumb and the HTTP client that carries its cookie."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        time_provider: Optional[TimeProvider] = None,
        ttl_seconds: Optional[float] = None,
        session_url: Optional[str] = None,
        crumb_url: Optional[str] = None,
    ):
        """Initialize the session manager.

        Args:
            client: HTTP client to use (default: a new client owned by this manager)
            time_provider: Clock used for crumb age (default: shared TimeProvider)
            ttl_seconds: Crumb lifetime (default: YAHOO__CRUMB_TTL_SECONDS, 15 minutes)
            session_url: Cookie endpoint (default: YAHOO__SESSION_URL)
            crumb_url: Crumb endpoint (default: YAHOO__CRUMB_URL)
        """
        self._owns_client = client is None
        self._client = client or build_http_client()
        self._time = time_provider or get_time_provider()
        self._ttl = ttl_seconds if ttl_seconds is not None else settings.YAHOO.crumb_ttl_seconds
        self._session_url = session_url or settings.YAHOO.session_url
        self._crumb_url = crumb_url or settings.YAHOO.crumb_url

        self._credential: Optional[SessionCredential] = None
        self._inflight: Optional[asyncio.Future] = None
        self.refresh_count = 0

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def _is_valid(self, credential: Optional[SessionCredential]) -> bool:
        return credential is not None and not credential.is_expired(self._time.monotonic(), self._ttl)

    async def get_valid_credential(self) -> SessionCredential:
        """Return a crumb that is valid now, refreshing first if needed.

        Raises:
            SessionRefreshError: If the handshake fails. Every caller waiting
                on that handshake receives the same error.
        """
        credential = self._credential
        if self._is_valid(credential):
            return credential

        # No await between the check and the assignment, so only one
        # refresh can be started per stale period.
        if self._inflight is None:
            self._inflight = asyncio.ensure_future(self._refresh())
            self._inflight.add_done_callback(self._consume_exception)
        # A cancelled caller must not cancel the handshake other callers share
        return await asyncio.shield(self._inflight)

    def invalidate(self, credential: Optional[SessionCredential] = None) -> None:
        """Forget the current crumb so the next caller refreshes.

        Args:
            credential: The credential the caller saw rejected. When given,
                the cached crumb is only dropped if it is still that one, so
                a late rejection never discards a crumb refreshed since.
        """
        if credential is not None and self._credential is not credential:
            logger.debug("Ignoring invalidation of an already replaced crumb")
            return
        if self._credential is not None:
            logger.info("Yahoo crumb invalidated")
        self._credential = None

    async def _refresh(self) -> SessionCredential:
        try:
            token = await self._handshake()
            credential = SessionCredential(token=token, acquired_at=self._time.monotonic())
            self._credential = credential
            self.refresh_count += 1
            logger.info(f"Yahoo crumb refreshed (refresh #{self.refresh_count})")
            return credential
        finally:
            self._inflight = None

    async def _handshake(self) -> str:
        """Cookie request followed by the crumb request."""
        try:
            # fc.yahoo.com answers 404 but still sets the session cookie
            await self._client.get(self._session_url)
            response = await self._client.get(self._crumb_url)
        except httpx.HTTPError as e:
            logger.warning(f"Yahoo session handshake failed: {e}")
            raise SessionRefreshError(f"Session handshake failed: {e}") from e

        if response.status_code == 429:
            raise SessionRefreshError("Crumb endpoint rate limited (429)")
        if not response.is_success:
            raise SessionRefreshError(f"Crumb endpoint returned status {response.status_code}")

        token = response.text.strip()
        if not token or "<" in token or " " in token:
            raise SessionRefreshError("Crumb endpoint returned an invalid token")
        return token

    @staticmethod
    def _consume_exception(future: asyncio.Future) -> None:
        # Mark the error as retrieved when every waiter was cancelled
        if not future.cancelled():
            future.exception()

    async def aclose(self) -> None:
        """Close the HTTP client if this manager created it."""
        if self._owns_client:
            await self._client.aclose()
