"""Self-renewing OAuth access token shared by all scrapes."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Optional

import aiohttp

from .const import (
    DEFAULT_REFRESH_MARGIN_SECONDS,
    DEFAULT_REFRESH_RETRY_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    TOKEN_URL,
)
from .exceptions import AuthError, RemoteAPIError
from .models import AccessToken

_LOGGER = logging.getLogger(__name__)


class TokenCache:
    """Hold one access token and renew it before it expires.

    At most one refresh runs at a time: callers arriving while a refresh is in
    flight wait on that same refresh. After a successful refresh a single timer
    is armed to renew the token ``expires_in - refresh_margin`` seconds later.

    An error payload from the token endpoint is sticky. The cache drops its
    token and every later ``get_token()`` raises the same ``AuthError``.
    Transport failures and timeouts raise ``RemoteAPIError`` and are not
    sticky: while the old token is still valid a retry timer is armed, and
    otherwise the next caller starts a new refresh.

    After ``close()`` the cache refuses to hand out or refresh tokens.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        client_id: str,
        client_secret: str,
        refresh_token: str,
        token_url: str = TOKEN_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        refresh_margin_seconds: float = DEFAULT_REFRESH_MARGIN_SECONDS,
        retry_seconds: float = DEFAULT_REFRESH_RETRY_SECONDS,
    ) -> None:
        """Initialize the cache.

        Args:
            session: aiohttp session used for the token exchange.
            client_id: OAuth client id.
            client_secret: OAuth client secret.
            refresh_token: Long lived refresh token for the device access project.
            token_url: Token endpoint.
            timeout_seconds: Total timeout of one token request.
            refresh_margin_seconds: How long before expiry the token is renewed.
            retry_seconds: Delay before retrying a scheduled refresh that failed
                with a transport error, capped at half the remaining lifetime.
        """
        self._session = session
        self._client_id = client_id
        self._client_secret = client_secret
        self._refresh_token = refresh_token
        self._token_url = token_url
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)
        self._margin = max(0.0, float(refresh_margin_seconds))
        self._retry_seconds = max(1.0, float(retry_seconds))

        self._token: Optional[AccessToken] = None
        self._failure: Optional[AuthError] = None
        self._pending: Optional[asyncio.Task] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._closed = False

        self.refreshes_total = 0

    @property
    def has_token(self) -> bool:
        return self._token is not None

    @property
    def failed(self) -> bool:
        return self._failure is not None

    async def get_token(self) -> str:
        """Return a valid access token, waiting for a refresh if needed."""
        self._check_open()
        if self._failure is not None:
            raise self._failure
        if self._pending is None:
            token = self._token
            if token is not None and not token.expired(self._now()):
                return token.value
            self._start_refresh()
        assert self._pending is not None
        # shield so one cancelled caller does not cancel the refresh for the others
        token = await asyncio.shield(self._pending)
        return token.value

    async def refresh(self) -> AccessToken:
        """Force a refresh, joining one that is already running."""
        self._check_open()
        if self._pending is None:
            self._start_refresh()
        assert self._pending is not None
        return await asyncio.shield(self._pending)

    async def close(self) -> None:
        """Cancel the renewal timer and any in-flight refresh."""
        self._closed = True
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        pending = self._pending
        self._pending = None
        if pending is not None and not pending.done():
            pending.cancel()
            try:
                await pending
            except (asyncio.CancelledError, AuthError, RemoteAPIError):
                pass

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("token cache is closed")

    def _now(self) -> float:
        return asyncio.get_running_loop().time()

    def _start_refresh(self) -> None:
        task = asyncio.get_running_loop().create_task(self._refresh())
        task.add_done_callback(self._refresh_done)
        self._pending = task

    def _refresh_done(self, task: asyncio.Task) -> None:
        if self._pending is task:
            self._pending = None
        if not task.cancelled():
            # mark the exception as retrieved; waiters get it through shield()
            task.exception()

    async def _refresh(self) -> AccessToken:
        _LOGGER.info("refreshing access token")
        try:
            token = await self._exchange()
        except AuthError as err:
            self._token = None
            self._failure = err
            self._cancel_timer()
            _LOGGER.error("access token refresh rejected: %s", err.payload)
            raise
        except RemoteAPIError as err:
            _LOGGER.error("access token refresh failed: %s", err)
            self._schedule_retry()
            raise
        self._install(token)
        return token

    async def _exchange(self) -> AccessToken:
        params = {
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "refresh_token": self._refresh_token,
            "grant_type": "refresh_token",
        }
        try:
            async with self._session.post(self._token_url, params=params, timeout=self._timeout) as response:
                data = await response.json(content_type=None)
        except asyncio.TimeoutError as err:
            raise RemoteAPIError("token request timed out") from err
        except aiohttp.ClientError as err:
            raise RemoteAPIError(f"token request failed: {err}") from err
        except ValueError as err:
            raise RemoteAPIError(f"token response is not JSON: {err}") from err

        if not isinstance(data, dict):
            raise RemoteAPIError("token response is not an object", data)
        if data.get("error"):
            raise AuthError(str(data["error"]), data)
        return self._parse_token(data)

    def _parse_token(self, data: Dict[str, Any]) -> AccessToken:
        value = data.get("access_token")
        lifetime = data.get("expires_in")
        if not isinstance(value, str) or not value:
            raise RemoteAPIError("token response has no access_token", data)
        try:
            lifetime = float(lifetime)
        except (TypeError, ValueError) as err:
            raise RemoteAPIError("token response has no valid expires_in", data) from err
        return AccessToken(value=value, expires_at=self._now() + lifetime)

    def _install(self, token: AccessToken) -> None:
        self._token = token
        self._failure = None
        self.refreshes_total += 1
        lifetime = token.expires_at - self._now()
        _LOGGER.info("obtained access token, valid for %.0fs", lifetime)
        self._arm_timer(max(lifetime - self._margin, lifetime / 2.0, 1.0))

    def _schedule_retry(self) -> None:
        token = self._token
        if token is None:
            return
        remaining = token.expires_at - self._now()
        if remaining <= 0:
            return
        # retry while the current token is still valid
        self._arm_timer(max(min(self._retry_seconds, remaining / 2.0), 1.0))

    def _arm_timer(self, delay: float) -> None:
        if self._closed:
            return
        self._cancel_timer()
        self._timer = asyncio.get_running_loop().call_later(delay, self._on_timer)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self) -> None:
        self._timer = None
        if self._closed or self._pending is not None:
            return
        self._start_refresh()
