"""Scrape service tying the token cache, gateway and aggregator together."""

from __future__ import annotations

import logging
import time
from threading import Lock
from typing import Optional

import aiohttp

from .aggregator import render
from .config import ExporterConfig
from .exceptions import RemoteAPIError
from .gateway import DeviceGateway
from .token_cache import TokenCache

_LOGGER = logging.getLogger(__name__)


class NestService:
    """Own the upstream session and answer scrape requests."""

    def __init__(
        self,
        config: ExporterConfig,
        websession: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        """Initialize the service.

        Args:
            config: Validated exporter configuration.
            websession: Optional aiohttp ClientSession. If not provided, one is
                created by ``start()`` and closed by ``close()``.
        """
        self.config = config
        self._websession = websession
        self._own_session = websession is None
        self.token_cache: Optional[TokenCache] = None
        self.gateway: Optional[DeviceGateway] = None

        self.lock = Lock()
        self.scrapes_total = 0
        self.scrape_errors_total = 0
        self.last_scrape_duration = 0.0

    async def start(self) -> None:
        """Create the session and obtain the first access token.

        Raises AuthError if the token endpoint rejects the credentials. A
        transport failure is only logged; the first scrape retries it.
        """
        if self._websession is None:
            self._websession = aiohttp.ClientSession()
            self._own_session = True

        access = self.config.device_access
        self.token_cache = TokenCache(
            self._websession,
            client_id=access.client_id,
            client_secret=access.client_secret,
            refresh_token=access.refresh_token,
            timeout_seconds=self.config.timeout_seconds,
            refresh_margin_seconds=self.config.refresh_margin_seconds,
            retry_seconds=self.config.refresh_retry_seconds,
        )
        self.gateway = DeviceGateway(
            self._websession,
            self.token_cache,
            access.project_id,
            timeout_seconds=self.config.timeout_seconds,
        )
        try:
            await self.token_cache.refresh()
        except RemoteAPIError as err:
            _LOGGER.warning("initial access token request failed, will retry on scrape: %s", err)

    async def close(self) -> None:
        if self.token_cache is not None:
            await self.token_cache.close()
        if self._own_session and self._websession is not None:
            await self._websession.close()
            self._websession = None

    async def __aenter__(self) -> NestService:
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    def is_ready(self) -> bool:
        cache = self.token_cache
        return cache is not None and cache.has_token and not cache.failed

    async def scrape(self, structure_id: str) -> str:
        """Fetch all devices and render the metrics of one structure."""
        if self.gateway is None:
            raise RuntimeError("service not started")
        t0 = time.time()
        ok = False
        try:
            devices = await self.gateway.fetch_devices()
            body = render(devices, structure_id)
            ok = True
            return body
        finally:
            with self.lock:
                self.scrapes_total += 1
                self.last_scrape_duration = time.time() - t0
                if not ok:
                    self.scrape_errors_total += 1
