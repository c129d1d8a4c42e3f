"""Authenticated client for the Smart Device Management device listing."""

from __future__ import annotations

import asyncio
import logging
from typing import List

import aiohttp

from .const import DEFAULT_TIMEOUT_SECONDS, ENDPOINT_DEVICES, SDM_API_URL
from .exceptions import RemoteAPIError
from .models import Device
from .token_cache import TokenCache

_LOGGER = logging.getLogger(__name__)


class DeviceGateway:
    """Fetch the devices of one device access project."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        token_cache: TokenCache,
        project_id: str,
        base_url: str = SDM_API_URL,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._session = session
        self._token_cache = token_cache
        self.project_id = project_id
        self.base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_seconds)

    def endpoint_url(self, route: str) -> str:
        return f"{self.base_url}/enterprises/{self.project_id}/{route}"

    async def fetch_devices(self) -> List[Device]:
        """Fetch and parse the device list.

        Raises:
            AuthError: no access token could be obtained.
            RemoteAPIError: the request failed, timed out or returned an error.
            ShapeMismatchError: a device path did not have the expected shape.
        """
        token = await self._token_cache.get_token()
        url = self.endpoint_url(ENDPOINT_DEVICES)
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {token}",
        }
        try:
            async with self._session.get(url, headers=headers, timeout=self._timeout) as response:
                data = await response.json(content_type=None)
        except asyncio.TimeoutError as err:
            raise RemoteAPIError("device list request timed out") from err
        except aiohttp.ClientError as err:
            raise RemoteAPIError(f"device list request failed: {err}") from err
        except ValueError as err:
            raise RemoteAPIError(f"device list response is not JSON: {err}") from err

        _LOGGER.debug("Devices: %s", data)
        if not isinstance(data, dict):
            raise RemoteAPIError("device list response is not an object", data)
        if data.get("error"):
            _LOGGER.error("device list request rejected: %s", data["error"])
            raise RemoteAPIError(f"device list request rejected: {data['error']}", data)

        # a project without devices omits the key
        raw_devices = data.get("devices", [])
        if not isinstance(raw_devices, list):
            raise RemoteAPIError("device list response has no devices array", data)
        return [Device.from_api(raw) for raw in raw_devices]
