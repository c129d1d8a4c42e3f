"""Shared fixtures and fake aiohttp sessions."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from nest_exporter.config import DeviceAccessConfig, ExporterConfig

PROJECT = "proj-123"


class FakeResponse:
    def __init__(self, payload: Any = None, exc: Optional[BaseException] = None, delay: float = 0.0):
        self.payload = payload
        self.exc = exc
        self.delay = delay

    async def __aenter__(self) -> FakeResponse:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        return None

    async def json(self, content_type: Optional[str] = "application/json") -> Any:
        if isinstance(self.payload, BaseException):
            raise self.payload
        return self.payload


class FakeSession:
    """Record requests and replay queued responses."""

    def __init__(self, *responses: FakeResponse) -> None:
        self.responses: List[FakeResponse] = list(responses)
        self.calls: List[Dict[str, Any]] = []
        self.closed = False

    def queue(self, *responses: FakeResponse) -> None:
        self.responses.extend(responses)

    def _next(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"method": method, "url": url, **kwargs})
        if len(self.responses) > 1:
            return self.responses.pop(0)
        return self.responses[0]

    def post(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._next("POST", url, **kwargs)

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        return self._next("GET", url, **kwargs)

    async def close(self) -> None:
        self.closed = True


def token_payload(value: str = "tok-1", expires_in: float = 3599) -> Dict[str, Any]:
    return {"access_token": value, "expires_in": expires_in, "token_type": "Bearer"}


def api_device(
    device_id: str,
    structure: str = "structA",
    room: str = "room1",
    parent: str = "Living Room",
    traits: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return {
        "name": f"enterprises/{PROJECT}/devices/{device_id}",
        "type": "sdm.devices.types.THERMOSTAT",
        "assignee": f"enterprises/{PROJECT}/structures/{structure}/rooms/{room}",
        "traits": traits if traits is not None else {},
        "parentRelations": [
            {
                "parent": f"enterprises/{PROJECT}/structures/{structure}/rooms/{room}",
                "displayName": parent,
            }
        ],
    }


@pytest.fixture
def exporter_config() -> ExporterConfig:
    return ExporterConfig(
        device_access=DeviceAccessConfig(
            project_id=PROJECT,
            client_id="cid",
            client_secret="secret",
            refresh_token="rtok",
        ),
        timeout_seconds=2.0,
        refresh_margin_seconds=60.0,
    )
