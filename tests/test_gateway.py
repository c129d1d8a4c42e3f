"""Tests for the device listing client."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, Mock

import aiohttp
import pytest

from conftest import PROJECT, FakeResponse, FakeSession, api_device
from nest_exporter.exceptions import AuthError, RemoteAPIError, ShapeMismatchError
from nest_exporter.gateway import DeviceGateway


def _gateway(session: FakeSession, token: str = "tok-1") -> DeviceGateway:
    cache = Mock()
    cache.get_token = AsyncMock(return_value=token)
    return DeviceGateway(session, cache, PROJECT)


@pytest.mark.asyncio
async def test_fetch_devices_sends_bearer_token() -> None:
    session = FakeSession(FakeResponse({"devices": [api_device("dev1"), api_device("dev2", structure="structB")]}))
    devices = await _gateway(session, "abc").fetch_devices()

    assert [d.id for d in devices] == ["dev1", "dev2"]
    assert [d.structure_id for d in devices] == ["structA", "structB"]
    [call] = session.calls
    assert call["method"] == "GET"
    assert call["url"] == f"https://smartdevicemanagement.googleapis.com/v1/enterprises/{PROJECT}/devices"
    assert call["headers"]["Authorization"] == "Bearer abc"


@pytest.mark.asyncio
async def test_empty_project_has_no_devices() -> None:
    assert await _gateway(FakeSession(FakeResponse({}))).fetch_devices() == []


@pytest.mark.asyncio
async def test_error_payload_raises_remote_api_error() -> None:
    payload = {"error": {"code": 429, "message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}}
    with pytest.raises(RemoteAPIError) as excinfo:
        await _gateway(FakeSession(FakeResponse(payload))).fetch_devices()
    assert excinfo.value.payload == payload


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(["devices"]),
        FakeResponse({"devices": {"name": "x"}}),
        FakeResponse(ValueError("Expecting value")),
        FakeResponse(exc=aiohttp.ClientConnectionError("refused")),
        FakeResponse(exc=asyncio.TimeoutError()),
    ],
)
async def test_failures_raise_remote_api_error(response) -> None:
    with pytest.raises(RemoteAPIError):
        await _gateway(FakeSession(response)).fetch_devices()


@pytest.mark.asyncio
async def test_shape_mismatch_propagates() -> None:
    bad = api_device("dev1")
    bad["assignee"] = "enterprises/p/structures/s"
    with pytest.raises(ShapeMismatchError):
        await _gateway(FakeSession(FakeResponse({"devices": [api_device("dev0"), bad]}))).fetch_devices()


@pytest.mark.asyncio
async def test_auth_error_skips_request() -> None:
    session = FakeSession(FakeResponse({"devices": []}))
    cache = Mock()
    cache.get_token = AsyncMock(side_effect=AuthError("invalid_grant", {"error": "invalid_grant"}))
    with pytest.raises(AuthError):
        await DeviceGateway(session, cache, PROJECT).fetch_devices()
    assert session.calls == []
