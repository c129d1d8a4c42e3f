"""Tests for the scrape service lifecycle."""

from __future__ import annotations

import aiohttp
import pytest

from conftest import FakeResponse, FakeSession, api_device, token_payload
from nest_exporter.exceptions import AuthError, RemoteAPIError
from nest_exporter.service import NestService


@pytest.mark.asyncio
async def test_scrape_renders_requested_structure(exporter_config) -> None:
    session = FakeSession(
        FakeResponse(token_payload("tok-1")),
        FakeResponse({"devices": [
            api_device("a1", structure="structA", traits={"sdm.devices.traits.Fan": {"timerMode": "ON"}}),
            api_device("b1", structure="structB", traits={"sdm.devices.traits.Fan": {"timerMode": "ON"}}),
        ]}),
    )
    async with NestService(exporter_config, websession=session) as service:
        assert service.is_ready()
        body = await service.scrape("structA")

    assert 'nest_device_fan_on{device="a1",room="room1",parent="Living Room"} 1' in body
    assert "b1" not in body
    assert service.scrapes_total == 1
    assert service.scrape_errors_total == 0
    assert session.calls[1]["headers"]["Authorization"] == "Bearer tok-1"
    # the session was passed in, so the service leaves it open
    assert not session.closed


@pytest.mark.asyncio
async def test_start_fails_on_rejected_credentials(exporter_config) -> None:
    service = NestService(exporter_config, websession=FakeSession(FakeResponse({"error": "invalid_grant"})))
    with pytest.raises(AuthError):
        await service.start()
    assert not service.is_ready()
    await service.close()


@pytest.mark.asyncio
async def test_start_tolerates_transport_failure(exporter_config) -> None:
    session = FakeSession(
        FakeResponse(exc=aiohttp.ClientConnectionError("unreachable")),
        FakeResponse(token_payload("tok-2")),
        FakeResponse({"devices": []}),
    )
    service = NestService(exporter_config, websession=session)
    try:
        await service.start()
        assert not service.is_ready()
        assert await service.scrape("structA") == ""
        assert service.is_ready()
    finally:
        await service.close()


@pytest.mark.asyncio
async def test_failed_scrape_is_counted(exporter_config) -> None:
    session = FakeSession(FakeResponse(token_payload()), FakeResponse({"error": {"code": 500}}))
    async with NestService(exporter_config, websession=session) as service:
        with pytest.raises(RemoteAPIError):
            await service.scrape("structA")
    assert service.scrapes_total == 1
    assert service.scrape_errors_total == 1


@pytest.mark.asyncio
async def test_scrape_before_start_fails(exporter_config) -> None:
    with pytest.raises(RuntimeError):
        await NestService(exporter_config).scrape("structA")
