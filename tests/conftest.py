"""Shared fixtures: an in-memory settings store, a config entry and a simulated Maker API hub."""

from __future__ import annotations

import asyncio
from typing import Any

import aiohttp
import pytest
from aiohttp import web

from homeassistant.const import CONF_ACCESS_TOKEN, CONF_HOST
from pytest_homeassistant_custom_component.common import MockConfigEntry

from custom_components.hubitat_moisture.const import DOMAIN
from custom_components.hubitat_moisture.hubitat_api import HubitatClient
from custom_components.hubitat_moisture.models import Settings
from custom_components.hubitat_moisture.storage import MemorySettingsStore

TOKEN = "secret-token"


class FakeHub:
    """Maker API double served by a real aiohttp web app."""

    def __init__(self) -> None:
        self.devices: Any = [
            {"id": "5", "name": "Soil Sensor", "type": "soilMoisture"},
            {"id": 7, "name": "Porch Light", "label": "Porch", "type": "Generic Switch"},
        ]
        self.devices_status = 200
        self.attributes: dict[int, Any] = {
            5: {
                "attributes": [
                    {"name": "moisture", "currentValue": "15", "dataType": "NUMBER", "unit": "%"},
                    {"name": "battery", "currentValue": 80, "dataType": "NUMBER"},
                ]
            }
        }
        self.attribute_status: dict[int, int] = {}
        self.raw_body: str | None = None
        self.delay = 0.0
        self.requests: list[web.Request] = []

    async def handle_devices(self, request: web.Request) -> web.StreamResponse:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.raw_body is not None:
            return web.Response(text=self.raw_body, status=self.devices_status)
        return web.json_response(self.devices, status=self.devices_status)

    async def handle_device(self, request: web.Request) -> web.StreamResponse:
        self.requests.append(request)
        device_id = int(request.match_info["device_id"])
        status = self.attribute_status.get(device_id, 200)
        if status != 200:
            return web.json_response({"error": "nope"}, status=status)
        return web.json_response(self.attributes.get(device_id, {"attributes": []}))


@pytest.fixture
def store() -> MemorySettingsStore:
    return MemorySettingsStore()


@pytest.fixture
def config_entry() -> MockConfigEntry:
    return MockConfigEntry(
        domain=DOMAIN,
        title="Hubitat (hub.local)",
        unique_id="hub.local",
        data={CONF_HOST: "hub.local", CONF_ACCESS_TOKEN: TOKEN},
    )


@pytest.fixture
def hub() -> FakeHub:
    return FakeHub()


@pytest.fixture
async def hub_server(socket_enabled, aiohttp_server, hub):
    app = web.Application()
    app.router.add_get("/apps/api/242/devices", hub.handle_devices)
    app.router.add_get("/apps/api/242/devices/{device_id}", hub.handle_device)
    return await aiohttp_server(app)


@pytest.fixture
async def session():
    async with aiohttp.ClientSession() as session:
        yield session


@pytest.fixture
def configured_store(store, hub_server) -> MemorySettingsStore:
    store.save_settings(Settings(hub_address=f"127.0.0.1:{hub_server.port}"))
    store.save_secret_token(TOKEN)
    return store


@pytest.fixture
def client(session, configured_store) -> HubitatClient:
    return HubitatClient(session, configured_store)
