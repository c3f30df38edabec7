"""Hubitat moisture sensor integration."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

import voluptuous as vol

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_HOST, CONF_SCAN_INTERVAL, Platform
from homeassistant.core import HomeAssistant, ServiceCall
from homeassistant.helpers import config_validation as cv
from homeassistant.helpers.aiohttp_client import async_get_clientsession
from homeassistant.helpers.typing import ConfigType

from .const import (
    ATTR_NAME,
    ATTR_SENSOR_ID,
    CONF_CRITICAL_THRESHOLD,
    CONF_HEALTHY_THRESHOLD,
    DOMAIN,
    SERVICE_CLEAR_WATERED,
    SERVICE_MARK_WATERED,
    SERVICE_REFRESH,
    SERVICE_SET_CUSTOM_NAME,
)
from .coordinator import RefreshCoordinator
from .hubitat_api import HubitatClient
from .storage import HubitatSettingsStore

_LOGGER = logging.getLogger(__name__)

PLATFORMS: list[Platform] = [Platform.SENSOR]

CONFIG_SCHEMA = cv.config_entry_only_config_schema(DOMAIN)

SENSOR_ID_SCHEMA = vol.Schema({vol.Required(ATTR_SENSOR_ID): vol.Coerce(int)})
CUSTOM_NAME_SCHEMA = vol.Schema(
    {
        vol.Required(ATTR_SENSOR_ID): vol.Coerce(int),
        vol.Optional(ATTR_NAME, default=""): cv.string,
    }
)


def _coordinators(hass: HomeAssistant) -> list[RefreshCoordinator]:
    return [data["coordinator"] for data in hass.data.get(DOMAIN, {}).values()]


async def async_setup(hass: HomeAssistant, config: ConfigType) -> bool:
    hass.data.setdefault(DOMAIN, {})

    async def _handle_refresh(call: ServiceCall) -> None:
        for coordinator in _coordinators(hass):
            await coordinator.async_refresh()

    async def _handle_mark_watered(call: ServiceCall) -> None:
        for coordinator in _coordinators(hass):
            if task := coordinator.mark_just_watered(call.data[ATTR_SENSOR_ID]):
                await task

    async def _handle_clear_watered(call: ServiceCall) -> None:
        for coordinator in _coordinators(hass):
            if task := coordinator.clear_just_watered(call.data[ATTR_SENSOR_ID]):
                await task

    async def _handle_set_custom_name(call: ServiceCall) -> None:
        for coordinator in _coordinators(hass):
            if task := coordinator.set_custom_name(call.data[ATTR_SENSOR_ID], call.data[ATTR_NAME]):
                await task

    hass.services.async_register(DOMAIN, SERVICE_REFRESH, _handle_refresh)
    hass.services.async_register(
        DOMAIN, SERVICE_MARK_WATERED, _handle_mark_watered, schema=SENSOR_ID_SCHEMA
    )
    hass.services.async_register(
        DOMAIN, SERVICE_CLEAR_WATERED, _handle_clear_watered, schema=SENSOR_ID_SCHEMA
    )
    hass.services.async_register(
        DOMAIN, SERVICE_SET_CUSTOM_NAME, _handle_set_custom_name, schema=CUSTOM_NAME_SCHEMA
    )
    return True


def _apply_options(store: HubitatSettingsStore, options: Mapping[str, Any]) -> bool:
    """Copy options-flow values into the stored settings. Returns True on change."""
    settings = store.load_settings()
    changed = False
    for key, attr in (
        (CONF_SCAN_INTERVAL, "refresh_interval"),
        (CONF_HEALTHY_THRESHOLD, "healthy_threshold"),
        (CONF_CRITICAL_THRESHOLD, "critical_threshold"),
    ):
        if key in options and getattr(settings, attr) != options[key]:
            setattr(settings, attr, options[key])
            changed = True
    if changed:
        store.save_settings(settings)
    return changed


async def async_setup_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    store = HubitatSettingsStore(hass, entry)
    await store.async_load()
    _apply_options(store, entry.options)

    client = HubitatClient(async_get_clientsession(hass), store)
    coordinator = RefreshCoordinator(hass, client, store, config_entry=entry)
    await coordinator.async_config_entry_first_refresh()

    hass.data.setdefault(DOMAIN, {})[entry.entry_id] = {
        "coordinator": coordinator,
        "store": store,
    }
    entry.async_on_unload(entry.add_update_listener(_async_update_listener))

    await hass.config_entries.async_forward_entry_setups(entry, PLATFORMS)
    _LOGGER.info("Hubitat moisture integration set up for %s", entry.data[CONF_HOST])
    return True


async def _async_update_listener(hass: HomeAssistant, entry: ConfigEntry) -> None:
    data = hass.data[DOMAIN][entry.entry_id]
    coordinator: RefreshCoordinator = data["coordinator"]
    store: HubitatSettingsStore = data["store"]

    interval = store.load_settings().refresh_interval
    if not _apply_options(store, entry.options):
        return
    settings = store.load_settings()
    if settings.refresh_interval != interval:
        coordinator.set_refresh_interval(settings.refresh_interval)
    coordinator.trigger_refresh()


async def async_unload_entry(hass: HomeAssistant, entry: ConfigEntry) -> bool:
    unload_ok = await hass.config_entries.async_unload_platforms(entry, PLATFORMS)
    if unload_ok:
        hass.data[DOMAIN].pop(entry.entry_id)
    return unload_ok


async def async_remove_entry(hass: HomeAssistant, entry: ConfigEntry) -> None:
    await HubitatSettingsStore(hass, entry).async_remove()
