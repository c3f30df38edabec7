"""Settings and access-token persistence.

Settings live in a Home Assistant ``Store`` document, one per config entry.
The hub address and access token belong to the config entry itself, so the
token never ends up in the settings document or in a log line.

Everything is loaded once at setup and served from memory afterwards;
saves are batched through ``async_delay_save``.
"""

from __future__ import annotations

import copy
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.const import CONF_ACCESS_TOKEN, CONF_HOST
from homeassistant.core import HomeAssistant, callback
from homeassistant.exceptions import HomeAssistantError
from homeassistant.helpers.storage import Store

from .const import (
    DEFAULT_CRITICAL_THRESHOLD,
    DEFAULT_HEALTHY_THRESHOLD,
    DEFAULT_SCAN_INTERVAL,
    SAVE_DELAY,
    STORAGE_KEY,
    STORAGE_VERSION,
)
from .hubitat_api import SecretStoreError
from .models import Settings

_LOGGER = logging.getLogger(__name__)


class SettingsStore(ABC):
    """Narrow interface the client and coordinator use for configuration."""

    @abstractmethod
    def load_settings(self) -> Settings:
        ...

    @abstractmethod
    def save_settings(self, settings: Settings) -> None:
        ...

    @abstractmethod
    def load_secret_token(self) -> str:
        """Return the access token, or "" if none has been stored."""

    @abstractmethod
    def save_secret_token(self, token: str) -> None:
        ...


def _positive_float(value: Any, default: float) -> float:
    # zero or missing means "never set"
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if number else default


def _int_keys(data: Any) -> dict[int, Any]:
    out: dict[int, Any] = {}
    if not isinstance(data, dict):
        return out
    for key, value in data.items():
        try:
            out[int(key)] = value
        except (TypeError, ValueError):
            _LOGGER.debug("Skipping non-numeric sensor id %r in settings", key)
    return out


def _parse_timestamp(raw: Any) -> datetime:
    ts = datetime.fromisoformat(raw)
    if ts.tzinfo is None:
        # written without an offset; stored times are always UTC
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def settings_from_dict(data: dict) -> Settings:
    custom_names = {
        sid: name for sid, name in _int_keys(data.get("custom_names")).items()
        if isinstance(name, str) and name
    }

    watered: set[int] = set()
    for sid in data.get("just_watered_sensors") or []:
        try:
            watered.add(int(sid))
        except (TypeError, ValueError):
            continue

    timestamps: dict[int, datetime] = {}
    for sid, raw in _int_keys(data.get("just_watered_timestamps")).items():
        try:
            timestamps[sid] = _parse_timestamp(raw)
        except (TypeError, ValueError):
            _LOGGER.debug("Skipping bad watered timestamp %r for sensor %s", raw, sid)

    hub_address = data.get("hub_address")
    return Settings(
        hub_address=hub_address if isinstance(hub_address, str) else "",
        refresh_interval=_positive_float(data.get("refresh_interval"), DEFAULT_SCAN_INTERVAL),
        healthy_threshold=_positive_float(data.get("healthy_threshold"), DEFAULT_HEALTHY_THRESHOLD),
        critical_threshold=_positive_float(data.get("critical_threshold"), DEFAULT_CRITICAL_THRESHOLD),
        custom_names=custom_names,
        just_watered_sensors=watered,
        just_watered_timestamps=timestamps,
    )


def settings_to_dict(settings: Settings) -> dict:
    return {
        "refresh_interval": settings.refresh_interval,
        "healthy_threshold": settings.healthy_threshold,
        "critical_threshold": settings.critical_threshold,
        "custom_names": {str(sid): name for sid, name in settings.custom_names.items()},
        "just_watered_sensors": sorted(settings.just_watered_sensors),
        "just_watered_timestamps": {
            str(sid): ts.isoformat() for sid, ts in settings.just_watered_timestamps.items()
        },
    }


class MemorySettingsStore(SettingsStore):
    """Settings and token held only in memory.

    Used to try out credentials before a config entry exists.
    """

    def __init__(self, settings: Settings | None = None, token: str = "") -> None:
        self._settings = settings if settings is not None else Settings()
        self._token = token

    def load_settings(self) -> Settings:
        return copy.deepcopy(self._settings)

    def save_settings(self, settings: Settings) -> None:
        self._settings = copy.deepcopy(settings)

    def load_secret_token(self) -> str:
        return self._token

    def save_secret_token(self, token: str) -> None:
        self._token = token


class HubitatSettingsStore(SettingsStore):
    """Settings for one config entry.

    Thresholds, interval, custom names and watered marks are kept in a
    ``Store`` document keyed by the entry id. The hub address and token
    are read from and written back to ``entry.data``.
    """

    def __init__(self, hass: HomeAssistant, entry: ConfigEntry) -> None:
        self._hass = hass
        self._entry = entry
        self._store: Store[dict[str, Any]] = Store(
            hass, STORAGE_VERSION, f"{STORAGE_KEY}.{entry.entry_id}"
        )
        self._settings = Settings()

    async def async_load(self) -> None:
        """Read the stored document once; later loads are served from memory."""
        data = await self._store.async_load()
        if data is None:
            self._settings = Settings()
        elif not isinstance(data, dict):
            _LOGGER.warning("Ignoring stored Hubitat settings: not a mapping")
            self._settings = Settings()
        else:
            self._settings = settings_from_dict(data)
        _LOGGER.debug("Loaded Hubitat settings for entry %s", self._entry.entry_id)

    async def async_remove(self) -> None:
        await self._store.async_remove()

    def load_settings(self) -> Settings:
        settings = copy.deepcopy(self._settings)
        settings.hub_address = self._entry.data.get(CONF_HOST, "")
        return settings

    def save_settings(self, settings: Settings) -> None:
        self._settings = copy.deepcopy(settings)
        if settings.hub_address != self._entry.data.get(CONF_HOST, ""):
            self._async_update_entry_data(CONF_HOST, settings.hub_address)
        self._store.async_delay_save(self._data_to_save, SAVE_DELAY)

    @callback
    def _data_to_save(self) -> dict[str, Any]:
        return settings_to_dict(self._settings)

    def load_secret_token(self) -> str:
        token = self._entry.data.get(CONF_ACCESS_TOKEN, "")
        if not isinstance(token, str):
            raise SecretStoreError("Stored access token is not a string")
        return token

    def save_secret_token(self, token: str) -> None:
        self._async_update_entry_data(CONF_ACCESS_TOKEN, token)

    @callback
    def _async_update_entry_data(self, key: str, value: str) -> None:
        try:
            self._hass.config_entries.async_update_entry(
                self._entry, data={**self._entry.data, key: value}
            )
        except HomeAssistantError as err:
            raise SecretStoreError(f"Failed to update config entry: {err}") from err
