from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from homeassistant.config_entries import ConfigEntry
from homeassistant.core import HomeAssistant
from homeassistant.helpers.update_coordinator import DataUpdateCoordinator

from .classifier import fetch_moisture_sensors, utcnow
from .hubitat_api import HubitatClient, HubitatError
from .models import MoistureSensor, MoistureStatus
from .storage import SettingsStore

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class CoordinatorSnapshot:
    """Sensor set and overall status published together after a refresh."""

    sensors: tuple[MoistureSensor, ...] = ()
    overall_status: MoistureStatus = MoistureStatus.UNKNOWN
    error: Exception | None = None
    device_errors: dict[int, HubitatError] = field(default_factory=dict)
    updated_at: datetime | None = None

    @property
    def success(self) -> bool:
        return self.error is None


def compute_overall_status(sensors: Iterable[MoistureSensor]) -> MoistureStatus:
    """Worst status across all sensors; unknown when there are none."""
    statuses = {sensor.status for sensor in sensors}
    if not statuses:
        return MoistureStatus.UNKNOWN
    if MoistureStatus.CRITICAL in statuses:
        return MoistureStatus.CRITICAL
    if MoistureStatus.NEEDS_ATTENTION in statuses:
        return MoistureStatus.NEEDS_ATTENTION
    if MoistureStatus.UNKNOWN in statuses:
        return MoistureStatus.UNKNOWN
    return MoistureStatus.HEALTHY


class RefreshCoordinator(DataUpdateCoordinator[CoordinatorSnapshot]):
    """Coordinator for Hubitat moisture polling.

    Runs at most one refresh at a time; a refresh requested while another
    is running is dropped. A failed device-list fetch still publishes a
    snapshot: the previous sensors, an unknown overall status and the error.
    """

    def __init__(
        self,
        hass: HomeAssistant,
        client: HubitatClient,
        store: SettingsStore,
        config_entry: ConfigEntry | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        super().__init__(
            hass,
            _LOGGER,
            config_entry=config_entry,
            name="Hubitat moisture coordinator",
            update_interval=timedelta(seconds=store.load_settings().refresh_interval),
        )
        self._client = client
        self._store = store
        self._clock = clock
        self._refreshing = False
        self.data = CoordinatorSnapshot()

    # --- observer contract ---

    @property
    def snapshot(self) -> CoordinatorSnapshot:
        return self.data

    @property
    def sensors(self) -> list[MoistureSensor]:
        return list(self.data.sensors)

    @property
    def overall_status(self) -> MoistureStatus:
        return self.data.overall_status

    @property
    def is_refreshing(self) -> bool:
        return self._refreshing

    def get_sensor(self, sensor_id: int) -> MoistureSensor | None:
        for sensor in self.data.sensors:
            if sensor.id == sensor_id:
                return sensor
        return None

    # --- refreshing ---

    async def _async_refresh(self, *args: Any, **kwargs: Any) -> None:
        # timer and manual refreshes both land here
        if self._refreshing:
            _LOGGER.debug("Refresh already in progress; ignoring request")
            return
        self._refreshing = True
        try:
            await super()._async_refresh(*args, **kwargs)
        finally:
            self._refreshing = False

    def trigger_refresh(self) -> asyncio.Task | None:
        """Start a refresh in the background unless one is already running."""
        if self._refreshing:
            _LOGGER.debug("Refresh already in progress; ignoring request")
            return None
        return self.hass.async_create_task(
            self.async_refresh(), "hubitat_moisture refresh"
        )

    def async_about_to_display(self) -> asyncio.Task | None:
        """Refresh opportunistically when a view is about to show sensor data."""
        if self._refreshing or not self._client.is_configured():
            return None
        return self.trigger_refresh()

    def set_refresh_interval(self, seconds: float) -> None:
        """Store a new interval and restart the timer on it without refreshing."""
        settings = self._store.load_settings()
        settings.refresh_interval = seconds
        self._store.save_settings(settings)
        self.update_interval = timedelta(seconds=seconds)
        _LOGGER.info("Hubitat refresh interval changed to %s", self.update_interval)
        if self._listeners:
            self._schedule_refresh()

    async def _async_update_data(self) -> CoordinatorSnapshot:
        previous = self.data
        try:
            settings = self._store.load_settings()
            result = await fetch_moisture_sensors(self._client, settings, self._clock)
        except HubitatError as err:
            _LOGGER.warning("Hubitat refresh failed: %s", err)
            return self._failed_snapshot(previous, err)
        except Exception as err:  # noqa: BLE001
            _LOGGER.exception("Unexpected error refreshing Hubitat sensors")
            return self._failed_snapshot(previous, err)

        sensors = tuple(result.sensors)
        return CoordinatorSnapshot(
            sensors=sensors,
            overall_status=compute_overall_status(sensors),
            device_errors=dict(result.device_errors),
            updated_at=self._clock(),
        )

    def _failed_snapshot(self, previous: CoordinatorSnapshot, err: Exception) -> CoordinatorSnapshot:
        # sensors stay as they were; only the overall status drops to unknown
        return CoordinatorSnapshot(
            sensors=previous.sensors,
            overall_status=MoistureStatus.UNKNOWN,
            error=err,
            updated_at=previous.updated_at,
        )

    # --- settings actions ---

    def mark_just_watered(self, sensor_id: int) -> asyncio.Task | None:
        settings = self._store.load_settings()
        settings.just_watered_sensors.add(sensor_id)
        settings.just_watered_timestamps[sensor_id] = self._clock()
        self._store.save_settings(settings)
        _LOGGER.debug("Sensor %s marked as just watered", sensor_id)
        return self.trigger_refresh()

    def clear_just_watered(self, sensor_id: int) -> asyncio.Task | None:
        settings = self._store.load_settings()
        settings.just_watered_sensors.discard(sensor_id)
        settings.just_watered_timestamps.pop(sensor_id, None)
        self._store.save_settings(settings)
        _LOGGER.debug("Cleared just-watered mark for sensor %s", sensor_id)
        return self.trigger_refresh()

    def set_custom_name(self, sensor_id: int, name: str | None) -> asyncio.Task | None:
        """Override a sensor's display name; an empty name removes the override."""
        settings = self._store.load_settings()
        if name:
            settings.custom_names[sensor_id] = name
        else:
            settings.custom_names.pop(sensor_id, None)
        self._store.save_settings(settings)
        return self.trigger_refresh()

    def update_thresholds(self, healthy: float, critical: float) -> asyncio.Task | None:
        settings = self._store.load_settings()
        settings.healthy_threshold = healthy
        settings.critical_threshold = critical
        self._store.save_settings(settings)
        return self.trigger_refresh()
