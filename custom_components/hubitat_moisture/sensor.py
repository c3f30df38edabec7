from __future__ import annotations

import logging
from typing import Any

from homeassistant.components.sensor import (
    SensorDeviceClass,
    SensorEntity,
    SensorStateClass,
)
from homeassistant.config_entries import ConfigEntry
from homeassistant.const import PERCENTAGE
from homeassistant.core import HomeAssistant, callback
from homeassistant.helpers.entity_platform import AddEntitiesCallback
from homeassistant.helpers.update_coordinator import CoordinatorEntity

from .const import DOMAIN
from .coordinator import RefreshCoordinator
from .models import MoistureSensor, MoistureStatus

_LOGGER = logging.getLogger(__name__)


async def async_setup_entry(
    hass: HomeAssistant,
    entry: ConfigEntry,
    async_add_entities: AddEntitiesCallback,
) -> None:
    data = hass.data[DOMAIN][entry.entry_id]
    coordinator: RefreshCoordinator = data["coordinator"]

    manager = HubitatEntityManager(coordinator, async_add_entities)
    manager.async_add_new_entities()
    entry.async_on_unload(coordinator.async_add_listener(manager.async_add_new_entities))


class HubitatEntityManager:
    """Adds entities for sensors as they show up in refreshed snapshots."""

    def __init__(self, coordinator: RefreshCoordinator, async_add_entities: AddEntitiesCallback) -> None:
        self._coordinator = coordinator
        self._async_add_entities = async_add_entities
        self._known_ids: set[int] = set()
        self._status_added = False

    @callback
    def async_add_new_entities(self) -> None:
        entities: list[SensorEntity] = []
        if not self._status_added:
            entities.append(HubitatOverallStatusSensor(self._coordinator))
            self._status_added = True
        for sensor in self._coordinator.sensors:
            if sensor.id in self._known_ids:
                continue
            self._known_ids.add(sensor.id)
            _LOGGER.debug("Creating moisture entity for sensor %s (%s)", sensor.id, sensor.display_name)
            entities.append(HubitatMoistureSensor(self._coordinator, sensor.id))
        if entities:
            self._async_add_entities(entities)


class HubitatSensorBase(CoordinatorEntity[RefreshCoordinator], SensorEntity):
    """Base class for entities fed by the refresh coordinator."""

    _attr_should_poll = False


class HubitatMoistureSensor(HubitatSensorBase):
    """Moisture % of one Hubitat sensor."""

    _attr_device_class = SensorDeviceClass.MOISTURE
    _attr_state_class = SensorStateClass.MEASUREMENT
    _attr_native_unit_of_measurement = PERCENTAGE

    def __init__(self, coordinator: RefreshCoordinator, sensor_id: int) -> None:
        super().__init__(coordinator)
        self._sensor_id = sensor_id
        self._attr_unique_id = f"{DOMAIN}_{sensor_id}_moisture"

    @property
    def _sensor(self) -> MoistureSensor | None:
        return self.coordinator.get_sensor(self._sensor_id)

    @property
    def name(self) -> str:
        sensor = self._sensor
        return sensor.display_name if sensor else f"Sensor {self._sensor_id}"

    @property
    def available(self) -> bool:
        return super().available and self._sensor is not None

    @property
    def native_value(self) -> float | None:
        sensor = self._sensor
        if sensor is None or sensor.moisture_level is None:
            return None
        return round(sensor.moisture_level, 1)

    @property
    def icon(self) -> str:
        sensor = self._sensor
        status = sensor.status if sensor else MoistureStatus.UNKNOWN
        return status.icon

    @property
    def device_info(self) -> dict[str, Any]:
        sensor = self._sensor
        return {
            "identifiers": {(DOMAIN, str(self._sensor_id))},
            "name": sensor.display_name if sensor else f"Sensor {self._sensor_id}",
            "manufacturer": "Hubitat",
        }

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        sensor = self._sensor
        if sensor is None:
            return {}
        attrs: dict[str, Any] = {
            "sensor_id": sensor.id,
            "status": sensor.status.value,
            "status_description": sensor.status.description,
            "just_watered": sensor.is_just_watered,
        }
        if sensor.battery_level is not None:
            attrs["battery_level"] = sensor.battery_level
        if sensor.last_activity is not None:
            attrs["last_activity"] = sensor.last_activity.isoformat()
        return attrs


class HubitatOverallStatusSensor(HubitatSensorBase):
    """Worst status across all moisture sensors."""

    _attr_device_class = SensorDeviceClass.ENUM
    _attr_options = [status.value for status in MoistureStatus]
    _attr_unique_id = f"{DOMAIN}_overall_status"
    _attr_name = "Plant moisture status"

    @property
    def native_value(self) -> str:
        return self.coordinator.overall_status.value

    @property
    def icon(self) -> str:
        return self.coordinator.overall_status.icon

    @property
    def extra_state_attributes(self) -> dict[str, Any]:
        snapshot = self.coordinator.snapshot
        attrs: dict[str, Any] = {"sensor_count": len(snapshot.sensors)}
        if snapshot.updated_at is not None:
            attrs["last_update"] = snapshot.updated_at.isoformat()
        if snapshot.error is not None:
            attrs["last_error"] = str(snapshot.error)
        if snapshot.device_errors:
            attrs["failed_sensor_ids"] = sorted(snapshot.device_errors)
        return attrs
