"""Turn hub devices and their attributes into moisture sensors.

One pass per refresh: filter the device list down to moisture
candidates, fetch each candidate's attributes, and derive a status for
each from the current settings.
"""

from __future__ import annotations

import asyncio
import logging
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone

from .const import JUST_WATERED_WINDOW_SECONDS
from .hubitat_api import HubitatClient, HubitatError
from .models import Device, DeviceAttribute, MoistureSensor, MoistureStatus, Settings

_LOGGER = logging.getLogger(__name__)

_CANDIDATE_KEYWORDS = ("moisture", "soil")
JUST_WATERED_WINDOW = timedelta(seconds=JUST_WATERED_WINDOW_SECONDS)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_moisture_candidate(device: Device) -> bool:
    fields = (device.type, device.name, device.display_name)
    return any(
        keyword in value.lower()
        for value in fields
        for keyword in _CANDIDATE_KEYWORDS
    )


def find_moisture_attribute(attributes: Sequence[DeviceAttribute]) -> DeviceAttribute | None:
    """First attribute named like moisture; "humidity" only as a fallback."""
    for attr in attributes:
        if "moisture" in attr.name.lower():
            return attr
    for attr in attributes:
        if attr.name.lower() == "humidity":
            return attr
    return None


def find_battery_attribute(attributes: Sequence[DeviceAttribute]) -> DeviceAttribute | None:
    for attr in attributes:
        if attr.name.lower() == "battery":
            return attr
    return None


def parse_moisture_level(attribute: DeviceAttribute | None) -> float | None:
    if attribute is None or attribute.current_value is None:
        return None
    try:
        value = float(attribute.current_value)
    except ValueError:
        _LOGGER.debug("Unparseable moisture value %r", attribute.current_value)
        return None
    if not math.isfinite(value):
        _LOGGER.debug("Ignoring non-finite moisture value %r", attribute.current_value)
        return None
    return value


def parse_battery_level(attribute: DeviceAttribute | None) -> int | None:
    if attribute is None or attribute.current_value is None:
        return None
    try:
        return int(attribute.current_value)
    except ValueError:
        _LOGGER.debug("Unparseable battery value %r", attribute.current_value)
        return None


def is_watering_active(sensor_id: int, settings: Settings, now: datetime) -> bool:
    """True while a just-watered mark is less than 24h old."""
    if sensor_id not in settings.just_watered_sensors:
        return False
    timestamp = settings.just_watered_timestamps.get(sensor_id)
    if timestamp is None:
        return False
    return now - timestamp < JUST_WATERED_WINDOW


def determine_status(
    moisture_level: float | None,
    sensor_id: int,
    settings: Settings,
    now: datetime,
) -> MoistureStatus:
    # Critical is checked before healthy, so inverted thresholds read as critical.
    if is_watering_active(sensor_id, settings, now):
        return MoistureStatus.JUST_WATERED
    if moisture_level is None:
        return MoistureStatus.UNKNOWN
    if moisture_level <= settings.critical_threshold:
        return MoistureStatus.CRITICAL
    if moisture_level <= settings.healthy_threshold:
        return MoistureStatus.NEEDS_ATTENTION
    return MoistureStatus.HEALTHY


def build_sensor(
    device: Device,
    attributes: Sequence[DeviceAttribute],
    settings: Settings,
    now: datetime,
    last_activity: datetime,
) -> MoistureSensor:
    moisture_level = parse_moisture_level(find_moisture_attribute(attributes))
    battery_level = parse_battery_level(find_battery_attribute(attributes))
    return MoistureSensor(
        id=device.id,
        name=device.display_name,
        custom_name=settings.custom_names.get(device.id),
        moisture_level=moisture_level,
        battery_level=battery_level,
        last_activity=last_activity,
        status=determine_status(moisture_level, device.id, settings, now),
        is_just_watered=device.id in settings.just_watered_sensors,
    )


def build_unavailable_sensor(device: Device, settings: Settings) -> MoistureSensor:
    """Sensor for a device whose attributes could not be fetched."""
    return MoistureSensor(
        id=device.id,
        name=device.display_name,
        custom_name=settings.custom_names.get(device.id),
        status=MoistureStatus.UNKNOWN,
        is_just_watered=device.id in settings.just_watered_sensors,
    )


@dataclass
class ClassificationResult:
    sensors: list[MoistureSensor] = field(default_factory=list)
    device_errors: dict[int, HubitatError] = field(default_factory=dict)


async def fetch_moisture_sensors(
    client: HubitatClient,
    settings: Settings,
    clock: Callable[[], datetime] = utcnow,
) -> ClassificationResult:
    """Fetch and classify every moisture sensor on the hub.

    A failure listing devices propagates. A failure fetching one device's
    attributes is recorded in ``device_errors`` and that device comes back
    as an unknown sensor.
    """
    devices = await client.fetch_devices()
    candidates = [device for device in devices if is_moisture_candidate(device)]
    _LOGGER.debug(
        "Found %d moisture candidates among %d devices", len(candidates), len(devices)
    )
    now = clock()

    async def _fetch(device: Device) -> tuple[Device, list[DeviceAttribute] | HubitatError, datetime | None]:
        try:
            attributes = await client.fetch_device_attributes(device.id)
        except HubitatError as err:
            return device, err, None
        return device, attributes, clock()

    fetched = await asyncio.gather(*(_fetch(device) for device in candidates))

    result = ClassificationResult()
    for device, outcome, fetched_at in fetched:
        if isinstance(outcome, HubitatError):
            _LOGGER.warning(
                "Failed to fetch attributes for device %s (%s): %s",
                device.id,
                device.display_name,
                outcome,
            )
            result.device_errors[device.id] = outcome
            result.sensors.append(build_unavailable_sensor(device, settings))
            continue
        sensor = build_sensor(device, outcome, settings, now, fetched_at)
        _LOGGER.debug("Sensor %s: %s", sensor.id, sensor)
        result.sensors.append(sensor)
    return result
