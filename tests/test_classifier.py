from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from custom_components.hubitat_moisture.classifier import (
    build_sensor,
    determine_status,
    fetch_moisture_sensors,
    find_battery_attribute,
    find_moisture_attribute,
    is_moisture_candidate,
    parse_battery_level,
    parse_moisture_level,
)
from custom_components.hubitat_moisture.hubitat_api import (
    HubitatClient,
    HubitatNetworkError,
)
from custom_components.hubitat_moisture.models import (
    Device,
    DeviceAttribute,
    MoistureStatus,
    Settings,
)

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def _device(**kwargs) -> Device:
    data = {"id": 1, "name": "Thing", "type": "Generic"}
    data.update(kwargs)
    return Device(**data)


def _attrs(*pairs) -> list[DeviceAttribute]:
    return [DeviceAttribute(name=name, current_value=value) for name, value in pairs]


# --- candidate filter ---

@pytest.mark.parametrize(
    "device",
    [
        _device(type="Zigbee Moisture Sensor"),
        _device(type="soilSensor"),
        _device(name="Garden MOISTURE"),
        _device(name="Soil spike"),
        _device(label="Basil moisture"),
        _device(label="Front bed SOIL"),
    ],
)
def test_candidate_filter_matches_any_field(device):
    assert is_moisture_candidate(device)


@pytest.mark.parametrize(
    "device",
    [
        _device(),
        _device(type="Temperature Sensor", name="Humidity gauge"),
        _device(label="Kitchen"),
    ],
)
def test_candidate_filter_rejects_others(device):
    assert not is_moisture_candidate(device)


# --- attribute extraction ---

def test_moisture_attribute_first_match_in_order():
    attrs = _attrs(("temperature", "20"), ("soilMoisture", "30"), ("moisture", "40"))
    assert find_moisture_attribute(attrs).current_value == "30"


def test_humidity_is_only_a_fallback():
    attrs = _attrs(("humidity", "70"), ("moisture", "35"))
    assert find_moisture_attribute(attrs).name == "moisture"

    attrs = _attrs(("temperature", "20"), ("Humidity", "70"))
    assert find_moisture_attribute(attrs).current_value == "70"


def test_humidity_must_match_exactly():
    attrs = _attrs(("relativeHumidity", "70"))
    assert find_moisture_attribute(attrs) is None


def test_battery_attribute_exact_name():
    attrs = _attrs(("batteryVoltage", "3.1"), ("Battery", "55"))
    assert find_battery_attribute(attrs).current_value == "55"


def test_parse_levels():
    assert parse_moisture_level(DeviceAttribute("moisture", "42.5")) == 42.5
    assert parse_moisture_level(DeviceAttribute("moisture", "wet")) is None
    assert parse_moisture_level(DeviceAttribute("moisture", None)) is None
    assert parse_moisture_level(None) is None
    assert parse_battery_level(DeviceAttribute("battery", "80")) == 80
    assert parse_battery_level(DeviceAttribute("battery", "80.5")) is None
    assert parse_battery_level(None) is None


@pytest.mark.parametrize("raw", ["nan", "NaN", "inf", "-inf", "Infinity"])
def test_non_finite_moisture_is_absent(raw):
    assert parse_moisture_level(DeviceAttribute("moisture", raw)) is None


def test_non_finite_moisture_reads_as_unknown():
    sensor = build_sensor(
        _device(id=5, type="soilMoisture"),
        _attrs(("moisture", "nan")),
        Settings(),
        NOW,
        NOW,
    )
    assert sensor.moisture_level is None
    assert sensor.status is MoistureStatus.UNKNOWN


# --- status derivation ---

@pytest.mark.parametrize(
    ("moisture", "expected"),
    [
        (None, MoistureStatus.UNKNOWN),
        (0.0, MoistureStatus.CRITICAL),
        (20.0, MoistureStatus.CRITICAL),
        (20.5, MoistureStatus.NEEDS_ATTENTION),
        (40.0, MoistureStatus.NEEDS_ATTENTION),
        (41.0, MoistureStatus.HEALTHY),
        (100.0, MoistureStatus.HEALTHY),
    ],
)
def test_threshold_boundaries(moisture, expected):
    settings = Settings(healthy_threshold=40.0, critical_threshold=20.0)
    assert determine_status(moisture, 1, settings, NOW) is expected


def test_inverted_thresholds_prefer_critical():
    settings = Settings(healthy_threshold=20.0, critical_threshold=40.0)
    assert determine_status(30.0, 1, settings, NOW) is MoistureStatus.CRITICAL
    assert determine_status(45.0, 1, settings, NOW) is MoistureStatus.HEALTHY


def test_just_watered_overrides_within_window():
    settings = Settings(
        just_watered_sensors={1},
        just_watered_timestamps={1: NOW - timedelta(hours=23, minutes=59)},
    )
    assert determine_status(5.0, 1, settings, NOW) is MoistureStatus.JUST_WATERED
    assert determine_status(None, 1, settings, NOW) is MoistureStatus.JUST_WATERED


def test_just_watered_expires_after_24_hours():
    settings = Settings(
        just_watered_sensors={1},
        just_watered_timestamps={1: NOW - timedelta(hours=24)},
    )
    assert determine_status(5.0, 1, settings, NOW) is MoistureStatus.CRITICAL


def test_just_watered_needs_a_timestamp():
    settings = Settings(just_watered_sensors={1})
    assert determine_status(50.0, 1, settings, NOW) is MoistureStatus.HEALTHY


def test_expired_mark_still_flags_sensor():
    settings = Settings(
        just_watered_sensors={5},
        just_watered_timestamps={5: NOW - timedelta(days=2)},
    )
    device = _device(id=5, name="Soil Sensor", type="soilMoisture")
    sensor = build_sensor(device, _attrs(("moisture", "50")), settings, NOW, NOW)
    assert sensor.is_just_watered
    assert sensor.status is MoistureStatus.HEALTHY


def test_build_sensor_uses_custom_name_and_label():
    settings = Settings(custom_names={5: "Fiddle leaf"})
    device = _device(id=5, name="Soil Sensor", label="Office plant", type="soilMoisture")
    sensor = build_sensor(device, [], settings, NOW, NOW)
    assert sensor.name == "Office plant"
    assert sensor.display_name == "Fiddle leaf"
    assert sensor.status is MoistureStatus.UNKNOWN
    assert sensor.last_activity == NOW


# --- batch fetch ---

def _client(devices, attributes) -> MagicMock:
    client = MagicMock(spec=HubitatClient)
    client.fetch_devices = AsyncMock(return_value=devices)

    async def _fetch_attributes(device_id):
        outcome = attributes[device_id]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    client.fetch_device_attributes = AsyncMock(side_effect=_fetch_attributes)
    return client


SOIL = Device(id=5, name="Soil Sensor", type="soilMoisture")


@pytest.mark.parametrize(
    ("moisture", "expected"),
    [("15", MoistureStatus.CRITICAL), ("50", MoistureStatus.HEALTHY)],
)
async def test_fetch_moisture_sensors_end_to_end(moisture, expected):
    client = _client([SOIL], {5: _attrs(("moisture", moisture), ("battery", "80"))})
    settings = Settings(healthy_threshold=40.0, critical_threshold=20.0)

    result = await fetch_moisture_sensors(client, settings, clock=lambda: NOW)

    assert result.device_errors == {}
    [sensor] = result.sensors
    assert sensor.id == 5
    assert sensor.moisture_level == float(moisture)
    assert sensor.battery_level == 80
    assert sensor.status is expected
    assert sensor.last_activity == NOW


async def test_fetch_skips_non_candidates():
    switch = Device(id=7, name="Porch Light", type="Generic Switch")
    client = _client([switch, SOIL], {5: _attrs(("moisture", "30"))})

    result = await fetch_moisture_sensors(client, Settings(), clock=lambda: NOW)

    assert [s.id for s in result.sensors] == [5]
    client.fetch_device_attributes.assert_awaited_once_with(5)


async def test_one_failed_device_does_not_abort_batch():
    other = Device(id=6, name="Basil", label="Basil moisture", type="Zigbee")
    error = HubitatNetworkError("timed out")
    client = _client([SOIL, other], {5: error, 6: _attrs(("moisture", "45"))})

    result = await fetch_moisture_sensors(client, Settings(), clock=lambda: NOW)

    failed, ok = result.sensors
    assert failed.id == 5
    assert failed.status is MoistureStatus.UNKNOWN
    assert failed.moisture_level is None
    assert failed.battery_level is None
    assert failed.last_activity is None
    assert ok.status is MoistureStatus.HEALTHY
    assert result.device_errors == {5: error}


async def test_device_list_failure_propagates():
    client = MagicMock(spec=HubitatClient)
    client.fetch_devices = AsyncMock(side_effect=HubitatNetworkError("down"))
    with pytest.raises(HubitatNetworkError):
        await fetch_moisture_sensors(client, Settings())
