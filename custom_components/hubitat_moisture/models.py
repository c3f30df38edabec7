"""Data models for the Hubitat moisture integration."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from .const import (
    DEFAULT_CRITICAL_THRESHOLD,
    DEFAULT_HEALTHY_THRESHOLD,
    DEFAULT_SCAN_INTERVAL,
)


class MoistureStatus(str, Enum):
    """Condition of a single sensor, or of all sensors together."""

    HEALTHY = "healthy"
    NEEDS_ATTENTION = "needs_attention"
    CRITICAL = "critical"
    UNKNOWN = "unknown"
    JUST_WATERED = "just_watered"

    @property
    def description(self) -> str:
        return _STATUS_DESCRIPTIONS[self]

    @property
    def icon(self) -> str:
        return _STATUS_ICONS[self]


_STATUS_DESCRIPTIONS = {
    MoistureStatus.HEALTHY: "Healthy",
    MoistureStatus.NEEDS_ATTENTION: "Needs Water",
    MoistureStatus.CRITICAL: "Critical",
    MoistureStatus.UNKNOWN: "Unknown",
    MoistureStatus.JUST_WATERED: "Just Watered",
}

_STATUS_ICONS = {
    MoistureStatus.HEALTHY: "mdi:leaf",
    MoistureStatus.NEEDS_ATTENTION: "mdi:alert",
    MoistureStatus.CRITICAL: "mdi:water-alert",
    MoistureStatus.UNKNOWN: "mdi:help-circle",
    MoistureStatus.JUST_WATERED: "mdi:check-circle",
}


# --- wire decoding helpers ---

def normalize_device_id(raw: Any) -> int:
    """Turn a device id that may arrive as a string or a number into an int.

    Raises ValueError for anything that is not an integral id.
    """
    if isinstance(raw, bool):
        raise ValueError(f"Device id must be numeric, got {raw!r}")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str):
        try:
            return int(raw)
        except ValueError:
            raise ValueError(f"Cannot convert device id {raw!r} to int") from None
    raise ValueError(f"Device id must be a string or integer, got {raw!r}")


def decode_current_value(raw: Any) -> str | None:
    """Decode an attribute's currentValue: string, then number, then absent.

    Integral floats are written without a fractional part ("80", not "80.0").
    Booleans are not numbers here and decode as absent.
    """
    if isinstance(raw, str):
        return raw
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return str(raw)
    if isinstance(raw, float):
        if raw.is_integer():
            return str(int(raw))
        return repr(raw)
    return None


def _optional_str(data: dict, key: str) -> str | None:
    value = data.get(key)
    return value if isinstance(value, str) else None


@dataclass(frozen=True)
class Device:
    """A device as reported by the hub's device listing."""

    id: int
    name: str
    type: str
    label: str | None = None
    device_network_id: str | None = None

    @property
    def display_name(self) -> str:
        return self.label if self.label is not None else self.name

    @classmethod
    def from_dict(cls, data: Any) -> Device:
        if not isinstance(data, dict):
            raise ValueError(f"Device entry must be an object, got {data!r}")
        if "id" not in data:
            raise ValueError("Device entry is missing 'id'")
        name = data.get("name")
        dev_type = data.get("type")
        if not isinstance(name, str):
            raise ValueError(f"Device entry has no string 'name': {data!r}")
        if not isinstance(dev_type, str):
            raise ValueError(f"Device entry has no string 'type': {data!r}")
        return cls(
            id=normalize_device_id(data["id"]),
            name=name,
            type=dev_type,
            label=_optional_str(data, "label"),
            device_network_id=_optional_str(data, "deviceNetworkId"),
        )


@dataclass(frozen=True)
class DeviceAttribute:
    """A named current value reported by a device."""

    name: str
    current_value: str | None = None
    data_type: str | None = None
    unit: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> DeviceAttribute | None:
        """Build an attribute, or None when the entry has no usable name."""
        if not isinstance(data, dict):
            return None
        name = data.get("name")
        if not isinstance(name, str):
            return None
        return cls(
            name=name,
            current_value=decode_current_value(data.get("currentValue")),
            data_type=_optional_str(data, "dataType"),
            unit=_optional_str(data, "unit"),
        )


@dataclass(frozen=True)
class MoistureSensor:
    """A moisture sensor as derived from one refresh pass."""

    id: int
    name: str
    status: MoistureStatus
    custom_name: str | None = None
    moisture_level: float | None = None
    battery_level: int | None = None
    last_activity: datetime | None = None
    is_just_watered: bool = False

    @property
    def display_name(self) -> str:
        return self.custom_name if self.custom_name else self.name

    @property
    def moisture_percentage(self) -> str:
        if self.moisture_level is None:
            return "N/A"
        return f"{self.moisture_level:.0f}%"

    @property
    def battery_percentage(self) -> str:
        if self.battery_level is None:
            return "N/A"
        return f"{self.battery_level}%"


@dataclass
class Settings:
    """User configuration read from the settings store."""

    hub_address: str = ""
    refresh_interval: float = DEFAULT_SCAN_INTERVAL
    healthy_threshold: float = DEFAULT_HEALTHY_THRESHOLD
    critical_threshold: float = DEFAULT_CRITICAL_THRESHOLD
    custom_names: dict[int, str] = field(default_factory=dict)
    just_watered_sensors: set[int] = field(default_factory=set)
    just_watered_timestamps: dict[int, datetime] = field(default_factory=dict)
