from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

import aiohttp

from .const import API_PATH, REQUEST_TIMEOUT
from .models import Device, DeviceAttribute

if TYPE_CHECKING:
    from .storage import SettingsStore

_LOGGER = logging.getLogger(__name__)


class HubitatError(Exception):
    """Base class for everything the hub client can fail with."""

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail)
        self.detail = detail


class HubitatNetworkError(HubitatError):
    pass


class HubitatApiError(HubitatError):
    def __init__(self, detail: str, status: int | None = None) -> None:
        super().__init__(detail)
        self.status = status


class HubitatDecodeError(HubitatApiError):
    pass


class HubitatAuthenticationError(HubitatError):
    def __init__(self, detail: str = "Authentication failed. Please check your API token.") -> None:
        super().__init__(detail)


class HubitatConfigurationError(HubitatError):
    def __init__(self, detail: str = "Invalid configuration. Please check your settings.") -> None:
        super().__init__(detail)


class SecretStoreError(HubitatError):
    pass


def build_base_url(hub_address: str) -> str:
    """Use the address as-is when it carries a scheme, else assume plain http."""
    address = hub_address.strip().rstrip("/")
    if address.startswith(("http://", "https://")):
        return address
    return f"http://{address}"


class HubitatClient:
    """Maker API client for a single hub.

    Address and token are read from the store on every call, so changes
    made through the store apply to the next request.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        store: SettingsStore,
        timeout: float = REQUEST_TIMEOUT,
    ) -> None:
        self._session = session
        self._store = store
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    # --- credentials ---

    def is_configured(self) -> bool:
        hub_address = self._store.load_settings().hub_address
        try:
            token = self._store.load_secret_token()
        except SecretStoreError as err:
            _LOGGER.warning("Access token unavailable: %s", err)
            return False
        return bool(hub_address.strip()) and bool(token)

    def update_credentials(self, hub_address: str, token: str) -> None:
        """Store a new hub address and access token."""
        settings = self._store.load_settings()
        settings.hub_address = hub_address
        self._store.save_settings(settings)
        self._store.save_secret_token(token)
        _LOGGER.info("Hubitat credentials updated for %s", hub_address)

    def _credentials(self) -> tuple[str, str]:
        hub_address = self._store.load_settings().hub_address
        token = self._store.load_secret_token()
        if not hub_address.strip() or not token:
            raise HubitatConfigurationError()
        return build_base_url(hub_address), token

    # --- API calls ---

    async def _get(self, endpoint: str) -> Any:
        base_url, token = self._credentials()
        url = f"{base_url}{API_PATH}/{endpoint}"
        _LOGGER.debug("API call: GET %s", url)
        try:
            async with self._session.get(
                url,
                params={"access_token": token},
                headers={"Accept": "application/json"},
                timeout=self._timeout,
            ) as resp:
                if resp.status == 401:
                    raise HubitatAuthenticationError()
                if not 200 <= resp.status < 300:
                    raise HubitatApiError(f"HTTP {resp.status}", status=resp.status)
                data = await resp.json(content_type=None)
        except HubitatError:
            raise
        except asyncio.TimeoutError as err:
            raise HubitatNetworkError(f"Request to {url} timed out") from err
        except aiohttp.ClientError as err:
            raise HubitatNetworkError(str(err) or err.__class__.__name__) from err
        except ValueError as err:
            raise HubitatNetworkError(f"Invalid response: {err}") from err
        _LOGGER.debug("API response: %s data=%s", endpoint, data)
        return data

    async def fetch_devices(self) -> list[Device]:
        data = await self._get("devices")
        if not isinstance(data, list):
            raise HubitatNetworkError(f"Invalid response: expected a device list, got {type(data).__name__}")
        devices: list[Device] = []
        for entry in data:
            try:
                devices.append(Device.from_dict(entry))
            except ValueError as err:
                raise HubitatDecodeError(f"Malformed device entry: {err}", status=200) from err
        return devices

    async def fetch_device_attributes(self, device_id: int) -> list[DeviceAttribute]:
        data = await self._get(f"devices/{device_id}")
        raw_attributes = data.get("attributes") if isinstance(data, dict) else None
        if not isinstance(raw_attributes, list):
            return []
        attributes: list[DeviceAttribute] = []
        for entry in raw_attributes:
            attribute = DeviceAttribute.from_dict(entry)
            if attribute is not None:
                attributes.append(attribute)
        return attributes

    async def test_connection(self) -> bool:
        await self.fetch_devices()
        return True
