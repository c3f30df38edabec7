"""Config flow for Hubitat moisture sensors."""

from __future__ import annotations

import logging
from typing import Any

import voluptuous as vol

from homeassistant.config_entries import (
    ConfigEntry,
    ConfigFlow,
    ConfigFlowResult,
    OptionsFlow,
)
from homeassistant.const import CONF_ACCESS_TOKEN, CONF_HOST, CONF_SCAN_INTERVAL
from homeassistant.core import callback
from homeassistant.helpers.aiohttp_client import async_get_clientsession

from .const import (
    CONF_CRITICAL_THRESHOLD,
    CONF_HEALTHY_THRESHOLD,
    DEFAULT_CRITICAL_THRESHOLD,
    DEFAULT_HEALTHY_THRESHOLD,
    DEFAULT_SCAN_INTERVAL,
    DOMAIN,
    MIN_SCAN_INTERVAL,
)
from .hubitat_api import (
    HubitatAuthenticationError,
    HubitatClient,
    HubitatConfigurationError,
    HubitatError,
)
from .models import Settings
from .storage import MemorySettingsStore

_LOGGER = logging.getLogger(__name__)

STEP_USER_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_HOST): str,
        vol.Required(CONF_ACCESS_TOKEN): str,
    }
)

_PERCENT = vol.All(vol.Coerce(float), vol.Range(min=0, max=100))


class HubitatMoistureConfigFlow(ConfigFlow, domain=DOMAIN):
    VERSION = 1

    async def async_step_user(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        errors: dict[str, str] = {}
        if user_input is not None:
            host = user_input[CONF_HOST].strip()
            token = user_input[CONF_ACCESS_TOKEN].strip()
            store = MemorySettingsStore(Settings(hub_address=host), token)
            client = HubitatClient(async_get_clientsession(self.hass), store)
            try:
                await client.test_connection()
            except HubitatAuthenticationError:
                errors["base"] = "invalid_auth"
            except HubitatConfigurationError:
                errors["base"] = "invalid_config"
            except HubitatError as err:
                _LOGGER.debug("Hubitat connection test failed: %s", err)
                errors["base"] = "cannot_connect"
            else:
                await self.async_set_unique_id(host.lower())
                self._abort_if_unique_id_configured()
                return self.async_create_entry(
                    title=f"Hubitat ({host})",
                    data={CONF_HOST: host, CONF_ACCESS_TOKEN: token},
                )

        return self.async_show_form(
            step_id="user", data_schema=STEP_USER_SCHEMA, errors=errors
        )

    @staticmethod
    @callback
    def async_get_options_flow(config_entry: ConfigEntry) -> OptionsFlow:
        return HubitatMoistureOptionsFlow()


class HubitatMoistureOptionsFlow(OptionsFlow):
    """Polling interval and moisture thresholds."""

    async def async_step_init(
        self, user_input: dict[str, Any] | None = None
    ) -> ConfigFlowResult:
        if user_input is not None:
            return self.async_create_entry(data=user_input)

        options = self.config_entry.options
        schema = vol.Schema(
            {
                vol.Required(
                    CONF_SCAN_INTERVAL,
                    default=options.get(CONF_SCAN_INTERVAL, DEFAULT_SCAN_INTERVAL),
                ): vol.All(vol.Coerce(int), vol.Range(min=MIN_SCAN_INTERVAL)),
                vol.Required(
                    CONF_HEALTHY_THRESHOLD,
                    default=options.get(CONF_HEALTHY_THRESHOLD, DEFAULT_HEALTHY_THRESHOLD),
                ): _PERCENT,
                vol.Required(
                    CONF_CRITICAL_THRESHOLD,
                    default=options.get(CONF_CRITICAL_THRESHOLD, DEFAULT_CRITICAL_THRESHOLD),
                ): _PERCENT,
            }
        )
        return self.async_show_form(step_id="init", data_schema=schema)
