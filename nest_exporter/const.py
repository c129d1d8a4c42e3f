"""Constants for the Nest exporter."""

import re

EXPORTER_VERSION = "1.0.0"

# Upstream endpoints
TOKEN_URL = "https://www.googleapis.com/oauth2/v4/token"
SDM_API_URL = "https://smartdevicemanagement.googleapis.com/v1"
ENDPOINT_DEVICES = "devices"

# Device resource paths
DEVICE_NAME_RE = re.compile(r"^enterprises/.+/devices/(.+)$")
DEVICE_ASSIGNEE_RE = re.compile(r"^enterprises/.+/structures/(.+)/rooms/(.+)$")

# Defaults
DEFAULT_LISTEN_ADDRESS = ":9896"
DEFAULT_TIMEOUT_SECONDS = 10.0
DEFAULT_REFRESH_MARGIN_SECONDS = 60.0
DEFAULT_REFRESH_RETRY_SECONDS = 30.0

CONFIG_ENV = "NEST_EXPORTER_CONFIG"
CONFIG_SECTION = "google_device_access"
CREDENTIAL_KEYS = ("project_id", "client_id", "client_secret", "refresh_token")

# Value of categorical trait fields meaning "inactive"
OFF = "OFF"

METRIC_TYPES = ("counter", "gauge", "histogram", "summary")

# name -> (help, type)
METRIC_DOCS = {
    "nest_device_fan_on": (
        "Whether the device has a fan timer running. Either 0 or 1.",
        "gauge",
    ),
    "nest_device_humidity_ratio": (
        "Ambient humidity as measured by the device. Between 0 and 1.",
        "gauge",
    ),
    "nest_device_temperature_celsius": (
        "Ambient temperature as measured by the device.",
        "gauge",
    ),
    "nest_thermostat_eco_on": (
        "Whether the thermostat is currently in Eco mode. Either 0 or 1.",
        "gauge",
    ),
    "nest_thermostat_hvac_mode": (
        "The thermostat's current HVAC output, expressed in 'mode' label as 'HEATING', "
        "'COOLING', or 'OFF'. Value is 0 if mode is OFF, otherwise 1.",
        "gauge",
    ),
    "nest_thermostat_mode": (
        "The thermostat's current mode, expressed in 'mode' label as 'HEAT', 'COOL', "
        "'HEATCOOL', or 'OFF'. Value is 0 if mode is OFF, otherwise 1.",
        "gauge",
    ),
    "nest_thermostat_heat_setpoint_celsius": (
        "The temperature the thermostat is currently configured to heat to.",
        "gauge",
    ),
    "nest_thermostat_cool_setpoint_celsius": (
        "The temperature the thermostat is currently configured to cool to.",
        "gauge",
    ),
}
