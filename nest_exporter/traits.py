"""Translation of SDM device traits into metric samples.

Every translator takes the raw trait payload and returns a list of entries.
An entry is either ``None`` (nothing to report for this payload) or a
``TraitSample`` carrying a metric name, a value and extra labels. Base labels
are added by the aggregator.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, NamedTuple, Optional

from .const import OFF
from .models import Number

TRAIT_PREFIX = "sdm.devices.traits."


class TraitSample(NamedTuple):
    name: str
    value: Number
    labels: Optional[Dict[str, str]] = None


TraitEntry = Optional[TraitSample]
Translator = Callable[[Dict[str, Any]], List[TraitEntry]]

TRAIT_TRANSLATORS: Dict[str, Translator] = {}


def trait(name: str) -> Callable[[Translator], Translator]:
    """Register a translator for the trait type ``name``."""

    def register(func: Translator) -> Translator:
        TRAIT_TRANSLATORS[name] = func
        return func

    return register


def _is_number(x: Any) -> bool:
    return isinstance(x, (int, float)) and not isinstance(x, bool)


def _active(x: Any) -> int:
    return int(x != OFF)


def _number(name: str, x: Any) -> TraitEntry:
    if not _is_number(x):
        return None
    return TraitSample(name, x)


@trait(TRAIT_PREFIX + "Fan")
def fan(obj: Dict[str, Any]) -> List[TraitEntry]:
    return [TraitSample("nest_device_fan_on", _active(obj.get("timerMode")))]


@trait(TRAIT_PREFIX + "Humidity")
def humidity(obj: Dict[str, Any]) -> List[TraitEntry]:
    pct = obj.get("ambientHumidityPercent")
    if not _is_number(pct):
        return [None]
    return [TraitSample("nest_device_humidity_ratio", pct / 100)]


@trait(TRAIT_PREFIX + "Temperature")
def temperature(obj: Dict[str, Any]) -> List[TraitEntry]:
    return [_number("nest_device_temperature_celsius", obj.get("ambientTemperatureCelsius"))]


@trait(TRAIT_PREFIX + "ThermostatEco")
def thermostat_eco(obj: Dict[str, Any]) -> List[TraitEntry]:
    return [TraitSample("nest_thermostat_eco_on", _active(obj.get("mode")))]


@trait(TRAIT_PREFIX + "ThermostatHvac")
def thermostat_hvac(obj: Dict[str, Any]) -> List[TraitEntry]:
    status = obj.get("status")
    if status is None:
        return [None]
    return [TraitSample("nest_thermostat_hvac_mode", _active(status), {"mode": str(status)})]


@trait(TRAIT_PREFIX + "ThermostatMode")
def thermostat_mode(obj: Dict[str, Any]) -> List[TraitEntry]:
    mode = obj.get("mode")
    if mode is None:
        return [None]
    return [TraitSample("nest_thermostat_mode", _active(mode), {"mode": str(mode)})]


@trait(TRAIT_PREFIX + "ThermostatTemperatureSetpoint")
def thermostat_setpoint(obj: Dict[str, Any]) -> List[TraitEntry]:
    # Only the setpoints matching the current mode are present in the payload.
    return [
        _number("nest_thermostat_heat_setpoint_celsius", obj.get("heatCelsius")),
        _number("nest_thermostat_cool_setpoint_celsius", obj.get("coolCelsius")),
    ]


def translate(name: str, payload: Any) -> List[TraitEntry]:
    """Translate one trait entry. Unknown trait types yield no entries."""
    func = TRAIT_TRANSLATORS.get(name)
    if func is None:
        return []
    if not isinstance(payload, dict):
        payload = {}
    return func(payload)


def translate_traits(traits: Dict[str, Any]) -> List[TraitSample]:
    """Translate every trait of a device, dropping ``None`` entries."""
    out: List[TraitSample] = []
    for name, payload in traits.items():
        for entry in translate(name, payload):
            if entry is not None:
                out.append(entry)
    return out
