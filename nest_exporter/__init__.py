"""Prometheus exporter for Google Nest devices via the Smart Device Management API."""

from .aggregator import render
from .exceptions import (
    AuthError,
    ConfigError,
    NestExporterError,
    RemoteAPIError,
    ShapeMismatchError,
)
from .gateway import DeviceGateway
from .models import AccessToken, Device, MetricDefinition, MetricSample
from .service import NestService
from .token_cache import TokenCache
from .traits import TRAIT_TRANSLATORS, translate

__all__ = [
    "AccessToken",
    "AuthError",
    "ConfigError",
    "Device",
    "DeviceGateway",
    "MetricDefinition",
    "MetricSample",
    "NestExporterError",
    "NestService",
    "RemoteAPIError",
    "ShapeMismatchError",
    "TRAIT_TRANSLATORS",
    "TokenCache",
    "render",
    "translate",
]
