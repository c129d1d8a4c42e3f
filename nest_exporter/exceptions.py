"""Exceptions for the Nest exporter."""

from __future__ import annotations

from typing import Any, Optional


class NestExporterError(Exception):
    """Base exception for the Nest exporter."""


class ConfigError(NestExporterError):
    """Raised when the device access credentials are missing or invalid."""


class AuthError(NestExporterError):
    """Raised when the OAuth token endpoint answers with an error payload."""

    def __init__(self, message: str, payload: Optional[Any] = None) -> None:
        super().__init__(message)
        self.payload = payload


class RemoteAPIError(NestExporterError):
    """Raised when an upstream call fails, times out or returns a malformed body."""

    def __init__(self, message: str, payload: Optional[Any] = None) -> None:
        super().__init__(message)
        self.payload = payload


class ShapeMismatchError(NestExporterError):
    """Raised when a device's name or assignee path has an unexpected shape."""
