"""Exceptions raised while exporting Figma files."""
from __future__ import annotations

from typing import Any


class FigmaExportError(Exception):
    """Base class for all export failures."""


class InvalidFormatError(FigmaExportError, ValueError):
    """Raised when the requested export format is not supported."""

    def __init__(self, export_format: object) -> None:
        self.format = export_format
        super().__init__(f"The requested format is invalid: {export_format}")


class InvalidScaleError(FigmaExportError, ValueError):
    """Raised when the export scale is outside (0, 4]."""

    def __init__(self, scale: object) -> None:
        self.scale = scale
        super().__init__(f"The export scale must be between 0 and 4: {scale}")


class RequestError(FigmaExportError):
    """Raised when the API answers with a non-success status."""

    def __init__(self, url: str, status_code: int, body: Any) -> None:
        self.url = url
        self.status_code = status_code
        self.body = body
        super().__init__(
            f"The request was not successful: {url} [{status_code}: {body!r}]"
        )


class TransportError(FigmaExportError):
    """Raised when a request fails below HTTP (DNS, connection, timeout)."""

    def __init__(self, url: str, reason: str) -> None:
        self.url = url
        self.reason = reason
        super().__init__(f"The request could not be sent: {url} ({reason})")


class AssemblyError(FigmaExportError):
    """Raised when a rendered layer cannot be read as a PDF document."""


class ConfigError(FigmaExportError):
    """Raised when the configuration file cannot be loaded."""
