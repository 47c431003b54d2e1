"""Error types raised by solarmap.

Raster/format problems are fatal to one render attempt only. API errors keep
the upstream code/message/status so the UI can show them as-is.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SolarMapError(Exception):
    """Base class for every solarmap error."""


class FormatError(SolarMapError):
    """The buffer is not a well-formed GeoTIFF."""


class ProjectionError(SolarMapError):
    """The embedded CRS cannot be converted to WGS84 lat/lon."""


class RenderError(SolarMapError):
    """Raster sources of one layer are inconsistent with each other."""


class NoConfigurationsError(SolarMapError):
    """Building insights came back without any solar panel configuration."""


class SolarApiError(SolarMapError):
    """Structured error returned by the Solar API (or the geocoder)."""

    def __init__(self, code: int, message: str, status: str = "") -> None:
        super().__init__(f"{code} {status}: {message}".strip())
        self.code = int(code)
        self.message = str(message)
        self.status = str(status)

    @classmethod
    def from_response_body(cls, http_status: int, body: Optional[Dict[str, Any]]) -> "SolarApiError":
        """Build from the `{"error": {"code", "message", "status"}}` envelope."""
        err = (body or {}).get("error") if isinstance(body, dict) else None
        if not isinstance(err, dict):
            return cls(http_status, f"HTTP {http_status}", "")
        return cls(
            int(err.get("code", http_status)),
            str(err.get("message", "")),
            str(err.get("status", "")),
        )

    @property
    def retryable(self) -> bool:
        return self.code in (429, 503)

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "status": self.status}


class DataUnavailableError(SolarApiError):
    """No coverage for the requested location at the requested quality."""

    def __init__(self, message: str, code: int = 404, status: str = "NOT_FOUND") -> None:
        super().__init__(code, message, status)
