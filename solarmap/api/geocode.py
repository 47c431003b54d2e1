"""Address -> coordinates through the public Nominatim search endpoint.

Nominatim allows one request per second per client, so every lookup goes
through a shared RateLimiter.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional

import requests

from solarmap import config as cfg
from solarmap.errors import DataUnavailableError, SolarApiError

from .client import RateLimiter
from .models import LatLng

logger = logging.getLogger(__name__)

USER_AGENT = "solarmap/0.1"

_nominatim_limiter = RateLimiter(min_interval=cfg.GEOCODER_INTERVAL_S)


@dataclass(frozen=True)
class GeocodeResult:
    lat: float
    lng: float
    formatted_address: str

    @property
    def location(self) -> LatLng:
        return LatLng(self.lat, self.lng)


def search(
    query: str,
    limit: int = 5,
    session: Optional[requests.Session] = None,
    limiter: Optional[RateLimiter] = None,
) -> List[GeocodeResult]:
    """Autocomplete-style lookup; short queries return nothing."""

    q = (query or "").strip()
    if len(q) < 3:
        return []
    http = session or requests

    def _op():
        return http.get(
            cfg.NOMINATIM_URL,
            params={"q": q, "format": "jsonv2", "limit": int(limit)},
            headers={"User-Agent": USER_AGENT},
            timeout=cfg.HTTP_TIMEOUT_S,
        )

    try:
        resp = (limiter or _nominatim_limiter).execute(_op)
    except requests.RequestException as e:
        logger.error("geocoding network error for %r: %s", q, e)
        raise SolarApiError(0, f"network error: {e}", "NETWORK_ERROR") from e
    if resp.status_code != 200:
        logger.error("geocoding failed (%s) for %r", resp.status_code, q)
        raise SolarApiError(resp.status_code, f"geocoding failed for {q!r}", "GEOCODER_ERROR")
    return [
        GeocodeResult(float(d["lat"]), float(d["lon"]), str(d.get("display_name", q)))
        for d in resp.json()
        if "lat" in d and "lon" in d
    ]


def geocode(
    address: str,
    session: Optional[requests.Session] = None,
    limiter: Optional[RateLimiter] = None,
) -> GeocodeResult:
    results = search(address, limit=1, session=session, limiter=limiter)
    if not results:
        raise DataUnavailableError(f"no match for address {address!r}")
    return results[0]
