"""Google Solar API client.

Endpoints used:
    GET /v1/buildingInsights:findClosest  -> BuildingInsights
    GET /v1/dataLayers:get                -> DataLayers (GeoTIFF URLs)
    GET <layer url>&key=...               -> GeoTIFF bytes -> GeoRaster

Every call goes through one process-wide RateLimiter (FIFO, minimum interval
between dispatches) and is retried only on 429/503 with exponential backoff.
Connection failures and timeouts surface as SolarApiError with status
NETWORK_ERROR and are not retried.
"""

from __future__ import annotations

import logging
import random
import threading
import time
from typing import Any, Callable, Dict, Optional, TypeVar

import requests

from solarmap import config as cfg
from solarmap.errors import DataUnavailableError, SolarApiError
from solarmap.geo.georaster import GeoRaster, decode

from .models import BuildingInsights, DataLayers, LatLng

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimiter:
    """Minimum interval between dispatches, served first-come first-served."""

    def __init__(
        self,
        min_interval: float = cfg.RATE_LIMIT_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval = float(min_interval)
        self._clock = clock
        self._sleep = sleep
        # threading.Lock is not fair; a Condition with tickets keeps FIFO order
        self._cond = threading.Condition()
        self._next_ticket = 0
        self._serving = 0
        self._last_dispatch: Optional[float] = None

    def execute(self, operation: Callable[[], T]) -> T:
        with self._cond:
            ticket = self._next_ticket
            self._next_ticket += 1
            while ticket != self._serving:
                self._cond.wait()
            try:
                if self._last_dispatch is not None:
                    wait = self.min_interval - (self._clock() - self._last_dispatch)
                    if wait > 0:
                        self._sleep(wait)
                self._last_dispatch = self._clock()
            finally:
                self._serving += 1
                self._cond.notify_all()
        return operation()


_default_limiter = RateLimiter()


def with_retry(
    operation: Callable[[], T],
    max_retries: int = cfg.MAX_RETRIES,
    base_delay: float = cfg.RETRY_BASE_DELAY_S,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Run `operation`, retrying SolarApiError 429/503 with backoff + jitter.

    Delay before retry n (0-based) is `base_delay * 2**n + uniform(0, 1)`.
    Any other error is raised immediately.
    """

    attempt = 0
    while True:
        try:
            return operation()
        except SolarApiError as e:
            if attempt >= max_retries or not e.retryable:
                raise
            delay = base_delay * (2 ** attempt) + random.uniform(0.0, 1.0)
            logger.warning("Solar API %s, retry %d/%d in %.2fs", e.code, attempt + 1, max_retries, delay)
            sleep(delay)
            attempt += 1


class SolarApiClient:
    """Thin wrapper around the Solar API REST endpoints."""

    def __init__(
        self,
        api_key: str,
        session: Optional[requests.Session] = None,
        rate_limiter: Optional[RateLimiter] = None,
        max_retries: int = cfg.MAX_RETRIES,
        base_delay: float = cfg.RETRY_BASE_DELAY_S,
        base_url: str = cfg.SOLAR_API_BASE_URL,
        timeout: float = cfg.HTTP_TIMEOUT_S,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.api_key = api_key
        self.session = session or requests.Session()
        self.rate_limiter = rate_limiter or _default_limiter
        self.max_retries = int(max_retries)
        self.base_delay = float(base_delay)
        self.base_url = base_url.rstrip("/")
        self.timeout = float(timeout)
        self._sleep = sleep

    def _call(self, operation: Callable[[], T]) -> T:
        return self.rate_limiter.execute(
            lambda: with_retry(operation, self.max_retries, self.base_delay, sleep=self._sleep)
        )

    def _send(self, what: str, url: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        """GET through the session; connection failures and timeouts become SolarApiError."""
        try:
            if params is None:
                return self.session.get(url, timeout=self.timeout)
            return self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            message = str(e)
            if self.api_key:
                message = message.replace(self.api_key, "***")
            logger.error("%s: network error: %s", what, message)
            raise SolarApiError(0, f"network error: {message}", "NETWORK_ERROR") from e

    def _get_json(self, endpoint: str, params: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.base_url}/{endpoint}"

        def _op() -> Dict[str, Any]:
            resp = self._send(endpoint, url, {**params, "key": self.api_key})
            try:
                content = resp.json()
            except ValueError:
                content = None
            if resp.status_code != 200:
                logger.error("%s failed (%s): %s", endpoint, resp.status_code, content)
                raise _api_error(resp.status_code, content)
            if not isinstance(content, dict):
                raise SolarApiError(resp.status_code, f"{endpoint}: response is not a JSON object", "INVALID_RESPONSE")
            return content

        return self._call(_op)

    def find_closest_building(self, location: LatLng, required_quality: str = cfg.BUILDING_QUALITY) -> BuildingInsights:
        """Building insights (panel configs, roof stats) for the building closest to `location`."""
        content = self._get_json(
            "buildingInsights:findClosest",
            {
                "location.latitude": f"{location.latitude:.5f}",
                "location.longitude": f"{location.longitude:.5f}",
                "requiredQuality": required_quality,
            },
        )
        return BuildingInsights.from_dict(content)

    def get_data_layer_urls(
        self,
        location: LatLng,
        radius_meters: float = cfg.DEFAULT_RADIUS_METERS,
        required_quality: str = cfg.DATA_LAYERS_QUALITY,
    ) -> DataLayers:
        content = self._get_json(
            "dataLayers:get",
            {
                "location.latitude": f"{location.latitude:.5f}",
                "location.longitude": f"{location.longitude:.5f}",
                "radius_meters": str(radius_meters),
                "required_quality": required_quality,
            },
        )
        return DataLayers.from_dict(content)

    def download_geotiff(self, url: str) -> GeoRaster:
        """Fetch one data layer URL and decode it."""
        solar_url = f"{url}&key={self.api_key}" if cfg.SOLAR_API_HOST in url else url

        def _op() -> bytes:
            resp = self._send("download_geotiff", solar_url)
            if resp.status_code != 200:
                try:
                    content = resp.json()
                except ValueError:
                    content = None
                logger.error("download_geotiff failed (%s): %s", resp.status_code, url)
                raise _api_error(resp.status_code, content)
            return resp.content

        return decode(self._call(_op))


def _api_error(http_status: int, content: Optional[Dict[str, Any]]) -> SolarApiError:
    err = SolarApiError.from_response_body(http_status, content)
    if err.status == "NOT_FOUND" or (http_status == 404 and not err.status):
        return DataUnavailableError(err.message or "no data for this location", err.code, err.status or "NOT_FOUND")
    return err
