from __future__ import annotations

from typing import Any, Dict, List, Optional

import numpy as np
import pytest
import requests
from rasterio.io import MemoryFile
from rasterio.transform import from_origin

from solarmap.api.models import BuildingInsights, DataLayers, LatLng
from solarmap.geo.georaster import Bounds, GeoRaster

# UTM 33N, about 42N 15E; 0.5 m pixels
UTM_CRS = "EPSG:32633"
UTM_ORIGIN = (500000.0, 4649776.0)
PIXEL_SIZE = 0.5

BOUNDS = Bounds(north=42.0002, south=42.0, east=15.0003, west=15.0)


def make_geotiff(data, crs: Optional[str] = UTM_CRS, transform=None) -> bytes:
    """Encode a (bands, H, W) or (H, W) array as GeoTIFF bytes."""
    data = np.asarray(data)
    if data.ndim == 2:
        data = data[np.newaxis]
    count, height, width = data.shape
    if transform is None:
        transform = from_origin(UTM_ORIGIN[0], UTM_ORIGIN[1], PIXEL_SIZE, PIXEL_SIZE)
    with MemoryFile() as mem:
        with mem.open(
            driver="GTiff",
            width=width,
            height=height,
            count=count,
            dtype=data.dtype,
            crs=crs,
            transform=transform,
        ) as ds:
            ds.write(data)
        return mem.read()


def raster(*bands, bounds: Bounds = BOUNDS) -> GeoRaster:
    arrs = tuple(np.asarray(b) for b in bands)
    h, w = arrs[0].shape
    return GeoRaster(width=w, height=h, bands=arrs, bounds=bounds)


class FakeRasterSource:
    """download_geotiff() from a url -> GeoRaster dict."""

    def __init__(self, rasters: Dict[str, GeoRaster]):
        self.rasters = rasters
        self.calls: List[str] = []

    def download_geotiff(self, url: str) -> GeoRaster:
        self.calls.append(url)
        return self.rasters[url]


class FakeResponse:
    def __init__(self, status_code: int = 200, payload: Any = None, content: bytes = b""):
        self.status_code = status_code
        self._payload = payload
        self.content = content

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload


class FakeSession:
    """requests.Session stand-in returning queued responses in order."""

    def __init__(self, responses: List[FakeResponse]):
        self.responses = list(responses)
        self.requests: List[Dict[str, Any]] = []

    def get(self, url, params=None, timeout=None, headers=None):
        self.requests.append({"url": url, "params": params, "headers": headers})
        return self.responses.pop(0)


def insights_payload(yields=(1000.0, 2000.0, 4000.0), lat=42.0001, lng=15.0001, name="buildings/abc"):
    return {
        "name": name,
        "center": {"latitude": lat, "longitude": lng},
        "imageryQuality": "HIGH",
        "imageryDate": {"year": 2022, "month": 6, "day": 1},
        "postalCode": "00100",
        "administrativeArea": "Lazio",
        "regionCode": "IT",
        "solarPotential": {
            "maxArrayPanelsCount": 10 * len(yields),
            "panelCapacityWatts": 400,
            "panelHeightMeters": 1.879,
            "panelWidthMeters": 1.045,
            "panelLifetimeYears": 20,
            "maxArrayAreaMeters2": 60.0,
            "maxSunshineHoursPerYear": 1600.0,
            "carbonOffsetFactorKgPerMwh": 400.0,
            "wholeRoofStats": {"areaMeters2": 120.0},
            "roofSegmentStats": [
                {
                    "pitchDegrees": 20.0,
                    "azimuthDegrees": 180.0,
                    "stats": {"areaMeters2": 60.0},
                    "center": {"latitude": lat, "longitude": lng},
                    "boundingBox": {
                        "sw": {"latitude": lat - 0.0001, "longitude": lng - 0.0001},
                        "ne": {"latitude": lat + 0.0001, "longitude": lng + 0.0001},
                    },
                }
            ],
            "solarPanelConfigs": [
                {
                    "panelsCount": 10 * (i + 1),
                    "yearlyEnergyDcKwh": y,
                    "roofSegmentSummaries": [
                        {
                            "pitchDegrees": 20.0,
                            "azimuthDegrees": 180.0,
                            "panelsCount": 10 * (i + 1),
                            "yearlyEnergyDcKwh": y,
                            "segmentIndex": 0,
                        }
                    ],
                }
                for i, y in enumerate(yields)
            ],
        },
    }


def data_layers_payload() -> Dict[str, Any]:
    base = "https://solar.googleapis.com/v1/geoTiff:get?id="
    return {
        "imageryQuality": "HIGH",
        "imageryDate": {"year": 2022, "month": 6, "day": 1},
        "dsmUrl": base + "dsm",
        "rgbUrl": base + "rgb",
        "maskUrl": base + "mask",
        "annualFluxUrl": base + "annual",
        "monthlyFluxUrl": base + "monthly",
        "hourlyShadeUrls": [base + f"hourly{m}" for m in range(12)],
    }


@pytest.fixture
def insights() -> BuildingInsights:
    return BuildingInsights.from_dict(insights_payload())


@pytest.fixture
def data_layers() -> DataLayers:
    return DataLayers.from_dict(data_layers_payload())


@pytest.fixture
def layer_rasters(data_layers) -> Dict[str, GeoRaster]:
    """4x4 rasters for every URL in `data_layers`; left half is roof."""
    mask = np.zeros((4, 4), dtype=np.uint8)
    mask[:, :2] = 1
    flux = np.arange(16, dtype=np.float32).reshape(4, 4)
    flux[0, 0] = -9999
    monthly = []
    for m in range(12):
        band = flux + m
        band[0, 0] = -9999
        monthly.append(band)
    rgb = [np.full((4, 4), v, dtype=np.uint8) for v in (10, 20, 30)]
    # sun on day 1 along the top row every month, at [2, 2] in even months only;
    # [3, 3] is no-data
    hourly = []
    for m in range(12):
        band = np.zeros((4, 4), dtype=np.int32)
        band[0, :] = 0b1
        band[2, 2] = 0b1 if m % 2 == 0 else 0
        band[3, 3] = -9999
        hourly.append(raster(*[band] * 24))

    rasters = {
        data_layers.mask_url: raster(mask),
        data_layers.dsm_url: raster(flux),
        data_layers.rgb_url: raster(*rgb),
        data_layers.annual_flux_url: raster(flux),
        data_layers.monthly_flux_url: raster(*monthly),
    }
    for url, month_raster in zip(data_layers.hourly_shade_urls, hourly):
        rasters[url] = month_raster
    return rasters


@pytest.fixture
def location_a() -> LatLng:
    return LatLng(42.0001, 15.0001)


@pytest.fixture
def location_b() -> LatLng:
    return LatLng(45.4642, 9.19)


class OfflineSession:
    """requests.Session stand-in whose every GET fails to connect."""

    def __init__(self, error: Optional[Exception] = None):
        self.error = error
        self.requests: List[str] = []

    def get(self, url, params=None, timeout=None, headers=None):
        self.requests.append(url)
        raise self.error or requests.ConnectionError(f"Max retries exceeded with url: {url}")
