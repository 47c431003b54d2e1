"""GeoTIFF decoding for Solar API data layers.

A data layer is a GeoTIFF in a projected CRS (usually UTM). We keep the pixel
values at native resolution and only reproject the corners, so the overlay can
be placed on a lat/lon map:

    decode(buffer) -> GeoRaster(width, height, bands, bounds)

Invalid pixels carry the sentinel -9999 and are left untouched here.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

import numpy as np
from pyproj import Transformer
from rasterio.errors import RasterioError
from rasterio.io import MemoryFile

from solarmap.errors import FormatError, ProjectionError

from .crs import to_wgs84_transformer

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Bounds:
    north: float
    south: float
    east: float
    west: float

    def as_folium(self) -> list:
        """[[south, west], [north, east]] as expected by folium overlays."""
        return [[self.south, self.west], [self.north, self.east]]


@dataclass(frozen=True, eq=False)
class GeoRaster:
    width: int
    height: int
    bands: Tuple[np.ndarray, ...]
    bounds: Bounds

    @property
    def band_count(self) -> int:
        return len(self.bands)

    @property
    def shape(self) -> Tuple[int, int]:
        return self.height, self.width


@dataclass
class AffineGeoRef:
    """Pixel -> map coords from the GeoTIFF tie point and pixel scale.

    x = a*px + b*py + c
    y = d*px + e*py + f

    followed by `to_wgs84` (source CRS -> lon/lat).
    """

    a: float
    b: float
    c: float
    d: float
    e: float
    f: float
    to_wgs84: Transformer

    def pixel_to_wgs84(self, px: float, py: float) -> Tuple[float, float]:
        x = self.a * px + self.b * py + self.c
        y = self.d * px + self.e * py + self.f
        lon, lat = self.to_wgs84.transform(x, y)
        return float(lat), float(lon)

    def corner_bounds(self, width: int, height: int) -> Bounds:
        # Pixel edges, not centres: the overlay covers the whole image.
        corners = [(0.0, 0.0), (float(width), 0.0), (0.0, float(height)), (float(width), float(height))]
        lats = []
        lons = []
        for px, py in corners:
            lat, lon = self.pixel_to_wgs84(px, py)
            if not (math.isfinite(lat) and math.isfinite(lon)):
                raise ProjectionError(f"corner ({px:.0f},{py:.0f}) does not project to lat/lon")
            lats.append(lat)
            lons.append(lon)
        return Bounds(north=max(lats), south=min(lats), east=max(lons), west=min(lons))


def decode(buffer: bytes) -> GeoRaster:
    """Decode a GeoTIFF buffer into bands and a WGS84 bounding box.

    Raises:
        FormatError: the buffer is empty, not a TIFF, or has no bands/transform.
        ProjectionError: the embedded CRS is missing or cannot reach WGS84.
    """

    if not buffer:
        raise FormatError("empty raster buffer")

    try:
        with MemoryFile(bytes(buffer)) as mem:
            with mem.open() as ds:
                return _read_dataset(ds)
    except RasterioError as e:
        raise FormatError(f"not a readable GeoTIFF: {e}") from e


def decode_file(path: str) -> GeoRaster:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"GeoTIFF not found: {p}")
    return decode(p.read_bytes())


def _read_dataset(ds) -> GeoRaster:
    if ds.count < 1 or ds.width < 1 or ds.height < 1:
        raise FormatError(f"raster has no pixel data (count={ds.count}, {ds.width}x{ds.height})")

    t = ds.transform
    if t is None or t.is_identity:
        raise FormatError("raster has no tie point / pixel scale")

    to_wgs = to_wgs84_transformer(ds.crs)
    georef = AffineGeoRef(
        a=float(t.a),
        b=float(t.b),
        c=float(t.c),
        d=float(t.d),
        e=float(t.e),
        f=float(t.f),
        to_wgs84=to_wgs,
    )
    bounds = georef.corner_bounds(ds.width, ds.height)

    data = ds.read()  # (count, height, width)
    bands = []
    for i in range(int(data.shape[0])):
        band = np.ascontiguousarray(data[i])
        band.setflags(write=False)
        bands.append(band)

    logger.debug(
        "decoded %dx%d raster, %d band(s), crs=%s, bounds=%s",
        ds.width,
        ds.height,
        len(bands),
        _crs_name(ds.crs),
        bounds,
    )
    return GeoRaster(width=int(ds.width), height=int(ds.height), bands=tuple(bands), bounds=bounds)


def _crs_name(crs) -> Optional[str]:
    try:
        return crs.to_string() if crs is not None else None
    except (AttributeError, ValueError):
        return None