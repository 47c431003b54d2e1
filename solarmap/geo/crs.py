"""CRS helpers."""

from typing import Any

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError

from solarmap.errors import ProjectionError

WGS84 = "EPSG:4326"


def to_wgs84_transformer(src_crs: Any) -> Transformer:
    """Return a (x, y) -> (lon, lat) transformer for a raster CRS.

    `src_crs` may be a rasterio CRS, a pyproj CRS, an EPSG string or WKT.
    Projected units (metres, US feet...) are handled by PROJ itself.
    """

    if src_crs is None or not src_crs:
        raise ProjectionError("raster has no coordinate reference system")
    try:
        wkt = src_crs.to_wkt() if hasattr(src_crs, "to_wkt") else src_crs
        crs = CRS.from_user_input(wkt)
        return Transformer.from_crs(crs, WGS84, always_xy=True)
    except (CRSError, ProjError, TypeError, ValueError) as e:
        raise ProjectionError(f"cannot convert {src_crs!r} to WGS84: {e}") from e
