"""GeoJSON export of what is drawn on the map.

Everything drawn is already in lat/lon (Solar API boxes, overlay bounds), so
the FeatureCollection is built in EPSG:4326 with shapely and no reprojection.
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict, List, Optional, Sequence, Union

from shapely.geometry import Point, box, mapping

from solarmap.api.models import BuildingInsights
from solarmap.geo.georaster import Bounds


def feature_collection(
    geometries: Union[Any, Sequence[Any]],
    properties: Optional[Union[Dict[str, Any], Sequence[Dict[str, Any]]]] = None,
) -> Dict[str, Any]:
    """FeatureCollection dict from lon/lat geometries.

    Args:
        geometries: A single shapely geometry or a list of geometries.
        properties:
            - None: each feature gets {}.
            - dict: applied to all features.
            - list of dicts: one per geometry.
    """

    if geometries is None:
        raise ValueError("geometries cannot be None")

    geoms: List[Any] = list(geometries) if isinstance(geometries, (list, tuple)) else [geometries]

    if properties is None:
        props_list: List[Dict[str, Any]] = [{} for _ in geoms]
    elif isinstance(properties, dict):
        props_list = [properties for _ in geoms]
    else:
        props_list = list(properties)
        if len(props_list) != len(geoms):
            raise ValueError("If properties is a list, it must match geometries length")

    fc: Dict[str, Any] = {"type": "FeatureCollection", "features": []}
    for geom, props in zip(geoms, props_list):
        if geom is None:
            continue
        fc["features"].append({"type": "Feature", "properties": dict(props), "geometry": mapping(geom)})
    return fc


def export_geojson(insights: BuildingInsights, out_path: str, overlay_bounds: Optional[Bounds] = None) -> str:
    """Write `roof_segments_geojson(...)` to `out_path` and return the path."""
    fc = roof_segments_geojson(insights, overlay_bounds)
    parent = os.path.dirname(out_path)
    if parent:
        os.makedirs(parent, exist_ok=True)
    with open(out_path, "w", encoding="utf-8") as f:
        json.dump(fc, f)
    return out_path


def bounds_polygon(bounds: Bounds):
    """Overlay footprint; shapely boxes are (minx=west, miny=south, maxx=east, maxy=north)."""
    return box(bounds.west, bounds.south, bounds.east, bounds.north)


def roof_segments_geojson(insights: BuildingInsights, overlay_bounds: Optional[Bounds] = None) -> Dict[str, Any]:
    """Building center, roof segment bounding boxes and, optionally, the overlay footprint."""

    geoms: List[Any] = [Point(insights.center.longitude, insights.center.latitude)]
    props: List[Dict[str, Any]] = [
        {
            "type": "building",
            "name": insights.name,
            "imagery_quality": insights.imagery_quality,
        }
    ]

    for i, seg in enumerate(insights.solar_potential.roof_segment_stats):
        geoms.append(box(seg.sw.longitude, seg.sw.latitude, seg.ne.longitude, seg.ne.latitude))
        props.append(
            {
                "type": "roof_segment",
                "id": i,
                "pitch_degrees": seg.pitch_degrees,
                "azimuth_degrees": seg.azimuth_degrees,
                "area_meters2": seg.area_meters2,
            }
        )

    if overlay_bounds is not None:
        geoms.append(bounds_polygon(overlay_bounds))
        props.append({"type": "overlay"})

    return feature_collection(geoms, props)
