"""Typed views of the Solar API JSON responses.

Only the fields the app reads are modelled; everything is built with
`from_dict(...)` straight from `response.json()`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from solarmap.panels.config import SolarPanelConfig


@dataclass(frozen=True)
class LatLng:
    latitude: float
    longitude: float

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> "LatLng":
        d = d or {}
        return cls(float(d.get("latitude", 0.0)), float(d.get("longitude", 0.0)))

    def key(self) -> Tuple[float, float]:
        """Rounded to the 5 decimals sent to the API; used for request keys."""
        return round(self.latitude, 5), round(self.longitude, 5)


@dataclass(frozen=True)
class ImageryDate:
    year: int
    month: int
    day: int

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> Optional["ImageryDate"]:
        if not d:
            return None
        return cls(int(d.get("year", 0)), int(d.get("month", 0)), int(d.get("day", 0)))


def show_date(date: Optional[ImageryDate]) -> str:
    if date is None:
        return "-"
    return f"{date.month}/{date.day}/{date.year}"


@dataclass(frozen=True)
class RoofSegmentStats:
    pitch_degrees: float
    azimuth_degrees: float
    area_meters2: float
    center: LatLng
    sw: LatLng
    ne: LatLng

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RoofSegmentStats":
        box = d.get("boundingBox") or {}
        return cls(
            pitch_degrees=float(d.get("pitchDegrees", 0.0)),
            azimuth_degrees=float(d.get("azimuthDegrees", 0.0)),
            area_meters2=float((d.get("stats") or {}).get("areaMeters2", 0.0)),
            center=LatLng.from_dict(d.get("center")),
            sw=LatLng.from_dict(box.get("sw")),
            ne=LatLng.from_dict(box.get("ne")),
        )


@dataclass(frozen=True)
class SolarPotential:
    max_array_panels_count: int
    panel_capacity_watts: float
    panel_height_meters: float
    panel_width_meters: float
    panel_lifetime_years: int
    max_array_area_meters2: float
    max_sunshine_hours_per_year: float
    carbon_offset_factor_kg_per_mwh: float
    whole_roof_area_meters2: float
    roof_segment_stats: Tuple[RoofSegmentStats, ...] = ()
    solar_panel_configs: Tuple[SolarPanelConfig, ...] = ()

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SolarPotential":
        return cls(
            max_array_panels_count=int(d.get("maxArrayPanelsCount", 0)),
            panel_capacity_watts=float(d.get("panelCapacityWatts", 0.0)),
            panel_height_meters=float(d.get("panelHeightMeters", 0.0)),
            panel_width_meters=float(d.get("panelWidthMeters", 0.0)),
            panel_lifetime_years=int(d.get("panelLifetimeYears", 0)),
            max_array_area_meters2=float(d.get("maxArrayAreaMeters2", 0.0)),
            max_sunshine_hours_per_year=float(d.get("maxSunshineHoursPerYear", 0.0)),
            carbon_offset_factor_kg_per_mwh=float(d.get("carbonOffsetFactorKgPerMwh", 0.0)),
            whole_roof_area_meters2=float((d.get("wholeRoofStats") or {}).get("areaMeters2", 0.0)),
            roof_segment_stats=tuple(RoofSegmentStats.from_dict(s) for s in d.get("roofSegmentStats") or []),
            solar_panel_configs=tuple(SolarPanelConfig.from_dict(c) for c in d.get("solarPanelConfigs") or []),
        )


@dataclass(frozen=True)
class BuildingInsights:
    name: str
    center: LatLng
    imagery_quality: str
    imagery_date: Optional[ImageryDate]
    postal_code: str
    administrative_area: str
    region_code: str
    solar_potential: SolarPotential

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "BuildingInsights":
        return cls(
            name=str(d.get("name", "")),
            center=LatLng.from_dict(d.get("center")),
            imagery_quality=str(d.get("imageryQuality", "")),
            imagery_date=ImageryDate.from_dict(d.get("imageryDate")),
            postal_code=str(d.get("postalCode", "")),
            administrative_area=str(d.get("administrativeArea", "")),
            region_code=str(d.get("regionCode", "")),
            solar_potential=SolarPotential.from_dict(d.get("solarPotential") or {}),
        )


@dataclass(frozen=True)
class DataLayers:
    imagery_quality: str
    imagery_date: Optional[ImageryDate] = None
    dsm_url: str = ""
    rgb_url: str = ""
    mask_url: str = ""
    annual_flux_url: str = ""
    monthly_flux_url: str = ""
    hourly_shade_urls: Tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DataLayers":
        return cls(
            imagery_quality=str(d.get("imageryQuality", "")),
            imagery_date=ImageryDate.from_dict(d.get("imageryDate")),
            dsm_url=str(d.get("dsmUrl") or ""),
            rgb_url=str(d.get("rgbUrl") or ""),
            mask_url=str(d.get("maskUrl") or ""),
            annual_flux_url=str(d.get("annualFluxUrl") or ""),
            monthly_flux_url=str(d.get("monthlyFluxUrl") or ""),
            hourly_shade_urls=tuple(str(u) for u in d.get("hourlyShadeUrls") or []),
        )

    def available(self) -> List[str]:
        """Names of the URL fields that are present."""
        names = [
            ("dsm", self.dsm_url),
            ("rgb", self.rgb_url),
            ("mask", self.mask_url),
            ("annualFlux", self.annual_flux_url),
            ("monthlyFlux", self.monthly_flux_url),
        ]
        out = [n for n, url in names if url]
        if self.hourly_shade_urls:
            out.append("hourlyShade")
        return out
