"""Solar panel configuration records as returned by buildingInsights."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple


@dataclass(frozen=True)
class RoofSegmentSummary:
    pitch_degrees: float
    azimuth_degrees: float
    panels_count: int
    yearly_energy_dc_kwh: float
    segment_index: int

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "RoofSegmentSummary":
        return cls(
            pitch_degrees=float(d.get("pitchDegrees", 0.0)),
            azimuth_degrees=float(d.get("azimuthDegrees", 0.0)),
            panels_count=int(d.get("panelsCount", 0)),
            yearly_energy_dc_kwh=float(d.get("yearlyEnergyDcKwh", 0.0)),
            segment_index=int(d.get("segmentIndex", 0)),
        )


@dataclass(frozen=True)
class SolarPanelConfig:
    panels_count: int
    yearly_energy_dc_kwh: float
    roof_segment_summaries: Tuple[RoofSegmentSummary, ...] = ()

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "SolarPanelConfig":
        return cls(
            panels_count=int(d.get("panelsCount", 0)),
            yearly_energy_dc_kwh=float(d.get("yearlyEnergyDcKwh", 0.0)),
            roof_segment_summaries=tuple(
                RoofSegmentSummary.from_dict(s) for s in d.get("roofSegmentSummaries") or []
            ),
        )
