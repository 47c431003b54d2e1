"""Pick a default panel configuration for a yearly energy target.

Configs arrive sorted by panel count (and therefore by yearly energy), so the
first config that covers the target is also the smallest one that does.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from solarmap.errors import NoConfigurationsError

from .config import SolarPanelConfig


def adjusted_yield(config: SolarPanelConfig, capacity_ratio: float, dc_to_ac_derate: float) -> float:
    return float(config.yearly_energy_dc_kwh) * float(capacity_ratio) * float(dc_to_ac_derate)


def select_config(
    configs: Sequence[SolarPanelConfig],
    target_yearly_kwh: float,
    capacity_ratio: float = 1.0,
    dc_to_ac_derate: float = 1.0,
) -> int:
    """Index of the smallest config whose adjusted yield meets the target.

    Returns the last index when nothing is big enough (undersized, but the
    best available) and 0 when the target is not positive.

    Raises:
        NoConfigurationsError: `configs` is empty.
    """

    if not configs:
        raise NoConfigurationsError("no solar panel configurations for this building")
    if target_yearly_kwh <= 0:
        return 0
    for i, config in enumerate(configs):
        if adjusted_yield(config, capacity_ratio, dc_to_ac_derate) >= target_yearly_kwh:
            return i
    return len(configs) - 1


@dataclass(frozen=True)
class PanelSelection:
    """Current configs plus the selected index; every accessor is bounds-checked."""

    configs: Sequence[SolarPanelConfig] = ()
    config_id: Optional[int] = None
    panel_capacity_watts: float = 400.0
    default_panel_capacity_watts: float = 400.0

    @property
    def capacity_ratio(self) -> float:
        if self.default_panel_capacity_watts <= 0:
            return 1.0
        return float(self.panel_capacity_watts) / float(self.default_panel_capacity_watts)

    def current_config(self) -> Optional[SolarPanelConfig]:
        if self.config_id is None or not (0 <= self.config_id < len(self.configs)):
            return None
        return self.configs[self.config_id]

    def panel_count(self) -> int:
        config = self.current_config()
        return config.panels_count if config is not None else 0

    def yearly_energy_dc_kwh(self) -> float:
        """Yearly DC energy of the selection, rescaled to the chosen panel wattage."""
        config = self.current_config()
        if config is None:
            return 0.0
        return config.yearly_energy_dc_kwh * self.capacity_ratio
