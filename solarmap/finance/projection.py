"""Year-by-year cost/savings projection for a panel configuration.

The same `project(...)` feeds the on-screen figures and the exported report,
so both always agree. Monetary values are plain floats; rounding is left to
display code.

Bills with solar are clamped at zero: a surplus year costs nothing and the
excess production is not credited (no net metering).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Tuple

import numpy as np

from solarmap import config as cfg
from solarmap.panels.config import SolarPanelConfig

BREAK_EVEN_NOT_REACHED = -1


@dataclass(frozen=True)
class FinancialParameters:
    monthly_bill: float = cfg.DEFAULT_MONTHLY_BILL
    energy_cost_per_kwh: float = cfg.DEFAULT_ENERGY_COST_PER_KWH
    panel_capacity_watts: float = cfg.DEFAULT_PANEL_CAPACITY_WATTS
    dc_to_ac_derate: float = cfg.DEFAULT_DC_TO_AC_DERATE
    incentive_percent: float = cfg.DEFAULT_INCENTIVE_PERCENT
    installation_cost_per_watt: float = cfg.DEFAULT_INSTALLATION_COST_PER_WATT
    installation_lifespan_years: int = cfg.DEFAULT_LIFESPAN_YEARS
    efficiency_decay_factor: float = cfg.DEFAULT_EFFICIENCY_DECAY
    cost_increase_factor: float = cfg.DEFAULT_COST_INCREASE
    discount_rate: float = cfg.DEFAULT_DISCOUNT_RATE

    def __post_init__(self) -> None:
        positive = {
            "monthly_bill": self.monthly_bill,
            "energy_cost_per_kwh": self.energy_cost_per_kwh,
            "panel_capacity_watts": self.panel_capacity_watts,
            "dc_to_ac_derate": self.dc_to_ac_derate,
            "installation_cost_per_watt": self.installation_cost_per_watt,
            "cost_increase_factor": self.cost_increase_factor,
            "discount_rate": self.discount_rate,
        }
        for name, value in positive.items():
            if not value > 0:
                raise ValueError(f"{name} must be positive, got {value!r}")
        if not 0 <= self.incentive_percent < 1:
            raise ValueError(f"incentive_percent must be in [0, 1), got {self.incentive_percent!r}")
        if not 0 < self.efficiency_decay_factor <= 1:
            raise ValueError(f"efficiency_decay_factor must be in (0, 1], got {self.efficiency_decay_factor!r}")
        if int(self.installation_lifespan_years) != self.installation_lifespan_years or self.installation_lifespan_years < 1:
            raise ValueError(
                f"installation_lifespan_years must be a positive integer, got {self.installation_lifespan_years!r}"
            )

    @property
    def yearly_consumption_kwh(self) -> float:
        return (self.monthly_bill / self.energy_cost_per_kwh) * 12

    def with_changes(self, **changes) -> "FinancialParameters":
        return replace(self, **changes)


@dataclass(frozen=True)
class Projection:
    installation_size_kw: float
    installation_cost_total: float
    incentive_amount: float
    net_installation_cost: float
    yearly_consumption_kwh: float
    initial_yearly_production_ac_kwh: float
    yearly_production_series: Tuple[float, ...]
    yearly_bill_estimate_series: Tuple[float, ...]
    yearly_cost_without_solar_series: Tuple[float, ...]
    cumulative_cost_with_solar: Tuple[float, ...]
    cumulative_cost_without_solar: Tuple[float, ...]
    total_cost_with_solar: float
    total_cost_without_solar: float
    savings: float
    break_even_year_index: int

    @property
    def energy_covered(self) -> float:
        """Share of the yearly consumption covered by year-0 production."""
        if self.yearly_consumption_kwh <= 0:
            return 0.0
        return self.initial_yearly_production_ac_kwh / self.yearly_consumption_kwh

    @property
    def break_even_reached(self) -> bool:
        return self.break_even_year_index != BREAK_EVEN_NOT_REACHED


def project(
    config: SolarPanelConfig,
    params: FinancialParameters,
    reference_panel_capacity_watts: Optional[float] = None,
) -> Projection:
    """Compute the full projection for one configuration.

    Args:
        config: the selected panel configuration.
        params: validated financial inputs.
        reference_panel_capacity_watts: panel wattage the API yields were
            computed for; the capacity ratio is 1 when omitted.
    """

    if reference_panel_capacity_watts is None or reference_panel_capacity_watts <= 0:
        capacity_ratio = 1.0
    else:
        capacity_ratio = params.panel_capacity_watts / float(reference_panel_capacity_watts)

    lifespan = int(params.installation_lifespan_years)
    years = np.arange(lifespan, dtype=np.float64)

    installation_size_kw = config.panels_count * params.panel_capacity_watts / 1000
    installation_cost_total = params.installation_cost_per_watt * installation_size_kw * 1000
    incentive_amount = installation_cost_total * params.incentive_percent

    initial_production = config.yearly_energy_dc_kwh * capacity_ratio * params.dc_to_ac_derate
    production = initial_production * np.power(params.efficiency_decay_factor, years)

    consumption = params.yearly_consumption_kwh
    growth = np.power(params.cost_increase_factor, years) / np.power(params.discount_rate, years)

    bill_with_solar = np.maximum(0.0, (consumption - production) * params.energy_cost_per_kwh * growth)
    cost_without_solar = params.monthly_bill * 12 * growth

    total_cost_with_solar = installation_cost_total + float(bill_with_solar.sum()) - incentive_amount
    total_cost_without_solar = float(cost_without_solar.sum())
    savings = total_cost_without_solar - total_cost_with_solar

    net_installation_cost = installation_cost_total - incentive_amount
    cumulative_with = np.cumsum(bill_with_solar)
    cumulative_with += net_installation_cost
    cumulative_without = np.cumsum(cost_without_solar)

    return Projection(
        installation_size_kw=float(installation_size_kw),
        installation_cost_total=float(installation_cost_total),
        incentive_amount=float(incentive_amount),
        net_installation_cost=float(net_installation_cost),
        yearly_consumption_kwh=float(consumption),
        initial_yearly_production_ac_kwh=float(initial_production),
        yearly_production_series=tuple(float(v) for v in production),
        yearly_bill_estimate_series=tuple(float(v) for v in bill_with_solar),
        yearly_cost_without_solar_series=tuple(float(v) for v in cost_without_solar),
        cumulative_cost_with_solar=tuple(float(v) for v in cumulative_with),
        cumulative_cost_without_solar=tuple(float(v) for v in cumulative_without),
        total_cost_with_solar=float(total_cost_with_solar),
        total_cost_without_solar=float(total_cost_without_solar),
        savings=float(savings),
        break_even_year_index=break_even_year(cumulative_with, cumulative_without, savings),
    )


def break_even_year(cumulative_with, cumulative_without, savings: float) -> int:
    """First year where cumulative cost with solar <= without; -1 if never."""

    if savings <= 0:
        return BREAK_EVEN_NOT_REACHED
    hits = np.nonzero(np.asarray(cumulative_with) <= np.asarray(cumulative_without))[0]
    if hits.size == 0:
        return BREAK_EVEN_NOT_REACHED
    return int(hits[0])
