import pytest

from solarmap.finance.projection import (
    BREAK_EVEN_NOT_REACHED,
    FinancialParameters,
    break_even_year,
    project,
)
from solarmap.panels.config import SolarPanelConfig

PARAMS = FinancialParameters(
    monthly_bill=120,
    energy_cost_per_kwh=0.3,
    panel_capacity_watts=400,
    dc_to_ac_derate=0.85,
    incentive_percent=0.5,
    installation_cost_per_watt=2.5,
    installation_lifespan_years=20,
    efficiency_decay_factor=0.995,
    cost_increase_factor=1.025,
    discount_rate=1.03,
)
CONFIG = SolarPanelConfig(panels_count=20, yearly_energy_dc_kwh=12000)


def expected_series(config, p):
    consumption = p.monthly_bill / p.energy_cost_per_kwh * 12
    initial = config.yearly_energy_dc_kwh * p.dc_to_ac_derate
    production, bills, without = [], [], []
    for y in range(p.installation_lifespan_years):
        growth = p.cost_increase_factor ** y / p.discount_rate ** y
        prod = initial * p.efficiency_decay_factor ** y
        production.append(prod)
        bills.append(max(0.0, (consumption - prod) * p.energy_cost_per_kwh * growth))
        without.append(p.monthly_bill * 12 * growth)
    return production, bills, without


def test_worked_example():
    proj = project(CONFIG, PARAMS)

    assert proj.installation_size_kw == pytest.approx(8.0)
    assert proj.installation_cost_total == pytest.approx(20000.0)
    assert proj.incentive_amount == pytest.approx(10000.0)
    assert proj.net_installation_cost == pytest.approx(10000.0)
    assert proj.yearly_consumption_kwh == pytest.approx(4800.0)
    assert proj.initial_yearly_production_ac_kwh == pytest.approx(10200.0)

    production, bills, without = expected_series(CONFIG, PARAMS)
    assert proj.yearly_production_series == pytest.approx(production, rel=1e-12)
    assert proj.yearly_bill_estimate_series == pytest.approx(bills, rel=1e-12)
    assert proj.yearly_cost_without_solar_series == pytest.approx(without, rel=1e-12)

    # production exceeds consumption every year, so the bill is zero
    assert all(b == 0.0 for b in proj.yearly_bill_estimate_series)
    assert proj.total_cost_with_solar == pytest.approx(20000 + 0 - 10000)
    assert proj.total_cost_without_solar == pytest.approx(sum(without), rel=1e-12)
    assert proj.savings == pytest.approx(sum(without) - 10000, rel=1e-12)
    assert proj.energy_covered == pytest.approx(10200 / 4800)

    assert len(proj.cumulative_cost_with_solar) == 20
    assert proj.cumulative_cost_with_solar[-1] == pytest.approx(proj.total_cost_with_solar)
    assert proj.cumulative_cost_without_solar[-1] == pytest.approx(proj.total_cost_without_solar)
    # 7 years of bills sum to ~9934, 8 years to ~11326
    assert proj.break_even_year_index == 7
    assert proj.break_even_reached


def test_partial_coverage_pays_the_gap():
    config = SolarPanelConfig(panels_count=10, yearly_energy_dc_kwh=3000)
    proj = project(config, PARAMS)
    production, bills, _ = expected_series(config, PARAMS)
    assert proj.yearly_bill_estimate_series == pytest.approx(bills, rel=1e-12)
    assert proj.yearly_bill_estimate_series[0] == pytest.approx((4800 - 2550) * 0.3)
    assert proj.total_cost_with_solar == pytest.approx(10000 + sum(bills) - 5000)


def test_capacity_ratio_rescales_production():
    params = PARAMS.with_changes(panel_capacity_watts=500)
    proj = project(CONFIG, params, reference_panel_capacity_watts=400)
    assert proj.initial_yearly_production_ac_kwh == pytest.approx(12000 * 1.25 * 0.85)
    assert proj.installation_size_kw == pytest.approx(10.0)


def test_projection_is_deterministic():
    a = project(CONFIG, PARAMS)
    b = project(CONFIG, PARAMS)
    assert a == b
    assert a.cumulative_cost_with_solar == b.cumulative_cost_with_solar


def test_no_break_even_when_savings_not_positive():
    params = PARAMS.with_changes(installation_cost_per_watt=100.0, incentive_percent=0.0)
    proj = project(CONFIG, params)
    assert proj.savings <= 0
    assert proj.break_even_year_index == BREAK_EVEN_NOT_REACHED
    assert not proj.break_even_reached


def test_break_even_year_helper():
    assert break_even_year([5, 4, 3], [1, 4, 9], 6) == 1
    assert break_even_year([5, 4, 3], [1, 2, 2], 1) == BREAK_EVEN_NOT_REACHED
    assert break_even_year([0, 0], [1, 1], 0) == BREAK_EVEN_NOT_REACHED


@pytest.mark.parametrize(
    "changes",
    [
        {"monthly_bill": -1},
        {"energy_cost_per_kwh": 0},
        {"incentive_percent": 1.0},
        {"efficiency_decay_factor": 1.5},
        {"installation_lifespan_years": 0},
        {"installation_lifespan_years": 2.5},
        {"discount_rate": 0},
    ],
)
def test_invalid_parameters_raise(changes):
    with pytest.raises(ValueError):
        PARAMS.with_changes(**changes)


def test_yearly_consumption():
    assert FinancialParameters().yearly_consumption_kwh == pytest.approx(4800.0)
