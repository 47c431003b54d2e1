import pytest

from solarmap.errors import NoConfigurationsError
from solarmap.panels.config import SolarPanelConfig
from solarmap.panels.selector import PanelSelection, adjusted_yield, select_config


def configs(*yields):
    return [SolarPanelConfig(panels_count=10 * (i + 1), yearly_energy_dc_kwh=y) for i, y in enumerate(yields)]


def test_smallest_config_meeting_target():
    assert select_config(configs(1000, 2000, 4000), 2500, 1.0, 1.0) == 2
    assert select_config(configs(1000, 2000, 4000), 2000, 1.0, 1.0) == 1
    assert select_config(configs(1000, 2000, 4000), 1, 1.0, 1.0) == 0


def test_zero_target_is_first_config():
    assert select_config(configs(1000, 2000, 4000), 0) == 0
    assert select_config(configs(5000), 0, 0.5, 0.5) == 0


def test_undersized_returns_last():
    assert select_config(configs(1000, 2000, 4000), 10_000) == 2


def test_capacity_ratio_and_derate_scale_yield():
    cs = configs(1000, 2000, 4000)
    # 2000 * 1.25 * 0.8 = 2000
    assert select_config(cs, 2000, 1.25, 0.8) == 1
    assert select_config(cs, 2000, 1.0, 0.85) == 2
    assert adjusted_yield(cs[1], 1.25, 0.8) == pytest.approx(2000)


def test_empty_configs_raise():
    with pytest.raises(NoConfigurationsError):
        select_config([], 1000)


def test_from_dict_reads_camel_case():
    c = SolarPanelConfig.from_dict(
        {
            "panelsCount": 12,
            "yearlyEnergyDcKwh": 5000.5,
            "roofSegmentSummaries": [{"segmentIndex": 1, "panelsCount": 12, "yearlyEnergyDcKwh": 5000.5}],
        }
    )
    assert c.panels_count == 12
    assert c.yearly_energy_dc_kwh == 5000.5
    assert c.roof_segment_summaries[0].segment_index == 1


def test_selection_bounds_checked():
    cs = configs(1000, 2000)
    assert PanelSelection(cs, None).current_config() is None
    assert PanelSelection(cs, 2).current_config() is None
    assert PanelSelection(cs, -1).panel_count() == 0
    sel = PanelSelection(cs, 1, panel_capacity_watts=500, default_panel_capacity_watts=400)
    assert sel.panel_count() == 20
    assert sel.capacity_ratio == 1.25
    assert sel.yearly_energy_dc_kwh() == pytest.approx(2500)
