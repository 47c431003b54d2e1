"""Cost/savings report export (multi-page PDF).

The report only consumes a Projection; it never recomputes anything, so the
PDF always shows the same figures as the screen.
"""

from __future__ import annotations

import datetime as dt
import io
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Union

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
from matplotlib.backends.backend_pdf import PdfPages  # noqa: E402

from solarmap.api.models import BuildingInsights, show_date  # noqa: E402
from solarmap.finance.projection import FinancialParameters, Projection  # noqa: E402
from solarmap.panels.config import SolarPanelConfig  # noqa: E402

logger = logging.getLogger(__name__)

KG_CO2_PER_TREE_YEAR = 22.0
KG_CO2_PER_CAR_YEAR = 4600.0

PRIMARY = "#2d4d31"
SECONDARY = "#f9c846"
TERTIARY = "#f15a29"


def report_filename(location_name: str, panels_count: int, report_date: dt.date) -> str:
    """Solar_Analysis_<location>_<N>panels_<YYYY-MM-DD>.pdf"""

    safe = re.sub(r"[^a-zA-Z0-9\s\-]", "", location_name or "")
    safe = re.sub(r"\s+", "_", safe)
    safe = re.sub(r"_+", "_", safe)[:50]
    if not safe:
        safe = "Unknown_Location"
    day = report_date.date() if isinstance(report_date, dt.datetime) else report_date
    return f"Solar_Analysis_{safe}_{int(panels_count)}panels_{day.isoformat()}.pdf"


@dataclass(frozen=True)
class ReportData:
    location_name: str
    address: str
    latitude: float
    longitude: float
    insights: BuildingInsights
    config_id: int
    config: SolarPanelConfig
    params: FinancialParameters
    projection: Projection
    report_date: dt.date

    @property
    def co2_offset_kg_per_year(self) -> float:
        factor = self.insights.solar_potential.carbon_offset_factor_kg_per_mwh
        return self.projection.initial_yearly_production_ac_kwh / 1000.0 * factor

    @property
    def trees_equivalent(self) -> int:
        return int(round(self.co2_offset_kg_per_year / KG_CO2_PER_TREE_YEAR))

    @property
    def cars_off_road(self) -> int:
        return int(round(self.co2_offset_kg_per_year / KG_CO2_PER_CAR_YEAR))

    @property
    def filename(self) -> str:
        return report_filename(self.location_name, self.config.panels_count, self.report_date)


def build_report_data(
    insights: BuildingInsights,
    config_id: Optional[int],
    params: FinancialParameters,
    projection: Projection,
    location_name: str = "",
    address: str = "",
    report_date: Optional[dt.date] = None,
) -> ReportData:
    """Check the selection is valid and bundle everything the PDF needs.

    Raises:
        ValueError: no insights, or `config_id` does not index a config.
    """

    if insights is None:
        raise ValueError("building insights data is missing")
    configs = insights.solar_potential.solar_panel_configs
    if config_id is None or not 0 <= int(config_id) < len(configs):
        raise ValueError("invalid solar panel configuration")
    if projection is None:
        raise ValueError("financial projection is missing")

    return ReportData(
        location_name=location_name or insights.name,
        address=address,
        latitude=insights.center.latitude,
        longitude=insights.center.longitude,
        insights=insights,
        config_id=int(config_id),
        config=configs[int(config_id)],
        params=params,
        projection=projection,
        report_date=report_date or dt.date.today(),
    )


def _money(v: float) -> str:
    return f"€{v:,.2f}"


def _text_page(pdf: PdfPages, title: str, rows: List[List[str]]) -> None:
    fig = plt.figure(figsize=(8.27, 11.69))  # A4 portrait, inches
    fig.text(0.08, 0.93, title, fontsize=18, color=PRIMARY, weight="bold")
    y = 0.87
    for label, value in rows:
        fig.text(0.08, y, label, fontsize=11)
        fig.text(0.60, y, value, fontsize=11, weight="bold")
        y -= 0.035
    pdf.savefig(fig)
    plt.close(fig)


def _summary_rows(data: ReportData) -> List[List[str]]:
    p = data.projection
    breakeven = f"year {p.break_even_year_index + 1}" if p.break_even_reached else "not reached"
    return [
        ["Location", data.location_name],
        ["Address", data.address or "-"],
        ["Coordinates", f"{data.latitude:.5f}, {data.longitude:.5f}"],
        ["Imagery date", show_date(data.insights.imagery_date)],
        ["Imagery quality", data.insights.imagery_quality or "-"],
        ["Panels", str(data.config.panels_count)],
        ["Installation size", f"{p.installation_size_kw:,.2f} kW"],
        ["Yearly consumption", f"{p.yearly_consumption_kwh:,.0f} kWh"],
        ["Yearly production (AC)", f"{p.initial_yearly_production_ac_kwh:,.0f} kWh"],
        ["Energy covered", f"{p.energy_covered * 100:.0f}%"],
        ["Savings", _money(p.savings)],
        ["Break-even", breakeven],
    ]


def _financial_rows(data: ReportData) -> List[List[str]]:
    p = data.projection
    prm = data.params
    return [
        ["Cost per watt", _money(prm.installation_cost_per_watt)],
        ["Installation cost", _money(p.installation_cost_total)],
        ["Incentives", f"{prm.incentive_percent * 100:.1f}%"],
        ["Incentive amount", _money(p.incentive_amount)],
        ["Net installation cost", _money(p.net_installation_cost)],
        ["Lifespan", f"{prm.installation_lifespan_years} years"],
        ["Cost with solar", _money(p.total_cost_with_solar)],
        ["Cost without solar", _money(p.total_cost_without_solar)],
        ["Savings", _money(p.savings)],
        ["CO2 offset per year", f"{data.co2_offset_kg_per_year:,.0f} kg"],
        ["Trees equivalent", f"{data.trees_equivalent} trees/year"],
        ["Cars off the road", f"{data.cars_off_road} cars/year"],
    ]


def _chart_page(pdf: PdfPages, data: ReportData) -> None:
    p = data.projection
    years = list(range(1, len(p.cumulative_cost_with_solar) + 1))
    fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(8.27, 11.69))

    ax1.plot(years, p.cumulative_cost_without_solar, color=TERTIARY, label="Without solar")
    ax1.plot(years, p.cumulative_cost_with_solar, color=PRIMARY, label="With solar")
    if p.break_even_reached:
        ax1.axvline(p.break_even_year_index + 1, color=SECONDARY, linestyle="--", label="Break-even")
    ax1.set_title("Cumulative cost")
    ax1.set_xlabel("Year")
    ax1.legend(loc="upper left")

    ax2.bar(years, p.yearly_production_series, color=SECONDARY, label="Production (kWh)")
    ax2.axhline(p.yearly_consumption_kwh, color=TERTIARY, label="Consumption (kWh)")
    ax2.set_title("Yearly energy")
    ax2.set_xlabel("Year")
    ax2.legend(loc="lower left")

    fig.tight_layout()
    pdf.savefig(fig)
    plt.close(fig)


def _segments_page(pdf: PdfPages, data: ReportData) -> None:
    summaries = data.config.roof_segment_summaries
    fig, ax = plt.subplots(figsize=(8.27, 11.69))
    ax.axis("off")
    ax.set_title("Roof segments", color=PRIMARY, loc="left")
    if summaries:
        rows = [
            [
                str(s.segment_index + 1),
                str(s.panels_count),
                f"{s.pitch_degrees:.1f}",
                f"{s.azimuth_degrees:.1f}",
                f"{s.yearly_energy_dc_kwh:,.0f}",
            ]
            for s in summaries
        ]
        ax.table(
            cellText=rows,
            colLabels=["Segment", "Panels", "Pitch (deg)", "Azimuth (deg)", "kWh/year DC"],
            loc="upper center",
        )
    else:
        ax.text(0.0, 0.9, "No roof segment breakdown available.")
    pdf.savefig(fig)
    plt.close(fig)


def _write_pages(data: ReportData, target: Union[str, BinaryIO]) -> None:
    with PdfPages(target) as pdf:
        _text_page(pdf, "Solar analysis", _summary_rows(data))
        _text_page(pdf, "Financial analysis", _financial_rows(data))
        _chart_page(pdf, data)
        _segments_page(pdf, data)
        info = pdf.infodict()
        info["Title"] = f"Solar analysis - {data.location_name}"


def write_report_pdf(data: ReportData, path: str = "exports") -> str:
    """Write the report and return its absolute path.

    `path` is either a target file or an existing directory, in which case
    the file is named with `report_filename`.
    """

    out_path = Path(path)
    if out_path.is_dir() or out_path.suffix.lower() != ".pdf":
        out_path = out_path / data.filename
    out_path.parent.mkdir(parents=True, exist_ok=True)
    _write_pages(data, str(out_path))
    logger.info("report written to %s", out_path)
    return str(out_path.resolve())


def report_pdf_bytes(data: ReportData) -> bytes:
    """Same PDF, in memory (for download buttons)."""
    buf = io.BytesIO()
    _write_pages(data, buf)
    return buf.getvalue()


def report_summary(data: ReportData) -> Dict[str, Any]:
    """Summary rows as a dict, for on-screen tables."""
    return {label: value for label, value in _summary_rows(data)}
