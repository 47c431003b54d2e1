"""solarmap: rooftop solar potential explorer.

Steps:
1) Search an address (or type coordinates) and load the building
2) Pick a panel configuration (auto-selected from your bill)
3) Tune the financial inputs
4) Explore the data layers on the map
5) Download the PDF report / GeoJSON

Run with `streamlit run app/app.py` and SOLAR_API_KEY set.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import folium
import numpy as np
import streamlit as st
from streamlit_folium import st_folium

# Make imports work even if Streamlit is launched from a different CWD.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from solarmap import config as cfg  # noqa: E402
from solarmap.api.client import SolarApiClient  # noqa: E402
from solarmap.api.geocode import GeocodeResult, search  # noqa: E402
from solarmap.api.models import LatLng, show_date  # noqa: E402
from solarmap.errors import SolarApiError, SolarMapError  # noqa: E402
from solarmap.export.geojson import roof_segments_geojson  # noqa: E402
from solarmap.export.report import build_report_data, report_pdf_bytes, report_summary  # noqa: E402
from solarmap.layers.layer import HOURS, MONTHS, LayerKind, layer_summary  # noqa: E402
from solarmap.layers.palettes import PALETTE_SIZE, color_table  # noqa: E402
from solarmap.state.session import SolarSession  # noqa: E402

MONTH_NAMES = ["Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
LAYER_LABELS = {
    LayerKind.MONTHLY_FLUX: "Monthly sunshine",
    LayerKind.ANNUAL_FLUX: "Annual sunshine",
    LayerKind.HOURLY_SHADE: "Hourly shade",
    LayerKind.MASK: "Roof mask",
    LayerKind.DSM: "Digital surface model",
    LayerKind.RGB: "Aerial image",
}


def _session(settings: cfg.Settings) -> SolarSession:
    if "solar_session" not in st.session_state:
        client = SolarApiClient(settings.api_key)
        st.session_state.solar_session = SolarSession(client, radius_meters=settings.radius_meters)
    return st.session_state.solar_session


@st.cache_data(ttl=3600, show_spinner=False)
def _search(query: str) -> list[GeocodeResult]:
    """Cached across reruns, so Nominatim sees each query once an hour."""
    return search(query)


def _show_error(e: Exception) -> None:
    if isinstance(e, SolarApiError):
        st.error(f"{e.code} {e.status}: {e.message}")
    else:
        st.error(str(e))


def _legend(palette) -> None:
    """Gradient strip + min/max labels."""
    table = color_table(palette.colors, PALETTE_SIZE)
    strip = np.repeat(table[np.newaxis, :, :], 12, axis=0)
    st.image(strip, use_container_width=True)
    c1, c2 = st.columns(2)
    c1.caption(palette.min_label)
    c2.markdown(f"<div style='text-align:right'><small>{palette.max_label}</small></div>", unsafe_allow_html=True)


def _location_section(session: SolarSession) -> None:
    st.header("1) Location")
    c1, c2 = st.columns([3, 2])
    with c1:
        q = st.text_input("Search address (min 3 chars)", "")
        try:
            suggestions = _search(q.strip()) if q else []
        except SolarApiError as e:
            suggestions = []
            _show_error(e)
        for i, s in enumerate(suggestions):
            if st.button(s.formatted_address, key=f"geo_{i}"):
                session.set_location(s.location, s.formatted_address)
    with c2:
        lat = st.number_input("Latitude", value=41.902800, format="%.6f")
        lng = st.number_input("Longitude", value=12.496400, format="%.6f")
        if st.button("Use coordinates"):
            session.set_location(LatLng(lat, lng), f"{lat:.5f}, {lng:.5f}")

    s = session.store
    if s["location"] is None:
        st.info("Pick a location to start.")
        return

    st.caption(f"Selected: {s['address'] or s['location'].key()}")
    retry = s["insights_error"] is not None and st.button("Retry building insights")
    if s["building_insights"] is None or retry:
        with st.spinner("Loading building insights..."):
            session.load_building_insights(retry=retry)
    if s["insights_error"] is not None:
        _show_error(s["insights_error"])


def _building_section(session: SolarSession) -> None:
    s = session.store
    insights = s["building_insights"]
    if insights is None:
        return
    potential = insights.solar_potential

    st.header("2) Building insights")
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Max panels", potential.max_array_panels_count)
    c2.metric("Panel capacity", f"{potential.panel_capacity_watts:.0f} W")
    c3.metric("Sunshine", f"{potential.max_sunshine_hours_per_year:,.0f} h/yr")
    c4.metric("Roof area", f"{potential.whole_roof_area_meters2:,.0f} m²")
    st.caption(f"Imagery: {insights.imagery_quality}, {show_date(insights.imagery_date)}")

    configs = s["solar_panel_configs"]
    config_id = s["config_id"] or 0
    if len(configs) > 1:
        picked = st.slider(
            "Panel configuration",
            min_value=0,
            max_value=len(configs) - 1,
            value=config_id,
            format="#%d",
        )
        if picked != config_id:
            session.choose_config(picked)
    if s["manual_config_override"]:
        if st.button("Reset to recommended configuration"):
            session.clear_override()
    selection = session.selection()
    st.write(
        f"**{selection.panel_count()} panels**, "
        f"{selection.yearly_energy_dc_kwh():,.0f} kWh/year DC"
    )


def _financial_section(session: SolarSession) -> None:
    s = session.store
    if s["building_insights"] is None:
        return

    st.header("3) Financial inputs")
    c1, c2, c3 = st.columns(3)
    with c1:
        monthly_bill = st.number_input("Monthly bill (€)", min_value=0.0, value=float(s["monthly_bill"]), step=5.0)
        energy_cost = st.number_input(
            "Energy cost (€/kWh)", min_value=0.001, value=float(s["energy_cost_per_kwh"]), step=0.01, format="%.3f"
        )
        panel_w = st.number_input(
            "Panel capacity (W)", min_value=1.0, value=float(s["panel_capacity_watts"]), step=10.0
        )
    with c2:
        incentive = st.slider("Incentives (%)", 0, 100, int(round(s["incentive_percent"] * 100)))
        cost_per_watt = st.number_input(
            "Installation cost (€/W)", min_value=0.0, value=float(s["installation_cost_per_watt"]), step=0.1
        )
        derate = st.slider("DC to AC derate (%)", 50, 100, int(round(s["dc_to_ac_derate"] * 100)))
    with c3:
        lifespan = st.number_input(
            "Lifespan (years)", min_value=1, max_value=50, value=int(s["installation_lifespan_years"]), step=1
        )
        cost_increase = st.number_input(
            "Yearly cost increase", min_value=0.5, value=float(s["cost_increase_factor"]), step=0.005, format="%.3f"
        )
        discount = st.number_input(
            "Discount rate", min_value=0.5, value=float(s["discount_rate"]), step=0.005, format="%.3f"
        )

    try:
        session.set_financials(
            monthly_bill=float(monthly_bill),
            energy_cost_per_kwh=float(energy_cost),
            panel_capacity_watts=float(panel_w),
            incentive_percent=incentive / 100.0,
            installation_cost_per_watt=float(cost_per_watt),
            dc_to_ac_derate=derate / 100.0,
            installation_lifespan_years=int(lifespan),
            cost_increase_factor=float(cost_increase),
            discount_rate=float(discount),
        )
    except ValueError as e:
        st.error(str(e))

    projection = s["projection"]
    if projection is None:
        return
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Installation size", f"{projection.installation_size_kw:,.2f} kW")
    c2.metric("Energy covered", f"{projection.energy_covered * 100:.0f}%")
    c3.metric("Savings", f"€{projection.savings:,.0f}")
    c4.metric(
        "Break-even",
        f"{projection.break_even_year_index + 1} years" if projection.break_even_reached else "--",
    )
    st.line_chart(
        {
            "With solar": list(projection.cumulative_cost_with_solar),
            "Without solar": list(projection.cumulative_cost_without_solar),
        }
    )


def _layers_section(session: SolarSession) -> None:
    s = session.store
    location = s["location"]
    if s["building_insights"] is None:
        return

    st.header("4) Data layers")
    kinds = list(LAYER_LABELS)
    c1, c2 = st.columns([2, 1])
    with c1:
        kind = st.selectbox(
            "Layer",
            options=kinds,
            index=kinds.index(s["layer_kind"]),
            format_func=lambda k: LAYER_LABELS[k],
        )
    with c2:
        roof_only = st.checkbox("Roof only", value=s["roof_only"])
        retry = s["layer_error"] is not None and st.button("Retry layer")

    layer = s["layer"]
    if layer is None or layer.kind is not kind or retry:
        with st.spinner(f"Loading {LAYER_LABELS[kind]}..."):
            session.load_layer(kind, retry=retry)
    session.set_overlay(roof_only=roof_only)
    if s["layer_error"] is not None:
        _show_error(s["layer_error"])

    if kind in (LayerKind.MONTHLY_FLUX, LayerKind.HOURLY_SHADE) and st.button("Next frame"):
        session.timer.tick()

    if kind is LayerKind.MONTHLY_FLUX:
        month = st.select_slider("Month", options=list(range(MONTHS)), value=s["month"], format_func=lambda m: MONTH_NAMES[m])
        session.set_overlay(month=month)
    elif kind is LayerKind.HOURLY_SHADE:
        c1, c2, c3 = st.columns(3)
        month = c1.select_slider("Month", options=list(range(MONTHS)), value=s["month"], format_func=lambda m: MONTH_NAMES[m])
        day = c2.slider("Day", 1, 31, s["day"])
        hour = c3.slider("Hour", 0, HOURS - 1, s["hour"])
        session.set_overlay(month=month, day=day, hour=hour)

    images = s["layer_images"]
    m = folium.Map(location=[location.latitude, location.longitude], zoom_start=19, max_zoom=22)
    if images is not None:
        folium.raster_layers.ImageOverlay(
            image=np.asarray(images.current),
            bounds=images.bounds.as_folium(),
            opacity=1.0,
            name=LAYER_LABELS[kind],
        ).add_to(m)
    folium.Marker([location.latitude, location.longitude], tooltip=s["address"] or "Selected location").add_to(m)
    folium.LayerControl(collapsed=True).add_to(m)
    st_folium(m, height=520, width=900, returned_objects=[])

    if images is not None and images.palette is not None:
        _legend(images.palette)
    if s["layer"] is not None:
        st.table([layer_summary(s["layer"])])


def _export_section(session: SolarSession) -> None:
    s = session.store
    insights = s["building_insights"]
    if insights is None or s["projection"] is None:
        return

    st.header("5) Export")
    try:
        data = build_report_data(
            insights,
            s["config_id"],
            session.financial_parameters(),
            s["projection"],
            location_name=s["address"],
            address=s["address"],
        )
    except ValueError as e:
        st.error(str(e))
        return

    st.table([report_summary(data)])
    c1, c2 = st.columns(2)
    with c1:
        st.download_button(
            "Download PDF report",
            data=report_pdf_bytes(data),
            file_name=data.filename,
            mime="application/pdf",
        )
    with c2:
        layer = s["layer"]
        fc = roof_segments_geojson(insights, layer.bounds if layer is not None else None)
        st.download_button(
            "Download GeoJSON",
            data=json.dumps(fc),
            file_name=data.filename.replace(".pdf", ".geojson"),
            mime="application/geo+json",
        )


def main() -> None:
    settings = cfg.Settings.from_env()
    cfg.configure_logging(settings.log_level)

    st.set_page_config(page_title="solarmap", layout="wide")
    st.title("solarmap: rooftop solar potential")
    if not settings.api_key:
        st.error("Set SOLAR_API_KEY to query the Solar API.")
        return

    session = _session(settings)
    try:
        _location_section(session)
        _building_section(session)
        _financial_section(session)
        _layers_section(session)
        _export_section(session)
    except SolarMapError as e:
        _show_error(e)


if __name__ == "__main__":
    main()
