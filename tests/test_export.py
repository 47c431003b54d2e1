import datetime as dt
import json

import pytest
from shapely.geometry import Point, box, shape

from solarmap.export.geojson import export_geojson, feature_collection, roof_segments_geojson
from solarmap.export.report import (
    build_report_data,
    report_filename,
    report_pdf_bytes,
    report_summary,
    write_report_pdf,
)
from solarmap.finance.projection import FinancialParameters, project
from solarmap.geo.georaster import Bounds

DAY = dt.date(2024, 3, 9)


@pytest.mark.parametrize(
    "name,expected",
    [
        ("Via Roma 1, Milano", "Via_Roma_1_Milano"),
        ("  Piazza   San-Marco!! ", "_Piazza_San-Marco_"),
        ("", "Unknown_Location"),
        ("***", "Unknown_Location"),
    ],
)
def test_report_filename(name, expected):
    assert report_filename(name, 12, DAY) == f"Solar_Analysis_{expected}_12panels_2024-03-09.pdf"


def test_report_filename_truncates_long_names():
    name = report_filename("x" * 80, 3, DAY)
    assert name == "Solar_Analysis_" + "x" * 50 + "_3panels_2024-03-09.pdf"


@pytest.fixture
def report(insights):
    params = FinancialParameters()
    config = insights.solar_potential.solar_panel_configs[1]
    projection = project(config, params, insights.solar_potential.panel_capacity_watts)
    return build_report_data(insights, 1, params, projection, location_name="Via Roma 1", report_date=DAY)


def test_build_report_data_environmental_impact(report):
    # 2000 kWh DC * 0.85 = 1700 kWh AC; factor 400 kg/MWh
    assert report.co2_offset_kg_per_year == pytest.approx(1700 / 1000 * 400)
    assert report.trees_equivalent == round(680 / 22)
    assert report.cars_off_road == 0
    assert report.filename == "Solar_Analysis_Via_Roma_1_20panels_2024-03-09.pdf"
    assert report_summary(report)["Panels"] == "20"


@pytest.mark.parametrize("config_id", [None, -1, 3])
def test_build_report_data_rejects_bad_config(insights, config_id):
    params = FinancialParameters()
    projection = project(insights.solar_potential.solar_panel_configs[0], params)
    with pytest.raises(ValueError):
        build_report_data(insights, config_id, params, projection)


def test_write_report_pdf(report, tmp_path):
    path = write_report_pdf(report, str(tmp_path))
    assert path.endswith(report.filename)
    with open(path, "rb") as f:
        assert f.read(5) == b"%PDF-"

    explicit = write_report_pdf(report, str(tmp_path / "out" / "custom.pdf"))
    assert explicit.endswith("custom.pdf")


def test_report_pdf_bytes(report):
    assert report_pdf_bytes(report)[:5] == b"%PDF-"


def test_roof_segments_geojson(insights):
    overlay = Bounds(north=42.0003, south=42.0, east=15.0004, west=15.0)
    fc = roof_segments_geojson(insights, overlay)
    types = [f["properties"]["type"] for f in fc["features"]]
    assert types == ["building", "roof_segment", "overlay"]

    building = shape(fc["features"][0]["geometry"])
    assert (building.x, building.y) == pytest.approx((insights.center.longitude, insights.center.latitude))
    west, south, east, north = shape(fc["features"][2]["geometry"]).bounds
    assert (west, south, east, north) == pytest.approx((15.0, 42.0, 15.0004, 42.0003))


def test_feature_collection_keeps_lon_lat():
    fc = feature_collection(Point(15.0001, 42.0001), properties={"type": "building"})
    assert fc["features"][0]["geometry"]["coordinates"] == pytest.approx((15.0001, 42.0001))
    assert fc["features"][0]["properties"] == {"type": "building"}


def test_feature_collection_properties_must_match():
    with pytest.raises(ValueError):
        feature_collection([box(0, 0, 1, 1), box(1, 1, 2, 2)], properties=[{}])
    with pytest.raises(ValueError):
        feature_collection(None)


def test_export_geojson_writes_file(insights, tmp_path):
    overlay = Bounds(north=42.0003, south=42.0, east=15.0004, west=15.0)
    out = tmp_path / "exports" / "shapes.geojson"
    assert export_geojson(insights, str(out), overlay) == str(out)
    fc = json.loads(out.read_text(encoding="utf-8"))
    assert fc["type"] == "FeatureCollection"
    assert shape(fc["features"][2]["geometry"]).bounds == pytest.approx((15.0, 42.0, 15.0004, 42.0003))
    assert [f["properties"]["type"] for f in fc["features"]] == ["building", "roof_segment", "overlay"]
