from solarmap import config as cfg
from solarmap.errors import SolarApiError


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("SOLAR_API_KEY", "abc")
    monkeypatch.setenv("SOLARMAP_LOG_LEVEL", "debug")
    monkeypatch.setenv("SOLARMAP_RADIUS_METERS", "75")
    s = cfg.Settings.from_env()
    assert s.api_key == "abc"
    assert s.log_level == "DEBUG"
    assert s.radius_meters == 75.0


def test_settings_defaults(monkeypatch):
    for name in ("SOLAR_API_KEY", "SOLARMAP_LOG_LEVEL", "SOLARMAP_RADIUS_METERS"):
        monkeypatch.delenv(name, raising=False)
    s = cfg.Settings.from_env()
    assert s.api_key == ""
    assert s.log_level == "INFO"
    assert s.radius_meters == cfg.DEFAULT_RADIUS_METERS


def test_error_envelope_parsing():
    err = SolarApiError.from_response_body(
        429, {"error": {"code": 429, "message": "Quota exceeded", "status": "RESOURCE_EXHAUSTED"}}
    )
    assert err.retryable
    assert err.status == "RESOURCE_EXHAUSTED"
    plain = SolarApiError.from_response_body(502, "<html>")
    assert (plain.code, plain.status) == (502, "")
