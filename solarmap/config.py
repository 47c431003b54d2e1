"""Constants, defaults and runtime settings.

Defaults for the financial inputs match a typical Italian household
(EUR bill, EUR/kWh).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

SOLAR_API_BASE_URL = "https://solar.googleapis.com/v1"
SOLAR_API_HOST = "solar.googleapis.com"
NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"

# No-data marker used by every Solar API raster.
NODATA_SENTINEL = -9999

BUILDING_QUALITY = "MEDIUM"
# Ask for *at least* LOW; the API still returns the best quality available.
DATA_LAYERS_QUALITY = "LOW"
DEFAULT_RADIUS_METERS = 50.0

MAX_RETRIES = 3
RETRY_BASE_DELAY_S = 1.0
RATE_LIMIT_INTERVAL_S = 0.1
HTTP_TIMEOUT_S = 30.0
# Nominatim usage policy: at most one request per second
GEOCODER_INTERVAL_S = 1.0

# insights, dataLayers and decoded layers kept per session (oldest dropped first)
MEMO_MAX_ENTRIES = 16

ANIMATION_INTERVAL_S = 1.0

DEFAULT_MONTHLY_BILL = 120.0
DEFAULT_ENERGY_COST_PER_KWH = 0.3
DEFAULT_PANEL_CAPACITY_WATTS = 400.0
DEFAULT_DC_TO_AC_DERATE = 0.85
DEFAULT_INCENTIVE_PERCENT = 0.5
DEFAULT_INSTALLATION_COST_PER_WATT = 2.5
DEFAULT_LIFESPAN_YEARS = 20
DEFAULT_EFFICIENCY_DECAY = 0.995
DEFAULT_COST_INCREASE = 1.025
DEFAULT_DISCOUNT_RATE = 1.03


@dataclass
class Settings:
    api_key: str = ""
    radius_meters: float = DEFAULT_RADIUS_METERS
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            api_key=os.getenv("SOLAR_API_KEY", ""),
            radius_meters=float(os.getenv("SOLARMAP_RADIUS_METERS", DEFAULT_RADIUS_METERS)),
            log_level=os.getenv("SOLARMAP_LOG_LEVEL", "INFO").upper(),
        )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
