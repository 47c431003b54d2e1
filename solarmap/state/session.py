"""One user session: location -> insights -> selection -> projection -> overlay.

All state lives in a Store. Derived values are recomputed by subscribers:

    configs / target / capacity / derate / override -> config_id   (selector)
    config_id / financial inputs                    -> projection
    layer / roof_only / month / day / hour          -> layer_images
    tick                                            -> month or hour frame

Network results are committed only if their request key is still the active
one for that channel, so a slow answer for an old location never overwrites
a newer one. Changing location resets every channel. Error-free results are
memoised per key in a bounded LRU; `retry=True` skips the memo.
"""

from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from typing import Any, Dict, Hashable, Optional, Tuple

from solarmap import config as cfg
from solarmap.api.models import BuildingInsights, DataLayers, LatLng
from solarmap.errors import NoConfigurationsError, SolarMapError
from solarmap.finance.projection import FinancialParameters, project
from solarmap.layers.layer import HOURS, MONTHS, Layer, LayerImages, LayerKind, build_layer, render_layer
from solarmap.panels.selector import PanelSelection, select_config

from .animation import AnimationTimer
from .store import Store

logger = logging.getLogger(__name__)

FINANCIAL_FIELDS = (
    "monthly_bill",
    "energy_cost_per_kwh",
    "panel_capacity_watts",
    "dc_to_ac_derate",
    "incentive_percent",
    "installation_cost_per_watt",
    "installation_lifespan_years",
    "efficiency_decay_factor",
    "cost_increase_factor",
    "discount_rate",
)


def initial_state(params: Optional[FinancialParameters] = None) -> Dict[str, Any]:
    params = params or FinancialParameters()
    state: Dict[str, Any] = {
        "location": None,
        "address": "",
        "building_insights": None,
        "insights_error": None,
        "solar_panel_configs": (),
        "default_panel_capacity_watts": cfg.DEFAULT_PANEL_CAPACITY_WATTS,
        "config_id": None,
        "manual_config_override": False,
        "projection": None,
        "data_layers": None,
        "layer_kind": LayerKind.MONTHLY_FLUX,
        "layer": None,
        "layer_error": None,
        "layer_images": None,
        "roof_only": False,
        "month": 0,
        "day": 14,
        "hour": 0,
        "tick": 0,
        "play_animation": True,
    }
    for name in FINANCIAL_FIELDS:
        state[name] = getattr(params, name)
    return state


class RequestTracker:
    """Active request key per channel ("insights", "layer", ...)."""

    def __init__(self) -> None:
        self._active: Dict[str, Hashable] = {}
        self._lock = threading.Lock()

    def begin(self, channel: str, key: Hashable) -> Hashable:
        with self._lock:
            self._active[channel] = key
        return key

    def is_current(self, channel: str, key: Hashable) -> bool:
        with self._lock:
            return self._active.get(channel) == key

    def reset(self, channel: str) -> None:
        with self._lock:
            self._active.pop(channel, None)


class Memo:
    """Least-recently-used cache of error-free network results."""

    def __init__(self, max_entries: int = cfg.MEMO_MAX_ENTRIES) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = int(max_entries)
        self._entries: "OrderedDict[Hashable, Any]" = OrderedDict()
        self._lock = threading.Lock()

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: Hashable, default: Any = None) -> Any:
        with self._lock:
            if key not in self._entries:
                return default
            self._entries.move_to_end(key)
            return self._entries[key]

    def put(self, key: Hashable, value: Any) -> None:
        with self._lock:
            self._entries[key] = value
            self._entries.move_to_end(key)
            while len(self._entries) > self.max_entries:
                dropped, _ = self._entries.popitem(last=False)
                logger.debug("memo full, dropping %s", dropped)


class SolarSession:
    """Orchestrates API calls and derived state for one location at a time."""

    def __init__(
        self,
        client,
        params: Optional[FinancialParameters] = None,
        radius_meters: float = cfg.DEFAULT_RADIUS_METERS,
        animation_interval: float = cfg.ANIMATION_INTERVAL_S,
        memo_size: int = cfg.MEMO_MAX_ENTRIES,
    ) -> None:
        self.client = client
        self.radius_meters = float(radius_meters)
        self.store = Store(**initial_state(params))
        self.requests = RequestTracker()
        self._memo = Memo(memo_size)
        self.timer = AnimationTimer(self.advance_animation, interval=animation_interval)

        self.store.subscribe(
            (
                "solar_panel_configs",
                "monthly_bill",
                "energy_cost_per_kwh",
                "panel_capacity_watts",
                "default_panel_capacity_watts",
                "dc_to_ac_derate",
                "manual_config_override",
            ),
            self._reselect_config,
        )
        self.store.subscribe(
            ("config_id", "solar_panel_configs", "default_panel_capacity_watts") + FINANCIAL_FIELDS,
            self._reproject,
        )
        self.store.subscribe(("layer", "roof_only", "day", "month", "hour"), self._rerender)

    # ---- derived state ----

    def financial_parameters(self) -> FinancialParameters:
        s = self.store
        return FinancialParameters(**{name: s[name] for name in FINANCIAL_FIELDS})

    def selection(self) -> PanelSelection:
        s = self.store
        return PanelSelection(
            configs=s["solar_panel_configs"],
            config_id=s["config_id"],
            panel_capacity_watts=s["panel_capacity_watts"],
            default_panel_capacity_watts=s["default_panel_capacity_watts"],
        )

    def _reselect_config(self, changed) -> None:
        s = self.store
        configs = s["solar_panel_configs"]
        if not configs:
            s.update(config_id=None)
            return
        current = s["config_id"]
        if s["manual_config_override"] and current is not None and 0 <= current < len(configs):
            return
        params = self.financial_parameters()
        config_id = select_config(
            configs,
            params.yearly_consumption_kwh,
            self.selection().capacity_ratio,
            params.dc_to_ac_derate,
        )
        s.update(config_id=config_id)

    def _reproject(self, changed) -> None:
        config = self.selection().current_config()
        if config is None:
            self.store.update(projection=None)
            return
        projection = project(config, self.financial_parameters(), self.store["default_panel_capacity_watts"])
        self.store.update(projection=projection)

    def _rerender(self, changed) -> None:
        s = self.store
        layer: Optional[Layer] = s["layer"]
        if layer is None:
            s.update(layer_images=None)
            return
        images: Optional[LayerImages] = s["layer_images"]
        kind = layer.kind
        needs_render = images is None or images.kind is not kind or bool(changed & {"layer", "roof_only"})
        if kind is LayerKind.HOURLY_SHADE and changed & {"month", "day"}:
            needs_render = True
        if not needs_render:
            s.update(layer_images=images.at(self._frame_index(kind)))
            return
        rendered = render_layer(layer, roof_only=s["roof_only"], month=s["month"], day=s["day"])
        s.update(layer_images=rendered.at(self._frame_index(kind)))

    def render_overlay(self) -> Optional[LayerImages]:
        """Render the current layer from scratch with the current overlay settings."""
        s = self.store
        layer: Optional[Layer] = s["layer"]
        if layer is None:
            return None
        rendered = render_layer(layer, roof_only=s["roof_only"], month=s["month"], day=s["day"])
        s.update(layer_images=rendered.at(self._frame_index(layer.kind)))
        return s["layer_images"]

    def _frame_index(self, kind: LayerKind) -> int:
        if kind is LayerKind.MONTHLY_FLUX:
            return self.store["month"]
        if kind is LayerKind.HOURLY_SHADE:
            return self.store["hour"]
        return 0

    # ---- user actions ----

    def set_location(self, location: LatLng, address: str = "") -> None:
        """Switch location; everything derived from the old one is dropped."""
        self.requests.reset("insights")
        self.requests.reset("layer")
        self.store.update(
            location=location,
            address=address,
            building_insights=None,
            insights_error=None,
            solar_panel_configs=(),
            manual_config_override=False,
            data_layers=None,
            layer=None,
            layer_error=None,
        )

    def choose_config(self, config_id: int) -> None:
        """Manual pick; the selector leaves it alone until clear_override()."""
        configs = self.store["solar_panel_configs"]
        if not 0 <= int(config_id) < len(configs):
            raise ValueError(f"config_id {config_id} out of range for {len(configs)} configuration(s)")
        self.store.update(config_id=int(config_id), manual_config_override=True)

    def clear_override(self) -> None:
        self.store.update(manual_config_override=False)

    def set_financials(self, **changes: Any) -> None:
        """Validate then apply financial input changes in one update."""
        unknown = set(changes) - set(FINANCIAL_FIELDS)
        if unknown:
            raise ValueError(f"unknown financial field(s): {sorted(unknown)}")
        self.financial_parameters().with_changes(**changes)
        self.store.update(**changes)

    def set_overlay(self, **changes: Any) -> None:
        allowed = {"roof_only", "month", "day", "hour", "play_animation"}
        unknown = set(changes) - allowed
        if unknown:
            raise ValueError(f"unknown overlay field(s): {sorted(unknown)}")
        if "month" in changes and not 0 <= int(changes["month"]) < MONTHS:
            raise ValueError(f"month must be in [0, {MONTHS - 1}]")
        if "day" in changes and not 1 <= int(changes["day"]) <= 31:
            raise ValueError("day must be in [1, 31]")
        if "hour" in changes and not 0 <= int(changes["hour"]) < HOURS:
            raise ValueError(f"hour must be in [0, {HOURS - 1}]")
        self.store.update(**changes)

    # ---- network ----

    def _location_key(self) -> Tuple[float, float]:
        location: Optional[LatLng] = self.store["location"]
        if location is None:
            raise ValueError("no location selected")
        return location.key()

    def load_building_insights(self, retry: bool = False) -> Optional[BuildingInsights]:
        """Fetch insights for the current location and commit them if still relevant."""
        location: Optional[LatLng] = self.store["location"]
        key = ("insights", self._location_key())
        self.requests.begin("insights", key)

        try:
            if not retry and key in self._memo:
                insights = self._memo.get(key)
            else:
                insights = self.client.find_closest_building(location)
                if not insights.solar_potential.solar_panel_configs:
                    raise NoConfigurationsError("building insights contain no solar panel configurations")
                self._memo.put(key, insights)
        except SolarMapError as e:
            if self.requests.is_current("insights", key):
                logger.error("building insights failed for %s: %s", key[1], e)
                self.store.update(insights_error=e)
            return None

        if not self.requests.is_current("insights", key):
            logger.info("discarding stale building insights for %s", key[1])
            return None

        potential = insights.solar_potential
        self.store.update(
            building_insights=insights,
            insights_error=None,
            default_panel_capacity_watts=potential.panel_capacity_watts or cfg.DEFAULT_PANEL_CAPACITY_WATTS,
            manual_config_override=False,
            solar_panel_configs=tuple(potential.solar_panel_configs),
        )
        return insights

    def load_data_layers(self, retry: bool = False) -> DataLayers:
        location: Optional[LatLng] = self.store["location"]
        key = ("dataLayers", self._location_key(), self.radius_meters)
        if not retry and key in self._memo:
            return self._memo.get(key)
        data_layers = self.client.get_data_layer_urls(location, self.radius_meters)
        self._memo.put(key, data_layers)
        return data_layers

    def load_layer(self, kind: LayerKind, retry: bool = False) -> Optional[Layer]:
        """Fetch, decode and build one layer; failures only touch layer state."""
        kind = LayerKind(kind)
        key = ("layer", self._location_key(), kind)
        self.requests.begin("layer", key)
        self.store.update(layer_kind=kind)

        try:
            if not retry and key in self._memo:
                layer = self._memo.get(key)
            else:
                data_layers = self.load_data_layers(retry=retry)
                if self.requests.is_current("layer", key):
                    self.store.update(data_layers=data_layers)
                layer = build_layer(kind, data_layers, self.client)
                self._memo.put(key, layer)
        except SolarMapError as e:
            if self.requests.is_current("layer", key):
                logger.error("%s layer failed for %s: %s", kind.value, key[1], e)
                self.store.update(layer=None, layer_error=e)
            return None

        if not self.requests.is_current("layer", key):
            logger.info("discarding stale %s layer for %s", kind.value, key[1])
            return None

        self.store.update(layer=layer, layer_error=None)
        return layer

    # ---- animation ----

    def advance_animation(self) -> None:
        s = self.store
        layer: Optional[Layer] = s["layer"]
        if not s["play_animation"] or layer is None:
            return
        if layer.kind is LayerKind.MONTHLY_FLUX:
            s.update(tick=s["tick"] + 1, month=(s["month"] + 1) % MONTHS)
        elif layer.kind is LayerKind.HOURLY_SHADE:
            s.update(tick=s["tick"] + 1, hour=(s["hour"] + 1) % HOURS)

    def start_animation(self) -> None:
        self.store.update(play_animation=True)
        self.timer.start()

    def stop_animation(self) -> None:
        self.store.update(play_animation=False)
        self.timer.stop()

    def close(self) -> None:
        self.timer.stop()

    def __enter__(self) -> "SolarSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
