"""Data layer construction and rendering.

A Layer wraps the decoded GeoTIFFs of one kind for one location. Rendering
produces every time slice at once (12 months, 24 hours); the caller only
swaps the displayed frame when the animation ticks.

    layer = build_layer(LayerKind.MONTHLY_FLUX, data_layers, client)
    images = render_layer(layer, roof_only=True, month=5, day=14)
    images.current  # June
"""

from __future__ import annotations

import enum
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

import numpy as np
from PIL import Image

from solarmap.api.models import DataLayers
from solarmap.errors import DataUnavailableError, RenderError
from solarmap.geo.georaster import Bounds, GeoRaster

from .palettes import (
    BINARY_PALETTE,
    IRON_PALETTE,
    RAINBOW_PALETTE,
    SUNLIGHT_PALETTE,
    Palette,
    apply_palette,
    valid_mask,
    value_domain,
)

logger = logging.getLogger(__name__)

MONTHS = 12
HOURS = 24
MAX_DOWNLOAD_WORKERS = 12


class LayerKind(str, enum.Enum):
    MASK = "mask"
    DSM = "dsm"
    RGB = "rgb"
    ANNUAL_FLUX = "annualFlux"
    MONTHLY_FLUX = "monthlyFlux"
    HOURLY_SHADE = "hourlyShade"


class RasterSource(Protocol):
    def download_geotiff(self, url: str) -> GeoRaster: ...


@dataclass(frozen=True, eq=False)
class Layer:
    kind: LayerKind
    bounds: Bounds
    rasters: Tuple[GeoRaster, ...]
    mask: Optional[GeoRaster] = None
    palette: Optional[Palette] = None


@dataclass(frozen=True, eq=False)
class LayerImages:
    """All frames of one render plus the index shown to the user.

    Compared by identity: a new render is always a new value, even when its
    pixels match the previous one.
    """

    kind: LayerKind
    frames: Tuple[Image.Image, ...]
    index: int = 0
    palette: Optional[Palette] = None
    bounds: Optional[Bounds] = None

    def __post_init__(self) -> None:
        if not self.frames:
            raise RenderError(f"{self.kind.value}: render produced no frames")

    @property
    def current(self) -> Image.Image:
        return self.frames[self.index % len(self.frames)]

    def at(self, index: int) -> "LayerImages":
        """Same frames, another selected index (no re-render)."""
        return LayerImages(self.kind, self.frames, int(index) % len(self.frames), self.palette, self.bounds)

    def __len__(self) -> int:
        return len(self.frames)


@dataclass
class _Sources:
    primary: List[str] = field(default_factory=list)
    mask: str = ""


def _required_sources(kind: LayerKind, data_layers: DataLayers) -> _Sources:
    if kind is LayerKind.MASK:
        return _Sources([data_layers.mask_url])
    if kind is LayerKind.DSM:
        return _Sources([data_layers.dsm_url], data_layers.mask_url)
    if kind is LayerKind.RGB:
        return _Sources([data_layers.rgb_url])
    if kind is LayerKind.ANNUAL_FLUX:
        return _Sources([data_layers.annual_flux_url], data_layers.mask_url)
    if kind is LayerKind.MONTHLY_FLUX:
        return _Sources([data_layers.monthly_flux_url], data_layers.mask_url)
    if kind is LayerKind.HOURLY_SHADE:
        return _Sources(list(data_layers.hourly_shade_urls), data_layers.mask_url)
    raise RenderError(f"unhandled layer kind: {kind!r}")


def build_layer(kind: LayerKind, data_layers: DataLayers, client: RasterSource) -> Layer:
    """Download and validate every raster a layer kind needs.

    All sources are fetched concurrently and the layer is built only once every
    download has finished.

    Raises:
        DataUnavailableError: a required URL is missing from `data_layers`.
        RenderError: the sources disagree on size or band count.
    """

    kind = LayerKind(kind)
    sources = _required_sources(kind, data_layers)

    if not data_layers.imagery_quality:
        raise DataUnavailableError(f"{kind.value}: no imagery at the requested quality")
    if not sources.primary or not all(sources.primary):
        raise DataUnavailableError(f"{kind.value}: layer not available at this location")
    if kind is LayerKind.HOURLY_SHADE and len(sources.primary) != MONTHS:
        raise DataUnavailableError(
            f"{kind.value}: expected {MONTHS} hourly shade URLs, got {len(sources.primary)}"
        )
    needs_mask = kind in (LayerKind.DSM, LayerKind.ANNUAL_FLUX, LayerKind.MONTHLY_FLUX, LayerKind.HOURLY_SHADE)
    if needs_mask and not sources.mask:
        raise DataUnavailableError(f"{kind.value}: roof mask not available at this location")

    urls = list(sources.primary) + ([sources.mask] if needs_mask else [])
    workers = max(1, min(MAX_DOWNLOAD_WORKERS, len(urls)))
    with ThreadPoolExecutor(max_workers=workers) as pool:
        # map() keeps source order; a failed download re-raises here
        rasters = list(pool.map(client.download_geotiff, urls))

    primary = tuple(rasters[: len(sources.primary)])
    mask = rasters[-1] if needs_mask else (primary[0] if kind is LayerKind.MASK else None)

    _check_layer(kind, primary, mask)
    palette = _palette_for(kind, primary)
    logger.info("built %s layer from %d raster(s)", kind.value, len(rasters))
    return Layer(kind=kind, bounds=primary[0].bounds, rasters=primary, mask=mask, palette=palette)


def _check_layer(kind: LayerKind, primary: Sequence[GeoRaster], mask: Optional[GeoRaster]) -> None:
    expected_bands = {
        LayerKind.MASK: 1,
        LayerKind.DSM: 1,
        LayerKind.RGB: 3,
        LayerKind.ANNUAL_FLUX: 1,
        LayerKind.MONTHLY_FLUX: MONTHS,
        LayerKind.HOURLY_SHADE: HOURS,
    }[kind]

    shape = primary[0].shape
    for i, r in enumerate(primary):
        if r.shape != shape:
            raise RenderError(f"{kind.value}: source {i} is {r.width}x{r.height}, expected {shape[1]}x{shape[0]}")
        if r.band_count < expected_bands:
            raise RenderError(f"{kind.value}: source {i} has {r.band_count} band(s), expected {expected_bands}")
    if mask is not None and mask.shape != shape:
        raise RenderError(
            f"{kind.value}: mask is {mask.width}x{mask.height} but data is {shape[1]}x{shape[0]}"
        )


def _palette_for(kind: LayerKind, primary: Sequence[GeoRaster]) -> Optional[Palette]:
    if kind is LayerKind.MASK:
        return Palette(BINARY_PALETTE, 0, 1, "No roof", "Roof")
    if kind is LayerKind.DSM:
        lo, hi = value_domain(primary[0].bands[0])
        return Palette(RAINBOW_PALETTE, lo, hi, f"{lo:.1f} m", f"{hi:.1f} m")
    if kind is LayerKind.RGB:
        return None
    if kind is LayerKind.ANNUAL_FLUX:
        lo, hi = value_domain(primary[0].bands[0])
        return Palette(IRON_PALETTE, lo, hi, "Shady", "Sunny")
    if kind is LayerKind.MONTHLY_FLUX:
        # one domain for all months so frames are comparable
        lo, hi = value_domain(*primary[0].bands[:MONTHS])
        return Palette(IRON_PALETTE, lo, hi, "Shady", "Sunny")
    if kind is LayerKind.HOURLY_SHADE:
        return Palette(SUNLIGHT_PALETTE, 0, 1, "Shade", "Sun")
    raise RenderError(f"unhandled layer kind: {kind!r}")


def _roof(layer: Layer, roof_only: bool) -> Optional[np.ndarray]:
    if not roof_only or layer.mask is None:
        return None
    m = layer.mask.bands[0]
    return valid_mask(m) & (m > 0)


def _to_image(rgba: np.ndarray) -> Image.Image:
    return Image.fromarray(np.ascontiguousarray(rgba, dtype=np.uint8))


def render_layer(layer: Layer, roof_only: bool = False, month: int = 0, day: int = 1) -> LayerImages:
    """Render every frame of a layer; `month`/`day` only pick what is shown.

    - monthlyFlux: 12 frames, index = month
    - hourlyShade: 24 frames for `month`, bit `day - 1` of each hour band
    - other kinds: a single frame
    """

    kind = layer.kind
    if not 0 <= int(month) < MONTHS:
        raise ValueError(f"month must be in [0, {MONTHS - 1}], got {month}")
    if not 1 <= int(day) <= 31:
        raise ValueError(f"day must be in [1, 31], got {day}")

    roof = _roof(layer, roof_only)
    palette = layer.palette
    frames: List[Image.Image]
    index = 0

    if kind is LayerKind.MASK:
        band = layer.rasters[0].bands[0]
        frames = [_to_image(apply_palette(band, palette.colors, palette.min, palette.max, roof))]

    elif kind is LayerKind.DSM:
        band = layer.rasters[0].bands[0]
        frames = [_to_image(apply_palette(band, palette.colors, palette.min, palette.max, roof))]

    elif kind is LayerKind.RGB:
        r = layer.rasters[0]
        rgb = np.stack([np.clip(r.bands[i], 0, 255).astype(np.uint8) for i in range(3)], axis=-1)
        alpha = np.full(r.shape + (1,), 255, dtype=np.uint8)
        frames = [_to_image(np.concatenate([rgb, alpha], axis=-1))]

    elif kind is LayerKind.ANNUAL_FLUX:
        band = layer.rasters[0].bands[0]
        frames = [_to_image(apply_palette(band, palette.colors, palette.min, palette.max, roof))]

    elif kind is LayerKind.MONTHLY_FLUX:
        bands = layer.rasters[0].bands[:MONTHS]
        frames = [_to_image(apply_palette(b, palette.colors, palette.min, palette.max, roof)) for b in bands]
        index = int(month)

    elif kind is LayerKind.HOURLY_SHADE:
        bands = layer.rasters[int(month)].bands[:HOURS]
        frames = [_to_image(_render_shade(b, int(day), palette, roof)) for b in bands]

    else:
        raise RenderError(f"unhandled layer kind: {kind!r}")

    return LayerImages(kind=kind, frames=tuple(frames), index=index, palette=palette, bounds=layer.bounds)


def shade_bit(band: np.ndarray, day: int) -> np.ndarray:
    """1 where the sun is visible on `day` (1-based) for this hour band, else 0.

    Each pixel packs one bit per day of the month. Bit 31 is never set by real
    data, so a pixel with it set is no-data (see `shade_valid`).
    """

    v = np.asarray(band).astype(np.int64)
    return ((v >> (int(day) - 1)) & 1).astype(np.uint8)


def shade_valid(band: np.ndarray) -> np.ndarray:
    """False for the -9999 sentinel and any pixel with bit 31 set, whatever the dtype."""

    ok = valid_mask(band)
    v = np.where(ok, np.asarray(band), 0).astype(np.int64)
    return ok & (((v >> 31) & 1) == 0)


def _render_shade(band: np.ndarray, day: int, palette: Palette, roof: Optional[np.ndarray]) -> np.ndarray:
    ok = shade_valid(band)
    if roof is not None:
        ok &= roof
    sun = np.where(ok, shade_bit(band, day), 0)
    return apply_palette(sun, palette.colors, palette.min, palette.max, alpha_mask=ok)


def layer_summary(layer: Layer) -> Dict[str, object]:
    """Plain dict for tables/logs."""
    first = layer.rasters[0]
    return {
        "kind": layer.kind.value,
        "sources": len(layer.rasters),
        "size": f"{first.width}x{first.height}",
        "bands": first.band_count,
        "north": layer.bounds.north,
        "south": layer.bounds.south,
        "east": layer.bounds.east,
        "west": layer.bounds.west,
    }
