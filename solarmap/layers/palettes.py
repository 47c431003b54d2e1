"""Colour palettes and value -> RGBA mapping for data layer overlays."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
from matplotlib.colors import LinearSegmentedColormap, to_rgb

from solarmap.config import NODATA_SENTINEL

BINARY_PALETTE = ("212121", "B3E5FC")
RAINBOW_PALETTE = ("3949AB", "81D4FA", "66BB6A", "FFE082", "E53935")
IRON_PALETTE = ("00000A", "91009C", "E64616", "FEB400", "FFFFF6")
SUNLIGHT_PALETTE = ("212121", "FFCA28")

PALETTE_SIZE = 256


@dataclass(frozen=True)
class Palette:
    """Legend info for a layer: colour stops plus the value domain."""

    colors: Tuple[str, ...]
    min: float
    max: float
    min_label: str = ""
    max_label: str = ""


def color_table(hex_colors: Sequence[str], size: int = PALETTE_SIZE) -> np.ndarray:
    """Interpolate hex colour stops into a (size, 3) uint8 lookup table."""

    if not hex_colors:
        raise ValueError("palette needs at least one colour")
    stops = [to_rgb("#" + str(c).lstrip("#")) for c in hex_colors]
    if len(stops) == 1:
        stops = stops * 2
    cmap = LinearSegmentedColormap.from_list("solarmap", stops, N=int(size))
    rgba = cmap(np.linspace(0.0, 1.0, int(size)))
    return np.round(rgba[:, :3] * 255.0).astype(np.uint8)


def valid_mask(values: np.ndarray, nodata: float = NODATA_SENTINEL) -> np.ndarray:
    """True where a pixel holds a real sample (not the sentinel, finite)."""

    v = np.asarray(values)
    ok = v != nodata
    if np.issubdtype(v.dtype, np.floating):
        ok &= np.isfinite(v)
    return ok


def value_domain(*bands: np.ndarray) -> Tuple[float, float]:
    """Min/max over the valid pixels of all bands; (0, 0) when nothing is valid."""

    lo: Optional[float] = None
    hi: Optional[float] = None
    for band in bands:
        b = np.asarray(band)
        vals = b[valid_mask(b)]
        if vals.size == 0:
            continue
        bmin = float(vals.min())
        bmax = float(vals.max())
        lo = bmin if lo is None else min(lo, bmin)
        hi = bmax if hi is None else max(hi, bmax)
    if lo is None or hi is None:
        return 0.0, 0.0
    return lo, hi


def normalize(values: np.ndarray, vmin: float, vmax: float) -> np.ndarray:
    """(value - min) / (max - min) clamped to [0, 1]; a flat domain maps to 0."""

    v = np.asarray(values, dtype=np.float64)
    span = float(vmax) - float(vmin)
    if span <= 0:
        return np.zeros(v.shape, dtype=np.float64)
    return np.clip((v - float(vmin)) / span, 0.0, 1.0)


def apply_palette(
    values: np.ndarray,
    hex_colors: Sequence[str],
    vmin: float,
    vmax: float,
    alpha_mask: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Map a 2D band to an (H, W, 4) uint8 RGBA image.

    Sentinel and non-finite pixels are always transparent, whatever the
    domain. `alpha_mask` (bool, same shape) hides any further pixels.
    """

    v = np.asarray(values)
    if v.ndim != 2:
        raise ValueError(f"values must be 2D, got shape {v.shape}")

    table = color_table(hex_colors)
    ok = valid_mask(v)
    if alpha_mask is not None:
        ok &= np.asarray(alpha_mask, dtype=bool)

    norm = normalize(np.where(ok, v, vmin), vmin, vmax)
    idx = np.rint(norm * (len(table) - 1)).astype(np.intp)

    out = np.zeros(v.shape + (4,), dtype=np.uint8)
    out[..., :3] = table[idx]
    out[..., 3] = np.where(ok, 255, 0).astype(np.uint8)
    out[~ok, :3] = 0
    return out
