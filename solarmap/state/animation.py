"""Owned animation timer for the monthly/hourly overlays."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from solarmap import config as cfg

logger = logging.getLogger(__name__)


class AnimationTimer:
    """Calls `on_tick()` every `interval` seconds between start() and stop().

    The owner must stop it on teardown; it is also a context manager. Each
    start() begins a new generation, and a callback armed by an earlier one
    neither ticks nor re-arms.
    """

    def __init__(self, on_tick: Callable[[], None], interval: float = cfg.ANIMATION_INTERVAL_S) -> None:
        if interval <= 0:
            raise ValueError("interval must be positive")
        self.interval = float(interval)
        self._on_tick = on_tick
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()
        self._running = False
        self._generation = 0
        self.ticks = 0

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
            self._generation += 1
            self._arm()

    def stop(self) -> None:
        with self._lock:
            self._running = False
            self._generation += 1
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def tick(self) -> None:
        """Advance one step now (also what the timer thread calls)."""
        self.ticks += 1
        self._on_tick()

    def _arm(self) -> None:
        self._timer = threading.Timer(self.interval, self._fire, args=(self._generation,))
        self._timer.daemon = True
        self._timer.start()

    def _current(self, generation: int) -> bool:
        return self._running and generation == self._generation

    def _fire(self, generation: int) -> None:
        with self._lock:
            if not self._current(generation):
                return
        try:
            self.tick()
        except Exception:
            # log and stop; an exception would otherwise end the thread unseen
            logger.exception("animation tick failed; stopping timer")
            with self._lock:
                current = self._current(generation)
            if current:
                self.stop()
            return
        with self._lock:
            if self._current(generation):
                self._arm()

    def __enter__(self) -> "AnimationTimer":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.stop()
