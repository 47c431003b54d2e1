"""Shared observable state.

One Store instance is passed to every consumer. Writes go through `update`;
readers subscribe to the fields they care about and are only called when one
of those fields actually changed.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Set

logger = logging.getLogger(__name__)

Callback = Callable[[FrozenSet[str]], None]


def _same(a: Any, b: Any) -> bool:
    if a is b:
        return True
    if type(a) is not type(b):
        return False
    try:
        return bool(a == b)
    except (TypeError, ValueError):
        # e.g. numpy arrays: ambiguous truth value, treat as changed
        return False


@dataclass(eq=False)
class _Subscription:
    fields: FrozenSet[str]
    callback: Callback


class Store:
    def __init__(self, **initial: Any) -> None:
        self._values: Dict[str, Any] = dict(initial)
        self._subs: List[_Subscription] = []
        self._pending: Set[str] = set()
        self._dispatching = False
        self._lock = threading.RLock()

    def __getitem__(self, name: str) -> Any:
        return self._values[name]

    def __getattr__(self, name: str) -> Any:
        values = self.__dict__.get("_values")
        if values is not None and name in values:
            return values[name]
        raise AttributeError(name)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._values)

    def subscribe(self, fields: Iterable[str], callback: Callback) -> Callable[[], None]:
        """Call `callback(changed_fields)` whenever one of `fields` changes.

        Returns a function that removes the subscription.
        """
        watched = frozenset(fields)
        unknown = watched - set(self._values)
        if unknown:
            raise ValueError(f"unknown state field(s): {sorted(unknown)}")
        sub = _Subscription(watched, callback)
        with self._lock:
            self._subs.append(sub)

        def _unsubscribe() -> None:
            with self._lock:
                if sub in self._subs:
                    self._subs.remove(sub)

        return _unsubscribe

    def update(self, **changes: Any) -> FrozenSet[str]:
        """Single write entry point. Returns the fields whose value changed.

        Updates made from inside a callback are queued and dispatched after
        the current pass, so subscribers always see fully applied state.
        """
        unknown = set(changes) - set(self._values)
        if unknown:
            raise ValueError(f"unknown state field(s): {sorted(unknown)}")

        with self._lock:
            changed = {k for k, v in changes.items() if not _same(self._values[k], v)}
            for k in changed:
                self._values[k] = changes[k]
            if not changed:
                return frozenset()
            self._pending |= changed
            if self._dispatching:
                return frozenset(changed)

            self._dispatching = True
            try:
                while self._pending:
                    batch = frozenset(self._pending)
                    self._pending.clear()
                    for sub in list(self._subs):
                        hit = batch & sub.fields
                        if hit:
                            sub.callback(hit)
            finally:
                self._pending.clear()
                self._dispatching = False
            return frozenset(changed)
