"""In-process publish/subscribe for session and job outcomes."""

from __future__ import annotations

import threading
import warnings
from collections import defaultdict
from typing import Any, Callable, DefaultDict, Dict, List

Callback = Callable[[Dict[str, Any]], None]


class EventBus:
    """Minimal publish/subscribe helper used to report session and job outcomes.

    Events may be emitted from the stepping loop and from detached job threads.
    A failing subscriber is reported with a warning and never interrupts the
    emitter.
    """

    def __init__(self) -> None:
        self._subs: DefaultDict[str, List[Callback]] = defaultdict(list)
        self._lock = threading.Lock()

    def on(self, event_type: str, callback: Callback) -> None:
        with self._lock:
            self._subs[event_type].append(callback)

    def off(self, event_type: str, callback: Callback) -> None:
        with self._lock:
            if callback in self._subs[event_type]:
                self._subs[event_type].remove(callback)

    def emit(self, event_type: str, **payload: Any) -> None:
        with self._lock:
            callbacks = list(self._subs[event_type])
        for callback in callbacks:
            try:
                callback({"type": event_type, **payload})
            except Exception as exc:
                warnings.warn(f"Event handler for '{event_type}' failed: {exc}")


__all__ = ["EventBus"]
