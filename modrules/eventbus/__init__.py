"""In-process event bus for loader and index notifications.

Events are addressed by name; callers may pass the event class itself
(`subscribe(IndexBuilt, handler)`), which resolves to its class name, the
same key `modrules.events.emit` publishes under.

Handlers receive a shallow copy of the payload. A failing handler never
breaks a load or a scan: the exception is counted in
`handler_exceptions_total{event}` and logged as `event-handler-error`.
Descriptors are loaded on scan worker threads, so handlers run there too.
"""
from __future__ import annotations

import logging
from contextlib import contextmanager
from threading import RLock
from time import time
from typing import Any, Callable, Dict, Iterator, List, Union

from modrules import metrics
from modrules.errors import validate_error_type

log = logging.getLogger(__name__)

Handler = Callable[[Dict[str, Any]], None]
EventKey = Union[str, type]


def event_name(event: EventKey) -> str:
    return event if isinstance(event, str) else event.__name__


class EventBus:
    def __init__(self) -> None:
        self._subs: Dict[str, List[Handler]] = {}
        self._lock = RLock()

    def subscribe(self, event: EventKey, handler: Handler) -> None:
        with self._lock:
            self._subs.setdefault(event_name(event), []).append(handler)

    def unsubscribe(self, event: EventKey, handler: Handler) -> None:
        with self._lock:
            handlers = self._subs.get(event_name(event))
            if handlers and handler in handlers:
                handlers.remove(handler)

    def handler_count(self, event: EventKey) -> int:
        with self._lock:
            return len(self._subs.get(event_name(event), ()))

    def emit(self, event: EventKey, payload: Dict[str, Any]) -> None:
        name = event_name(event)
        payload.setdefault("ts", time())
        with self._lock:
            subs = list(self._subs.get(name, ()))
        metrics.inc("events_emitted_total", {"event": name})
        for h in subs:
            try:
                h(dict(payload))
            except Exception:  # noqa: BLE001
                metrics.inc("handler_exceptions_total", {"event": name})
                log.warning(
                    "[%s] event=%s handler=%s",
                    validate_error_type("event-handler-error"),
                    name,
                    getattr(h, "__qualname__", repr(h)),
                    exc_info=True,
                )

    @contextmanager
    def listening(self, event: EventKey, handler: Handler) -> Iterator[None]:
        """Subscribe for the duration of a `with` block."""
        self.subscribe(event, handler)
        try:
            yield
        finally:
            self.unsubscribe(event, handler)

    def reset_for_tests(self) -> None:  # pragma: no cover
        with self._lock:
            self._subs.clear()


_BUS = EventBus()


def subscribe(event: EventKey, handler: Handler) -> None:
    _BUS.subscribe(event, handler)


def unsubscribe(event: EventKey, handler: Handler) -> None:
    _BUS.unsubscribe(event, handler)


def emit(event: EventKey, payload: Dict[str, Any]) -> None:
    _BUS.emit(event, payload)


def listening(event: EventKey, handler: Handler):
    return _BUS.listening(event, handler)


def reset_for_tests() -> None:  # pragma: no cover
    _BUS.reset_for_tests()


__all__ = [
    "EventBus",
    "emit",
    "event_name",
    "listening",
    "reset_for_tests",
    "subscribe",
    "unsubscribe",
]
