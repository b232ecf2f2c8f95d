"""
Observable state primitives.

Cells are plain records; events about them flow through dispatchers
owned by the store that mutates them:

- EventSource: named events, one hub per store
- KeyedEventSource: per-cell subscriptions keyed by cell id
- EventObserver: bookkeeping for unsubscribing in one call
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Generic, TypeVar


Listener = Callable[[Any], None]
AnyListener = Callable[[str, Any], None]

S = TypeVar("S")
V = TypeVar("V")


@dataclass(frozen=True)
class PropertyChange(Generic[S, V]):
    """Payload for a property change: the owner and the value it replaced."""

    source: S
    previous: V


class EventSource:
    """Named pub/sub hub. Listeners run in subscription order."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}
        self._any_listeners: list[AnyListener] = []

    def on(self, name: str, listener: Listener) -> None:
        self._listeners.setdefault(name, []).append(listener)

    def off(self, name: str, listener: Listener) -> None:
        listeners = self._listeners.get(name)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def on_any(self, listener: AnyListener) -> None:
        self._any_listeners.append(listener)

    def off_any(self, listener: AnyListener) -> None:
        if listener in self._any_listeners:
            self._any_listeners.remove(listener)

    def has_listeners(self, name: str) -> bool:
        return bool(self._listeners.get(name)) or bool(self._any_listeners)

    def trigger(self, name: str, data: Any = None) -> None:
        # Iterate over snapshots so listeners may unsubscribe while running.
        for listener in tuple(self._listeners.get(name, ())):
            listener(data)
        for any_listener in tuple(self._any_listeners):
            any_listener(name, data)


class KeyedEventSource:
    """Dispatcher for events about a single cell, keyed by its instance id."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[AnyListener]] = {}

    def on(self, key: str, listener: AnyListener) -> None:
        self._listeners.setdefault(key, []).append(listener)

    def off(self, key: str, listener: AnyListener) -> None:
        listeners = self._listeners.get(key)
        if not listeners:
            return
        if listener in listeners:
            listeners.remove(listener)
        if not listeners:
            del self._listeners[key]

    def trigger(self, key: str, name: str, data: Any = None) -> None:
        for listener in tuple(self._listeners.get(key, ())):
            listener(name, data)


class EventObserver:
    """Remembers subscriptions so they can all be dropped at once."""

    def __init__(self) -> None:
        self._unsubscribers: list[Callable[[], None]] = []

    def listen(self, source: EventSource, name: str, listener: Listener) -> None:
        source.on(name, listener)
        self._unsubscribers.append(lambda: source.off(name, listener))

    def listen_any(self, source: EventSource, listener: AnyListener) -> None:
        source.on_any(listener)
        self._unsubscribers.append(lambda: source.off_any(listener))

    def listen_key(self, source: KeyedEventSource, key: str, listener: AnyListener) -> None:
        source.on(key, listener)
        self._unsubscribers.append(lambda: source.off(key, listener))

    def stop_listening(self) -> None:
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
