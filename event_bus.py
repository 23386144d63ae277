from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from embroidery_log import get_logger, log_event

logger = get_logger("events")

PERSONALIZATION_TOGGLED = "personalization:toggled"
PERSONALIZATION_OPTION_CHANGED = "personalization:option-changed"
CART_UPDATED = "cart:updated"
CART_ERROR = "cart:error"

Listener = Callable[[Mapping[str, Any]], None]


class EventBus:
    """
    Fire-and-forget page notifications.

    Publishers never see listener results or failures; a broken listener is logged and the
    remaining listeners still run.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Listener]] = {}

    def subscribe(self, topic: str, listener: Listener) -> Callable[[], None]:
        self._listeners.setdefault(topic, []).append(listener)

        def unsubscribe() -> None:
            listeners = self._listeners.get(topic, [])
            if listener in listeners:
                listeners.remove(listener)

        return unsubscribe

    def publish(self, topic: str, payload: Mapping[str, Any]) -> None:
        for listener in list(self._listeners.get(topic, [])):
            try:
                listener(dict(payload))
            except Exception as exc:
                log_event(
                    logger,
                    f"Listener for {topic} failed",
                    location="event_bus.py:publish",
                    data={"topic": topic},
                    level=logging.WARNING,
                    exc_info=exc,
                )


class Disclosure(Protocol):
    """The expand/collapse control wrapped around the personalization fields."""

    def set_open(self, is_open: bool) -> None: ...


class DisclosureSync:
    """
    Keeps a disclosure control and the configurator's `enabled` flag in step.

    Opening the disclosure enables personalization, closing disables it (which also drops
    any pending addon plan). Changes made by the configurator itself, such as a restored
    snapshot, are mirrored back onto the control.
    """

    def __init__(self, store: Any, disclosure: Optional[Disclosure] = None) -> None:
        self._store = store
        self._disclosure = disclosure
        self._open = bool(store.configuration.enabled)
        self._unsubscribe = store.add_listener(self._on_render)
        if disclosure is not None:
            disclosure.set_open(self._open)

    @property
    def is_open(self) -> bool:
        return self._open

    def on_disclosure_toggle(self, is_open: bool) -> None:
        self._open = bool(is_open)
        if self._open == self._store.configuration.enabled:
            return
        self._store.set_enabled(self._open)

    def close(self) -> None:
        self._unsubscribe()

    def _on_render(self, configuration: Any, derived: Any) -> None:
        enabled = bool(configuration.enabled)
        if enabled == self._open:
            return
        self._open = enabled
        if self._disclosure is not None:
            self._disclosure.set_open(enabled)
