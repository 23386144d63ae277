from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, List, Optional

from embroidery_engine import (
    AddonPlan,
    Catalog,
    Configuration,
    ConfigurationEvent,
    Context,
    DerivedState,
    EnabledChanged,
    OptionSelected,
    Subject,
    TextChanged,
    ValidationResult,
    derive,
    format_money,
    initial_configuration,
    reduce,
)
from embroidery_log import get_logger, log_event
from event_bus import PERSONALIZATION_OPTION_CHANGED, PERSONALIZATION_TOGGLED, EventBus
from field_bindings import FieldBindings
from session_persistence import SessionPersistence, Snapshot

logger = get_logger("store")

RenderListener = Callable[[Configuration, DerivedState], None]


class StoreState(str, Enum):
    IDLE = "IDLE"
    LIVE = "LIVE"


class AddonHandoff:
    """
    The addon plan the purchase flow picks up when it builds its add request.

    Overwritten on every recompute, never merged; empty plans clear the slot.
    """

    def __init__(self) -> None:
        self.plan: Optional[AddonPlan] = None

    def publish(self, plan: AddonPlan) -> None:
        self.plan = None if plan.is_empty else plan


class ConfigurationStore:
    """
    Owns one configurator instance's configuration and keeps every derived value in sync.

    Each mutation runs the same pipeline: reduce -> derive -> publish the handoff -> notify
    render listeners -> persist (product page only). Nothing is deferred, so price,
    validity and the addon plan are never stale relative to the raw selections.
    """

    def __init__(
        self,
        subject: Subject,
        catalog: Catalog,
        *,
        bindings: FieldBindings,
        bus: Optional[EventBus] = None,
        persistence: Optional[SessionPersistence] = None,
        handoff: Optional[AddonHandoff] = None,
        formatter: Callable[[int], str] = format_money,
    ) -> None:
        self.subject = subject
        self.catalog = catalog
        self.bindings = bindings
        self.bus = bus
        self.persistence = persistence
        self.handoff = handoff if handoff is not None else AddonHandoff()
        self._formatter = formatter
        self._listeners: List[RenderListener] = []
        self._state = StoreState.IDLE
        self._configuration = initial_configuration(subject, catalog)
        self._derived = self._derive()

    # region properties

    @property
    def context(self) -> Context:
        return self.subject.context

    @property
    def state(self) -> StoreState:
        return self._state

    @property
    def configuration(self) -> Configuration:
        return self._configuration

    @property
    def derived(self) -> DerivedState:
        return self._derived

    @property
    def addon_plan(self) -> AddonPlan:
        return self._derived.addon_plan

    @property
    def validation(self) -> ValidationResult:
        return self._derived.validation

    @property
    def add_button_enabled(self) -> bool:
        return self._derived.add_button_enabled

    # endregion properties

    def add_listener(self, listener: RenderListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def mount(self) -> DerivedState:
        """
        Reflect catalog defaults into the fields, rehydrate (cart drawer only), then render.
        """
        for group, value in self._configuration.selections:
            if self.bindings.read_selection(group) is None:
                self.bindings.write_selection(group, value)

        if self.context == Context.POST_PURCHASE and self.persistence is not None:
            snapshot = self.persistence.load(self.subject.storage_key)
            if snapshot is not None:
                self.rehydrate(snapshot)
                return self._derived

        self._refresh()
        return self._derived

    def rehydrate(self, snapshot: Snapshot) -> None:
        self._configuration = reduce(self._configuration, snapshot.as_event(), self.catalog)
        self._write_back()
        self._state = StoreState.LIVE
        log_event(
            logger,
            "Configuration rehydrated",
            location="configuration_store.py:rehydrate",
            data={"subject": self.subject.storage_key, "enabled": self._configuration.enabled},
        )
        self._refresh()

    # region mutations

    def set_text(self, text: str) -> DerivedState:
        return self._apply(TextChanged(text=text))

    def set_enabled(self, enabled: bool) -> DerivedState:
        derived = self._apply(EnabledChanged(enabled=enabled))
        self._publish(PERSONALIZATION_TOGGLED, {"enabled": bool(enabled)})
        return derived

    def select_option(self, group: str, value: str) -> DerivedState:
        derived = self._apply(OptionSelected(group=group, value=value))
        self._publish(PERSONALIZATION_OPTION_CHANGED, {"group": group, "value": value})
        return derived

    def capture(self) -> DerivedState:
        """
        Pull the bound fields and apply whatever changed since the last mutation.

        For surfaces that re-read their widgets instead of emitting per-field events.
        """
        text = self.bindings.read_text()
        if text != self._configuration.personalization_text:
            self.set_text(text)
        enabled = self.bindings.read_enabled()
        if enabled != self._configuration.enabled:
            self.set_enabled(enabled)
        for g in self.catalog.groups:
            value = self.bindings.read_selection(g.name)
            if value is not None and value != self._configuration.selection(g.name):
                self.select_option(g.name, value)
        return self._derived

    def refresh_quantity(self) -> DerivedState:
        # Quantity is not part of the configuration; re-derive so plan lines pick it up.
        self._refresh()
        return self._derived

    # endregion mutations

    def discard_plan(self, *, keep_snapshot: bool = False) -> None:
        """
        Reset to catalog defaults after the cart accepted the plan.

        Fields are written back and everything is re-derived, so the widget never shows a
        personalization that a repeat submit would not send. `keep_snapshot` leaves the
        session snapshot in place for the cart drawer to rehydrate.
        """
        self._configuration = initial_configuration(self.subject, self.catalog)
        self._write_back()
        if self.persistence is not None and not keep_snapshot:
            self.persistence.discard(self.subject.storage_key)
        # A disabled configuration derives an empty plan, which clears the handoff.
        self._refresh()

    def _apply(self, event: ConfigurationEvent) -> DerivedState:
        self._configuration = reduce(self._configuration, event, self.catalog)
        self._state = StoreState.LIVE
        self._refresh()
        if self.context == Context.PRE_PURCHASE and self.persistence is not None:
            self.persistence.save(self.subject.storage_key, self._configuration)
        return self._derived

    def _derive(self) -> DerivedState:
        return derive(
            self._configuration,
            self.catalog,
            quantity=self.bindings.read_quantity(),
            formatter=self._formatter,
        )

    def _refresh(self) -> None:
        self._derived = self._derive()
        self.handoff.publish(self._derived.addon_plan)
        self._notify()

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self._configuration, self._derived)
            except Exception as exc:
                log_event(
                    logger,
                    "Render listener failed",
                    location="configuration_store.py:_notify",
                    level=logging.WARNING,
                    exc_info=exc,
                )

    def _write_back(self) -> None:
        self.bindings.write_text(self._configuration.personalization_text)
        self.bindings.write_enabled(self._configuration.enabled)
        for group, value in self._configuration.selections:
            self.bindings.write_selection(group, value)

    def _publish(self, topic: str, payload: dict) -> None:
        if self.bus is None:
            return
        self.bus.publish(topic, {**payload, "context": self.context.value})
