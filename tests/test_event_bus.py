from __future__ import annotations

import unittest

from configuration_store import ConfigurationStore
from embroidery_catalog import build_sample_catalog
from embroidery_engine import Context, Subject
from event_bus import CART_UPDATED, DisclosureSync, EventBus
from field_bindings import MemoryFieldBindings
from session_persistence import SessionPersistence, Snapshot


class _RecordingDisclosure:
    def __init__(self) -> None:
        self.calls: list[bool] = []

    def set_open(self, is_open: bool) -> None:
        self.calls.append(is_open)


def _store() -> ConfigurationStore:
    store = ConfigurationStore(
        Subject(product_id="p-1", context=Context.PRE_PURCHASE),
        build_sample_catalog(),
        bindings=MemoryFieldBindings(),
    )
    store.mount()
    return store


class TestEventBus(unittest.TestCase):
    def test_publish_reaches_subscribers_of_topic_only(self) -> None:
        bus = EventBus()
        updated, other = [], []
        bus.subscribe(CART_UPDATED, updated.append)
        bus.subscribe("cart:error", other.append)
        bus.publish(CART_UPDATED, {"cart_data": {"item_count": 1}})
        self.assertEqual(updated, [{"cart_data": {"item_count": 1}}])
        self.assertEqual(other, [])

    def test_failing_listener_is_isolated(self) -> None:
        bus = EventBus()
        seen = []

        def boom(payload) -> None:
            raise RuntimeError("listener broke")

        bus.subscribe(CART_UPDATED, boom)
        bus.subscribe(CART_UPDATED, seen.append)
        with self.assertLogs("embroidery.events", level="WARNING"):
            bus.publish(CART_UPDATED, {"cart_data": None})
        self.assertEqual(seen, [{"cart_data": None}])

    def test_unsubscribe(self) -> None:
        bus = EventBus()
        seen = []
        unsubscribe = bus.subscribe(CART_UPDATED, seen.append)
        unsubscribe()
        unsubscribe()
        bus.publish(CART_UPDATED, {})
        self.assertEqual(seen, [])

    def test_publish_without_subscribers_is_a_no_op(self) -> None:
        EventBus().publish("personalization:toggled", {"enabled": True})


class TestDisclosureSync(unittest.TestCase):
    def test_initial_state_is_pushed_to_disclosure(self) -> None:
        disclosure = _RecordingDisclosure()
        sync = DisclosureSync(_store(), disclosure)
        self.assertFalse(sync.is_open)
        self.assertEqual(disclosure.calls, [False])

    def test_opening_disclosure_enables_personalization(self) -> None:
        store = _store()
        store.set_text("Ava")
        sync = DisclosureSync(store, _RecordingDisclosure())

        sync.on_disclosure_toggle(True)
        self.assertTrue(store.configuration.enabled)
        self.assertIsNotNone(store.handoff.plan)

        sync.on_disclosure_toggle(False)
        self.assertFalse(store.configuration.enabled)
        self.assertIsNone(store.handoff.plan)

    def test_store_changes_are_mirrored_onto_disclosure(self) -> None:
        storage = {"personalization_p-1": Snapshot("Mia", True, {"font": "Block"}).to_json()}
        store = ConfigurationStore(
            Subject(product_id="p-1", context=Context.POST_PURCHASE, line_reference="line-1"),
            build_sample_catalog(),
            bindings=MemoryFieldBindings(),
            persistence=SessionPersistence(storage),
        )
        disclosure = _RecordingDisclosure()
        sync = DisclosureSync(store, disclosure)

        store.mount()
        self.assertTrue(sync.is_open)
        self.assertEqual(disclosure.calls, [False, True])

    def test_close_stops_mirroring(self) -> None:
        store = _store()
        disclosure = _RecordingDisclosure()
        sync = DisclosureSync(store, disclosure)
        sync.close()
        store.set_enabled(True)
        self.assertEqual(disclosure.calls, [False])


if __name__ == "__main__":
    unittest.main()
