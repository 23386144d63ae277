from __future__ import annotations

import unittest

from cart_client import CartClient, CartSubmissionError
from cart_composer import CartComposer, LoadingGuard
from configuration_store import ConfigurationStore
from demo_cart import DemoCart
from embroidery_catalog import build_sample_catalog
from embroidery_engine import EMBROIDERY_NAME_PROPERTY, Context, Subject
from event_bus import CART_ERROR, CART_UPDATED, EventBus
from field_bindings import MemoryFieldBindings
from product_form import ProductForm

PRODUCT_ID = "43900000000001"


class TestProductForm(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        catalog = build_sample_catalog()
        self.cart = DemoCart.for_catalog(catalog, {PRODUCT_ID: ("Canvas Tote Bag", 2800)})
        self.store = ConfigurationStore(
            Subject(product_id=PRODUCT_ID, context=Context.PRE_PURCHASE),
            catalog,
            bindings=MemoryFieldBindings(),
        )
        self.store.mount()
        self.bus = EventBus()
        self.events: list[tuple[str, dict]] = []
        self.bus.subscribe(CART_UPDATED, lambda payload: self.events.append((CART_UPDATED, payload)))
        self.bus.subscribe(CART_ERROR, lambda payload: self.events.append((CART_ERROR, payload)))

    def _client(self) -> CartClient:
        return CartClient("http://demo-cart.local", transport=self.cart.transport())

    async def test_plain_purchase_adds_only_the_product(self) -> None:
        async with self._client() as client:
            await ProductForm(client, composer=CartComposer(self.store), bus=self.bus).submit(PRODUCT_ID, quantity=1)

        self.assertEqual(len(self.cart.lines), 1)
        self.assertEqual(self.cart.lines[0].properties, {})
        self.assertEqual([topic for topic, _ in self.events], [CART_UPDATED])

    async def test_personalized_purchase_adds_linked_addon_lines(self) -> None:
        self.store.set_enabled(True)
        self.store.set_text("Ava")
        self.store.select_option("font", "Script")
        self.store.select_option("color", "Gold")

        async with self._client() as client:
            form = ProductForm(client, composer=CartComposer(self.store), bus=self.bus)
            response = await form.submit(PRODUCT_ID, quantity=2)

        main = self.cart.lines[0]
        self.assertEqual(main.variant_id, PRODUCT_ID)
        self.assertEqual(main.properties, {EMBROIDERY_NAME_PROPERTY: '"Ava", Script, Gold'})
        children = self.cart.children_of(main.key)
        self.assertEqual([c.variant_id for c in children], ["44010000000001", "44010000000011", "44010000000021"])
        self.assertTrue(all(c.quantity == 2 for c in children))
        self.assertEqual(response["item_count"], 8)

        # The plan is consumed so a second click cannot add the addons again.
        self.assertIsNone(self.store.handoff.plan)
        self.assertEqual(self.events, [(CART_UPDATED, {"cart_data": response})])

    async def test_failed_add_keeps_plan_and_reports_error(self) -> None:
        self.store.set_enabled(True)
        self.store.set_text("Ava")
        self.cart.fail_next("/cart/add.js", description="Tote Bag is sold out")
        guard = LoadingGuard()

        async with self._client() as client:
            form = ProductForm(client, composer=CartComposer(self.store), bus=self.bus, guard=guard)
            with self.assertRaises(CartSubmissionError):
                await form.submit(PRODUCT_ID)

        self.assertEqual(form.error_message, "Tote Bag is sold out")
        self.assertFalse(guard.busy)
        self.assertIsNotNone(self.store.handoff.plan)
        self.assertEqual(self.events, [(CART_ERROR, {"source": "product-form", "error": "Tote Bag is sold out"})])
        self.assertEqual(self.cart.lines, [])

    async def test_widget_resets_after_purchase_so_repeat_add_is_plain(self) -> None:
        self.store.set_enabled(True)
        self.store.set_text("Ava")
        self.store.select_option("font", "Script")

        async with self._client() as client:
            form = ProductForm(client, composer=CartComposer(self.store), bus=self.bus)
            await form.submit(PRODUCT_ID)

            # The widget no longer advertises a personalization the next add would not send.
            self.assertFalse(self.store.configuration.enabled)
            self.assertEqual(self.store.configuration.personalization_text, "")
            self.assertEqual(self.store.derived.price_label, "+$5.00")
            self.assertEqual(self.store.bindings.read_text(), "")

            await form.submit(PRODUCT_ID)

        mains = [line for line in self.cart.lines if line.variant_id == PRODUCT_ID]
        self.assertEqual([m.properties for m in mains], [{EMBROIDERY_NAME_PROPERTY: '"Ava", Script, Black'}, {}])

    async def test_personalizing_again_after_purchase_sends_new_plan(self) -> None:
        self.store.set_enabled(True)
        self.store.set_text("Ava")

        async with self._client() as client:
            form = ProductForm(client, composer=CartComposer(self.store), bus=self.bus)
            await form.submit(PRODUCT_ID)
            self.store.set_enabled(True)
            self.store.set_text("Max")
            await form.submit(PRODUCT_ID)

        mains = [line for line in self.cart.lines if line.variant_id == PRODUCT_ID]
        self.assertEqual(mains[1].properties, {EMBROIDERY_NAME_PROPERTY: '"Max", Classic, Black'})
        self.assertEqual(len(self.cart.children_of(mains[1].key)), 1)

    async def test_guard_is_released_when_building_items_fails(self) -> None:
        guard = LoadingGuard()
        async with self._client() as client:
            form = ProductForm(client, composer=CartComposer(self.store), guard=guard)
            with self.assertRaises(ValueError):
                await form.submit(PRODUCT_ID, quantity="two")  # type: ignore[arg-type]
        self.assertFalse(guard.busy)
        self.assertEqual(self.cart.requests, [])

    async def test_submit_while_busy_is_ignored(self) -> None:
        guard = LoadingGuard()
        guard.begin()
        async with self._client() as client:
            result = await ProductForm(client, guard=guard).submit(PRODUCT_ID)
        self.assertIsNone(result)
        self.assertEqual(self.cart.requests, [])

    def test_build_items_without_composer(self) -> None:
        form = ProductForm(CartClient("http://demo-cart.local", transport=self.cart.transport()))
        self.assertEqual(
            form.build_items(PRODUCT_ID, 0, {"Gift": "yes"}),
            [{"id": PRODUCT_ID, "quantity": 1, "properties": {"Gift": "yes"}}],
        )


if __name__ == "__main__":
    unittest.main()
