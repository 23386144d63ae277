from __future__ import annotations

"""
Smoke test for the embroidery configurator (local, offline).

Drives the configurator the way the storefront page does, against the in-memory demo cart:
- product page: personalize, add to cart with the addon lines
- cart drawer: retrofit embroidery onto an existing cart line
- renders the preview PNG for each scenario

It writes previews to `out/smoke_test_embroidery/` and exits non-zero if anything breaks.

Usage:
  python3 scripts/smoke_test_embroidery.py
  python3 scripts/smoke_test_embroidery.py --out-dir out/smoke_test_embroidery
"""

import argparse
import asyncio
import sys
import traceback
from pathlib import Path
from typing import Optional

# Allow running as `python3 scripts/smoke_test_embroidery.py` (module imports live at repo root).
_ROOT = Path(__file__).resolve().parents[1]
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from cart_client import CartClient, CartSubmissionError
from cart_composer import CartComposer, SubmitOutcome
from configuration_store import ConfigurationStore
from demo_cart import DemoCart
from embroidery_catalog import build_sample_catalog
from embroidery_engine import EMBROIDERY_NAME_PROPERTY, Catalog, Context, Subject
from embroidery_preview import render_preview_png
from field_bindings import MemoryFieldBindings
from product_form import ProductForm
from session_persistence import SessionPersistence

PRODUCT_VARIANT_ID = "43900000000001"


def _check(condition: bool, message: str) -> None:
    if not condition:
        raise AssertionError(message)


async def _product_page(catalog: Catalog, cart: DemoCart, session: dict, out_dir: Path) -> None:
    print("")
    print("=== product page ===")
    bindings = MemoryFieldBindings(quantity=2)
    store = ConfigurationStore(
        Subject(product_id=PRODUCT_VARIANT_ID, context=Context.PRE_PURCHASE),
        catalog,
        bindings=bindings,
        persistence=SessionPersistence(session),
    )
    store.mount()
    store.set_enabled(True)
    store.set_text("Ava")
    store.select_option("font", "Script")
    store.select_option("color", "Gold")
    print(f"price={store.derived.price_label} lines={len(store.addon_plan.line_items)}")
    _check(store.derived.total_price_cents == 850, "expected 850 cents for Ava/Script/Gold")

    png = render_preview_png(store.derived.preview)
    (out_dir / "product_page_preview.png").write_bytes(png)

    async with CartClient("http://demo-cart.local", transport=cart.transport()) as client:
        form = ProductForm(client, composer=CartComposer(store, client))
        await form.submit(PRODUCT_VARIANT_ID, quantity=bindings.read_quantity())

    main = next(line for line in cart.lines if line.variant_id == PRODUCT_VARIANT_ID)
    children = cart.children_of(main.key)
    print(f"main={main.key} properties={main.properties} children={[c.variant_id for c in children]}")
    _check(main.properties.get(EMBROIDERY_NAME_PROPERTY) == '"Ava", Script, Gold', "summary property missing")
    _check(all(c.quantity == 2 for c in children), "addon quantities must follow the main line")
    _check(store.handoff.plan is None, "plan must be discarded after purchase")


async def _cart_drawer(catalog: Catalog, cart: DemoCart, session: dict, out_dir: Path) -> None:
    print("")
    print("=== cart drawer ===")
    line = cart.add_line(PRODUCT_VARIANT_ID, quantity=3)
    bindings = MemoryFieldBindings(quantity=line.quantity)
    store = ConfigurationStore(
        Subject(product_id=PRODUCT_VARIANT_ID, context=Context.POST_PURCHASE, line_reference=line.key),
        catalog,
        bindings=bindings,
        persistence=SessionPersistence(session),
    )
    store.mount()
    print(f"rehydrated text={store.configuration.personalization_text!r} enabled={store.configuration.enabled}")
    store.set_enabled(True)
    store.set_text("Max")
    store.select_option("font", "Block")

    png = render_preview_png(store.derived.preview)
    (out_dir / "cart_drawer_preview.png").write_bytes(png)

    async with CartClient("http://demo-cart.local", transport=cart.transport()) as client:
        result = await CartComposer(store, client).submit()

    print(f"outcome={result.outcome.value} children={[c.variant_id for c in cart.children_of(line.key)]}")
    _check(result.outcome == SubmitOutcome.APPLIED, "retrofit was not applied")
    _check(EMBROIDERY_NAME_PROPERTY in line.properties, "line property not written")
    _check(all(c.quantity == 3 for c in cart.children_of(line.key)), "addon quantities must follow the line")
    _check(not store.configuration.enabled, "configuration must be forgotten after a retrofit")


async def _run(out_dir: Path) -> None:
    catalog = build_sample_catalog()
    cart = DemoCart.for_catalog(catalog, {PRODUCT_VARIANT_ID: ("Canvas Tote Bag", 2800)})
    session: dict = {}
    await _product_page(catalog, cart, session, out_dir)
    await _cart_drawer(catalog, cart, session, out_dir)
    print("")
    print(f"cart item_count={cart.snapshot()['item_count']} total_price={cart.snapshot()['total_price']}")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "--out-dir",
        default=str(_ROOT / "out" / "smoke_test_embroidery"),
        help="Directory to write preview PNGs into (default: out/smoke_test_embroidery).",
    )
    args = parser.parse_args(argv)

    out_dir = Path(args.out_dir).resolve()
    out_dir.mkdir(parents=True, exist_ok=True)

    asyncio.run(_run(out_dir))

    print("")
    print(f"OK: wrote previews to {out_dir}")
    return 0


if __name__ == "__main__":
    try:
        raise SystemExit(main())
    except CartSubmissionError as exc:
        print(f"FAIL: CartSubmissionError: {exc.description}", file=sys.stderr)
        raise SystemExit(2)
    except Exception:
        traceback.print_exc()
        raise SystemExit(1)
