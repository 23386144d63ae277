from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Mapping, Optional

import streamlit as st

from cart_client import CartClient, CartSnapshot, CartSubmissionError
from cart_composer import CartComposer, LoadingGuard
from configuration_store import ConfigurationStore
from demo_cart import DemoCart
from embroidery_catalog import load_catalog_or_sample
from embroidery_engine import (
    EMBROIDERY_NAME_PROPERTY,
    Catalog,
    Context,
    OptionGroup,
    PreviewState,
    Subject,
    ValidationKind,
    format_money,
)
from embroidery_log import get_logger, log_event, setup_logging
from embroidery_preview import render_preview_png
from embroidery_settings import EmbroiderySettings, load_settings
from event_bus import CART_ERROR, CART_UPDATED, EventBus
from field_bindings import SessionStateFieldBindings
from product_form import ProductForm
from session_persistence import SessionPersistence

logger = get_logger("app")

PRODUCT_VARIANT_ID = "43900000000001"
PRODUCT_TITLE = "Canvas Tote Bag"
PRODUCT_PRICE_CENTS = 2800
PDP_PREFIX = "pdp"


# region session-scoped singletons


def _settings() -> EmbroiderySettings:
    return load_settings(secrets=st.secrets)


@st.cache_resource
def _catalog(catalog_path: Optional[str]) -> Catalog:
    return load_catalog_or_sample(Path(catalog_path) if catalog_path else None)


def _bus() -> EventBus:
    bus = st.session_state.get("_bus")
    if isinstance(bus, EventBus):
        return bus
    bus = EventBus()
    bus.subscribe(CART_UPDATED, lambda payload: _notice("success", "Cart updated."))
    bus.subscribe(CART_ERROR, lambda payload: _notice("error", str(payload.get("error") or "Cart error")))
    st.session_state["_bus"] = bus
    return bus


def _guard(name: str) -> LoadingGuard:
    guards = st.session_state.setdefault("_guards", {})
    if name not in guards:
        guards[name] = LoadingGuard()
    return guards[name]


def _demo_cart(catalog: Catalog) -> DemoCart:
    cart = st.session_state.get("_demo_cart")
    if isinstance(cart, DemoCart):
        return cart
    cart = DemoCart.for_catalog(catalog, {PRODUCT_VARIANT_ID: (PRODUCT_TITLE, PRODUCT_PRICE_CENTS)})
    st.session_state["_demo_cart"] = cart
    return cart


def _client(settings: EmbroiderySettings, catalog: Catalog) -> CartClient:
    transport = _demo_cart(catalog).transport() if settings.offline else None
    return CartClient.from_settings(settings, transport=transport)


def _store(prefix: str, subject: Subject, catalog: Catalog) -> ConfigurationStore:
    stores = st.session_state.setdefault("_stores", {})
    store = stores.get(prefix)
    if isinstance(store, ConfigurationStore):
        return store
    bindings = SessionStateFieldBindings(
        st.session_state,
        prefix=prefix,
        groups=catalog.group_names,
    )
    store = ConfigurationStore(
        subject,
        catalog,
        bindings=bindings,
        bus=_bus(),
        persistence=SessionPersistence(st.session_state),
    )
    # Mount before any widget with these keys exists so defaults/rehydration can be written.
    store.mount()
    stores[prefix] = store
    return store


def _notice(kind: str, text: str) -> None:
    st.session_state.setdefault("_notices", []).append((kind, text))


# endregion session-scoped singletons


@st.cache_data(show_spinner=False)
def _cached_preview_png(text: str, styles: tuple[tuple[str, str], ...]) -> bytes:
    return render_preview_png(PreviewState(text=text, styles=styles))


def _option_label(group: OptionGroup, value: str) -> str:
    option = group.find(value)
    if option is None or option.price_delta_cents <= 0:
        return value
    return f"{value} (+{format_money(option.price_delta_cents)})"


def _validation_message(store: ConfigurationStore) -> Optional[str]:
    result = store.validation
    if result.valid:
        return None
    if result.reason == ValidationKind.MISSING_NAME:
        return "Enter a name to personalize this item."
    return f"Choose a {result.group}."


def _render_configurator(store: ConfigurationStore, *, label: str) -> None:
    bindings = store.bindings
    if not isinstance(bindings, SessionStateFieldBindings):
        raise TypeError("storefront configurators are bound to session state")

    # Widgets already wrote this rerun's values into session_state; apply what changed.
    store.capture()

    # Label stays fixed so the widget keeps its identity across reruns.
    st.checkbox(label, key=bindings.enabled_key)
    enabled = bindings.read_enabled()

    # Fields stay rendered while disabled; Streamlit drops state for widgets it stops drawing.
    left, right = st.columns([1, 1])
    with left:
        st.text_input("Name", key=bindings.text_key, max_chars=20, disabled=not enabled)
        st.caption(f"{store.derived.name_length}/20 characters")
        for group in store.catalog.groups:
            st.radio(
                group.name.title(),
                options=[v.value for v in group.values],
                key=bindings.selection_key(group.name),
                format_func=lambda value, g=group: _option_label(g, value),
                horizontal=True,
                disabled=not enabled,
            )
    if not enabled:
        with right:
            st.caption(f"Embroidery from {store.derived.price_label}")
        return
    with right:
        preview = store.derived.preview
        st.image(_cached_preview_png(preview.text, preview.styles))
        st.markdown(f"**Personalization:** {store.derived.price_label}")
        message = _validation_message(store)
        if message:
            st.warning(message)


# region product page


async def _submit_product_form(settings: EmbroiderySettings, catalog: Catalog, store: ConfigurationStore) -> None:
    async with _client(settings, catalog) as client:
        composer = CartComposer(store, client, bus=_bus())
        form = ProductForm(client, composer=composer, bus=_bus(), guard=_guard(PDP_PREFIX))
        try:
            await form.submit(PRODUCT_VARIANT_ID, quantity=store.bindings.read_quantity())
        except CartSubmissionError:
            # Already published as cart:error and shown through the notice list.
            pass


def _on_add_to_cart(settings: EmbroiderySettings, catalog: Catalog, store: ConfigurationStore) -> None:
    asyncio.run(_submit_product_form(settings, catalog, store))


def _render_product_page(settings: EmbroiderySettings, catalog: Catalog) -> None:
    store = _store(PDP_PREFIX, Subject(product_id=PRODUCT_VARIANT_ID, context=Context.PRE_PURCHASE), catalog)
    st.subheader(PRODUCT_TITLE)
    st.markdown(format_money(PRODUCT_PRICE_CENTS))
    st.number_input("Quantity", min_value=1, max_value=20, step=1, key=f"{PDP_PREFIX}_qty")
    _render_configurator(store, label="Add embroidery")
    st.button(
        "Add to cart",
        type="primary",
        disabled=not store.add_button_enabled or _guard(PDP_PREFIX).busy,
        on_click=_on_add_to_cart,
        args=(settings, catalog, store),
    )


# endregion product page

# region cart drawer


async def _fetch_cart(settings: EmbroiderySettings, catalog: Catalog) -> CartSnapshot:
    async with _client(settings, catalog) as client:
        return await client.get_cart()


async def _submit_retrofit(settings: EmbroiderySettings, catalog: Catalog, store: ConfigurationStore, guard_name: str) -> None:
    async with _client(settings, catalog) as client:
        composer = CartComposer(store, client, bus=_bus(), guard=_guard(guard_name))
        try:
            await composer.submit()
        except CartSubmissionError:
            pass


def _on_retrofit(settings: EmbroiderySettings, catalog: Catalog, store: ConfigurationStore, guard_name: str) -> None:
    asyncio.run(_submit_retrofit(settings, catalog, store, guard_name))


def _render_cart_line(settings: EmbroiderySettings, catalog: Catalog, item: Mapping[str, Any], children: list) -> None:
    key = str(item.get("key"))
    quantity = int(item.get("quantity") or 1)
    properties = item.get("properties") or {}
    st.markdown(f"**{item.get('title')}** x{quantity}  {format_money(int(item.get('line_price') or 0))}")
    for prop_name, prop_value in properties.items():
        st.caption(f"{prop_name}: {prop_value}")
    for child in children:
        st.caption(f"+ {child.get('title')} x{child.get('quantity')}  {format_money(int(child.get('line_price') or 0))}")
    if EMBROIDERY_NAME_PROPERTY in properties:
        return

    prefix = f"line_{key.replace(':', '_')}"
    # Quantity always mirrors the cart line; refreshed before the store reads it.
    st.session_state[f"{prefix}_qty"] = quantity
    subject = Subject(product_id=str(item.get("variant_id")), context=Context.POST_PURCHASE, line_reference=key)
    store = _store(prefix, subject, catalog)
    store.refresh_quantity()
    _render_configurator(store, label="Add embroidery to this item")
    if store.configuration.enabled:
        st.button(
            "Apply embroidery",
            key=f"{prefix}_apply",
            disabled=not store.add_button_enabled or _guard(prefix).busy,
            on_click=_on_retrofit,
            args=(settings, catalog, store, prefix),
        )


def _render_cart_drawer(settings: EmbroiderySettings, catalog: Catalog) -> None:
    try:
        cart = asyncio.run(_fetch_cart(settings, catalog))
    except CartSubmissionError as exc:
        st.error(f"Could not load the cart: {exc.description}")
        return
    items = [i for i in cart.get("items", []) if isinstance(i, dict)]
    if not items:
        st.info("Your cart is empty.")
        return
    st.markdown(f"{cart.get('item_count', 0)} items · {format_money(int(cart.get('total_price') or 0))}")
    for item in items:
        if item.get("parent_relationship"):
            continue
        children = [c for c in items if (c.get("parent_relationship") or {}).get("parent_key") == item.get("key")]
        with st.container(border=True):
            _render_cart_line(settings, catalog, item, children)


# endregion cart drawer


def main() -> None:
    st.set_page_config(page_title="Embroidery Configurator Demo", layout="wide")
    settings = _settings()
    setup_logging(settings.log_path, logging.DEBUG if settings.debug else settings.log_level)
    catalog = _catalog(str(settings.catalog_path) if settings.catalog_path else None)

    st.title("Embroidery Configurator Demo")
    if settings.offline:
        st.caption("Offline mode: using the in-memory demo cart.")

    for kind, text in st.session_state.pop("_notices", []):
        (st.success if kind == "success" else st.error)(text)

    tab_product, tab_cart = st.tabs(["Product page", "Cart drawer"])
    with tab_product:
        _render_product_page(settings, catalog)
    with tab_cart:
        _render_cart_drawer(settings, catalog)

    log_event(
        logger,
        "Rerun",
        location="storefront_demo_app.py:main",
        data={"stores": sorted(st.session_state.get("_stores", {}).keys())},
    )


if __name__ == "__main__":
    main()
