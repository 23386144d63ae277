from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from cart_client import CartClient, CartSnapshot, CartSubmissionError
from cart_composer import CartComposer, LoadingGuard
from embroidery_log import get_logger, log_event
from event_bus import CART_ERROR, CART_UPDATED, EventBus

logger = get_logger("product_form")

PRODUCT_FORM_SOURCE = "product-form"


class ProductForm:
    """
    The product page's add-to-cart flow.

    Adds the main product and any embroidery addon lines in one request, so the
    personalization succeeds or fails together with the purchase.
    """

    def __init__(
        self,
        client: CartClient,
        *,
        composer: Optional[CartComposer] = None,
        bus: Optional[EventBus] = None,
        guard: Optional[LoadingGuard] = None,
    ) -> None:
        self.client = client
        self.composer = composer
        self.bus = bus
        self.guard = guard if guard is not None else LoadingGuard()
        self.error_message: Optional[str] = None

    def build_items(
        self,
        variant_id: str,
        quantity: int = 1,
        properties: Optional[Mapping[str, str]] = None,
    ) -> List[Dict[str, Any]]:
        main: Dict[str, Any] = {"id": variant_id, "quantity": max(1, int(quantity or 1))}
        if properties:
            main["properties"] = dict(properties)
        if self.composer is None:
            return [main]
        return self.composer.contribute(main)

    async def submit(
        self,
        variant_id: str,
        quantity: int = 1,
        properties: Optional[Mapping[str, str]] = None,
    ) -> Optional[CartSnapshot]:
        if not self.guard.begin():
            return None
        self.error_message = None
        try:
            items = self.build_items(variant_id, quantity, properties)
            response = await self.client.add(items, source=PRODUCT_FORM_SOURCE)
        except CartSubmissionError as exc:
            self.error_message = exc.description
            log_event(
                logger,
                "Add to cart failed",
                location="product_form.py:submit",
                data={"variant_id": variant_id, "error": exc.description},
                level=logging.WARNING,
            )
            if self.bus is not None:
                self.bus.publish(CART_ERROR, {"source": PRODUCT_FORM_SOURCE, "error": exc.description})
            raise
        finally:
            self.guard.end()

        if self.composer is not None:
            self.composer.purchase_completed()
        if self.bus is not None:
            self.bus.publish(CART_UPDATED, {"cart_data": response})
        return response
