from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional

from cart_client import CartClient, CartSnapshot, CartSubmissionError
from configuration_store import ConfigurationStore
from embroidery_engine import AddonPlan, Context, EmbroideryError
from embroidery_log import get_logger, log_event
from event_bus import CART_ERROR, CART_UPDATED, EventBus

logger = get_logger("composer")

EMBROIDERY_SOURCE = "embroidery"


class LoadingGuard:
    """
    Single in-flight submission guard for one submit control.

    `begin()` refuses while a submission is running; callers release with `end()` in a
    `finally` block so the control never stays stuck in its loading state.
    """

    def __init__(self, on_change: Optional[Callable[[bool], None]] = None) -> None:
        self._busy = False
        self._on_change = on_change

    @property
    def busy(self) -> bool:
        return self._busy

    def begin(self) -> bool:
        if self._busy:
            return False
        self._set(True)
        return True

    def end(self) -> None:
        self._set(False)

    def _set(self, busy: bool) -> None:
        self._busy = busy
        if self._on_change is not None:
            self._on_change(busy)


class SubmitOutcome(str, Enum):
    APPLIED = "APPLIED"
    SKIPPED = "SKIPPED"


@dataclass(frozen=True)
class SubmitResult:
    outcome: SubmitOutcome
    cart_data: Optional[CartSnapshot] = None
    reason: Optional[str] = None


def _skipped(reason: str) -> SubmitResult:
    return SubmitResult(outcome=SubmitOutcome.SKIPPED, reason=reason)


class CartComposer:
    """
    Turns a finished configuration into cart operations.

    Product page: the plan rides along in the product form's own add request
    (`contribute` / `purchase_completed`). Cart drawer: `submit` retrofits the existing line
    with a property change plus an add of the addon lines, issued concurrently.
    """

    def __init__(
        self,
        store: ConfigurationStore,
        client: Optional[CartClient] = None,
        *,
        bus: Optional[EventBus] = None,
        guard: Optional[LoadingGuard] = None,
    ) -> None:
        self.store = store
        self.client = client
        self.bus = bus
        self.guard = guard if guard is not None else LoadingGuard()
        self.last_error: Optional[str] = None

    # region product page

    def contribute(self, main_item: Mapping[str, Any]) -> List[Dict[str, Any]]:
        """
        Item list for the product form: the main line, then one line per addon.

        The main line keeps its own form properties; the plan's properties win on conflict.
        Addon quantities follow the main line's quantity.
        """
        main = dict(main_item)
        quantity = max(1, int(main.get("quantity") or 1))
        main["quantity"] = quantity
        plan = self.store.handoff.plan
        if plan is None:
            return [main]

        properties = {**dict(main.get("properties") or {}), **dict(plan.properties)}
        if properties:
            main["properties"] = properties
        items: List[Dict[str, Any]] = [main]
        for li in plan.with_quantity(quantity).line_items:
            items.append(
                {
                    "id": li.remote_variant_id,
                    "quantity": li.quantity,
                    "parent_id": li.parent_linkage.reference,
                }
            )
        return items

    def purchase_completed(self) -> None:
        self.store.discard_plan(keep_snapshot=True)

    # endregion product page

    # region cart drawer

    async def submit(self) -> SubmitResult:
        """
        Apply the drawer configuration to its cart line.

        Raises `CartSubmissionError` when either cart operation fails; the addon plan is left
        untouched in that case so the shopper can retry.
        """
        if self.store.context != Context.POST_PURCHASE:
            raise EmbroideryError("product page configurators are submitted by the product form")
        if not self.guard.begin():
            return _skipped("submission already in flight")

        self.last_error = None
        try:
            if not self.store.configuration.enabled:
                return _skipped("personalization disabled")
            return await self._retrofit()
        except CartSubmissionError as exc:
            self.last_error = exc.description
            log_event(
                logger,
                "Retrofit failed",
                location="cart_composer.py:submit",
                data={"line": self.store.subject.line_reference, "error": exc.description},
                level=logging.WARNING,
            )
            if self.bus is not None:
                self.bus.publish(CART_ERROR, {"source": EMBROIDERY_SOURCE, "error": exc.description})
            raise
        finally:
            self.guard.end()

    async def _retrofit(self) -> SubmitResult:
        if self.client is None:
            raise EmbroideryError("cart drawer submission needs a cart client")
        plan: AddonPlan = self.store.addon_plan
        if plan.is_empty or not self.store.validation.valid:
            return _skipped("nothing to apply")

        line_reference = str(self.store.subject.line_reference)
        # Parent quantity may have changed since mount.
        plan = plan.with_quantity(self.store.bindings.read_quantity())
        add_items = [
            {"id": li.remote_variant_id, "quantity": li.quantity, "parent_line_key": line_reference}
            for li in plan.line_items
        ]

        operations = [self.client.change(line_reference, plan.properties, source=EMBROIDERY_SOURCE)]
        if add_items:
            operations.append(self.client.add(add_items, source=EMBROIDERY_SOURCE))
        results = await asyncio.gather(*operations, return_exceptions=True)

        for result in results:
            if isinstance(result, CartSubmissionError):
                raise result
            if isinstance(result, BaseException):
                raise CartSubmissionError(str(result) or type(result).__name__, source=EMBROIDERY_SOURCE) from result

        change_response = results[0]
        add_response = results[1] if len(results) > 1 else None
        cart_data = add_response or change_response

        if self.bus is not None:
            self.bus.publish(CART_UPDATED, {"cart_data": cart_data})
        self.store.discard_plan()
        log_event(
            logger,
            "Retrofit applied",
            location="cart_composer.py:_retrofit",
            data={"line": line_reference, "addon_lines": len(add_items)},
            level=logging.INFO,
        )
        return SubmitResult(outcome=SubmitOutcome.APPLIED, cart_data=cart_data)

    # endregion cart drawer
