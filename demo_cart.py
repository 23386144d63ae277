from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx

from embroidery_engine import Catalog


@dataclass
class CartLine:
    key: str
    variant_id: str
    quantity: int
    title: str
    price_cents: int
    properties: Dict[str, str] = field(default_factory=dict)
    parent_key: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "id": self.variant_id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "title": self.title,
            "price": self.price_cents,
            "line_price": self.price_cents * self.quantity,
            "properties": dict(self.properties),
            "parent_relationship": {"parent_key": self.parent_key} if self.parent_key else None,
        }


class DemoCart:
    """
    In-memory cart speaking the storefront cart wire contract.

    Backs the offline storefront demo and the tests via `httpx.MockTransport`. Failures can
    be queued per endpoint with `fail_next` to exercise error handling.
    """

    def __init__(self, variants: Optional[Mapping[str, Tuple[str, int]]] = None) -> None:
        # variant id -> (title, unit price in cents); empty means any variant is accepted.
        self.variants: Dict[str, Tuple[str, int]] = dict(variants or {})
        self.lines: List[CartLine] = []
        self.requests: List[Tuple[str, Any]] = []
        self._failures: Dict[str, List[Tuple[int, Dict[str, Any]]]] = {}
        self._seq = 0

    @classmethod
    def for_catalog(cls, catalog: Catalog, products: Optional[Mapping[str, Tuple[str, int]]] = None) -> "DemoCart":
        """Demo cart that knows the given products plus every addon variant in `catalog`."""
        variants: Dict[str, Tuple[str, int]] = dict(products or {})
        if catalog.base_variant_id:
            variants[catalog.base_variant_id] = ("Embroidery", catalog.base_price_cents)
        for group in catalog.groups:
            for option in group.values:
                if option.remote_variant_id:
                    variants[option.remote_variant_id] = (f"Embroidery {group.name}: {option.value}", max(0, option.price_delta_cents))
        return cls(variants=variants)

    # region seeding / inspection

    def add_line(self, variant_id: str, quantity: int = 1, properties: Optional[Mapping[str, str]] = None) -> CartLine:
        line = self._new_line(variant_id, quantity, dict(properties or {}), parent_key=None)
        self.lines.append(line)
        return line

    def line(self, key: str) -> Optional[CartLine]:
        for line in self.lines:
            if line.key == key:
                return line
        return None

    def children_of(self, key: str) -> List[CartLine]:
        return [line for line in self.lines if line.parent_key == key]

    def snapshot(self) -> Dict[str, Any]:
        return {
            "token": "demo-cart",
            "item_count": sum(line.quantity for line in self.lines),
            "total_price": sum(line.price_cents * line.quantity for line in self.lines),
            "items": [line.to_json() for line in self.lines],
        }

    def fail_next(self, path: str, *, status_code: int = 422, description: str = "Cart Error") -> None:
        body = {"status": status_code, "message": "Cart Error", "description": description}
        self._failures.setdefault(path, []).append((status_code, body))

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # endregion seeding / inspection

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body: Any = None
        if request.content:
            try:
                body = json.loads(request.content)
            except ValueError:
                return _error(400, "bad_request", "Request body is not JSON")
        self.requests.append((path, body))

        queued = self._failures.get(path)
        if queued:
            status_code, payload = queued.pop(0)
            return httpx.Response(status_code, json=payload)

        if request.method == "GET" and path == "/cart.js":
            return httpx.Response(200, json=self.snapshot())
        if request.method == "POST" and path == "/cart/add.js":
            return self._add(body if isinstance(body, dict) else {})
        if request.method == "POST" and path == "/cart/change.js":
            return self._change(body if isinstance(body, dict) else {})
        return _error(404, "not_found", f"No route for {request.method} {path}")

    def _add(self, body: Dict[str, Any]) -> httpx.Response:
        items = body.get("items")
        if not isinstance(items, list) or not items:
            return _error(422, 422, "Parameter Missing or Invalid: Required parameter missing or invalid: items")

        staged: List[CartLine] = []
        for item in items:
            if not isinstance(item, dict):
                return _error(422, 422, "Invalid item")
            variant_id = str(item.get("id") or "")
            if self.variants and variant_id not in self.variants:
                return _error(422, 422, f"Cannot find variant {variant_id}")
            try:
                quantity = int(item.get("quantity") or 1)
            except (TypeError, ValueError):
                return _error(422, 422, "Invalid quantity")

            parent_key = None
            if item.get("parent_line_key"):
                parent_key = str(item["parent_line_key"])
                if self.line(parent_key) is None:
                    return _error(422, 422, f"Parent line {parent_key} is not in the cart")
            elif item.get("parent_id"):
                parent = _find_by_variant(staged, str(item["parent_id"])) or _find_by_variant(self.lines, str(item["parent_id"]))
                if parent is None:
                    return _error(422, 422, f"Parent {item['parent_id']} is not in the cart")
                parent_key = parent.key

            properties = item.get("properties") if isinstance(item.get("properties"), dict) else {}
            staged.append(self._new_line(variant_id, quantity, dict(properties), parent_key=parent_key))

        # All or nothing: nothing is committed until every item validated.
        self.lines.extend(staged)
        return httpx.Response(200, json=self._with_sections(self.snapshot(), body))

    def _change(self, body: Dict[str, Any]) -> httpx.Response:
        key = str(body.get("id") or "")
        line = self.line(key)
        if line is None:
            return _error(400, "bad_request", f"No valid line for id {key!r}")
        properties = body.get("properties")
        if isinstance(properties, dict):
            line.properties = {str(k): str(v) for k, v in properties.items()}
        if "quantity" in body:
            try:
                line.quantity = int(body["quantity"])
            except (TypeError, ValueError):
                return _error(422, 422, "Invalid quantity")
            if line.quantity <= 0:
                self.lines = [li for li in self.lines if li.key != key and li.parent_key != key]
        return httpx.Response(200, json=self._with_sections(self.snapshot(), body))

    def _new_line(self, variant_id: str, quantity: int, properties: Dict[str, str], *, parent_key: Optional[str]) -> CartLine:
        self._seq += 1
        title, price = self.variants.get(variant_id, (f"Variant {variant_id}", 0))
        return CartLine(
            key=f"{variant_id}:{self._seq:08x}",
            variant_id=variant_id,
            quantity=quantity,
            title=title,
            price_cents=price,
            properties=properties,
            parent_key=parent_key,
        )

    def _with_sections(self, payload: Dict[str, Any], body: Dict[str, Any]) -> Dict[str, Any]:
        sections = body.get("sections")
        if isinstance(sections, list) and sections:
            payload["sections"] = {
                str(s): f'<div id="{s}" data-item-count="{payload["item_count"]}"></div>' for s in sections
            }
        return payload


def _find_by_variant(lines: List[CartLine], variant_id: str) -> Optional[CartLine]:
    for line in reversed(lines):
        if line.variant_id == variant_id and line.parent_key is None:
            return line
    return None


def _error(status_code: int, status: Any, description: str) -> httpx.Response:
    return httpx.Response(
        status_code,
        json={"status": status, "message": "Cart Error", "description": description},
    )
