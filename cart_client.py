from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Sequence

import httpx

from embroidery_engine import EmbroideryError
from embroidery_log import get_logger, log_event
from embroidery_settings import EmbroiderySettings

logger = get_logger("cart")

CartSnapshot = Dict[str, Any]


class CartSubmissionError(EmbroideryError):
    def __init__(self, description: str, *, source: str = "cart", status_code: Optional[int] = None) -> None:
        super().__init__(description)
        self.description = description
        self.source = source
        self.status_code = status_code


def cart_error_description(body: Any) -> Optional[str]:
    """
    Error text from a cart response body, or None when the body reports success.

    The cart service answers some failures with a normal HTTP status and a body carrying
    `status`/`errors`, so the body has to be inspected even on 2xx.
    """
    if not isinstance(body, dict):
        return None
    if not body.get("status") and not body.get("errors"):
        return None
    for key in ("description", "errors", "message"):
        val = body.get(key)
        if val:
            return val if isinstance(val, str) else str(val)
    return "Cart request failed"


class CartClient:
    """
    Async client for the storefront cart endpoints (`add`, `change`, `get`).

    Every failure mode (transport error, non-2xx status, error body) surfaces as
    `CartSubmissionError`. No retries: the shopper retries by submitting again.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout_s: float = 10.0,
        add_path: str = "/cart/add.js",
        change_path: str = "/cart/change.js",
        cart_path: str = "/cart.js",
        sections: Sequence[str] = (),
        sections_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._add_path = add_path
        self._change_path = change_path
        self._cart_path = cart_path
        self._sections = tuple(sections)
        self._sections_url = sections_url
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout_s,
            transport=transport,
            headers={"Accept": "application/json", "X-Requested-With": "XMLHttpRequest"},
        )

    @classmethod
    def from_settings(
        cls,
        settings: EmbroiderySettings,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "CartClient":
        return cls(
            settings.cart_base_url or "http://demo-cart.local",
            timeout_s=settings.cart_timeout_s,
            add_path=settings.cart_add_path,
            change_path=settings.cart_change_path,
            cart_path=settings.cart_path,
            sections=settings.sections,
            sections_url=settings.sections_url,
            transport=transport,
        )

    async def __aenter__(self) -> "CartClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def add(self, items: Sequence[Mapping[str, Any]], *, source: str = "cart") -> CartSnapshot:
        body: Dict[str, Any] = {"items": [dict(i) for i in items]}
        return await self._post(self._add_path, self._with_sections(body), source=source)

    async def change(self, line_reference: str, properties: Mapping[str, str], *, source: str = "cart") -> CartSnapshot:
        body: Dict[str, Any] = {"id": line_reference, "properties": dict(properties)}
        return await self._post(self._change_path, self._with_sections(body), source=source)

    async def get_cart(self) -> CartSnapshot:
        try:
            response = await self._client.get(self._cart_path)
        except httpx.HTTPError as exc:
            raise CartSubmissionError(f"Cart request failed: {exc}", source="cart") from exc
        return self._decode(response, source="cart")

    def _with_sections(self, body: Dict[str, Any]) -> Dict[str, Any]:
        if self._sections:
            body["sections"] = list(self._sections)
            if self._sections_url:
                body["sections_url"] = self._sections_url
        return body

    async def _post(self, path: str, body: Dict[str, Any], *, source: str) -> CartSnapshot:
        log_event(logger, "Cart request", location="cart_client.py:_post", data={"path": path, "body": body})
        try:
            response = await self._client.post(path, json=body)
        except httpx.HTTPError as exc:
            log_event(
                logger,
                "Cart transport failure",
                location="cart_client.py:_post",
                data={"path": path},
                level=logging.WARNING,
                exc_info=exc,
            )
            raise CartSubmissionError(f"Cart request failed: {exc}", source=source) from exc
        return self._decode(response, source=source)

    def _decode(self, response: httpx.Response, *, source: str) -> CartSnapshot:
        try:
            body: Any = response.json()
        except ValueError:
            body = None

        description = cart_error_description(body)
        if response.is_success and description is None and isinstance(body, dict):
            return body

        if description is None:
            description = f"Cart request failed with HTTP {response.status_code}"
        log_event(
            logger,
            "Cart rejected request",
            location="cart_client.py:_decode",
            data={"status_code": response.status_code, "description": description},
            level=logging.WARNING,
        )
        raise CartSubmissionError(description, source=source, status_code=response.status_code)
