from __future__ import annotations

import json
from pathlib import Path
from typing import Any, List, Mapping, Optional, Set

from embroidery_engine import Catalog, CatalogError, OptionGroup, OptionValue


def parse_catalog(data: Mapping[str, Any], *, source: str = "<catalog>") -> Catalog:
    """
    Build a `Catalog` from its JSON document.

    Expected shape:
      {"base_price_cents": 500, "base_variant_id": "...",
       "groups": [{"name": "font", "values": [{"value": "Classic", "price_delta_cents": 0,
                   "remote_variant_id": "...", "is_color_kind": false, "preview_value": "..."}]}]}

    Structural problems raise `CatalogError`; the widget cannot mount without a usable catalog.
    """
    if not isinstance(data, Mapping):
        raise CatalogError(f"Expected JSON object in {source}")

    base_price = data.get("base_price_cents", 0)
    if not isinstance(base_price, int) or isinstance(base_price, bool) or base_price < 0:
        raise CatalogError(f"Missing/invalid 'base_price_cents' in {source}")

    base_variant_obj = data.get("base_variant_id")
    base_variant_id = str(base_variant_obj).strip() if base_variant_obj not in (None, "") else None

    groups_raw = data.get("groups")
    if not isinstance(groups_raw, list):
        raise CatalogError(f"Missing/invalid 'groups' in {source}")

    groups: List[OptionGroup] = []
    seen: Set[str] = set()
    for g in groups_raw:
        if not isinstance(g, dict):
            raise CatalogError(f"Option group must be an object in {source}")
        name = g.get("name")
        if not isinstance(name, str) or not name.strip():
            raise CatalogError(f"Option group without a name in {source}")
        name = name.strip()
        if name in seen:
            raise CatalogError(f"Duplicate option group {name!r} in {source}")
        seen.add(name)
        groups.append(OptionGroup(name=name, values=_parse_values(g.get("values"), group=name, source=source)))

    return Catalog(groups=tuple(groups), base_price_cents=base_price, base_variant_id=base_variant_id)


def _parse_values(raw: Any, *, group: str, source: str) -> tuple[OptionValue, ...]:
    if not isinstance(raw, list) or not raw:
        raise CatalogError(f"Option group {group!r} has no values in {source}")
    out: List[OptionValue] = []
    seen: Set[str] = set()
    for v in raw:
        if not isinstance(v, dict):
            continue
        value = v.get("value")
        if not isinstance(value, str) or not value.strip():
            continue
        value = value.strip()
        if value in seen:
            raise CatalogError(f"Duplicate value {value!r} in group {group!r} ({source})")
        seen.add(value)
        delta = v.get("price_delta_cents", 0)
        try:
            delta_int = int(delta)
        except (TypeError, ValueError):
            raise CatalogError(f"Invalid price_delta_cents for {group}/{value} in {source}") from None
        variant_obj = v.get("remote_variant_id")
        preview_obj = v.get("preview_value")
        out.append(
            OptionValue(
                value=value,
                price_delta_cents=delta_int,
                remote_variant_id=str(variant_obj).strip() if variant_obj not in (None, "") else None,
                is_color_kind=bool(v.get("is_color_kind", False)),
                preview_value=str(preview_obj).strip() if isinstance(preview_obj, str) and preview_obj.strip() else None,
            )
        )
    if not out:
        raise CatalogError(f"Option group {group!r} has no usable values in {source}")
    return tuple(out)


def load_catalog(path: Path) -> Catalog:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise CatalogError(f"Catalog {path} is not valid JSON: {exc}") from exc
    return parse_catalog(data, source=str(path))


def load_catalog_or_sample(path: Optional[Path]) -> Catalog:
    if path is None:
        return build_sample_catalog()
    return load_catalog(path)


def build_sample_catalog() -> Catalog:
    """
    Small hardcoded catalog for the demo storefront and the smoke script.

    Intent:
    - One free value per group so the "free options never become cart lines" rule is visible.
    - Easy to swap for a JSON catalog exported from the store admin.
    """
    return Catalog(
        base_price_cents=500,
        base_variant_id="44010000000001",
        groups=(
            OptionGroup(
                name="font",
                values=(
                    OptionValue(value="Classic", price_delta_cents=0, preview_value="Georgia, serif"),
                    OptionValue(
                        value="Script",
                        price_delta_cents=200,
                        remote_variant_id="44010000000011",
                        preview_value="Brush Script MT, cursive",
                    ),
                    OptionValue(
                        value="Block",
                        price_delta_cents=100,
                        remote_variant_id="44010000000012",
                        preview_value="Impact, sans-serif",
                    ),
                ),
            ),
            OptionGroup(
                name="color",
                values=(
                    OptionValue(value="Black", price_delta_cents=0, is_color_kind=True, preview_value="#202124"),
                    OptionValue(
                        value="Gold",
                        price_delta_cents=150,
                        remote_variant_id="44010000000021",
                        is_color_kind=True,
                        preview_value="#c9a227",
                    ),
                    OptionValue(
                        value="Navy",
                        price_delta_cents=0,
                        remote_variant_id="44010000000022",
                        is_color_kind=True,
                        preview_value="#1f2a5a",
                    ),
                ),
            ),
        ),
    )
