from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional, Tuple

DEFAULT_SECTIONS: Tuple[str, ...] = ("cart-drawer", "cart-icon-bubble")


@dataclass(frozen=True)
class EmbroiderySettings:
    # Empty -> the offline in-memory demo cart.
    cart_base_url: str = ""
    cart_timeout_s: float = 10.0
    cart_add_path: str = "/cart/add.js"
    cart_change_path: str = "/cart/change.js"
    cart_path: str = "/cart.js"
    sections: Tuple[str, ...] = DEFAULT_SECTIONS
    sections_url: str = "/"
    catalog_path: Optional[Path] = None
    log_path: Optional[Path] = None
    log_level: int = logging.INFO
    debug: bool = False

    @property
    def offline(self) -> bool:
        return not self.cart_base_url


def _truthy(value: str) -> bool:
    return str(value or "").strip().lower() in {"1", "true", "yes", "y", "on"}


def _read_secret_or_env_str(key: str, secrets: Optional[Mapping[str, object]], environ: Mapping[str, str]) -> str:
    """
    Read a configuration value from a secrets mapping (preferred) or environment variables.

    Returns a stripped string; returns "" when missing.
    """
    val: object = ""
    if secrets is not None:
        try:
            # `st.secrets` is Mapping-like but raises when no secrets file exists.
            val = secrets.get(key, "")
        except Exception:
            val = ""
    if not val:
        val = environ.get(key, "")
    if isinstance(val, str):
        return val.strip()
    return str(val).strip() if val is not None else ""


def _float_or(value: str, default: float) -> float:
    try:
        f = float(value)
    except (TypeError, ValueError):
        return default
    if f != f or f <= 0:  # NaN or non-positive
        return default
    return f


def _log_level_or(value: str, default: int) -> int:
    if not value:
        return default
    level = logging.getLevelName(value.strip().upper())
    return level if isinstance(level, int) else default


def load_settings(
    secrets: Optional[Mapping[str, object]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> EmbroiderySettings:
    env = os.environ if environ is None else environ

    def read(key: str) -> str:
        return _read_secret_or_env_str(key, secrets, env)

    sections_raw = read("EMBROIDERY_SECTIONS")
    sections = tuple(s.strip() for s in sections_raw.split(",") if s.strip()) if sections_raw else DEFAULT_SECTIONS
    catalog_raw = read("EMBROIDERY_CATALOG_PATH")
    log_raw = read("EMBROIDERY_LOG_PATH")

    return EmbroiderySettings(
        cart_base_url=read("EMBROIDERY_CART_URL").rstrip("/"),
        cart_timeout_s=_float_or(read("EMBROIDERY_CART_TIMEOUT_S"), 10.0),
        sections=sections,
        sections_url=read("EMBROIDERY_SECTIONS_URL") or "/",
        catalog_path=Path(catalog_raw) if catalog_raw else None,
        log_path=Path(log_raw) if log_raw else None,
        log_level=_log_level_or(read("EMBROIDERY_LOG_LEVEL"), logging.INFO),
        debug=_truthy(read("EMBROIDERY_DEBUG")),
    )
