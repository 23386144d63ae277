from __future__ import annotations

from typing import Dict, MutableMapping, Optional, Protocol, Sequence


class FieldBindings(Protocol):
    """
    Read/write access to the widget's input fields.

    Pure I/O: no validation or derived values live here. Write-backs exist for rehydrating a
    saved configuration into the fields.
    """

    def read_text(self) -> str: ...

    def read_enabled(self) -> bool: ...

    def read_selection(self, group: str) -> Optional[str]: ...

    def read_quantity(self) -> int: ...

    def write_text(self, text: str) -> None: ...

    def write_enabled(self, enabled: bool) -> None: ...

    def write_selection(self, group: str, value: str) -> None: ...


class MemoryFieldBindings:
    def __init__(
        self,
        *,
        text: str = "",
        enabled: bool = False,
        selections: Optional[Dict[str, str]] = None,
        quantity: int = 1,
    ) -> None:
        self.text = text
        self.enabled = enabled
        self.selections: Dict[str, str] = dict(selections or {})
        self.quantity = quantity

    def read_text(self) -> str:
        return self.text

    def read_enabled(self) -> bool:
        return self.enabled

    def read_selection(self, group: str) -> Optional[str]:
        return self.selections.get(group)

    def read_quantity(self) -> int:
        return _positive_int(self.quantity)

    def write_text(self, text: str) -> None:
        self.text = text

    def write_enabled(self, enabled: bool) -> None:
        self.enabled = enabled

    def write_selection(self, group: str, value: str) -> None:
        self.selections[group] = value


class SessionStateFieldBindings:
    """
    Bindings over widget-backed keys in a session mapping (Streamlit `st.session_state`).

    Keys are namespaced by `prefix` so the product page and every cart line get their own
    widgets: `<prefix>_name`, `<prefix>_enabled`, `<prefix>_opt_<group>`, `<prefix>_qty`.
    """

    def __init__(
        self,
        state: MutableMapping[str, object],
        *,
        prefix: str,
        groups: Sequence[str],
        quantity_key: Optional[str] = None,
    ) -> None:
        self._state = state
        self._prefix = prefix
        self._groups = tuple(groups)
        self._quantity_key = quantity_key or f"{prefix}_qty"

    @property
    def text_key(self) -> str:
        return f"{self._prefix}_name"

    @property
    def enabled_key(self) -> str:
        return f"{self._prefix}_enabled"

    @property
    def quantity_key(self) -> str:
        return self._quantity_key

    def selection_key(self, group: str) -> str:
        return f"{self._prefix}_opt_{group}"

    def read_text(self) -> str:
        return str(self._state.get(self.text_key) or "")

    def read_enabled(self) -> bool:
        return bool(self._state.get(self.enabled_key, False))

    def read_selection(self, group: str) -> Optional[str]:
        if group not in self._groups:
            return None
        value = self._state.get(self.selection_key(group))
        return str(value) if value not in (None, "") else None

    def read_quantity(self) -> int:
        return _positive_int(self._state.get(self._quantity_key))

    def write_text(self, text: str) -> None:
        self._state[self.text_key] = text

    def write_enabled(self, enabled: bool) -> None:
        self._state[self.enabled_key] = bool(enabled)

    def write_selection(self, group: str, value: str) -> None:
        if group in self._groups:
            self._state[self.selection_key(group)] = value


def _positive_int(value: object) -> int:
    try:
        qty = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 1
    return qty if qty > 0 else 1
