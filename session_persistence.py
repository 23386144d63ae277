from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Mapping, MutableMapping, Optional

from embroidery_engine import Configuration, EmbroideryError, SnapshotRestored
from embroidery_log import get_logger, log_event

logger = get_logger("persistence")

STORAGE_KEY_PREFIX = "personalization_"


class PersistenceError(EmbroideryError):
    pass


@dataclass(frozen=True)
class Snapshot:
    personalization_text: str
    enabled: bool
    selections: Mapping[str, str] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(
            {
                "personalizationText": self.personalization_text,
                "enabled": self.enabled,
                "selections": dict(self.selections),
            }
        )

    @classmethod
    def from_json(cls, raw: str) -> "Snapshot":
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise PersistenceError("snapshot must be a JSON object")
        selections_raw = data.get("selections") or {}
        if not isinstance(selections_raw, dict):
            raise PersistenceError("snapshot selections must be an object")
        return cls(
            personalization_text=str(data.get("personalizationText") or ""),
            enabled=bool(data.get("enabled", False)),
            selections={str(k): str(v) for k, v in selections_raw.items() if v is not None},
        )

    @classmethod
    def from_configuration(cls, configuration: Configuration) -> "Snapshot":
        return cls(
            personalization_text=configuration.personalization_text,
            enabled=configuration.enabled,
            selections=configuration.selections_dict(),
        )

    def as_event(self) -> SnapshotRestored:
        return SnapshotRestored(
            personalization_text=self.personalization_text,
            enabled=self.enabled,
            selections=dict(self.selections),
        )


def storage_key(subject_key: str) -> str:
    return STORAGE_KEY_PREFIX + str(subject_key)


class SessionPersistence:
    """
    Best-effort, session-scoped snapshot storage.

    `storage` is whatever lives as long as the shopper's session (Streamlit `st.session_state`
    in the storefront app). Failures are logged and swallowed: a missing snapshot only
    means the cart drawer starts from catalog defaults.
    """

    def __init__(self, storage: MutableMapping[str, Any]) -> None:
        self._storage = storage

    def save(self, subject_key: str, configuration: Configuration) -> bool:
        key = storage_key(subject_key)
        try:
            self._storage[key] = Snapshot.from_configuration(configuration).to_json()
        except Exception as exc:
            self._report(PersistenceError(f"Failed to save {key}: {exc}"), location="save")
            return False
        return True

    def load(self, subject_key: str) -> Optional[Snapshot]:
        key = storage_key(subject_key)
        try:
            raw = self._storage.get(key)
            if raw is None:
                return None
            return Snapshot.from_json(str(raw))
        except Exception as exc:
            self._report(PersistenceError(f"Failed to load {key}: {exc}"), location="load")
            return None

    def discard(self, subject_key: str) -> None:
        key = storage_key(subject_key)
        try:
            self._storage.pop(key, None)
        except Exception as exc:
            self._report(PersistenceError(f"Failed to discard {key}: {exc}"), location="discard")

    def _report(self, error: PersistenceError, *, location: str) -> None:
        log_event(
            logger,
            str(error),
            location=f"session_persistence.py:{location}",
            level=logging.WARNING,
            exc_info=error,
        )
