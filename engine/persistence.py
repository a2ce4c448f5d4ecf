"""
Filter persistence across sessions.

The most recent criteria and sort are saved under ``<namespace>:filters`` in
a key/value storage backend as a versioned JSON payload::

    {"version": 1, "criteria": {...}, "sort": "pnl:desc", "saved_at": "..."}

Storage is best-effort.  A backend that is missing, full, or returns a
corrupt payload is logged and treated as "nothing saved"; no storage
failure ever reaches the caller.  Payloads from another schema version are
removed rather than migrated.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Protocol

from engine.criteria import FilterCriteria, SortSpec
from engine.errors import QuotaExceededError, StorageError
from engine.validator import validate_criteria, validate_sort

logger = logging.getLogger(__name__)

PAYLOAD_VERSION = 1
# Browser storage quotas are a few MiB per origin; stay well under them.
MAX_PAYLOAD_BYTES = 1024 * 1024


class StorageBackend(Protocol):
    """Minimal string key/value store (the localStorage surface)."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemoryStorage:
    """Dict-backed storage with an optional byte quota."""

    def __init__(self, quota_bytes: int | None = None) -> None:
        self._items: dict[str, str] = {}
        self.quota_bytes = quota_bytes

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            used = sum(len(k) + len(v) for k, v in self._items.items() if k != key)
            if used + len(key) + len(value) > self.quota_bytes:
                raise QuotaExceededError(f"storage quota of {self.quota_bytes} bytes exceeded")
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def __len__(self) -> int:
        return len(self._items)


class JsonFileStorage:
    """Storage backed by one JSON object on disk, rewritten on each change.

    The file is created on first write.  Raises ``StorageError`` when the
    file exists but does not hold a JSON object.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def _read_all(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except ValueError as exc:
            raise StorageError(f"{self.path} is not valid JSON: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"{self.path} does not contain a JSON object")
        return data

    def _write_all(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
        tmp.replace(self.path)

    def get_item(self, key: str) -> str | None:
        with self._lock:
            value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str) -> None:
        with self._lock:
            data = self._read_all()
            data[key] = value
            self._write_all(data)

    def remove_item(self, key: str) -> None:
        with self._lock:
            data = self._read_all()
            if data.pop(key, None) is not None:
                self._write_all(data)


class PersistenceStore:
    """Saves and restores the last-used criteria and sort."""

    def __init__(self, backend: StorageBackend | None, namespace: str = "trade-journal") -> None:
        self.backend = backend
        self.namespace = namespace

    @property
    def key(self) -> str:
        return f"{self.namespace}:filters"

    @property
    def available(self) -> bool:
        return self.backend is not None

    def save(self, criteria: FilterCriteria, sort: SortSpec) -> bool:
        """Write the payload; returns False when storage refused it."""
        if self.backend is None:
            return False
        payload = json.dumps({
            "version": PAYLOAD_VERSION,
            "criteria": criteria.to_dict(),
            "sort": sort.to_token(),
            "saved_at": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        }, sort_keys=True)
        if len(payload.encode("utf-8")) > MAX_PAYLOAD_BYTES:
            logger.warning("filter payload is %d bytes; not persisting", len(payload))
            return False
        try:
            self._write(payload)
        except QuotaExceededError as exc:
            logger.warning("storage full, filters not saved: %s", exc)
            return False
        except (StorageError, OSError) as exc:
            logger.warning("storage unavailable, filters not saved: %s", exc)
            return False
        logger.debug("saved filters under %s", self.key)
        return True

    def _write(self, payload: str) -> None:
        try:
            self.backend.set_item(self.key, payload)
        except QuotaExceededError as exc:
            # Free the previous payload's space and try once more
            logger.info("storage full, retrying without old filters: %s", exc)
            self.backend.remove_item(self.key)
            self.backend.set_item(self.key, payload)

    def load(self) -> tuple[FilterCriteria, SortSpec] | None:
        """Return the saved (criteria, sort), or None if nothing usable is stored.

        Fields that no longer validate are dropped individually.
        """
        if self.backend is None:
            return None
        try:
            raw = self.backend.get_item(self.key)
        except (StorageError, OSError) as exc:
            logger.warning("storage unavailable, starting with defaults: %s", exc)
            return None
        if raw is None:
            return None

        try:
            payload = json.loads(raw)
        except ValueError:
            logger.warning("discarding corrupt filter payload under %s", self.key)
            self._remove_quietly()
            return None
        if not isinstance(payload, dict):
            logger.warning("discarding malformed filter payload under %s", self.key)
            self._remove_quietly()
            return None
        if payload.get("version") != PAYLOAD_VERSION:
            logger.info("discarding filter payload with version %r", payload.get("version"))
            self._remove_quietly()
            return None

        criteria = validate_criteria(payload.get("criteria") or {})
        sort = validate_sort(payload.get("sort"))
        for issue in criteria.issues + sort.issues:
            logger.info("dropped persisted %s: %s", issue.field, issue.reason.value)
        return criteria.value, sort.value

    def clear(self) -> None:
        """Forget any saved filters."""
        if self.backend is not None:
            self._remove_quietly()

    def _remove_quietly(self) -> None:
        try:
            self.backend.remove_item(self.key)
        except (StorageError, OSError) as exc:
            logger.warning("could not remove %s: %s", self.key, exc)
