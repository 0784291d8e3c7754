from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

HIGH_SCORE_KEY = "between_highscore"
HIGH_SCORE_STORE_ENV = "BETWEEN_HIGHSCORE_PATH"


class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...


class MemoryKeyValueStore:
    """In-process store (tests, or when no file location is usable)."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)


class JsonKeyValueStore:
    """String key/value pairs kept in one JSON file.

    Reads and writes never raise: a missing, unreadable or malformed file
    behaves as an empty store and failed writes are logged and dropped.
    """

    _version = 1

    def __init__(self, path: Path) -> None:
        self._path = path
        self._data: dict[str, str] = {}
        self._load()

    @classmethod
    def default_path(cls) -> Path:
        explicit = os.environ.get(HIGH_SCORE_STORE_ENV)
        if explicit:
            return Path(explicit).expanduser()
        return Path.home() / ".between_trainer.json"

    @property
    def path(self) -> Path:
        return self._path

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)
        self._save()

    def _load(self) -> None:
        if not self._path.exists():
            return
        try:
            payload = json.loads(self._path.read_text(encoding="utf-8"))
        except Exception as exc:
            logger.warning("high score store unreadable at %s: %s", self._path, exc)
            return
        if not isinstance(payload, dict):
            return
        values = payload.get("values")
        if not isinstance(values, dict):
            return
        self._data = {str(k): str(v) for k, v in values.items()}

    def _save(self) -> None:
        payload = {"version": self._version, "values": self._data}
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self._path.with_suffix(f"{self._path.suffix}.tmp")
            tmp_path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
            tmp_path.replace(self._path)
        except Exception as exc:
            logger.warning("could not write high score store %s: %s", self._path, exc)


class HighScoreStore:
    """Best score persisted under a single key. ``load``/``save`` never raise."""

    def __init__(self, store: KeyValueStore | None, *, key: str = HIGH_SCORE_KEY) -> None:
        self._store = store
        self._key = key

    def load(self) -> int:
        if self._store is None:
            return 0
        try:
            raw = self._store.get(self._key)
        except Exception as exc:
            logger.warning("high score load failed: %s", exc)
            return 0
        if raw is None:
            return 0
        try:
            value = int(str(raw).strip())
        except ValueError:
            logger.warning("ignoring malformed high score %r", raw)
            return 0
        return max(0, value)

    def save(self, score: int) -> None:
        if self._store is None:
            return
        try:
            self._store.set(self._key, str(int(score)))
        except Exception as exc:
            logger.warning("high score save failed: %s", exc)
