from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Optional

from .errors import StoreError


class SessionStore:
    """Key/value persistence for one session. Values are strings."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError


class MemorySessionStore(SessionStore):
    def __init__(self, quota: Optional[int] = None) -> None:
        self._data: Dict[str, str] = {}
        self.quota = quota

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        if self.quota is not None and len(value) > self.quota:
            raise StoreError(f"Value for {key!r} exceeds quota of {self.quota} characters")
        self._data[key] = value


class JsonFileSessionStore(SessionStore):
    """All keys in one JSON object on disk."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def _load(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise StoreError(f"Cannot read session store {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StoreError(f"Session store {self.path} is not a JSON object")
        return data

    def get(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data), encoding="utf-8")
        except OSError as exc:
            raise StoreError(f"Cannot write session store {self.path}: {exc}") from exc
