from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol

log = logging.getLogger(__name__)


class LocalStore(Protocol):
    """Durable string key/value storage that survives restarts and offline periods."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError

    def update(self, values: Mapping[str, Optional[str]]) -> None:
        """Apply several writes at once; a ``None`` value removes the key.

        Either every write lands or none does.
        """

        raise NotImplementedError


def _merged(data: Dict[str, str], values: Mapping[str, Optional[str]]) -> Dict[str, str]:
    merged = dict(data)
    for key, value in values.items():
        if value is None:
            merged.pop(key, None)
        else:
            merged[key] = str(value)
    return merged


class MemoryLocalStore(LocalStore):
    """Process-lifetime store; durable only as long as the object lives."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = str(value)

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def update(self, values: Mapping[str, Optional[str]]) -> None:
        self._data = _merged(self._data, values)

    def as_dict(self) -> Dict[str, str]:
        return dict(self._data)


class JsonFileLocalStore(LocalStore):
    """Write-through store backed by a single JSON object on disk.

    Every write rewrites the file through a temporary sibling and ``os.replace`` so a
    crash never leaves a half-written file behind. The in-memory copy only changes once
    the file has been replaced.
    """

    def __init__(self, path: str | Path):
        self._path = Path(path)
        self._data: Dict[str, str] = self._read()

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self.update({key: value})

    def remove(self, key: str) -> None:
        self.update({key: None})

    def update(self, values: Mapping[str, Optional[str]]) -> None:
        merged = _merged(self._data, values)
        if merged == self._data:
            return
        self._write(merged)
        self._data = merged
    def _read(self) -> Dict[str, str]:
        try:
            with open(self._path, "r", encoding="utf-8") as f:
                raw = json.load(f)
        except FileNotFoundError:
            return {}
        except (json.JSONDecodeError, OSError):
            log.warning("Local store '%s' is unreadable, starting empty.", self._path, exc_info=True)
            return {}

        if not isinstance(raw, dict):
            log.warning("Local store '%s' does not hold an object, starting empty.", self._path)
            return {}
        return {str(k): str(v) for k, v in raw.items() if v is not None}

    def _write(self, data: Dict[str, str]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, sort_keys=True)
        os.replace(tmp_path, self._path)
