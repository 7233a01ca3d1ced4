#
# persistence.py
# bounded collections stored by key
# a missing or corrupt collection always loads as empty
#
from __future__ import annotations
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Protocol

from common.errors import PersistenceCorrupt

logger = logging.getLogger(__name__)


class Persistence(Protocol):
    def load(self, key: str) -> List[Dict]:
        ...

    def save(self, key: str, items: List[Dict]) -> None:
        ...


def _decode(key: str, raw: str) -> List[Dict]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        logger.warning(f"[STORE] {key} is not valid JSON, treating as empty: {e}")
        return []
    if not isinstance(data, list):
        logger.warning(f"[STORE] {key} is not a list, treating as empty")
        return []
    return data


class JsonFilePersistence:
    """One ``<key>.json`` file per collection inside ``directory``."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def load(self, key: str) -> List[Dict]:
        path = self._path(key)
        if not path.exists():
            return []
        try:
            raw = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"[STORE] Failed to read {path}: {e}")
            return []
        return _decode(key, raw)

    def save(self, key: str, items: List[Dict]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(key)
        # write then rename so a crash never leaves a half-written file
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{key}-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(items, f, ensure_ascii=False)
            os.replace(tmp, path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise


class MemoryPersistence:
    def __init__(self, initial: Dict[str, str] | None = None):
        # raw JSON text per key, so corrupt payloads can be simulated
        self._data: Dict[str, str] = dict(initial or {})

    def load(self, key: str) -> List[Dict]:
        raw = self._data.get(key)
        if raw is None:
            return []
        return _decode(key, raw)

    def save(self, key: str, items: List[Dict]) -> None:
        self._data[key] = json.dumps(items, ensure_ascii=False)

    def raw(self, key: str) -> str | None:
        return self._data.get(key)


def load_records(persistence: Persistence, key: str, factory) -> list:
    # decode each entry, dropping the ones that do not parse
    records = []
    for item in persistence.load(key):
        try:
            records.append(factory(item))
        except PersistenceCorrupt as e:
            logger.warning(f"[STORE] Dropping entry from {key}: {e}")
    return records
