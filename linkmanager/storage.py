import json
import logging
import os
import tempfile
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

from .models import AppConfig, Dataset

logger = logging.getLogger(__name__)

DATA_KEY = "links_data_v1"
CONFIG_KEY = "app_config_v1"
BACKUP_PREFIX = "link-manager-backup"


class KeyValueStore(Protocol):
    def get(self, key: str) -> Optional[Dict[str, Any]]: ...

    def put(self, key: str, doc: Dict[str, Any]) -> None: ...


class JsonFileStore:
    """One JSON document per key, stored as ``<directory>/<key>.json``."""

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._path(key)
        if not path.exists():
            return None
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)

    def put(self, key: str, doc: Dict[str, Any]) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.directory, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(doc, f, indent=2, ensure_ascii=False)
            os.replace(tmp, self._path(key))
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise


class MemoryStore:
    def __init__(self, docs: Optional[Dict[str, Dict[str, Any]]] = None):
        self.docs: Dict[str, Dict[str, Any]] = {}
        for key, doc in (docs or {}).items():
            self.put(key, doc)

    def get(self, key: str) -> Optional[Dict[str, Any]]:
        doc = self.docs.get(key)
        # hand out copies so callers can't mutate what is stored
        return json.loads(json.dumps(doc)) if doc is not None else None

    def put(self, key: str, doc: Dict[str, Any]) -> None:
        self.docs[key] = json.loads(json.dumps(doc))


def load_dataset(store: KeyValueStore) -> Dataset:
    raw = store.get(DATA_KEY)
    if raw is None:
        return Dataset()
    return Dataset.model_validate(raw)


def save_dataset(store: KeyValueStore, dataset: Dataset):
    store.put(DATA_KEY, dataset.to_wire())
    logger.info(
        "dataset saved (%d categories, %d links)",
        len(dataset.categories),
        len(dataset.links),
    )


def load_config(store: KeyValueStore) -> AppConfig:
    raw = store.get(CONFIG_KEY)
    if raw is None:
        return AppConfig()
    return AppConfig.model_validate(raw)


def save_config(store: KeyValueStore, config: AppConfig):
    store.put(CONFIG_KEY, config.to_wire())


def backup_filename(day: Optional[date] = None) -> str:
    return f"{BACKUP_PREFIX}-{(day or date.today()).isoformat()}.json"
