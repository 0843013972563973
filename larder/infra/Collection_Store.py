"""Collection stores: whole-collection read/write persistence for products, batches and batch events.

A store never updates part of a collection. `write` always replaces the full
sequence of records, and `locked` is the serialization point callers hold
around a read-modify-write cycle so concurrent callers in one process cannot
lose each other's updates.
"""
import copy
import json
import logging
import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from threading import Lock, RLock
from typing import Dict, Iterable, List, Optional

from larder.domain.exceptions import CollectionNotFound, CorruptCollection, StoreError, StoreWriteError
from larder.infra.paths import collection_file
from larder.utilities.backup import BackupManager

logger = logging.getLogger(__name__)


class CollectionStore(ABC):

    def __init__(self):
        self._locks: Dict[str, RLock] = {}
        self._locks_guard = Lock()

    @abstractmethod
    def read(self, name: str) -> List[dict]:
        """Return every record of the collection, in stored order."""

    @abstractmethod
    def write(self, name: str, records: Iterable[dict]) -> None:
        """Replace the whole collection with `records`."""

    @contextmanager
    def locked(self, name: str):
        """Hold the (re-entrant) lock of one collection for the duration of the block."""
        with self._locks_guard:
            lock = self._locks.setdefault(name, RLock())
        with lock:
            yield


def _validate_records(name: str, data) -> List[dict]:
    if not isinstance(data, list):
        raise CorruptCollection(name, f"expected a list of records, got {type(data).__name__}")
    for index, record in enumerate(data):
        if not isinstance(record, dict):
            raise CorruptCollection(name, f"record #{index} is not an object")
    return data


class JsonFileCollectionStore(CollectionStore):
    """One JSON file per collection inside `data_dir`, written atomically."""

    def __init__(self, data_dir: Path, backup_manager: Optional[BackupManager] = None):
        super().__init__()
        self.data_dir = Path(data_dir)
        self.backup_manager = backup_manager

    def path_for(self, name: str) -> Path:
        return collection_file(self.data_dir, name)

    def ensure_collections(self, names: Iterable[str]) -> None:
        """Create an empty collection file for every name that has none yet."""
        for name in names:
            with self.locked(name):
                if not self.path_for(name).exists():
                    logger.info("Creating empty collection '%s' at %s", name, self.path_for(name))
                    self.write(name, [])

    def read(self, name: str) -> List[dict]:
        path = self.path_for(name)
        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            raise CollectionNotFound(name, path) from None
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in collection file %s: %s", path, e)
            raise CorruptCollection(name, str(e)) from e
        except (OSError, UnicodeDecodeError) as e:
            logger.error("Error reading collection file %s: %s", path, e)
            raise StoreError(name, f"Failed to read collection '{name}': {e}") from e
        return _validate_records(name, data)

    def write(self, name: str, records: Iterable[dict]) -> None:
        path = self.path_for(name)
        records = list(records)
        try:
            os.makedirs(path.parent, exist_ok=True)
            if self.backup_manager is not None and path.exists():
                self.backup_manager.create_backup(path.name)
            fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{name}_", suffix=".json")
        except OSError as e:
            logger.error("Cannot prepare write of %s: %s", path, e)
            raise StoreWriteError(name, str(e)) from e
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                json.dump(records, tmp, indent=2, ensure_ascii=False)
            shutil.move(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to write collection file %s: %s", path, e)
            raise StoreWriteError(name, str(e)) from e
        finally:
            if os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError as e:
                    logger.warning("Could not remove temporary file %s: %s", tmp_path, e)


class InMemoryCollectionStore(CollectionStore):
    """Dict-backed store; records are deep-copied in and out so callers never share state with it."""

    def __init__(self, initial: Optional[Dict[str, List[dict]]] = None):
        super().__init__()
        self._collections: Dict[str, List[dict]] = copy.deepcopy(initial) if initial else {}

    def read(self, name: str) -> List[dict]:
        if name not in self._collections:
            raise CollectionNotFound(name)
        return _validate_records(name, copy.deepcopy(self._collections[name]))

    def write(self, name: str, records: Iterable[dict]) -> None:
        self._collections[name] = copy.deepcopy(list(records))


__all__ = ["CollectionStore", "JsonFileCollectionStore", "InMemoryCollectionStore"]
