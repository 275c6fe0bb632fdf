"""
Index Store - The catalog and its JSON file.

The store is the only thing allowed to mutate the catalog. Every mutation
is written through to disk before the call returns, under the same lock,
so an interruption can lose at most the file currently being processed
and readers never see a half-applied change.

Writes go to a temporary sibling file which is fsynced and atomically
renamed over the catalog, so a crash mid-write leaves the previous
complete catalog in place.
"""

import copy
import json
import logging
import os
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from .config import get_config, IndexerConfig
from .errors import PersistError
from .models import Catalog, IndexEntry, current_timestamp


logger = logging.getLogger(__name__)


def path_within(path: str | Path, directory: str | Path) -> bool:
    """True if path is the directory itself or anywhere beneath it."""
    try:
        Path(path).relative_to(Path(directory))
        return True
    except ValueError:
        return False


class IndexStore:
    """
    In-memory catalog with write-through persistence.

    Entries are keyed by path and kept in insertion order; an upsert of an
    existing path replaces it in place, so an unchanged catalog always
    serializes to the same bytes.
    """

    def __init__(self, config: IndexerConfig | None = None):
        self.config = config or get_config()
        self.path = self.config.state_path
        self._lock = threading.RLock()
        self._entries: Dict[str, IndexEntry] = {}
        self._directories: List[str] = []
        self._last_indexed_at: Optional[int] = None
        self._warnings: List[str] = []
        self._load()

    # ------------------------------------------------------------------
    # Loading / saving
    # ------------------------------------------------------------------

    def _load(self) -> None:
        """Load the catalog. Anything unreadable means starting fresh."""
        if not self.path.exists():
            logger.info(f"No catalog at {self.path}; starting empty")
            return

        try:
            raw = self.path.read_text(encoding="utf-8")
            catalog = Catalog.from_dict(json.loads(raw))
        except (OSError, ValueError, KeyError, TypeError) as e:
            logger.warning(f"Catalog at {self.path} is unreadable ({e}); starting empty")
            return

        self._directories = catalog.directories
        self._entries = {entry.path: entry for entry in catalog.entries}
        self._last_indexed_at = catalog.last_indexed_at
        self._warnings = catalog.warnings
        logger.info(f"Loaded catalog: {len(self._entries)} entries, {len(self._directories)} directories")

    def _catalog_locked(self) -> Catalog:
        return Catalog(
            directories=list(self._directories),
            entries=list(self._entries.values()),
            last_indexed_at=self._last_indexed_at,
            warnings=list(self._warnings),
        )

    def _persist_locked(self) -> None:
        payload = json.dumps(self._catalog_locked().to_dict(), indent=2, ensure_ascii=False)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except OSError as e:
            try:
                tmp_path.unlink(missing_ok=True)
            except OSError:
                logger.debug(f"Could not remove {tmp_path}")
            raise PersistError(f"Could not write catalog to {self.path}: {e}") from e
        logger.debug(f"Catalog saved ({len(self._entries)} entries)")

    def persist(self) -> None:
        """Write the current catalog. Raises PersistError."""
        with self._lock:
            self._persist_locked()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, path: str | Path) -> Optional[IndexEntry]:
        with self._lock:
            return self._entries.get(str(path))

    def get_by_id(self, entry_id: str) -> Optional[IndexEntry]:
        with self._lock:
            return next((e for e in self._entries.values() if e.id == entry_id), None)

    def entries(self) -> List[IndexEntry]:
        with self._lock:
            return list(self._entries.values())

    def entries_within(self, directories: Iterable[str]) -> List[IndexEntry]:
        directories = list(directories)
        with self._lock:
            return [
                entry for entry in self._entries.values()
                if any(path_within(entry.path, d) for d in directories)
            ]

    def filter(self, predicate: Callable[[IndexEntry], bool]) -> List[IndexEntry]:
        with self._lock:
            return [entry for entry in self._entries.values() if predicate(entry)]

    def directories(self) -> List[str]:
        with self._lock:
            return list(self._directories)

    @property
    def last_indexed_at(self) -> Optional[int]:
        with self._lock:
            return self._last_indexed_at

    def snapshot(self) -> Catalog:
        """A deep copy of the catalog, safe to hand to other threads."""
        with self._lock:
            return copy.deepcopy(self._catalog_locked())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    # ------------------------------------------------------------------
    # Mutations (each one persists before returning)
    # ------------------------------------------------------------------

    def upsert(self, entry: IndexEntry) -> None:
        """
        Insert or replace the entry for entry.path and save.

        Raises:
            PersistError: the in-memory catalog was updated but the file
                could not be written.
        """
        with self._lock:
            self._entries[entry.path] = entry
            self._persist_locked()

    def remove(self, path: str | Path) -> bool:
        """Remove the entry for path and save. Returns False if absent."""
        with self._lock:
            if self._entries.pop(str(path), None) is None:
                return False
            self._persist_locked()
            return True

    def set_directories(self, directories: List[str]) -> None:
        with self._lock:
            self._directories = list(directories)
            self._persist_locked()

    def finish_scan(self, changed: bool, warnings: List[str]) -> Optional[int]:
        """
        Record the end of a scan and save.

        The timestamp only moves when the scan changed the catalog (or no
        scan was ever recorded), so rescanning an unchanged tree leaves the
        file byte-for-byte identical.
        """
        with self._lock:
            if changed or self._last_indexed_at is None:
                self._last_indexed_at = current_timestamp()
            self._warnings = list(warnings)
            last_indexed_at = self._last_indexed_at
            self._persist_locked()
            return last_indexed_at

    def clear(self) -> None:
        """Drop every entry and warning. Linked directories are kept."""
        with self._lock:
            self._entries.clear()
            self._warnings = []
            self._last_indexed_at = current_timestamp()
            self._persist_locked()
        logger.info("Catalog cleared")
