"""
Persisted key-value catalog for Google Photos Sync.

The whole mapping lives in memory and is written to a single JSON document.
Writes are throttled: a mutation only triggers a snapshot if the last one is
older than the persist interval. Callers force a snapshot with persist() at
the end of each sync step.
"""

import copy
import json
import logging
import os
import time
from pathlib import Path
from typing import Callable, Dict, Generic, Iterator, List, Optional, TypeVar

from ..core.constants import CATALOG_PERSIST_INTERVAL
from ..errors import CatalogCorruptError, CatalogWriteError

log = logging.getLogger(__name__)

T = TypeVar("T")


class CatalogStore(Generic[T]):
    """
    Mapping of identifier -> record backed by a JSON file.

    Records are converted with an encode/decode pair (e.g. StoredItem.to_dict
    and StoredItem.from_dict). Every read returns an independent copy so
    callers never see later mutations through a shared reference.
    """

    def __init__(
        self,
        path: Path,
        encode: Callable[[T], dict],
        decode: Callable[[dict], T],
        persist_interval: float = CATALOG_PERSIST_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize an empty store. Use open() to load from disk.

        Args:
            path: Catalog JSON file
            encode: Record -> JSON-compatible dict
            decode: JSON dict -> record
            persist_interval: Minimum seconds between throttled writes
            clock: Monotonic time source (injectable for tests)
        """
        self.path = Path(path)
        self._encode = encode
        self._decode = decode
        self.persist_interval = persist_interval
        self._clock = clock
        self._data: Dict[str, T] = {}
        self._last_save_at = clock()
        self.writes = 0

    @classmethod
    def open(
        cls,
        path: Path,
        encode: Callable[[T], dict],
        decode: Callable[[dict], T],
        persist_interval: float = CATALOG_PERSIST_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> "CatalogStore[T]":
        """
        Load a catalog from disk, or start empty if the file does not exist.

        Raises:
            CatalogCorruptError: If the file exists but cannot be parsed
        """
        store = cls(path, encode, decode, persist_interval=persist_interval, clock=clock)
        store._load()
        return store

    def _load(self):
        if not self.path.exists():
            log.info("No catalog at %s, starting empty", self.path)
            return

        try:
            with open(self.path, encoding="utf-8") as f:
                raw = json.load(f)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CatalogCorruptError(f"Catalog {self.path} is not valid JSON: {e}") from e

        if not isinstance(raw, dict):
            raise CatalogCorruptError(f"Catalog {self.path} must be a JSON object")

        try:
            self._data = {key: self._decode(value) for key, value in raw.items()}
        except (KeyError, TypeError, ValueError) as e:
            raise CatalogCorruptError(f"Catalog {self.path} has a malformed record: {e!r}") from e

        log.info("Loaded %d catalog records from %s", len(self._data), self.path)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def ids(self) -> List[str]:
        """All identifiers, sorted."""
        return sorted(self._data)

    def _iter_sorted(self) -> Iterator[T]:
        for key in sorted(self._data):
            yield self._data[key]

    def get(self, key: str) -> Optional[T]:
        """Return a copy of the record for key, or None."""
        record = self._data.get(key)
        if record is None:
            return None
        return copy.deepcopy(record)

    def set(self, key: str, record: T) -> Optional[T]:
        """
        Insert or replace a record.

        The store keeps its own copy, so the caller may keep mutating the
        object it passed in.

        Returns:
            The previous record, or None

        Raises:
            CatalogWriteError: If a throttled snapshot write fails. The
                in-memory update is kept.
        """
        previous = self._data.get(key)
        self._data[key] = copy.deepcopy(record)

        if self._should_persist():
            self.persist()

        return previous

    def _should_persist(self) -> bool:
        return self._clock() - self._last_save_at > self.persist_interval

    def filter(self, predicate: Callable[[T], bool], limit: Optional[int] = None) -> List[T]:
        """
        Return copies of up to `limit` records matching predicate.

        Records are visited in identifier order.
        """
        if limit is not None and limit < 0:
            raise ValueError(f"limit must be >= 0, got {limit}")

        results = []
        if limit == 0:
            return results

        for record in self._iter_sorted():
            if predicate(record):
                results.append(copy.deepcopy(record))
                if limit is not None and len(results) >= limit:
                    break
        return results

    def all(self) -> List[T]:
        """Copies of every record, in identifier order."""
        return [copy.deepcopy(record) for record in self._iter_sorted()]

    def persist(self):
        """
        Write the full mapping to disk, regardless of the throttle.

        The snapshot goes to a sibling temp file first and is then moved over
        the catalog, so a crash mid-write leaves the previous snapshot intact.

        Raises:
            CatalogWriteError: On any filesystem error
        """
        data = {key: self._encode(record) for key, record in self._data.items()}
        tmp_path = self.path.with_name(self.path.name + ".tmp")

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise CatalogWriteError(f"Could not write catalog {self.path}: {e}") from e

        self._last_save_at = self._clock()
        self.writes += 1
        log.debug("Persisted %d catalog records to %s", len(data), self.path)
