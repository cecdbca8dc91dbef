"""
Catalog policies for Google Photos Sync.

Decides what to download, keeps display filenames unique, and reconciles the
catalog's downloaded flags with the files actually present on disk. All
functions here work on the catalog only; directory listing and downloads
happen elsewhere.
"""

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Set, Tuple

from ..catalog import AppData, DownloadInfo, MediaItem, MediaItemId, MediaKind, StoredItem, StoredItemStore
from ..errors import CatalogWriteError

log = logging.getLogger(__name__)


def select_for_download(
    store: StoredItemStore,
    limit: int,
    exclude: Optional[Set[MediaItemId]] = None,
    kinds: Optional[Set[MediaKind]] = None,
) -> List[StoredItem]:
    """
    Pick up to `limit` catalog entries that are not yet downloaded.

    Entries are taken in identifier order.

    Args:
        store: Catalog
        limit: Maximum entries to return
        exclude: Ids to pass over (e.g. already attempted this cycle)
        kinds: If given, only entries of these media kinds

    Raises:
        ValueError: If limit is negative
    """
    exclude = exclude or set()

    def wanted(item: StoredItem) -> bool:
        if item.is_downloaded or item.id in exclude:
            return False
        return kinds is None or item.media_item.kind in kinds

    return store.filter(wanted, limit)


def merge_media_items(store: StoredItemStore, media_items: Iterable[MediaItem]) -> Tuple[int, int]:
    """
    Upsert remote metadata into the catalog.

    New ids get a fresh StoredItem; known ids get their MediaItem replaced
    while keeping download state and any alt_filename.

    Returns:
        Tuple of (created, updated)
    """
    created = 0
    updated = 0

    for media_item in media_items:
        existing = store.get(media_item.id)
        if existing is None:
            store.set(media_item.id, StoredItem(media_item=media_item))
            created += 1
        else:
            store.set(media_item.id, existing.with_media_item(media_item))
            updated += 1

    return created, updated


def mark_downloaded(
    store: StoredItemStore,
    media_item_ids: Iterable[MediaItemId],
    now: Optional[datetime] = None,
) -> int:
    """
    Flag items as downloaded. Unknown ids are skipped.

    If a throttled snapshot write fails partway, the remaining ids are still
    marked in memory before the CatalogWriteError is re-raised.

    Returns:
        Count marked
    """
    now = now or datetime.now(timezone.utc)
    marked = 0
    write_error = None

    for media_item_id in media_item_ids:
        item = store.get(media_item_id)
        if item is None:
            log.warning("Cannot mark unknown item %s as downloaded", media_item_id)
            continue
        item.app_data = AppData(download_info=DownloadInfo(downloaded_at=now))
        try:
            store.set(media_item_id, item)
        except CatalogWriteError as e:
            # set() keeps the in-memory update when the write fails
            write_error = e
        marked += 1

    if write_error is not None:
        raise write_error
    return marked


def unmark_downloaded(store: StoredItemStore, media_item_ids: Iterable[MediaItemId]) -> int:
    """Clear the downloaded flag so items are picked up again. Returns count cleared."""
    cleared = 0

    for media_item_id in media_item_ids:
        item = store.get(media_item_id)
        if item is None:
            continue
        if item.app_data is None:
            item.app_data = AppData()
        item.app_data.download_info = None
        store.set(media_item_id, item)
        cleared += 1

    return cleared


def _collision_order(item: StoredItem) -> tuple:
    return (item.media_item.creation_time, item.id)


def _free_name(base: str, position: int, taken: Set[str]) -> str:
    """First "{n}_{base}" with n >= position that no other entry uses."""
    n = position
    while f"{n}_{base}" in taken:
        n += 1
    return f"{n}_{base}"


def dedupe_filenames(store: StoredItemStore) -> List[MediaItemId]:
    """
    Give every entry a unique display filename.

    Entries sharing a remote filename form a collision group, ordered by
    (creation_time, id). Each member without an alt_filename is renamed to
    "{position}_{filename}", including position 0. The one exception is a
    member already downloaded under the bare name: it is pinned to that name
    so the catalog keeps pointing at the file on disk. Existing alt_filenames
    are never changed.

    The caller is responsible for persisting.

    Returns:
        Ids whose alt_filename was assigned
    """
    items = store.all()
    groups = defaultdict(list)
    for item in items:
        groups[item.media_item.filename].append(item)

    taken = {
        item.display_filename
        for item in items
        if item.alt_filename or len(groups[item.media_item.filename]) == 1
    }
    renamed = {}

    for base in sorted(groups):
        members = groups[base]
        if len(members) < 2:
            continue
        members.sort(key=_collision_order)
        for position, item in enumerate(members):
            if item.alt_filename:
                continue
            if item.is_downloaded and base not in taken:
                # Already on disk under the bare name; pin it there
                item.alt_filename = base
            else:
                item.alt_filename = _free_name(base, position, taken)
            taken.add(item.alt_filename)
            renamed[item.id] = item

    # A unique remote name can still clash with a prefixed name given out
    # earlier (e.g. a later upload literally named "0_img.jpg")
    counts = Counter(item.display_filename for item in items)
    for item in items:
        if item.id in renamed or item.alt_filename:
            continue
        if counts[item.display_filename] > 1:
            counts[item.display_filename] -= 1
            item.alt_filename = _free_name(item.media_item.filename, 0, taken)
            taken.add(item.alt_filename)
            counts[item.alt_filename] += 1
            renamed[item.id] = item

    for media_item_id in sorted(renamed):
        store.set(media_item_id, renamed[media_item_id])

    if renamed:
        log.info("Renamed %d items with colliding filenames", len(renamed))

    return sorted(renamed)


@dataclass
class ReconcilePartition:
    """Result of comparing the catalog to a directory listing."""
    mark_downloaded: List[MediaItemId] = field(default_factory=list)
    unmark_downloaded: List[MediaItemId] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.mark_downloaded and not self.unmark_downloaded


def reconcile(store: StoredItemStore, fs_filenames: Set[str]) -> ReconcilePartition:
    """
    Partition catalog entries by how their downloaded flag disagrees with disk.

    - On disk but not flagged -> mark_downloaded
    - Flagged but missing from disk -> unmark_downloaded

    Entries that already agree are left out. Performs no I/O.
    """
    partition = ReconcilePartition()

    for item in store.all():
        on_disk = item.display_filename in fs_filenames
        if on_disk and not item.is_downloaded:
            partition.mark_downloaded.append(item.id)
        elif not on_disk and item.is_downloaded:
            partition.unmark_downloaded.append(item.id)

    return partition


def apply_reconcile(
    store: StoredItemStore,
    partition: ReconcilePartition,
    apply_marks: bool = True,
    apply_unmarks: bool = True,
) -> Tuple[int, int]:
    """
    Apply a reconcile partition, each direction behind its own switch.

    Returns:
        Tuple of (marked, unmarked)
    """
    marked = mark_downloaded(store, partition.mark_downloaded) if apply_marks else 0
    unmarked = unmark_downloaded(store, partition.unmark_downloaded) if apply_unmarks else 0
    return marked, unmarked
