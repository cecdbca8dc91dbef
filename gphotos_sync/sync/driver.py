"""
Sync coordination for Google Photos Sync.

SyncDriver runs one trigger at a time on the coordination thread: it talks to
the Photos API, updates the catalog, runs the downloader and records the
outcome. Only this thread touches the catalog.
"""

import logging
from typing import List, Optional, Protocol, Sequence

import requests

from ..catalog import DownloadableItem, MediaItem, MediaItemId, MediaKind, StoredItemStore
from ..config import AppConfig
from ..core.constants import BATCH_GET_MAX_IDS
from ..core.files import list_filenames
from ..errors import AuthError, CatalogWriteError, PhotosApiError
from ..scheduling import JobTask, TaskKind
from .downloader import MediaDownloader
from .selection import (
    apply_reconcile,
    dedupe_filenames,
    mark_downloaded,
    merge_media_items,
    reconcile,
    select_for_download,
)

log = logging.getLogger(__name__)

# Only photos have a byte-fetch URL; videos stay in the catalog undownloaded
DOWNLOADABLE_KINDS = {MediaKind.PHOTO}


class TokenProvider(Protocol):
    def get_valid_token(self) -> str: ...


class PhotosApi(Protocol):
    def search(self, token: str, days_back: int, limit: int) -> List[MediaItem]: ...

    def batch_get(self, token: str, media_item_ids: Sequence[MediaItemId]) -> List[MediaItem]: ...


def split_count(count: int, batch_size: int) -> List[int]:
    """Split a requested item count into batch sizes, e.g. (55, 25) -> [25, 25, 5]."""
    if count < 0:
        raise ValueError(f"count must be >= 0, got {count}")
    sizes = []
    remaining = count
    while remaining > 0:
        size = min(batch_size, remaining)
        sizes.append(size)
        remaining -= size
    return sizes


class SyncDriver:
    """Runs search, download, reconcile and token-refresh steps against the catalog."""

    def __init__(
        self,
        config: AppConfig,
        store: StoredItemStore,
        photos: PhotosApi,
        auth: TokenProvider,
        downloader: Optional[MediaDownloader] = None,
    ):
        self.config = config
        self.store = store
        self.photos = photos
        self.auth = auth
        self.downloader = downloader or MediaDownloader(
            config.storage_dir,
            max_workers=config.download_files_parallel,
            task_timeout=config.download_timeout,
        )

    @property
    def batch_size(self) -> int:
        return max(1, min(self.config.download_batch_size, BATCH_GET_MAX_IDS))

    def _merge(self, media_items: List[MediaItem]):
        """Merge remote metadata and fix filename collisions."""
        created, updated = merge_media_items(self.store, media_items)
        renamed = dedupe_filenames(self.store)
        log.info("Merged %d items (%d new, %d updated, %d renamed)",
                 len(media_items), created, updated, len(renamed))

    def search(self, days_back: int, limit: int) -> int:
        """
        Fetch recent items from the API into the catalog.

        Returns:
            Number of items fetched
        """
        token = self.auth.get_valid_token()
        media_items = self.photos.search(token, days_back, limit)
        self._merge(media_items)
        self.store.persist()
        return len(media_items)

    def download(self, count: int) -> List[MediaItemId]:
        """
        Download up to count undownloaded photos, in batches.

        Each batch re-fetches its items first because base URLs expire. Ids
        attempted in this call are not selected again, so a failing item
        cannot stall the remaining batches.

        Returns:
            Ids downloaded successfully
        """
        token = self.auth.get_valid_token()
        attempted = set()
        downloaded: List[MediaItemId] = []

        for batch_number, size in enumerate(split_count(count, self.batch_size), start=1):
            selected = select_for_download(self.store, size, exclude=attempted, kinds=DOWNLOADABLE_KINDS)
            if not selected:
                log.info("Nothing left to download")
                break

            selected_ids = [item.id for item in selected]
            attempted.update(selected_ids)

            refreshed = self.photos.batch_get(token, selected_ids)
            self._merge(refreshed)

            items = []
            for media_item in refreshed:
                stored = self.store.get(media_item.id)
                if stored is not None:
                    items.append(DownloadableItem.from_stored(stored))

            batch_ids = self.downloader.download(items, self.config.download_files_parallel)
            mark_downloaded(self.store, batch_ids)
            self.store.persist()
            downloaded.extend(batch_ids)

            log.info("Batch %d: selected %d, refreshed %d, downloaded %d",
                     batch_number, len(selected), len(refreshed), len(batch_ids))

        log.info("Download finished: %d items", len(downloaded))
        return downloaded

    def reconcile(self) -> tuple:
        """
        Correct downloaded flags against the files in the storage directory.

        Returns:
            Tuple of (marked, unmarked)
        """
        fs_filenames = list_filenames(self.config.storage_dir)
        partition = reconcile(self.store, fs_filenames)
        marked, unmarked = apply_reconcile(
            self.store,
            partition,
            apply_marks=self.config.reconcile_mark,
            apply_unmarks=self.config.reconcile_unmark,
        )
        self.store.persist()
        log.info("Reconciled %d files on disk: %d marked, %d unmarked (%d/%d found)",
                 len(fs_filenames), marked, unmarked,
                 len(partition.mark_downloaded), len(partition.unmark_downloaded))
        return marked, unmarked

    def refresh_token(self):
        self.auth.get_valid_token()
        log.info("Access token is valid")

    def handle(self, task: JobTask) -> bool:
        """
        Run one task. Per-cycle failures are logged and the task is dropped
        until its next trigger.

        Returns:
            True if the task completed
        """
        try:
            if task.kind is TaskKind.REFRESH_TOKEN:
                self.refresh_token()
            elif task.kind is TaskKind.SEARCH:
                self.search(task.days_back, task.limit)
            elif task.kind is TaskKind.DOWNLOAD:
                self.download(task.count)
            elif task.kind is TaskKind.RECONCILE:
                self.reconcile()
            else:
                raise ValueError(f"Unknown task kind: {task.kind}")
        except (AuthError, PhotosApiError, requests.exceptions.RequestException) as e:
            log.error("%s task failed: %s", task.kind.value, e)
            return False
        except CatalogWriteError as e:
            log.error("%s task could not save the catalog: %s", task.kind.value, e)
            return False
        except OSError as e:
            log.error("%s task failed on the filesystem: %s", task.kind.value, e)
            return False
        return True
