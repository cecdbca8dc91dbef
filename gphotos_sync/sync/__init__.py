"""
Sync operations module.

Handles download selection, filename deduplication, disk reconciliation,
parallel downloading and per-trigger coordination.
"""

from .selection import (
    ReconcilePartition,
    apply_reconcile,
    dedupe_filenames,
    mark_downloaded,
    merge_media_items,
    reconcile,
    select_for_download,
    unmark_downloaded,
)
from .downloader import DownloadResult, MediaDownloader
from .driver import SyncDriver, split_count

__all__ = [
    # Selection and reconciliation
    "ReconcilePartition",
    "apply_reconcile",
    "dedupe_filenames",
    "mark_downloaded",
    "merge_media_items",
    "reconcile",
    "select_for_download",
    "unmark_downloaded",
    # Downloader
    "DownloadResult",
    "MediaDownloader",
    # Driver
    "SyncDriver",
    "split_count",
]
