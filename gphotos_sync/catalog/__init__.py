"""
Local catalog of Google Photos media items.

The catalog is a JSON file mapping media item id -> StoredItem, loaded
wholesale at startup and rewritten wholesale on persist.
"""

from pathlib import Path

from .models import (
    AppData,
    DownloadableItem,
    DownloadInfo,
    MediaItem,
    MediaItemId,
    MediaKind,
    StoredItem,
)
from .store import CatalogStore

StoredItemStore = CatalogStore[StoredItem]


def open_catalog(path: Path, **kwargs) -> StoredItemStore:
    """Open the StoredItem catalog at path (see CatalogStore.open)."""
    return CatalogStore.open(path, StoredItem.to_dict, StoredItem.from_dict, **kwargs)


__all__ = [
    "AppData",
    "CatalogStore",
    "DownloadableItem",
    "DownloadInfo",
    "MediaItem",
    "MediaItemId",
    "MediaKind",
    "StoredItem",
    "StoredItemStore",
    "open_catalog",
]
