"""
Google Photos Sync - keep a local copy of a Google Photos library.

This package keeps a JSON catalog of remote media items, reconciles it with
the download directory and downloads missing photos in parallel batches.

Import from submodules directly:
    from gphotos_sync.config import AppConfig
    from gphotos_sync.catalog import open_catalog
    from gphotos_sync.photos import PhotosClient, OAuthManager
    from gphotos_sync.sync import SyncDriver
"""

__version__ = "0.1.0"
