"""
Shared constants for Google Photos Sync.
"""

# Read-only scope; the app never modifies the user's library
PHOTOS_OAUTH_SCOPES = ["https://www.googleapis.com/auth/photoslibrary.readonly"]

PHOTOS_API_BASE = "https://photoslibrary.googleapis.com/v1"

# Page size for mediaItems:search (API maximum is 100)
SEARCH_PAGE_SIZE = 100

# mediaItems:batchGet accepts at most 50 ids per call
BATCH_GET_MAX_IDS = 50

# Catalog snapshot is rewritten at most this often during bursts of updates
CATALOG_PERSIST_INTERVAL = 5.0

# Suffix for in-progress downloads
PARTIAL_SUFFIX = ".part"
