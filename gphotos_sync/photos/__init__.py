"""
Google Photos Library API interaction module.

Handles authentication and the search/batchGet API calls.
"""

from .auth import OAuthManager
from .client import PhotosClient, PhotosClientConfig, split_into_groups

__all__ = [
    "OAuthManager",
    "PhotosClient",
    "PhotosClientConfig",
    "split_into_groups",
]
