"""
Google Photos Library API client for Google Photos Sync.

Handles the HTTP side of searching and re-fetching media items.
Does NOT handle downloads (see MediaDownloader for that).
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence, TypeVar

import requests

from ..catalog import MediaItem, MediaItemId
from ..core.constants import BATCH_GET_MAX_IDS, PHOTOS_API_BASE, SEARCH_PAGE_SIZE
from ..errors import PhotosApiError

log = logging.getLogger(__name__)

T = TypeVar("T")


def split_into_groups(items: Sequence[T], group_size: int) -> List[List[T]]:
    """Split items into consecutive groups of at most group_size."""
    if group_size < 1:
        raise ValueError(f"group_size must be >= 1, got {group_size}")
    return [list(items[i:i + group_size]) for i in range(0, len(items), group_size)]


def _api_date(value: datetime) -> dict:
    return {"year": value.year, "month": value.month, "day": value.day}


def date_range(days_back: int, now: Optional[datetime] = None) -> dict:
    """Date filter range covering the last days_back days up to today."""
    end = now or datetime.now(timezone.utc)
    start = end - timedelta(days=days_back)
    return {"startDate": _api_date(start), "endDate": _api_date(end)}


@dataclass
class PhotosClientConfig:
    """Configuration for PhotosClient."""
    timeout: int = 60
    page_size: int = SEARCH_PAGE_SIZE


class PhotosClient:
    """
    Photos Library API client.

    Every call takes the OAuth access token explicitly so the caller controls
    refresh. Failures raise PhotosApiError; there is no retry.
    """

    API_SEARCH = f"{PHOTOS_API_BASE}/mediaItems:search"
    API_BATCH_GET = f"{PHOTOS_API_BASE}/mediaItems:batchGet"

    def __init__(self, config: Optional[PhotosClientConfig] = None, session: Optional[requests.Session] = None):
        """
        Initialize the Photos client.

        Args:
            config: Client configuration
            session: Optional requests session (shared connection pool)
        """
        self.config = config or PhotosClientConfig()
        self.session = session or requests.Session()
        self._api_calls = 0

    @property
    def api_calls(self) -> int:
        """Total API calls made by this client."""
        return self._api_calls

    @staticmethod
    def _get_headers(token: str) -> dict:
        return {"Authorization": f"Bearer {token}"}

    def _request(self, method: str, url: str, token: str, **kwargs) -> dict:
        """Make one API request and return the decoded JSON body."""
        try:
            response = self.session.request(
                method,
                url,
                headers=self._get_headers(token),
                timeout=self.config.timeout,
                **kwargs,
            )
            self._api_calls += 1
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else 0
            raise PhotosApiError(f"{method} {url} failed: HTTP {status}", status_code=status) from e
        except requests.exceptions.RequestException as e:
            raise PhotosApiError(f"{method} {url} failed: {e}") from e
        except ValueError as e:
            raise PhotosApiError(f"{method} {url} returned invalid JSON: {e}") from e

    @staticmethod
    def _parse_items(raw_items: list) -> List[MediaItem]:
        items = []
        for raw in raw_items:
            try:
                items.append(MediaItem.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                log.warning("Skipping malformed media item %s: %r", raw.get("id", "?"), e)
        return items

    def search(self, token: str, days_back: int, limit: int) -> List[MediaItem]:
        """
        Search media items created within the last days_back days.

        Follows pagination until limit items are collected or the results run out.

        Args:
            token: OAuth access token
            days_back: Size of the date window ending today
            limit: Maximum number of items to return

        Returns:
            List of MediaItem (at most limit)
        """
        media_items: List[MediaItem] = []
        page_token = None
        filters = {
            "dateFilter": {"ranges": [date_range(days_back)]},
            "includeArchivedMedia": True,
        }

        while len(media_items) < limit:
            body = {
                "pageSize": min(self.config.page_size, limit - len(media_items)),
                "filters": filters,
            }
            if page_token:
                body["pageToken"] = page_token

            data = self._request("POST", self.API_SEARCH, token, json=body)
            page = self._parse_items(data.get("mediaItems", []))
            log.debug("Search page returned %d items", len(page))
            media_items.extend(page)

            page_token = data.get("nextPageToken")
            if not page_token:
                break

        log.info("Search (last %d days) found %d items", days_back, len(media_items[:limit]))
        return media_items[:limit]

    def batch_get(self, token: str, media_item_ids: Sequence[MediaItemId]) -> List[MediaItem]:
        """
        Re-fetch media items by id, refreshing their base URLs.

        Ids are requested in groups of 50 (the API maximum). Ids the API
        reports as errors are left out of the result.
        """
        groups = split_into_groups(list(media_item_ids), BATCH_GET_MAX_IDS)
        log.debug("Split %d ids into %d batchGet groups", len(media_item_ids), len(groups))

        fetched: List[MediaItem] = []
        for group in groups:
            params = [("mediaItemIds", media_item_id) for media_item_id in group]
            data = self._request("GET", self.API_BATCH_GET, token, params=params)

            raw_items = []
            for result in data.get("mediaItemResults", []):
                if "mediaItem" in result:
                    raw_items.append(result["mediaItem"])
                else:
                    status = result.get("status", {})
                    log.warning(
                        "batchGet failed for %s: %s",
                        result.get("mediaItemId", "?"),
                        status.get("message", "unknown error"),
                    )
            fetched.extend(self._parse_items(raw_items))

        return fetched
