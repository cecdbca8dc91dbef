"""Pytest configuration and fixtures."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from gphotos_sync.catalog import MediaItem, MediaKind, StoredItem, open_catalog

BASE_TIME = datetime(2019, 5, 1, 10, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def make_media_item(
    media_item_id: str,
    filename: str = None,
    kind: MediaKind = MediaKind.PHOTO,
    minutes: int = 0,
    width: int = 4032,
    height: int = 3024,
) -> MediaItem:
    return MediaItem(
        id=media_item_id,
        base_url=f"https://lh3.example.com/{media_item_id}",
        filename=filename or f"{media_item_id}.jpg",
        creation_time=BASE_TIME + timedelta(minutes=minutes),
        kind=kind,
        width=width,
        height=height,
    )


def make_stored_item(media_item_id: str, filename: str = None, **kwargs) -> StoredItem:
    return StoredItem(media_item=make_media_item(media_item_id, filename, **kwargs))


@pytest.fixture
def temp_dir():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(temp_dir, clock):
    return open_catalog(temp_dir / "photos.data", clock=clock)
