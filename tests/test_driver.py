"""
Tests for SyncDriver - search merge, batched downloads, reconcile, task dispatch.
"""

from unittest.mock import patch

import pytest

from gphotos_sync.catalog import MediaKind
from gphotos_sync.config import AppConfig
from gphotos_sync.errors import AuthError, PhotosApiError
from gphotos_sync.scheduling import JobTask
from gphotos_sync.sync.driver import SyncDriver, split_count
from gphotos_sync.sync.selection import mark_downloaded, merge_media_items

from conftest import make_media_item


class FakeAuth:
    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    def get_valid_token(self):
        self.calls += 1
        if self.error:
            raise self.error
        return "tok"


class FakePhotos:
    """In-memory stand-in for the Photos API."""

    def __init__(self, library=(), error=None):
        self.library = {item.id: item for item in library}
        self.error = error
        self.batch_calls = []

    def search(self, token, days_back, limit):
        if self.error:
            raise self.error
        return list(self.library.values())[:limit]

    def batch_get(self, token, media_item_ids):
        if self.error:
            raise self.error
        self.batch_calls.append(list(media_item_ids))
        return [self.library[i] for i in media_item_ids if i in self.library]


class FakeDownloader:
    def __init__(self, fail_ids=()):
        self.fail_ids = set(fail_ids)
        self.batches = []

    def download(self, items, concurrency=None):
        self.batches.append([(item.id, item.filename) for item in items])
        return [item.id for item in items if item.id not in self.fail_ids]


@pytest.fixture
def config(temp_dir):
    return AppConfig(
        storage_location=str(temp_dir / "photos"),
        catalog_path=str(temp_dir / "photos.data"),
        download_batch_size=25,
    )


def make_driver(config, store, photos=None, auth=None, downloader=None):
    return SyncDriver(
        config,
        store,
        photos or FakePhotos(),
        auth or FakeAuth(),
        downloader or FakeDownloader(),
    )


class TestSplitCount:
    def test_batches(self):
        assert split_count(55, 25) == [25, 25, 5]

    def test_zero(self):
        assert split_count(0, 25) == []

    def test_negative_rejected(self):
        with pytest.raises(ValueError):
            split_count(-1, 25)


class TestSearch:
    def test_merges_dedupes_and_persists(self, config, store):
        photos = FakePhotos([
            make_media_item("A", "img.jpg"),
            make_media_item("B", "img.jpg", minutes=1),
            make_media_item("C", "other.jpg"),
        ])
        driver = make_driver(config, store, photos=photos)

        assert driver.search(30, 100) == 3
        assert store.ids() == ["A", "B", "C"]
        assert store.get("A").display_filename == "0_img.jpg"
        assert store.get("B").display_filename == "1_img.jpg"
        assert store.get("C").display_filename == "other.jpg"
        assert store.writes == 1

    def test_search_twice_is_idempotent(self, config, store):
        photos = FakePhotos([make_media_item("A")])
        driver = make_driver(config, store, photos=photos)
        driver.search(30, 100)
        driver.search(30, 100)
        assert len(store) == 1


class TestDownload:
    def seed(self, store, count, **kwargs):
        items = [make_media_item(f"id{n:03d}", minutes=n, **kwargs) for n in range(count)]
        merge_media_items(store, items)
        return items

    def test_batches_and_marks(self, config, store):
        library = self.seed(store, 55)
        photos = FakePhotos(library)
        downloader = FakeDownloader()
        driver = make_driver(config, store, photos=photos, downloader=downloader)

        downloaded = driver.download(55)

        assert len(downloaded) == 55
        assert [len(call) for call in photos.batch_calls] == [25, 25, 5]
        assert all(item.is_downloaded for item in store.all())
        assert store.writes == 3

    def test_stops_when_nothing_left(self, config, store):
        library = self.seed(store, 3)
        photos = FakePhotos(library)
        driver = make_driver(config, store, photos=photos)

        assert len(driver.download(100)) == 3
        assert len(photos.batch_calls) == 1

    def test_failed_items_stay_undownloaded_and_are_not_retried(self, config, store):
        library = self.seed(store, 30)
        photos = FakePhotos(library)
        downloader = FakeDownloader(fail_ids={"id000", "id001"})
        driver = make_driver(config, store, photos=photos, downloader=downloader)

        downloaded = driver.download(30)

        assert len(downloaded) == 28
        assert not store.get("id000").is_downloaded
        attempted = [i for batch in photos.batch_calls for i in batch]
        assert len(attempted) == len(set(attempted))

    def test_videos_not_selected(self, config, store):
        merge_media_items(store, [
            make_media_item("V", kind=MediaKind.VIDEO),
            make_media_item("P"),
        ])
        photos = FakePhotos([make_media_item("P")])
        driver = make_driver(config, store, photos=photos)

        assert driver.download(10) == ["P"]
        assert photos.batch_calls == [["P"]]

    def test_refreshed_metadata_used(self, config, store):
        merge_media_items(store, [make_media_item("A", "img.jpg")])
        fresh = make_media_item("A", "img.jpg", minutes=30)
        photos = FakePhotos([fresh])
        driver = make_driver(config, store, photos=photos)

        driver.download(1)

        assert store.get("A").media_item == fresh

    def test_uses_deduped_filename(self, config, store):
        library = [make_media_item("A", "img.jpg"), make_media_item("B", "img.jpg", minutes=1)]
        merge_media_items(store, library)
        downloader = FakeDownloader()
        driver = make_driver(config, store, photos=FakePhotos(library), downloader=downloader)

        driver.download(2)

        assert downloader.batches == [[("A", "0_img.jpg"), ("B", "1_img.jpg")]]

    def test_batch_size_capped_at_fifty(self, config, store):
        config.download_batch_size = 80
        driver = make_driver(config, store)
        assert driver.batch_size == 50


class TestReconcile:
    def test_marks_and_unmarks_from_disk(self, config, store, temp_dir):
        merge_media_items(store, [make_media_item("A", "a.jpg"), make_media_item("B", "b.jpg")])
        mark_downloaded(store, ["B"])
        photo_dir = temp_dir / "photos"
        photo_dir.mkdir()
        (photo_dir / "a.jpg").write_bytes(b"x")
        (photo_dir / "b.jpg.part").write_bytes(b"x")

        driver = make_driver(config, store)
        assert driver.reconcile() == (1, 1)
        assert store.get("A").is_downloaded
        assert not store.get("B").is_downloaded

    def test_switches_respected(self, config, store, temp_dir):
        config.reconcile_unmark = False
        merge_media_items(store, [make_media_item("B", "b.jpg")])
        mark_downloaded(store, ["B"])

        driver = make_driver(config, store)
        assert driver.reconcile() == (0, 0)
        assert store.get("B").is_downloaded


class TestHandle:
    def test_dispatches_search(self, config, store):
        driver = make_driver(config, store, photos=FakePhotos([make_media_item("A")]))
        assert driver.handle(JobTask.search(30, 10))
        assert "A" in store

    def test_dispatches_refresh(self, config, store):
        auth = FakeAuth()
        driver = make_driver(config, store, auth=auth)
        assert driver.handle(JobTask.refresh_token())
        assert auth.calls == 1

    def test_api_failure_aborts_cycle_only(self, config, store):
        photos = FakePhotos(error=PhotosApiError("HTTP 500", status_code=500))
        driver = make_driver(config, store, photos=photos)
        assert driver.handle(JobTask.search(30, 10)) is False
        assert len(store) == 0

    def test_filesystem_failure_aborts_cycle_only(self, config, store):
        driver = make_driver(config, store)
        with patch("gphotos_sync.sync.driver.list_filenames", side_effect=PermissionError("denied")):
            assert driver.handle(JobTask.reconcile()) is False

    def test_auth_failure_aborts_cycle_only(self, config, store):
        driver = make_driver(config, store, auth=FakeAuth(error=AuthError("no token")))
        assert driver.handle(JobTask.download(5)) is False
