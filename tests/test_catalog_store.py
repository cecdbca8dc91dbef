"""
Tests for CatalogStore - loading, copy-on-read, throttled persistence.
"""

import json

import pytest

from gphotos_sync.catalog import StoredItem, open_catalog
from gphotos_sync.errors import CatalogCorruptError, CatalogWriteError

from conftest import FakeClock, make_stored_item


class TestCatalogLoad:
    """Tests for opening catalog files."""

    def test_missing_file_starts_empty(self, temp_dir):
        store = open_catalog(temp_dir / "nope.data")
        assert len(store) == 0
        assert store.writes == 0

    def test_invalid_json_is_fatal(self, temp_dir):
        path = temp_dir / "photos.data"
        path.write_text("{not json")
        with pytest.raises(CatalogCorruptError):
            open_catalog(path)

    def test_non_object_is_fatal(self, temp_dir):
        path = temp_dir / "photos.data"
        path.write_text("[]")
        with pytest.raises(CatalogCorruptError):
            open_catalog(path)

    def test_malformed_record_is_fatal(self, temp_dir):
        """A record missing mediaItem can't be decoded."""
        path = temp_dir / "photos.data"
        path.write_text(json.dumps({"A": {"appData": None}}))
        with pytest.raises(CatalogCorruptError):
            open_catalog(path)

    def test_persist_and_reload(self, store, temp_dir):
        item = make_stored_item("A", "img.jpg")
        item.alt_filename = "0_img.jpg"
        store.set("A", item)
        store.set("B", make_stored_item("B"))
        store.persist()

        reloaded = open_catalog(temp_dir / "photos.data")
        assert reloaded.ids() == ["A", "B"]
        assert reloaded.get("A") == item
        assert reloaded.get("A").display_filename == "0_img.jpg"

    def test_loads_api_shaped_records(self, temp_dir):
        """Catalog records use the API's field names."""
        path = temp_dir / "photos.data"
        path.write_text(json.dumps({
            "X1": {
                "mediaItem": {
                    "id": "X1",
                    "baseUrl": "https://lh3.example.com/X1",
                    "filename": "IMG_0001.JPG",
                    "mediaMetadata": {
                        "creationTime": "2019-05-01T10:00:00Z",
                        "width": "800",
                        "height": "600",
                        "photo": {},
                    },
                },
                "appData": {"download_info": {"downloaded_at": "2019-05-02T08:00:00Z"}},
                "alt_filename": None,
            }
        }))
        store = open_catalog(path)
        item = store.get("X1")
        assert item.display_filename == "IMG_0001.JPG"
        assert item.is_downloaded
        assert item.media_item.width == 800


class TestCatalogAccess:
    """Tests for get/set/filter semantics."""

    def test_get_returns_independent_copy(self, store):
        store.set("A", make_stored_item("A"))
        copy = store.get("A")
        copy.alt_filename = "changed.jpg"
        assert store.get("A").alt_filename is None

    def test_set_keeps_own_copy(self, store):
        item = make_stored_item("A")
        store.set("A", item)
        item.alt_filename = "changed.jpg"
        assert store.get("A").alt_filename is None

    def test_set_returns_previous(self, store):
        first = make_stored_item("A", "one.jpg")
        assert store.set("A", first) is None
        previous = store.set("A", make_stored_item("A", "two.jpg"))
        assert previous == first
        assert len(store) == 1

    def test_get_unknown_is_none(self, store):
        assert store.get("missing") is None
        assert "missing" not in store

    def test_filter_respects_limit_and_order(self, store):
        for key in ["C", "A", "B", "D"]:
            store.set(key, make_stored_item(key))
        result = store.filter(lambda item: item.id != "B", limit=2)
        assert [item.id for item in result] == ["A", "C"]

    def test_filter_limit_zero(self, store):
        store.set("A", make_stored_item("A"))
        assert store.filter(lambda item: True, limit=0) == []

    def test_filter_without_limit_returns_all_matches(self, store):
        for key in ["A", "B", "C"]:
            store.set(key, make_stored_item(key))
        assert len(store.filter(lambda item: True)) == 3

    def test_filter_negative_limit_rejected(self, store):
        with pytest.raises(ValueError):
            store.filter(lambda item: True, limit=-1)

    def test_all_returns_copies(self, store):
        store.set("A", make_stored_item("A"))
        items = store.all()
        items[0].alt_filename = "x.jpg"
        assert store.get("A").alt_filename is None


class TestPersistThrottle:
    """Tests for the time-based write throttle."""

    def test_sets_within_interval_write_at_most_once(self, temp_dir):
        clock = FakeClock()
        store = open_catalog(temp_dir / "photos.data", clock=clock)
        clock.advance(1)
        store.set("A", make_stored_item("A"))
        clock.advance(2)
        store.set("B", make_stored_item("B"))
        assert store.writes <= 1
        assert not (temp_dir / "photos.data").exists()

    def test_sets_straddling_interval_both_write(self, temp_dir):
        clock = FakeClock()
        store = open_catalog(temp_dir / "photos.data", clock=clock)
        clock.advance(6)
        store.set("A", make_stored_item("A"))
        assert store.writes == 1
        clock.advance(6)
        store.set("B", make_stored_item("B"))
        assert store.writes == 2

        on_disk = json.loads((temp_dir / "photos.data").read_text())
        assert set(on_disk) == {"A", "B"}

    def test_write_resets_interval(self, temp_dir):
        clock = FakeClock()
        store = open_catalog(temp_dir / "photos.data", clock=clock)
        clock.advance(6)
        store.set("A", make_stored_item("A"))
        clock.advance(3)
        store.set("B", make_stored_item("B"))
        assert store.writes == 1

    def test_persist_ignores_throttle(self, store):
        store.set("A", make_stored_item("A"))
        store.persist()
        store.persist()
        assert store.writes == 2

    def test_no_temp_file_left_behind(self, store, temp_dir):
        store.set("A", make_stored_item("A"))
        store.persist()
        assert sorted(p.name for p in temp_dir.iterdir()) == ["photos.data"]


class TestPersistFailure:
    """Write errors surface to the caller without rolling back memory."""

    def test_write_error_keeps_in_memory_state(self, temp_dir):
        blocker = temp_dir / "blocker"
        blocker.write_text("not a directory")
        clock = FakeClock()
        store = open_catalog(blocker / "photos.data", clock=clock)

        clock.advance(10)
        with pytest.raises(CatalogWriteError):
            store.set("A", make_stored_item("A"))

        assert isinstance(store.get("A"), StoredItem)
        with pytest.raises(CatalogWriteError):
            store.persist()
