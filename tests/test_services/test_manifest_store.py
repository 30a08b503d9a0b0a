"""Tests for manifest and session persistence."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from modsync.exceptions import CorruptStateError
from modsync.filesystem.atomic import temp_path_for, write_text_atomic
from modsync.filesystem.manifest_store import ManifestStore, SessionStore, _read_model_file
from modsync.schemas.catalog import CatalogProfile
from modsync.schemas.event import Event
from modsync.schemas.manifest import AuthenticatedUser, Manifest, UserProfile

if TYPE_CHECKING:
    from pathlib import Path


class TestManifestStore:
    def test_missing_file_creates_defaults(self, tmp_path: Path) -> None:
        store = ManifestStore(tmp_path / "manifest.data")
        manifest = store.load()
        assert manifest == Manifest()
        assert (tmp_path / "manifest.data").exists()

    def test_round_trip_with_empty_queue_and_index(self, tmp_path: Path) -> None:
        path = tmp_path / "manifest.data"
        store = ManifestStore(path)
        store.load()
        store.manifest.last_sync_timestamp = 1234
        store.manifest.catalog_profile = CatalogProfile(id=7, name="Game")
        store.save()

        reloaded = ManifestStore(path).load()
        assert reloaded.last_sync_timestamp == 1234
        assert reloaded.pending_events == []
        assert reloaded.image_index == {}
        assert reloaded.catalog_profile.name == "Game"

    def test_round_trip_preserves_pending_event_order(self, tmp_path: Path) -> None:
        path = tmp_path / "manifest.data"
        events = [
            Event(id=3, item_id=1, event_type="MOD_EDITED", date_added=10),
            Event(id=1, item_id=2, event_type="SOMETHING_NEW", date_added=11),
        ]
        ManifestStore(path).save(Manifest(last_sync_timestamp=5, pending_events=events))

        reloaded = ManifestStore(path).load()
        assert [e.id for e in reloaded.pending_events] == [3, 1]
        assert reloaded.pending_events[1].known_type is None

    def test_corrupt_file_resets_to_defaults(
        self, tmp_path: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        path = tmp_path / "manifest.data"
        path.write_text("{ not json", encoding="utf-8")

        manifest = ManifestStore(path).load()

        assert manifest == Manifest()
        assert "resetting manifest" in caplog.text
        assert Manifest.model_validate_json(path.read_text(encoding="utf-8")) == Manifest()

    def test_wrong_shape_resets_to_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "manifest.data"
        path.write_text('{"last_sync_timestamp": "yesterday"}', encoding="utf-8")
        assert ManifestStore(path).load().last_sync_timestamp == 0

    def test_load_prunes_missing_images(self, tmp_path: Path) -> None:
        kept = tmp_path / "kept.png"
        kept.write_bytes(b"png")
        path = tmp_path / "manifest.data"
        ManifestStore(path).save(
            Manifest(
                image_index={
                    "https://img/kept": str(kept),
                    "https://img/gone": str(tmp_path / "gone.png"),
                }
            )
        )

        manifest = ManifestStore(path).load()

        assert manifest.image_index == {"https://img/kept": str(kept)}
        on_disk = Manifest.model_validate_json(path.read_text(encoding="utf-8"))
        assert "https://img/gone" not in on_disk.image_index

    def test_lookup_image_drops_stale_entry(self, tmp_path: Path) -> None:
        image = tmp_path / "logo.png"
        image.write_bytes(b"png")
        store = ManifestStore(tmp_path / "manifest.data")
        store.load()
        store.record_image("https://img/logo", image)

        assert store.lookup_image("https://img/logo") == image
        image.unlink()
        assert store.lookup_image("https://img/logo") is None
        assert "https://img/logo" not in store.manifest.image_index
        assert store.lookup_image("https://img/never") is None

    def test_save_leaves_no_temp_file(self, tmp_path: Path) -> None:
        path = tmp_path / "manifest.data"
        ManifestStore(path).save(Manifest())
        assert not temp_path_for(path).exists()


class TestAtomicWrite:
    def test_failed_write_keeps_previous_content(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        path = tmp_path / "state.data"
        write_text_atomic(path, "old")

        def boom(src: object, dst: object) -> None:
            raise OSError("disk full")

        monkeypatch.setattr("modsync.filesystem.atomic.os.replace", boom)
        with pytest.raises(OSError, match="disk full"):
            write_text_atomic(path, "new")

        assert path.read_text(encoding="utf-8") == "old"
        assert not temp_path_for(path).exists()

    def test_creates_parent_directories(self, tmp_path: Path) -> None:
        path = tmp_path / "a" / "b" / "state.data"
        write_text_atomic(path, "x")
        assert path.read_text(encoding="utf-8") == "x"


class TestReadModelFile:
    def test_raises_corrupt_state_with_path(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.data"
        path.write_text("[]", encoding="utf-8")
        with pytest.raises(CorruptStateError) as exc_info:
            _read_model_file(path, Manifest)
        assert exc_info.value.path == path


class TestSessionStore:
    def test_missing_file_means_logged_out(self, tmp_path: Path) -> None:
        assert SessionStore(tmp_path / "user.data").load() is None

    def test_round_trip(self, tmp_path: Path) -> None:
        store = SessionStore(tmp_path / "user.data")
        user = AuthenticatedUser(
            oauth_token="tok",
            profile=UserProfile(id=5, username="alice"),
            subscribed_item_ids=[3, 1],
        )
        store.save(user)
        assert store.load() == user

    def test_corrupt_file_is_discarded(self, tmp_path: Path) -> None:
        path = tmp_path / "user.data"
        path.write_text("garbage", encoding="utf-8")
        assert SessionStore(path).load() is None
        assert not path.exists()

    def test_delete_is_idempotent(self, tmp_path: Path) -> None:
        store = SessionStore(tmp_path / "user.data")
        store.delete()
        store.save(AuthenticatedUser(oauth_token="tok"))
        store.delete()
        store.delete()
        assert store.load() is None
