"""
Unit tests for utils.relays module.

Tests:
- load() on missing, valid, legacy, corrupt and newer-version files
- Normalisation and de-duplication on read and write
- add() / remove() idempotence
- Invalid entries skipped with a warning
"""

import json
import logging
from pathlib import Path

import pytest

from nostrcli.exceptions import StorageError
from nostrcli.utils.relays import RELAYS_VERSION, RelayListStore


@pytest.fixture
def store(tmp_path: Path) -> RelayListStore:
    return RelayListStore(tmp_path / "relays.json")


class TestLoad:
    """Tests for RelayListStore.load()."""

    def test_missing_file_is_empty(self, store: RelayListStore) -> None:
        assert not store.exists()
        assert store.load() == []

    def test_normalises_and_deduplicates(self, store: RelayListStore) -> None:
        store.path.write_text(
            json.dumps(
                {
                    "version": 1,
                    "relays": ["wss://B.example.com/", "wss://a.example.com", "wss://b.example.com:443"],
                }
            )
        )
        assert store.load() == ["wss://b.example.com", "wss://a.example.com"]

    def test_legacy_file_without_version(self, store: RelayListStore) -> None:
        store.path.write_text(json.dumps({"relays": ["wss://yabu.me"]}))
        assert store.load() == ["wss://yabu.me"]

    def test_invalid_entries_skipped(self, store: RelayListStore, caplog: pytest.LogCaptureFixture) -> None:
        store.path.write_text(json.dumps({"version": 1, "relays": ["https://nope.example.com", 42, "wss://yabu.me"]}))
        with caplog.at_level(logging.WARNING, logger="utils.relays"):
            assert store.load() == ["wss://yabu.me"]
        assert caplog.text.count("relay_entry_skipped") == 2

    @pytest.mark.parametrize("content", ["not json", "[]", '{"relays": "wss://yabu.me"}', "{}"])
    def test_corrupt(self, store: RelayListStore, content: str) -> None:
        store.path.write_text(content)
        with pytest.raises(StorageError):
            store.load()

    def test_newer_version(self, store: RelayListStore) -> None:
        store.path.write_text(json.dumps({"version": RELAYS_VERSION + 1, "relays": []}))
        with pytest.raises(StorageError, match="not supported"):
            store.load()


class TestModify:
    """Tests for save(), add() and remove()."""

    def test_save_writes_versioned_file(self, store: RelayListStore) -> None:
        written = store.save(["wss://yabu.me/", "wss://yabu.me"])
        assert written == ["wss://yabu.me"]
        assert json.loads(store.path.read_text()) == {"version": RELAYS_VERSION, "relays": ["wss://yabu.me"]}

    def test_save_rejects_invalid(self, store: RelayListStore) -> None:
        with pytest.raises(ValueError):
            store.save(["http://yabu.me"])
        assert not store.exists()

    def test_add(self, store: RelayListStore) -> None:
        assert store.add("wss://relay.example.com") is True
        assert store.add("wss://Relay.Example.com/") is False
        assert store.load() == ["wss://relay.example.com"]

    def test_add_preserves_order(self, store: RelayListStore) -> None:
        for url in ("wss://c.example.com", "wss://a.example.com", "wss://b.example.com"):
            store.add(url)
        assert store.load() == ["wss://c.example.com", "wss://a.example.com", "wss://b.example.com"]

    def test_add_invalid(self, store: RelayListStore) -> None:
        with pytest.raises(ValueError):
            store.add("not a url")

    def test_remove(self, store: RelayListStore) -> None:
        store.add("wss://relay.example.com")
        assert store.remove("wss://relay.example.com/") is True
        assert store.remove("wss://relay.example.com") is False
        assert store.load() == []

    def test_remove_from_missing_file(self, store: RelayListStore) -> None:
        assert store.remove("wss://relay.example.com") is False
        assert not store.exists()

    def test_expands_user(self) -> None:
        assert "~" not in str(RelayListStore("~/relays.json").path)
