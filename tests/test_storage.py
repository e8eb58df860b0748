"""
Unit tests for the storage module.

Tests cover reading and writing the JSON state file and error handling.
"""

import json
from pathlib import Path

import pytest

from suwayomi_watcher.storage import PersistenceError, StateStore


class TestStateStoreLoad:
    """Tests for reading the state file."""

    async def test_missing_file_is_empty(self, state_store: StateStore) -> None:
        """Test that a missing state file is an empty ledger, not an error."""
        assert await state_store.load() == {}

    async def test_reads_last_seen(self, tmp_path: Path) -> None:
        """Test reading the lastSeen mapping."""
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"lastSeen": {"1": "10", "2": "3.5"}}))

        assert await StateStore(path).load() == {"1": "10", "2": "3.5"}

    async def test_missing_last_seen_key(self, tmp_path: Path) -> None:
        """Test that a document without lastSeen loads as empty."""
        path = tmp_path / "state.json"
        path.write_text("{}")

        assert await StateStore(path).load() == {}

    async def test_invalid_json_raises(self, tmp_path: Path) -> None:
        """Test that a corrupt file raises PersistenceError."""
        path = tmp_path / "state.json"
        path.write_text("{not json")

        with pytest.raises(PersistenceError):
            await StateStore(path).load()

    async def test_wrong_shape_raises(self, tmp_path: Path) -> None:
        """Test that a non-mapping lastSeen raises PersistenceError."""
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"lastSeen": ["a", "b"]}))

        with pytest.raises(PersistenceError):
            await StateStore(path).load()


class TestStateStoreSave:
    """Tests for writing the state file."""

    async def test_creates_parent_directories(self, state_store: StateStore) -> None:
        """Test that save creates missing parent directories."""
        await state_store.save({"1": "10"})

        assert state_store.state_path.exists()

    async def test_document_layout(self, state_store: StateStore) -> None:
        """Test that the file uses the lastSeen layout."""
        await state_store.save({"1": "10"})

        document = json.loads(state_store.state_path.read_text())
        assert document == {"lastSeen": {"1": "10"}}

    async def test_round_trip(self, state_store: StateStore) -> None:
        """Test that saved data is loaded back."""
        await state_store.save({"1": "10", "2": "20"})

        assert await state_store.load() == {"1": "10", "2": "20"}

    async def test_no_temp_files_left(self, state_store: StateStore) -> None:
        """Test that the atomic write leaves only the state file."""
        await state_store.save({"1": "10"})
        await state_store.save({"1": "11"})

        assert [p.name for p in state_store.state_path.parent.iterdir()] == ["state.json"]

    async def test_write_failure_raises(self, tmp_path: Path) -> None:
        """Test that an unwritable location raises PersistenceError."""
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        store = StateStore(blocker / "state.json")

        with pytest.raises(PersistenceError):
            await store.save({"1": "10"})
