"""
Tests for the Persistent Key-Value Stores

Tests cover the JSON file store (durability across instances, corrupt
files, write failures) and the in-memory store used by other tests.
"""

import asyncio
import json
import pytest
from unittest.mock import patch
import sys
import os

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from data.storage import JsonFileStore, MemoryStore
from utils.exceptions import PersistenceError


# =============================================================================
# JsonFileStore Tests
# =============================================================================

class TestJsonFileStore:
    """Tests for JsonFileStore."""

    def test_missing_key_returns_none(self, tmp_path):
        store = JsonFileStore(str(tmp_path / "storage.json"))

        assert asyncio.run(store.get_item("@smriti:userToken")) is None

    def test_set_then_get(self, tmp_path):
        store = JsonFileStore(str(tmp_path / "storage.json"))

        async def flow():
            await store.set_item("@smriti:userToken", "abc")
            return await store.get_item("@smriti:userToken")

        assert asyncio.run(flow()) == "abc"

    def test_values_survive_new_instance(self, tmp_path):
        """A fresh store on the same file sees earlier writes, as after a restart."""
        path = str(tmp_path / "nested" / "storage.json")
        asyncio.run(JsonFileStore(path).set_item("k", "v"))

        assert asyncio.run(JsonFileStore(path).get_item("k")) == "v"
        with open(path, encoding="utf-8") as f:
            assert json.load(f) == {"k": "v"}

    def test_remove_item(self, tmp_path):
        store = JsonFileStore(str(tmp_path / "storage.json"))

        async def flow():
            await store.set_item("a", "1")
            await store.set_item("b", "2")
            await store.remove_item("a")
            await store.remove_item("never-set")
            return await store.get_item("a"), await store.get_item("b")

        assert asyncio.run(flow()) == (None, "2")

    def test_clear(self, tmp_path):
        store = JsonFileStore(str(tmp_path / "storage.json"))

        async def flow():
            await store.set_item("a", "1")
            await store.clear()
            return await store.get_item("a")

        assert asyncio.run(flow()) is None

    def test_corrupt_file_reads_as_empty(self, tmp_path, capture_logs):
        path = tmp_path / "storage.json"
        path.write_text("{this is not json", encoding="utf-8")
        store = JsonFileStore(str(path))

        assert asyncio.run(store.get_item("k")) is None
        assert any("Corrupted storage file" in r.getMessage() for r in capture_logs)

    def test_undecodable_file_reads_as_empty(self, tmp_path, capture_logs):
        path = tmp_path / "storage.json"
        path.write_bytes(b'{"k": "\xff\xfe"}')
        store = JsonFileStore(str(path))

        assert asyncio.run(store.get_item("k")) is None
        assert any("Corrupted storage file" in r.getMessage() for r in capture_logs)

        # The next write replaces the unreadable contents
        asyncio.run(store.set_item("k", "v"))
        assert asyncio.run(store.get_item("k")) == "v"

    def test_non_object_file_reads_as_empty(self, tmp_path):
        path = tmp_path / "storage.json"
        path.write_text("[1, 2, 3]", encoding="utf-8")

        assert asyncio.run(JsonFileStore(str(path)).get_item("k")) is None

    def test_non_string_value_rejected(self, tmp_path):
        store = JsonFileStore(str(tmp_path / "storage.json"))

        with pytest.raises(PersistenceError):
            asyncio.run(store.set_item("k", {"not": "a string"}))

    def test_write_failure_raises_persistence_error(self, tmp_path):
        store = JsonFileStore(str(tmp_path / "storage.json"))

        with patch('data.storage.os.replace', side_effect=OSError("read-only file system")):
            with pytest.raises(PersistenceError):
                asyncio.run(store.set_item("k", "v"))

        # The failed write left nothing behind
        assert asyncio.run(store.get_item("k")) is None
        assert [p.name for p in tmp_path.iterdir()] == []


# =============================================================================
# MemoryStore Tests
# =============================================================================

class TestMemoryStore:
    """Tests for MemoryStore."""

    def test_initial_values(self):
        store = MemoryStore({"k": "v"})

        assert asyncio.run(store.get_item("k")) == "v"

    def test_simulated_failures(self):
        store = MemoryStore({"k": "v"}, fail_on={"get", "clear"})

        with pytest.raises(PersistenceError):
            asyncio.run(store.get_item("k"))
        with pytest.raises(PersistenceError):
            asyncio.run(store.clear())

        asyncio.run(store.set_item("k2", "v2"))
        assert store.data == {"k": "v", "k2": "v2"}
