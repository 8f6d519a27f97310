"""
Tests for storage backends and transaction support
"""

import pytest
import tempfile
import os
from datetime import datetime, timezone

from emi_engine.storage import (
    InMemoryStorage, SQLiteStorage, StorageInterface, create_storage
)


# Test data
test_data = {
    "id": "test_001",
    "loan_id": "L1",
    "amount": 12050,
    "created_at": datetime.now(timezone.utc).isoformat(),
    "updated_at": datetime.now(timezone.utc).isoformat()
}


class StorageContract:
    """Behaviour shared by every backend"""

    def make_storage(self) -> StorageInterface:
        raise NotImplementedError

    def setup_method(self):
        self.storage = self.make_storage()

    def teardown_method(self):
        self.storage.close()

    def test_basic_operations(self):
        """Test basic CRUD operations"""
        self.storage.save("test_table", "record_1", test_data)
        assert self.storage.load("test_table", "record_1") == test_data

        assert self.storage.exists("test_table", "record_1")
        assert not self.storage.exists("test_table", "non_existent")

        self.storage.save("test_table", "record_2", {"id": "record_2", "loan_id": "L2"})
        assert len(self.storage.load_all("test_table")) == 2
        assert self.storage.count("test_table") == 2

        assert self.storage.delete("test_table", "record_1")
        assert not self.storage.delete("test_table", "record_1")
        assert self.storage.load("test_table", "record_1") is None

    def test_save_replaces(self):
        self.storage.save("test_table", "record_1", {"id": "record_1", "version": 1})
        self.storage.save("test_table", "record_1", {"id": "record_1", "version": 2})

        assert self.storage.load("test_table", "record_1")["version"] == 2
        assert self.storage.count("test_table") == 1

    def test_find(self):
        self.storage.save("entries", "L1_1", {"loan_id": "L1", "status": "Paid"})
        self.storage.save("entries", "L1_2", {"loan_id": "L1", "status": "Pending"})
        self.storage.save("entries", "L2_1", {"loan_id": "L2", "status": "Pending"})

        assert len(self.storage.find("entries", {"loan_id": "L1"})) == 2
        assert len(self.storage.find("entries", {"status": "Pending"})) == 2
        assert self.storage.find("entries", {"loan_id": "L1", "status": "Paid"}) == [
            {"loan_id": "L1", "status": "Paid"}
        ]
        assert self.storage.find("entries", {"loan_id": "L3"}) == []

    def test_loaded_records_are_copies(self):
        self.storage.save("test_table", "record_1", {"id": "record_1", "items": [1, 2]})

        loaded = self.storage.load("test_table", "record_1")
        loaded["items"].append(3)

        assert self.storage.load("test_table", "record_1")["items"] == [1, 2]

    def test_atomic_commit(self):
        with self.storage.atomic():
            self.storage.save("test_table", "record_1", {"id": "record_1"})
            self.storage.save("test_table", "record_2", {"id": "record_2"})

        assert self.storage.count("test_table") == 2

    def test_atomic_rollback(self):
        """All writes in a failed block are undone"""
        self.storage.save("test_table", "keep", {"id": "keep", "value": 1})

        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.storage.save("test_table", "keep", {"id": "keep", "value": 2})
                self.storage.save("test_table", "new", {"id": "new"})
                self.storage.delete("test_table", "keep")
                raise RuntimeError("boom")

        assert self.storage.load("test_table", "keep") == {"id": "keep", "value": 1}
        assert not self.storage.exists("test_table", "new")

    def test_nested_atomic_rolls_back_outer(self):
        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.storage.save("test_table", "outer", {"id": "outer"})
                with self.storage.atomic():
                    self.storage.save("test_table", "inner", {"id": "inner"})
                raise RuntimeError("boom")

        assert not self.storage.exists("test_table", "outer")
        assert not self.storage.exists("test_table", "inner")

    def test_usable_after_rollback(self):
        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.storage.save("fresh_table", "a", {"id": "a"})
                raise RuntimeError("boom")

        self.storage.save("fresh_table", "b", {"id": "b"})
        assert self.storage.load_all("fresh_table") == [{"id": "b"}]


class TestInMemoryStorage(StorageContract):
    """Test in-memory backend"""

    def make_storage(self):
        return InMemoryStorage()


class TestSQLiteStorage(StorageContract):
    """Test SQLite backend on an in-memory database"""

    def make_storage(self):
        return SQLiteStorage(":memory:")


class TestSQLiteFilePersistence:
    """Test SQLite backend on a file"""

    def setup_method(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.db_path = os.path.join(self.temp_dir.name, "emi.db")

    def teardown_method(self):
        self.temp_dir.cleanup()

    def test_data_survives_reopen(self):
        storage = SQLiteStorage(self.db_path)
        storage.save("loans", "L1", {"id": "L1", "principal_amount": 1200000})
        storage.close()

        reopened = SQLiteStorage(self.db_path)
        try:
            assert reopened.load("loans", "L1") == {"id": "L1", "principal_amount": 1200000}
        finally:
            reopened.close()

    def test_rolled_back_writes_are_not_persisted(self):
        storage = SQLiteStorage(self.db_path)
        storage.save("loans", "L1", {"id": "L1", "status": "active"})
        with pytest.raises(RuntimeError):
            with storage.atomic():
                storage.save("loans", "L1", {"id": "L1", "status": "foreclosed"})
                raise RuntimeError("boom")
        storage.close()

        reopened = SQLiteStorage(self.db_path)
        try:
            assert reopened.load("loans", "L1")["status"] == "active"
        finally:
            reopened.close()


class TestCreateStorage:
    """Test building backends from database URLs"""

    def test_memory_url(self):
        assert isinstance(create_storage("memory://"), InMemoryStorage)

    def test_sqlite_in_memory_url(self):
        storage = create_storage("sqlite://")
        assert isinstance(storage, SQLiteStorage)
        assert storage.db_path == ":memory:"
        storage.close()

    def test_sqlite_file_url(self):
        with tempfile.TemporaryDirectory() as temp_dir:
            path = os.path.join(temp_dir, "emi.db")
            storage = create_storage(f"sqlite:///{path}", timeout=5.0)
            assert isinstance(storage, SQLiteStorage)
            assert storage.db_path == path
            storage.close()

    def test_unsupported_url(self):
        with pytest.raises(ValueError, match="Unsupported database URL"):
            create_storage("postgresql://localhost/emi")
