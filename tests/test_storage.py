"""
Tests for storage backends and nested atomic sections
"""

import pytest
from datetime import datetime, timezone

from crowdfund.storage import (
    InMemoryStorage, SQLiteStorage, StorageInterface, create_storage
)


test_data = {
    "id": "test_001",
    "name": "Test Record",
    "amount": 100,
    "created_at": datetime.now(timezone.utc).isoformat(),
    "updated_at": datetime.now(timezone.utc).isoformat()
}


class StorageContract:
    """Behaviour every backend must provide"""

    def make_storage(self) -> StorageInterface:
        raise NotImplementedError

    def setup_method(self):
        self.storage = self.make_storage()

    def teardown_method(self):
        self.storage.close()

    def test_basic_operations(self):
        """Test save, load, exists, find, count and delete"""
        self.storage.save("test_table", "record_1", test_data)
        assert self.storage.load("test_table", "record_1") == test_data
        assert self.storage.exists("test_table", "record_1")
        assert not self.storage.exists("test_table", "missing")

        self.storage.save("test_table", "record_2", {"id": "record_2", "amount": 5})
        assert len(self.storage.load_all("test_table")) == 2
        assert self.storage.find("test_table", {"amount": 5}) == [{"id": "record_2", "amount": 5}]
        assert self.storage.count("test_table") == 2

        assert self.storage.delete("test_table", "record_1")
        assert not self.storage.delete("test_table", "record_1")
        assert self.storage.load("test_table", "record_1") is None

    def test_large_integers_survive(self):
        """Test amounts above 64 bits round-trip intact"""
        big = 2 ** 256 - 1
        self.storage.save("big", "r", {"amount": big})
        assert self.storage.load("big", "r")["amount"] == big

    def test_clear_table(self):
        self.storage.save("test_table", "a", {"v": 1})
        self.storage.clear_table("test_table")
        assert self.storage.count("test_table") == 0

    def test_atomic_commit(self):
        """Test changes inside a successful section persist"""
        with self.storage.atomic():
            self.storage.save("t", "a", {"v": 1})
        assert self.storage.load("t", "a") == {"v": 1}
        assert not self.storage.in_transaction

    def test_atomic_rollback(self):
        """Test an exception discards every change in the section"""
        self.storage.save("t", "a", {"v": 1})

        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                self.storage.save("t", "a", {"v": 2})
                self.storage.save("t", "b", {"v": 3})
                self.storage.delete("t", "a")
                raise RuntimeError("boom")

        assert self.storage.load("t", "a") == {"v": 1}
        assert self.storage.load("t", "b") is None
        assert not self.storage.in_transaction

    def test_nested_rollback_keeps_outer(self):
        """Test an inner failure only undoes the inner section"""
        with self.storage.atomic():
            self.storage.save("t", "outer", {"v": 1})
            with pytest.raises(ValueError):
                with self.storage.atomic():
                    self.storage.save("t", "inner", {"v": 2})
                    raise ValueError("inner failure")
            assert self.storage.load("t", "inner") is None
            assert self.storage.load("t", "outer") == {"v": 1}

        assert self.storage.load("t", "outer") == {"v": 1}
        assert self.storage.load("t", "inner") is None

    def test_outer_rollback_discards_inner_commit(self):
        """Test a committed inner section is undone with its parent"""
        with pytest.raises(RuntimeError):
            with self.storage.atomic():
                with self.storage.atomic():
                    self.storage.save("t", "inner", {"v": 2})
                assert self.storage.load("t", "inner") == {"v": 2}
                raise RuntimeError("outer failure")

        assert self.storage.load("t", "inner") is None


class TestInMemoryStorage(StorageContract):

    def make_storage(self):
        return InMemoryStorage()

    def test_loaded_records_are_copies(self):
        """Test callers can not mutate stored data through a loaded record"""
        self.storage.save("t", "a", {"v": 1})
        record = self.storage.load("t", "a")
        record["v"] = 99
        assert self.storage.load("t", "a") == {"v": 1}


class TestSQLiteStorage(StorageContract):

    def make_storage(self):
        return SQLiteStorage(":memory:")


class TestSQLiteFilePersistence:

    def test_data_survives_reopen(self, tmp_path):
        path = tmp_path / "ledger.db"
        storage = SQLiteStorage(path)
        with storage.atomic():
            storage.save("campaigns", "1", {"id": 1, "goal": 100})
        storage.close()

        reopened = SQLiteStorage(path)
        assert reopened.load("campaigns", "1") == {"id": 1, "goal": 100}
        reopened.close()


class TestCreateStorage:

    def test_memory_url(self):
        assert isinstance(create_storage("memory://"), InMemoryStorage)

    def test_sqlite_url(self, tmp_path):
        storage = create_storage(f"sqlite:///{tmp_path / 'x.db'}")
        assert isinstance(storage, SQLiteStorage)
        assert storage.db_path == str(tmp_path / "x.db")
        storage.close()

    def test_sqlite_memory_url(self):
        storage = create_storage("sqlite://")
        assert storage.db_path == ":memory:"
        storage.close()

    def test_unsupported_url(self):
        with pytest.raises(ValueError, match="Unsupported database URL"):
            create_storage("postgresql://localhost/db")
