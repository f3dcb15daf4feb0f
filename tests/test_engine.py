"""
Tests for DocumentDatabase: driver detection, connection retries, fault
wrapping and the process-wide database accessors.
"""

from unittest.mock import AsyncMock, patch

import pytest

from corvid.config import configure
from corvid.db import (
    BackendFault,
    ConnectionFault,
    DocumentDatabase,
    MemoryAdapter,
    MongoAdapter,
    configure_database,
    get_database,
    reset_database,
    set_database,
)
from corvid.db.backends import mongo as mongo_backend


class TestDriverDetection:

    @pytest.mark.parametrize(
        "url, driver, adapter_cls",
        [
            ("memory://", "memory", MemoryAdapter),
            ("nedb:///tmp/corvid", "memory", MemoryAdapter),
            ("mongodb://localhost:27017/app", "mongodb", MongoAdapter),
            ("mongodb+srv://cluster.example.net/app", "mongodb", MongoAdapter),
        ],
    )
    def test_schemes(self, url, driver, adapter_cls):
        db = DocumentDatabase(url)
        assert db.driver == driver
        assert isinstance(db.adapter, adapter_cls)
        assert not db.is_connected

    def test_unsupported_scheme(self):
        with pytest.raises(ConnectionFault) as exc_info:
            DocumentDatabase("postgres://localhost/app")
        assert exc_info.value.code == "BACKEND_CONNECTION_FAILED"

    def test_repr(self):
        assert repr(DocumentDatabase("memory://")) == "<DocumentDatabase memory disconnected>"


class TestConnection:

    @pytest.mark.asyncio
    async def test_lazy_connect_on_first_operation(self):
        db = DocumentDatabase("memory://")
        await db.insert("users", {"name": "Ann"})
        assert db.is_connected

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        db = DocumentDatabase("memory://", connect_retries=3, connect_retry_delay=0)
        db.adapter.connect = AsyncMock(side_effect=[OSError("down"), OSError("down"), None])
        await db.connect()
        assert db.adapter.connect.await_count == 3

    @pytest.mark.asyncio
    async def test_all_attempts_fail(self):
        db = DocumentDatabase("memory://", connect_retries=2, connect_retry_delay=0)
        error = OSError("down")
        db.adapter.connect = AsyncMock(side_effect=error)
        with pytest.raises(ConnectionFault) as exc_info:
            await db.connect()
        assert db.adapter.connect.await_count == 2
        assert exc_info.value.original is error
        assert exc_info.value.__cause__ is error

    @pytest.mark.asyncio
    async def test_missing_driver_is_not_retried(self):
        db = DocumentDatabase("memory://", connect_retries=5, connect_retry_delay=0)
        db.adapter.connect = AsyncMock(side_effect=ImportError("no driver"))
        with pytest.raises(ConnectionFault):
            await db.connect()
        assert db.adapter.connect.await_count == 1

    @pytest.mark.asyncio
    async def test_mongo_without_pymongo(self):
        db = DocumentDatabase("mongodb://localhost/app", connect_retries=1)
        with patch.object(mongo_backend, "_HAS_PYMONGO", False):
            with pytest.raises(ConnectionFault) as exc_info:
                await db.connect()
        assert "pymongo" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_connect_twice_is_noop(self):
        db = DocumentDatabase("memory://")
        db.adapter.connect = AsyncMock()
        await db.connect()
        await db.connect()
        assert db.adapter.connect.await_count == 1

    @pytest.mark.asyncio
    async def test_disconnect(self, tmp_path):
        db = DocumentDatabase(f"nedb://{tmp_path}")
        await db.connect()
        await db.disconnect()
        assert not db.is_connected


class TestFaultWrapping:

    @pytest.mark.asyncio
    async def test_adapter_error_becomes_backend_fault(self):
        db = DocumentDatabase("memory://")
        error = RuntimeError("disk full")
        db.adapter.insert = AsyncMock(side_effect=error)
        with pytest.raises(BackendFault) as exc_info:
            await db.insert("users", {"name": "Ann"})
        fault = exc_info.value
        assert fault.code == "BACKEND_FAILED"
        assert fault.operation == "insert"
        assert fault.collection == "users"
        assert fault.original is error
        assert fault.__cause__ is error

    @pytest.mark.asyncio
    async def test_duplicate_key(self):
        db = DocumentDatabase("memory://")
        await db.insert("users", {"_id": "a"})
        with pytest.raises(BackendFault) as exc_info:
            await db.insert("users", {"_id": "a"})
        assert exc_info.value.code == "DUPLICATE_KEY"

    @pytest.mark.asyncio
    async def test_malformed_filter(self):
        db = DocumentDatabase("memory://")
        with pytest.raises(BackendFault) as exc_info:
            await db.find("users", {"age": {"$near": 1}})
        assert isinstance(exc_info.value.original, ValueError)

    def test_callable_where_rejected_for_mongo(self):
        with pytest.raises(ValueError):
            mongo_backend._encode_filter({"$where": lambda doc: True})

    def test_mongo_filter_encoding_keeps_plain_values(self):
        assert mongo_backend._encode_filter({"name": "Ann", "$or": [{"age": 3}]}) == {
            "name": "Ann",
            "$or": [{"age": 3}],
        }


class TestFindOptions:

    @pytest.mark.asyncio
    async def test_sort_skip_limit(self):
        db = DocumentDatabase("memory://")
        for i in range(6):
            await db.insert("nums", {"i": i})
        docs = await db.find("nums", {}, {"_id": 0}, sort=[("i", -1)], skip=1, limit=3)
        assert docs == [{"i": 4}, {"i": 3}, {"i": 2}]

    @pytest.mark.asyncio
    async def test_count_and_remove(self):
        db = DocumentDatabase("memory://")
        for i in range(3):
            await db.insert("nums", {"i": i})
        assert await db.count("nums", {"i": {"$gte": 1}}) == 2
        assert await db.remove("nums", {}, multi=True) == 3


class TestProcessDatabase:

    def test_get_database_unset(self):
        reset_database()
        with pytest.raises(ConnectionFault):
            get_database()

    def test_set_and_get(self):
        db = DocumentDatabase("memory://")
        set_database(db)
        try:
            assert get_database() is db
        finally:
            reset_database()

    def test_configure_database_uses_settings(self, tmp_path):
        configure(
            database_url=f"nedb://{tmp_path}",
            connect_retries=7,
            connect_retry_delay=0.0,
        )
        try:
            db = configure_database()
            assert get_database() is db
            assert db.url == f"nedb://{tmp_path}"
            assert db._connect_retries == 7
            assert db._connect_retry_delay == 0.0
        finally:
            reset_database()

    def test_configure_database_explicit_url(self):
        try:
            db = configure_database("memory://", connect_retries=2)
            assert db.url == "memory://"
            assert db._connect_retries == 2
        finally:
            reset_database()
