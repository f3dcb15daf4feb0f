"""
Tests for the top-level package: exports, corvid.connect and corvid.close.
"""

import pytest

import corvid
from corvid import Document, ODMConfig, String
from corvid.db.engine import get_database
from corvid.faults import BackendFault, ConnectionFault


class ApiAccount(Document):
    email = String

    class Meta:
        indexes = {"email": {"unique": True}}


class TestExports:

    def test_all_names_exist(self):
        for name in corvid.__all__:
            assert hasattr(corvid, name), name

    def test_version(self):
        assert corvid.__version__ == "0.1.0"


class TestConnect:

    @pytest.mark.asyncio
    async def test_connect_and_close(self):
        db = await corvid.connect("memory://")
        try:
            assert db.is_connected
            assert get_database() is db
        finally:
            await corvid.close()
        with pytest.raises(ConnectionFault):
            get_database()

    @pytest.mark.asyncio
    async def test_connect_uses_settings_url(self, tmp_path):
        db = await corvid.connect(config={"database_url": f"nedb://{tmp_path}"})
        try:
            assert db.url == f"nedb://{tmp_path}"
            assert corvid.get_settings().database_url == f"nedb://{tmp_path}"
        finally:
            await corvid.close()

    @pytest.mark.asyncio
    async def test_auto_index_creates_declared_indexes(self):
        await corvid.connect("memory://")
        try:
            await (await ApiAccount.create(email="a@x.io")).save()
            with pytest.raises(BackendFault) as exc_info:
                await (await ApiAccount.create(email="a@x.io")).save()
            assert exc_info.value.code == "DUPLICATE_KEY"
        finally:
            await corvid.close()

    @pytest.mark.asyncio
    async def test_auto_index_off(self):
        await corvid.connect("memory://", config=ODMConfig(auto_index=False))
        try:
            await (await ApiAccount.create(email="a@x.io")).save()
            await (await ApiAccount.create(email="a@x.io")).save()
            assert await ApiAccount.count({"email": "a@x.io"}) == 2
        finally:
            await corvid.close()

    @pytest.mark.asyncio
    async def test_close_without_connect(self):
        await corvid.close()
