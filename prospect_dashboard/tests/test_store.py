"""
Test Module for the document stores.

Both implementations must behave the same: missing keys read as None,
writes replace, listing is prefix-filtered and sorted, deletes report
whether anything was removed.
"""

import pytest

from prospect_dashboard.core.store import InMemoryStore, JsonFileStore, create_store


@pytest.fixture(params=["memory", "file"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return InMemoryStore()
    return JsonFileStore(str(tmp_path / "data"))


class TestDocumentStore:
    """Contract shared by every store implementation."""

    @pytest.mark.asyncio
    async def test_get_missing(self, any_store):
        assert await any_store.get("daily/2026-02-10.json") is None

    @pytest.mark.asyncio
    async def test_put_get_replace(self, any_store):
        await any_store.put("daily/2026-02-10.json", {"date": "2026-02-10", "results": []})
        await any_store.put("daily/2026-02-10.json", {"date": "2026-02-10", "results": [1]})
        assert await any_store.get("daily/2026-02-10.json") == {"date": "2026-02-10", "results": [1]}

    @pytest.mark.asyncio
    async def test_list_by_prefix(self, any_store):
        for key in ("daily/2026-02-11.json", "pnl-config.json", "daily/2026-02-09.json"):
            await any_store.put(key, {})
        assert await any_store.list("daily/") == ["daily/2026-02-09.json", "daily/2026-02-11.json"]

    @pytest.mark.asyncio
    async def test_delete(self, any_store):
        await any_store.put("pnl-config.json", {"a": 1})
        assert await any_store.delete("pnl-config.json") is True
        assert await any_store.delete("pnl-config.json") is False

    @pytest.mark.asyncio
    async def test_returned_documents_are_copies(self, any_store):
        await any_store.put("pnl-config.json", {"serviceFees": {"oec": 1}})
        document = await any_store.get("pnl-config.json")
        document["serviceFees"]["oec"] = 99
        assert (await any_store.get("pnl-config.json"))["serviceFees"]["oec"] == 1


class TestJsonFileStore:

    @pytest.mark.asyncio
    async def test_rejects_escaping_keys(self, tmp_path):
        store = JsonFileStore(str(tmp_path))
        with pytest.raises(ValueError):
            await store.get("../outside.json")

    @pytest.mark.asyncio
    async def test_writes_utf8_json(self, tmp_path):
        store = JsonFileStore(str(tmp_path))
        await store.put("daily/2026-02-10.json", {"clientName": "Señora Ana"})
        text = (tmp_path / "daily" / "2026-02-10.json").read_text(encoding="utf-8")
        assert "Señora Ana" in text


class TestCreateStore:

    def test_backends(self, tmp_path):
        assert isinstance(create_store("memory", str(tmp_path)), InMemoryStore)
        assert isinstance(create_store("file", str(tmp_path)), JsonFileStore)
        with pytest.raises(ValueError):
            create_store("redis", str(tmp_path))
