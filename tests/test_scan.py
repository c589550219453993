"""Tests for scroll-based batch iteration over a repository."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from ninja_docstore.exceptions import StoreUnavailableError
from ninja_docstore.repository.base import Repository


class FakeConnectionError(Exception):
    """Simulates elastic_transport.ConnectionError."""

    pass


FakeConnectionError.__name__ = "ConnectionError"


@pytest.fixture
async def seeded(client) -> Repository[dict]:
    repo = Repository(client, index_name="events")
    for i in range(10):
        await repo.save({"id": f"e{i}", "n": i, "kind": "odd" if i % 2 else "even"})
    return repo


async def test_scan_visits_every_document_exactly_once(seeded: Repository[dict]):
    seen: list[str] = []
    batch_sizes: list[int] = []
    async for batch in seeded.scan(batch_size=3):
        batch_sizes.append(len(batch))
        seen.extend(doc["id"] for doc in batch)
    assert sorted(seen) == sorted(f"e{i}" for i in range(10))
    assert len(seen) == len(set(seen))
    assert batch_sizes == [3, 3, 3, 1]


async def test_scan_clears_scroll_cursor(seeded: Repository[dict], client):
    async for _ in seeded.scan(batch_size=4):
        pass
    assert client.cleared_scrolls == ["scroll-1"]
    assert client.scrolls == {}


async def test_scan_clears_scroll_when_closed_early(seeded: Repository[dict], client):
    batches = seeded.scan(batch_size=2)
    first = await batches.__anext__()
    assert len(first) == 2
    await batches.aclose()
    assert client.cleared_scrolls == ["scroll-1"]


async def test_scan_with_query(seeded: Repository[dict]):
    seen = []
    async for batch in seeded.scan({"term": {"kind": "odd"}}, batch_size=2):
        seen.extend(doc["n"] for doc in batch)
    assert sorted(seen) == [1, 3, 5, 7, 9]


async def test_scan_empty_index_yields_nothing(client):
    repo = Repository(client, index_name="empty")
    batches = [batch async for batch in repo.scan()]
    assert batches == []


async def test_scan_requests_doc_order_and_scroll_keepalive(seeded: Repository[dict], client):
    async for _ in seeded.scan(batch_size=5, scroll="1m"):
        pass
    search_calls = [params for name, params in client.calls if name == "search"]
    assert search_calls[-1]["scroll"] == "1m"
    assert search_calls[-1]["size"] == 5


async def test_scan_rejects_non_positive_batch_size(seeded: Repository[dict]):
    with pytest.raises(ValueError, match="size must be >= 1"):
        async for _ in seeded.scan(batch_size=0):
            pass


async def test_scan_scroll_failure_is_translated_and_cursor_cleared():
    client = MagicMock()
    client.search = AsyncMock(
        return_value={"_scroll_id": "s1", "hits": {"hits": [{"_id": "1", "_source": {"a": 1}}]}}
    )
    client.scroll = AsyncMock(side_effect=FakeConnectionError("reset"))
    client.clear_scroll = AsyncMock(return_value={"succeeded": True})
    repo = Repository(client, index_name="events")

    pages = []
    with pytest.raises(StoreUnavailableError) as exc_info:
        async for batch in repo.scan(batch_size=1):
            pages.append(batch)
    assert exc_info.value.operation == "scan"
    assert pages == [[{"a": 1, "id": "1"}]]
    client.clear_scroll.assert_awaited_once_with(scroll_id="s1")


async def test_scan_clear_scroll_failure_is_logged_not_raised(caplog):
    client = MagicMock()
    client.search = AsyncMock(
        return_value={"_scroll_id": "s1", "hits": {"hits": [{"_id": "1", "_source": {}}]}}
    )
    client.scroll = AsyncMock(return_value={"_scroll_id": "s1", "hits": {"hits": []}})
    client.clear_scroll = AsyncMock(side_effect=RuntimeError("gone"))
    repo = Repository(client, index_name="events")

    batches = [batch async for batch in repo.scan()]

    assert len(batches) == 1
    assert "Failed to clear scroll cursor" in caplog.text
