"""Shared fixtures: an in-memory stand-in for the async Elasticsearch client."""

from __future__ import annotations

import itertools
import re
from typing import Any

import pytest


class FakeNotFoundError(Exception):
    """Simulates elasticsearch.NotFoundError (HTTP 404)."""

    def __init__(self, message: str, body: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.status_code = 404
        self.body = body or {}


FakeNotFoundError.__name__ = "NotFoundError"


class FakeConflictError(Exception):
    """Simulates elasticsearch.ConflictError (HTTP 409)."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.status_code = 409
        self.body = {"error": {"type": "version_conflict_engine_exception"}}


FakeConflictError.__name__ = "ConflictError"


class FakeBadRequestError(Exception):
    """Simulates elasticsearch.BadRequestError (HTTP 400)."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.status_code = 400
        self.body = {"error": {"type": message}}


FakeBadRequestError.__name__ = "BadRequestError"


class FakeConnectionError(Exception):
    """Simulates elastic_transport.ConnectionError."""


FakeConnectionError.__name__ = "ConnectionError"


_TOKEN_RE = re.compile(r"\w+")


def _tokens(value: Any) -> set[str]:
    if isinstance(value, list):
        return set().union(*(_tokens(v) for v in value)) if value else set()
    return {t.lower() for t in _TOKEN_RE.findall(str(value))}


def _matches(source: dict[str, Any], doc_id: str, query: dict[str, Any] | None) -> bool:
    """Evaluate the handful of query clauses the tests use."""
    if not query or "match_all" in query:
        return True
    if "match" in query:
        (field, spec), = query["match"].items()
        wanted = spec["query"] if isinstance(spec, dict) else spec
        return field in source and bool(_tokens(wanted) & _tokens(source[field]))
    if "term" in query:
        (field, spec), = query["term"].items()
        wanted = spec["value"] if isinstance(spec, dict) else spec
        value = source.get(field)
        return wanted in value if isinstance(value, list) else value == wanted
    if "ids" in query:
        return doc_id in query["ids"]["values"]
    if "range" in query:
        (field, bounds), = query["range"].items()
        value = source.get(field)
        if value is None:
            return False
        checks = {
            "gte": lambda b: value >= b,
            "gt": lambda b: value > b,
            "lte": lambda b: value <= b,
            "lt": lambda b: value < b,
        }
        return all(checks[op](bound) for op, bound in bounds.items())
    if "bool" in query:
        clause = query["bool"]
        must = clause.get("must", []) + clause.get("filter", [])
        if any(not _matches(source, doc_id, q) for q in must):
            return False
        if any(_matches(source, doc_id, q) for q in clause.get("must_not", [])):
            return False
        should = clause.get("should", [])
        return not should or any(_matches(source, doc_id, q) for q in should)
    raise FakeBadRequestError(f"unsupported query {sorted(query)}")


def _matches_q(source: dict[str, Any], q: str) -> bool:
    if ":" in q:
        field, _, value = q.partition(":")
        return field in source and bool(_tokens(value) & _tokens(source[field]))
    return any(_tokens(q) & _tokens(v) for v in source.values())


class FakeIndices:
    """The ``client.indices`` namespace."""

    def __init__(self, client: FakeDocumentClient) -> None:
        self._client = client
        self.refresh_count = 0

    async def create(self, *, index: str, mappings: dict | None = None, settings: dict | None = None, **kw: Any):
        self._client.calls.append(("indices.create", index))
        if index in self._client.indices_meta:
            raise FakeBadRequestError("resource_already_exists_exception")
        self._client.indices_meta[index] = {"mappings": mappings or {}, "settings": settings or {}}
        self._client.docs.setdefault(index, {})
        return {"acknowledged": True, "shards_acknowledged": True, "index": index}

    async def delete(self, *, index: str, **kw: Any):
        self._client.calls.append(("indices.delete", index))
        if index not in self._client.indices_meta:
            raise FakeNotFoundError("index_not_found_exception", {"status": 404})
        del self._client.indices_meta[index]
        self._client.docs.pop(index, None)
        return {"acknowledged": True}

    async def exists(self, *, index: str, **kw: Any) -> bool:
        return index in self._client.indices_meta

    async def refresh(self, *, index: str, **kw: Any):
        self.refresh_count += 1
        return {"_shards": {"total": 1, "successful": 1, "failed": 0}}


class FakeDocumentClient:
    """In-memory document store with version bookkeeping and scroll cursors."""

    def __init__(self) -> None:
        self.docs: dict[str, dict[str, dict[str, Any]]] = {}
        self.indices_meta: dict[str, dict[str, Any]] = {}
        self.tombstones: dict[tuple[str, str], int] = {}
        self.scrolls: dict[str, list[dict[str, Any]]] = {}
        self.scroll_sizes: dict[str, int] = {}
        self.cleared_scrolls: list[str] = []
        self.calls: list[tuple[str, Any]] = []
        self.update_kwargs: list[dict[str, Any]] = []
        self.indices = FakeIndices(self)
        self._seq = itertools.count()
        self._auto_ids = itertools.count(1)
        self._scroll_ids = itertools.count(1)

    def _index_docs(self, index: str) -> dict[str, dict[str, Any]]:
        if index not in self.indices_meta:
            self.indices_meta[index] = {"mappings": {}, "settings": {}}
        return self.docs.setdefault(index, {})

    def _write(self, index: str, doc_id: str, source: dict[str, Any]) -> tuple[dict[str, Any], bool]:
        docs = self._index_docs(index)
        existing = docs.get(doc_id)
        if existing is not None:
            version = existing["_version"] + 1
        else:
            version = self.tombstones.pop((index, doc_id), 0) + 1
        stored = {"_source": source, "_version": version, "_seq_no": next(self._seq), "_primary_term": 1}
        docs[doc_id] = stored
        return stored, existing is None

    async def index(
        self,
        *,
        index: str,
        document: dict[str, Any],
        id: str | None = None,
        op_type: str | None = None,
        if_seq_no: int | None = None,
        if_primary_term: int | None = None,
        refresh: Any = None,
        **kw: Any,
    ):
        self.calls.append(("index", id))
        doc_id = id if id is not None else f"auto-{next(self._auto_ids)}"
        existing = self._index_docs(index).get(doc_id)
        if op_type == "create" and existing is not None:
            raise FakeConflictError(f"[{doc_id}]: version conflict, document already exists")
        if if_seq_no is not None:
            if existing is None or existing["_seq_no"] != if_seq_no or existing["_primary_term"] != if_primary_term:
                raise FakeConflictError(f"[{doc_id}]: version conflict, required seqNo [{if_seq_no}]")
        stored, created = self._write(index, doc_id, dict(document))
        return {
            "_index": index,
            "_id": doc_id,
            "_version": stored["_version"],
            "result": "created" if created else "updated",
            "_seq_no": stored["_seq_no"],
            "_primary_term": stored["_primary_term"],
            "_shards": {"total": 1, "successful": 1, "failed": 0},
        }

    async def get(self, *, index: str, id: str, **kw: Any):
        self.calls.append(("get", id))
        stored = self.docs.get(index, {}).get(id)
        if stored is None:
            raise FakeNotFoundError(f"{id} not found", {"_index": index, "_id": id, "found": False})
        return {"_index": index, "_id": id, "found": True, **stored}

    async def mget(self, *, index: str, ids: list[str], **kw: Any):
        docs = []
        for doc_id in ids:
            stored = self.docs.get(index, {}).get(doc_id)
            if stored is None:
                docs.append({"_index": index, "_id": doc_id, "found": False})
            else:
                docs.append({"_index": index, "_id": doc_id, "found": True, **stored})
        return {"docs": docs}

    async def exists(self, *, index: str, id: str, **kw: Any) -> bool:
        return id in self.docs.get(index, {})

    def _matching(self, index: str, query: dict | None, q: str | None) -> list[dict[str, Any]]:
        hits = []
        for doc_id, stored in self.docs.get(index, {}).items():
            source = stored["_source"]
            ok = _matches_q(source, q) if q is not None else _matches(source, doc_id, query)
            if ok:
                hits.append(
                    {
                        "_index": index,
                        "_id": doc_id,
                        "_score": 1.0,
                        "_source": dict(source),
                        "_version": stored["_version"],
                        "_seq_no": stored["_seq_no"],
                        "_primary_term": stored["_primary_term"],
                    }
                )
        return hits

    @staticmethod
    def _sort(hits: list[dict[str, Any]], sort: list[Any] | None) -> list[dict[str, Any]]:
        for spec in reversed(sort or []):
            if spec == "_doc":
                continue
            if isinstance(spec, str):
                field, order = spec, "asc"
            else:
                (field, opts), = spec.items()
                order = opts["order"] if isinstance(opts, dict) else opts
            hits = sorted(hits, key=lambda h: h["_source"].get(field), reverse=order == "desc")
        return hits

    @staticmethod
    def _aggregate(hits: list[dict[str, Any]], aggs: dict[str, Any]) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for name, spec in aggs.items():
            field = spec["terms"]["field"]
            counts: dict[Any, int] = {}
            for hit in hits:
                value = hit["_source"].get(field)
                for v in value if isinstance(value, list) else [value]:
                    counts[v] = counts.get(v, 0) + 1
            buckets = [{"key": k, "doc_count": c} for k, c in sorted(counts.items(), key=lambda kv: -kv[1])]
            result[name] = {"buckets": buckets}
        return result

    async def search(
        self,
        *,
        index: str,
        query: dict | None = None,
        q: str | None = None,
        size: int = 10,
        from_: int = 0,
        sort: list[Any] | None = None,
        aggs: dict[str, Any] | None = None,
        scroll: str | None = None,
        highlight: dict[str, Any] | None = None,
        **kw: Any,
    ):
        self.calls.append(("search", {"query": query, "q": q, "size": size, "from_": from_, "scroll": scroll}))
        hits = self._sort(self._matching(index, query, q), sort)
        body: dict[str, Any] = {
            "took": 1,
            "timed_out": False,
            "hits": {
                "total": {"value": len(hits), "relation": "eq"},
                "max_score": 1.0 if hits else None,
                "hits": hits[from_ : from_ + size],
            },
        }
        if aggs:
            body["aggregations"] = self._aggregate(hits, aggs)
        if scroll is not None:
            scroll_id = f"scroll-{next(self._scroll_ids)}"
            self.scrolls[scroll_id] = hits[size:]
            self.scroll_sizes[scroll_id] = size
            body["_scroll_id"] = scroll_id
        return body

    async def scroll(self, *, scroll_id: str, scroll: str, **kw: Any):
        self.calls.append(("scroll", scroll_id))
        if scroll_id not in self.scrolls:
            raise FakeNotFoundError("search_context_missing_exception")
        remaining = self.scrolls[scroll_id]
        size = self.scroll_sizes[scroll_id]
        page, self.scrolls[scroll_id] = remaining[:size], remaining[size:]
        return {"_scroll_id": scroll_id, "hits": {"total": {"value": len(page)}, "hits": page}}

    async def clear_scroll(self, *, scroll_id: str, **kw: Any):
        self.cleared_scrolls.append(scroll_id)
        self.scrolls.pop(scroll_id, None)
        return {"succeeded": True, "num_freed": 1}

    async def count(self, *, index: str, query: dict | None = None, q: str | None = None, **kw: Any):
        return {"count": len(self._matching(index, query, q))}

    async def update(
        self,
        *,
        index: str,
        id: str,
        doc: dict[str, Any] | None = None,
        script: dict[str, Any] | None = None,
        source: Any = None,
        **kw: Any,
    ):
        self.calls.append(("update", id))
        self.update_kwargs.append({"doc": doc, "script": script, "source": source, **kw})
        stored = self.docs.get(index, {}).get(id)
        if stored is None:
            raise FakeNotFoundError(f"[{id}]: document missing", {"_index": index, "_id": id})
        updated = dict(stored["_source"])
        if doc is not None:
            updated.update(doc)
        else:
            params = script["params"]
            updated[params["field"]] = (updated.get(params["field"]) or 0) + params["by"]
        new, _ = self._write(index, id, updated)
        body = {
            "_index": index,
            "_id": id,
            "_version": new["_version"],
            "result": "updated",
            "_seq_no": new["_seq_no"],
            "_primary_term": new["_primary_term"],
        }
        if source:
            fields = source if isinstance(source, list) else list(updated)
            body["get"] = {"_source": {k: updated[k] for k in fields if k in updated}}
        return body

    async def delete(self, *, index: str, id: str, **kw: Any):
        self.calls.append(("delete", id))
        docs = self.docs.get(index, {})
        stored = docs.pop(id, None)
        if stored is None:
            version = self.tombstones.get((index, id), 0) + 1
            raise FakeNotFoundError(
                f"{id} not found",
                {"_index": index, "_id": id, "_version": version, "result": "not_found"},
            )
        version = stored["_version"] + 1
        self.tombstones[(index, id)] = version
        return {"_index": index, "_id": id, "_version": version, "result": "deleted"}

    async def close(self) -> None:
        return None


@pytest.fixture
def client() -> FakeDocumentClient:
    return FakeDocumentClient()
