"""Result wrappers returned by repository operations."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")


def response_body(response: Any) -> dict[str, Any]:
    """Return the JSON body of a client response as a plain dict.

    ``elasticsearch`` wraps bodies in ``ObjectApiResponse`` (exposing ``.body``);
    other clients and test doubles return mappings directly.
    """
    body = getattr(response, "body", response)
    if body is None:
        return {}
    if isinstance(body, Mapping):
        return dict(body)
    raise TypeError(f"Unexpected response body type: {type(body).__name__}")


@dataclass(frozen=True)
class SaveResult:
    """Metadata of a persisted document after an index or update call.

    ``source`` holds the updated source when an update asked for it back.
    """

    index: str
    doc_type: str
    id: str
    version: int | None
    created: bool
    result: str | None = None
    seq_no: int | None = None
    primary_term: int | None = None
    source: dict[str, Any] | None = None

    @classmethod
    def from_response(cls, body: Mapping[str, Any], *, doc_type: str) -> SaveResult:
        result = body.get("result")
        created = body.get("created")
        if created is None:
            created = result == "created"
        return cls(
            index=body.get("_index", ""),
            doc_type=body.get("_type", doc_type),
            id=str(body.get("_id", "")),
            version=body.get("_version"),
            created=bool(created),
            result=result,
            seq_no=body.get("_seq_no"),
            primary_term=body.get("_primary_term"),
            source=(body.get("get") or {}).get("_source"),
        )


@dataclass(frozen=True)
class DeleteResult:
    """Outcome of a delete call. ``found`` is False when nothing was removed."""

    index: str
    doc_type: str
    id: str
    found: bool
    version: int | None = None
    result: str | None = None

    @classmethod
    def from_response(cls, body: Mapping[str, Any], *, index: str, doc_type: str, id: str) -> DeleteResult:
        result = body.get("result")
        found = body.get("found")
        if found is None:
            found = result == "deleted"
        return cls(
            index=body.get("_index", index),
            doc_type=body.get("_type", doc_type),
            id=str(body.get("_id", id)),
            found=bool(found),
            version=body.get("_version"),
            result=result,
        )


@dataclass(frozen=True)
class Hit:
    """Per-hit metadata of a search response."""

    id: str
    index: str
    score: float | None
    source: dict[str, Any]
    highlight: dict[str, list[str]] = field(default_factory=dict)
    sort: list[Any] | None = None
    version: int | None = None

    @classmethod
    def from_raw(cls, raw: Mapping[str, Any]) -> Hit:
        return cls(
            id=str(raw.get("_id", "")),
            index=raw.get("_index", ""),
            score=raw.get("_score"),
            source=dict(raw.get("_source") or {}),
            highlight=dict(raw.get("highlight") or {}),
            sort=raw.get("sort"),
            version=raw.get("_version"),
        )


class SearchResults(Generic[T]):
    """Objects produced by a single search call, plus the response metadata.

    Iteration deserializes hits lazily and is one-shot: once consumed, the
    results cannot be iterated again. Metadata stays available throughout.
    """

    def __init__(self, response: Mapping[str, Any], deserialize: Callable[[Mapping[str, Any]], T]) -> None:
        self._response = dict(response)
        self._deserialize = deserialize
        hits_section = self._response.get("hits") or {}
        self._raw_hits: list[dict[str, Any]] = list(hits_section.get("hits") or [])
        self._cursor = iter(self._raw_hits)

    def __iter__(self) -> Iterator[T]:
        return self

    def __next__(self) -> T:
        return self._deserialize(next(self._cursor))

    def __len__(self) -> int:
        return len(self._raw_hits)

    def __repr__(self) -> str:
        return f"SearchResults(total={self.total}, hits={len(self)})"

    def with_hits(self) -> Iterator[tuple[T, Hit]]:
        """Yield ``(object, hit)`` pairs from the same one-shot cursor."""
        for raw in self._cursor:
            yield self._deserialize(raw), Hit.from_raw(raw)

    @property
    def hits(self) -> list[Hit]:
        return [Hit.from_raw(raw) for raw in self._raw_hits]

    @property
    def total(self) -> int:
        total = (self._response.get("hits") or {}).get("total", 0)
        if isinstance(total, Mapping):
            return int(total.get("value", 0))
        return int(total or 0)

    @property
    def max_score(self) -> float | None:
        return (self._response.get("hits") or {}).get("max_score")

    @property
    def aggregations(self) -> dict[str, Any]:
        return dict(self._response.get("aggregations") or {})

    @property
    def took(self) -> int | None:
        return self._response.get("took")

    @property
    def timed_out(self) -> bool:
        return bool(self._response.get("timed_out", False))

    @property
    def response(self) -> dict[str, Any]:
        return self._response
