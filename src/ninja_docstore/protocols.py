"""Protocols describing the collaborators the persistence layer talks to."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ninja_docstore.boundary.validators import ValidationErrors
    from ninja_docstore.model.callbacks import LifecycleEvent


@runtime_checkable
class IndicesClient(Protocol):
    """Index lifecycle namespace of the client (``client.indices``)."""

    async def create(self, *, index: str, **kwargs: Any) -> Any: ...
    async def delete(self, *, index: str, **kwargs: Any) -> Any: ...
    async def exists(self, *, index: str, **kwargs: Any) -> Any: ...
    async def refresh(self, *, index: str, **kwargs: Any) -> Any: ...


@runtime_checkable
class DocumentClient(Protocol):
    """The subset of the async Elasticsearch client surface used by repositories.

    ``AsyncElasticsearch`` and ``opensearchpy.AsyncOpenSearch`` both satisfy it.
    The client owns transport, connection pooling, timeouts and retries.
    """

    indices: IndicesClient

    async def index(self, *, index: str, document: dict[str, Any], id: str | None = None, **kwargs: Any) -> Any: ...
    async def get(self, *, index: str, id: str, **kwargs: Any) -> Any: ...
    async def mget(self, *, index: str, ids: list[str], **kwargs: Any) -> Any: ...
    async def exists(self, *, index: str, id: str, **kwargs: Any) -> Any: ...
    async def search(self, *, index: str, **kwargs: Any) -> Any: ...
    async def count(self, *, index: str, **kwargs: Any) -> Any: ...
    async def update(self, *, index: str, id: str, **kwargs: Any) -> Any: ...
    async def delete(self, *, index: str, id: str, **kwargs: Any) -> Any: ...
    async def scroll(self, *, scroll_id: str, scroll: str, **kwargs: Any) -> Any: ...
    async def clear_scroll(self, *, scroll_id: str, **kwargs: Any) -> Any: ...


@runtime_checkable
class DocumentSerializable(Protocol):
    """An object that can render itself as a document source."""

    def to_document(self) -> dict[str, Any]: ...


@runtime_checkable
class Validatable(Protocol):
    """Validation component composed into a model class."""

    def validate(self, instance: Any) -> ValidationErrors: ...


@runtime_checkable
class LifecycleObserver(Protocol):
    """Callback component composed into a model class."""

    async def run(self, event: LifecycleEvent, instance: Any) -> None: ...
