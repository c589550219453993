"""Repository: translates domain objects to documents and runs CRUD/search calls."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

from ninja_docstore.exceptions import (
    DocumentNotFoundError,
    PersistenceError,
    QueryError,
    StoreUnavailableError,
    VersionConflictError,
)
from ninja_docstore.protocols import DocumentClient
from ninja_docstore.repository import _validate_offset, _validate_size
from ninja_docstore.repository.results import DeleteResult, SaveResult, SearchResults, response_body

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Top-level keys of a search request body. A mapping without any of them is
# treated as a bare query clause.
_SEARCH_BODY_KEYS = frozenset(
    {
        "query",
        "aggs",
        "aggregations",
        "size",
        "from",
        "sort",
        "highlight",
        "_source",
        "post_filter",
        "track_total_hits",
        "search_after",
        "suggest",
        "min_score",
        "collapse",
        "knn",
        "fields",
        "explain",
        "timeout",
        "version",
        "seq_no_primary_term",
    }
)

# Body keys that collide with Python keywords or client parameters.
_BODY_KEY_RENAMES = {"from": "from_", "_source": "source"}


class RepositoryConfig(BaseModel):
    """Configuration of a repository, immutable after construction.

    Reconfiguring while operations are in flight is the caller's
    responsibility; build a new repository instead.
    """

    client: Any = Field(description="Async document store client.")
    index_name: str = Field(min_length=1, description="Index holding the documents.")
    document_type: str = Field(default="_doc", description="Type tag reported with each document.")
    document_class: Any = Field(default=None, description="Class used to rebuild objects from documents.")
    mappings: dict[str, Any] = Field(default_factory=dict, description="Index mapping definition.")
    settings: dict[str, Any] = Field(default_factory=dict, description="Index settings definition.")

    model_config = {"frozen": True, "arbitrary_types_allowed": True}


class Repository(Generic[T]):
    """Persistence façade for one index.

    Writes call ``serializer(obj)`` (default: ``obj.to_document()`` or a copy
    of a mapping); reads call ``deserializer(hit)`` (default:
    ``document_class.from_document(hit)``, else ``document_class(**source)``,
    else the source dict). Both are pluggable per instance.
    """

    def __init__(
        self,
        client: DocumentClient,
        *,
        index_name: str,
        document_type: str = "_doc",
        document_class: type[T] | None = None,
        mappings: dict[str, Any] | None = None,
        settings: dict[str, Any] | None = None,
        serializer: Callable[[T], dict[str, Any]] | None = None,
        deserializer: Callable[[Mapping[str, Any]], T] | None = None,
    ) -> None:
        self._config = RepositoryConfig(
            client=client,
            index_name=index_name,
            document_type=document_type,
            document_class=document_class,
            mappings=mappings or {},
            settings=settings or {},
        )
        self._serializer = serializer
        self._deserializer = deserializer

    @property
    def config(self) -> RepositoryConfig:
        return self._config

    @property
    def client(self) -> DocumentClient:
        return self._config.client

    @property
    def index_name(self) -> str:
        return self._config.index_name

    @property
    def document_type(self) -> str:
        return self._config.document_type

    @property
    def document_class(self) -> type[T] | None:
        return self._config.document_class

    def __repr__(self) -> str:
        cls_name = getattr(self.document_class, "__name__", None)
        return f"Repository(index={self.index_name!r}, type={self.document_type!r}, class={cls_name})"

    # -- Serialization ---------------------------------------------------------

    def serialize(self, obj: T) -> dict[str, Any]:
        """Render *obj* as a document source."""
        if self._serializer is not None:
            return self._serializer(obj)
        to_document = getattr(obj, "to_document", None)
        if callable(to_document):
            return to_document()
        if isinstance(obj, Mapping):
            return dict(obj)
        raise TypeError(
            f"Cannot serialize {type(obj).__name__}: define to_document() or pass a serializer to the repository"
        )

    def deserialize(self, document: Mapping[str, Any]) -> T:
        """Rebuild an object from a stored document (a get response or a search hit)."""
        if self._deserializer is not None:
            return self._deserializer(document)
        cls = self.document_class
        doc_id = document.get("_id")
        if cls is None:
            source = dict(document.get("_source") or {})
            if doc_id is not None:
                source.setdefault("id", doc_id)
            return source  # type: ignore[return-value]
        from_document = getattr(cls, "from_document", None)
        if callable(from_document):
            return from_document(document)
        obj = cls(**dict(document.get("_source") or {}))
        if doc_id is not None:
            _assign_id(obj, doc_id)
        return obj

    # -- CRUD -------------------------------------------------------------------

    async def save(self, obj: T, **options: Any) -> SaveResult:
        """Index *obj*, reusing its id when it has one.

        Extra keyword options (``refresh``, ``op_type``, ``if_seq_no``,
        ``if_primary_term``, ``version``, ``version_type``, ``routing``) are
        passed through to the client.
        """
        document = self.serialize(obj)
        doc_id = _extract_id(obj)
        kwargs: dict[str, Any] = {"index": self.index_name, "document": document, **options}
        if doc_id is not None:
            kwargs["id"] = doc_id
        try:
            response = await self.client.index(**kwargs)
        except Exception as exc:
            raise self._translate(exc, "save", doc_id) from exc
        result = SaveResult.from_response(response_body(response), doc_type=self.document_type)
        if doc_id is None and not isinstance(obj, Mapping):
            _assign_id(obj, result.id)
        logger.debug("Saved %s/%s (version=%s, created=%s)", self.index_name, result.id, result.version, result.created)
        return result

    async def find(self, id: str | int) -> T:
        """Return the object stored under *id*. Raises ``DocumentNotFoundError`` when absent."""
        doc_id = str(id)
        try:
            response = await self.client.get(index=self.index_name, id=doc_id)
        except Exception as exc:
            raise self._translate(exc, "find", doc_id) from exc
        body = response_body(response)
        if not body.get("found", True):
            raise DocumentNotFoundError(
                entity_name=self.index_name,
                operation="find",
                detail=f"Document with id '{doc_id}' not found.",
            )
        return self.deserialize(body)

    async def find_many(self, ids: Sequence[str | int]) -> list[T | None]:
        """Fetch several documents at once; missing ids yield ``None`` in their position."""
        if not ids:
            return []
        doc_ids = [str(i) for i in ids]
        try:
            response = await self.client.mget(index=self.index_name, ids=doc_ids)
        except Exception as exc:
            raise self._translate(exc, "find_many", None) from exc
        docs = response_body(response).get("docs") or []
        return [self.deserialize(doc) if doc.get("found") else None for doc in docs]

    async def exists(self, id: str | int) -> bool:
        doc_id = str(id)
        try:
            response = await self.client.exists(index=self.index_name, id=doc_id)
        except Exception as exc:
            raise self._translate(exc, "exists", doc_id) from exc
        return bool(response)

    async def update(
        self,
        obj_or_id: T | str | int,
        *,
        doc: dict[str, Any] | None = None,
        script: dict[str, Any] | str | None = None,
        **options: Any,
    ) -> SaveResult:
        """Apply a partial (``doc``) or scripted (``script``) update to a stored document."""
        if (doc is None) == (script is None):
            raise ValueError("update() requires exactly one of doc or script")
        doc_id = _id_from(obj_or_id)
        if doc_id is None:
            raise ValueError("update() requires a document id")
        kwargs: dict[str, Any] = {"index": self.index_name, "id": doc_id, **options}
        if doc is not None:
            kwargs["doc"] = doc
        else:
            kwargs["script"] = {"source": script} if isinstance(script, str) else script
        try:
            response = await self.client.update(**kwargs)
        except Exception as exc:
            raise self._translate(exc, "update", doc_id) from exc
        return SaveResult.from_response(response_body(response), doc_type=self.document_type)

    async def delete(self, obj_or_id: T | str | int, **options: Any) -> DeleteResult:
        """Delete a document. A missing document yields ``found=False`` instead of an error."""
        doc_id = _id_from(obj_or_id)
        if doc_id is None:
            raise ValueError("delete() requires a document id")
        try:
            response = await self.client.delete(index=self.index_name, id=doc_id, **options)
        except Exception as exc:
            if _status_of(exc) == 404 or type(exc).__name__ == "NotFoundError":
                logger.debug("Delete of %s/%s found nothing", self.index_name, doc_id)
                return DeleteResult.from_response(
                    _error_body(exc), index=self.index_name, doc_type=self.document_type, id=doc_id
                )
            raise self._translate(exc, "delete", doc_id) from exc
        return DeleteResult.from_response(
            response_body(response), index=self.index_name, doc_type=self.document_type, id=doc_id
        )

    # -- Search -----------------------------------------------------------------

    async def search(
        self,
        query: Mapping[str, Any] | str | None = None,
        *,
        size: int | None = None,
        offset: int | None = None,
        **options: Any,
    ) -> SearchResults[T]:
        """Run a search and wrap the response.

        *query* may be a full request body, a bare query clause such as
        ``{"match": {"title": "test"}}``, or a query-string ``str``.
        """
        kwargs = self._search_kwargs(query)
        if size is not None:
            kwargs["size"] = _validate_size(size)
        if offset is not None:
            kwargs["from_"] = _validate_offset(offset)
        kwargs.update(_paging_checked(options))
        try:
            response = await self.client.search(index=self.index_name, **kwargs)
        except Exception as exc:
            raise self._translate(exc, "search", None) from exc
        return SearchResults(response_body(response), self.deserialize)

    async def count(self, query: Mapping[str, Any] | str | None = None) -> int:
        kwargs = self._search_kwargs(query)
        kwargs = {k: v for k, v in kwargs.items() if k in ("query", "q")}
        try:
            response = await self.client.count(index=self.index_name, **kwargs)
        except Exception as exc:
            raise self._translate(exc, "count", None) from exc
        return int(response_body(response).get("count", 0))

    async def scan(
        self,
        query: Mapping[str, Any] | str | None = None,
        *,
        batch_size: int = 1000,
        scroll: str = "5m",
    ) -> AsyncIterator[list[T]]:
        """Yield every matching object exactly once, in pages of *batch_size*.

        Uses a store-managed scroll cursor, which is cleared when iteration
        finishes or the generator is closed early. Order is the store's
        natural order unless the query specifies a sort.
        """
        kwargs = self._search_kwargs(query)
        kwargs["size"] = _validate_size(batch_size)
        kwargs.setdefault("sort", ["_doc"])
        try:
            response = await self.client.search(index=self.index_name, scroll=scroll, **kwargs)
        except Exception as exc:
            raise self._translate(exc, "scan", None) from exc

        body = response_body(response)
        scroll_id = body.get("_scroll_id")
        try:
            while True:
                hits = (body.get("hits") or {}).get("hits") or []
                if not hits:
                    break
                logger.debug("Scroll page of %d hits from %s", len(hits), self.index_name)
                yield [self.deserialize(hit) for hit in hits]
                if not scroll_id:
                    break
                try:
                    response = await self.client.scroll(scroll_id=scroll_id, scroll=scroll)
                except Exception as exc:
                    raise self._translate(exc, "scan", None) from exc
                body = response_body(response)
                scroll_id = body.get("_scroll_id", scroll_id)
        finally:
            if scroll_id:
                await self._clear_scroll(scroll_id)

    async def _clear_scroll(self, scroll_id: str) -> None:
        try:
            await self.client.clear_scroll(scroll_id=scroll_id)
        except Exception:
            # The cursor expires on its own after the keep-alive.
            logger.warning("Failed to clear scroll cursor on %s", self.index_name, exc_info=True)

    def _search_kwargs(self, query: Mapping[str, Any] | str | None) -> dict[str, Any]:
        if query is None:
            return {"query": {"match_all": {}}}
        if isinstance(query, str):
            return {"q": query}
        body = dict(query)
        if not body or not (body.keys() & _SEARCH_BODY_KEYS):
            body = {"query": body or {"match_all": {}}}
        return _paging_checked({_BODY_KEY_RENAMES.get(key, key): value for key, value in body.items()})

    # -- Index lifecycle --------------------------------------------------------

    async def index_exists(self) -> bool:
        try:
            response = await self.client.indices.exists(index=self.index_name)
        except Exception as exc:
            raise self._translate(exc, "index_exists", None) from exc
        return bool(response)

    async def create_index(self, *, force: bool = False, **options: Any) -> dict[str, Any] | None:
        """Create the index from the configured mappings and settings.

        Returns None without a call when the index already exists, unless
        *force* is set, in which case the existing index is deleted first.
        """
        if force:
            await self.delete_index(ignore_missing=True)
        elif await self.index_exists():
            logger.info("Index %s already exists; skipping creation", self.index_name)
            return None
        kwargs: dict[str, Any] = {"index": self.index_name, **options}
        if self._config.mappings:
            kwargs["mappings"] = self._config.mappings
        if self._config.settings:
            kwargs["settings"] = self._config.settings
        try:
            response = await self.client.indices.create(**kwargs)
        except Exception as exc:
            raise self._translate(exc, "create_index", None) from exc
        logger.info("Created index %s", self.index_name)
        return response_body(response)

    async def delete_index(self, *, ignore_missing: bool = False, **options: Any) -> dict[str, Any] | None:
        try:
            response = await self.client.indices.delete(index=self.index_name, **options)
        except Exception as exc:
            if ignore_missing and (_status_of(exc) == 404 or type(exc).__name__ == "NotFoundError"):
                return None
            raise self._translate(exc, "delete_index", None) from exc
        logger.info("Deleted index %s", self.index_name)
        return response_body(response)

    async def refresh_index(self, **options: Any) -> dict[str, Any]:
        try:
            response = await self.client.indices.refresh(index=self.index_name, **options)
        except Exception as exc:
            raise self._translate(exc, "refresh_index", None) from exc
        return response_body(response)

    # -- Error translation ------------------------------------------------------

    def _translate(self, exc: Exception, operation: str, doc_id: str | None) -> PersistenceError:
        """Map a client exception onto the domain exception hierarchy and log it."""
        name = self.index_name
        if _is_connection_error(exc):
            logger.error("%s connection error on %s (id=%s): %s", operation, name, doc_id, type(exc).__name__)
            return StoreUnavailableError(
                entity_name=name,
                operation=operation,
                detail="Document store is unavailable.",
                cause=exc,
            )
        status = _status_of(exc)
        exc_name = type(exc).__name__
        if status == 404 or exc_name == "NotFoundError":
            logger.debug("%s on %s: id=%s not found", operation, name, doc_id)
            return DocumentNotFoundError(
                entity_name=name,
                operation=operation,
                detail=f"Document with id '{doc_id}' not found." if doc_id else "Index or document not found.",
                cause=exc,
            )
        if status == 409 or exc_name == "ConflictError":
            logger.error("%s version conflict on %s (id=%s)", operation, name, doc_id)
            return VersionConflictError(
                entity_name=name,
                operation=operation,
                detail="Version conflict: the document was modified concurrently.",
                cause=exc,
            )
        if status == 400 or exc_name in ("BadRequestError", "RequestError"):
            logger.error("%s rejected by store on %s: %s", operation, name, exc_name)
            return QueryError(
                entity_name=name,
                operation=operation,
                detail="Request rejected by the document store.",
                cause=exc,
            )
        logger.error("%s failed on %s (id=%s): %s", operation, name, doc_id, exc_name)
        return PersistenceError(
            entity_name=name,
            operation=operation,
            detail=f"{operation} operation failed.",
            cause=exc,
        )


def _paging_checked(kwargs: dict[str, Any]) -> dict[str, Any]:
    """Apply the size and offset limits to ``size``/``from_`` given in a body or as options."""
    if kwargs.get("size") is not None:
        kwargs["size"] = _validate_size(kwargs["size"])
    if kwargs.get("from_") is not None:
        kwargs["from_"] = _validate_offset(kwargs["from_"])
    return kwargs


def _extract_id(obj: Any) -> str | None:
    if isinstance(obj, Mapping):
        value = obj.get("id")
    else:
        value = getattr(obj, "id", None)
    return None if value is None else str(value)


def _id_from(obj_or_id: Any) -> str | None:
    if isinstance(obj_or_id, (str, int)) and not isinstance(obj_or_id, bool):
        return str(obj_or_id)
    return _extract_id(obj_or_id)


def _assign_id(obj: Any, doc_id: str) -> None:
    """Write a store-assigned id back onto *obj* when it has a settable, empty ``id``."""
    if not hasattr(obj, "id") or getattr(obj, "id") is not None:
        return
    try:
        setattr(obj, "id", doc_id)
    except AttributeError:
        # Frozen or slotted objects keep their state; the id is in the save result.
        logger.debug("Could not assign id to %s", type(obj).__name__)


_CONNECTION_ERROR_NAMES = frozenset(
    {
        "ConnectionError",
        "ConnectionTimeout",
        "SSLError",
        "TimeoutError",
        "ServerDisconnectedError",
        "ClientConnectorError",
    }
)


def _is_connection_error(exc: Exception) -> bool:
    """Check whether *exc* indicates a transport-level failure.

    Recognises the ``elasticsearch``/``elastic_transport`` and ``opensearchpy``
    connection errors by class name, plus gateway statuses, without importing
    either client.
    """
    type_names = {cls.__name__ for cls in type(exc).__mro__}
    if type_names & _CONNECTION_ERROR_NAMES:
        return True
    return _status_of(exc) in (502, 503, 504)


def _status_of(exc: Exception) -> int | None:
    """Return the HTTP status carried by a client exception, if any."""
    status = getattr(exc, "status_code", None)
    if isinstance(status, int):
        return status
    meta = getattr(exc, "meta", None)
    status = getattr(meta, "status", None)
    return status if isinstance(status, int) else None


def _error_body(exc: Exception) -> dict[str, Any]:
    """Return the response body attached to a client exception, if any."""
    for attr in ("body", "info"):
        body = getattr(exc, attr, None)
        if isinstance(body, Mapping):
            return dict(body)
    return {}
