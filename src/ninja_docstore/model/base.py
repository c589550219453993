"""Document-backed model base class.

A model class declares its attributes statically through a :class:`ModelSchema`
and composes three collaborators: a :class:`Repository` gateway for storage, a
validator and a callback registry. Persistence methods delegate explicitly to
them.

Example::

    class Article(Model):
        __schema__ = ModelSchema(
            name="Article",
            index_name="articles",
            attributes=[
                AttributeSchema(name="title", field_type=FieldType.TEXT, required=True),
                AttributeSchema(name="views", field_type=FieldType.INTEGER, default=0),
            ],
        )

    Article.use(client)
    article = await Article.create(title="Hello")
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Mapping, Sequence
from datetime import datetime, timezone
from enum import Enum
from typing import Any, ClassVar, TypeVar

from ninja_docstore.boundary.coercion import CoercionEngine, CoercionError, serialize_value
from ninja_docstore.boundary.defaults import DefaultResolver
from ninja_docstore.boundary.validators import ValidationErrors, ValidationRule, Validator
from ninja_docstore.exceptions import DocumentNotPersistedError
from ninja_docstore.model.callbacks import CallbackRegistry, LifecycleEvent
from ninja_docstore.protocols import DocumentClient, LifecycleObserver, Validatable
from ninja_docstore.repository.base import Repository
from ninja_docstore.repository.results import DeleteResult, SearchResults
from ninja_docstore.schema.attribute import AttributeSchema, FieldType, ModelSchema

logger = logging.getLogger(__name__)

M = TypeVar("M", bound="Model")

_INCREMENT_SCRIPT = (
    "if (ctx._source[params.field] == null) { ctx._source[params.field] = params.by } "
    "else { ctx._source[params.field] += params.by }"
)


class ModelState(str, Enum):
    """Where an instance is in its persistence lifecycle."""

    NEW = "new"
    PERSISTED = "persisted"
    DESTROYED = "destroyed"


class _Attribute:
    """Descriptor for one declared attribute; coerces values on assignment."""

    def __init__(self, schema: AttributeSchema) -> None:
        self.schema = schema

    def __get__(self, instance: Model | None, owner: type[Model]) -> Any:
        if instance is None:
            return self
        return instance._attributes.get(self.schema.name)

    def __set__(self, instance: Model, value: Any) -> None:
        model = type(instance)
        name = self.schema.name
        try:
            instance._attributes[name] = model.coercion.coerce(
                value, self.schema.field_type, name, model.__schema__.name
            )
        except CoercionError as exc:
            # Kept as given; validation reports it and blocks the save.
            logger.debug("%s", exc)
            instance._attributes[name] = value
            instance._cast_failures[name] = f"is not a valid {self.schema.field_type.value}"
        else:
            instance._cast_failures.pop(name, None)


class Model:
    """Base class for document-backed models. See the module docstring."""

    __schema__: ClassVar[ModelSchema]
    validator: ClassVar[Validatable]
    callbacks: ClassVar[LifecycleObserver]
    coercion: ClassVar[CoercionEngine] = CoercionEngine()
    defaults: ClassVar[DefaultResolver] = DefaultResolver()
    _repository: ClassVar[Repository[Any] | None] = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        schema = getattr(cls, "__schema__", None)
        if schema is None:
            return
        if not isinstance(schema, ModelSchema):
            raise TypeError(f"{cls.__name__}.__schema__ must be a ModelSchema, got {type(schema).__name__}")

        for attr in schema.all_attributes:
            if hasattr(Model, attr.name):
                raise TypeError(f"Attribute '{attr.name}' of {cls.__name__} shadows a Model member")
            setattr(cls, attr.name, _Attribute(attr))

        if "validator" not in cls.__dict__:
            parent = getattr(cls, "validator", None)
            if isinstance(parent, Validator):
                cls.validator = parent.copy_for(schema)
            elif parent is None:
                cls.validator = Validator(schema)
        if "callbacks" not in cls.__dict__:
            parent_callbacks = getattr(cls, "callbacks", None)
            if isinstance(parent_callbacks, CallbackRegistry):
                cls.callbacks = parent_callbacks.copy()
            elif parent_callbacks is None:
                cls.callbacks = CallbackRegistry()
        cls._repository = None

    def __init__(self, **attributes: Any) -> None:
        schema = self._schema()
        doc_id = attributes.pop("id", None)
        unknown = set(attributes) - {attr.name for attr in schema.all_attributes}
        if unknown:
            raise TypeError(f"{type(self).__name__} got unknown attributes: {sorted(unknown)}")

        self._attributes: dict[str, Any] = {}
        self._cast_failures: dict[str, str] = {}
        self._id: str | None = None if doc_id is None else str(doc_id)
        self._version: int | None = None
        self._seq_no: int | None = None
        self._primary_term: int | None = None
        self._state = ModelState.NEW
        self._errors = ValidationErrors()
        for name, value in self.defaults.resolve(attributes, schema).items():
            setattr(self, name, value)

    def __repr__(self) -> str:
        attrs = " ".join(f"{name}={value!r}" for name, value in self._attributes.items())
        return f"<{type(self).__name__} id={self._id!r} version={self._version} {attrs}>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Model):
            return NotImplemented
        if type(self) is not type(other):
            return False
        if self._id is None or other._id is None:
            return self is other
        return self._id == other._id

    __hash__ = None  # type: ignore[assignment]

    # -- Schema & state ---------------------------------------------------------

    @classmethod
    def _schema(cls) -> ModelSchema:
        schema = getattr(cls, "__schema__", None)
        if schema is None:
            raise TypeError(f"{cls.__name__} does not declare a __schema__")
        return schema

    @property
    def id(self) -> str | None:
        return self._id

    @id.setter
    def id(self, value: str | int | None) -> None:
        if self._state is not ModelState.NEW:
            raise AttributeError("id can only be assigned before the first save")
        self._id = None if value is None else str(value)

    @property
    def version(self) -> int | None:
        return self._version

    @property
    def state(self) -> ModelState:
        return self._state

    @property
    def errors(self) -> ValidationErrors:
        return self._errors

    @property
    def new_record(self) -> bool:
        return self._state is ModelState.NEW

    @property
    def persisted(self) -> bool:
        return self._state is ModelState.PERSISTED

    @property
    def destroyed(self) -> bool:
        return self._state is ModelState.DESTROYED

    @property
    def attributes(self) -> dict[str, Any]:
        return dict(self._attributes)

    @property
    def invalid_attributes(self) -> dict[str, str]:
        """Attributes holding a value that could not be cast to their declared type."""
        return dict(self._cast_failures)

    def assign_attributes(self, **attributes: Any) -> None:
        schema = self._schema()
        names = {attr.name for attr in schema.all_attributes}
        unknown = set(attributes) - names
        if unknown:
            raise TypeError(f"{type(self).__name__} got unknown attributes: {sorted(unknown)}")
        for name, value in attributes.items():
            setattr(self, name, value)

    # -- Serialization ----------------------------------------------------------

    def to_document(self) -> dict[str, Any]:
        """Render the attributes as a document source. The id is carried as document metadata."""
        return {
            attr.name: serialize_value(self._attributes.get(attr.name), attr.field_type)
            for attr in self._schema().all_attributes
        }

    @classmethod
    def from_document(cls: type[M], document: Mapping[str, Any]) -> M:
        """Rebuild a persisted instance from a get response or a search hit."""
        schema = cls._schema()
        names = {attr.name for attr in schema.all_attributes}
        source = dict(document.get("_source") or {})
        source.pop("id", None)
        dropped = set(source) - names
        if dropped:
            logger.debug("Ignoring undeclared fields %s on %s", sorted(dropped), schema.name)
        instance = cls(id=document.get("_id"), **{k: v for k, v in source.items() if k in names})
        instance._version = document.get("_version")
        instance._seq_no = document.get("_seq_no")
        instance._primary_term = document.get("_primary_term")
        instance._state = ModelState.PERSISTED
        return instance

    # -- Gateway binding --------------------------------------------------------

    @classmethod
    def build_repository(cls: type[M], client: DocumentClient, *, index_name: str | None = None) -> Repository[M]:
        schema = cls._schema()
        return Repository(
            client,
            index_name=index_name or schema.resolved_index_name,
            document_type=schema.document_type,
            document_class=cls,
            mappings=schema.mappings(),
            settings=schema.settings,
        )

    @classmethod
    def use(cls: type[M], client: DocumentClient, *, index_name: str | None = None) -> Repository[M]:
        """Bind this model class to *client*; returns the repository it will use."""
        repository = cls.build_repository(client, index_name=index_name)
        cls._repository = repository
        return repository

    @classmethod
    def use_repository(cls, repository: Repository[Any]) -> None:
        cls._repository = repository

    @classmethod
    def repository(cls: type[M]) -> Repository[M]:
        if cls._repository is None:
            raise RuntimeError(
                f"{cls.__name__} is not bound to a document store. Call {cls.__name__}.use(client) first."
            )
        return cls._repository

    # -- Validation & callback registration -------------------------------------

    def valid(self) -> bool:
        """Run validations, replacing ``errors``; True when there are none."""
        self._errors = self.validator.validate(self)
        return not self._errors

    @classmethod
    def validates(cls, rule: ValidationRule) -> ValidationRule:
        """Decorator registering a model-level validation rule ``rule(instance, errors)``."""
        if not isinstance(cls.validator, Validator):
            raise TypeError(f"{cls.__name__} uses a custom validator; register rules on it directly")
        return cls.validator.register(rule)

    @classmethod
    def _register_hook(cls, event: LifecycleEvent, func: Callable[[Any], Any]) -> Callable[[Any], Any]:
        if not isinstance(cls.callbacks, CallbackRegistry):
            raise TypeError(f"{cls.__name__} uses a custom lifecycle observer; register hooks on it directly")
        return cls.callbacks.register(event, func)

    @classmethod
    def before_save(cls, func: Callable[[Any], Any]) -> Callable[[Any], Any]:
        return cls._register_hook(LifecycleEvent.BEFORE_SAVE, func)

    @classmethod
    def after_save(cls, func: Callable[[Any], Any]) -> Callable[[Any], Any]:
        return cls._register_hook(LifecycleEvent.AFTER_SAVE, func)

    @classmethod
    def before_create(cls, func: Callable[[Any], Any]) -> Callable[[Any], Any]:
        return cls._register_hook(LifecycleEvent.BEFORE_CREATE, func)

    @classmethod
    def after_create(cls, func: Callable[[Any], Any]) -> Callable[[Any], Any]:
        return cls._register_hook(LifecycleEvent.AFTER_CREATE, func)

    @classmethod
    def before_update(cls, func: Callable[[Any], Any]) -> Callable[[Any], Any]:
        return cls._register_hook(LifecycleEvent.BEFORE_UPDATE, func)

    @classmethod
    def after_update(cls, func: Callable[[Any], Any]) -> Callable[[Any], Any]:
        return cls._register_hook(LifecycleEvent.AFTER_UPDATE, func)

    @classmethod
    def before_destroy(cls, func: Callable[[Any], Any]) -> Callable[[Any], Any]:
        return cls._register_hook(LifecycleEvent.BEFORE_DESTROY, func)

    @classmethod
    def after_destroy(cls, func: Callable[[Any], Any]) -> Callable[[Any], Any]:
        return cls._register_hook(LifecycleEvent.AFTER_DESTROY, func)

    # -- Persistence ------------------------------------------------------------

    @classmethod
    async def create(cls: type[M], **attributes: Any) -> M:
        """Build, validate and save an instance.

        The instance is returned even when validation fails; check
        ``persisted`` or ``errors`` afterwards.
        """
        instance = cls(**attributes)
        await instance.save()
        return instance

    async def save(self, *, validate: bool = True, optimistic: bool = False, **options: Any) -> bool:
        """Validate and write the instance.

        Returns False without touching the store when validation fails. Hooks
        run in the order before_save, before_create/before_update, write,
        after_create/after_update, after_save. A failing after-hook does not
        undo the write. With *optimistic*, a persisted instance is written only
        if the stored document has not changed since it was read
        (``VersionConflictError`` otherwise).
        """
        if self.destroyed:
            raise DocumentNotPersistedError(
                entity_name=self._schema().name,
                operation="save",
                detail="Cannot save a destroyed document.",
            )
        if validate and not self.valid():
            logger.debug("Not saving %s: %s", type(self).__name__, self._errors.full_messages())
            return False

        repository = self.repository()
        creating = self.new_record
        await self.callbacks.run(LifecycleEvent.BEFORE_SAVE, self)
        await self.callbacks.run(LifecycleEvent.BEFORE_CREATE if creating else LifecycleEvent.BEFORE_UPDATE, self)

        if self._schema().timestamps:
            now = datetime.now(timezone.utc)
            if self._attributes.get("created_at") is None:
                self._attributes["created_at"] = now
            self._attributes["updated_at"] = now

        if optimistic and not creating and self._seq_no is not None and self._primary_term is not None:
            options.setdefault("if_seq_no", self._seq_no)
            options.setdefault("if_primary_term", self._primary_term)

        result = await repository.save(self, **options)
        self._id = result.id
        self._version = result.version
        self._seq_no = result.seq_no
        self._primary_term = result.primary_term
        self._state = ModelState.PERSISTED

        await self.callbacks.run(LifecycleEvent.AFTER_CREATE if creating else LifecycleEvent.AFTER_UPDATE, self)
        await self.callbacks.run(LifecycleEvent.AFTER_SAVE, self)
        return True

    async def update_attributes(self, **attributes: Any) -> bool:
        """Assign *attributes*, then save.

        When validation fails the new values stay assigned in memory but are
        not written; the store keeps the previous version.
        """
        self.assign_attributes(**attributes)
        return await self.save()

    update = update_attributes

    async def touch(self, attribute: str = "updated_at") -> None:
        """Write only a fresh timestamp into *attribute*, skipping validation and hooks."""
        self._require_persisted("touch")
        attr = self._schema().attribute(attribute)
        if attr.field_type != FieldType.DATETIME:
            raise ValueError(f"touch() requires a datetime attribute, '{attribute}' is {attr.field_type.value}")
        now = datetime.now(timezone.utc)
        result = await self.repository().update(self._id, doc={attribute: serialize_value(now, attr.field_type)})
        setattr(self, attribute, now)
        self._record_write(result.version, result.seq_no, result.primary_term)

    async def increment(self, attribute: str, by: int | float = 1) -> None:
        """Add *by* to a numeric attribute with a server-side script.

        The local value is replaced by the stored one returned with the update,
        so concurrent increments from other instances are reflected.
        """
        self._require_persisted("increment")
        attr = self._schema().attribute(attribute)
        if attr.field_type not in (FieldType.INTEGER, FieldType.FLOAT):
            raise ValueError(f"increment() requires a numeric attribute, '{attribute}' is {attr.field_type.value}")
        result = await self.repository().update(
            self._id,
            script={"source": _INCREMENT_SCRIPT, "lang": "painless", "params": {"field": attribute, "by": by}},
            source=[attribute],
        )
        if result.source is not None and attribute in result.source:
            setattr(self, attribute, result.source[attribute])
        else:
            setattr(self, attribute, (self._attributes.get(attribute) or 0) + by)
        self._record_write(result.version, result.seq_no, result.primary_term)

    async def decrement(self, attribute: str, by: int | float = 1) -> None:
        await self.increment(attribute, -by)

    async def destroy(self, **options: Any) -> DeleteResult:
        """Delete the stored document, running the destroy hooks around the call."""
        self._require_persisted("destroy")
        await self.callbacks.run(LifecycleEvent.BEFORE_DESTROY, self)
        result = await self._delete(**options)
        await self.callbacks.run(LifecycleEvent.AFTER_DESTROY, self)
        return result

    async def delete(self, **options: Any) -> DeleteResult:
        """Delete the stored document without running hooks."""
        self._require_persisted("delete")
        return await self._delete(**options)

    async def _delete(self, **options: Any) -> DeleteResult:
        result = await self.repository().delete(self._id, **options)
        self._state = ModelState.DESTROYED
        if result.version is not None:
            self._version = result.version
        return result

    async def reload(self: M) -> M:
        """Replace the in-memory attributes with the stored ones."""
        self._require_persisted("reload")
        fresh = await self.repository().find(self._id)
        self._attributes = dict(fresh._attributes)
        self._cast_failures = {}
        self._record_write(fresh._version, fresh._seq_no, fresh._primary_term)
        self._errors = ValidationErrors()
        return self

    def _record_write(self, version: int | None, seq_no: int | None, primary_term: int | None) -> None:
        self._version = version
        self._seq_no = seq_no
        self._primary_term = primary_term

    def _require_persisted(self, operation: str) -> None:
        if not self.persisted or self._id is None:
            raise DocumentNotPersistedError(
                entity_name=self._schema().name,
                operation=operation,
                detail=f"Instance is {self._state.value}; it must be saved first.",
            )

    # -- Finders ----------------------------------------------------------------

    @classmethod
    async def find(cls: type[M], id: str | int) -> M:
        return await cls.repository().find(id)

    @classmethod
    async def find_many(cls: type[M], ids: Sequence[str | int]) -> list[M | None]:
        return await cls.repository().find_many(ids)

    @classmethod
    async def exists(cls, id: str | int) -> bool:
        return await cls.repository().exists(id)

    @classmethod
    async def search(
        cls: type[M], query: Mapping[str, Any] | str | None = None, **options: Any
    ) -> SearchResults[M]:
        return await cls.repository().search(query, **options)

    @classmethod
    async def all(cls: type[M], **options: Any) -> SearchResults[M]:
        return await cls.repository().search(None, **options)

    @classmethod
    async def count(cls, query: Mapping[str, Any] | str | None = None) -> int:
        return await cls.repository().count(query)

    @classmethod
    async def find_in_batches(
        cls: type[M],
        query: Mapping[str, Any] | str | None = None,
        *,
        batch_size: int = 1000,
        scroll: str = "5m",
    ) -> AsyncIterator[list[M]]:
        """Yield lists of instances, visiting every matching document exactly once."""
        async for batch in cls.repository().scan(query, batch_size=batch_size, scroll=scroll):
            yield batch

    @classmethod
    async def find_each(
        cls: type[M],
        query: Mapping[str, Any] | str | None = None,
        *,
        batch_size: int = 1000,
        scroll: str = "5m",
    ) -> AsyncIterator[M]:
        async for batch in cls.find_in_batches(query, batch_size=batch_size, scroll=scroll):
            for instance in batch:
                yield instance

    # -- Index lifecycle --------------------------------------------------------

    @classmethod
    async def create_index(cls, *, force: bool = False, **options: Any) -> dict[str, Any] | None:
        return await cls.repository().create_index(force=force, **options)

    @classmethod
    async def delete_index(cls, *, ignore_missing: bool = False) -> dict[str, Any] | None:
        return await cls.repository().delete_index(ignore_missing=ignore_missing)

    @classmethod
    async def refresh_index(cls) -> dict[str, Any]:
        return await cls.repository().refresh_index()

    @classmethod
    async def index_exists(cls) -> bool:
        return await cls.repository().index_exists()
