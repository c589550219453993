"""Ninja Docstore: repository and model persistence for search-engine document stores."""

from ninja_docstore.boundary.coercion import CoercionEngine, CoercionError
from ninja_docstore.boundary.validators import ValidationErrors, Validator
from ninja_docstore.connections import ConnectionManager, ConnectionProfile, InvalidConnectionURL
from ninja_docstore.exceptions import (
    DocumentNotFoundError,
    DocumentNotPersistedError,
    PersistenceError,
    QueryError,
    StoreUnavailableError,
    VersionConflictError,
)
from ninja_docstore.model import CallbackRegistry, LifecycleEvent, Model, ModelState
from ninja_docstore.protocols import DocumentClient, DocumentSerializable, LifecycleObserver, Validatable
from ninja_docstore.registry import RepositoryRegistry
from ninja_docstore.repository.base import Repository, RepositoryConfig
from ninja_docstore.repository.results import DeleteResult, Hit, SaveResult, SearchResults
from ninja_docstore.schema import AttributeConstraint, AttributeSchema, FieldType, ModelSchema

__all__ = [
    "AttributeConstraint",
    "AttributeSchema",
    "CallbackRegistry",
    "CoercionEngine",
    "CoercionError",
    "ConnectionManager",
    "ConnectionProfile",
    "DeleteResult",
    "DocumentClient",
    "DocumentNotFoundError",
    "DocumentNotPersistedError",
    "DocumentSerializable",
    "FieldType",
    "Hit",
    "InvalidConnectionURL",
    "LifecycleEvent",
    "LifecycleObserver",
    "Model",
    "ModelSchema",
    "ModelState",
    "PersistenceError",
    "QueryError",
    "Repository",
    "RepositoryConfig",
    "RepositoryRegistry",
    "SaveResult",
    "SearchResults",
    "StoreUnavailableError",
    "Validatable",
    "ValidationErrors",
    "Validator",
    "VersionConflictError",
]
