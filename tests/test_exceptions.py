"""Tests for the persistence exception hierarchy."""

import pytest
from ninja_docstore.exceptions import (
    DocumentNotFoundError,
    DocumentNotPersistedError,
    PersistenceError,
    QueryError,
    StoreUnavailableError,
    VersionConflictError,
)


def test_message_format():
    err = PersistenceError(entity_name="users", operation="save", detail="boom")
    assert str(err) == "[users] save failed: boom"
    assert err.entity_name == "users"
    assert err.operation == "save"
    assert err.detail == "boom"
    assert err.__cause__ is None


def test_cause_is_chained():
    cause = RuntimeError("driver")
    err = StoreUnavailableError(entity_name="users", operation="find", detail="down", cause=cause)
    assert err.__cause__ is cause


@pytest.mark.parametrize(
    "exc_cls",
    [DocumentNotFoundError, VersionConflictError, StoreUnavailableError, QueryError, DocumentNotPersistedError],
)
def test_subclasses_are_persistence_errors(exc_cls):
    err = exc_cls(entity_name="e", operation="op", detail="d")
    assert isinstance(err, PersistenceError)


def test_arguments_are_keyword_only():
    with pytest.raises(TypeError):
        PersistenceError("users", "save", "boom")  # type: ignore[misc]
