"""Smoke tests for the public package surface."""

import ninja_docstore
from ninja_docstore import CallbackRegistry, Validator
from ninja_docstore.protocols import DocumentClient, DocumentSerializable, LifecycleObserver, Validatable
from ninja_docstore.schema import ModelSchema


def test_public_names_are_importable():
    for name in ninja_docstore.__all__:
        assert hasattr(ninja_docstore, name), name


def test_protocols_are_runtime_checkable(client):
    assert isinstance(client, DocumentClient)
    assert isinstance(CallbackRegistry(), LifecycleObserver)
    assert isinstance(Validator(ModelSchema(name="M")), Validatable)
    assert not isinstance(object(), DocumentSerializable)
