"""Static attribute and model schema declarations."""

from ninja_docstore.schema.attribute import (
    AttributeConstraint,
    AttributeSchema,
    FieldType,
    ModelSchema,
)

__all__ = [
    "AttributeConstraint",
    "AttributeSchema",
    "FieldType",
    "ModelSchema",
]
