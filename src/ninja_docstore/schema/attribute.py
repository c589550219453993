"""Attribute and model schema definitions for document-backed models."""

from __future__ import annotations

import keyword
import re
from collections.abc import Callable
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

# Valid identifier: starts with a letter, alphanumeric + underscores, max 64 chars.
_IDENTIFIER_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]{0,63}$")

# Index names: lowercase, no leading -/_/+, none of the characters the engine rejects.
_INDEX_NAME_RE = re.compile(r"^[a-z0-9][a-z0-9_.\-+]{0,254}$")

MAX_DESCRIPTION_LENGTH = 500

TIMESTAMP_ATTRIBUTES = ("created_at", "updated_at")


class FieldType(str, Enum):
    """Supported attribute types and the engine field type each maps to."""

    STRING = "string"
    TEXT = "text"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    DATE = "date"
    UUID = "uuid"
    JSON = "json"
    ARRAY = "array"
    BINARY = "binary"
    ENUM = "enum"


# ARRAY has no entry: engine arrays are implicit, the element type decides the mapping.
_DEFAULT_MAPPINGS: dict[FieldType, dict[str, Any]] = {
    FieldType.STRING: {"type": "keyword"},
    FieldType.TEXT: {"type": "text"},
    FieldType.INTEGER: {"type": "long"},
    FieldType.FLOAT: {"type": "double"},
    FieldType.BOOLEAN: {"type": "boolean"},
    FieldType.DATETIME: {"type": "date"},
    FieldType.DATE: {"type": "date", "format": "strict_date"},
    FieldType.UUID: {"type": "keyword"},
    FieldType.JSON: {"type": "object"},
    FieldType.BINARY: {"type": "binary"},
    FieldType.ENUM: {"type": "keyword"},
}

_FIELD_TYPE_COMPATIBLE_PYTHON_TYPES: dict[FieldType, tuple[type, ...]] = {
    FieldType.STRING: (str,),
    FieldType.TEXT: (str,),
    FieldType.INTEGER: (int,),
    FieldType.FLOAT: (int, float),
    FieldType.BOOLEAN: (bool,),
    FieldType.UUID: (str,),
    FieldType.ENUM: (str,),
    FieldType.ARRAY: (list, tuple),
    FieldType.JSON: (dict, list),
}

# Names that would shadow Model internals when turned into descriptors.
_RESERVED_ATTRIBUTE_NAMES: frozenset[str] = frozenset(
    {
        "id",
        "version",
        "errors",
        "state",
        "attributes",
        "callbacks",
        "validator",
        "save",
        "create",
        "destroy",
        "delete",
        "touch",
        "increment",
        "decrement",
        "reload",
        "persisted",
        "destroyed",
        "new_record",
        "to_document",
        "from_document",
        "update_attributes",
        "repository",
    }
)


class AttributeConstraint(BaseModel):
    """Validation rules checked by the model validator before every save."""

    min_length: int | None = Field(default=None, ge=0)
    max_length: int | None = Field(default=None, ge=1)
    pattern: str | None = Field(default=None, description="Regex the whole string value must match.")
    ge: float | None = Field(default=None, description="Greater than or equal.")
    le: float | None = Field(default=None, description="Less than or equal.")
    enum_values: list[str] | None = Field(default=None, description="Allowed values for enum attributes.")

    model_config = {"extra": "forbid", "frozen": True}

    @field_validator("pattern")
    @classmethod
    def validate_pattern(cls, v: str | None) -> str | None:
        if v is None:
            return v
        try:
            re.compile(v)
        except re.error as exc:
            raise ValueError(f"Invalid regex pattern: {exc}") from exc
        return v

    @model_validator(mode="after")
    def validate_constraint_coherence(self) -> AttributeConstraint:
        """Ensure min/max constraints are logically consistent."""
        if self.min_length is not None and self.max_length is not None:
            if self.min_length > self.max_length:
                raise ValueError(f"min_length ({self.min_length}) cannot exceed max_length ({self.max_length})")
        if self.ge is not None and self.le is not None:
            if self.ge > self.le:
                raise ValueError(f"ge ({self.ge}) cannot exceed le ({self.le})")
        return self


class AttributeSchema(BaseModel):
    """Declaration of a single model attribute.

    ``default`` is copied for every new instance; ``default_factory`` is called
    instead when given. ``mapping`` replaces the mapping derived from
    ``field_type`` (e.g. to set an analyzer).
    """

    name: str = Field(min_length=1, description="Attribute name.")
    field_type: FieldType = Field(description="Data type of the attribute.")
    default: Any = Field(default=None, description="Default value for new instances.")
    default_factory: Callable[[], Any] | None = Field(default=None, description="Callable producing the default.")
    required: bool = Field(default=False, description="Whether a value must be present to save.")
    nullable: bool = Field(default=True, description="Whether the attribute accepts null values.")
    constraints: AttributeConstraint | None = Field(default=None, description="Validation constraints.")
    mapping: dict[str, Any] | None = Field(default=None, description="Explicit engine mapping for this field.")
    description: str | None = Field(default=None, description="Human-readable description.")

    model_config = {"extra": "forbid", "frozen": True}

    @field_validator("name")
    @classmethod
    def validate_attribute_name(cls, v: str) -> str:
        """Enforce a safe identifier that does not collide with model internals."""
        if not _IDENTIFIER_RE.match(v):
            raise ValueError(
                f"Attribute name {v!r} is not a valid identifier. "
                "Must start with a letter, contain only alphanumeric characters "
                "and underscores, and be at most 64 characters."
            )
        if keyword.iskeyword(v):
            raise ValueError(f"Attribute name {v!r} is a Python reserved keyword.")
        if v in _RESERVED_ATTRIBUTE_NAMES:
            raise ValueError(f"Attribute name {v!r} is reserved by the model base class.")
        return v

    @field_validator("description")
    @classmethod
    def validate_description(cls, v: str | None) -> str | None:
        if v is not None and len(v) > MAX_DESCRIPTION_LENGTH:
            raise ValueError(f"Description too long ({len(v)} chars). Maximum is {MAX_DESCRIPTION_LENGTH} characters.")
        return v

    @model_validator(mode="after")
    def validate_attribute_coherence(self) -> AttributeSchema:
        """Validate default type compatibility and enum constraints."""
        if self.default is not None and self.default_factory is not None:
            raise ValueError(f"Attribute '{self.name}' cannot declare both default and default_factory")

        if self.field_type == FieldType.ENUM:
            if self.constraints is None or not self.constraints.enum_values:
                raise ValueError(f"Attribute '{self.name}' with field_type=ENUM requires non-empty constraints.enum_values")

        if self.default is not None:
            allowed = _FIELD_TYPE_COMPATIBLE_PYTHON_TYPES.get(self.field_type)
            if allowed is not None and not isinstance(self.default, allowed):
                raise ValueError(
                    f"Attribute '{self.name}': default value {self.default!r} "
                    f"is not compatible with field_type={self.field_type.value}"
                )
        return self

    def make_default(self) -> Any:
        """Return a fresh default value for a new instance."""
        if self.default_factory is not None:
            return self.default_factory()
        if isinstance(self.default, (list, dict)):
            return type(self.default)(self.default)
        return self.default

    def to_mapping(self) -> dict[str, Any] | None:
        """Return the engine mapping for this attribute, or None to leave it dynamic."""
        if self.mapping is not None:
            return dict(self.mapping)
        base = _DEFAULT_MAPPINGS.get(self.field_type)
        return dict(base) if base is not None else None


def _timestamp_attributes() -> tuple[AttributeSchema, ...]:
    return tuple(AttributeSchema(name=name, field_type=FieldType.DATETIME) for name in TIMESTAMP_ATTRIBUTES)


class ModelSchema(BaseModel):
    """Per-class declaration of a document-backed model.

    Resolved once when the model class is defined and shared read-only by all
    of its instances.
    """

    name: str = Field(min_length=1, description="Model name (PascalCase recommended).")
    index_name: str | None = Field(default=None, description="Index to store documents in. Defaults to the name.")
    document_type: str = Field(default="_doc", description="Document type tag reported with each document.")
    attributes: tuple[AttributeSchema, ...] = Field(default=(), description="Declared attributes, in order.")
    settings: dict[str, Any] = Field(default_factory=dict, description="Index-level engine settings.")
    dynamic: bool | str = Field(default=True, description="Engine handling of undeclared fields.")
    timestamps: bool = Field(default=True, description="Maintain created_at / updated_at attributes.")
    description: str | None = Field(default=None, description="Human-readable description.")

    model_config = {"extra": "forbid", "frozen": True}

    @field_validator("name")
    @classmethod
    def validate_model_name(cls, v: str) -> str:
        if not _IDENTIFIER_RE.match(v):
            raise ValueError(
                f"Model name {v!r} is not a valid identifier. "
                "Must start with a letter, contain only alphanumeric characters "
                "and underscores, and be at most 64 characters."
            )
        return v

    @field_validator("index_name")
    @classmethod
    def validate_index_name(cls, v: str | None) -> str | None:
        if v is not None and not _INDEX_NAME_RE.match(v):
            raise ValueError(f"Index name {v!r} is not valid: use lowercase letters, digits, '_', '-', '.' or '+'")
        return v

    @model_validator(mode="after")
    def validate_unique_attributes(self) -> ModelSchema:
        seen: set[str] = set()
        for attr in self.attributes:
            if attr.name in seen:
                raise ValueError(f"Model '{self.name}' has duplicate attribute name '{attr.name}'")
            seen.add(attr.name)
        if self.timestamps:
            clashes = seen.intersection(TIMESTAMP_ATTRIBUTES)
            if clashes:
                raise ValueError(
                    f"Model '{self.name}' declares {sorted(clashes)} while timestamps=True; "
                    "disable timestamps to declare them yourself"
                )
        return self

    @property
    def resolved_index_name(self) -> str:
        return self.index_name or self.name.lower()

    @property
    def all_attributes(self) -> tuple[AttributeSchema, ...]:
        """Declared attributes followed by the timestamp attributes when enabled."""
        if self.timestamps:
            return self.attributes + _timestamp_attributes()
        return self.attributes

    def attribute(self, name: str) -> AttributeSchema:
        for attr in self.all_attributes:
            if attr.name == name:
                return attr
        raise KeyError(f"Model '{self.name}' has no attribute '{name}'")

    def mappings(self) -> dict[str, Any]:
        """Build the index mapping body from the attribute declarations."""
        properties: dict[str, Any] = {}
        for attr in self.all_attributes:
            mapping = attr.to_mapping()
            if mapping is not None:
                properties[attr.name] = mapping
        return {"dynamic": self.dynamic, "properties": properties}
