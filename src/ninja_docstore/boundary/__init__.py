"""Attribute boundary: coercion on assignment, defaults and validation."""

from ninja_docstore.boundary.coercion import CoercionEngine, CoercionError
from ninja_docstore.boundary.defaults import DefaultResolver
from ninja_docstore.boundary.validators import ValidationErrors, ValidationRule, Validator

__all__ = [
    "CoercionEngine",
    "CoercionError",
    "DefaultResolver",
    "ValidationErrors",
    "ValidationRule",
    "Validator",
]
