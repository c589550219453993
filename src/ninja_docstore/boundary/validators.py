"""Model validation: declared constraints plus pluggable per-model rules.

Failures are collected into a :class:`ValidationErrors` collection instead of
being raised, so that ``save`` can refuse the write and the caller can inspect
the instance afterwards.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from typing import Any, Protocol

from ninja_docstore.schema.attribute import AttributeSchema, ModelSchema


class ValidationErrors:
    """Messages keyed by attribute name; ``"base"`` holds model-level messages."""

    def __init__(self) -> None:
        self._messages: dict[str, list[str]] = {}

    def add(self, attribute: str, message: str) -> None:
        self._messages.setdefault(attribute, []).append(message)

    def __getitem__(self, attribute: str) -> list[str]:
        return list(self._messages.get(attribute, []))

    def __contains__(self, attribute: object) -> bool:
        return attribute in self._messages

    def __iter__(self) -> Iterator[tuple[str, str]]:
        for attribute, messages in self._messages.items():
            for message in messages:
                yield attribute, message

    def __len__(self) -> int:
        return sum(len(messages) for messages in self._messages.values())

    def __bool__(self) -> bool:
        return bool(self._messages)

    def __repr__(self) -> str:
        return f"ValidationErrors({self._messages!r})"

    def clear(self) -> None:
        self._messages.clear()

    def full_messages(self) -> list[str]:
        return [message if attribute == "base" else f"{attribute} {message}" for attribute, message in self]

    def to_dict(self) -> dict[str, list[str]]:
        return {attribute: list(messages) for attribute, messages in self._messages.items()}


class ValidationRule(Protocol):
    """A custom rule run against the whole instance after the declared constraints."""

    def __call__(self, instance: Any, errors: ValidationErrors) -> None: ...


class Validator:
    """Runs the declared constraints of a model schema, then the registered rules."""

    def __init__(self, schema: ModelSchema, rules: list[ValidationRule] | None = None) -> None:
        self._schema = schema
        self._rules: list[ValidationRule] = list(rules or [])

    @property
    def rules(self) -> list[ValidationRule]:
        return list(self._rules)

    def register(self, rule: ValidationRule) -> ValidationRule:
        """Register a rule; usable as a decorator."""
        self._rules.append(rule)
        return rule

    def copy_for(self, schema: ModelSchema) -> Validator:
        """Return a validator for a subclass schema carrying over this one's rules."""
        return Validator(schema, self._rules)

    def validate(self, instance: Any) -> ValidationErrors:
        errors = ValidationErrors()
        cast_failures = getattr(instance, "invalid_attributes", None) or {}
        for attr in self._schema.all_attributes:
            if attr.name in cast_failures:
                errors.add(attr.name, cast_failures[attr.name])
                continue
            value = getattr(instance, attr.name, None)
            _check_attribute(attr, value, errors)
        for rule in self._rules:
            rule(instance, errors)
        return errors


def _check_attribute(attr: AttributeSchema, value: Any, errors: ValidationErrors) -> None:
    if value is None or (isinstance(value, str) and attr.required and not value.strip()):
        if attr.required:
            errors.add(attr.name, "can't be blank")
        elif value is None and not attr.nullable:
            errors.add(attr.name, "can't be null")
        return

    constraints = attr.constraints
    if constraints is None:
        return

    if constraints.pattern is not None and isinstance(value, str):
        if not re.fullmatch(constraints.pattern, value):
            errors.add(attr.name, f"does not match pattern '{constraints.pattern}'")

    if constraints.min_length is not None and isinstance(value, (str, list)):
        if len(value) < constraints.min_length:
            errors.add(attr.name, f"is too short (minimum is {constraints.min_length})")

    if constraints.max_length is not None and isinstance(value, (str, list)):
        if len(value) > constraints.max_length:
            errors.add(attr.name, f"is too long (maximum is {constraints.max_length})")

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if constraints.ge is not None and value < constraints.ge:
            errors.add(attr.name, f"must be greater than or equal to {constraints.ge:g}")
        if constraints.le is not None and value > constraints.le:
            errors.add(attr.name, f"must be less than or equal to {constraints.le:g}")

    if constraints.enum_values is not None and value not in constraints.enum_values:
        errors.add(attr.name, f"is not one of {constraints.enum_values}")
