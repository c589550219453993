"""Default values for newly constructed model instances."""

from __future__ import annotations

import copy
from typing import Any

from ninja_docstore.schema.attribute import ModelSchema


class DefaultResolver:
    """Fills missing attributes from their declaration or from custom overrides.

    Custom defaults are keyed either ``"Model.attribute"`` or ``"attribute"``;
    the qualified key wins. Callable custom defaults are called per instance.
    """

    def __init__(self, custom_defaults: dict[str, Any] | None = None) -> None:
        self._custom_defaults = custom_defaults or {}

    def resolve(self, data: dict[str, Any], schema: ModelSchema) -> dict[str, Any]:
        """Apply defaults to every attribute missing from *data*. Returns *data*."""
        for attr in schema.all_attributes:
            if attr.name in data:
                continue
            custom_key = f"{schema.name}.{attr.name}"
            if custom_key in self._custom_defaults:
                data[attr.name] = _materialize(self._custom_defaults[custom_key])
            elif attr.name in self._custom_defaults:
                data[attr.name] = _materialize(self._custom_defaults[attr.name])
            else:
                data[attr.name] = attr.make_default()
        return data


def _materialize(default: Any) -> Any:
    if callable(default):
        return default()
    return copy.deepcopy(default)
