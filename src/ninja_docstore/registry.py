"""Gateway routing: resolves the repository a model (or index) should use."""

from __future__ import annotations

from typing import Any

from ninja_docstore.connections import ConnectionManager
from ninja_docstore.model.base import Model
from ninja_docstore.repository.base import Repository


class RepositoryRegistry:
    """Builds repositories for model classes from connection profiles.

    Overrides registered by model name win over profile-based resolution,
    which lets tests or alternate stores be swapped in per model.
    """

    def __init__(self, connection_manager: ConnectionManager) -> None:
        self._connection_manager = connection_manager
        self._overrides: dict[str, Repository[Any]] = {}

    def register(self, name: str, repository: Repository[Any]) -> None:
        """Register a custom repository override for a model name."""
        self._overrides[name] = repository

    def get_repository(self, model: type[Model], profile_name: str = "default") -> Repository[Any]:
        """Resolve the repository for *model*, applying the profile's index prefix."""
        schema = model._schema()
        if schema.name in self._overrides:
            return self._overrides[schema.name]

        profile = self._connection_manager.get_profile(profile_name)
        client = self._connection_manager.get_client(profile_name)
        return model.build_repository(client, index_name=f"{profile.index_prefix}{schema.resolved_index_name}")

    def bind(self, *models: type[Model], profile_name: str = "default") -> None:
        """Resolve and attach repositories to each of *models*."""
        for model in models:
            model.use_repository(self.get_repository(model, profile_name))
