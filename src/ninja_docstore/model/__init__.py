"""Active-record style models backed by a repository."""

from ninja_docstore.model.base import Model, ModelState
from ninja_docstore.model.callbacks import Callback, CallbackRegistry, LifecycleEvent

__all__ = [
    "Callback",
    "CallbackRegistry",
    "LifecycleEvent",
    "Model",
    "ModelState",
]
