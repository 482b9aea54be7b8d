"""Storage backends for schema, object data, permissions and views."""

from composa.engine.store.base import ObjectStore, PermissionSource, SchemaStore, ViewStore
from composa.engine.store.memory import MemoryStore

__all__ = ["MemoryStore", "ObjectStore", "PermissionSource", "SchemaStore", "ViewStore"]
