"""Storage module with lazy loading support."""

from typing import TYPE_CHECKING

# Always import factory and registration (lightweight)
from .factory import StorageFactory, _register_backends

# Type checking imports (no runtime cost)
if TYPE_CHECKING:
    from .doc_memory import MemoryDocumentStore
    from .doc_mongo import MongoDocumentStore


def __getattr__(name):
    """Lazy import storage backends so motor is only loaded when used."""
    if name == "MemoryDocumentStore":
        from .doc_memory import MemoryDocumentStore
        return MemoryDocumentStore
    elif name == "MongoDocumentStore":
        from .doc_mongo import MongoDocumentStore
        return MongoDocumentStore
    else:
        raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


__all__ = [
    "StorageFactory",
    "_register_backends",
    "MemoryDocumentStore",
    "MongoDocumentStore",
]
