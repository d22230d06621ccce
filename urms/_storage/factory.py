"""Storage factory for centralized backend creation."""

from typing import Callable, Dict, Type

from urms.base import BaseDocumentStore


class StorageFactory:
    """Factory for creating document store backends with validation and registration."""

    _document_backends: Dict[str, Callable[[], Type[BaseDocumentStore]]] = {}

    ALLOWED_DOCUMENT = {"memory", "mongo"}

    @classmethod
    def register_document(cls, name: str, backend_loader: Callable[[], Type[BaseDocumentStore]]) -> None:
        """Register a document store backend.

        Args:
            name: Backend name (must be in ALLOWED_DOCUMENT)
            backend_loader: Function that returns the document store class

        Raises:
            ValueError: If backend name not in allowed list
        """
        if name not in cls.ALLOWED_DOCUMENT:
            raise ValueError(f"Backend {name} not in allowed document backends: {cls.ALLOWED_DOCUMENT}")
        cls._document_backends[name] = backend_loader

    @classmethod
    def create_document_store(cls, backend: str, global_config: dict, **kwargs) -> BaseDocumentStore:
        """Create a document store instance.

        Args:
            backend: Backend name
            global_config: Global configuration dict
            **kwargs: Additional backend-specific parameters

        Returns:
            Initialized document store instance

        Raises:
            ValueError: If backend not registered
        """
        if backend not in cls._document_backends:
            _register_backends()
            if backend not in cls._document_backends:
                raise ValueError(
                    f"Unknown document backend: {backend}. Available: {list(cls._document_backends.keys())}"
                )

        backend_class = cls._document_backends[backend]()
        return backend_class(global_config=global_config, **kwargs)


def _get_memory_store():
    from .doc_memory import MemoryDocumentStore
    return MemoryDocumentStore


def _get_mongo_store():
    from .doc_mongo import MongoDocumentStore
    return MongoDocumentStore


def _register_backends():
    """Register all built-in backends with lazy loading."""
    StorageFactory.register_document("memory", _get_memory_store)
    StorageFactory.register_document("mongo", _get_mongo_store)

