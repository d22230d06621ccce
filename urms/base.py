from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Iterable, List, Sequence


class PartialSwapError(Exception):
    """Raised when a staged swap failed after some collections were replaced."""

    def __init__(self, message: str, swapped: Sequence[str]):
        super().__init__(message)
        self.swapped = list(swapped)


@dataclass
class BaseDocumentStore:
    """Opaque view of the document database as a set of named collections.

    Restores go through the staging protocol: ``begin_staging`` opens a staging
    area identified by a token, ``stage_documents`` fills it, ``swap_staged``
    publishes every staged collection in place of the live ones, and
    ``discard_staged`` drops whatever was staged.
    """

    global_config: Dict[str, Any] = field(default_factory=dict)

    def iter_documents(self, collection: str) -> AsyncIterator[dict]:
        """Stream every record of a collection."""
        raise NotImplementedError

    async def count_documents(self, collection: str) -> int:
        raise NotImplementedError

    async def insert_documents(self, collection: str, documents: Iterable[dict]) -> int:
        raise NotImplementedError

    async def list_collections(self) -> List[str]:
        raise NotImplementedError

    async def begin_staging(self, token: str) -> None:
        raise NotImplementedError

    async def stage_documents(self, token: str, collection: str, documents: List[dict]) -> None:
        raise NotImplementedError

    async def swap_staged(self, token: str, collections: Sequence[str]) -> None:
        """Replace live collections with their staged copies.

        Collections with nothing staged become empty.

        Raises:
            PartialSwapError: If the swap failed after replacing some collections
        """
        raise NotImplementedError

    async def discard_staged(self, token: str) -> None:
        raise NotImplementedError

    async def check_health(self) -> bool:
        return True

    async def close(self) -> None:
        pass

    async def fetch_all(self, collection: str) -> List[dict]:
        return [doc async for doc in self.iter_documents(collection)]
