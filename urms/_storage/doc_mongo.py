"""MongoDB document store backed by the motor async driver."""

from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Sequence

from pymongo import IndexModel
from pymongo.errors import AutoReconnect, BulkWriteError, PyMongoError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from ..base import BaseDocumentStore, PartialSwapError
from .._utils import logger

STAGING_PREFIX = "_urms_restore_"
DUPLICATE_KEY = 11000


@dataclass
class MongoDocumentStore(BaseDocumentStore):
    _motor_module: Optional[Any] = field(init=False, default=None)

    @property
    def motor(self):
        """Lazy load motor module."""
        if self._motor_module is None:
            from urms._utils import ensure_dependency
            ensure_dependency("motor", "motor", "MongoDB document store")
            import motor.motor_asyncio
            self._motor_module = motor.motor_asyncio
        return self._motor_module

    def __post_init__(self):
        self.mongodb_uri = self.global_config.get("mongodb_uri")
        if not self.mongodb_uri:
            raise ValueError("Missing mongodb_uri in global_config")
        self.database_name = self.global_config.get("mongodb_database", "urms")
        self.server_selection_timeout_ms = self.global_config.get(
            "mongodb_server_selection_timeout_ms", 5000
        )
        self.batch_size = self.global_config.get("mongodb_batch_size", 1000)

        self._retry_decorator = retry(
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(AutoReconnect),
            reraise=True,
        )

        self.client = self.motor.AsyncIOMotorClient(
            self.mongodb_uri,
            serverSelectionTimeoutMS=self.server_selection_timeout_ms,
        )
        self.db = self.client[self.database_name]
        logger.info(f"Using MongoDB database {self.database_name}")

    def _staging_name(self, token: str, collection: str) -> str:
        return f"{STAGING_PREFIX}{token}_{collection}"

    async def iter_documents(self, collection: str):
        cursor = self.db[collection].find({}, batch_size=self.batch_size)
        async for document in cursor:
            yield document

    async def count_documents(self, collection: str) -> int:
        return await self.db[collection].count_documents({})

    async def insert_documents(self, collection: str, documents: Iterable[dict]) -> int:
        documents = list(documents)
        if not documents:
            return 0
        result = await self.db[collection].insert_many(documents)
        return len(result.inserted_ids)

    async def list_collections(self) -> List[str]:
        names = await self.db.list_collection_names()
        return sorted(n for n in names if not n.startswith(STAGING_PREFIX))

    async def begin_staging(self, token: str) -> None:
        # Leftovers from an earlier attempt with the same token
        await self.discard_staged(token)

    async def stage_documents(self, token: str, collection: str, documents: List[dict]) -> None:
        if not documents:
            return
        target = self.db[self._staging_name(token, collection)]
        attempts = 0

        @self._retry_decorator
        async def _insert():
            nonlocal attempts
            attempts += 1
            try:
                await target.insert_many(documents, ordered=False)
            except BulkWriteError as e:
                # A retried batch may hit records the interrupted attempt already wrote
                if attempts > 1 and _only_duplicate_keys(e):
                    logger.debug(f"Batch for {collection} was partly written before reconnect")
                    return
                raise

        await _insert()

    async def swap_staged(self, token: str, collections: Sequence[str]) -> None:
        existing = set(await self.db.list_collection_names())
        for name in collections:
            staged_name = self._staging_name(token, name)
            if staged_name not in existing:
                await self.db.create_collection(staged_name)

        # rename with dropTarget discards the live collection's indexes
        for name in collections:
            await self._copy_indexes(name, self._staging_name(token, name))

        # renameCollection is atomic per collection only; a failure after the
        # first rename leaves a mixed dataset that the caller must report
        swapped: List[str] = []
        for name in collections:
            try:
                await self.db[self._staging_name(token, name)].rename(name, dropTarget=True)
            except PyMongoError as e:
                if not swapped:
                    raise
                raise PartialSwapError(
                    f"Swap failed at collection {name}: {e}", swapped
                ) from e
            swapped.append(name)

    async def _copy_indexes(self, source: str, target: str) -> None:
        info = await self.db[source].index_information()
        models = [
            IndexModel(
                spec["key"],
                name=index_name,
                **{k: v for k, v in spec.items() if k not in ("key", "v", "ns")},
            )
            for index_name, spec in info.items()
            if index_name != "_id_"
        ]
        if models:
            await self.db[target].create_indexes(models)
            logger.debug(f"Copied {len(models)} index(es) from {source} to {target}")

    async def discard_staged(self, token: str) -> None:
        prefix = f"{STAGING_PREFIX}{token}_"
        for name in await self.db.list_collection_names():
            if name.startswith(prefix):
                await self.db.drop_collection(name)

    async def check_health(self) -> bool:
        try:
            await self.client.admin.command("ping")
            return True
        except PyMongoError as e:
            logger.warning(f"MongoDB health check failed: {e}")
            return False

    async def close(self) -> None:
        self.client.close()


def _only_duplicate_keys(error: BulkWriteError) -> bool:
    details = error.details or {}
    write_errors = details.get("writeErrors", [])
    return (
        bool(write_errors)
        and not details.get("writeConcernErrors")
        and all(err.get("code") == DUPLICATE_KEY for err in write_errors)
    )
