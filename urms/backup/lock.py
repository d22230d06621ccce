"""Fail-fast mutual exclusion for backup and restore."""

import json
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Optional

import redis.asyncio as redis

from .._utils import logger, utc_now
from ..config import BackupConfig

LOCK_KEY = "urms:backup:operation-lock"

# Delete the key only if it still holds our value
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class BaseOperationLock(ABC):
    """At most one of {backup, restore} runs at a time.

    Acquisition never waits: callers get False and report Busy.
    """

    @abstractmethod
    async def acquire(self, operation: str) -> bool:
        """Try to take the lock for ``operation``."""

    @abstractmethod
    async def release(self) -> None:
        """Release a lock taken by this instance."""

    @abstractmethod
    async def current_holder(self) -> Optional[str]:
        """Name of the operation holding the lock, if any."""


class LocalOperationLock(BaseOperationLock):
    """Process-local lock for single-instance deployments."""

    def __init__(self):
        self._guard = threading.Lock()
        self._holder: Optional[str] = None

    async def acquire(self, operation: str) -> bool:
        with self._guard:
            if self._holder is not None:
                return False
            self._holder = operation
            return True

    async def release(self) -> None:
        with self._guard:
            self._holder = None

    async def current_holder(self) -> Optional[str]:
        return self._holder


class RedisOperationLock(BaseOperationLock):
    """Lease in Redis shared by every instance of the service.

    The lease expires after ``ttl_seconds`` so a crashed holder cannot block
    backups forever; the TTL must exceed the longest expected operation.
    """

    def __init__(self, client: Any, ttl_seconds: float, key: str = LOCK_KEY):
        self.client = client
        self.ttl_ms = int(ttl_seconds * 1000)
        self.key = key
        self._value: Optional[str] = None

    async def acquire(self, operation: str) -> bool:
        value = json.dumps({
            "operation": operation,
            "token": uuid.uuid4().hex,
            "acquired_at": utc_now().isoformat(),
        })
        acquired = await self.client.set(self.key, value, nx=True, px=self.ttl_ms)
        if not acquired:
            return False
        self._value = value
        return True

    async def release(self) -> None:
        if self._value is None:
            return
        released = await self.client.eval(_RELEASE_SCRIPT, 1, self.key, self._value)
        if not released:
            logger.warning(f"Operation lease {self.key} expired before release")
        self._value = None

    async def current_holder(self) -> Optional[str]:
        raw = await self.client.get(self.key)
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode()
        try:
            return json.loads(raw).get("operation")
        except (ValueError, AttributeError):
            return "unknown operation"

    async def close(self) -> None:
        await self.client.aclose()


def build_operation_lock(config: BackupConfig) -> BaseOperationLock:
    """Create the lock backend selected by ``config.lock_backend``."""
    if config.lock_backend == "redis":
        client = redis.from_url(config.redis_url, encoding="utf-8", decode_responses=True)
        logger.info("Using Redis lease for backup/restore mutual exclusion")
        return RedisOperationLock(client, config.lock_ttl)
    return LocalOperationLock()
