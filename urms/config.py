"""Configuration management for the URMS backup engine."""

import os
from dataclasses import dataclass, field
from datetime import time
from enum import Enum
from typing import Optional, Tuple, Dict


DEFAULT_COLLECTIONS = ("users", "students", "staff", "courses", "files", "reports")


class Frequency(str, Enum):
    """Cadence of scheduled backups."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


def parse_run_time(value: str) -> time:
    """Parse an ``HH:MM`` string into a time of day.

    Raises:
        ValueError: If the value is not a valid 24h ``HH:MM`` time
    """
    try:
        hour_str, minute_str = value.strip().split(":")
        return time(hour=int(hour_str), minute=int(minute_str))
    except (AttributeError, ValueError) as e:
        raise ValueError(f"run_time must be HH:MM, got {value!r}") from e


def _optional_int(name: str) -> Optional[int]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    return int(raw)


def _parse_schema_versions(raw: str) -> Dict[str, int]:
    # "users=2,students=1"
    versions = {}
    for item in raw.split(","):
        item = item.strip()
        if not item:
            continue
        name, _, version = item.partition("=")
        versions[name.strip()] = int(version)
    return versions


@dataclass(frozen=True)
class RetentionPolicy:
    """Which archives to keep.

    An archive is removed if it violates either bound.
    """
    max_count: Optional[int] = None
    max_age_days: Optional[int] = 30

    @classmethod
    def from_env(cls) -> 'RetentionPolicy':
        """Create policy from environment variables."""
        max_age = os.getenv("BACKUP_RETENTION_MAX_AGE_DAYS")
        return cls(
            max_count=_optional_int("BACKUP_RETENTION_MAX_COUNT"),
            max_age_days=30 if max_age is None else _optional_int("BACKUP_RETENTION_MAX_AGE_DAYS"),
        )

    def __post_init__(self):
        """Validate configuration."""
        if self.max_count is not None and self.max_count < 1:
            raise ValueError(f"max_count must be at least 1, got {self.max_count}")
        if self.max_age_days is not None and self.max_age_days < 1:
            raise ValueError(f"max_age_days must be at least 1, got {self.max_age_days}")


@dataclass(frozen=True)
class DatabaseConfig:
    """Document database configuration."""
    backend: str = "memory"  # memory, mongo
    mongodb_uri: Optional[str] = None
    mongodb_database: str = "urms"
    mongodb_server_selection_timeout_ms: int = 5000
    collections: Tuple[str, ...] = DEFAULT_COLLECTIONS
    schema_versions: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_env(cls) -> 'DatabaseConfig':
        """Create config from environment variables."""
        raw_collections = os.getenv("COLLECTIONS")
        collections = (
            tuple(c.strip() for c in raw_collections.split(",") if c.strip())
            if raw_collections else DEFAULT_COLLECTIONS
        )
        return cls(
            backend=os.getenv("STORAGE_BACKEND", "memory"),
            mongodb_uri=os.getenv("MONGODB_URI", None),
            mongodb_database=os.getenv("MONGODB_DATABASE", "urms"),
            mongodb_server_selection_timeout_ms=int(
                os.getenv("MONGODB_SERVER_SELECTION_TIMEOUT_MS", "5000")
            ),
            collections=collections,
            schema_versions=_parse_schema_versions(os.getenv("COLLECTION_SCHEMA_VERSIONS", "")),
        )

    def __post_init__(self):
        """Validate configuration."""
        if not self.collections:
            raise ValueError("At least one collection must be configured")
        if len(set(self.collections)) != len(self.collections):
            raise ValueError(f"Duplicate collection names in {self.collections}")
        if self.backend == "mongo" and not self.mongodb_uri:
            raise ValueError("mongodb_uri is required for the mongo backend")

    def to_store_config(self) -> dict:
        """Global config dict handed to document store backends."""
        return {
            "mongodb_uri": self.mongodb_uri,
            "mongodb_database": self.mongodb_database,
            "mongodb_server_selection_timeout_ms": self.mongodb_server_selection_timeout_ms,
        }


@dataclass(frozen=True)
class BackupConfig:
    """Backup engine configuration."""
    backup_dir: str = "./backups"
    compress: bool = True
    schedule_frequency: Frequency = Frequency.DAILY
    schedule_run_time: str = "02:00"  # UTC
    schedule_enabled: bool = True
    poll_interval: float = 60.0
    retention: RetentionPolicy = field(default_factory=RetentionPolicy)
    restore_batch_size: int = 500
    lock_backend: str = "local"  # local, redis
    lock_ttl: float = 6 * 3600.0
    redis_url: Optional[str] = None

    @classmethod
    def from_env(cls) -> 'BackupConfig':
        """Create config from environment variables."""
        return cls(
            backup_dir=os.getenv("BACKUP_DIR", "./backups"),
            compress=os.getenv("BACKUP_COMPRESS", "true").lower() == "true",
            schedule_frequency=Frequency(os.getenv("BACKUP_SCHEDULE", "daily").lower()),
            schedule_run_time=os.getenv("BACKUP_RUN_TIME", "02:00"),
            schedule_enabled=os.getenv("BACKUP_SCHEDULE_ENABLED", "true").lower() == "true",
            poll_interval=float(os.getenv("BACKUP_POLL_INTERVAL", "60")),
            retention=RetentionPolicy.from_env(),
            restore_batch_size=int(os.getenv("BACKUP_RESTORE_BATCH_SIZE", "500")),
            lock_backend=os.getenv("BACKUP_LOCK_BACKEND", "local"),
            lock_ttl=float(os.getenv("BACKUP_LOCK_TTL", str(6 * 3600))),
            redis_url=os.getenv("REDIS_URL", None),
        )

    def __post_init__(self):
        """Validate configuration."""
        if not isinstance(self.schedule_frequency, Frequency):
            # Accept plain strings, the dataclass is frozen
            object.__setattr__(self, "schedule_frequency", Frequency(self.schedule_frequency))
        parse_run_time(self.schedule_run_time)
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive, got {self.poll_interval}")
        if self.restore_batch_size <= 0:
            raise ValueError(f"restore_batch_size must be positive, got {self.restore_batch_size}")
        if self.lock_backend not in ("local", "redis"):
            raise ValueError(f"lock_backend must be 'local' or 'redis', got {self.lock_backend!r}")
        if self.lock_backend == "redis" and not self.redis_url:
            raise ValueError("redis_url is required for the redis lock backend")
        if self.lock_ttl <= 0:
            raise ValueError(f"lock_ttl must be positive, got {self.lock_ttl}")


@dataclass(frozen=True)
class URMSConfig:
    """Complete configuration for the backup service."""
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    backup: BackupConfig = field(default_factory=BackupConfig)

    @classmethod
    def from_env(cls) -> 'URMSConfig':
        """Create complete config from environment variables."""
        return cls(
            database=DatabaseConfig.from_env(),
            backup=BackupConfig.from_env(),
        )
