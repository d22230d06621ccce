"""Tests for configuration management."""

import os
from datetime import time
from unittest.mock import patch

import pytest

from urms.config import (
    DEFAULT_COLLECTIONS,
    BackupConfig,
    DatabaseConfig,
    Frequency,
    RetentionPolicy,
    URMSConfig,
    parse_run_time,
)


class TestRunTime:

    def test_parse(self):
        assert parse_run_time("02:00") == time(2, 0)
        assert parse_run_time(" 7:05 ") == time(7, 5)

    @pytest.mark.parametrize("value", ["24:00", "12:60", "noon", "1200", "", None])
    def test_invalid(self, value):
        with pytest.raises(ValueError, match="run_time must be HH:MM"):
            parse_run_time(value)


class TestRetentionPolicy:

    def test_defaults(self):
        policy = RetentionPolicy()
        assert policy.max_count is None
        assert policy.max_age_days == 30

    def test_from_env(self):
        with patch.dict(os.environ, {
            "BACKUP_RETENTION_MAX_COUNT": "10",
            "BACKUP_RETENTION_MAX_AGE_DAYS": "",
        }):
            policy = RetentionPolicy.from_env()
            assert policy.max_count == 10
            assert policy.max_age_days is None

    def test_validation(self):
        with pytest.raises(ValueError, match="max_count must be at least 1"):
            RetentionPolicy(max_count=0)

        with pytest.raises(ValueError, match="max_age_days must be at least 1"):
            RetentionPolicy(max_age_days=-5)


class TestDatabaseConfig:

    def test_defaults(self):
        config = DatabaseConfig()
        assert config.backend == "memory"
        assert config.collections == DEFAULT_COLLECTIONS
        assert config.schema_versions == {}

    def test_from_env(self):
        with patch.dict(os.environ, {
            "STORAGE_BACKEND": "mongo",
            "MONGODB_URI": "mongodb://db:27017",
            "MONGODB_DATABASE": "registry",
            "COLLECTIONS": "users, students ,courses",
            "COLLECTION_SCHEMA_VERSIONS": "users=2,students=3",
        }):
            config = DatabaseConfig.from_env()
            assert config.backend == "mongo"
            assert config.mongodb_database == "registry"
            assert config.collections == ("users", "students", "courses")
            assert config.schema_versions == {"users": 2, "students": 3}

    def test_validation(self):
        with pytest.raises(ValueError, match="At least one collection"):
            DatabaseConfig(collections=())

        with pytest.raises(ValueError, match="Duplicate collection names"):
            DatabaseConfig(collections=("users", "users"))

        with pytest.raises(ValueError, match="mongodb_uri is required"):
            DatabaseConfig(backend="mongo")

    def test_to_store_config(self):
        config = DatabaseConfig(mongodb_uri="mongodb://db:27017", mongodb_database="registry")
        assert config.to_store_config() == {
            "mongodb_uri": "mongodb://db:27017",
            "mongodb_database": "registry",
            "mongodb_server_selection_timeout_ms": 5000,
        }


class TestBackupConfig:

    def test_defaults(self):
        config = BackupConfig()
        assert config.schedule_frequency == Frequency.DAILY
        assert config.schedule_run_time == "02:00"
        assert config.compress is True
        assert config.lock_backend == "local"
        assert config.retention.max_age_days == 30

    def test_string_frequency_is_coerced(self):
        assert BackupConfig(schedule_frequency="weekly").schedule_frequency == Frequency.WEEKLY

    def test_from_env(self):
        with patch.dict(os.environ, {
            "BACKUP_DIR": "/var/backups/urms",
            "BACKUP_COMPRESS": "false",
            "BACKUP_SCHEDULE": "Monthly",
            "BACKUP_RUN_TIME": "03:30",
            "BACKUP_LOCK_BACKEND": "redis",
            "REDIS_URL": "redis://cache:6379/1",
            "BACKUP_RETENTION_MAX_COUNT": "5",
        }):
            config = BackupConfig.from_env()
            assert config.backup_dir == "/var/backups/urms"
            assert config.compress is False
            assert config.schedule_frequency == Frequency.MONTHLY
            assert config.schedule_run_time == "03:30"
            assert config.lock_backend == "redis"
            assert config.redis_url == "redis://cache:6379/1"
            assert config.retention.max_count == 5

    def test_validation(self):
        with pytest.raises(ValueError):
            BackupConfig(schedule_frequency="hourly")

        with pytest.raises(ValueError, match="run_time must be HH:MM"):
            BackupConfig(schedule_run_time="2am")

        with pytest.raises(ValueError, match="poll_interval must be positive"):
            BackupConfig(poll_interval=0)

        with pytest.raises(ValueError, match="lock_backend must be"):
            BackupConfig(lock_backend="etcd")

        with pytest.raises(ValueError, match="redis_url is required"):
            BackupConfig(lock_backend="redis")


def test_urms_config_from_env():
    with patch.dict(os.environ, {}, clear=True):
        config = URMSConfig.from_env()
        assert config.database.backend == "memory"
        assert config.backup.backup_dir == "./backups"
        assert config.backup.retention == RetentionPolicy(max_count=None, max_age_days=30)
