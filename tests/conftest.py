"""Global pytest configuration and fixtures."""

import copy
import sys
import tempfile
from datetime import datetime
from pathlib import Path

import pytest
from bson import ObjectId

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from urms._storage.doc_memory import MemoryDocumentStore
from urms.backup import ArchiveCatalog
from urms.config import BackupConfig, DatabaseConfig, RetentionPolicy, URMSConfig

COLLECTIONS = ("users", "students", "staff", "courses", "files", "reports")

# Naive UTC datetimes without microseconds survive extended JSON unchanged
SAMPLE_DATA = {
    "users": [
        {"_id": ObjectId("65a000000000000000000001"), "email": "registrar@uni.edu", "role": "admin"},
        {"_id": ObjectId("65a000000000000000000002"), "email": "root@uni.edu", "role": "system-admin"},
    ],
    "students": [
        {
            "_id": ObjectId("65a000000000000000000010"),
            "studentId": "S-1001",
            "name": "Ada Park",
            "enrolledAt": datetime(2023, 9, 1, 8, 0, 0),
            "gpa": 3.7,
            "courses": ["CS101", "MA201"],
        },
        {
            "_id": ObjectId("65a000000000000000000011"),
            "studentId": "S-1002",
            "name": "Tomas Reyes",
            "enrolledAt": datetime(2024, 1, 15, 9, 30, 0),
            "gpa": None,
            "courses": [],
        },
    ],
    "staff": [
        {"_id": ObjectId("65a000000000000000000020"), "staffId": "T-01", "department": "Physics"},
    ],
    "courses": [
        {"_id": ObjectId("65a000000000000000000030"), "code": "CS101", "credits": 4},
        {"_id": ObjectId("65a000000000000000000031"), "code": "MA201", "credits": 3},
    ],
    "files": [],
    "reports": [
        {"_id": ObjectId("65a000000000000000000050"), "title": "Enrollment 2024", "pages": 12},
    ],
}


@pytest.fixture
def temp_backup_dir():
    """Create temporary backup directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_data():
    return copy.deepcopy(SAMPLE_DATA)


@pytest.fixture
def memory_store(sample_data):
    """Memory document store seeded with the sample dataset."""
    return MemoryDocumentStore(global_config={"initial_data": sample_data})


@pytest.fixture
def catalog(temp_backup_dir):
    return ArchiveCatalog(temp_backup_dir)


@pytest.fixture
def make_config(temp_backup_dir):
    """Factory for URMSConfig pointing at the temporary backup directory."""
    def _make(**backup_overrides) -> URMSConfig:
        backup_overrides.setdefault("backup_dir", str(temp_backup_dir))
        backup_overrides.setdefault("retention", RetentionPolicy(max_count=None, max_age_days=None))
        return URMSConfig(
            database=DatabaseConfig(collections=COLLECTIONS),
            backup=BackupConfig(**backup_overrides),
        )

    return _make


@pytest.fixture
def read_all():
    """Coroutine returning the full contents of every collection keyed by name."""
    async def _read_all(store, collections=COLLECTIONS):
        return {name: await store.fetch_all(name) for name in collections}

    return _read_all
