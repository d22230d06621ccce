"""Archive file format.

An archive is newline-delimited canonical MongoDB extended JSON, optionally
gzip-compressed. Numbers are written in their typed form; shown plain here::

    {"type": "header", "format": "urms-archive", "format_version": 1, ...}
    {"type": "section", "collection": "users", "schema_version": 1}
    {"type": "record", "collection": "users", "document": {...}}
    {"type": "section_end", "collection": "users", "record_count": 1}
    ...
    {"type": "manifest", "backup_id": ..., "collections": [...], ...}
    {"type": "checksum", "algorithm": "sha256", "value": "sha256:..."}

Canonical mode keeps every BSON type distinct (int32 vs Int64, Decimal128,
binary subtypes), so a restored record carries the same types it was backed up with.

The checksum covers every uncompressed byte before the checksum line, so it can
be computed while streaming and the file needs no second pass to finish.
"""

import gzip
import hashlib
import os
import zlib
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Callable, Dict, Iterable, Iterator, Optional, Tuple

from bson import json_util

from .._utils import logger
from .models import Archive, ArchiveManifest, ArchiveStatus

ARCHIVE_SUFFIX = ".urbak"
ARCHIVE_FORMAT = "urms-archive"
ARCHIVE_FORMAT_VERSION = 1
CHECKSUM_PREFIX = "sha256:"
GZIP_MAGIC = b"\x1f\x8b"

# Dates decode as naive UTC, matching what the MongoDB driver returns by default
JSON_OPTIONS = json_util.JSONOptions(json_mode=json_util.JSONMode.CANONICAL, tz_aware=False)


class ArchiveFormatError(ValueError):
    """Archive bytes do not parse as a well-formed archive."""


def encode_line(entry: dict) -> bytes:
    return (json_util.dumps(entry, json_options=JSON_OPTIONS) + "\n").encode("utf-8")


def decode_line(raw: bytes) -> dict:
    entry = json_util.loads(raw.decode("utf-8"), json_options=JSON_OPTIONS)
    if not isinstance(entry, dict):
        raise ArchiveFormatError("archive line is not an object")
    return entry


class ArchiveFile:
    """Archive file opened for writing.

    ``close`` finishes the gzip stream and fsyncs the file. ``abort`` closes an
    unfinished file whose contents will be discarded. Used as a context manager
    it yields the writable stream.
    """

    def __init__(self, path: Path, compress: bool):
        self._raw = open(path, "wb")
        self._gzip: Optional[gzip.GzipFile] = None
        if compress:
            # No mtime or file name in the header: identical payloads give identical bytes
            self._gzip = gzip.GzipFile(filename="", fileobj=self._raw, mode="wb", mtime=0)
        self.fileobj: BinaryIO = self._gzip or self._raw
        self.closed = False

    def close(self) -> None:
        if self.closed:
            return
        try:
            if self._gzip is not None:
                self._gzip.close()
            self._raw.flush()
            os.fsync(self._raw.fileno())
        finally:
            self._raw.close()
            self.closed = True

    def abort(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            if self._gzip is not None:
                self._gzip.close()
        except OSError as e:
            logger.debug(f"Ignoring error while discarding {self._raw.name}: {e}")
        finally:
            self._raw.close()

    def __enter__(self) -> BinaryIO:
        return self.fileobj

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.abort()


def open_archive_for_write(path: Path, compress: bool) -> ArchiveFile:
    """Open ``path`` for writing; the file is fsynced on close."""
    return ArchiveFile(path, compress)


def open_archive_for_read(path: Path) -> BinaryIO:
    """Open an archive, detecting gzip compression from the magic bytes."""
    with open(path, "rb") as f:
        magic = f.read(2)
    if magic == GZIP_MAGIC:
        return gzip.open(path, "rb")
    return open(path, "rb")


class ArchiveStreamWriter:
    """Write archive lines while feeding a running SHA-256."""

    def __init__(self, fileobj: BinaryIO):
        self._file = fileobj
        self._digest = hashlib.sha256()

    def write_entry(self, entry: dict) -> None:
        line = encode_line(entry)
        self._digest.update(line)
        self._file.write(line)

    def write_entries(self, entries: Iterable[dict]) -> None:
        for entry in entries:
            self.write_entry(entry)

    def finish(self) -> str:
        """Append the trailing checksum line and return the checksum."""
        checksum = f"{CHECKSUM_PREFIX}{self._digest.hexdigest()}"
        self._file.write(encode_line({"type": "checksum", "algorithm": "sha256", "value": checksum}))
        return checksum


@dataclass
class ArchiveScan:
    """Result of a full verification pass over an archive."""

    header: dict
    manifest: ArchiveManifest
    stored_checksum: str
    computed_checksum: str
    section_counts: Dict[str, int] = field(default_factory=dict)

    @property
    def checksum_valid(self) -> bool:
        return self.stored_checksum == self.computed_checksum


def scan_archive(
    path: Path,
    on_record: Optional[Callable[[str, dict], None]] = None,
) -> ArchiveScan:
    """Parse every line of an archive, recomputing its checksum.

    Args:
        path: Archive file
        on_record: Optional callback invoked with (collection, document)

    Returns:
        ArchiveScan with stored and recomputed checksums

    Raises:
        ArchiveFormatError: If the archive is truncated, undecodable or malformed
    """
    digest = hashlib.sha256()
    header: Optional[dict] = None
    manifest: Optional[ArchiveManifest] = None
    stored_checksum: Optional[str] = None
    counts: Dict[str, int] = {}
    current: Optional[str] = None

    try:
        with open_archive_for_read(path) as f:
            for raw in f:
                if stored_checksum is not None:
                    raise ArchiveFormatError("data found after checksum line")
                entry = decode_line(raw)
                kind = entry.get("type")

                if kind == "checksum":
                    stored_checksum = str(entry.get("value"))
                    continue
                digest.update(raw)

                if header is None:
                    if kind != "header" or entry.get("format") != ARCHIVE_FORMAT:
                        raise ArchiveFormatError("missing archive header")
                    if entry.get("format_version") != ARCHIVE_FORMAT_VERSION:
                        raise ArchiveFormatError(
                            f"unsupported format version {entry.get('format_version')}"
                        )
                    header = entry
                elif kind == "section":
                    if current is not None or manifest is not None:
                        raise ArchiveFormatError(f"unexpected section start: {entry.get('collection')}")
                    current = entry["collection"]
                    if current in counts:
                        raise ArchiveFormatError(f"duplicate section: {current}")
                    counts[current] = 0
                elif kind == "record":
                    if current is None or entry.get("collection") != current:
                        raise ArchiveFormatError("record outside its collection section")
                    counts[current] += 1
                    if on_record is not None:
                        on_record(current, entry["document"])
                elif kind == "section_end":
                    if entry.get("collection") != current:
                        raise ArchiveFormatError(f"unbalanced section end: {entry.get('collection')}")
                    if entry.get("record_count") != counts[current]:
                        raise ArchiveFormatError(
                            f"section {current} declares {entry.get('record_count')} records, "
                            f"found {counts[current]}"
                        )
                    current = None
                elif kind == "manifest":
                    if current is not None:
                        raise ArchiveFormatError(f"manifest inside open section {current}")
                    manifest = ArchiveManifest.model_validate(
                        {k: v for k, v in entry.items() if k != "type"}
                    )
                else:
                    raise ArchiveFormatError(f"unknown line type: {kind!r}")
    except ArchiveFormatError:
        raise
    except (OSError, EOFError, zlib.error, ValueError, KeyError, TypeError) as e:
        raise ArchiveFormatError(f"unreadable archive: {e}") from e

    if header is None:
        raise ArchiveFormatError("empty archive")
    if manifest is None:
        raise ArchiveFormatError("missing manifest")
    if stored_checksum is None:
        raise ArchiveFormatError("missing checksum line, archive is truncated")
    if manifest.backup_id != header.get("backup_id"):
        raise ArchiveFormatError("manifest and header disagree on backup id")

    manifest_counts = {c.name: c.record_count for c in manifest.collections}
    if list(manifest_counts) != list(counts) or manifest_counts != counts:
        raise ArchiveFormatError("manifest record counts do not match the sections")

    return ArchiveScan(
        header=header,
        manifest=manifest,
        stored_checksum=stored_checksum,
        computed_checksum=f"{CHECKSUM_PREFIX}{digest.hexdigest()}",
        section_counts=counts,
    )


class ArchiveRecordReader:
    """Stream (collection, document) pairs from an archive.

    ``computed_checksum`` is set once iteration reaches the checksum line, so a
    caller can confirm the bytes it consumed are the bytes that were verified.
    """

    def __init__(self, path: Path):
        self.path = path
        self.computed_checksum: Optional[str] = None

    def __iter__(self) -> Iterator[Tuple[str, dict]]:
        digest = hashlib.sha256()
        with open_archive_for_read(self.path) as f:
            for raw in f:
                entry = decode_line(raw)
                if entry.get("type") == "checksum":
                    self.computed_checksum = f"{CHECKSUM_PREFIX}{digest.hexdigest()}"
                    return
                digest.update(raw)
                if entry.get("type") == "record":
                    yield entry["collection"], entry["document"]


def describe_archive(path: Path) -> Archive:
    """Build a catalog entry from a self-describing archive file.

    Raises:
        ArchiveFormatError: If the archive cannot be parsed
    """
    scan = scan_archive(path)
    valid = scan.checksum_valid
    return Archive(
        backup_id=scan.manifest.backup_id,
        created_at=scan.manifest.created_at,
        collections=[c.name for c in scan.manifest.collections],
        filename=path.name,
        status=ArchiveStatus.COMPLETE if valid else ArchiveStatus.CORRUPT,
        size_bytes=path.stat().st_size,
        record_counts=dict(scan.section_counts),
        checksum=scan.stored_checksum,
        trigger=scan.header.get("trigger", "manual"),
        error=None if valid else "checksum mismatch",
    )
