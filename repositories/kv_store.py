# ============================================================================
# KEY-VALUE PERSISTENCE
# ============================================================================
# EPOCH: 1 - BULK ACQUISITION
# STATUS: Core - Snapshot-persisted key-value stores
# PURPOSE: get/set/snapshot/load abstraction over JSON files
# CREATED: 18 OCT 2026
# ============================================================================
"""
Key-Value Persistence

One abstraction, three backends:

- MemoryStore:        nothing on disk (tests, throwaway runs)
- JsonSnapshotStore:  one JSON object in one file
- ChunkedJsonStore:   a directory of chunk_0000.json, chunk_0001.json, ...
                      each holding at most chunk_size entries, reloaded by
                      concatenation in numeric order

Writes are atomic (temp file + fsync + os.replace). Loading is tolerant:
a corrupt or truncated file never raises. The loader salvages every
top-level record it can parse, copies the bad file aside as
<name>.backup.<timestamp> and carries on with what it recovered.

Usage:
    store = JsonSnapshotStore(Path("cache/jobs.json"))
    store.load()
    store.set("job-1", {...})
    store.snapshot()
"""

import json
import logging
import os
import re
import shutil
import tempfile
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from core.errors import StoreError

logger = logging.getLogger(__name__)

_CHUNK_PATTERN = re.compile(r"^chunk_(\d+)\.json$")
_NEXT_RECORD = re.compile(r',\s*"')
_NEXT_TOP_LEVEL_RECORD = re.compile(r',\r?\n  "')
_decoder = json.JSONDecoder()


# ============================================================================
# TOLERANT READ / ATOMIC WRITE
# ============================================================================

def _salvage_records(text: str) -> Dict[str, Any]:
    """
    Recover top-level "key": value pairs from a damaged JSON object.

    Walks the object one record at a time. When a record does not parse,
    skips ahead to the next '"key":' boundary and tries again, so a bad
    record in the middle costs only that record and a truncated tail
    costs only the incomplete last record.
    """
    records: Dict[str, Any] = {}
    # Files written by this module are indented, so only resync on top-level keys there
    resync = _NEXT_TOP_LEVEL_RECORD if "\n  \"" in text else _NEXT_RECORD
    start = text.find("{")
    if start < 0:
        return records
    pos = start + 1
    length = len(text)

    while pos < length:
        while pos < length and text[pos] in " \t\r\n,":
            pos += 1
        if pos >= length or text[pos] == "}":
            break
        try:
            key, pos = _decoder.raw_decode(text, pos)
            while pos < length and text[pos] in " \t\r\n":
                pos += 1
            if not isinstance(key, str) or pos >= length or text[pos] != ":":
                raise ValueError("expected key/value separator")
            pos += 1
            while pos < length and text[pos] in " \t\r\n":
                pos += 1
            value, pos = _decoder.raw_decode(text, pos)
            records[key] = value
        except ValueError:
            match = resync.search(text, pos + 1)
            if match is None:
                break
            pos = match.start() + 1

    return records


def backup_file(path: Path) -> Optional[Path]:
    """Copy a damaged file aside. Returns the backup path, or None on failure."""
    backup = path.with_name(f"{path.name}.backup.{int(time.time() * 1000)}")
    try:
        shutil.copy2(path, backup)
    except OSError as e:
        logger.warning(f"Failed to back up {path}: {e}")
        return None
    logger.warning(f"Backed up damaged file {path} to {backup}")
    return backup


def read_json_object(path: Path) -> Tuple[Dict[str, Any], bool]:
    """
    Read a JSON object from disk without ever raising on bad content.

    Returns:
        (records, damaged) - damaged is True when salvage was needed
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}, False
    except (OSError, UnicodeDecodeError) as e:
        logger.error(f"Could not read {path}: {e}")
        return {}, True

    if not text.strip():
        return {}, False

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        records = _salvage_records(text)
        logger.warning(
            f"{path} is not valid JSON ({e.msg} at line {e.lineno}); "
            f"salvaged {len(records)} records"
        )
        return records, True

    if not isinstance(data, dict):
        logger.warning(f"{path} does not hold a JSON object ({type(data).__name__}); ignoring it")
        return {}, True

    return data, False


def write_json_atomic(path: Path, data: Dict[str, Any]) -> None:
    """
    Write a JSON object with temp file + fsync + rename.

    Raises:
        StoreError: if the file cannot be written
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
    except (OSError, TypeError, ValueError) as e:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise StoreError(f"Failed to write {path}: {e}") from e


# ============================================================================
# STORES
# ============================================================================

class KeyValueStore(ABC):
    """
    In-memory dict with a durable snapshot.

    Values must be JSON-serializable. Mutations mark the store dirty;
    snapshot() persists and clears the flag.
    """

    def __init__(self):
        self._data: Dict[str, Any] = {}
        self._dirty = False

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._dirty = True

    def delete(self, key: str) -> bool:
        if key in self._data:
            del self._data[key]
            self._dirty = True
            return True
        return False

    def keys(self) -> List[str]:
        return list(self._data.keys())

    def items(self) -> Iterator[Tuple[str, Any]]:
        return iter(list(self._data.items()))

    def clear(self) -> None:
        self._data.clear()
        self._dirty = True

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)

    @property
    def dirty(self) -> bool:
        return self._dirty

    @abstractmethod
    def load(self) -> int:
        """Replace in-memory contents with the durable copy. Returns entry count."""

    @abstractmethod
    def snapshot(self) -> None:
        """Persist in-memory contents."""


class MemoryStore(KeyValueStore):
    """Store without durability."""

    def load(self) -> int:
        self._dirty = False
        return len(self._data)

    def snapshot(self) -> None:
        self._dirty = False


class JsonSnapshotStore(KeyValueStore):
    """All entries in one JSON file."""

    def __init__(self, path: Path):
        super().__init__()
        self.path = Path(path)

    def load(self) -> int:
        records, damaged = read_json_object(self.path)
        if damaged and self.path.exists():
            backup_file(self.path)
        self._data = dict(records)
        self._dirty = False
        logger.info(f"Loaded {len(self._data)} entries from {self.path}")
        return len(self._data)

    def snapshot(self) -> None:
        write_json_atomic(self.path, self._data)
        self._dirty = False
        logger.debug(f"Snapshot of {len(self._data)} entries written to {self.path}")


class ChunkedJsonStore(KeyValueStore):
    """
    Entries sharded across fixed-size numbered chunk files.

    Each chunk is loaded and salvaged independently, so one damaged chunk
    never costs the others.
    """

    def __init__(self, directory: Path, chunk_size: int = 100):
        super().__init__()
        if chunk_size < 1:
            raise ValueError(f"chunk_size must be >= 1, got {chunk_size}")
        self.directory = Path(directory)
        self.chunk_size = chunk_size

    def chunk_files(self) -> List[Path]:
        """Existing chunk files in numeric order."""
        if not self.directory.is_dir():
            return []
        numbered = []
        for path in self.directory.iterdir():
            match = _CHUNK_PATTERN.match(path.name)
            if match:
                numbered.append((int(match.group(1)), path))
        return [path for _, path in sorted(numbered)]

    def _chunk_path(self, index: int) -> Path:
        return self.directory / f"chunk_{index:04d}.json"

    def load(self) -> int:
        data: Dict[str, Any] = {}
        files = self.chunk_files()
        for path in files:
            records, damaged = read_json_object(path)
            if damaged:
                backup_file(path)
            data.update(records)
        self._data = data
        self._dirty = False
        logger.info(f"Loaded {len(self._data)} entries from {len(files)} chunks in {self.directory}")
        return len(self._data)

    def snapshot(self) -> None:
        entries = list(self._data.items())
        written = 0
        for index, offset in enumerate(range(0, len(entries), self.chunk_size)):
            write_json_atomic(self._chunk_path(index), dict(entries[offset:offset + self.chunk_size]))
            written = index + 1

        # Drop chunks left over from a larger previous snapshot
        for path in self.chunk_files():
            index = int(_CHUNK_PATTERN.match(path.name).group(1))
            if index >= written:
                try:
                    path.unlink()
                except OSError as e:
                    raise StoreError(f"Failed to remove stale chunk {path}: {e}") from e

        self._dirty = False
        logger.debug(f"Snapshot of {len(entries)} entries written as {written} chunks")


__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "JsonSnapshotStore",
    "ChunkedJsonStore",
    "read_json_object",
    "write_json_atomic",
    "backup_file",
]
