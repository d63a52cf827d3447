from __future__ import annotations

import json
import os
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from ..errors import RecordNotFound, StorageError
from ..schemas import LabTest
from .codec import HEADER, DecodeResult, decode, encode, encode_row
from .export import export_csv
from .storage import BlobBackend, atomic_write_bytes
from .validation import validate_candidate


class RecordStore(ABC):
    """
    Ordered list of lab tests addressed by 0-based position.

    Every operation is one read-modify-write cycle on the backing medium,
    serialized by a per-store lock. Positions are only valid until the next
    mutation.
    """

    name = "base"

    def __init__(self):
        self._lock = threading.Lock()

    # medium access; called with the lock held

    @abstractmethod
    def _initialize(self) -> None:
        """Creates an empty medium if there is none yet."""

    @abstractmethod
    def _read(self) -> DecodeResult:
        ...

    @abstractmethod
    def _write(self, tests: list[LabTest]) -> None:
        """Replaces the whole medium."""

    def _append(self, test: LabTest) -> None:
        tests = self._read().tests
        tests.append(test)
        self._write(tests)

    @abstractmethod
    def describe(self) -> str:
        ...

    @contextmanager
    def _medium(self, action: str) -> Iterator[None]:
        with self._lock:
            try:
                yield
            except OSError as e:
                raise StorageError(f"Cannot {action} {self.describe()}: {e}") from e

    @staticmethod
    def _check_position(position: int, size: int) -> None:
        if position < 0 or position >= size:
            raise RecordNotFound(position, size)

    # lifecycle

    def open(self) -> None:
        with self._medium("initialize"):
            self._initialize()
        logger.info("Record store opened: {} ({})", self.describe(), self.name)

    def close(self) -> None:
        logger.info("Record store closed: {}", self.describe())

    # operations

    def load(self) -> DecodeResult:
        with self._medium("read"):
            return self._read()

    def all(self) -> list[LabTest]:
        return self.load().tests

    def add(self, payload: Any) -> LabTest:
        test = validate_candidate(payload)
        with self._medium("append to"):
            self._append(test)
        logger.info("Added test {!r}", test.name)
        return test

    def update(self, position: int, payload: Any) -> LabTest:
        test = validate_candidate(payload)
        with self._medium("update"):
            tests = self._read().tests
            self._check_position(position, len(tests))
            tests[position] = test
            self._write(tests)
        logger.info("Updated test at position {}: {!r}", position, test.name)
        return test

    def delete(self, position: int) -> LabTest:
        with self._medium("delete from"):
            tests = self._read().tests
            self._check_position(position, len(tests))
            removed = tests.pop(position)
            self._write(tests)
        logger.info("Deleted test at position {}: {!r}", position, removed.name)
        return removed

    def export(self) -> str:
        return export_csv(self.all())


class CsvFileStore(RecordStore):
    """Flat delimited-text file, one row per test (see codec)."""

    name = "csv"

    def __init__(self, path: str | Path):
        super().__init__()
        self.path = Path(path).expanduser()

    def describe(self) -> str:
        return str(self.path)

    def _read_text(self) -> str:
        # bytes keep \r inside quoted fields; bad bytes become surrogates and
        # only their own row is dropped by the decoder
        return self.path.read_bytes().decode("utf-8", errors="surrogateescape")

    def _initialize(self) -> None:
        if not self.path.exists() or not self._read_text().strip():
            atomic_write_bytes(self.path, (HEADER + "\n").encode("utf-8"))

    def _read(self) -> DecodeResult:
        self._initialize()
        return decode(self._read_text())

    def _write(self, tests: list[LabTest]) -> None:
        atomic_write_bytes(self.path, encode(tests).encode("utf-8"))

    def _append(self, test: LabTest) -> None:
        self._initialize()
        row = encode_row(test) + "\n"
        with open(self.path, "a+b") as f:
            f.seek(-1, os.SEEK_END)
            if f.read(1) != b"\n":
                row = "\n" + row
            f.write(row.encode("utf-8"))


class BlobRecordStore(RecordStore):
    """Whole list kept as one JSON array under a single key."""

    name = "blob"

    def __init__(self, backend: BlobBackend, key: str = "tests.json"):
        super().__init__()
        self.backend = backend
        self.key = key

    def describe(self) -> str:
        return self.backend.describe(self.key)

    def _initialize(self) -> None:
        if not self.backend.exists(self.key):
            self.backend.write_bytes(self.key, b"[]")

    def _read(self) -> DecodeResult:
        self._initialize()
        raw = self.backend.read_bytes(self.key)
        try:
            items = json.loads(raw.decode("utf-8") or "[]")
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise StorageError(f"{self.describe()} does not hold a JSON document") from e
        if not isinstance(items, list):
            raise StorageError(f"{self.describe()} does not hold a JSON array")

        result = DecodeResult()
        for i, item in enumerate(items):
            try:
                result.tests.append(LabTest.model_validate(item))
            except ValidationError:
                result.skipped += 1
                logger.warning("Skipping malformed record {} in {}", i, self.describe())
        return result

    def _write(self, tests: list[LabTest]) -> None:
        data = json.dumps([t.model_dump(by_alias=True) for t in tests], ensure_ascii=False)
        self.backend.write_bytes(self.key, data.encode("utf-8"))
