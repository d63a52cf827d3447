from __future__ import annotations

from .. import config
from ..errors import StorageError
from .storage import BlobBackend, LocalBlobBackend, MinioBlobBackend
from .store import BlobRecordStore, CsvFileStore, RecordStore


def build_blob_backend() -> BlobBackend:
    backend = config.blob_backend()
    if backend in {"local", "filesystem", "fs"}:
        return LocalBlobBackend(root=config.blob_root())
    if backend in {"minio", "s3"}:
        return MinioBlobBackend()
    raise StorageError(f"Unsupported blob backend '{backend}'")


def build_store() -> RecordStore:
    backend = config.records_backend()
    if backend == "csv":
        return CsvFileStore(config.records_csv_path())
    if backend == "blob":
        return BlobRecordStore(build_blob_backend(), key=config.records_blob_key())
    raise StorageError(f"Unsupported records backend '{backend}'")
