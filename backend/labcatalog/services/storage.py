from __future__ import annotations

import os
import tempfile
from abc import ABC, abstractmethod
from io import BytesIO
from pathlib import Path

from minio import Minio
from minio.error import S3Error

from ..errors import StorageError


def atomic_write_bytes(path: Path, data: bytes) -> None:
    """
    Writes to a temp file next to *path*, then renames it over *path*.
    On failure the previous content stays intact.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except Exception:
        if os.path.exists(tmp_name):
            os.remove(tmp_name)
        raise


class BlobBackend(ABC):
    """Key/value store of whole blobs."""

    name = "base"

    @abstractmethod
    def read_bytes(self, key: str) -> bytes:
        """Raises FileNotFoundError if *key* is absent."""

    @abstractmethod
    def write_bytes(self, key: str, data: bytes) -> None:
        ...

    @abstractmethod
    def exists(self, key: str) -> bool:
        ...

    def describe(self, key: str) -> str:
        return f"{self.name}:{key}"


class LocalBlobBackend(BlobBackend):
    name = "local"

    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser()

    def _path(self, key: str) -> Path:
        return self.root / key.lstrip("/")

    def read_bytes(self, key: str) -> bytes:
        path = self._path(key)
        if not path.exists():
            raise FileNotFoundError(key)
        return path.read_bytes()

    def write_bytes(self, key: str, data: bytes) -> None:
        atomic_write_bytes(self._path(key), data)

    def exists(self, key: str) -> bool:
        return self._path(key).exists()

    def describe(self, key: str) -> str:
        return str(self._path(key))


def _minio_client() -> Minio:
    endpoint = os.environ.get("MINIO_ENDPOINT", "minio:9000")
    access_key = os.environ.get("MINIO_ACCESS_KEY", "minio")
    secret_key = os.environ.get("MINIO_SECRET_KEY", "minio12345")
    secure = os.environ.get("MINIO_SECURE", "false").lower() == "true"
    return Minio(endpoint, access_key=access_key, secret_key=secret_key, secure=secure)


def _bucket() -> str:
    return os.environ.get("MINIO_BUCKET", "documents")


class MinioBlobBackend(BlobBackend):
    """MinIO bucket; put_object replaces an object in one call, so writes are all-or-nothing."""

    name = "minio"

    def __init__(self, client: Minio | None = None, bucket: str | None = None):
        self.client = client or _minio_client()
        self.bucket = bucket or _bucket()
        self._bucket_ready = False

    def ensure_bucket(self) -> None:
        if self._bucket_ready:
            return
        try:
            if not self.client.bucket_exists(self.bucket):
                self.client.make_bucket(self.bucket)
        except S3Error as e:
            raise StorageError(f"Cannot prepare bucket {self.bucket}: {e}") from e
        self._bucket_ready = True

    def read_bytes(self, key: str) -> bytes:
        self.ensure_bucket()
        resp = None
        try:
            resp = self.client.get_object(self.bucket, key)
            return resp.read()
        except S3Error as e:
            if e.code in ("NoSuchKey", "NoSuchObject"):
                raise FileNotFoundError(key) from e
            raise StorageError(f"Cannot read {key}: {e}") from e
        finally:
            if resp is not None:
                resp.close()
                resp.release_conn()

    def write_bytes(self, key: str, data: bytes) -> None:
        self.ensure_bucket()
        try:
            self.client.put_object(
                bucket_name=self.bucket,
                object_name=key,
                data=BytesIO(data),
                length=len(data),
                content_type="application/json",
            )
        except S3Error as e:
            raise StorageError(f"Cannot write {key}: {e}") from e

    def exists(self, key: str) -> bool:
        self.ensure_bucket()
        try:
            return any(obj.object_name == key for obj in self.client.list_objects(self.bucket, prefix=key))
        except S3Error as e:
            raise StorageError(f"Cannot list {key}: {e}") from e

    def describe(self, key: str) -> str:
        return f"minio://{self.bucket}/{key}"
