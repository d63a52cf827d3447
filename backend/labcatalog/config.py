import os
import sys

from loguru import logger


def records_backend() -> str:
    return os.environ.get("RECORDS_BACKEND", "csv").strip().lower()


def records_csv_path() -> str:
    return os.environ.get("RECORDS_CSV_PATH", os.path.join("data", "tests.csv"))


def blob_backend() -> str:
    return os.environ.get("BLOB_BACKEND", "local").strip().lower()


def blob_root() -> str:
    return os.environ.get("BLOB_ROOT", os.path.join("data", "blobs"))


def records_blob_key() -> str:
    return os.environ.get("RECORDS_BLOB_KEY", "tests.json")


def cors_origins() -> list[str]:
    raw = os.environ.get("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000")
    return [o.strip() for o in raw.split(",") if o.strip()]


def log_level() -> str:
    return os.environ.get("LOG_LEVEL", "INFO").upper()


def configure_logging() -> None:
    logger.remove()
    logger.add(sys.stderr, level=log_level())
