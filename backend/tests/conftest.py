import pytest

from labcatalog.api.deps import get_store
from labcatalog.main import app
from labcatalog.services.storage import LocalBlobBackend
from labcatalog.services.store import BlobRecordStore, CsvFileStore


@pytest.fixture
def cbc() -> dict:
    return {
        "name": "CBC",
        "price": 50,
        "parameters": [{"name": "Hemoglobin", "unit": "g/dL", "normalRange": "13.8-17.2"}],
    }


@pytest.fixture
def lipid() -> dict:
    return {
        "name": "Lipid panel",
        "price": 32.5,
        "parameters": [
            {"name": "LDL", "unit": "mg/dL", "normalRange": "<100"},
            {"name": "HDL", "unit": "mg/dL", "normalRange": ">40"},
        ],
    }


@pytest.fixture
def csv_store(tmp_path):
    store = CsvFileStore(tmp_path / "data" / "tests.csv")
    store.open()
    yield store
    store.close()


@pytest.fixture(params=["csv", "blob"])
def store(request, tmp_path):
    if request.param == "csv":
        s = CsvFileStore(tmp_path / "data" / "tests.csv")
    else:
        s = BlobRecordStore(LocalBlobBackend(tmp_path / "blobs"), key="tests.json")
    s.open()
    yield s
    s.close()


@pytest.fixture
def api_store(store):
    app.dependency_overrides[get_store] = lambda: store
    yield store
    app.dependency_overrides.clear()
