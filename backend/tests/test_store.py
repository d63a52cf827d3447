import json
import os
from concurrent.futures import ThreadPoolExecutor

import pytest

from labcatalog.errors import InvalidInput, RecordNotFound, StorageError
from labcatalog.services.codec import HEADER
from labcatalog.services.storage import LocalBlobBackend
from labcatalog.services.store import BlobRecordStore, CsvFileStore


def test_new_store_is_empty(store):
    assert store.all() == []
    assert store.load().skipped == 0


def test_add_then_list(store, cbc, lipid):
    store.add(cbc)
    before = store.all()

    stored = store.add(lipid)

    after = store.all()
    assert after == before + [stored]
    assert after[0].name == "CBC"
    assert after[0].price == 50
    assert after[0].parameters[0].normal_range == "13.8-17.2"


def test_list_is_idempotent(store, cbc, lipid):
    store.add(cbc)
    store.add(lipid)

    assert store.all() == store.all()


@pytest.mark.parametrize(
    "patch",
    [
        {"name": ""},
        {"name": "   "},
        {"name": None},
        {"price": None},
        {"price": "cheap"},
        {"price": -1},
        {"parameters": []},
        {"parameters": "Hemoglobin"},
        {"parameters": ["Hemoglobin"]},
    ],
)
def test_add_rejects_invalid_candidate(store, cbc, patch):
    store.add(cbc)
    before = store.all()

    with pytest.raises(InvalidInput):
        store.add({**cbc, **patch})

    assert store.all() == before


@pytest.mark.parametrize("missing", ["name", "price", "parameters"])
def test_add_rejects_missing_field(store, cbc, missing):
    payload = {k: v for k, v in cbc.items() if k != missing}

    with pytest.raises(InvalidInput) as exc_info:
        store.add(payload)

    assert missing in str(exc_info.value)
    assert store.all() == []


def test_add_rejects_non_object(store):
    with pytest.raises(InvalidInput):
        store.add(["CBC", 50])
    with pytest.raises(InvalidInput):
        store.add(None)


def test_add_coerces_types(store, cbc):
    cbc["price"] = "12.5"
    cbc["parameters"] = [{"name": "Count", "unit": None, "normalRange": 5}]

    stored = store.add(cbc)

    assert stored.price == 12.5
    assert stored.parameters[0].unit == ""
    assert stored.parameters[0].normal_range == "5"
    assert store.all() == [stored]


@pytest.mark.parametrize("position", [-1, 3])
def test_delete_out_of_bounds(store, cbc, lipid, position):
    for payload in (cbc, lipid, cbc):
        store.add(payload)
    before = store.all()

    with pytest.raises(RecordNotFound):
        store.delete(position)

    assert store.all() == before


def test_delete_removes_exactly_one(store, cbc, lipid):
    for i in range(4):
        store.add({**cbc, "name": f"T{i}"})

    removed = store.delete(1)

    assert removed.name == "T1"
    assert [t.name for t in store.all()] == ["T0", "T2", "T3"]


def test_update_replaces_exactly_one(store, cbc, lipid):
    for i in range(3):
        store.add({**cbc, "name": f"T{i}"})
    before = store.all()

    stored = store.update(1, lipid)

    after = store.all()
    assert after[1] == stored
    assert after[1].name == "Lipid panel"
    assert after[:1] + after[2:] == before[:1] + before[2:]


@pytest.mark.parametrize("position", [-1, 1])
def test_update_out_of_bounds(store, cbc, lipid, position):
    store.add(cbc)
    before = store.all()

    with pytest.raises(RecordNotFound):
        store.update(position, lipid)

    assert store.all() == before


def test_update_validates_before_writing(store, cbc):
    store.add(cbc)
    before = store.all()

    with pytest.raises(InvalidInput):
        store.update(0, {**cbc, "parameters": []})

    assert store.all() == before


def test_export_uses_current_records(store, cbc):
    store.add(cbc)

    assert store.export().splitlines()[1] == '"CBC",50,"Hemoglobin","g/dL","13.8-17.2"'


def test_csv_open_writes_header(tmp_path):
    path = tmp_path / "nested" / "tests.csv"
    CsvFileStore(path).open()

    assert path.read_text(encoding="utf-8") == HEADER + "\n"


def test_csv_open_fills_blank_file(tmp_path):
    path = tmp_path / "tests.csv"
    path.write_text("  \n", encoding="utf-8")

    CsvFileStore(path).open()

    assert path.read_text(encoding="utf-8") == HEADER + "\n"


def test_csv_list_skips_malformed_rows(csv_store, cbc):
    csv_store.add(cbc)
    with open(csv_store.path, "a", encoding="utf-8") as f:
        f.write('Broken,10,"[{oops"\n')

    result = csv_store.load()

    assert [t.name for t in result.tests] == ["CBC"]
    assert result.skipped == 1


def test_csv_add_appends_single_row(csv_store, cbc, lipid):
    csv_store.add(cbc)
    csv_store.add(lipid)

    lines = csv_store.path.read_text(encoding="utf-8").splitlines()
    assert lines[0] == HEADER
    assert lines[1].startswith("CBC,50,")
    assert lines[2].startswith("Lipid panel,32.5,")


def test_csv_add_after_missing_trailing_newline(csv_store, cbc, lipid):
    csv_store.add(cbc)
    text = csv_store.path.read_text(encoding="utf-8")
    csv_store.path.write_text(text.rstrip("\n"), encoding="utf-8")

    csv_store.add(lipid)

    assert [t.name for t in csv_store.all()] == ["CBC", "Lipid panel"]


def test_csv_failed_rewrite_keeps_existing_data(csv_store, cbc, lipid, monkeypatch):
    csv_store.add(cbc)
    csv_store.add(lipid)
    original = csv_store.path.read_bytes()

    def fail_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", fail_replace)

    with pytest.raises(StorageError):
        csv_store.delete(0)

    monkeypatch.undo()
    assert csv_store.path.read_bytes() == original
    assert [p.name for p in csv_store.path.parent.iterdir()] == ["tests.csv"]


def test_csv_unreadable_medium_raises_storage_error(tmp_path):
    path = tmp_path / "tests.csv"
    path.mkdir()

    with pytest.raises(StorageError):
        CsvFileStore(path).all()


def test_blob_open_writes_empty_array(tmp_path):
    backend = LocalBlobBackend(tmp_path)
    BlobRecordStore(backend, key="tests.json").open()

    assert backend.read_bytes("tests.json") == b"[]"


def test_blob_layout(tmp_path, cbc):
    backend = LocalBlobBackend(tmp_path)
    store = BlobRecordStore(backend, key="tests.json")

    store.add(cbc)

    assert json.loads(backend.read_bytes("tests.json")) == [
        {
            "name": "CBC",
            "price": 50.0,
            "parameters": [{"name": "Hemoglobin", "unit": "g/dL", "normalRange": "13.8-17.2"}],
        }
    ]


def test_blob_skips_malformed_records(tmp_path, cbc):
    backend = LocalBlobBackend(tmp_path)
    backend.write_bytes("tests.json", json.dumps([cbc, {"name": "No price"}, 7]).encode())

    result = BlobRecordStore(backend, key="tests.json").load()

    assert [t.name for t in result.tests] == ["CBC"]
    assert result.skipped == 2


@pytest.mark.parametrize("raw", [b"{not json", b'{"name": "CBC"}'])
def test_blob_corrupt_document_is_a_storage_error(tmp_path, raw):
    backend = LocalBlobBackend(tmp_path)
    backend.write_bytes("tests.json", raw)

    with pytest.raises(StorageError):
        BlobRecordStore(backend, key="tests.json").all()


def test_concurrent_mutations_are_serialized(store, cbc):
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda i: store.add({**cbc, "name": f"T{i}"}), range(30)))

    assert sorted(t.name for t in store.all()) == sorted(f"T{i}" for i in range(30))


def test_csv_row_with_undecodable_bytes_is_skipped(csv_store, cbc):
    csv_store.add(cbc)
    with open(csv_store.path, "ab") as f:
        f.write(b'Bad\xff,1,"[]"\n')

    result = csv_store.load()

    assert [t.name for t in result.tests] == ["CBC"]
    assert result.skipped == 1
