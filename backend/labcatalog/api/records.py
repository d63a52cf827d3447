from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Body, Depends, Response

from ..schemas import LabTest
from ..services.export import EXPORT_FILENAME
from ..services.store import RecordStore
from .deps import get_store

# plain def: store I/O runs in the threadpool, serialized by the store lock
router = APIRouter()


def _dump(test: LabTest) -> dict:
    return test.model_dump(mode="json", by_alias=True)


@router.get("")
def list_records(response: Response, store: RecordStore = Depends(get_store)):
    result = store.load()
    response.headers["X-Skipped-Rows"] = str(result.skipped)
    return [_dump(t) for t in result.tests]


@router.post("")
def add_record(payload: Any = Body(None), store: RecordStore = Depends(get_store)):
    test = store.add(payload)
    return {"success": True, "test": _dump(test)}


@router.get("/export")
def export_records(store: RecordStore = Depends(get_store)):
    return Response(
        content=store.export(),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
    )


@router.put("/{position}")
def update_record(position: int, payload: Any = Body(None), store: RecordStore = Depends(get_store)):
    test = store.update(position, payload)
    return {"success": True, "test": _dump(test)}


@router.delete("/{position}")
def delete_record(position: int, store: RecordStore = Depends(get_store)):
    store.delete(position)
    return {"success": True}
