from fastapi import Request

from ..errors import StoreNotOpen
from ..services.store import RecordStore


def get_store(request: Request) -> RecordStore:
    store = getattr(request.app.state, "store", None)
    if store is None:
        raise StoreNotOpen("Record store is not open")
    return store
