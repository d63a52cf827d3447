from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from . import config
from .api import records
from .errors import InvalidInput, RecordNotFound, StorageError, StoreNotOpen
from .services.factory import build_store


@asynccontextmanager
async def lifespan(app: FastAPI):
    config.configure_logging()
    store = build_store()
    store.open()
    app.state.store = store
    yield
    store.close()


app = FastAPI(title="Lab Test Catalog", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(records.router, prefix="/records", tags=["records"])


@app.exception_handler(InvalidInput)
async def invalid_input_handler(_: Request, exc: InvalidInput):
    return JSONResponse(status_code=400, content={"error": "Invalid data", "detail": str(exc)})


@app.exception_handler(RecordNotFound)
async def not_found_handler(_: Request, exc: RecordNotFound):
    return JSONResponse(status_code=404, content={"error": "Test not found", "detail": str(exc)})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError):
    logger.opt(exception=exc).error("{} {} failed", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"error": "Storage failure"})


@app.exception_handler(StoreNotOpen)
async def store_not_open_handler(_: Request, exc: StoreNotOpen):
    return JSONResponse(status_code=503, content={"error": "Store unavailable", "detail": str(exc)})


@app.get("/")
async def root():
    return {"status": "ok", "message": "Lab Test Catalog Backend"}
