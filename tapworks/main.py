import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from tapworks.api.admin_routes import router as admin_router
from tapworks.api.routes import router
from tapworks.catalog.startup import init_catalog_for_app
from tapworks.core.outcomes import ConcurrencyConflict, StorageUnavailable


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    init_catalog_for_app()
    yield


app = FastAPI(title="tapworks", version="0.1.0", lifespan=lifespan)
app.include_router(router)
app.include_router(admin_router)
# Configure logging
logging.basicConfig(level=os.environ.get("TAPWORKS_LOG_LEVEL", "INFO").upper())
logger = logging.getLogger(__name__)


@app.exception_handler(ConcurrencyConflict)
async def _conflict_handler(request: Request, exc: ConcurrencyConflict) -> JSONResponse:
    logger.error("conflict on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(StorageUnavailable)
async def _storage_handler(request: Request, exc: StorageUnavailable) -> JSONResponse:
    logger.error("storage unavailable on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)})


@app.get("/info")
async def info() -> dict[str, str]:
    return {"name": "tapworks", "version": "0.1.0"}
