from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api import routers
from .config.cors_config import get_cors_config
from .config.logging_config import get_logger, setup_logging
from .config.settings import get_settings
from .exceptions import (
    ArchiveFormatError,
    InvalidArgumentError,
    InvalidStateError,
    NotFoundError,
    SheetStoreError,
    StorageIOError,
    UnauthorizedError,
)
from .services.container import ServiceContainer

logger = get_logger(__name__)

ERROR_STATUS = [
    (NotFoundError, 404, "Not Found"),
    (UnauthorizedError, 403, "Forbidden"),
    (InvalidArgumentError, 400, "Bad Request"),
    (InvalidStateError, 409, "Conflict"),
    (ArchiveFormatError, 400, "Bad Request"),
    (StorageIOError, 503, "Service Unavailable"),
]


def error_body(status: int, error: str, message: str, path: str) -> dict:
    return {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "status": status,
        "error": error,
        "message": message,
        "path": path,
    }


async def handle_sheetstore_error(request: Request, exc: SheetStoreError) -> JSONResponse:
    status, error = 500, "Internal Server Error"
    for exc_type, mapped_status, mapped_error in ERROR_STATUS:
        if isinstance(exc, exc_type):
            status, error = mapped_status, mapped_error
            break
    if status >= 500:
        logger.error("Request failed", path=request.url.path, error=str(exc))
    else:
        logger.info("Request rejected", path=request.url.path, status=status, error=str(exc))
    return JSONResponse(status_code=status, content=error_body(status, error, str(exc), request.url.path))


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info("Starting sheetstore", version=__version__, media_dir=settings.MEDIA_UPLOAD_DIR)
    yield
    logger.info("Shutting down sheetstore")


def create_app(services: Optional[ServiceContainer] = None) -> FastAPI:
    settings = get_settings()
    setup_logging(settings)

    docs_enabled = settings.ENABLE_DOCS and not settings.is_production
    app = FastAPI(
        title=settings.APP_NAME,
        version=settings.APP_VERSION,
        description="Sparse spreadsheet cell store with sharing and archive import/export",
        lifespan=lifespan,
        docs_url="/api/docs" if docs_enabled else None,
        redoc_url="/api/redoc" if docs_enabled else None,
    )
    app.state.services = services or ServiceContainer(settings)

    app.add_middleware(CORSMiddleware, **get_cors_config(settings))
    app.add_exception_handler(SheetStoreError, handle_sheetstore_error)

    for router in routers:
        app.include_router(router)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "version": settings.APP_VERSION}

    return app


app = create_app()


if __name__ == "__main__":
    settings = get_settings()
    uvicorn.run("sheetstore.main:app", host=settings.HOST, port=settings.PORT,
                log_level=settings.LOG_LEVEL.lower(), reload=settings.DEBUG)
