from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import structlog

from prestasync.core.exceptions import (
    PrestaSyncException, RemoteStoreError, SyncInProgressError, NoProductsFoundError,
    SiteNotFoundError, ProductNotFoundError, StockAlertNotFoundError,
    InvalidProductError, ValidationError,
)

logger = structlog.get_logger()

# Checked in order, first match wins
STATUS_CODES = (
    (SiteNotFoundError, 404),
    (ProductNotFoundError, 404),
    (StockAlertNotFoundError, 404),
    (NoProductsFoundError, 404),
    (ValidationError, 400),
    (InvalidProductError, 400),
    (SyncInProgressError, 409),
    (RemoteStoreError, 502),
)

def status_code_for(exc: Exception) -> int:
    for exc_type, status_code in STATUS_CODES:
        if isinstance(exc, exc_type):
            return status_code
    return 500

async def prestasync_exception_handler(request: Request, exc: PrestaSyncException) -> JSONResponse:
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error("Request failed", path=request.url.path, error=str(exc), error_type=type(exc).__name__)
    else:
        logger.info("Request rejected", path=request.url.path, status_code=status_code, error=str(exc))

    return JSONResponse(
        status_code=status_code,
        content={"message": str(exc), "error": type(exc).__name__},
    )

def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PrestaSyncException, prestasync_exception_handler)
