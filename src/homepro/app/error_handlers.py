"""Render lifecycle and HTTP errors as ``{"error": message}``."""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from homepro.domain.exceptions import LifecycleError

logger = logging.getLogger(__name__)


async def lifecycle_error_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    logger.info(
        "%s %s -> %d %s: %s",
        request.method, request.url.path, exc.status_code, type(exc).__name__, exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": message},
        headers=getattr(exc, "headers", None),
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LifecycleError, lifecycle_error_handler)
    app.add_exception_handler(HTTPException, http_error_handler)
