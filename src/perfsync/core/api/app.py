"""
FastAPI application setup for perfsync.

Creates the FastAPI app instance, registers routes and translates errors
into JSON bodies carrying a ``status`` field.
"""

import logging
import traceback

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from perfsync import __version__
from perfsync.core.api.models import ApiStatus
from perfsync.core.api.routes import build_requests

logger = logging.getLogger(__name__)

app = FastAPI(
    title="perfsync API",
    description="Build requests of performance test groups, for buildbot triggerables",
    version=__version__,
)

app.include_router(build_requests.router, prefix="/api", tags=["build-requests"])


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render HTTP errors, including unknown routes, with a status name in the body."""
    api_status = ApiStatus.INTERNAL_ERROR
    if exc.status_code == status.HTTP_404_NOT_FOUND:
        api_status = ApiStatus.NOT_FOUND
    elif exc.status_code < 500:
        api_status = ApiStatus.INVALID_REQUEST

    log = logger.error if exc.status_code >= 500 else logger.info
    log("HTTP %d on %s %s: %s", exc.status_code, request.method, request.url.path, exc.detail)

    return JSONResponse(
        status_code=exc.status_code,
        content={"status": api_status.value, "message": str(exc.detail)},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """
    Handle validation errors of path and query parameters.

    Returns the first error in a short message; logs the full list.
    """
    logger.warning(
        "Validation error on %s %s: %s", request.method, request.url.path, exc.errors()
    )

    first_error = exc.errors()[0] if exc.errors() else {}
    field = " -> ".join(str(loc) for loc in first_error.get("loc", []))
    error_msg = first_error.get("msg", "Invalid input")

    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "status": ApiStatus.INVALID_REQUEST.value,
            "message": f"{field}: {error_msg}" if field else error_msg,
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle all uncaught exceptions.

    Store and network failures end up here. The traceback is logged; the
    client gets a generic error status without internal details.
    """
    logger.error(
        "Unhandled exception on %s %s: %s\n%s",
        request.method,
        request.url.path,
        str(exc),
        traceback.format_exc(),
    )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "status": ApiStatus.INTERNAL_ERROR.value,
            "message": "An internal server error occurred",
        },
    )
