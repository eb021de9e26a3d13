"""Domain errors and the FastAPI exception handlers that render them.

Services raise the typed errors below instead of `HTTPException` so they
stay usable from scripts and tests. `setup_exception_handlers` maps them
to the same `{"detail": ...}` body FastAPI uses for `HTTPException`, and
turns anything unexpected into a logged 500 response carrying an error id
clients can quote when reporting problems.
"""

import logging
import traceback
import uuid

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .config import settings

logger = logging.getLogger("datingapp.api")


class DatingAppError(Exception):
    """Base class for errors that map onto an HTTP status."""
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class BadRequestError(DatingAppError):
    status_code = 400


class UnauthorizedError(DatingAppError):
    status_code = 401


class ForbiddenError(DatingAppError):
    status_code = 403


class NotFoundError(DatingAppError):
    status_code = 404


async def domain_error_handler(request: Request, exc: DatingAppError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})


async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log an unhandled exception and return a 500 JSON body.

    Stack details are only included in the `dev` environment.
    """
    error_id = uuid.uuid4().hex
    logger.error(
        "Unhandled exception [%s] in %s %s: %s",
        error_id,
        request.method,
        request.url.path,
        exc,
        exc_info=exc,
    )
    details = None
    if settings.ENV == "dev":
        details = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return JSONResponse(
        status_code=500,
        content={
            "statusCode": 500,
            "message": str(exc) or "Internal server error",
            "details": details,
            "errorId": error_id,
        },
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register the domain and catch-all handlers on `app`."""
    app.add_exception_handler(DatingAppError, domain_error_handler)
    app.add_exception_handler(Exception, global_exception_handler)
    logger.debug("Exception handlers registered")
