"""Global exception handlers.

Domain errors render through ``to_response()``, request validation becomes a
400 naming the offending fields, and anything else is a bare 500 whose detail
only goes to the log.
"""

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from errors import CountryCacheError, InternalError
from logger import get_logger

logger = get_logger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(CountryCacheError)
    async def country_cache_error_handler(request: Request, exc: CountryCacheError):
        if exc.http_status >= 500:
            logger.error("%s on %s: %s", type(exc).__name__, request.url.path, exc.details or exc.message)
        return JSONResponse(status_code=exc.http_status, content=exc.to_response())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning("Validation error on %s: %s", request.url.path, exc.errors())
        details = {
            ".".join(str(part) for part in err["loc"][1:]) or "request": err["msg"]
            for err in exc.errors()
        }
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Validation failed", "details": details},
        )

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception on %s: %r", request.url.path, exc, exc_info=exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=InternalError().to_response(),
        )
