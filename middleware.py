import time
import uuid

from fastapi import Request, status
from fastapi.responses import JSONResponse

from errors import InternalError
from logger import get_logger, request_id_var

logger = get_logger(__name__)


async def add_request_id_and_process_time(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    token = request_id_var.set(request_id)
    request.state.request_id = request_id
    start = time.perf_counter()
    try:
        try:
            response = await call_next(request)
        except Exception:
            # logged here, while the request id is still bound
            logger.exception(
                "Unhandled error on %s %s [request %s]", request.method, request.url.path, request_id,
            )
            response = JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=InternalError().to_response(),
            )
        elapsed = time.perf_counter() - start
        response.headers["X-Request-ID"] = request_id
        response.headers["X-Process-Time"] = f"{elapsed:.4f}"
        logger.info(
            "%s %s -> %s (%.1f ms)",
            request.method, request.url.path, response.status_code, elapsed * 1000,
        )
        return response
    finally:
        request_id_var.reset(token)
