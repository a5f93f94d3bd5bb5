"""
Logging setup and request logging middleware.

- configure_logging(): one basicConfig call for the whole process; modules
  just use logging.getLogger(__name__).
- request_logging_middleware: adds an X-Request-ID header (UUID4) to each
  response and logs method, path, status and latency.
"""
import logging
import time
import uuid
from typing import Callable

from starlette.requests import Request

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger("weather.request")


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    # httpx logs every request at INFO; the weather client logs its own failures
    logging.getLogger("httpx").setLevel(logging.WARNING)


async def request_logging_middleware(request: Request, call_next: Callable):
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id
    start = time.time()
    response = await call_next(request)
    latency = (time.time() - start) * 1000.0
    response.headers["X-Request-ID"] = request_id
    logger.info(
        "id=%s method=%s path=%s status=%s latency_ms=%.2f",
        request_id, request.method, request.url.path, response.status_code, latency,
    )
    return response
