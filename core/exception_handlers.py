import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from core.errors import SubscriptionNotFound
from .response import error as resp_error

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return JSONResponse(status_code=exc.status_code, content=resp_error(code=str(exc.status_code), message=str(exc.detail)))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=422,
            content=resp_error(code="invalid_request", message="Request validation failed", details=jsonable_encoder(exc.errors())),
        )

    @app.exception_handler(SubscriptionNotFound)
    async def not_found_handler(request: Request, exc: SubscriptionNotFound):
        return JSONResponse(status_code=404, content=resp_error(code="not_found", message="Subscription not found"))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(status_code=500, content=resp_error(code="internal_error", message="Internal server error"))
