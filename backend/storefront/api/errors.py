"""Centralized error responder: every AppError, validation error and crash ends here."""

from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from storefront.config import settings
from storefront.core.errors import STATUS_BY_KIND, AppError, ErrorKind

logger = logging.getLogger(__name__)

GENERIC_MESSAGE = "Something went wrong"


def _client(request: Request) -> str:
    return request.client.host if request.client else "-"


def error_body(
    exc: Exception,
    *,
    kind: ErrorKind,
    message: str,
    operational: bool,
    details: object | None = None,
) -> dict:
    body: dict = {"status": "error", "message": message, "error_code": kind.value}
    if details is not None:
        body["details"] = details
    if settings.is_development:
        body["detail"] = repr(exc)
        body["stack"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    elif not operational:
        body["message"] = GENERIC_MESSAGE
        body["error_code"] = ErrorKind.SERVER.value
    return body


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError):
        status_code = STATUS_BY_KIND[exc.kind]
        log = logger.warning if status_code < 500 and exc.operational else logger.error
        log(
            "%s - %s - %s - %s - %s",
            status_code,
            exc.message,
            request.url.path,
            request.method,
            _client(request),
            exc_info=not exc.operational,
        )
        return JSONResponse(
            status_code=status_code,
            content=error_body(exc, kind=exc.kind, message=exc.message, operational=exc.operational),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        logger.warning(
            "400 - invalid input - %s - %s - %s", request.url.path, request.method, _client(request)
        )
        return JSONResponse(
            status_code=STATUS_BY_KIND[ErrorKind.VALIDATION],
            content=error_body(
                exc,
                kind=ErrorKind.VALIDATION,
                message="Invalid input",
                operational=True,
                details=jsonable_encoder(exc.errors()),
            ),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception(
            "500 - %s - %s - %s - %s", exc, request.url.path, request.method, _client(request)
        )
        return JSONResponse(
            status_code=500,
            content=error_body(exc, kind=ErrorKind.SERVER, message=str(exc) or GENERIC_MESSAGE, operational=False),
        )
