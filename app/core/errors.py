"""HTTP error bodies and the app-wide exception handlers."""

import logging
from http import HTTPStatus

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.schemas.validation import format_validation_errors

logger = logging.getLogger(__name__)

NOT_FOUND_MESSAGE = "The requested resource was not found."


def api_error(status_code: int, error: str, message: str, headers: dict[str, str] | None = None) -> HTTPException:
    """Build an HTTPException whose JSON body is {"error": ..., "message": ...}."""
    return HTTPException(
        status_code=status_code,
        detail={"error": error, "message": message},
        headers=headers,
    )


def validation_failed(details: list[str]) -> HTTPException:
    return HTTPException(
        status_code=400,
        detail={"error": "Validation failed", "details": details},
    )


def _status_phrase(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase
    except ValueError:
        return "Error"


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTPException as {"error", "message"} (or the dict detail as-is)."""
    if isinstance(exc.detail, dict):
        body = exc.detail
    elif exc.status_code == 404:
        body = {"error": "Not Found", "message": NOT_FOUND_MESSAGE}
    else:
        body = {"error": _status_phrase(exc.status_code), "message": str(exc.detail)}
    return JSONResponse(
        status_code=exc.status_code,
        content=body,
        headers=getattr(exc, "headers", None),
    )


async def request_validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "error": "Validation failed",
            "details": format_validation_errors(list(exc.errors())),
        },
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log with context, answer 500 without leaking internals."""
    logger.exception(
        "Unhandled error on %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "message": "Something went wrong"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
