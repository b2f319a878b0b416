"""Application errors and their JSON rendering."""

import logging
from typing import Any, Dict

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Structured application error with a stable snake_case code.

    Codes in use: ``bad_request`` (400), ``not_found`` (404),
    ``queue_not_configured`` (500) and ``db_insert_failed`` (500).
    """

    def __init__(self, code: str, status: int, message: str):
        super().__init__(message)
        self.code = code
        self.status = status
        self.message = message

    def __repr__(self) -> str:
        return f"AppError(code={self.code!r}, status={self.status}, message={self.message!r})"


def normalize_error(exc: BaseException) -> Dict[str, Any]:
    """
    Normalize an exception into the payload persisted on a run step.

    Args:
        exc: Exception raised by a step closure or the queue publisher

    Returns:
        JSON-safe dict that always carries ``message``
    """
    message = str(exc) or type(exc).__name__
    if isinstance(exc, AppError):
        return {"message": message, "code": exc.code}
    return {"message": message, "name": type(exc).__name__}


def error_response(status_code: int, code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"error": {"code": code, "message": message}},
    )


async def app_error_handler(_request: Request, exc: AppError) -> JSONResponse:
    return error_response(exc.status, exc.code, exc.message)


async def validation_error_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
    return error_response(400, "bad_request", "Invalid request payload.")


async def unhandled_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    # Details stay in the server log
    logger.error(f"Unhandled error: {type(exc).__name__}: {exc}")
    return error_response(500, "internal_error", "Unexpected error.")
