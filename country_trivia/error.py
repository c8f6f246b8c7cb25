from typing import Any, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from country_trivia.log import setup_logger

# Set up logger
exception_logger = setup_logger(__name__, "error.log")


# Custom Exception Classes


class BaseExceptionClass(Exception):
    def __init__(self, message: str, details: Optional[Any] = None):
        self.message = message
        self.details = details
        super().__init__(message)


class BadRequestError(BaseExceptionClass):
    pass


class NotFoundError(BaseExceptionClass):
    pass


class ServiceUnavailableError(BaseExceptionClass):
    pass


class InternalError(BaseExceptionClass):
    pass


def _envelope(error: str, details: Optional[Any] = None) -> dict:
    content = {"error": error}
    if details is not None:
        content["details"] = details
    return content


def register_error_handler(app: FastAPI):
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        exception_logger.error(f"HTTP {exc.status_code}: {exc.detail}")
        if exc.status_code == status.HTTP_404_NOT_FOUND and exc.detail == "Not Found":
            # unmatched route, not a missing record
            return JSONResponse(content={"error": "Route not found"}, status_code=exc.status_code)
        return JSONResponse(
            content={"error": exc.detail},
            status_code=exc.status_code,
        )

    @app.exception_handler(ValidationError)
    async def pydantic_validation_error_handler(request: Request, exc: ValidationError):
        exception_logger.error(f"Pydantic validation error: {str(exc)}")
        return JSONResponse(
            content=_envelope("Validation failed", jsonable_errors(exc.errors())),
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    @app.exception_handler(RequestValidationError)
    async def bad_request_error_handler(request: Request, exc: RequestValidationError):
        exception_logger.error(f"Bad request error: {str(exc)}")
        return JSONResponse(
            content=_envelope("Validation failed", jsonable_errors(exc.errors())),
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    @app.exception_handler(BadRequestError)
    async def bad_request_handler(request: Request, exc: BadRequestError):
        exception_logger.error(f"Bad request: {str(exc)}")
        return JSONResponse(
            content=_envelope(str(exc.message) or "Bad request", exc.details),
            status_code=status.HTTP_400_BAD_REQUEST,
        )

    @app.exception_handler(NotFoundError)
    async def not_found_error_handler(request: Request, exc: NotFoundError):
        exception_logger.error(f"Not found error: {str(exc)}")
        return JSONResponse(
            content={
                "error": str(exc.message) or "Not found"
            },
            status_code=status.HTTP_404_NOT_FOUND,
        )

    @app.exception_handler(ServiceUnavailableError)
    async def service_unavailable_error_handler(request: Request, exc: ServiceUnavailableError):
        exception_logger.error(f"Service unavailable error: {str(exc)}")
        return JSONResponse(
            content={
                "error": "External data source unavailable",
                "details": str(exc.message)
            },
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        )

    @app.exception_handler(InternalError)
    async def internal_error_handler(request: Request, exc: InternalError):
        exception_logger.error(f"Internal error: {str(exc)}")
        return JSONResponse(
            content=_envelope("Internal server error", exc.details),
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        exception_logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        return JSONResponse(
            content={"error": "Internal server error"},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )


def jsonable_errors(errors) -> list:
    # request validation errors may carry exception objects in "ctx"
    cleaned = []
    for error in errors:
        item = {key: value for key, value in error.items() if key not in ("ctx", "url")}
        if "input" in item and not isinstance(item["input"], (str, int, float, bool, type(None), list, dict)):
            item["input"] = str(item["input"])
        cleaned.append(item)
    return cleaned
