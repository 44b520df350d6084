"""Error taxonomy, service-call wrapping and the client-facing error boundary."""

from __future__ import annotations

import time
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from taskmarket.config.logger import app_logger, log_performance
from taskmarket.utils.responses import FieldError, error_response

T = TypeVar("T")


class ServiceError(Exception):
    """A domain service rejected or failed an operation."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        *,
        service: Optional[str] = None,
        operation: Optional[str] = None,
        status_code: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.service = service
        self.operation = operation
        if status_code is not None:
            self.status_code = status_code

    @property
    def context(self) -> str:
        if self.service and self.operation:
            return f"{self.service}.{self.operation}"
        return self.service or self.operation or "unknown"


class NotFoundError(ServiceError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(ServiceError):
    status_code = status.HTTP_409_CONFLICT


class ServiceUnavailableError(ServiceError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE


async def call_service(
    service: str,
    operation: str,
    func: Callable[..., Awaitable[T]],
    *args: Any,
    **kwargs: Any,
) -> T:
    """Await ``func(*args, **kwargs)`` with the failure tagged by service and operation.

    ``ServiceError`` instances pass through (with the context filled in when
    the service did not set it); anything else is wrapped into a 500
    ``ServiceError`` chained to the original exception.
    """
    started = time.perf_counter()
    try:
        result = await func(*args, **kwargs)
    except ServiceError as exc:
        exc.service = exc.service or service
        exc.operation = exc.operation or operation
        app_logger.warning("{}.{} rejected: {}", service, operation, exc.message)
        raise
    except Exception as exc:
        app_logger.opt(exception=exc).error("{}.{} failed: {}", service, operation, exc)
        raise ServiceError(
            f"{service}.{operation} failed",
            service=service,
            operation=operation,
        ) from exc
    log_performance(f"{service}.{operation}", time.perf_counter() - started)
    return result


def _field_name(loc: tuple) -> str:
    # loc starts with the source ("body", "query", "path"); the rest names the field
    parts = [str(part) for part in loc[1:]] if len(loc) > 1 else [str(part) for part in loc]
    return ".".join(parts)


def validation_errors(exc: RequestValidationError) -> List[FieldError]:
    return [
        FieldError(field=_field_name(tuple(error.get("loc", ()))), message=error.get("msg", "Invalid value"))
        for error in exc.errors()
    ]


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = validation_errors(exc)
    app_logger.warning("Validation failed for {} {}: {}", request.method, request.url.path, [e.field for e in errors])
    body = error_response("Validation failed", detail="One or more fields are invalid", errors=errors)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=body.model_dump(mode="json", exclude_none=True))


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    body = error_response(str(exc.detail))
    return JSONResponse(
        status_code=exc.status_code,
        content=body.model_dump(mode="json", exclude_none=True),
        headers=getattr(exc, "headers", None),
    )


async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    if exc.status_code >= 500:
        message = "Service error"
        detail = f"{exc.context} failed"
    else:
        message = exc.message
        detail = None
    body = error_response(message, detail=detail)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(mode="json", exclude_none=True))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    app_logger.opt(exception=exc).error("Unhandled error on {} {}", request.method, request.url.path)
    body = error_response("Internal server error")
    return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body.model_dump(mode="json", exclude_none=True))


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(ServiceError, service_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
