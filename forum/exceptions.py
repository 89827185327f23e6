"""
Error taxonomy shared by every service.

Each error carries a machine-readable ``kind``, an HTTP-style ``code`` and a
human-readable message, plus optional field-level ``data``.  Services raise
them directly; any error aborts the whole orchestration sequence.
"""
import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ServiceError(HTTPException):
    kind = "internal"
    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, data: list[dict] | None = None) -> None:
        super().__init__(status_code=self.default_status, detail=message)
        self.data = data

    @property
    def message(self) -> str:
        return self.detail


# ── Validation ────────────────────────────────────────────────────────────────

class ValidationFailed(ServiceError):
    kind = "validation"
    default_status = 422


# ── Authentication ────────────────────────────────────────────────────────────

class Unauthorized(ServiceError):
    kind = "unauthorized"
    default_status = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class InvalidCredentials(Unauthorized):
    def __init__(self) -> None:
        super().__init__("Invalid email or password.")


class TokenExpired(Unauthorized):
    def __init__(self) -> None:
        super().__init__("Token has expired.")


class TokenInvalid(Unauthorized):
    def __init__(self) -> None:
        super().__init__("Token is invalid.")


# ── Authorization ─────────────────────────────────────────────────────────────

class Forbidden(ServiceError):
    kind = "forbidden"
    default_status = status.HTTP_403_FORBIDDEN


# ── Lookup ────────────────────────────────────────────────────────────────────

class NotFound(ServiceError):
    kind = "not_found"
    default_status = status.HTTP_404_NOT_FOUND


# ── Conflict ──────────────────────────────────────────────────────────────────

class Conflict(ServiceError):
    kind = "conflict"
    default_status = status.HTTP_409_CONFLICT


class EntityExists(Conflict):
    """A unique field is already taken; ``data`` names the field."""

    def __init__(self, field: str) -> None:
        super().__init__(
            f"{field.capitalize()} is exist!",
            data=[{"field": field, "message": "is exist"}],
        )
        self.field = field


class AlreadyJoined(Conflict):
    def __init__(self) -> None:
        super().__init__("Channel has already joined")


class NotJoined(Conflict):
    def __init__(self) -> None:
        super().__init__("Channel has not joined yet")


# ── Remote calls ──────────────────────────────────────────────────────────────

class UpstreamError(ServiceError):
    """A call to another service failed; never retried."""

    kind = "upstream"
    default_status = status.HTTP_502_BAD_GATEWAY


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------

def error_body(kind: str, code: int, message: str, data: list[dict] | None = None) -> dict:
    return {"errors": {"kind": kind, "code": code, "message": message, "data": data}}


_KIND_BY_STATUS = {
    status.HTTP_401_UNAUTHORIZED: Unauthorized.kind,
    status.HTTP_403_FORBIDDEN: Forbidden.kind,
    status.HTTP_404_NOT_FOUND: NotFound.kind,
    status.HTTP_409_CONFLICT: Conflict.kind,
    422: ValidationFailed.kind,
}


def install_exception_handlers(app: FastAPI) -> None:
    """Render every error as ``{"errors": {kind, code, message, data}}``."""

    @app.exception_handler(ServiceError)
    async def _service_error(request: Request, exc: ServiceError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(exc.kind, exc.status_code, exc.message, exc.data),
        )

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        data = [
            {
                "field": ".".join(str(part) for part in err["loc"] if part != "body"),
                "message": err["msg"],
            }
            for err in exc.errors()
        ]
        code = 422
        return JSONResponse(
            status_code=code,
            content=error_body(ValidationFailed.kind, code, "Parameters validation error!", data),
        )

    @app.exception_handler(StarletteHTTPException)
    async def _http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        kind = _KIND_BY_STATUS.get(exc.status_code, "http_error")
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(kind, exc.status_code, str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled exception")
        code = status.HTTP_500_INTERNAL_SERVER_ERROR
        return JSONResponse(
            status_code=code,
            content=error_body("internal", code, "An unexpected error occurred"),
        )
