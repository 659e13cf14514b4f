"""
Consistent error handling for the API.

Every error leaves the service in the same envelope:

    {"success": false, "error": {"code": "...", "message": "...", ...}}

Access-control decisions are NOT errors. They are returned as
GuardDecision values (see fxacademy.platform.guards) and rendered by
fxacademy.platform.rbac.decision_response.
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class AppError(Exception):
    """Base application error rendered into the error envelope."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        if code is not None:
            self.code = code
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict:
        """Convert to the error half of the envelope."""
        body = {"code": self.code, "message": self.message}
        body.update(self.details)
        return body


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class AuthenticationError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "authentication_required"


class AuthorizationError(AppError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "permission_denied"


class PaymentRequiredError(AppError):
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    code = "payment_required"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class ConflictError(AppError):
    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


class ExternalServiceError(AppError):
    status_code = status.HTTP_502_BAD_GATEWAY
    code = "external_service_error"


class ConfigurationError(Exception):
    """
    Raised at startup when required configuration is missing or invalid.

    Never rendered to clients: the process refuses to start instead.
    """

    def __init__(self, message: str, missing: Optional[List[str]] = None):
        self.missing = missing or []
        super().__init__(message)


def error_body(code: str, message: str, **extra: Any) -> dict:
    """Build an error envelope."""
    error = {"code": code, "message": message}
    error.update({k: v for k, v in extra.items() if v is not None})
    return {"success": False, "error": error}


def success_body(data: Any = None) -> dict:
    """Build a success envelope."""
    return {"success": True, "data": data}


def register_error_handlers(app: FastAPI) -> None:
    """Render every error into the {success, error} envelope."""

    @app.exception_handler(AppError)
    async def handle_app_error(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(
                "Request failed",
                extra={"path": request.url.path, "code": exc.code, "error": exc.message},
            )
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "error": exc.to_dict()},
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        detail = exc.detail
        if isinstance(detail, dict):
            content = error_body(
                detail.get("code", "http_error"),
                detail.get("message", "Request failed"),
                **{k: v for k, v in detail.items() if k not in ("code", "message")},
            )
        else:
            content = error_body("http_error", str(detail))
        return JSONResponse(
            status_code=exc.status_code,
            content=content,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=error_body(
                "validation_error",
                "Request validation failed",
                fields=[
                    {"loc": list(err.get("loc", [])), "message": err.get("msg")}
                    for err in exc.errors()
                ],
            ),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception(
            "Unhandled error",
            extra={"path": request.url.path, "error": str(exc)},
        )
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=error_body("internal_error", "An unexpected error occurred"),
        )


__all__ = [
    "AppError",
    "ValidationError",
    "AuthenticationError",
    "AuthorizationError",
    "PaymentRequiredError",
    "NotFoundError",
    "ConflictError",
    "ExternalServiceError",
    "ConfigurationError",
    "error_body",
    "success_body",
    "register_error_handlers",
]
