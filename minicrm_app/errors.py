"""
Error taxonomy and the FastAPI handlers that turn errors into the
``{"success": false, "error": ...}`` envelope.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class CRMError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(CRMError):
    status_code = 400
    default_message = "Invalid request"


class InvalidIDError(ValidationError):
    default_message = "Invalid ID"


class AuthError(CRMError):
    status_code = 401
    default_message = "Unauthorized access"


class AuthorizationError(CRMError):
    status_code = 403
    default_message = "Access forbidden"


class NotFoundError(CRMError):
    status_code = 404
    default_message = "Not found"


class ConflictError(CRMError):
    status_code = 409
    default_message = "Resource already exists"


class PayloadTooLargeError(CRMError):
    status_code = 413
    default_message = "Payload too large"


class PersistenceError(CRMError):
    status_code = 500
    default_message = "Storage failure"


# Startup-only errors. These are never caught by the request handlers.

class RegistryError(Exception):
    pass


class DuplicateRegistration(RegistryError):
    pass


class UnknownModel(RegistryError):
    pass


class InvalidDescriptor(RegistryError):
    pass


class SchemaInitError(RegistryError):
    def __init__(self, entity: str, cause: Exception):
        self.entity = entity
        self.cause = cause
        super().__init__(f"failed to create table for {entity}: {cause}")


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


def format_validation_errors(errors) -> str:
    """Flatten pydantic/FastAPI error dicts into one readable line."""
    parts = []
    for err in errors:
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        where = ".".join(loc)
        parts.append(f"{where}: {err.get('msg')}" if where else str(err.get("msg")))
    return "; ".join(parts) or "Invalid request"


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    # sync on purpose: slowapi's middleware may call it directly
    client = request.client.host if request.client else "unknown"
    logger.warning("Rate limit exceeded for %s on %s", client, request.url.path)
    return error_response(429, f"Rate limit exceeded: {exc.detail}. Please try again later.")


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CRMError)
    async def crm_error_handler(request: Request, exc: CRMError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return error_response(exc.status_code, exc.message)

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        return error_response(400, format_validation_errors(exc.errors()))

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def unhandled_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return error_response(500, str(exc) or exc.__class__.__name__)

    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
