from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from starlette.exceptions import HTTPException as StarletteHTTPException
from typing import Any, Dict, List, Optional

from vaultsync.core.config import settings
from vaultsync.core.exceptions import AuthenticationError, CRMError, PermissionDeniedError, VaultError
from vaultsync.core.logging import REDACTED_FIELDS, get_logger
from vaultsync.schemas.response import ErrorResponse

logger = get_logger(__name__)


def error_response(status_code: int, message: str, code: str, details: Any = None,
                   headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(ErrorResponse(error=message, code=code, details=details).model_dump()),
        headers=headers,
    )


def clean_validation_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Keeps loc/msg/type of each pydantic error.

    The submitted value is echoed back only when it is a scalar of a
    non-sensitive field; SSNs, EINs and passwords never appear in a response.
    """
    cleaned = []
    for error in errors:
        loc = list(error.get("loc", ()))
        item = {"loc": loc, "msg": error.get("msg"), "type": error.get("type")}
        field = str(loc[-1]).lower() if loc else ""
        value = error.get("input")
        sensitive = field in REDACTED_FIELDS or field.endswith("password")
        if not sensitive and isinstance(value, (str, int, float, bool)):
            item["input"] = value
        cleaned.append(item)
    return cleaned


def add_exception_handlers(app: FastAPI):
    """
    Registers exception handlers with the FastAPI app.
    """
    @app.exception_handler(VaultError)
    async def vault_exception_handler(request: Request, exc: VaultError):
        if isinstance(exc, CRMError):
            logger.error(
                f"CRM call failed during {request.method} {request.url.path}: {exc.message}",
                extra={"payload": {"crm_status": exc.status}},
            )
        elif exc.status_code >= 500:
            logger.error(f"{exc.code}: {exc.message} ({request.method} {request.url.path})")
        elif isinstance(exc, (AuthenticationError, PermissionDeniedError)):
            logger.warning(f"{exc.code} on {request.method} {request.url.path}")

        return error_response(exc.status_code, exc.message, exc.code, exc.details)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """
        Handles routing-level HTTP exceptions (404, 405, ...).
        """
        return error_response(
            exc.status_code,
            str(exc.detail),
            "HTTP_ERROR",
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """
        Request body / form / query validation failures are 400s.
        """
        return error_response(
            400,
            "Input validation failed",
            "VALIDATION_ERROR",
            clean_validation_errors(exc.errors()),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Catch-all for unhandled exceptions.
        """
        request_id = getattr(request.state, "request_id", None)
        logger.error(
            f"Unhandled exception on {request.method} {request.url.path}: {exc}",
            extra={"request_id": request_id},
            exc_info=True,
        )

        message = "An internal error occurred. Please try again later." if settings.is_production else str(exc)
        return error_response(500, message, "INTERNAL_ERROR", {"request_id": request_id} if request_id else None)
