import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class MetaBridgeError(Exception):
    """base exception, rendered as the {success: false, error} envelope"""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_payload(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message}


class ValidationError(MetaBridgeError):
    """missing or malformed request parameter"""
    status_code = 400


class OAuthCallbackError(ValidationError):
    """the OAuth redirect came back unusable (error, missing code/state, bad state)"""
    pass


class AuthenticationError(MetaBridgeError):
    """no stored credential for the caller, or it has expired"""
    status_code = 401

    def __init__(self, message: str, expired: bool = False):
        super().__init__(message)
        self.expired = expired

    def to_payload(self) -> Dict[str, Any]:
        payload = super().to_payload()
        payload["authenticated"] = False
        if self.expired:
            payload["expired"] = True
        return payload


class UpstreamError(MetaBridgeError):
    """any failure talking to the Graph API"""
    status_code = 500

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = upstream_status


class ConfigurationError(MetaBridgeError):
    """the service is missing settings required for the operation"""
    status_code = 500


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": message})


async def meta_bridge_error_handler(request: Request, exc: MetaBridgeError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    details = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "query")
        details.append(f"{location}: {err.get('msg')}" if location else err.get("msg"))
    return error_response(400, "; ".join(details) or "Invalid request")


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        return error_response(404, f"Not found - {request.url.path}")
    return error_response(exc.status_code, str(exc.detail))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} crashed: {exc}", exc_info=exc)
    return error_response(500, "Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MetaBridgeError, meta_bridge_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
