from typing import Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from .logging_config import get_logger

logger = get_logger(__name__)


class AppError(Exception):
    """base exception for errors surfaced to api clients"""
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None, errors: Optional[Dict[str, List[str]]] = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class ValidationError(AppError):
    """malformed or missing input"""
    status_code = 400
    default_message = "Validation failed"


class UnauthorizedError(AppError):
    """bad credentials, expired/invalid token or missing session"""
    status_code = 401
    default_message = "Unauthorized"


class NotFoundError(AppError):
    status_code = 404
    default_message = "Not found"


class ConflictError(AppError):
    status_code = 409
    default_message = "Conflict"


class UpstreamFetchError(AppError):
    """
    raised inside the metadata resolver when a fetch step fails.
    never escapes the resolver; link creation proceeds without metadata.
    """
    status_code = 502
    default_message = "Upstream fetch failed"


def envelope(success: bool, message: str, data=None, errors=None) -> dict:
    body = {"success": success, "message": message}
    if data is not None:
        body["data"] = data
    if errors:
        body["errors"] = errors
    return body


def _field_errors(exc: RequestValidationError) -> Dict[str, List[str]]:
    out: Dict[str, List[str]] = {}
    for err in exc.errors():
        loc = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path")]
        field = ".".join(loc) or "body"
        msg = err.get("msg", "Invalid value")
        # pydantic prefixes custom ValueError messages
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        out.setdefault(field, []).append(msg)
    return out


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(envelope(False, exc.message, errors=exc.errors), status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError):
        errors = _field_errors(exc)
        first = next(iter(errors.values()))[0] if errors else "Validation failed"
        return JSONResponse(envelope(False, first, errors=errors), status_code=400)

    @app.exception_handler(HTTPException)
    async def _http_exception(request: Request, exc: HTTPException):
        return JSONResponse(envelope(False, str(exc.detail)), status_code=exc.status_code, headers=exc.headers)
