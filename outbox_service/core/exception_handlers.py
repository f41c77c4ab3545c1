import logging
import uuid
from typing import Any, Optional
from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder

log = logging.getLogger("exception_handlers")


def _rid():
    return uuid.uuid4().hex


def error_response(status_code: int, code: str, message: Any, details: Optional[Any] = None,
                   request_id: Optional[str] = None) -> JSONResponse:
    """Builds the failure envelope shared by every handler below."""
    error = {"code": code, "message": message}
    if details is not None:
        error["details"] = jsonable_encoder(details)
    body = {
        "success": False,
        "error": error,
        "request_id": request_id or _rid(),
    }
    return JSONResponse(status_code=status_code, content=body)


# ----------- Exception Handlers (called by FastAPI) -----------

def http_exception_handler(request: Request, exc: HTTPException):
    """Routers translate business errors to HTTPException themselves (400, 404)."""
    return error_response(exc.status_code, "http_error", exc.detail)


def validation_exception_handler(request: Request, exc: RequestValidationError):
    return error_response(422, "validation_error", "Invalid input data", details=exc.errors())


def business_rule_exception_handler(request: Request, exc: ValueError):
    """A ValueError a router did not translate is still a client error."""
    log.warning(f"Business rule violation on path {request.url.path}: {exc}")
    return error_response(status.HTTP_400_BAD_REQUEST, "business_rule_violation", str(exc))


def not_found_exception_handler(request: Request, exc: LookupError):
    return error_response(status.HTTP_404_NOT_FOUND, "not_found", str(exc))


def generic_exception_handler(request: Request, exc: Exception):
    """Anything else is a 500; the traceback is logged against the request id returned to the caller."""
    request_id = _rid()
    log.error(f"Unhandled exception on path: {request.url.path} (request {request_id})", exc_info=exc)
    return error_response(500, "server_error", "Internal Server Error", request_id=request_id)


# ----------- Registration Function -----------

def setup_exception_handlers(app: FastAPI):
    """Registers all custom exception handlers with the FastAPI application."""
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(ValueError, business_rule_exception_handler)
    app.add_exception_handler(LookupError, not_found_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    return app
