"""
Pulse API Response Utilities
Standardized response format and error handling
"""
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone

from .errors import (
    ConfigurationError,
    ConflictError,
    NotFoundError,
    PulseError,
    SchedulerError,
    StateError,
    ValidationError,
)
from .logging_config import api_logger


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


# ============================================================
# SUCCESS RESPONSES
# ============================================================

def success(data: Any = None, message: Optional[str] = None, meta: Optional[Dict] = None) -> Dict:
    """Create success response"""
    response = {
        "ok": True,
        "timestamp": _timestamp(),
    }

    if data is not None:
        response["data"] = data

    if message:
        response["message"] = message

    if meta:
        response["meta"] = meta

    return response


def paginated(items: List, total: int, page: int = 1, per_page: int = 20) -> Dict:
    """Paginated list response"""
    return {
        "ok": True,
        "data": items,
        "pagination": {
            "total": total,
            "page": page,
            "per_page": per_page,
            "total_pages": (total + per_page - 1) // per_page,
            "has_next": page * per_page < total,
            "has_prev": page > 1,
        },
        "timestamp": _timestamp(),
    }


# ============================================================
# ERROR RESPONSES
# ============================================================

class ApiException(HTTPException):
    """Custom API exception with error codes"""

    def __init__(
        self,
        status_code: int,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict] = None,
    ):
        self.error_code = error_code or f"ERR_{status_code}"
        self.details = details
        super().__init__(status_code=status_code, detail=message)


def not_found(resource: str = "Resource", id: Any = None):
    message = f"{resource} not found" if id is None else f"{resource} '{id}' not found"
    raise ApiException(404, message, "NOT_FOUND")


def conflict(message: str = "Resource conflict"):
    raise ApiException(409, message, "CONFLICT")


# Domain error -> HTTP status
STATUS_FOR_ERROR = [
    (ValidationError, 422),
    (NotFoundError, 404),
    (StateError, 409),
    (ConflictError, 409),
    (ConfigurationError, 400),
    (SchedulerError, 503),
]


def status_for(exc: PulseError) -> int:
    for error_type, status_code in STATUS_FOR_ERROR:
        if isinstance(exc, error_type):
            return status_code
    return 500


# ============================================================
# EXCEPTION HANDLERS
# ============================================================

async def pulse_error_handler(request: Request, exc: PulseError) -> JSONResponse:
    """Render domain errors with an explicit message"""
    status_code = status_for(exc)
    api_logger.warning(
        f"Request rejected: {exc.message}",
        status_code=status_code,
        error_code=exc.error_code,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=status_code,
        content={
            "ok": False,
            "error": exc.message,
            "error_code": exc.error_code,
            "timestamp": _timestamp(),
        },
    )


async def api_exception_handler(request: Request, exc: ApiException) -> JSONResponse:
    api_logger.warning(
        f"API Error: {exc.detail}",
        status_code=exc.status_code,
        error_code=exc.error_code,
        path=request.url.path,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "ok": False,
            "error": exc.detail,
            "error_code": exc.error_code,
            "details": exc.details,
            "timestamp": _timestamp(),
        },
    )
