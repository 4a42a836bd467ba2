"""Structured API error responses for Ghostwatch.

Every error leaves the API in the same shape:

    {"error": {"error_code": "...", "message": "...", "details": {...}, "request_id": "..."}}
"""

from __future__ import annotations

from typing import Any

from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ghostwatch.errors import GhostwatchError

# =============================================================================
# Response Models
# =============================================================================


class ErrorDetail(BaseModel):
    """Detailed error information."""

    error_code: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional context about the error",
    )
    request_id: str | None = Field(None, description="Request ID for tracing (if available)")


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: ErrorDetail = Field(..., description="Error details")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "error": {
                        "error_code": "ALREADY_RUNNING",
                        "message": "Rule 3f1c... is already running",
                        "details": {"rule_id": "3f1c..."},
                        "request_id": "abc12345",
                    }
                }
            ]
        }
    }


# =============================================================================
# Error Code Mapping
# =============================================================================


# Map GhostwatchError codes to HTTP status codes
ERROR_STATUS_MAP: dict[str, int] = {
    # Validation (400)
    "VALIDATION": 400,
    "CONFIGURATION": 400,
    # Identity (401)
    "AUTH_FAILED": 401,
    # Not Found (404)
    "NOT_FOUND": 404,
    # Conflict (409)
    "ALREADY_RUNNING": 409,
    "EXECUTION_STATE": 409,
    # Upstream (502)
    "TRANSIENT_FETCH": 502,
    "ACTION_DISPATCH": 502,
    # Server Errors (500)
    "GHOSTWATCH_ERROR": 500,
}


def get_status_code(error_code: str) -> int:
    """Get HTTP status code for an error code."""
    return ERROR_STATUS_MAP.get(error_code, 500)


# =============================================================================
# Exception Handlers
# =============================================================================


def ghostwatch_error_to_response(
    error: GhostwatchError,
    request_id: str | None = None,
) -> JSONResponse:
    """Convert a GhostwatchError to a structured JSON response."""
    content = ErrorResponse(
        error=ErrorDetail(
            error_code=error.code,
            message=error.message,
            details=error.details,
            request_id=request_id,
        )
    )
    return JSONResponse(
        status_code=get_status_code(error.code),
        content=content.model_dump(),
    )


async def ghostwatch_exception_handler(
    request: Request,
    exc: GhostwatchError,
) -> JSONResponse:
    """FastAPI exception handler for GhostwatchError."""
    request_id = request.headers.get("X-Request-ID")
    return ghostwatch_error_to_response(exc, request_id)


# =============================================================================
# API Exception Classes
# =============================================================================


class APIException(HTTPException):
    """HTTPException with a structured error response."""

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.error_code = error_code
        self.message = message
        self.error_details = details or {}
        super().__init__(status_code=status_code, detail=message)

    def to_response(self, request_id: str | None = None) -> ErrorResponse:
        """Convert to ErrorResponse model."""
        return ErrorResponse(
            error=ErrorDetail(
                error_code=self.error_code,
                message=self.message,
                details=self.error_details,
                request_id=request_id,
            )
        )


async def api_exception_handler(
    request: Request,
    exc: APIException,
) -> JSONResponse:
    """FastAPI exception handler for APIException."""
    request_id = request.headers.get("X-Request-ID")
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response(request_id).model_dump(),
    )


# =============================================================================
# Common Response Definitions
# =============================================================================


COMMON_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Bad Request - Invalid rule or parameters"},
    401: {"model": ErrorResponse, "description": "Unauthorized - Missing X-Owner-Id header"},
    404: {"model": ErrorResponse, "description": "Not Found - Resource does not exist"},
    409: {"model": ErrorResponse, "description": "Conflict - Rule is already running"},
    500: {"model": ErrorResponse, "description": "Internal Server Error"},
    503: {"model": ErrorResponse, "description": "Service Unavailable - Engine not started"},
}


def responses(*status_codes: int) -> dict:
    """Generate responses dict for specific status codes.

    Usage:
        @router.get("/rules/{rule_id}", responses=responses(404, 500))
        def get_rule(rule_id: str): ...
    """
    return {code: COMMON_RESPONSES[code] for code in status_codes if code in COMMON_RESPONSES}


OWNER_RESPONSES = responses(401)
CRUD_RESPONSES = responses(400, 401, 404, 500)
EXECUTE_RESPONSES = responses(401, 404, 409, 500)


# =============================================================================
# Helper Functions
# =============================================================================


def unauthorized(message: str = "X-Owner-Id header required") -> APIException:
    """Create an unauthorized exception."""
    return APIException(
        status_code=401,
        error_code="AUTH_FAILED",
        message=message,
    )


def service_unavailable(message: str = "Rule engine is not initialized") -> APIException:
    """Create a service unavailable exception."""
    return APIException(
        status_code=503,
        error_code="SERVICE_UNAVAILABLE",
        message=message,
    )
