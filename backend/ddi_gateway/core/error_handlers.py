"""
Exception handlers for the DDI gateway
"""

import logging
import traceback
from datetime import datetime

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from .exceptions import DDIGatewayException

logger = logging.getLogger(__name__)


def _error_body(request: Request, message: str, error_code: str, details=None, suggestions=None) -> dict:
    return {
        "message": message,
        "error_code": error_code,
        "details": details or {},
        "suggestions": suggestions or [],
        "timestamp": datetime.utcnow().isoformat(),
        "path": request.url.path,
        "method": request.method
    }


async def gateway_exception_handler(request: Request, exc: DDIGatewayException) -> JSONResponse:
    """Handle custom gateway exceptions"""
    log = logger.warning if exc.status_code < 500 else logger.error
    log(f"{type(exc).__name__}: {exc.message}", extra={
        "details": exc.details,
        "path": request.url.path,
        "method": request.method
    })

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(
            request, exc.message, type(exc).__name__.upper(), exc.details, exc.suggestions
        )
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle SQLAlchemy database exceptions"""
    logger.error(f"Database error: {str(exc)}", extra={
        "path": request.url.path,
        "method": request.method,
        "exception_type": type(exc).__name__
    })

    if isinstance(exc, IntegrityError):
        error_msg = str(exc.orig) if hasattr(exc, 'orig') else str(exc)
        if "unique" in error_msg.lower() or "duplicate" in error_msg.lower():
            return JSONResponse(
                status_code=status.HTTP_409_CONFLICT,
                content=_error_body(
                    request,
                    "A resource with this information already exists",
                    "DUPLICATE_RESOURCE",
                    suggestions=["Use a different name or update the existing resource"]
                )
            )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=_error_body(request, "Database constraint violation", "CONSTRAINT_VIOLATION")
        )

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(
            request,
            "A database error occurred",
            "DATABASE_ERROR",
            suggestions=["Check that the database is available", "Try the operation again"]
        )
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions"""
    logger.error(f"Unexpected error: {str(exc)}", extra={
        "path": request.url.path,
        "method": request.method,
        "exception_type": type(exc).__name__,
        "traceback": traceback.format_exc()
    })

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(
            request,
            "An unexpected error occurred",
            "INTERNAL_SERVER_ERROR",
            details={"error_type": type(exc).__name__}
        )
    )


def setup_error_handlers(app: FastAPI) -> None:
    """Register all error handlers on the FastAPI application"""
    app.add_exception_handler(DDIGatewayException, gateway_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
