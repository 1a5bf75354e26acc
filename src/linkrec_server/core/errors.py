"""
Global Error Handling

This module defines the engine's exception hierarchy and the application-wide
exception handlers registered on the FastAPI app.

Design Goals
------------
- Never leak internal exception details to clients
- Always return deterministic, machine-readable error responses
- Log full stack traces internally for debugging
- Keep domain exceptions free of any HTTP concerns
"""

from __future__ import annotations

import logging
from typing import Dict, Any

from fastapi import Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import DBAPIError

logger = logging.getLogger("linkrec.errors")


# ---------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------

class LinkingError(RuntimeError):
    """Base error for internal-linking engine failures."""


class ConfigurationError(LinkingError):
    """Raised when the underlying store is unreachable or misconfigured."""


class ContentSourceError(LinkingError):
    """Raised when the content repository cannot supply a document."""


class DocumentProcessingError(LinkingError):
    """Raised when a single document cannot be tokenized or persisted."""


class CorpusTooSmallError(LinkingError):
    """Raised when similarities are requested for fewer than two documents."""


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def configuration_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Handler for store connectivity and configuration failures.

    Registered for `ConfigurationError` and SQLAlchemy's `InterfaceError`;
    `database_exception_handler` forwards lost connections here too. No
    mutation has happened when this fires, so the message is safe to surface.
    """
    logger.error(
        "Store unavailable during request %s %s: %s",
        request.method,
        request.url.path,
        type(exc).__name__,
    )

    detail = str(exc) if isinstance(exc, ConfigurationError) else "Database is unreachable"

    payload: Dict[str, Any] = {
        "error": "configuration_error",
        "detail": detail,
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )


async def database_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Handler for SQLAlchemy `OperationalError`.

    Only a failed connect (no statement was running) or an error that
    invalidated the connection means the store is gone. Lock timeouts and
    deadlocks are reported as a failed operation the caller may retry.
    """
    if isinstance(exc, DBAPIError) and (exc.connection_invalidated or exc.statement is None):
        return await configuration_exception_handler(request, exc)

    logger.error(
        "Database operation failed during request %s %s: %s",
        request.method,
        request.url.path,
        exc,
    )

    payload: Dict[str, Any] = {
        "error": "database_error",
        "detail": "Database operation failed",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    This handler should be registered with FastAPI as the final safety net
    for any exception not otherwise handled by route-level or framework-level
    handlers.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.
    - Ensures consistent error response format across the entire API.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : Exception
        The uncaught exception instance.

    Returns
    -------
    JSONResponse
        A JSON 500 response with a minimal error payload.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
