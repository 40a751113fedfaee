"""Helpers shared by route modules."""

import logging

from fastapi import HTTPException, Request

from backend.services.container import Services
from backend.services.errors import (
    EditValidationError,
    GenerationFailedError,
    NotFoundError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)


def get_services(request: Request) -> Services:
    return request.app.state.services


def to_http_exception(e: Exception) -> HTTPException:
    """Map a service-layer exception to the HTTP error the client sees."""
    if isinstance(e, HTTPException):
        return e
    if isinstance(e, UnauthorizedError) or "Unauthorized" in str(e):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, (EditValidationError, ValueError)):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, GenerationFailedError):
        return HTTPException(status_code=500, detail=str(e))
    if isinstance(e, RuntimeError) and "not configured" in str(e):
        return HTTPException(status_code=500, detail=str(e))
    logger.exception("Unhandled error: %s", e)
    return HTTPException(status_code=500, detail="Internal server error")
