"""Translation of service exceptions into HTTP errors."""
from __future__ import annotations

from fastapi import HTTPException

from dispatch_dashboard.core.errors import (
    PartialWriteError,
    RecordNotFoundError,
    StoreUnavailableError,
    VersionConflictError,
)
from dispatch_dashboard.core.logging import logger


def http_error(exc: Exception, action: str, **context) -> HTTPException:
    """Map an exception raised by a service call onto the status code routes return."""
    if isinstance(exc, HTTPException):
        return exc
    if isinstance(exc, RecordNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, VersionConflictError):
        logger.warning(action, error=str(exc), **context)
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, StoreUnavailableError):
        logger.error(action, error=str(exc), **context)
        return HTTPException(status_code=503, detail=str(exc))
    if isinstance(exc, PartialWriteError):
        logger.error(action, error=str(exc), details=exc.details, **context)
        return HTTPException(status_code=500, detail={"message": str(exc), "details": exc.details})
    logger.error(action, error=str(exc), **context)
    return HTTPException(status_code=400, detail=str(exc))
