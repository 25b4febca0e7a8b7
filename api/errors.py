"""
Translation of lifecycle errors into HTTP errors.

Routers catch `LeadLifecycleError` and raise the HTTPException built here, so
the status code for each error kind is decided in one place.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Tuple, Type

from fastapi import HTTPException

from domain.errors import (
    Conflict,
    Forbidden,
    InvalidTransition,
    LeadLifecycleError,
    NotFound,
    StoreError,
    ValidationError,
)

logger = logging.getLogger(__name__)

# Checked in order; subclasses must come before their bases.
STATUS_CODES: Tuple[Tuple[Type[LeadLifecycleError], int], ...] = (
    (InvalidTransition, 409),
    (Conflict, 409),
    (Forbidden, 403),
    (ValidationError, 422),
    (NotFound, 404),
    (StoreError, 503),
)


def status_code_for(error: LeadLifecycleError) -> int:
    for error_type, status_code in STATUS_CODES:
        if isinstance(error, error_type):
            return status_code
    return 500


def to_http_exception(error: LeadLifecycleError) -> HTTPException:
    """
    Build the HTTPException for a lifecycle error.

    Body (under FastAPI's `detail` key):
        {"error": "<ExceptionName>", "detail": "<message>", "status_code": <int>, ...}

    ValidationError adds `fields`; Conflict and StoreError add `retryable: true`;
    InvalidTransition adds the `status` and `action` it was raised for.
    """

    status_code = status_code_for(error)
    body: Dict[str, Any] = {
        "error": type(error).__name__,
        "detail": str(error),
        "status_code": status_code,
    }
    if isinstance(error, ValidationError):
        body["fields"] = error.fields
    if isinstance(error, (Conflict, StoreError)):
        body["retryable"] = True
    if isinstance(error, InvalidTransition):
        body["status"] = error.status
        body["action"] = error.action

    if status_code >= 500:
        logger.error("Request failed: %s: %s", type(error).__name__, error)
    return HTTPException(status_code=status_code, detail=body)


__all__ = ["STATUS_CODES", "status_code_for", "to_http_exception"]
