"""Catalog error taxonomy.

Errors are HTTPException subclasses so routers can let them propagate and
FastAPI renders the right status code.
"""

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException


class CatalogError(HTTPException):
    status_code = 500
    default_message = "Catalog operation failed."
    retryable = False

    def __init__(self, message: Optional[str] = None):
        super().__init__(status_code=self.status_code, detail=message or self.default_message)

    @property
    def message(self) -> str:
        return str(self.detail)


class NotFoundError(CatalogError):
    """Entity absent, or hidden from the caller's role (never distinguished)."""

    status_code = 404
    default_message = "Not found."


class ForbiddenError(CatalogError):
    status_code = 403
    default_message = "Operation not permitted for this role."


class BadRequestError(CatalogError):
    status_code = 400
    default_message = "Bad request."


class ConflictError(CatalogError):
    status_code = 409
    default_message = "Duplicate value."


class QueryError(CatalogError):
    """Store query failed or timed out; safe for the client to retry."""

    status_code = 503
    default_message = "Catalog store query failed. Try again."
    retryable = True


class CacheError(Exception):
    """Cache backend failure. Absorbed inside services.cache, never raised to callers."""
