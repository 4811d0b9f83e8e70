"""
Error types and HTTP exception utilities.

Domain errors are raised by the entities and ports; the ``require_*`` helpers
reduce boilerplate for 404s in route handlers.
"""

from enum import Enum
from typing import TypeVar

from fastapi import HTTPException

T = TypeVar("T")


class FeedflowError(Exception):
    """Base class for all feedflow errors."""


class ValidationError(FeedflowError, ValueError):
    """An entity or value object was given invalid data."""


class InvalidTransitionError(FeedflowError):
    """A status change not allowed by the entity's transition table."""

    def __init__(self, entity: str, current: str, requested: str):
        self.entity = entity
        self.current = current
        self.requested = requested
        super().__init__(
            f"Invalid {entity} status transition from '{current}' to '{requested}'"
        )


# ─────────────────────────────────────────────────────────────
# Storage
# ─────────────────────────────────────────────────────────────

class StorageErrorCode(Enum):
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"


class StorageError(FeedflowError):
    """Error raised by a repository implementation."""

    def __init__(self, message: str, code: StorageErrorCode):
        self.code = code
        super().__init__(message)


class DuplicateItemError(StorageError):
    """A feed item with the same (source, guid) key already exists."""

    def __init__(self, source_id: str, guid: str):
        self.source_id = source_id
        self.guid = guid
        super().__init__(
            f"Feed item already exists for source {source_id}: {guid}",
            StorageErrorCode.CONFLICT,
        )


# ─────────────────────────────────────────────────────────────
# Fetching
# ─────────────────────────────────────────────────────────────

class FetchErrorType(Enum):
    NETWORK = "network"
    AUTH = "auth"
    PARSE = "parse"
    VALIDATION = "validation"
    RATE_LIMIT = "rate_limit"
    NOT_FOUND = "not_found"
    TIMEOUT = "timeout"
    SERVER = "server"
    CLIENT = "client"
    UNKNOWN = "unknown"


class FetchError(FeedflowError):
    """A source could not be fetched."""

    def __init__(
        self,
        type: FetchErrorType,
        message: str,
        code: str | None = None,
        metadata: dict | None = None,
    ):
        self.type = type
        self.message = message
        self.code = code
        self.metadata = metadata or {}
        super().__init__(message)


# ─────────────────────────────────────────────────────────────
# AI generation
# ─────────────────────────────────────────────────────────────

class AiErrorCode(Enum):
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    MODEL_UNAVAILABLE = "MODEL_UNAVAILABLE"
    CONTENT_FILTERED = "CONTENT_FILTERED"
    TOKEN_LIMIT_EXCEEDED = "TOKEN_LIMIT_EXCEEDED"
    AUTHENTICATION_FAILED = "AUTHENTICATION_FAILED"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"


class AiServiceError(FeedflowError):
    """The AI text-generation collaborator failed."""

    def __init__(self, message: str, code: AiErrorCode, details: dict | None = None):
        self.code = code
        self.details = details or {}
        super().__init__(message)


# ─────────────────────────────────────────────────────────────
# HTTP helpers
# ─────────────────────────────────────────────────────────────

def require_resource(resource: T | None, detail: str = "Resource not found") -> T:
    """
    Raise 404 if resource is None, otherwise return the resource.

    Usage:
        source = require_resource(await repo.find_by_id(id), "Source not found")
    """
    if resource is None:
        raise HTTPException(status_code=404, detail=detail)
    return resource


def require_source(source: T | None) -> T:
    """Raise 404 if source is None."""
    return require_resource(source, "Source not found")


def require_article(article: T | None) -> T:
    """Raise 404 if article is None."""
    return require_resource(article, "Article not found")
