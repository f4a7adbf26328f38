"""
Centralized exceptions for consistent error handling.

The same classes are raised from HTTP handlers and from queue jobs: the API
turns them into responses, while the worker records them as job failures
and lets the retry policy decide what happens next.

Usage:
    from shared.utils.exceptions import NotFoundError, ValidationError

    raise NotFoundError("Recipe", recipe_id)
    raise ValidationError("Yield quantity must be greater than zero")
"""

from fastapi import HTTPException, status
from typing import Any

from shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All custom exceptions should inherit from this class
    to ensure consistent logging and response format.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, status_code=status_code, **log_context)

        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def __str__(self) -> str:
        return self.detail


# =============================================================================
# 404 Not Found Errors
# =============================================================================


class NotFoundError(AppException):
    """
    Entity not found error (404).

    Usage:
        raise NotFoundError("Ingredient", 123)
        raise NotFoundError("Recipe", recipe_id, organization_id=organization_id)
    """

    def __init__(self, entity: str, entity_id: int | str | None = None, **log_context: Any):
        if entity_id is not None:
            detail = f"{entity} with ID {entity_id} not found"
        else:
            detail = f"{entity} not found"

        self.entity = entity
        self.entity_id = entity_id

        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            log_level="warning",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )


class JobNotFoundError(NotFoundError):
    """Queue job not found (expired, removed or never created)."""

    def __init__(self, queue_name: str, job_id: str, **log_context: Any):
        super().__init__("Job", job_id, queue=queue_name, **log_context)


# =============================================================================
# 400 Bad Request Errors
# =============================================================================


class ValidationError(AppException):
    """
    Input validation error (400).

    Usage:
        raise ValidationError("A recipe needs at least one ingredient")
        raise ValidationError("Invalid quantity", field="quantity", value="-1")
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class InvalidJobPayloadError(ValidationError):
    """A queue job arrived without the identifier its stage needs."""

    def __init__(self, job_name: str, field: str, **log_context: Any):
        super().__init__(
            f"{job_name} job requires '{field}'",
            job_name=job_name,
            field=field,
            **log_context,
        )


# =============================================================================
# 409 Conflict Errors
# =============================================================================


class ConflictError(AppException):
    """
    Resource conflict error (409).

    Usage:
        raise ConflictError("Recipe 'Dough' already exists")
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class DuplicateEntityError(ConflictError):
    """Entity with the same unique name already exists in the organization."""

    def __init__(self, entity: str, identifier: str, **log_context: Any):
        super().__init__(
            f"{entity} '{identifier}' already exists",
            entity=entity,
            identifier=identifier,
            **log_context,
        )
