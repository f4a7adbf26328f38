"""
Base Repository implementation.
Provides common data access patterns with organization isolation.

Cascade jobs carry only an entity id, so lookups accept an optional
organization id: HTTP entry points always pass it, workers may omit it.
"""

from abc import ABC, abstractmethod
from typing import TypeVar, Generic
from sqlalchemy.orm import Session
from sqlalchemy import Select, select

from shared.utils.exceptions import NotFoundError


ModelT = TypeVar("ModelT")


class BaseRepository(ABC, Generic[ModelT]):
    """
    Abstract base repository with common operations.

    Subclasses must implement:
    - model: the SQLAlchemy model class
    - entity_name: human readable name used in NotFoundError
    """

    entity_name: str = "Entity"

    def __init__(self, db: Session):
        self._db = db

    @property
    @abstractmethod
    def model(self) -> type[ModelT]:
        """Return the SQLAlchemy model class."""
        ...

    def _base_query(self) -> Select:
        """Base query; subclasses add eager loading where callers need it."""
        return select(self.model)

    def _scoped(self, query: Select, organization_id: int | None) -> Select:
        if organization_id is not None:
            query = query.where(self.model.organization_id == organization_id)
        return query

    def find_by_id(
        self,
        entity_id: int,
        organization_id: int | None = None,
        include_inactive: bool = True,
    ) -> ModelT | None:
        """
        Find entity by ID.

        Args:
            entity_id: Entity ID
            organization_id: Restrict to one organization when given
            include_inactive: Include soft-deleted entities

        Returns:
            Entity or None
        """
        query = self._scoped(self._base_query(), organization_id).where(
            self.model.id == entity_id
        )
        if not include_inactive and hasattr(self.model, "is_active"):
            query = query.where(self.model.is_active.is_(True))
        return self._db.scalar(query)

    def get_or_raise(
        self,
        entity_id: int,
        organization_id: int | None = None,
        include_inactive: bool = True,
    ) -> ModelT:
        """Like find_by_id, but raises NotFoundError when missing."""
        entity = self.find_by_id(entity_id, organization_id, include_inactive)
        if entity is None:
            raise NotFoundError(
                self.entity_name, entity_id, organization_id=organization_id
            )
        return entity

    def save(self, entity: ModelT) -> ModelT:
        """
        Add entity to the session and flush it so generated ids are available.
        The caller owns the transaction.
        """
        self._db.add(entity)
        self._db.flush()
        return entity
