"""
Base Repository for CV Transformer

Generic async repository over a request-scoped session.
Concrete repositories extend it with their own queries.
"""

from typing import TypeVar, Generic, Optional, Type
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel


# Type variables for generic repository
ModelType = TypeVar("ModelType", bound=SQLModel)
CreateSchemaType = TypeVar("CreateSchemaType", bound=SQLModel)


class BaseRepository(Generic[ModelType, CreateSchemaType]):
    """
    Generic async repository with read and create operations.

    Writes are flushed, not committed; the unit of work that owns the
    session decides when to commit.

    Args:
        model: The SQLModel class to operate on
        session: Async database session
    """

    def __init__(self, model: Type[ModelType], session: AsyncSession):
        self._model = model
        self._session = session

    @property
    def session(self) -> AsyncSession:
        """Get the current session."""
        return self._session

    async def get_by_id(self, id: UUID) -> Optional[ModelType]:
        """
        Get a single record by its primary key.

        Args:
            id: UUID primary key

        Returns:
            Model instance or None if not found
        """
        return await self._session.get(self._model, id)

    async def exists(self, id: UUID) -> bool:
        """Check if a record exists."""
        result = await self.get_by_id(id)
        return result is not None

    async def create(self, data: CreateSchemaType) -> ModelType:
        """
        Create a new record.

        Args:
            data: Create schema with field values

        Returns:
            Created model instance
        """
        db_obj = self._model.model_validate(data)
        self._session.add(db_obj)
        await self._session.flush()
        await self._session.refresh(db_obj)
        return db_obj
