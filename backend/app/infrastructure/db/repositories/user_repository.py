"""
User Repository

Account lookup, first-login provisioning and role changes.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.domain.subscription import User, UserRole
from app.infrastructure.db.models.user import UserModel
from app.infrastructure.db.repositories.base_repository import BaseRepository
from app.infrastructure.exceptions import (
    DatabaseError,
    EmailAlreadyRegisteredError,
    NotFoundError,
)


logger = logging.getLogger(__name__)


class UserRepository(BaseRepository[UserModel, UserModel]):
    """
    Repository for the users table.

    Returns domain `User` values; ORM rows stay inside the repository.
    """

    def __init__(self, session: AsyncSession):
        super().__init__(UserModel, session)

    async def get_user(self, user_id: UUID) -> Optional[User]:
        model = await self.get_by_id(user_id)
        return self._to_domain(model) if model else None

    async def get_by_email(self, email: str) -> Optional[User]:
        stmt = select(UserModel).where(UserModel.email == email.lower())
        result = await self.session.execute(stmt)
        model = result.scalar_one_or_none()
        return self._to_domain(model) if model else None

    async def get_or_create(
        self,
        user_id: UUID,
        email: str,
        role: UserRole = UserRole.USER,
    ) -> User:
        """
        Get a user or provision the row on first sight.

        A concurrent request provisioning the same user is resolved by
        re-reading after the unique-key violation.

        Args:
            user_id: Identity from the verified token
            email: Email claim from the token
            role: Role for a newly created row

        Returns:
            Existing or newly created user

        Raises:
            EmailAlreadyRegisteredError: The email belongs to another user
        """
        existing = await self.get_user(user_id)
        if existing:
            return existing

        model = UserModel(id=user_id, email=email.lower(), role=role.value)
        self.session.add(model)
        try:
            await self.session.flush()
        except IntegrityError as e:
            await self.session.rollback()
            existing = await self.get_user(user_id)
            if existing:
                return existing
            if await self.get_by_email(email):
                logger.warning(
                    f"Refusing to provision {user_id}: "
                    f"{email.lower()} belongs to another user"
                )
                raise EmailAlreadyRegisteredError(email.lower()) from e
            raise DatabaseError(
                f"Could not provision user {user_id}",
                operation="insert",
                table="users",
                original_error=e,
            ) from e

        logger.info(f"Provisioned user {user_id} with role {role.value}")
        return self._to_domain(model)

    async def update_role(self, user_id: UUID, role: UserRole) -> User:
        """
        Change a user's role.

        Raises:
            NotFoundError: If the user does not exist
        """
        model = await self.get_by_id(user_id)
        if model is None:
            raise NotFoundError(
                f"User {user_id} not found",
                operation="update",
                table="users",
            )

        model.role = role.value
        self.session.add(model)
        await self.session.flush()
        return self._to_domain(model)

    def _to_domain(self, model: UserModel) -> User:
        return User(
            id=model.id,
            email=model.email,
            role=UserRole(model.role),
            created_at=model.created_at,
        )
