"""
User Database Model

SQLModel table for account identity and role.
"""

from sqlmodel import Field

from app.infrastructure.db.models.base import TimestampMixin, UUIDMixin


class UserModel(UUIDMixin, TimestampMixin, table=True):
    """
    Users table.

    Maps to the 'users' table. Roles are stored as plain strings
    ('user', 'sub_admin', 'super_admin').
    """

    __tablename__ = "users"

    email: str = Field(max_length=255, unique=True, index=True, nullable=False)
    role: str = Field(default="user", max_length=20, nullable=False)
