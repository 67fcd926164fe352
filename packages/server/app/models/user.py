"""User model."""

from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, TypeIdMixin


class User(TypeIdMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "users"
    __table_args__ = (
        sa.CheckConstraint("role IN ('admin', 'user', 'moderator')", name="ck_users_role"),
    )

    email: str = Field(max_length=255, unique=True, index=True, nullable=False)  # stored lowercased
    password_hash: Optional[str] = Field(default=None, max_length=60)  # NULL = OAuth-only account
    name: str = Field(max_length=255, nullable=False)
    avatar_url: Optional[str] = Field(default=None, sa_type=sa.Text)
    role: str = Field(default="user", max_length=20, nullable=False, index=True)  # admin | user | moderator
    email_verified: bool = Field(default=False, nullable=False)
