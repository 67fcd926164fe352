"""Linked OAuth provider account."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, TypeIdMixin


class OAuthAccount(TypeIdMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "oauth_accounts"
    __table_args__ = (
        sa.UniqueConstraint("provider", "provider_account_id", name="uq_oauth_provider_account"),
        sa.UniqueConstraint("user_id", "provider", name="uq_oauth_user_provider"),
        sa.CheckConstraint("provider IN ('google', 'facebook', 'twitter')", name="ck_oauth_accounts_provider"),
    )

    user_id: str = Field(
        max_length=30,
        nullable=False,
        index=True,
        sa_column_args=[sa.ForeignKey("users.id", ondelete="CASCADE")],
    )
    provider: str = Field(max_length=20, nullable=False)  # google | facebook | twitter
    provider_account_id: str = Field(max_length=255, nullable=False)
    access_token: Optional[str] = Field(default=None, sa_type=sa.Text)
    refresh_token: Optional[str] = Field(default=None, sa_type=sa.Text)
    expires_at: Optional[datetime] = Field(default=None, sa_type=sa.DateTime(timezone=True))
