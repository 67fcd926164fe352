"""Login session (one per device / refresh-token lineage)."""

from datetime import datetime
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import CreatedAtMixin, TypeIdMixin


class Session(TypeIdMixin, CreatedAtMixin, SQLModel, table=True):
    __tablename__ = "sessions"

    user_id: str = Field(
        max_length=30,
        nullable=False,
        index=True,
        sa_column_args=[sa.ForeignKey("users.id", ondelete="CASCADE")],
    )
    user_agent: Optional[str] = Field(default=None, sa_type=sa.Text)
    ip_address: Optional[str] = Field(default=None, max_length=45)
    expires_at: datetime = Field(nullable=False, index=True, sa_type=sa.DateTime(timezone=True))
