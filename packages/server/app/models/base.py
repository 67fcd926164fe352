"""Base mixins for SQLModel tables."""

from datetime import datetime, timezone

import sqlalchemy as sa
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TypeIdMixin(SQLModel):
    # "<prefix>_<26 chars>", prefix at most 5 chars
    id: str = Field(primary_key=True, max_length=30, nullable=False)


class CreatedAtMixin(SQLModel):
    created_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )


class TimestampMixin(CreatedAtMixin):
    updated_at: datetime = Field(
        default_factory=_utcnow,
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now(), "onupdate": _utcnow},
        sa_type=sa.DateTime(timezone=True),
    )
