"""Item model."""

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import TimestampMixin, TypeIdMixin


class Item(TypeIdMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "items"
    __table_args__ = (
        sa.CheckConstraint("status IN ('active', 'completed', 'archived')", name="ck_items_status"),
    )

    user_id: str = Field(
        max_length=30,
        nullable=False,
        index=True,
        sa_column_args=[sa.ForeignKey("users.id", ondelete="CASCADE")],
    )
    title: str = Field(max_length=255, nullable=False)
    description: str = Field(default="", sa_type=sa.Text, nullable=False)
    status: str = Field(default="active", max_length=20, nullable=False, index=True)  # active | completed | archived
