"""Item schemas: the example user-owned resource."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from .common import CamelModel, ItemStatus


class Item(CamelModel):
    id: str
    user_id: str
    title: str
    description: str = ""
    status: ItemStatus = ItemStatus.ACTIVE
    created_at: datetime
    updated_at: datetime


class ItemCreate(CamelModel):
    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    status: Optional[ItemStatus] = None


class ItemUpdate(CamelModel):
    title: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = None
    status: Optional[ItemStatus] = None
