"""
Item service: the example user-owned resource.
"""

from __future__ import annotations

from typing import Optional

import structlog

from monorepo_shared.schemas.common import ItemStatus
from monorepo_shared.schemas.items import Item, ItemCreate, ItemUpdate

from app.core import typeid
from app.core.auth import AuthenticatedUser, assert_resource_owner
from app.core.container import ServiceContainer
from app.core.errors import NotFoundError, ValidationError
from app.core.typeid import IdKind
from app.repositories.base import NewItem

log = structlog.get_logger()


async def list_items(container: ServiceContainer, auth: Optional[AuthenticatedUser]) -> list[Item]:
    """The caller's items when authenticated, every item otherwise."""
    items = container.repositories.items
    if auth is not None:
        return await items.find_by_user_id(auth.user_id)
    return await items.find_all()


async def get_item(container: ServiceContainer, item_id: str) -> Item:
    if not typeid.is_valid(IdKind.ITEM, item_id):
        raise ValidationError("Invalid item ID format")
    item = await container.repositories.items.find_by_id(item_id)
    if item is None:
        raise NotFoundError("Item not found")
    return item


async def create_item(container: ServiceContainer, auth: AuthenticatedUser, body: ItemCreate) -> Item:
    if not body.title or not body.title.strip():
        raise ValidationError("Title is required")
    item = await container.repositories.items.create(
        NewItem(
            user_id=auth.user_id,
            title=body.title.strip(),
            description=(body.description or "").strip(),
            status=body.status or ItemStatus.ACTIVE,
        )
    )
    log.info("item.created", item_id=item.id, user_id=auth.user_id)
    return item


async def update_item(
    container: ServiceContainer, auth: AuthenticatedUser, item_id: str, body: ItemUpdate
) -> Item:
    item = await get_item(container, item_id)
    assert_resource_owner(item.user_id, auth)

    fields = body.model_dump(exclude_unset=True, exclude_none=True)
    if "title" in fields:
        fields["title"] = fields["title"].strip()
        if not fields["title"]:
            raise ValidationError("Title cannot be empty")
    if "description" in fields:
        fields["description"] = fields["description"].strip()
    if not fields:
        return item

    updated = await container.repositories.items.update(item_id, **fields)
    if updated is None:
        raise NotFoundError("Item not found")
    return updated


async def delete_item(container: ServiceContainer, auth: AuthenticatedUser, item_id: str) -> None:
    item = await get_item(container, item_id)
    assert_resource_owner(item.user_id, auth)
    await container.repositories.items.delete(item_id)
    log.info("item.deleted", item_id=item_id, by=auth.user_id)


async def list_user_items(container: ServiceContainer, user_id: str) -> list[Item]:
    if not typeid.is_valid(IdKind.USER, user_id):
        raise ValidationError("Invalid user ID format")
    return await container.repositories.items.find_by_user_id(user_id)
