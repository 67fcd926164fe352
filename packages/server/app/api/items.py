"""
Item endpoints.

GET    /api/items                 Caller's items when authenticated, all items otherwise
GET    /api/items/user/{userId}   A user's items (admin only)
GET    /api/items/{id}            One item
POST   /api/items                 Create an item
PUT    /api/items/{id}            Update an item (owner or admin)
DELETE /api/items/{id}            Delete an item (owner or admin)
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends

from monorepo_shared.schemas.common import APIResponse
from monorepo_shared.schemas.items import Item, ItemCreate, ItemUpdate

from app.core.auth import AuthenticatedUser, get_current_user, get_optional_user, require_admin
from app.core.container import ServiceContainer, get_container
from app.services import items as item_service

router = APIRouter()


@router.get("", response_model=APIResponse[list[Item]], response_model_exclude_none=True)
async def list_items(
    auth: Optional[AuthenticatedUser] = Depends(get_optional_user),
    container: ServiceContainer = Depends(get_container),
):
    items = await item_service.list_items(container, auth)
    return APIResponse(data=items)


@router.get("/user/{user_id}", response_model=APIResponse[list[Item]], response_model_exclude_none=True)
async def list_user_items(
    user_id: str,
    auth: AuthenticatedUser = Depends(require_admin),
    container: ServiceContainer = Depends(get_container),
):
    items = await item_service.list_user_items(container, user_id)
    return APIResponse(data=items)


@router.get("/{item_id}", response_model=APIResponse[Item], response_model_exclude_none=True)
async def get_item(
    item_id: str,
    container: ServiceContainer = Depends(get_container),
):
    item = await item_service.get_item(container, item_id)
    return APIResponse(data=item)


@router.post("", response_model=APIResponse[Item], response_model_exclude_none=True, status_code=201)
async def create_item(
    body: ItemCreate,
    auth: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    item = await item_service.create_item(container, auth, body)
    return APIResponse(data=item, message="Item created successfully")


@router.put("/{item_id}", response_model=APIResponse[Item], response_model_exclude_none=True)
async def update_item(
    item_id: str,
    body: ItemUpdate,
    auth: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    item = await item_service.update_item(container, auth, item_id, body)
    return APIResponse(data=item, message="Item updated successfully")


@router.delete("/{item_id}", response_model=APIResponse[None], response_model_exclude_none=True)
async def delete_item(
    item_id: str,
    auth: AuthenticatedUser = Depends(get_current_user),
    container: ServiceContainer = Depends(get_container),
):
    await item_service.delete_item(container, auth, item_id)
    return APIResponse(message="Item deleted successfully")
