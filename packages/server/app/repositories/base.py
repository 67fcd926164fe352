"""
Repository interfaces.

Adapters must enforce the uniqueness rules themselves and report a losing
write with DuplicateKeyError:

- users.email (stored lowercased)
- oauth_accounts (provider, provider_account_id)
- oauth_accounts (user_id, provider)
"""

from __future__ import annotations

import abc
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from monorepo_shared.schemas.common import ItemStatus, OAuthProvider, UserRole
from monorepo_shared.schemas.items import Item
from monorepo_shared.schemas.users import OAuthAccount, Session, User

USER_UPDATABLE_FIELDS = frozenset({"name", "avatar_url", "role", "email_verified", "password_hash"})
ITEM_UPDATABLE_FIELDS = frozenset({"title", "description", "status"})


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------

@dataclass
class NewUser:
    email: str
    name: str
    password_hash: Optional[str] = None
    role: UserRole = UserRole.USER
    email_verified: bool = False
    avatar_url: Optional[str] = None


@dataclass
class OAuthAccountData:
    provider: OAuthProvider
    provider_account_id: str
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None


@dataclass
class NewSession:
    user_id: str
    expires_at: datetime
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None


@dataclass
class NewItem:
    user_id: str
    title: str
    description: str = ""
    status: ItemStatus = ItemStatus.ACTIVE


def check_fields(fields: dict[str, Any], allowed: frozenset[str]) -> None:
    unknown = set(fields) - allowed
    if unknown:
        raise TypeError(f"Cannot update fields: {', '.join(sorted(unknown))}")


# ---------------------------------------------------------------------------
# Interfaces
# ---------------------------------------------------------------------------

class UserRepository(abc.ABC):
    @abc.abstractmethod
    async def create(self, data: NewUser, *, oauth_account: Optional[OAuthAccountData] = None) -> User:
        """Insert a user, and its first OAuth link when given, as one unit."""

    @abc.abstractmethod
    async def find_by_id(self, user_id: str) -> Optional[User]: ...

    @abc.abstractmethod
    async def find_by_email(self, email: str) -> Optional[User]: ...

    @abc.abstractmethod
    async def find_by_email_with_password_hash(
        self, email: str
    ) -> Optional[tuple[User, Optional[str]]]: ...

    @abc.abstractmethod
    async def has_password(self, user_id: str) -> bool: ...

    @abc.abstractmethod
    async def update(self, user_id: str, **fields: Any) -> Optional[User]: ...

    @abc.abstractmethod
    async def exists_by_email(self, email: str) -> bool: ...


class SessionRepository(abc.ABC):
    @abc.abstractmethod
    async def create(self, data: NewSession) -> Session: ...

    @abc.abstractmethod
    async def find_by_id(self, session_id: str) -> Optional[Session]: ...

    @abc.abstractmethod
    async def find_by_user_id(self, user_id: str) -> list[Session]: ...

    @abc.abstractmethod
    async def delete(self, session_id: str) -> bool: ...

    @abc.abstractmethod
    async def delete_all_by_user_id(self, user_id: str) -> int: ...

    @abc.abstractmethod
    async def delete_expired(self, now: Optional[datetime] = None) -> int:
        """Remove sessions whose expiry is at or before ``now``; return the count."""


class OAuthAccountRepository(abc.ABC):
    @abc.abstractmethod
    async def upsert(self, user_id: str, data: OAuthAccountData) -> OAuthAccount:
        """Insert, or refresh the tokens of, the link for (provider, provider_account_id)."""

    @abc.abstractmethod
    async def find_by_id(self, account_id: str) -> Optional[OAuthAccount]: ...

    @abc.abstractmethod
    async def find_by_provider_and_account_id(
        self, provider: OAuthProvider, provider_account_id: str
    ) -> Optional[OAuthAccount]: ...

    @abc.abstractmethod
    async def find_all_by_user_id(self, user_id: str) -> list[OAuthAccount]: ...

    @abc.abstractmethod
    async def delete(self, account_id: str) -> bool: ...


class ItemRepository(abc.ABC):
    @abc.abstractmethod
    async def create(self, data: NewItem) -> Item: ...

    @abc.abstractmethod
    async def find_by_id(self, item_id: str) -> Optional[Item]: ...

    @abc.abstractmethod
    async def find_by_user_id(self, user_id: str) -> list[Item]: ...

    @abc.abstractmethod
    async def find_all(self) -> list[Item]: ...

    @abc.abstractmethod
    async def update(self, item_id: str, **fields: Any) -> Optional[Item]: ...

    @abc.abstractmethod
    async def delete(self, item_id: str) -> bool: ...


@dataclass
class Repositories:
    users: UserRepository
    sessions: SessionRepository
    oauth_accounts: OAuthAccountRepository
    items: ItemRepository
    close: Optional[Callable[[], Awaitable[None]]] = None

    async def aclose(self) -> None:
        if self.close is not None:
            await self.close()
