"""
In-memory repositories.

Each entity lives in a dict keyed by id, with secondary indexes for the
unique keys. All four repositories share one store so that cascades and the
user-plus-first-link insert stay consistent. Methods never await between a
check and the write that depends on it, so on a single event loop every
call is atomic.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from monorepo_shared.schemas.common import OAuthProvider
from monorepo_shared.schemas.items import Item
from monorepo_shared.schemas.users import OAuthAccount, Session, User
from monorepo_shared.utils import normalize_email

from app.core import typeid
from app.core.errors import DuplicateKeyError
from app.core.typeid import IdKind

from .base import (
    ITEM_UPDATABLE_FIELDS,
    USER_UPDATABLE_FIELDS,
    ItemRepository,
    NewItem,
    NewSession,
    NewUser,
    OAuthAccountData,
    OAuthAccountRepository,
    Repositories,
    SessionRepository,
    UserRepository,
    check_fields,
)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class MemoryStore:
    users: dict[str, User] = field(default_factory=dict)
    password_hashes: dict[str, Optional[str]] = field(default_factory=dict)
    sessions: dict[str, Session] = field(default_factory=dict)
    oauth_accounts: dict[str, OAuthAccount] = field(default_factory=dict)
    items: dict[str, Item] = field(default_factory=dict)

    # email -> user id
    email_index: dict[str, str] = field(default_factory=dict)
    # (provider, provider_account_id) -> oauth account id
    provider_index: dict[tuple[str, str], str] = field(default_factory=dict)
    # (user_id, provider) -> oauth account id
    user_provider_index: dict[tuple[str, str], str] = field(default_factory=dict)


class MemoryUserRepository(UserRepository):
    def __init__(self, store: MemoryStore):
        self._store = store

    async def create(self, data: NewUser, *, oauth_account: Optional[OAuthAccountData] = None) -> User:
        email = normalize_email(data.email)
        if email in self._store.email_index:
            raise DuplicateKeyError("email")
        if oauth_account is not None:
            key = (OAuthProvider(oauth_account.provider).value, oauth_account.provider_account_id)
            if key in self._store.provider_index:
                raise DuplicateKeyError("provider_account_id")

        now = _now()
        user = User(
            id=typeid.generate(IdKind.USER),
            email=email,
            name=data.name,
            role=data.role,
            email_verified=data.email_verified,
            avatar_url=data.avatar_url,
            created_at=now,
            updated_at=now,
        )
        self._store.users[user.id] = user
        self._store.password_hashes[user.id] = data.password_hash
        self._store.email_index[email] = user.id
        if oauth_account is not None:
            _insert_oauth_account(self._store, user.id, oauth_account)
        return user

    async def find_by_id(self, user_id: str) -> Optional[User]:
        return self._store.users.get(user_id)

    async def find_by_email(self, email: str) -> Optional[User]:
        user_id = self._store.email_index.get(normalize_email(email))
        return self._store.users.get(user_id) if user_id else None

    async def find_by_email_with_password_hash(self, email: str) -> Optional[tuple[User, Optional[str]]]:
        user = await self.find_by_email(email)
        if user is None:
            return None
        return user, self._store.password_hashes.get(user.id)

    async def has_password(self, user_id: str) -> bool:
        return bool(self._store.password_hashes.get(user_id))

    async def update(self, user_id: str, **fields: Any) -> Optional[User]:
        check_fields(fields, USER_UPDATABLE_FIELDS)
        user = self._store.users.get(user_id)
        if user is None:
            return None
        if "password_hash" in fields:
            self._store.password_hashes[user_id] = fields.pop("password_hash")
        user = User.model_validate({**user.model_dump(), **fields, "updated_at": _now()})
        self._store.users[user_id] = user
        return user

    async def exists_by_email(self, email: str) -> bool:
        return normalize_email(email) in self._store.email_index


class MemorySessionRepository(SessionRepository):
    def __init__(self, store: MemoryStore):
        self._store = store

    async def create(self, data: NewSession) -> Session:
        session = Session(
            id=typeid.generate(IdKind.SESSION),
            user_id=data.user_id,
            user_agent=data.user_agent,
            ip_address=data.ip_address,
            expires_at=data.expires_at,
            created_at=_now(),
        )
        self._store.sessions[session.id] = session
        return session

    async def find_by_id(self, session_id: str) -> Optional[Session]:
        return self._store.sessions.get(session_id)

    async def find_by_user_id(self, user_id: str) -> list[Session]:
        return sorted(
            (s for s in self._store.sessions.values() if s.user_id == user_id),
            key=lambda s: s.id,
        )

    async def delete(self, session_id: str) -> bool:
        return self._store.sessions.pop(session_id, None) is not None

    async def delete_all_by_user_id(self, user_id: str) -> int:
        doomed = [sid for sid, s in self._store.sessions.items() if s.user_id == user_id]
        for sid in doomed:
            del self._store.sessions[sid]
        return len(doomed)

    async def delete_expired(self, now: Optional[datetime] = None) -> int:
        now = now or _now()
        doomed = [sid for sid, s in self._store.sessions.items() if s.expires_at <= now]
        for sid in doomed:
            del self._store.sessions[sid]
        return len(doomed)


def _insert_oauth_account(store: MemoryStore, user_id: str, data: OAuthAccountData) -> OAuthAccount:
    provider = OAuthProvider(data.provider)
    key = (provider.value, data.provider_account_id)
    user_key = (user_id, provider.value)
    if key in store.provider_index:
        raise DuplicateKeyError("provider_account_id")
    if user_key in store.user_provider_index:
        raise DuplicateKeyError("user_id_provider", f"User already has a linked {provider.value} account")

    now = _now()
    account = OAuthAccount(
        id=typeid.generate(IdKind.OAUTH_ACCOUNT),
        user_id=user_id,
        provider=provider,
        provider_account_id=data.provider_account_id,
        access_token=data.access_token,
        refresh_token=data.refresh_token,
        expires_at=data.expires_at,
        created_at=now,
        updated_at=now,
    )
    store.oauth_accounts[account.id] = account
    store.provider_index[key] = account.id
    store.user_provider_index[user_key] = account.id
    return account


class MemoryOAuthAccountRepository(OAuthAccountRepository):
    def __init__(self, store: MemoryStore):
        self._store = store

    async def upsert(self, user_id: str, data: OAuthAccountData) -> OAuthAccount:
        key = (OAuthProvider(data.provider).value, data.provider_account_id)
        existing_id = self._store.provider_index.get(key)
        if existing_id is None:
            return _insert_oauth_account(self._store, user_id, data)

        account = self._store.oauth_accounts[existing_id].model_copy(update={
            "access_token": data.access_token,
            "refresh_token": data.refresh_token,
            "expires_at": data.expires_at,
            "updated_at": _now(),
        })
        self._store.oauth_accounts[existing_id] = account
        return account

    async def find_by_id(self, account_id: str) -> Optional[OAuthAccount]:
        return self._store.oauth_accounts.get(account_id)

    async def find_by_provider_and_account_id(
        self, provider: OAuthProvider, provider_account_id: str
    ) -> Optional[OAuthAccount]:
        account_id = self._store.provider_index.get((OAuthProvider(provider).value, provider_account_id))
        return self._store.oauth_accounts.get(account_id) if account_id else None

    async def find_all_by_user_id(self, user_id: str) -> list[OAuthAccount]:
        return sorted(
            (a for a in self._store.oauth_accounts.values() if a.user_id == user_id),
            key=lambda a: a.id,
        )

    async def delete(self, account_id: str) -> bool:
        account = self._store.oauth_accounts.pop(account_id, None)
        if account is None:
            return False
        self._store.provider_index.pop((account.provider.value, account.provider_account_id), None)
        self._store.user_provider_index.pop((account.user_id, account.provider.value), None)
        return True


class MemoryItemRepository(ItemRepository):
    def __init__(self, store: MemoryStore):
        self._store = store

    async def create(self, data: NewItem) -> Item:
        now = _now()
        item = Item(
            id=typeid.generate(IdKind.ITEM),
            user_id=data.user_id,
            title=data.title,
            description=data.description,
            status=data.status,
            created_at=now,
            updated_at=now,
        )
        self._store.items[item.id] = item
        return item

    async def find_by_id(self, item_id: str) -> Optional[Item]:
        return self._store.items.get(item_id)

    async def find_by_user_id(self, user_id: str) -> list[Item]:
        return [i for i in await self.find_all() if i.user_id == user_id]

    async def find_all(self) -> list[Item]:
        return sorted(self._store.items.values(), key=lambda i: i.id)

    async def update(self, item_id: str, **fields: Any) -> Optional[Item]:
        check_fields(fields, ITEM_UPDATABLE_FIELDS)
        item = self._store.items.get(item_id)
        if item is None:
            return None
        item = Item.model_validate({**item.model_dump(), **fields, "updated_at": _now()})
        self._store.items[item_id] = item
        return item

    async def delete(self, item_id: str) -> bool:
        return self._store.items.pop(item_id, None) is not None


def create_memory_repositories(store: Optional[MemoryStore] = None) -> Repositories:
    store = store or MemoryStore()
    return Repositories(
        users=MemoryUserRepository(store),
        sessions=MemorySessionRepository(store),
        oauth_accounts=MemoryOAuthAccountRepository(store),
        items=MemoryItemRepository(store),
    )
