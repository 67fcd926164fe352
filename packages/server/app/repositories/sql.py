"""
SQL repositories on SQLModel / SQLAlchemy asyncio.

Uniqueness is enforced by the schema; IntegrityErrors from unique
constraints are reported as DuplicateKeyError. Each call is its own
transaction.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional, TypeVar

from pydantic import BaseModel
from sqlalchemy import delete as sa_delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlmodel import SQLModel, select

from monorepo_shared.schemas.common import OAuthProvider
from monorepo_shared.schemas.items import Item
from monorepo_shared.schemas.users import OAuthAccount, Session, User
from monorepo_shared.utils import normalize_email

from app import models
from app.core import typeid
from app.core.config import Settings
from app.core.database import build_engine, build_session_factory, session_scope
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

SchemaT = TypeVar("SchemaT", bound=BaseModel)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: Any) -> Any:
    # SQLite hands back naive datetimes; everything is stored as UTC
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_schema(schema: type[SchemaT], row: SQLModel) -> SchemaT:
    return schema.model_validate({k: _aware(v) for k, v in row.model_dump().items()})


def _translate_integrity_error(exc: IntegrityError) -> Exception:
    detail = str(exc.orig)
    if "unique" not in detail.lower() and "duplicate" not in detail.lower():
        return exc
    if "email" in detail:
        return DuplicateKeyError("email")
    if "provider_account_id" in detail or "uq_oauth_provider_account" in detail:
        return DuplicateKeyError("provider_account_id")
    if "uq_oauth_user_provider" in detail or "oauth_accounts.user_id" in detail:
        return DuplicateKeyError("user_id_provider", "User already has a linked account for this provider")
    return DuplicateKeyError("unknown")


class _SqlRepository:
    def __init__(self, factory: async_sessionmaker[AsyncSession]):
        self._factory = factory

    async def _add(self, *rows: SQLModel) -> None:
        try:
            async with session_scope(self._factory) as session:
                # Flushed one at a time so parents land before the rows that reference them
                for row in rows:
                    session.add(row)
                    await session.flush()
        except IntegrityError as exc:
            translated = _translate_integrity_error(exc)
            if translated is exc:
                raise
            raise translated from exc


class SqlUserRepository(_SqlRepository, UserRepository):
    async def create(self, data: NewUser, *, oauth_account: Optional[OAuthAccountData] = None) -> User:
        row = models.User(
            id=typeid.generate(IdKind.USER),
            email=normalize_email(data.email),
            name=data.name,
            password_hash=data.password_hash,
            role=getattr(data.role, "value", data.role),
            email_verified=data.email_verified,
            avatar_url=data.avatar_url,
        )
        rows: list[SQLModel] = [row]
        if oauth_account is not None:
            rows.append(_new_oauth_row(row.id, oauth_account))
        await self._add(*rows)
        return _to_schema(User, row)

    async def _get(self, session: AsyncSession, **criteria: Any) -> Optional[models.User]:
        stmt = select(models.User)
        for column, value in criteria.items():
            stmt = stmt.where(getattr(models.User, column) == value)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def find_by_id(self, user_id: str) -> Optional[User]:
        async with self._factory() as session:
            row = await self._get(session, id=user_id)
        return _to_schema(User, row) if row else None

    async def find_by_email(self, email: str) -> Optional[User]:
        async with self._factory() as session:
            row = await self._get(session, email=normalize_email(email))
        return _to_schema(User, row) if row else None

    async def find_by_email_with_password_hash(self, email: str) -> Optional[tuple[User, Optional[str]]]:
        async with self._factory() as session:
            row = await self._get(session, email=normalize_email(email))
        if row is None:
            return None
        return _to_schema(User, row), row.password_hash

    async def has_password(self, user_id: str) -> bool:
        async with self._factory() as session:
            row = await self._get(session, id=user_id)
        return bool(row and row.password_hash)

    async def update(self, user_id: str, **fields: Any) -> Optional[User]:
        check_fields(fields, USER_UPDATABLE_FIELDS)
        async with session_scope(self._factory) as session:
            row = await self._get(session, id=user_id)
            if row is None:
                return None
            for key, value in fields.items():
                setattr(row, key, getattr(value, "value", value))
            row.updated_at = _now()
            session.add(row)
            await session.flush()
            return _to_schema(User, row)

    async def exists_by_email(self, email: str) -> bool:
        return await self.find_by_email(email) is not None


class SqlSessionRepository(_SqlRepository, SessionRepository):
    async def create(self, data: NewSession) -> Session:
        row = models.Session(
            id=typeid.generate(IdKind.SESSION),
            user_id=data.user_id,
            user_agent=data.user_agent,
            ip_address=data.ip_address,
            expires_at=data.expires_at,
        )
        await self._add(row)
        return _to_schema(Session, row)

    async def find_by_id(self, session_id: str) -> Optional[Session]:
        async with self._factory() as session:
            row = await session.get(models.Session, session_id)
        return _to_schema(Session, row) if row else None

    async def find_by_user_id(self, user_id: str) -> list[Session]:
        async with self._factory() as session:
            result = await session.execute(
                select(models.Session)
                .where(models.Session.user_id == user_id)
                .order_by(models.Session.id)
            )
            rows = result.scalars().all()
        return [_to_schema(Session, r) for r in rows]

    async def _delete_where(self, *conditions: Any) -> int:
        async with session_scope(self._factory) as session:
            result = await session.execute(sa_delete(models.Session).where(*conditions))
            return result.rowcount or 0

    async def delete(self, session_id: str) -> bool:
        return await self._delete_where(models.Session.id == session_id) > 0

    async def delete_all_by_user_id(self, user_id: str) -> int:
        return await self._delete_where(models.Session.user_id == user_id)

    async def delete_expired(self, now: Optional[datetime] = None) -> int:
        return await self._delete_where(models.Session.expires_at <= (now or _now()))


def _new_oauth_row(user_id: str, data: OAuthAccountData) -> models.OAuthAccount:
    return models.OAuthAccount(
        id=typeid.generate(IdKind.OAUTH_ACCOUNT),
        user_id=user_id,
        provider=OAuthProvider(data.provider).value,
        provider_account_id=data.provider_account_id,
        access_token=data.access_token,
        refresh_token=data.refresh_token,
        expires_at=data.expires_at,
    )


class SqlOAuthAccountRepository(_SqlRepository, OAuthAccountRepository):
    async def upsert(self, user_id: str, data: OAuthAccountData) -> OAuthAccount:
        try:
            async with session_scope(self._factory) as session:
                result = await session.execute(
                    select(models.OAuthAccount).where(
                        models.OAuthAccount.provider == OAuthProvider(data.provider).value,
                        models.OAuthAccount.provider_account_id == data.provider_account_id,
                    )
                )
                row = result.scalar_one_or_none()
                if row is None:
                    row = _new_oauth_row(user_id, data)
                else:
                    row.access_token = data.access_token
                    row.refresh_token = data.refresh_token
                    row.expires_at = data.expires_at
                    row.updated_at = _now()
                session.add(row)
                await session.flush()
                return _to_schema(OAuthAccount, row)
        except IntegrityError as exc:
            translated = _translate_integrity_error(exc)
            if translated is exc:
                raise
            raise translated from exc

    async def find_by_id(self, account_id: str) -> Optional[OAuthAccount]:
        async with self._factory() as session:
            row = await session.get(models.OAuthAccount, account_id)
        return _to_schema(OAuthAccount, row) if row else None

    async def find_by_provider_and_account_id(
        self, provider: OAuthProvider, provider_account_id: str
    ) -> Optional[OAuthAccount]:
        async with self._factory() as session:
            result = await session.execute(
                select(models.OAuthAccount).where(
                    models.OAuthAccount.provider == OAuthProvider(provider).value,
                    models.OAuthAccount.provider_account_id == provider_account_id,
                )
            )
            row = result.scalar_one_or_none()
        return _to_schema(OAuthAccount, row) if row else None

    async def find_all_by_user_id(self, user_id: str) -> list[OAuthAccount]:
        async with self._factory() as session:
            result = await session.execute(
                select(models.OAuthAccount)
                .where(models.OAuthAccount.user_id == user_id)
                .order_by(models.OAuthAccount.id)
            )
            rows = result.scalars().all()
        return [_to_schema(OAuthAccount, r) for r in rows]

    async def delete(self, account_id: str) -> bool:
        async with session_scope(self._factory) as session:
            result = await session.execute(
                sa_delete(models.OAuthAccount).where(models.OAuthAccount.id == account_id)
            )
            return (result.rowcount or 0) > 0


class SqlItemRepository(_SqlRepository, ItemRepository):
    async def create(self, data: NewItem) -> Item:
        row = models.Item(
            id=typeid.generate(IdKind.ITEM),
            user_id=data.user_id,
            title=data.title,
            description=data.description,
            status=getattr(data.status, "value", data.status),
        )
        await self._add(row)
        return _to_schema(Item, row)

    async def find_by_id(self, item_id: str) -> Optional[Item]:
        async with self._factory() as session:
            row = await session.get(models.Item, item_id)
        return _to_schema(Item, row) if row else None

    async def _list(self, *conditions: Any) -> list[Item]:
        async with self._factory() as session:
            result = await session.execute(
                select(models.Item).where(*conditions).order_by(models.Item.id)
            )
            rows = result.scalars().all()
        return [_to_schema(Item, r) for r in rows]

    async def find_by_user_id(self, user_id: str) -> list[Item]:
        return await self._list(models.Item.user_id == user_id)

    async def find_all(self) -> list[Item]:
        return await self._list()

    async def update(self, item_id: str, **fields: Any) -> Optional[Item]:
        check_fields(fields, ITEM_UPDATABLE_FIELDS)
        async with session_scope(self._factory) as session:
            row = await session.get(models.Item, item_id)
            if row is None:
                return None
            for key, value in fields.items():
                setattr(row, key, getattr(value, "value", value))
            row.updated_at = _now()
            session.add(row)
            await session.flush()
            return _to_schema(Item, row)

    async def delete(self, item_id: str) -> bool:
        async with session_scope(self._factory) as session:
            result = await session.execute(sa_delete(models.Item).where(models.Item.id == item_id))
            return (result.rowcount or 0) > 0


def create_sql_repositories(engine: AsyncEngine) -> Repositories:
    factory = build_session_factory(engine)
    return Repositories(
        users=SqlUserRepository(factory),
        sessions=SqlSessionRepository(factory),
        oauth_accounts=SqlOAuthAccountRepository(factory),
        items=SqlItemRepository(factory),
        close=engine.dispose,
    )


def create_sql_repositories_from_settings(settings: Settings) -> Repositories:
    return create_sql_repositories(build_engine(settings))
