"""Storage layer: repository interfaces plus in-memory and SQL adapters."""

from .base import (  # noqa: F401
    ItemRepository,
    NewItem,
    NewSession,
    NewUser,
    OAuthAccountData,
    OAuthAccountRepository,
    Repositories,
    SessionRepository,
    UserRepository,
)
