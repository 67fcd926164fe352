from enum import Enum
from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

T = TypeVar("T")


class CamelModel(BaseModel):
    """Base model serialised with camelCase keys; accepts either case on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"
    MODERATOR = "moderator"


class OAuthProvider(str, Enum):
    GOOGLE = "google"
    FACEBOOK = "facebook"
    TWITTER = "twitter"


class ItemStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


class APIResponse(CamelModel, Generic[T]):
    """Standard response envelope: {success, data?, error?, message?}."""
    success: bool = True
    data: Optional[T] = None
    error: Optional[str] = None
    message: Optional[str] = None
