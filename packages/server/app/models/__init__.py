# SQLModel definitions, imported here to ensure metadata is populated for Alembic.
from .base import CreatedAtMixin, TimestampMixin, TypeIdMixin  # noqa: F401
from .user import User  # noqa: F401
from .oauth_account import OAuthAccount  # noqa: F401
from .session import Session  # noqa: F401
from .item import Item  # noqa: F401
