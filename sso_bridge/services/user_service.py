from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sso_bridge.models.user import User
from sso_bridge.schemas.auth import LocalUser


class UserService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, user_id: str | UUID) -> Optional[User]:
        if not isinstance(user_id, UUID):
            try:
                user_id = UUID(user_id)
            except (TypeError, ValueError):
                return None
        result = await self.db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def get_by_username(self, username: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.username == username))
        return result.scalar_one_or_none()

    async def revoke_sessions(self, user: User) -> None:
        user.sessions_revoked_at = datetime.now(timezone.utc)
        await self.db.flush()


def is_token_revoked(user: User, issued_at: float | None) -> bool:
    """
    True when a token issued at ``issued_at`` predates the user's last revocation.
    Tokens without an issue time cannot be ordered and count as revoked.

    Compared at full precision, so a login right after a logout sync in the
    same second keeps its new session.
    """
    if user.sessions_revoked_at is None:
        return False
    if issued_at is None:
        return True

    revoked_at = user.sessions_revoked_at
    # SQLite hands back naive datetimes
    if revoked_at.tzinfo is None:
        revoked_at = revoked_at.replace(tzinfo=timezone.utc)
    return issued_at < revoked_at.timestamp()


def to_local_user(user: User) -> LocalUser:
    return LocalUser(
        id=str(user.id),
        email=user.email,
        email_verified=bool(user.email_verified),
        username=user.username,
        name=user.display_name,
        role=user.role or "user",
        avatar_url=user.avatar_url,
        bio=user.bio,
        custom_fields={str(key): str(value) for key, value in (user.custom_fields or {}).items()},
    )
