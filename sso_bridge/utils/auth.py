import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated, Optional, Protocol

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from sso_bridge.config import Settings, get_settings
from sso_bridge.database import get_db
from sso_bridge.models.user import User
from sso_bridge.schemas.auth import LocalUser, TokenPayload
from sso_bridge.services.user_service import UserService, is_token_revoked, to_local_user

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme
bearer_scheme = HTTPBearer(auto_error=False)

# Forward auth header names (TinyAuth, Authelia, Authentik, etc.)
REMOTE_USER_HEADER = "Remote-User"
REMOTE_EMAIL_HEADER = "Remote-Email"


def create_access_token(
    user_id: str,
    expires_delta: timedelta | None = None,
    secret_key: str | None = None,
) -> str:
    now = datetime.now(timezone.utc)
    if expires_delta:
        expire = now + expires_delta
    else:
        expire = now + timedelta(days=7)
    to_encode = {
        "sub": user_id,
        "exp": expire,
        # Fractional seconds, so revocation can be ordered within a second
        "iat": now.timestamp(),
    }
    return jwt.encode(to_encode, secret_key or get_settings().secret_key, algorithm="HS256")


def decode_token(token: str, secret_key: str | None = None) -> TokenPayload:
    """Decode and validate a session JWT signed with SECRET_KEY."""
    try:
        payload = jwt.decode(
            token,
            secret_key or get_settings().secret_key,
            algorithms=["HS256"],
            options={"verify_exp": True},
        )
        return TokenPayload(**payload)
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )


class SessionProvider(Protocol):
    async def get_current_user(self) -> Optional[LocalUser]: ...

    async def invalidate(self, external_id: str) -> bool: ...


class DatabaseSessionProvider:
    """
    Resolves the local user behind the current request.

    Supports two authentication methods:
    1. Forward auth headers (TinyAuth, Authelia, etc.) - Remote-User header
    2. JWT session token, from the Authorization header or the session cookie

    Forward auth headers take precedence when AUTH_TRUST_HEADER is enabled.
    """

    def __init__(
        self,
        db: AsyncSession,
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = None,
        settings: Optional[Settings] = None,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.user_service = UserService(db)
        self.request = request
        self.credentials = credentials

    def _session_token(self) -> Optional[str]:
        if self.credentials:
            return self.credentials.credentials
        return self.request.cookies.get(self.settings.session_cookie_name)

    async def _from_forward_auth(self) -> Optional[User]:
        remote_user = self.request.headers.get(REMOTE_USER_HEADER)
        remote_email = self.request.headers.get(REMOTE_EMAIL_HEADER)
        if not remote_user:
            return None

        user = await self.user_service.get_by_username(remote_user)
        if not user and remote_email:
            user = await self.user_service.get_by_email(remote_email)
        return user

    async def _from_token(self) -> Optional[User]:
        token = self._session_token()
        if not token:
            return None

        try:
            token_data = decode_token(token, self.settings.secret_key)
        except HTTPException:
            logger.info("Ignoring invalid session token on %s", self.request.url.path)
            return None

        user = await self.user_service.get_by_id(token_data.sub)
        if user and is_token_revoked(user, token_data.iat):
            logger.info("Session token for user %s was revoked", user.id)
            return None
        return user

    async def get_current_user(self) -> Optional[LocalUser]:
        user = None
        if self.settings.auth_trust_header:
            user = await self._from_forward_auth()
        if not user:
            user = await self._from_token()

        if not user or not user.is_active:
            return None
        return to_local_user(user)

    async def invalidate(self, external_id: str) -> bool:
        user = await self.user_service.get_by_id(external_id)
        if not user:
            return False
        await self.user_service.revoke_sessions(user)
        await self.db.commit()
        return True


async def get_session_provider(
    request: Request,
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(bearer_scheme)],
    db: Annotated[AsyncSession, Depends(get_db)],
) -> SessionProvider:
    return DatabaseSessionProvider(db, request, credentials, request.app.state.settings)


async def get_current_user(
    provider: Annotated[SessionProvider, Depends(get_session_provider)],
) -> LocalUser:
    """Get current authenticated user."""
    user = await provider.get_current_user()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


# Type aliases for dependency injection
CurrentUser = Annotated[LocalUser, Depends(get_current_user)]
CurrentSessionProvider = Annotated[SessionProvider, Depends(get_session_provider)]
