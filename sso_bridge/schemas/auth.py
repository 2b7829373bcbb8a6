from pydantic import BaseModel, ConfigDict, Field


class TokenPayload(BaseModel):
    sub: str  # Local user id
    exp: int  # Expiration timestamp
    iat: float | None = None  # Issued at timestamp, sub-second precision


class LocalUser(BaseModel):
    """The authenticated user as seen by the SSO bridge."""

    model_config = ConfigDict(frozen=True)

    id: str
    email: str
    email_verified: bool
    username: str | None = None
    name: str | None = None
    role: str = "user"
    avatar_url: str | None = None
    bio: str | None = None
    # Sent to the forum as custom.<key>
    custom_fields: dict[str, str] = Field(default_factory=dict)
