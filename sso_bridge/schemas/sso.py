from pydantic import BaseModel, ConfigDict, Field


class SSOPayload(BaseModel):
    """Validated inbound payload from the forum."""

    model_config = ConfigDict(frozen=True)

    nonce: str
    return_url: str
    extras: list[tuple[str, str]] = Field(default_factory=list)


class IdentityAttributes(BaseModel):
    model_config = ConfigDict(frozen=True)

    external_id: str
    email: str
    username: str
    name: str
    admin: bool = False
    moderator: bool = False
    avatar_url: str | None = None
    bio: str | None = None
    suppress_welcome_message: bool | None = None
    custom_fields: dict[str, str] = Field(default_factory=dict)


class LogoutSyncRequest(BaseModel):
    action: str = "logout"
    external_id: str = Field(..., min_length=1, max_length=255)


class LogoutSyncResponse(BaseModel):
    success: bool
    invalidated: bool


class ErrorResponse(BaseModel):
    error: str
    code: str


class SSOStatusResponse(BaseModel):
    configured: bool
    forum_base_url: str
    connect_name: str
    replay_protection: bool
    unauthenticated_action: str
