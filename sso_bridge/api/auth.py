from fastapi import APIRouter
from pydantic import BaseModel

from sso_bridge.api.deps import SettingsDep
from sso_bridge.schemas.auth import LocalUser
from sso_bridge.utils.auth import CurrentUser

router = APIRouter(prefix="/auth", tags=["Authentication"])


class AuthStatusResponse(BaseModel):
    mode: str
    session_cookie: str


@router.get("/status", response_model=AuthStatusResponse)
async def auth_status(settings: SettingsDep) -> AuthStatusResponse:
    return AuthStatusResponse(mode=settings.get_auth_mode(), session_cookie=settings.session_cookie_name)


@router.get("/session", response_model=LocalUser)
async def get_session(current_user: CurrentUser) -> LocalUser:
    return current_user
