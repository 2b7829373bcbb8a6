import hmac
import logging
from typing import Annotated, Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Header, Query, Request, status
from fastapi.responses import RedirectResponse

from sso_bridge.api.deps import SSOConfigDep, SSOServiceDep
from sso_bridge.errors import MalformedPayloadError, UnauthenticatedUserError, UnsupportedActionError
from sso_bridge.schemas.sso import ErrorResponse, LogoutSyncRequest, LogoutSyncResponse, SSOStatusResponse
from sso_bridge.utils.auth import CurrentSessionProvider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sso", tags=["SSO"])

LOGOUT_SECRET_HEADER = "X-SSO-Secret"

ERROR_RESPONSES = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_401_UNAUTHORIZED: {"model": ErrorResponse},
}


def _login_redirect_url(login_url: str, resume_url: str) -> str:
    separator = "&" if "?" in login_url else "?"
    return f"{login_url}{separator}{urlencode({'return_url': resume_url})}"


@router.get(
    "",
    status_code=status.HTTP_302_FOUND,
    response_class=RedirectResponse,
    responses=ERROR_RESPONSES,
)
async def sso_login(
    request: Request,
    service: SSOServiceDep,
    provider: CurrentSessionProvider,
    sso: Annotated[Optional[str], Query()] = None,
    sig: Annotated[Optional[str], Query()] = None,
) -> RedirectResponse:
    """
    Login handoff from the forum.

    Anonymous visitors are either sent to the login page with this URL as the
    resume target, or refused with 401, depending on SSO_UNAUTHENTICATED_ACTION.
    """
    payload = service.validate(sso, sig)

    user = await provider.get_current_user()
    if user is None:
        if service.config.unauthenticated_action == "redirect":
            logger.info("SSO request without a session, sending visitor to login")
            return RedirectResponse(
                _login_redirect_url(service.config.login_url, str(request.url)),
                status_code=status.HTTP_302_FOUND,
            )
        raise UnauthenticatedUserError("no authenticated user for SSO handoff")

    redirect_url = await service.complete(payload, user)
    return RedirectResponse(redirect_url, status_code=status.HTTP_302_FOUND)


@router.post("", response_model=LogoutSyncResponse, responses=ERROR_RESPONSES)
async def sso_logout_sync(
    request: Request,
    config: SSOConfigDep,
    provider: CurrentSessionProvider,
    x_sso_secret: Annotated[Optional[str], Header(alias=LOGOUT_SECRET_HEADER)] = None,
) -> LogoutSyncResponse:
    """Forum-to-service logout sync. Authenticated by shared secret, not by user session."""
    if not x_sso_secret or not hmac.compare_digest(
        x_sso_secret.encode("utf-8"), config.logout_secret
    ):
        raise UnauthenticatedUserError("logout sync caller presented no valid secret")

    try:
        body = LogoutSyncRequest.model_validate(await request.json())
    except ValueError:
        raise MalformedPayloadError("logout sync body is not a valid request") from None

    if body.action != "logout":
        raise UnsupportedActionError(f"logout sync action {body.action!r}")

    invalidated = await provider.invalidate(body.external_id)
    logger.info("Logout sync for %s (invalidated=%s)", body.external_id, invalidated)
    return LogoutSyncResponse(success=True, invalidated=invalidated)


@router.get("/status", response_model=SSOStatusResponse)
async def sso_status(config: SSOConfigDep) -> SSOStatusResponse:
    return SSOStatusResponse(
        configured=True,
        forum_base_url=config.forum_base_url,
        connect_name=config.connect_name,
        replay_protection=config.replay_protection,
        unauthenticated_action=config.unauthenticated_action,
    )
