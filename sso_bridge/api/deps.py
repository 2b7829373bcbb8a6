from typing import Annotated

from fastapi import Depends, Request

from sso_bridge.config import Settings, SSOConfig
from sso_bridge.services.sso_service import SSOService


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_sso_service(request: Request) -> SSOService:
    return request.app.state.sso_service


def get_sso_config(service: Annotated[SSOService, Depends(get_sso_service)]) -> SSOConfig:
    return service.config


SettingsDep = Annotated[Settings, Depends(get_app_settings)]
SSOServiceDep = Annotated[SSOService, Depends(get_sso_service)]
SSOConfigDep = Annotated[SSOConfig, Depends(get_sso_config)]
