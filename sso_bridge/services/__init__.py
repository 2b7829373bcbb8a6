"""Service layer for business logic."""

from sso_bridge.services.link_service import build_category_url, build_topic_url
from sso_bridge.services.nonce_service import MemoryNonceLedger, RedisNonceLedger
from sso_bridge.services.sso_service import (
    IdentityMapper,
    RequestValidator,
    ResponseBuilder,
    SSOService,
)
from sso_bridge.services.user_service import UserService

__all__ = [
    "build_category_url",
    "build_topic_url",
    "IdentityMapper",
    "MemoryNonceLedger",
    "RedisNonceLedger",
    "RequestValidator",
    "ResponseBuilder",
    "SSOService",
    "UserService",
]
