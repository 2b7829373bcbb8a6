import logging
import re
from typing import Optional
from urllib.parse import urlencode, urlsplit, urlunsplit

from sso_bridge.config import SSOConfig
from sso_bridge.errors import (
    InvalidSignatureError,
    MissingParameterError,
    NonceReplayError,
    OpenRedirectRejectedError,
    UnverifiedEmailError,
)
from sso_bridge.schemas.auth import LocalUser
from sso_bridge.schemas.sso import IdentityAttributes, SSOPayload
from sso_bridge.services.nonce_service import MemoryNonceLedger, NonceLedger
from sso_bridge.utils.payload import Pairs, decode_payload, encode_payload, get_value
from sso_bridge.utils.signing import sign_payload, verify_signature

logger = logging.getLogger(__name__)

DEFAULT_PORTS = {"http": 80, "https": 443}
RESERVED_KEYS = ("nonce", "return_sso_url")

# Browsers read "\" as "/" and drop tabs and newlines, urlsplit does neither
_AMBIGUOUS_URL_CHARS = re.compile(r"[\\\s\x00-\x1f\x7f]")
# Userinfo and escapes can make the authority name a host other than the one urlsplit reports
_AMBIGUOUS_AUTHORITY_CHARS = re.compile(r"[@%]")


def url_origin(url: str) -> Optional[tuple[str, str, int]]:
    """
    (scheme, host, port) of an absolute http(s) URL, or None.

    A URL that a browser could resolve to a different host than ``urlsplit``
    does has no origin here.
    """
    if _AMBIGUOUS_URL_CHARS.search(url):
        return None
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return None

    if not parts.netloc.isascii() or _AMBIGUOUS_AUTHORITY_CHARS.search(parts.netloc):
        return None
    scheme = parts.scheme.lower()
    if scheme not in DEFAULT_PORTS or not parts.hostname:
        return None
    return scheme, parts.hostname.lower(), port or DEFAULT_PORTS[scheme]


def canonical_url(url: str) -> str:
    """
    Rebuild ``url`` from its parsed origin, path and query.

    The result never carries userinfo or a fragment, so what a browser
    navigates to is exactly the origin that was checked.
    """
    origin = url_origin(url)
    if origin is None:
        raise OpenRedirectRejectedError("return URL has no usable origin")

    scheme, host, port = origin
    netloc = f"[{host}]" if ":" in host else host
    if port != DEFAULT_PORTS[scheme]:
        netloc = f"{netloc}:{port}"
    parts = urlsplit(url)
    return urlunsplit((scheme, netloc, parts.path, parts.query, ""))


class RequestValidator:
    """
    Validates an inbound ``sso``/``sig`` pair from the forum.

    Checks run in a fixed order and stop at the first failure: parameters
    present, signature, decoding, required fields, return URL origin. The
    payload is never decoded before its signature has been verified.
    """

    def __init__(self, config: SSOConfig):
        self.secret = config.shared_secret
        self.forum_origin = url_origin(config.forum_base_url)

    def validate(self, sso: Optional[str], sig: Optional[str]) -> SSOPayload:
        if not sso or not sig:
            raise MissingParameterError("sso or sig query parameter missing")

        if not verify_signature(sso, sig, self.secret):
            raise InvalidSignatureError("signature mismatch")

        pairs = decode_payload(sso)

        nonce = get_value(pairs, "nonce")
        return_url = get_value(pairs, "return_sso_url")
        if not nonce:
            raise MissingParameterError("payload has no nonce")
        if not return_url:
            raise MissingParameterError("payload has no return_sso_url")

        origin = url_origin(return_url)
        if origin is None or origin != self.forum_origin:
            raise OpenRedirectRejectedError(f"return_sso_url origin {origin} is not the forum origin")

        extras = [(key, value) for key, value in pairs if key not in RESERVED_KEYS]
        return SSOPayload(nonce=nonce, return_url=canonical_url(return_url), extras=extras)


class IdentityMapper:
    def __init__(self, config: SSOConfig):
        self.suppress_welcome_message = config.suppress_welcome_message

    @staticmethod
    def _username(user: LocalUser) -> str:
        if user.username:
            return user.username
        local_part = user.email.split("@")[0]
        if local_part:
            return local_part
        return f"user_{user.id[:8]}"

    def map(
        self, user: LocalUser, custom_fields: Optional[dict[str, str]] = None
    ) -> IdentityAttributes:
        if not user.email_verified or not user.email:
            raise UnverifiedEmailError(f"user {user.id} has no verified email")

        role = (user.role or "").lower()
        if role == "admin":
            admin, moderator = True, False
        elif role == "moderator":
            admin, moderator = False, True
        else:
            admin, moderator = False, False

        username = self._username(user)
        return IdentityAttributes(
            # Always the stable id, never email or username, so the forum
            # keeps linking the same account across profile edits
            external_id=user.id,
            email=user.email,
            username=username,
            name=user.name or username,
            admin=admin,
            moderator=moderator,
            avatar_url=user.avatar_url,
            bio=user.bio,
            suppress_welcome_message=self.suppress_welcome_message or None,
            custom_fields=custom_fields or {},
        )


def _flag(value: bool) -> str:
    return "true" if value else "false"


class ResponseBuilder:
    def __init__(self, config: SSOConfig):
        self.secret = config.shared_secret

    @staticmethod
    def to_pairs(nonce: str, identity: IdentityAttributes) -> Pairs:
        pairs: Pairs = [
            ("nonce", nonce),
            ("external_id", identity.external_id),
            ("email", identity.email),
            ("username", identity.username),
            ("name", identity.name),
            ("admin", _flag(identity.admin)),
            ("moderator", _flag(identity.moderator)),
        ]
        if identity.avatar_url:
            pairs.append(("avatar_url", identity.avatar_url))
        if identity.bio:
            pairs.append(("bio", identity.bio))
        if identity.suppress_welcome_message is not None:
            pairs.append(("suppress_welcome_message", _flag(identity.suppress_welcome_message)))
        for key, value in identity.custom_fields.items():
            pairs.append((f"custom.{key}", value))
        return pairs

    def build(self, nonce: str, identity: IdentityAttributes, return_url: str) -> str:
        payload = encode_payload(self.to_pairs(nonce, identity))
        signature = sign_payload(payload, self.secret)

        parts = urlsplit(canonical_url(return_url))
        signed = urlencode([("sso", payload), ("sig", signature)])
        query = f"{parts.query}&{signed}" if parts.query else signed
        return urlunsplit(parts._replace(query=query))


class SSOService:
    """Runs the login handoff on top of the validator, mapper and builder."""

    def __init__(self, config: SSOConfig, nonce_ledger: Optional[NonceLedger] = None):
        self.config = config
        self.validator = RequestValidator(config)
        self.mapper = IdentityMapper(config)
        self.builder = ResponseBuilder(config)
        if config.replay_protection and nonce_ledger is None:
            nonce_ledger = MemoryNonceLedger(config.nonce_max_entries)
        self.nonce_ledger = nonce_ledger if config.replay_protection else None

    def validate(self, sso: Optional[str], sig: Optional[str]) -> SSOPayload:
        return self.validator.validate(sso, sig)

    async def complete(self, payload: SSOPayload, user: LocalUser) -> str:
        """Build the signed redirect back to the forum for ``user``."""
        identity = self.mapper.map(user, user.custom_fields)

        # Claimed only here, so a login detour does not burn the nonce
        if self.nonce_ledger is not None:
            if not await self.nonce_ledger.claim(payload.nonce, self.config.nonce_ttl):
                raise NonceReplayError("nonce already used")

        redirect_url = self.builder.build(payload.nonce, identity, payload.return_url)
        logger.info(
            "SSO handoff for user %s (admin=%s, moderator=%s)",
            identity.external_id,
            identity.admin,
            identity.moderator,
        )
        return redirect_url
