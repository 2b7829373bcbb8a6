from fastapi import status


class ConfigurationError(RuntimeError):
    """Raised at startup when the service must not accept traffic."""


class SSOError(Exception):
    """Base class for failures that end an SSO request with a 4xx response.

    ``message`` is the only text sent to the client; the optional detail passed
    to the constructor is for server-side logs and must never contain secrets
    or raw payloads.
    """

    code = "sso_error"
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid SSO request"

    def __init__(self, detail: str | None = None):
        self.detail = detail or self.message
        super().__init__(self.detail)


class MissingParameterError(SSOError):
    code = "missing_parameter"
    message = "Missing SSO parameters"


class MalformedPayloadError(SSOError):
    code = "malformed_payload"
    message = "Malformed SSO payload"


class InvalidSignatureError(SSOError):
    code = "invalid_signature"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid signature"


class OpenRedirectRejectedError(SSOError):
    code = "open_redirect_rejected"
    message = "Return URL is not trusted"


class UnauthenticatedUserError(SSOError):
    code = "unauthenticated"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Authentication required"


class UnverifiedEmailError(SSOError):
    code = "unverified_email"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Email address is not verified"


class NonceReplayError(SSOError):
    code = "nonce_replayed"
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "SSO request has already been used"


class UnsupportedActionError(SSOError):
    code = "unsupported_action"
    message = "Unsupported action"
