from sso_bridge.models.user import User

__all__ = ["User"]
