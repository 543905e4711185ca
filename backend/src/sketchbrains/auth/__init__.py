"""Request identity: bearer tokens from the auth provider and service tokens."""

from sketchbrains.auth.middleware import Principal, require_admin, require_auth, require_service

__all__ = ["Principal", "require_admin", "require_auth", "require_service"]
