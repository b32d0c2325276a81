"""Authentication collaborator contract."""

from lifesync.services.auth.provider import AuthProvider, StaticAuthProvider

__all__ = ["AuthProvider", "StaticAuthProvider"]
