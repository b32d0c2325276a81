"""
Authentication Collaborator

Sign-in flows are out of scope; the sync layer only needs to know who
is signed in and how to sign out.
"""

from abc import ABC, abstractmethod
from typing import Optional


class AuthProvider(ABC):
    """Abstract interface to the authentication collaborator."""

    @abstractmethod
    def current_identity(self) -> Optional[str]:
        """
        Opaque identity of the signed-in user.

        Returns:
            The identity, or None when nobody is signed in
        """
        pass

    @abstractmethod
    async def sign_out(self) -> None:
        """End the authenticated session."""
        pass


class StaticAuthProvider(AuthProvider):
    """Fixed identity, e.g. for local runs, scripts and tests."""

    def __init__(self, identity: Optional[str]):
        self._identity = identity

    def current_identity(self) -> Optional[str]:
        return self._identity

    async def sign_out(self) -> None:
        self._identity = None
