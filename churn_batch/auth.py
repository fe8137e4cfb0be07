"""Caller identity resolution from bearer tokens."""

from abc import ABC, abstractmethod
from typing import Dict, Optional

from .errors import AuthError


class IdentityProvider(ABC):
    @abstractmethod
    def resolve(self, token: str) -> str:
        """
        Owner id for a verified token.

        Raises:
            AuthError: If the token is not valid
        """
        pass


class StaticTokenIdentityProvider(IdentityProvider):
    """Fixed token -> owner id table (local runs and tests)."""

    def __init__(self, tokens: Dict[str, str]):
        self.tokens = dict(tokens)

    def resolve(self, token: str) -> str:
        owner_id = self.tokens.get(token)
        if not owner_id:
            raise AuthError("Invalid authorization")
        return owner_id


def bearer_token(authorization: Optional[str]) -> str:
    """
    Extract the token from an Authorization header.

    Raises:
        AuthError: If the header is absent or not a bearer credential
    """
    if not authorization:
        raise AuthError("Authorization required")
    scheme, _, token = authorization.strip().partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise AuthError("Invalid authorization")
    return token.strip()
