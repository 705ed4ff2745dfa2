"""Client authentication utilities.

The bearer token arrives either as a ``token`` query parameter on the
websocket URL or as an ``Authorization: Bearer <token>`` header. Verifying a
token against an identity provider is delegated to a ``TokenVerifier``;
the bundled ``StaticTokenVerifier`` checks a configured token map.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from urllib.parse import parse_qs, urlsplit

from src.palooza.errors import AuthenticationError

logger = logging.getLogger(__name__)

ANONYMOUS_USER = "anonymous"


def extract_token(path: str, headers: Mapping[str, str]) -> str | None:
    """Extract the bearer token from a connection request.

    Args:
        path: Request path including the query string
        headers: Request headers

    Returns:
        Token if found, None otherwise
    """
    query = parse_qs(urlsplit(path).query)
    if token := (query.get("token") or [None])[0]:
        return token

    auth_header = headers.get("Authorization")
    if not auth_header:
        return None
    scheme, _, credentials = auth_header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return None


class TokenVerifier(ABC):
    """Resolves a bearer token to a user id."""

    @abstractmethod
    async def verify(self, token: str | None) -> str:
        """Verify a token.

        Returns:
            Authenticated user id

        Raises:
            AuthenticationError: If the token is missing or invalid
        """
        pass


class StaticTokenVerifier(TokenVerifier):
    """Verifies tokens against a fixed token → user id map."""

    def __init__(self, tokens: Mapping[str, str]) -> None:
        self._tokens = dict(tokens)

    async def verify(self, token: str | None) -> str:
        if not token:
            raise AuthenticationError("Invalid token")
        user_id = self._tokens.get(token)
        if user_id is None:
            logger.warning("Invalid token provided", extra={"token_prefix": token[:4]})
            raise AuthenticationError("User not found")
        return user_id


class AllowAllVerifier(TokenVerifier):
    """Accepts every connection. For local development with auth disabled."""

    async def verify(self, token: str | None) -> str:
        return ANONYMOUS_USER
