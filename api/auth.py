"""Requesting-user identification from signed tokens."""

import logging
from typing import Annotated

from fastapi import Header, HTTPException
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer

from config import config

logger = logging.getLogger(__name__)

USER_TOKEN_SALT = "blackjack-user"
USER_TOKEN_HEADER = "X-User-Token"


class UserTokenSigner:
    """Sign and verify user IDs using itsdangerous.

    Tokens are issued by the auth service, which shares the secret key.
    """

    def __init__(self, secret_key: str | None = None) -> None:
        """Initialize the signer with a secret key."""
        self._secret_key = secret_key or config.security.secret_key
        self._serializer = URLSafeTimedSerializer(self._secret_key, salt=USER_TOKEN_SALT)

    def sign(self, user_id: str) -> str:
        """Create a signed token from a user ID."""
        return self._serializer.dumps(user_id)

    def unsign(self, token: str, max_age: int | None = None) -> str | None:
        """
        Verify and extract the user ID from a signed token.

        Args:
            token: The signed token to verify
            max_age: Maximum age in seconds (defaults to user_token_max_age)

        Returns:
            The user ID if valid, None otherwise
        """
        max_age = max_age or config.security.user_token_max_age
        try:
            return self._serializer.loads(token, max_age=max_age)
        except (BadSignature, SignatureExpired):
            return None


# Global signer instance
_user_token_signer: UserTokenSigner | None = None


def get_user_token_signer() -> UserTokenSigner:
    """Get or create the user token signer."""
    global _user_token_signer
    if _user_token_signer is None:
        _user_token_signer = UserTokenSigner()
    return _user_token_signer


async def get_current_user(
    token: Annotated[str | None, Header(alias=USER_TOKEN_HEADER)] = None,
) -> str:
    """FastAPI dependency resolving the requesting user's ID."""
    if token is None:
        raise HTTPException(status_code=401, detail="Authentication required")
    user_id = get_user_token_signer().unsign(token)
    if user_id is None:
        logger.warning("Rejected invalid or expired user token")
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user_id
