"""JWT inspection for PocketBase auth tokens.

PocketBase issues JWTs carrying ``id``, ``type``, ``collectionId`` and
``exp`` claims. The client never verifies signatures (the server does); it
only reads the claims to infer expiry and the owning collection.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

DEFAULT_REFRESH_THRESHOLD_SECONDS = 300


class TokenValidationError(Exception):
    """Exception raised when a token cannot be decoded."""

    pass


class JWTTokenManager:
    """Reads expiry and identity claims from JWT tokens."""

    def __init__(self, refresh_threshold_seconds: int = DEFAULT_REFRESH_THRESHOLD_SECONDS):
        """Initialize JWT token manager.

        Args:
            refresh_threshold_seconds: Seconds before expiration at which a
                token counts as near expiry
        """
        self.refresh_threshold_seconds = refresh_threshold_seconds

    def decode_token(self, token: str) -> Dict[str, Any]:
        """Decode JWT payload without signature verification.

        Raises:
            TokenValidationError: If the token is empty or malformed
        """
        if not token or not isinstance(token, str):
            raise TokenValidationError("Token must be a non-empty string")

        try:
            payload = jwt.decode(
                token,
                options={"verify_signature": False, "verify_exp": False},
            )
        except jwt.PyJWTError as e:
            raise TokenValidationError(f"Invalid JWT token: {e}") from e

        if not isinstance(payload, dict):
            raise TokenValidationError("JWT payload is not an object")
        return payload

    def get_token_expiry_time(self, token: str) -> Optional[datetime]:
        """Return the ``exp`` claim as an aware UTC datetime, or None.

        Raises:
            TokenValidationError: If the token or its exp claim is malformed
        """
        exp_claim = self.decode_token(token).get("exp")
        if exp_claim is None:
            return None
        try:
            return datetime.fromtimestamp(float(exp_claim), tz=timezone.utc)
        except (TypeError, ValueError, OverflowError) as e:
            raise TokenValidationError(
                f"Invalid expiration timestamp format: {exp_claim}"
            ) from e

    def is_token_expired(self, token: str, expiration_threshold: int = 0) -> bool:
        """Check whether a token is expired.

        Malformed or empty tokens count as expired. Tokens without an
        ``exp`` claim never expire.

        Args:
            token: JWT token string
            expiration_threshold: Seconds of slack subtracted from ``exp``
        """
        try:
            expiry = self.get_token_expiry_time(token)
        except TokenValidationError:
            return True
        if expiry is None:
            return False
        now = datetime.now(timezone.utc)
        return now >= expiry - timedelta(seconds=expiration_threshold)

    def is_token_near_expiry(self, token: str) -> bool:
        """True if the token expires within the refresh threshold."""
        return self.is_token_expired(token, self.refresh_threshold_seconds)

    def get_claim(self, token: str, name: str) -> Optional[Any]:
        """Return one claim, or None if the token is malformed."""
        try:
            return self.decode_token(token).get(name)
        except TokenValidationError:
            return None
