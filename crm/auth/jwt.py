"""
JWT token handling for authentication.

This module provides functionality for:
- Issuing signed access tokens
- Validating access tokens
- Reading the user id carried by a validated token
"""
import os
from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any
import jwt
from jwt.exceptions import PyJWTError

# JWT Configuration
SECRET_KEY = os.getenv("JWT_SECRET_KEY", "crm-development-secret-key-change-me")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60))

REQUIRED_CLAIMS = ["sub", "user_id", "iat", "exp"]

class TokenService:
    """
    Issues and validates stateless bearer tokens.

    Tokens carry the user's id in a ``user_id`` claim and the user's email
    as the subject. No state is kept on the server: a token is valid as long
    as its signature matches and it has not expired.
    """
    def __init__(
        self,
        secret_key: str = SECRET_KEY,
        algorithm: str = ALGORITHM,
        expires_delta: Optional[timedelta] = None
    ):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expires_delta = expires_delta or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)

    def issue(
        self,
        user_id: int,
        subject_email: str,
        expires_delta: Optional[timedelta] = None
    ) -> str:
        """
        Create a signed access token.

        Args:
            user_id: ID of the user the token is issued to
            subject_email: User's email, stored as the subject claim
            expires_delta: Custom lifetime, defaults to the configured one

        Returns:
            Encoded JWT token string
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": subject_email,
            "user_id": user_id,
            "iat": now,
            "exp": now + (expires_delta or self.expires_delta),
        }
        return jwt.encode(payload, self.secret_key, algorithm=self.algorithm)

    def _decode(self, token: str, verify_exp: bool = True) -> Dict[str, Any]:
        return jwt.decode(
            token,
            self.secret_key,
            algorithms=[self.algorithm],
            options={"require": REQUIRED_CLAIMS, "verify_exp": verify_exp},
        )

    def validate(self, token: str) -> bool:
        """
        Check a token's signature, structure and expiry.

        Returns:
            True if the token can be trusted, False otherwise
        """
        try:
            payload = self._decode(token)
        except PyJWTError:
            return False
        user_id = payload.get("user_id")
        return isinstance(user_id, int) and not isinstance(user_id, bool)

    def subject_user_id(self, token: str) -> int:
        """
        Return the user id carried by a token.

        Only call this after validate() returned True for the same token.
        Expiry is not checked again here.
        """
        return int(self._decode(token, verify_exp=False)["user_id"])

token_service = TokenService()
