# backend/portfolio_engine/services/auth/jwt_handler.py
"""
Stateless access tokens (python-jose, HS256 by default).

Claims:
- sub: user id (string)
- email: user's email
- exp / iat: expiry and issue time
- type: "access"
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt

from portfolio_engine.config import settings
from portfolio_engine.services.exceptions import InvalidCredentialsError, TokenExpiredError


class JWTHandler:

    @staticmethod
    def create_access_token(
        user_id: int,
        email: str,
        expires_delta: timedelta | None = None,
    ) -> str:
        if expires_delta is None:
            expires_delta = timedelta(minutes=settings.jwt_access_token_expire_minutes)

        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "email": email,
            "exp": now + expires_delta,
            "iat": now,
            "type": "access",
        }

        return jwt.encode(
            payload,
            settings.jwt_secret_key,
            algorithm=settings.jwt_algorithm,
        )

    @staticmethod
    def validate_access_token(token: str) -> dict[str, Any]:
        """
        Validate an access token and return its payload.

        Raises:
            TokenExpiredError: If the token has expired
            InvalidCredentialsError: If the token is invalid or malformed
        """
        try:
            payload = jwt.decode(
                token,
                settings.jwt_secret_key,
                algorithms=[settings.jwt_algorithm],
            )
        except jwt.ExpiredSignatureError:
            raise TokenExpiredError("Access token has expired")
        except JWTError as e:
            raise InvalidCredentialsError(f"Invalid token: {str(e)}")

        if payload.get("type") != "access":
            raise InvalidCredentialsError("Invalid token type")

        return payload
