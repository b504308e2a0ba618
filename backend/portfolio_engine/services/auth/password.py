# backend/portfolio_engine/services/auth/password.py
"""
Password hashing and verification using bcrypt (passlib, cost factor 12).
"""

from passlib.context import CryptContext


_pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=12,
)


class PasswordService:
    """Stateless bcrypt helpers."""

    @staticmethod
    def hash_password(password: str) -> str:
        """
        Hash a plaintext password.

        Example:
            >>> hashed = PasswordService.hash_password("mypassword123")
            >>> hashed.startswith("$2b$")
            True
        """
        return _pwd_context.hash(password)

    @staticmethod
    def verify_password(plain_password: str, hashed_password: str) -> bool:
        return _pwd_context.verify(plain_password, hashed_password)

    @staticmethod
    def needs_rehash(hashed_password: str) -> bool:
        """True when the hash was made with outdated parameters."""
        return _pwd_context.needs_update(hashed_password)
