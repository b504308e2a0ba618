"""
Authentication services.

Usage:
    from portfolio_engine.services.auth import AuthService, PasswordService, JWTHandler

    hashed = PasswordService.hash_password("mypassword")
    token = JWTHandler.create_access_token(user_id=1, email="user@example.com")
    payload = JWTHandler.validate_access_token(token)
"""

from portfolio_engine.services.auth.jwt_handler import JWTHandler
from portfolio_engine.services.auth.password import PasswordService
from portfolio_engine.services.auth.service import AccessToken, AuthService

__all__ = [
    "AccessToken",
    "AuthService",
    "JWTHandler",
    "PasswordService",
]
