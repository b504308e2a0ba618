# backend/portfolio_engine/services/auth/service.py
"""
Registration and login.

Emails are stored lowercased. Login returns a bearer access token; there
are no refresh tokens or sessions to revoke.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from portfolio_engine.config import settings
from portfolio_engine.models import Currency, User
from portfolio_engine.services.auth.jwt_handler import JWTHandler
from portfolio_engine.services.auth.password import PasswordService
from portfolio_engine.services.currency_service import CurrencyConversionService
from portfolio_engine.services.exceptions import (
    InvalidCredentialsError,
    UserExistsError,
)

logger = logging.getLogger(__name__)


@dataclass
class AccessToken:
    access_token: str
    token_type: str = "bearer"
    expires_in: int = settings.jwt_access_token_expire_minutes * 60


class AuthService:

    def register(
        self,
        db: Session,
        email: str,
        password: str,
        default_currency: str = Currency.CAD.value,
    ) -> User:
        """
        Register a new user with email/password.

        Raises:
            UserExistsError: If email is already registered
            UnsupportedCurrencyError: If default_currency is not CAD or USD
        """
        currency = CurrencyConversionService.validate_currency(default_currency)

        if self.get_user_by_email(db, email):
            raise UserExistsError(email)

        user = User(
            email=email.lower(),
            hashed_password=PasswordService.hash_password(password),
            default_currency=currency,
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        logger.info(f"User registered: {user.email}")
        return user

    def login(self, db: Session, email: str, password: str) -> AccessToken:
        """
        Authenticate with email/password.

        Raises:
            InvalidCredentialsError: If credentials are incorrect
        """
        user = self.get_user_by_email(db, email)

        if not user or not PasswordService.verify_password(password, user.hashed_password):
            raise InvalidCredentialsError()

        if PasswordService.needs_rehash(user.hashed_password):
            user.hashed_password = PasswordService.hash_password(password)
            db.commit()

        logger.info(f"User logged in: {user.email}")
        return AccessToken(access_token=JWTHandler.create_access_token(user.id, user.email))

    def get_user_by_id(self, db: Session, user_id: int) -> User | None:
        return db.get(User, user_id)

    def get_user_by_email(self, db: Session, email: str) -> User | None:
        return db.execute(
            select(User).where(User.email == email.lower())
        ).scalar_one_or_none()
