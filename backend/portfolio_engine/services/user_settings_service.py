# backend/portfolio_engine/services/user_settings_service.py
"""
User-level preferences. The only setting is the default display currency,
which drives valuations and daily snapshots.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from portfolio_engine.models import User
from portfolio_engine.services.currency_service import CurrencyConversionService

logger = logging.getLogger(__name__)


@dataclass
class SettingsUpdateResult:
    user: User
    changed_fields: list[str]


class UserSettingsService:

    def get_settings(self, user: User) -> dict[str, str]:
        return {"default_currency": user.default_currency}

    def update_settings(
        self,
        db: Session,
        user: User,
        default_currency: str | None = None,
    ) -> SettingsUpdateResult:
        """
        Apply the provided fields; None leaves a field unchanged.

        Raises:
            UnsupportedCurrencyError: If default_currency is not CAD or USD
        """
        changed: list[str] = []

        if default_currency is not None:
            currency = CurrencyConversionService.validate_currency(default_currency)
            if currency != user.default_currency:
                user.default_currency = currency
                changed.append("default_currency")

        if changed:
            db.commit()
            db.refresh(user)
            logger.info(f"Updated settings for user {user.id}: {', '.join(changed)}")

        return SettingsUpdateResult(user=user, changed_fields=changed)
