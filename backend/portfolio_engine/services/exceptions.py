# backend/portfolio_engine/services/exceptions.py
"""
Service layer exceptions.

These exceptions represent domain-specific errors and contain NO HTTP knowledge.
main.py maps them to HTTP responses.

Exception Hierarchy:
    ServiceError (base)
    ├── ValidationError
    │   ├── InvalidRangeError
    │   ├── UnknownSymbolError
    │   └── InsufficientCashError
    ├── NotFoundError
    │   └── UserNotFoundError
    ├── MarketDataError
    │   ├── ProviderUnavailableError
    │   ├── TickerNotFoundError
    │   └── RateLimitError
    ├── FXRateError
    │   ├── UnsupportedCurrencyError
    │   ├── RateUnavailableError
    │   ├── FXProviderError
    │   └── FXConversionError
    └── AuthenticationError
        ├── InvalidCredentialsError
        ├── TokenExpiredError
        └── UserExistsError

    CircuitBreakerOpen (from circuit_breaker module)
"""

from decimal import Decimal


class ServiceError(Exception):
    """
    Base exception for all service layer errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        return self.message


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(ServiceError):
    """
    Raised when a request is well-formed but semantically invalid.

    Attributes:
        field: The field that failed validation (optional)
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        self.field = field
        super().__init__(message)


class InvalidRangeError(ValidationError):
    """Raised for a snapshot range key outside the supported set."""

    def __init__(self, range_key: str, valid: list[str]) -> None:
        self.range_key = range_key
        super().__init__(
            f"Invalid range: '{range_key}'. Valid options: {', '.join(valid)}",
            field="range",
        )


class UnknownSymbolError(ValidationError):
    """Raised when a ledger symbol is not an active ticker in the directory."""

    def __init__(self, symbol: str) -> None:
        self.symbol = symbol
        super().__init__(
            f"Unknown or inactive ticker symbol: '{symbol}'",
            field="symbol",
        )


class InsufficientCashError(ValidationError):
    """Raised when a withdrawal would overdraw cash and overdrafts are rejected."""

    def __init__(self, currency: str, balance: Decimal, requested: Decimal) -> None:
        self.currency = currency
        self.balance = balance
        self.requested = requested
        super().__init__(
            f"Insufficient {currency} cash: balance {balance}, withdrawal {requested}",
            field="quantity",
        )


# =============================================================================
# NOT FOUND ERRORS
# =============================================================================


class NotFoundError(ServiceError):
    """
    Base exception for resource not found errors.

    Attributes:
        resource_type: Type of resource (e.g., "User", "Price")
        resource_id: Identifier of the resource
    """

    def __init__(
            self,
            message: str,
            resource_type: str | None = None,
            resource_id: int | str | None = None,
    ) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(message)


class UserNotFoundError(NotFoundError):
    def __init__(self, user_id: int) -> None:
        self.user_id = user_id
        super().__init__(
            f"User with id {user_id} not found",
            resource_type="User",
            resource_id=user_id,
        )


# =============================================================================
# MARKET DATA PROVIDER ERRORS
# =============================================================================


class MarketDataError(ServiceError):
    """
    Base exception for market data provider failures.

    Attributes:
        provider: Name of the provider that failed
    """

    def __init__(self, message: str, provider: str | None = None) -> None:
        self.provider = provider
        super().__init__(message)


class ProviderUnavailableError(MarketDataError):
    """
    Raised when a market data provider is temporarily unavailable
    (timeouts, server errors, maintenance). Retryable.
    """

    def __init__(self, provider: str, reason: str) -> None:
        message = f"Provider '{provider}' is unavailable: {reason}"
        super().__init__(message, provider=provider)
        self.reason = reason


class TickerNotFoundError(MarketDataError):
    """Raised when the provider has no data for a symbol. Not retryable."""

    def __init__(self, ticker: str, provider: str) -> None:
        message = f"Ticker '{ticker}' not found by {provider}"
        super().__init__(message, provider=provider)
        self.ticker = ticker


class RateLimitError(MarketDataError):
    """
    Raised when the provider's rate limit has been exceeded.

    Attributes:
        retry_after: Seconds to wait before retrying (if provided by API)
    """

    def __init__(self, provider: str, retry_after: int | None = None) -> None:
        message = f"Rate limit exceeded for provider '{provider}'"
        if retry_after:
            message += f" (retry after {retry_after}s)"
        super().__init__(message, provider=provider)
        self.retry_after = retry_after


# =============================================================================
# FX RATE ERRORS
# =============================================================================


class FXRateError(ServiceError):
    """
    Base exception for FX rate errors.

    Attributes:
        from_currency: Source currency code
        to_currency: Target currency code
    """

    def __init__(
            self,
            message: str,
            from_currency: str | None = None,
            to_currency: str | None = None,
    ) -> None:
        self.from_currency = from_currency
        self.to_currency = to_currency
        super().__init__(message)


class UnsupportedCurrencyError(FXRateError):
    """Raised for a currency outside the supported set."""

    def __init__(self, currency: str) -> None:
        self.currency = currency
        super().__init__(f"Unsupported currency: '{currency}'")


class RateUnavailableError(FXRateError):
    """
    Raised when the provider fails and no stored rate exists for the pair
    (or its inverse) at any age.
    """

    def __init__(self, from_currency: str, to_currency: str) -> None:
        super().__init__(
            f"No exchange rate available for {from_currency}/{to_currency}",
            from_currency=from_currency,
            to_currency=to_currency,
        )


class FXProviderError(FXRateError):
    """
    Raised when the FX data provider fails.

    Attributes:
        provider: Name of the FX data provider
        reason: Specific reason for failure
    """

    def __init__(self, provider: str, reason: str) -> None:
        self.provider = provider
        self.reason = reason
        super().__init__(f"FX provider '{provider}' error: {reason}")


class FXConversionError(FXRateError):
    """Raised for invalid rate arithmetic (zero or non-finite rates)."""

    def __init__(
            self,
            reason: str,
            from_currency: str | None = None,
            to_currency: str | None = None,
    ) -> None:
        self.reason = reason
        super().__init__(
            f"FX conversion error: {reason}",
            from_currency=from_currency,
            to_currency=to_currency,
        )


# =============================================================================
# AUTHENTICATION ERRORS
# =============================================================================


class AuthenticationError(ServiceError):
    """Base exception for authentication failures."""
    pass


class InvalidCredentialsError(AuthenticationError):
    def __init__(self, message: str = "Invalid email or password") -> None:
        super().__init__(message)


class TokenExpiredError(AuthenticationError):
    def __init__(self, message: str = "Token has expired") -> None:
        super().__init__(message)


class UserExistsError(AuthenticationError):
    def __init__(self, email: str) -> None:
        self.email = email
        super().__init__(f"A user with email '{email}' already exists")


# =============================================================================
# CIRCUIT BREAKER (re-exported for convenience)
# =============================================================================

from portfolio_engine.services.circuit_breaker import CircuitBreakerOpen  # noqa: E402

__all__ = [
    "ServiceError",
    "ValidationError",
    "InvalidRangeError",
    "UnknownSymbolError",
    "InsufficientCashError",
    "NotFoundError",
    "UserNotFoundError",
    "MarketDataError",
    "ProviderUnavailableError",
    "TickerNotFoundError",
    "RateLimitError",
    "FXRateError",
    "UnsupportedCurrencyError",
    "RateUnavailableError",
    "FXProviderError",
    "FXConversionError",
    "AuthenticationError",
    "InvalidCredentialsError",
    "TokenExpiredError",
    "UserExistsError",
    "CircuitBreakerOpen",
]
