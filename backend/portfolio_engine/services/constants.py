# backend/portfolio_engine/services/constants.py
"""
Centralized constants for the valuation engine.

Values that operators tune per deployment live in config.Settings; the
constants here are fixed by the data model or the API contract.

Usage:
    from portfolio_engine.services.constants import CURRENCY_PRECISION
"""

from decimal import Decimal


# =============================================================================
# DECIMAL PRECISION
# =============================================================================

# Portfolio and snapshot totals: 2 decimal places
CURRENCY_PRECISION: Decimal = Decimal("0.01")

# Persisted asset prices: 4 decimal places (AssetPrice.price is Numeric(15, 4))
PRICE_PRECISION: Decimal = Decimal("0.0001")

# Quantities, average costs and FX rates: 8 decimal places
SHARE_PRECISION: Decimal = Decimal("0.00000001")

# Gain/loss percentages: 2 decimal places
DISPLAY_PERCENTAGE_PRECISION: Decimal = Decimal("0.01")


# =============================================================================
# SNAPSHOT RANGES
# =============================================================================

# Range key -> number of days looked back from today.
# The series covers [today - days, today], i.e. days + 1 points.
SNAPSHOT_RANGES: dict[str, int] = {
    "7d": 7,
    "30d": 30,
    "3m": 90,
    "6m": 180,
    "12m": 365,
    "90d": 90,
    "180d": 180,
    "365d": 365,
}

DEFAULT_SNAPSHOT_RANGE: str = "30d"


# =============================================================================
# CIRCUIT BREAKER SETTINGS
# =============================================================================

# Consecutive provider failures before the breaker opens
CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5

# Seconds the breaker stays open before allowing trial calls
CIRCUIT_BREAKER_RECOVERY_TIMEOUT: float = 60.0

# Trial calls allowed while half-open
CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS: int = 3


# =============================================================================
# EXTERNAL API TIMEOUT SETTINGS
# =============================================================================

EXTERNAL_API_TIMEOUT_SECONDS: int = 10


# =============================================================================
# RATE LIMITING (slowapi limit strings)
# =============================================================================

# Default for read endpoints
RATE_LIMIT_DEFAULT: str = "100/minute"

# Writes (ledger entries, settings, snapshot records)
RATE_LIMIT_WRITE: str = "30/minute"

# Endpoints that trigger provider fetches (price/FX refresh, scheduler runs)
RATE_LIMIT_REFRESH: str = "10/minute"

RATE_LIMIT_HEALTH: str = "300/minute"

RATE_LIMIT_AUTH_LOGIN: str = "10/minute"
RATE_LIMIT_AUTH_REGISTER: str = "5/minute"


# =============================================================================
# FX FALLBACK RATES
# =============================================================================

# Last-resort rates used by the valuation engine when no live or stored rate
# can be resolved. Overridable via FALLBACK_USD_TO_CAD / FALLBACK_CAD_TO_USD.
FALLBACK_FX_RATES: dict[tuple[str, str], Decimal] = {
    ("USD", "CAD"): Decimal("1.37"),
    ("CAD", "USD"): Decimal("0.73"),
}
