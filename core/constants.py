"""Unit conversion helpers shared across the pipeline.


- USDT_DECIMALS controls stablecoin granularity (6 on Polygon).
- units_to_usdt / usdt_to_units convert between integer token units and Decimal USDT.
- credits_for_usdt applies the credits-per-dollar rate, rounding down.
"""

from django.conf import settings
from decimal import Decimal, ROUND_DOWN

USDT_DECIMALS = getattr(settings, "USDT_DECIMALS", 6)
TEN_POW = 10 ** USDT_DECIMALS

# One token unit delivered per vote
REWARD_UNITS = 1
VOTE_COST_CREDITS = 1


def usdt_to_units(amount_usdt: str | Decimal) -> int:
    """
    Convert human-readable USDT (e.g., "2.00") to integer token units using USDT_DECIMALS
    """
    amount_usdt = Decimal(amount_usdt)
    return int((amount_usdt * Decimal(TEN_POW)).quantize(Decimal("1"), rounding=ROUND_DOWN))


def units_to_usdt(amount_units: int) -> Decimal:
    """
    Convert integer token units back to an exact USDT Decimal (6 places).
    """
    return (Decimal(amount_units) / Decimal(TEN_POW)).quantize(Decimal("0.000001"), rounding=ROUND_DOWN)


def credits_for_usdt(amount_usdt: Decimal) -> int:
    """
    floor(amount * CREDITS_PER_USDT); 2.00 USDT at 3/$ gives 6.
    """
    rate = Decimal(getattr(settings, "CREDITS_PER_USDT", 3))
    return int((Decimal(amount_usdt) * rate).to_integral_value(rounding=ROUND_DOWN))
