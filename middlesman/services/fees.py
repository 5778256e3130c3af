"""Broker commission calculation.

Commission schedule (configurable via settings):

1. **Tiers**: optional ``commission_tiers`` as ascending
   ``(upper_bound, rate)`` pairs. The first tier whose bound is >= the
   transaction amount applies.

2. **Flat rate**: ``commission_rate`` for any amount above the last tier,
   or for every amount when no tiers are configured.

Commission is what the broker earns on a transaction and drives the
earnings dashboard.
"""

from decimal import ROUND_HALF_UP, Decimal

from middlesman.config import settings

_CENT = Decimal("0.01")


def commission_rate_for(amount: Decimal) -> Decimal:
    """Return the commission rate that applies to a transaction amount."""
    for upper_bound, rate in sorted(settings.commission_tiers, key=lambda t: t[0]):
        if amount <= upper_bound:
            return rate
    return settings.commission_rate


def calculate_commission(amount: Decimal) -> Decimal:
    return (amount * commission_rate_for(amount)).quantize(_CENT, rounding=ROUND_HALF_UP)


def get_commission_schedule() -> dict:
    """Current schedule, as shown alongside the earnings dashboard."""
    return {
        "flat_rate_percent": str(settings.commission_rate * 100),
        "tiers": [
            {"up_to": str(bound), "rate_percent": str(rate * 100)}
            for bound, rate in sorted(settings.commission_tiers, key=lambda t: t[0])
        ],
    }
