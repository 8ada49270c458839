"""Money helpers shared across the Affiliates domain.

Amounts are whole units of the store currency (JPY), held in Float fields.
All arithmetic that produces a stored amount goes through ``round_amount``.
"""

from decimal import ROUND_HALF_UP, Decimal

CURRENCY = "JPY"


def round_amount(value) -> float:
    """Round to whole currency units, halves away from zero."""
    if value is None:
        return 0.0
    return float(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percentage_of(base, rate_percent) -> float:
    """``rate_percent`` percent of ``base``, rounded to whole units."""
    return round_amount(Decimal(str(base or 0)) * Decimal(str(rate_percent or 0)) / Decimal("100"))
