from __future__ import annotations

from decimal import Decimal, localcontext

ZERO = Decimal("0")
# Enough digits for an 18-digit balance times an 18-digit rate.
PRODUCT_PRECISION = 40


def compute_balance_in_base(
    balance_original: Decimal | int | float | str,
    exchange_rate_to_base: Decimal | int | float | str | None,
) -> Decimal:
    """Return the base-currency value of a balance snapshot.

    A positive exchange rate is multiplied in. A missing or non-positive rate
    means the account already holds the base currency, so the original amount
    is returned as is. The product is exact: it is never rounded to the
    default decimal context.
    """
    original = _coerce_amount(balance_original)
    if exchange_rate_to_base is None:
        return original
    rate = _coerce_amount(exchange_rate_to_base)
    if rate > ZERO:
        with localcontext() as ctx:
            ctx.prec = PRODUCT_PRECISION
            return original * rate
    return original


def normalize_currency(value: str) -> str:
    normalized = value.strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValueError("Currency must be a 3-letter ISO 4217 code.")
    return normalized


def _coerce_amount(amount: Decimal | int | float | str) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
