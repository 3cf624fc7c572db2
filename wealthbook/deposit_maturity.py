from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal, InvalidOperation

SECONDS_PER_YEAR = Decimal("31557600")  # 365.25 days
HUNDRED = Decimal("100")


def calculate_maturity_value(
    principal: Decimal | int | float | str,
    annual_rate_percent: Decimal | int | float | str,
    start_date: date | datetime,
    maturity_date: date | datetime,
) -> Decimal:
    """Simple-interest value of a fixed deposit on its maturity date.

    Returns the principal unchanged when the term is empty or inverted, or
    when either amount is not a finite number. A principal that is not a
    number at all raises ``ValueError``.
    """
    try:
        principal_value = _coerce_amount(principal)
    except InvalidOperation as exc:
        raise ValueError(f"Invalid principal: {principal!r}") from exc
    if not principal_value.is_finite():
        return principal_value
    try:
        rate_value = _coerce_amount(annual_rate_percent)
    except InvalidOperation:
        return principal_value
    if not rate_value.is_finite():
        return principal_value

    start = _as_utc(start_date)
    maturity = _as_utc(maturity_date)
    if maturity <= start:
        return principal_value

    elapsed_seconds = Decimal(str((maturity - start).total_seconds()))
    years = elapsed_seconds / SECONDS_PER_YEAR
    return principal_value * (1 + (rate_value / HUNDRED) * years)


def _as_utc(value: date | datetime) -> datetime:
    """Naive UTC datetime; plain dates and naive datetimes are taken as UTC."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.replace(tzinfo=None)
    return datetime(value.year, value.month, value.day)


def _coerce_amount(amount: Decimal | int | float | str) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
