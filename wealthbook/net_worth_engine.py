from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

ZERO = Decimal("0")
ASSET = "ASSET"
LIABILITY = "LIABILITY"


@dataclass(frozen=True)
class BalanceSnapshot:
    entry_date: date
    balance_in_base: Optional[Decimal]
    category_name: Optional[str] = None
    category_type: Optional[str] = None
    account_id: Optional[int] = None


@dataclass(frozen=True)
class NetWorthPoint:
    date: date
    total_assets: Decimal
    total_liabilities: Decimal
    net_worth: Decimal


@dataclass(frozen=True)
class CategoryTrendPoint:
    date: date
    totals: Dict[str, Decimal]


@dataclass(frozen=True)
class CategoryTrend:
    points: List[CategoryTrendPoint]
    categories: List[str]


@dataclass(frozen=True)
class NetWorthSummary:
    total_assets: Decimal
    total_liabilities: Decimal
    net_worth: Decimal
    last_updated: Optional[date]
    accounts_considered: int
    accounts_counted: int


@dataclass
class _MonthTotals:
    assets: Decimal = ZERO
    liabilities: Decimal = ZERO
    by_category: Dict[str, Decimal] = field(default_factory=dict)


def month_bucket(value: date | datetime) -> date:
    """First day of the UTC calendar month containing ``value``."""
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return date(value.year, value.month, 1)
    return value.replace(day=1)


def build_net_worth_trend(snapshots: Iterable[BalanceSnapshot]) -> List[NetWorthPoint]:
    buckets = _bucket_by_month(snapshots)
    return [
        NetWorthPoint(
            date=month,
            total_assets=totals.assets,
            total_liabilities=totals.liabilities,
            net_worth=totals.assets - totals.liabilities,
        )
        for month, totals in sorted(buckets.items())
    ]


def build_category_trend(snapshots: Iterable[BalanceSnapshot]) -> CategoryTrend:
    buckets = _bucket_by_month(snapshots)
    category_names = sorted(
        {name for totals in buckets.values() for name in totals.by_category}
    )
    points = [
        CategoryTrendPoint(
            date=month,
            totals={
                name: totals.by_category.get(name, ZERO) for name in category_names
            },
        )
        for month, totals in sorted(buckets.items())
    ]
    return CategoryTrend(points=points, categories=category_names)


def summarize_net_worth(
    account_ids: Iterable[int],
    snapshots: Iterable[BalanceSnapshot],
) -> NetWorthSummary:
    """Point-in-time totals from the most recent snapshot of each account.

    Older snapshots are ignored even when the latest one cannot be counted.
    """
    considered = set(account_ids)
    latest: Dict[int, BalanceSnapshot] = {}
    for snapshot in snapshots:
        if snapshot.account_id not in considered:
            continue
        current = latest.get(snapshot.account_id)
        if current is None or snapshot.entry_date > current.entry_date:
            latest[snapshot.account_id] = snapshot

    total_assets = ZERO
    total_liabilities = ZERO
    last_updated: Optional[date] = None
    counted = 0
    for snapshot in latest.values():
        if snapshot.balance_in_base is None:
            continue
        category_type = _normalize_type(snapshot.category_type)
        if category_type == ASSET:
            total_assets += _coerce_amount(snapshot.balance_in_base)
        elif category_type == LIABILITY:
            total_liabilities += _coerce_amount(snapshot.balance_in_base)
        else:
            continue
        counted += 1
        if last_updated is None or snapshot.entry_date > last_updated:
            last_updated = snapshot.entry_date

    return NetWorthSummary(
        total_assets=total_assets,
        total_liabilities=total_liabilities,
        net_worth=total_assets - total_liabilities,
        last_updated=last_updated,
        accounts_considered=len(considered),
        accounts_counted=counted,
    )


def _bucket_by_month(snapshots: Iterable[BalanceSnapshot]) -> Dict[date, _MonthTotals]:
    buckets: Dict[date, _MonthTotals] = {}
    for snapshot in snapshots:
        if snapshot.balance_in_base is None or not snapshot.category_name:
            continue
        amount = _coerce_amount(snapshot.balance_in_base)
        totals = buckets.setdefault(month_bucket(snapshot.entry_date), _MonthTotals())

        category_type = _normalize_type(snapshot.category_type)
        if category_type == ASSET:
            totals.assets += amount
        elif category_type == LIABILITY:
            totals.liabilities += amount

        totals.by_category[snapshot.category_name] = (
            totals.by_category.get(snapshot.category_name, ZERO) + amount
        )
    return buckets


def _normalize_type(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip().upper()


def _coerce_amount(amount: Decimal) -> Decimal:
    if isinstance(amount, Decimal):
        return amount
    return Decimal(str(amount))
