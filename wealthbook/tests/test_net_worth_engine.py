import unittest
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from wealthbook.net_worth_engine import (
    BalanceSnapshot,
    NetWorthPoint,
    build_category_trend,
    build_net_worth_trend,
    month_bucket,
    summarize_net_worth,
)


class NetWorthTrendTests(unittest.TestCase):
    def test_monthly_net_worth_is_assets_minus_liabilities(self) -> None:
        snapshots = [
            BalanceSnapshot(
                entry_date=date(2024, 2, 1),
                balance_in_base=Decimal("120"),
                category_name="Savings",
                category_type="ASSET",
            ),
            BalanceSnapshot(
                entry_date=date(2024, 1, 1),
                balance_in_base=Decimal("100"),
                category_name="Savings",
                category_type="ASSET",
            ),
            BalanceSnapshot(
                entry_date=date(2024, 1, 1),
                balance_in_base=Decimal("20"),
                category_name="Loans",
                category_type="LIABILITY",
            ),
            BalanceSnapshot(
                entry_date=date(2024, 2, 1),
                balance_in_base=Decimal("20"),
                category_name="Loans",
                category_type="LIABILITY",
            ),
        ]

        trend = build_net_worth_trend(snapshots)

        self.assertEqual(
            trend,
            [
                NetWorthPoint(
                    date=date(2024, 1, 1),
                    total_assets=Decimal("100"),
                    total_liabilities=Decimal("20"),
                    net_worth=Decimal("80"),
                ),
                NetWorthPoint(
                    date=date(2024, 2, 1),
                    total_assets=Decimal("120"),
                    total_liabilities=Decimal("20"),
                    net_worth=Decimal("100"),
                ),
            ],
        )

    def test_skips_uncategorized_and_missing_balances(self) -> None:
        snapshots = [
            BalanceSnapshot(
                entry_date=date(2024, 3, 1),
                balance_in_base=Decimal("500"),
            ),
            BalanceSnapshot(
                entry_date=date(2024, 3, 1),
                balance_in_base=None,
                category_name="Savings",
                category_type="ASSET",
            ),
            BalanceSnapshot(
                entry_date=date(2024, 3, 1),
                balance_in_base=Decimal("75"),
                category_name="Savings",
                category_type="ASSET",
            ),
        ]

        trend = build_net_worth_trend(snapshots)

        self.assertEqual(len(trend), 1)
        self.assertEqual(trend[0].total_assets, Decimal("75"))

    def test_empty_input_returns_empty_series(self) -> None:
        self.assertEqual(build_net_worth_trend([]), [])

    def test_decimal_accumulation_has_no_float_drift(self) -> None:
        snapshots = [
            BalanceSnapshot(
                entry_date=date(2024, 1, 1),
                balance_in_base=Decimal("0.1"),
                category_name="Cash",
                category_type="ASSET",
                account_id=index,
            )
            for index in range(10)
        ]

        trend = build_net_worth_trend(snapshots)

        self.assertEqual(trend[0].total_assets, Decimal("1.0"))


class CategoryTrendTests(unittest.TestCase):
    def test_attributes_amounts_per_category_and_fills_gaps(self) -> None:
        snapshots = [
            BalanceSnapshot(
                entry_date=date(2024, 1, 1),
                balance_in_base=Decimal("100"),
                category_name="Savings",
                category_type="ASSET",
            ),
            BalanceSnapshot(
                entry_date=date(2024, 1, 1),
                balance_in_base=Decimal("20"),
                category_name="Loans",
                category_type="LIABILITY",
            ),
            BalanceSnapshot(
                entry_date=date(2024, 2, 1),
                balance_in_base=Decimal("120"),
                category_name="Savings",
                category_type="ASSET",
            ),
        ]

        trend = build_category_trend(snapshots)

        self.assertEqual(trend.categories, ["Loans", "Savings"])
        self.assertEqual([point.date for point in trend.points], [date(2024, 1, 1), date(2024, 2, 1)])
        self.assertEqual(
            trend.points[0].totals,
            {"Loans": Decimal("20"), "Savings": Decimal("100")},
        )
        self.assertEqual(
            trend.points[1].totals,
            {"Loans": Decimal("0"), "Savings": Decimal("120")},
        )

    def test_empty_input(self) -> None:
        trend = build_category_trend([])

        self.assertEqual(trend.points, [])
        self.assertEqual(trend.categories, [])


class MonthBucketTests(unittest.TestCase):
    def test_dates_collapse_to_first_of_month(self) -> None:
        self.assertEqual(month_bucket(date(2024, 5, 31)), date(2024, 5, 1))

    def test_aware_datetimes_are_bucketed_in_utc(self) -> None:
        plus_five = timezone(timedelta(hours=5))
        value = datetime(2024, 6, 1, 2, 0, tzinfo=plus_five)

        self.assertEqual(month_bucket(value), date(2024, 5, 1))


class NetWorthSummaryTests(unittest.TestCase):
    def test_only_latest_snapshot_per_account_counts(self) -> None:
        snapshots = [
            BalanceSnapshot(
                entry_date=date(2024, 1, 1),
                balance_in_base=Decimal("1000"),
                category_type="ASSET",
                account_id=1,
            ),
            BalanceSnapshot(
                entry_date=date(2024, 3, 1),
                balance_in_base=Decimal("1500"),
                category_type="ASSET",
                account_id=1,
            ),
            BalanceSnapshot(
                entry_date=date(2024, 2, 1),
                balance_in_base=Decimal("300"),
                category_type="LIABILITY",
                account_id=2,
            ),
        ]

        summary = summarize_net_worth([1, 2], snapshots)

        self.assertEqual(summary.total_assets, Decimal("1500"))
        self.assertEqual(summary.total_liabilities, Decimal("300"))
        self.assertEqual(summary.net_worth, Decimal("1200"))
        self.assertEqual(summary.last_updated, date(2024, 3, 1))
        self.assertEqual(summary.accounts_considered, 2)
        self.assertEqual(summary.accounts_counted, 2)

    def test_accounts_without_entries_or_category_are_not_counted(self) -> None:
        snapshots = [
            BalanceSnapshot(
                entry_date=date(2024, 1, 1),
                balance_in_base=Decimal("700"),
                category_type=None,
                account_id=2,
            ),
            BalanceSnapshot(
                entry_date=date(2024, 1, 1),
                balance_in_base=Decimal("50"),
                category_type="ASSET",
                account_id=3,
            ),
        ]

        summary = summarize_net_worth([1, 2, 3], snapshots)

        self.assertEqual(summary.net_worth, Decimal("50"))
        self.assertEqual(summary.accounts_considered, 3)
        self.assertEqual(summary.accounts_counted, 1)

    def test_no_accounts(self) -> None:
        summary = summarize_net_worth([], [])

        self.assertEqual(summary.net_worth, Decimal("0"))
        self.assertIsNone(summary.last_updated)
        self.assertEqual(summary.accounts_counted, 0)


if __name__ == "__main__":
    unittest.main()
