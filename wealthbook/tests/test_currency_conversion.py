import unittest
from decimal import Decimal

from wealthbook.currency_conversion import compute_balance_in_base, normalize_currency


class BalanceInBaseTests(unittest.TestCase):
    def test_positive_rate_is_multiplied_in(self) -> None:
        result = compute_balance_in_base(Decimal("1500.50"), Decimal("83.2"))

        self.assertEqual(result, Decimal("124841.600"))

    def test_missing_rate_keeps_original_amount(self) -> None:
        self.assertEqual(compute_balance_in_base(Decimal("250"), None), Decimal("250"))

    def test_non_positive_rate_keeps_original_amount(self) -> None:
        self.assertEqual(compute_balance_in_base(Decimal("250"), Decimal("0")), Decimal("250"))
        self.assertEqual(compute_balance_in_base(Decimal("250"), Decimal("-2")), Decimal("250"))

    def test_negative_balances_are_converted(self) -> None:
        result = compute_balance_in_base(Decimal("-40"), Decimal("1.25"))

        self.assertEqual(result, Decimal("-50.00"))

    def test_accepts_plain_numbers(self) -> None:
        self.assertEqual(compute_balance_in_base(10, "0.5"), Decimal("5.0"))

    def test_large_products_are_not_rounded(self) -> None:
        result = compute_balance_in_base(
            Decimal("12345678901234.5678"), Decimal("1000000000.00000001")
        )

        self.assertEqual(result, Decimal("12345678901234567923456.789012345678"))


class NormalizeCurrencyTests(unittest.TestCase):
    def test_uppercases_and_strips(self) -> None:
        self.assertEqual(normalize_currency(" gbp "), "GBP")

    def test_rejects_non_iso_codes(self) -> None:
        for value in ("US", "USDT", "12A", ""):
            with self.subTest(value=value):
                with self.assertRaises(ValueError):
                    normalize_currency(value)


if __name__ == "__main__":
    unittest.main()
