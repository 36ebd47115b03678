from __future__ import annotations

import unittest
from decimal import Decimal

from teloven.utils.fees import (
    compute_order_amounts,
    currency_exponent,
    money_major_to_minor,
    money_minor_to_major,
    platform_fee_minor,
)


class FeePolicyTestCase(unittest.TestCase):
    def test_six_percent_on_thousand(self):
        amounts = compute_order_amounts(1000, 600)
        self.assertEqual(amounts["price"], 1000)
        self.assertEqual(amounts["platform_fee"], 60)
        self.assertEqual(amounts["total"], 1060)

    def test_total_is_price_plus_fee_for_every_price(self):
        for price in range(0, 5000, 7):
            amounts = compute_order_amounts(price, 600)
            self.assertEqual(amounts["total"], amounts["price"] + amounts["platform_fee"])
            self.assertIsInstance(amounts["platform_fee"], int)

    def test_half_up_rounding(self):
        self.assertEqual(platform_fee_minor(25, 600), 2)  # 1.5 -> 2
        self.assertEqual(platform_fee_minor(24, 600), 1)  # 1.44 -> 1
        self.assertEqual(platform_fee_minor(99999, 600), 6000)  # 5999.94 -> 6000

    def test_zero_rate_and_negative_price(self):
        self.assertEqual(compute_order_amounts(1000, 0)["platform_fee"], 0)
        self.assertEqual(compute_order_amounts(-50, 600)["total"], 0)

    def test_currency_exponents(self):
        self.assertEqual(currency_exponent("CLP"), 0)
        self.assertEqual(currency_exponent("usd"), 2)
        self.assertEqual(money_major_to_minor(1060, "CLP"), 1060)
        self.assertEqual(money_major_to_minor("10.60", "USD"), 1060)
        self.assertEqual(money_minor_to_major(1060, "USD"), Decimal("10.60"))
        self.assertEqual(money_minor_to_major(1060, "CLP"), Decimal("1060"))


if __name__ == "__main__":
    unittest.main()
