import unittest
from datetime import datetime, timedelta
from decimal import Decimal
from unittest import mock

from sqlalchemy.exc import OperationalError

from careconnect import db
from careconnect.models import BillingConfiguration
from careconnect.billing import calculate_all_company_billing
from careconnect.rates import DEFAULT_RATE_TABLE, RateTable, canonical_rates, get_billing_config, save_billing_config
from helpers import NOW, DatabaseTestCase, make_company


class DefaultRateTableTests(unittest.TestCase):
    def test_default_rates(self):
        self.assertEqual(DEFAULT_RATE_TABLE.rates["SupportWorker"], Decimal("45.00"))
        self.assertEqual(DEFAULT_RATE_TABLE.rates["Admin"], Decimal("95.00"))
        self.assertEqual(DEFAULT_RATE_TABLE.rates["ConsoleManager"], Decimal("150.00"))
        self.assertEqual(DEFAULT_RATE_TABLE.rates["Unknown"], Decimal("45.00"))
        self.assertEqual(DEFAULT_RATE_TABLE.cycle_days, 28)
        self.assertTrue(DEFAULT_RATE_TABLE.is_active)

    def test_missing_rate_is_zero(self):
        table = RateTable(rates={"Admin": Decimal("95")})
        self.assertEqual(table.rate_for("Coordinator"), Decimal("0"))


class GetBillingConfigTests(DatabaseTestCase, unittest.TestCase):
    def test_no_row_returns_defaults(self):
        table = get_billing_config(now=NOW)
        self.assertEqual(table.rates, DEFAULT_RATE_TABLE.rates)
        self.assertEqual(table.next_billing_date, NOW + timedelta(days=28))

    def test_stored_row_is_used(self):
        db.session.add(BillingConfiguration(
            rates={"Admin": 100, "SupportWorker": 50.5},
            cycle_days=14,
            next_billing_date=datetime(2026, 4, 1),
            is_active=False,
        ))
        db.session.commit()

        table = get_billing_config(now=NOW)
        self.assertEqual(table.rates, {"Admin": Decimal("100"), "SupportWorker": Decimal("50.5")})
        self.assertEqual(table.cycle_days, 14)
        self.assertEqual(table.next_billing_date, datetime(2026, 4, 1))
        self.assertFalse(table.is_active)

    def test_partial_row_falls_back_per_field(self):
        db.session.add(BillingConfiguration(rates=None, cycle_days=None, is_active=None))
        db.session.commit()

        table = get_billing_config(now=NOW)
        self.assertEqual(table.rates, DEFAULT_RATE_TABLE.rates)
        self.assertEqual(table.cycle_days, 28)
        self.assertTrue(table.is_active)

    def test_read_failure_returns_injected_fallback(self):
        fallback = RateTable(rates={"Admin": Decimal("1")}, cycle_days=7)
        failing = mock.MagicMock()
        failing.query.order_by.return_value.first.side_effect = OperationalError("SELECT", {}, Exception("db down"))

        with mock.patch("careconnect.rates.BillingConfiguration", failing):
            table = get_billing_config(fallback=fallback, now=NOW)

        self.assertEqual(table.rates, {"Admin": Decimal("1")})
        self.assertEqual(table.next_billing_date, NOW + timedelta(days=7))

    def test_failure_is_not_cached(self):
        failing = mock.MagicMock()
        failing.query.order_by.return_value.first.side_effect = OperationalError("SELECT", {}, Exception("db down"))
        with mock.patch("careconnect.rates.BillingConfiguration", failing):
            get_billing_config(now=NOW)

        save_billing_config(rates={"Admin": Decimal("120")})
        self.assertEqual(get_billing_config(now=NOW).rates, {"Admin": Decimal("120")})


class SaveBillingConfigTests(DatabaseTestCase, unittest.TestCase):
    def test_upserts_single_row(self):
        save_billing_config(rates={"Admin": Decimal("99.50")}, cycle_days=30)
        save_billing_config(is_active=False)

        self.assertEqual(BillingConfiguration.query.count(), 1)
        table = get_billing_config(now=NOW)
        self.assertEqual(table.rates["Admin"], Decimal("99.5"))
        self.assertEqual(table.cycle_days, 30)
        self.assertFalse(table.is_active)

    def test_rejects_non_positive_cycle(self):
        with self.assertRaises(ValueError):
            save_billing_config(cycle_days=0)

    def test_rate_keys_are_canonicalized(self):
        save_billing_config(rates={"admin": 95, "SUPPORTWORKER": 40, "unknown": 10})

        table = get_billing_config(now=NOW)
        self.assertEqual(table.rates, {"Admin": Decimal("95"), "SupportWorker": Decimal("40"), "Unknown": Decimal("10")})

    def test_lowercase_key_bills_the_role(self):
        make_company(staff={"Admin": 2})
        save_billing_config(rates={"admin": 95})

        analytics = calculate_all_company_billing(get_billing_config(now=NOW), NOW)
        self.assertEqual(analytics.total_monthly_revenue, Decimal("190"))

    def test_unknown_role_rejected_before_saving(self):
        with self.assertRaises(ValueError):
            save_billing_config(rates={"Janitor": 5})
        self.assertEqual(BillingConfiguration.query.count(), 0)

    def test_duplicate_role_rejected(self):
        with self.assertRaises(ValueError):
            canonical_rates({"Admin": 95, "admin": 90})


if __name__ == '__main__':
    unittest.main()
