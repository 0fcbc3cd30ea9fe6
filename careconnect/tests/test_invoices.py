import unittest
from datetime import datetime, timedelta
from decimal import Decimal
from unittest import mock

from careconnect import db
from careconnect.billing import calculate_company_billing
from careconnect.errors import BillingError, CompanyNotFoundError, InvoiceNotFoundError
from careconnect.invoices import (
    calculate_billing_period,
    generate_invoice_number,
    invoice_history,
    invoice_to_dict,
    issue_invoice,
    mark_invoice_paid,
    next_invoice_sequence,
)
from careconnect.models import User
from careconnect.rates import DEFAULT_RATE_TABLE
from careconnect.suspension import suspend_company_access
from helpers import NOW, DatabaseTestCase, make_company, make_invoice


class BillingPeriodTests(unittest.TestCase):
    def test_twenty_eight_day_period(self):
        start, end = calculate_billing_period(datetime(2026, 3, 20, 15, 42))
        self.assertEqual(start, datetime(2026, 3, 20))
        self.assertEqual(end, datetime(2026, 4, 16, 23, 59, 59, 999999))

    def test_invoice_number_format(self):
        number = generate_invoice_number("3f2a9c1e-aaaa-bbbb", datetime(2026, 3, 1), 7)
        self.assertEqual(number, "INV-202603-3F2A9C1E-0007")


class IssueInvoiceTests(DatabaseTestCase, unittest.TestCase):
    def test_lines_gst_and_due_date(self):
        company, _ = make_company(staff={"SupportWorker": 3, "Admin": 1})

        invoice = issue_invoice(company.id, rate_table=DEFAULT_RATE_TABLE, now=NOW)

        self.assertEqual(invoice.status, "pending")
        self.assertEqual(invoice.subtotal, Decimal("230.00"))
        self.assertEqual(invoice.gst_amount, Decimal("23.00"))
        self.assertEqual(invoice.total_amount, Decimal("253.00"))
        self.assertEqual(invoice.due_date, NOW + timedelta(days=14))
        self.assertEqual(invoice.period_start, datetime(2026, 3, 20))
        roles = {item["role"]: item["quantity"] for item in invoice.line_items}
        self.assertEqual(roles, {"SupportWorker": 3, "Admin": 1})

    def test_sequence_increments(self):
        company, _ = make_company(staff={"Admin": 1})
        first = issue_invoice(company.id, rate_table=DEFAULT_RATE_TABLE, now=NOW)
        second = issue_invoice(company.id, rate_table=DEFAULT_RATE_TABLE, now=NOW)

        self.assertTrue(first.invoice_number.endswith("-0001"))
        self.assertTrue(second.invoice_number.endswith("-0002"))

    def test_numbers_unique_across_companies_with_same_prefix(self):
        alpha, _ = make_company("Alpha", company_id="company-alpha", staff={"Admin": 1})
        beta, _ = make_company("Beta", company_id="company-beta", staff={"Admin": 1})

        first = issue_invoice(alpha.id, rate_table=DEFAULT_RATE_TABLE, now=NOW)
        second = issue_invoice(beta.id, rate_table=DEFAULT_RATE_TABLE, now=NOW)

        self.assertNotEqual(first.invoice_number, second.invoice_number)
        self.assertEqual(next_invoice_sequence(alpha.id, NOW), 3)

    def test_precomputed_billing_is_used(self):
        company, _ = make_company(staff={"Admin": 1})
        billing = calculate_company_billing(company.id, DEFAULT_RATE_TABLE, NOW)

        with mock.patch("careconnect.invoices.calculate_company_billing") as recompute:
            invoice = issue_invoice(company.id, rate_table=DEFAULT_RATE_TABLE, now=NOW, billing=billing)

        recompute.assert_not_called()
        self.assertEqual(invoice.subtotal, Decimal("95.00"))

    def test_unknown_company(self):
        with self.assertRaises(CompanyNotFoundError):
            issue_invoice("missing", rate_table=DEFAULT_RATE_TABLE, now=NOW)

    def test_company_without_staff(self):
        company, _ = make_company(staff={})
        with self.assertRaises(BillingError):
            issue_invoice(company.id, rate_table=DEFAULT_RATE_TABLE, now=NOW)


class MarkInvoicePaidTests(DatabaseTestCase, unittest.TestCase):
    def test_payment_restores_suspended_company(self):
        company, tenant = make_company(staff={"Admin": 2})
        invoice = make_invoice(company.id, days_overdue=70)
        suspend_company_access(company.id)

        paid = mark_invoice_paid(invoice.id, payment_reference="pi_123", now=NOW)

        self.assertEqual(paid.status, "paid")
        self.assertEqual(paid.payment_reference, "pi_123")
        db.session.expire_all()
        self.assertTrue(all(u.is_active for u in User.query.filter_by(tenant_id=tenant.id)))

    def test_stays_suspended_while_other_invoices_overdue(self):
        company, tenant = make_company(staff={"Admin": 1})
        invoice = make_invoice(company.id, days_overdue=70, number="INV-1")
        make_invoice(company.id, days_overdue=65, number="INV-2")
        suspend_company_access(company.id)

        mark_invoice_paid(invoice.id, now=NOW)

        db.session.expire_all()
        self.assertFalse(User.query.filter_by(tenant_id=tenant.id).one().is_active)

    def test_missing_invoice(self):
        with self.assertRaises(InvoiceNotFoundError):
            mark_invoice_paid(404, now=NOW)

    def test_void_invoice_cannot_be_paid(self):
        company, _ = make_company(staff={"Admin": 1})
        invoice = make_invoice(company.id, days_overdue=5, status="void")
        with self.assertRaises(BillingError):
            mark_invoice_paid(invoice.id, now=NOW)


class InvoiceHistoryTests(DatabaseTestCase, unittest.TestCase):
    def test_newest_first_and_limited(self):
        company, _ = make_company(staff={"Admin": 1})
        for days in (40, 20, 5):
            make_invoice(company.id, days_overdue=days)

        history = invoice_history(company.id, limit=2)

        self.assertEqual(len(history), 2)
        self.assertTrue(history[0].issued_at > history[1].issued_at)
        data = invoice_to_dict(history[0])
        self.assertEqual(data["payment_terms"], "14 days net")
        self.assertEqual(data["total_amount"], 100.0)


if __name__ == '__main__':
    unittest.main()
