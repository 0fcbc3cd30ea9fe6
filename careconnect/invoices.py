# invoices.py
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
import logging

from sqlalchemy.exc import SQLAlchemyError

from careconnect.billing import PAYMENT_TERMS_DAYS, calculate_company_billing
from careconnect.errors import BillingError, CompanyNotFoundError, InvoiceNotFoundError
from careconnect.models import Company, Invoice, db
from careconnect.rates import DEFAULT_CYCLE_DAYS
from careconnect.staff import billing_suspended_company_ids
from careconnect.suspension import DEFAULT_SUSPENSION_CONFIG, restore_company_access

logger = logging.getLogger(__name__)

GST_RATE = Decimal("0.10")  # 10% GST (Australia)
CENTS = Decimal("0.01")


def _money(value):
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def calculate_billing_period(start, days=DEFAULT_CYCLE_DAYS):
    """Billing period of ``days`` days: start day at 00:00 through the last day at 23:59:59.999999"""
    period_start = datetime(start.year, start.month, start.day)
    period_end = period_start + timedelta(days=days) - timedelta(microseconds=1)
    return period_start, period_end


def generate_invoice_number(company_id, when, sequence):
    return f"INV-{when:%Y%m}-{company_id[:8].upper()}-{sequence:04d}"


def next_invoice_sequence(company_id, when):
    """Sequence numbers run across all companies so numbers never repeat"""
    sequence = Invoice.query.count() + 1
    while Invoice.query.filter_by(invoice_number=generate_invoice_number(company_id, when, sequence)).first():
        sequence += 1
    return sequence


def issue_invoice(company_id, period_start=None, rate_table=None, now=None, billing=None):
    """
    Create a pending invoice for the company's current staff, one line per role.

    Callers that already hold the company's ``CompanyBilling`` pass it as
    ``billing`` to skip recomputing every company.
    """
    now = now or datetime.now()
    company = db.session.get(Company, company_id)
    if company is None:
        raise CompanyNotFoundError(f"Company {company_id} not found")

    if billing is None:
        billing = calculate_company_billing(company_id, rate_table, now)
    if billing is None or not billing.active_staff:
        raise BillingError(f"Company {company.name} has no active staff to bill")

    start, end = calculate_billing_period(period_start or now)

    line_items = []
    subtotal = Decimal("0")
    for line in billing.active_staff:
        if line.count <= 0:
            continue
        total = _money(line.total_monthly)
        line_items.append({
            "description": f"{line.role} Staff Subscription ({DEFAULT_CYCLE_DAYS}-day cycle)",
            "role": line.role,
            "quantity": line.count,
            "unit_price": float(line.monthly_rate),
            "total": float(total),
        })
        subtotal += total

    gst_amount = _money(subtotal * GST_RATE)
    sequence = next_invoice_sequence(company_id, now)

    invoice = Invoice(
        company_id=company_id,
        invoice_number=generate_invoice_number(company_id, now, sequence),
        period_start=start,
        period_end=end,
        issued_at=now,
        due_date=now + timedelta(days=PAYMENT_TERMS_DAYS),
        subtotal=subtotal,
        gst_amount=gst_amount,
        total_amount=subtotal + gst_amount,
        status="pending",
        line_items=line_items,
    )
    try:
        db.session.add(invoice)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info(f"[INVOICE] Generated invoice {invoice.invoice_number} for ${invoice.total_amount:.2f} AUD")
    return invoice


def mark_invoice_paid(invoice_id, payment_reference=None, now=None, config=DEFAULT_SUSPENSION_CONFIG):
    """
    Record payment of an invoice.

    A billing-suspended company gets its access back once no other pending
    invoice is still past the grace period.
    """
    now = now or datetime.now()
    invoice = db.session.get(Invoice, invoice_id)
    if invoice is None:
        raise InvoiceNotFoundError(f"Invoice {invoice_id} not found")
    if invoice.status == "paid":
        return invoice
    if invoice.status == "void":
        raise BillingError(f"Invoice {invoice.invoice_number} is void")

    invoice.status = "paid"
    invoice.paid_at = now
    invoice.payment_reference = payment_reference
    db.session.commit()
    logger.info(f"[INVOICE] Marked invoice {invoice.invoice_number} as paid")

    cutoff = now - timedelta(days=config.grace_period_days)
    still_overdue = Invoice.query.filter(
        Invoice.company_id == invoice.company_id,
        Invoice.status == "pending",
        Invoice.due_date < cutoff,
    ).count()
    if not still_overdue and invoice.company_id in billing_suspended_company_ids([invoice.company_id]):
        restore_company_access(invoice.company_id)

    return invoice


def invoice_history(company_id, limit=12):
    return (
        Invoice.query
        .filter_by(company_id=company_id)
        .order_by(Invoice.issued_at.desc(), Invoice.id.desc())
        .limit(limit)
        .all()
    )


def invoice_to_dict(invoice):
    return {
        "id": invoice.id,
        "invoice_number": invoice.invoice_number,
        "company_id": invoice.company_id,
        "period_start": invoice.period_start.isoformat() if invoice.period_start else None,
        "period_end": invoice.period_end.isoformat() if invoice.period_end else None,
        "issued_at": invoice.issued_at.isoformat() if invoice.issued_at else None,
        "due_date": invoice.due_date.isoformat(),
        "line_items": invoice.line_items or [],
        "subtotal": float(invoice.subtotal or 0),
        "gst_amount": float(invoice.gst_amount or 0),
        "total_amount": float(invoice.total_amount),
        "status": invoice.status,
        "paid_at": invoice.paid_at.isoformat() if invoice.paid_at else None,
        "payment_terms": f"{PAYMENT_TERMS_DAYS} days net",
    }
