# billing_cron.py
import schedule
import time
from datetime import datetime
import logging

from sqlalchemy.exc import SQLAlchemyError

from careconnect import app, current_rate_table, current_suspension_config
from careconnect.billing import calculate_all_company_billing
from careconnect.errors import BillingError
from careconnect.invoices import calculate_billing_period, issue_invoice
from careconnect.models import Invoice
from careconnect.suspension import get_companies_for_suspension_warning, process_auto_suspensions

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

CYCLE_START_DAYS = (1, 15)


def run_suspension_sweep(now=None):
    """Warn companies approaching suspension, then suspend the ones past the grace period"""
    with app.app_context():
        config = current_suspension_config()
        try:
            for company in get_companies_for_suspension_warning(config, now):
                # TODO: email the company contact once the notification service is wired up
                logger.warning(
                    f"⚠️ {company['company_name']} will be suspended in "
                    f"{company['days_until_suspension']} days (${company['overdue_amount']:.2f} overdue)"
                )
            result = process_auto_suspensions(config, now)
        except Exception as e:
            logger.error(f"❌ Suspension sweep failed: {e}")
            return None

        logger.info(f"✅ Suspension sweep done: {result['suspended']} suspended, {len(result['errors'])} errors")
        return result


def already_invoiced(company_id, period_start):
    """True when a non-void invoice already covers the period starting at ``period_start``"""
    return Invoice.query.filter(
        Invoice.company_id == company_id,
        Invoice.period_start == period_start,
        Invoice.status != "void",
    ).first() is not None


def issue_cycle_invoices(now=None):
    """Issue invoices for every company with active staff; only runs on cycle start days"""
    now = now or datetime.now()
    if now.day not in CYCLE_START_DAYS:
        return []

    period_start, _ = calculate_billing_period(now)
    issued = []
    with app.app_context():
        rate_table = current_rate_table()
        for company in calculate_all_company_billing(rate_table, now).company_breakdown:
            if company.status != "active":
                continue
            if already_invoiced(company.company_id, period_start):
                logger.info(f"{company.company_name} already invoiced for {period_start.date().isoformat()}")
                continue
            try:
                invoice = issue_invoice(company.company_id, now, rate_table, now, billing=company)
                issued.append(invoice.invoice_number)
            except (BillingError, SQLAlchemyError) as e:
                logger.error(f"❌ Could not invoice {company.company_name}: {e}")

    logger.info(f"✅ Issued {len(issued)} invoices for cycle starting {now.date().isoformat()}")
    return issued


def main():
    schedule.every().day.at("00:05").do(issue_cycle_invoices)
    schedule.every().day.at("02:00").do(run_suspension_sweep)

    logger.info("Billing scheduler started")
    while True:
        schedule.run_pending()
        time.sleep(60)


if __name__ == "__main__":
    main()
