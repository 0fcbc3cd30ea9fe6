# suspension.py
"""Automatic suspension of companies with long-overdue invoices"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
import logging
import math

from sqlalchemy import and_, exists
from sqlalchemy.exc import SQLAlchemyError

from careconnect.errors import CompanyNotFoundError
from careconnect.models import Company, Invoice, Tenant, User, db

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SuspensionConfig:
    grace_period_days: int = 60
    warning_days: tuple = (30, 14, 7)
    auto_suspend_enabled: bool = True
    # companies further overdue than this are left for manual review
    max_overdue_days: int = 90


DEFAULT_SUSPENSION_CONFIG = SuspensionConfig()


def _days_between(later, earlier):
    return math.floor((later - earlier).total_seconds() / 86400)


def _active_user_exists():
    return exists().where(and_(
        Tenant.company_id == Invoice.company_id,
        User.tenant_id == Tenant.id,
        User.is_active.is_(True),
    ))


def _overdue_by_company(cutoff, now):
    """Group pending invoices due before ``cutoff`` by company, skipping companies with no active users"""
    invoices = (
        db.session.query(Invoice, Company.name)
        .join(Company, Company.id == Invoice.company_id)
        .filter(
            Invoice.status == "pending",
            Invoice.due_date < cutoff,
            _active_user_exists(),
        )
        .all()
    )

    companies = {}
    for invoice, company_name in invoices:
        entry = companies.get(invoice.company_id)
        amount = Decimal(str(invoice.total_amount))
        if entry is None:
            companies[invoice.company_id] = {
                "company_name": company_name,
                "overdue_amount": amount,
                "invoice_count": 1,
                "oldest_due_date": invoice.due_date,
            }
        else:
            entry["overdue_amount"] += amount
            entry["invoice_count"] += 1
            if invoice.due_date < entry["oldest_due_date"]:
                entry["oldest_due_date"] = invoice.due_date

    return [
        {
            "company_id": company_id,
            "company_name": data["company_name"],
            "days_overdue": _days_between(now, data["oldest_due_date"]),
            "overdue_amount": data["overdue_amount"],
            "invoice_count": data["invoice_count"],
        }
        for company_id, data in companies.items()
    ]


def get_companies_for_auto_suspension(config=DEFAULT_SUSPENSION_CONFIG, now=None):
    """Companies whose oldest pending invoice is past the grace period"""
    now = now or datetime.now()
    cutoff = now - timedelta(days=config.grace_period_days)
    logger.info(f"[AUTO SUSPENSION] Checking for companies with invoices overdue since {cutoff.isoformat()}")

    result = [
        company for company in _overdue_by_company(cutoff, now)
        if company["days_overdue"] >= config.grace_period_days
    ]

    logger.info(f"[AUTO SUSPENSION] Found {len(result)} companies eligible for suspension")
    return result


def get_companies_for_suspension_warning(config=DEFAULT_SUSPENSION_CONFIG, now=None):
    """Companies that are exactly one of ``config.warning_days`` away from suspension"""
    now = now or datetime.now()
    result = []
    for company in _overdue_by_company(now, now):
        days_until = config.grace_period_days - company["days_overdue"]
        if days_until in config.warning_days:
            company["days_until_suspension"] = days_until
            result.append(company)
    return result


def _tenant_ids_for_company(company_id):
    tenant_ids = [tenant_id for (tenant_id,) in db.session.query(Tenant.id).filter(Tenant.company_id == company_id).all()]
    if not tenant_ids:
        raise CompanyNotFoundError(f"Company {company_id} not found")
    return tenant_ids


def suspend_company_access(company_id):
    """Deactivate every active user of the company; returns how many were deactivated"""
    tenant_ids = _tenant_ids_for_company(company_id)
    try:
        count = (
            User.query
            .filter(User.tenant_id.in_(tenant_ids), User.is_active.is_(True))
            .update(
                {"is_active": False, "suspended_by_billing": True, "last_billing_sync": datetime.now()},
                synchronize_session=False,
            )
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info(f"[BILLING] Company {company_id} suspended for non-payment ({count} users deactivated)")
    return count


def restore_company_access(company_id):
    """Reactivate only the users a billing suspension deactivated"""
    tenant_ids = _tenant_ids_for_company(company_id)
    try:
        count = (
            User.query
            .filter(User.tenant_id.in_(tenant_ids), User.suspended_by_billing.is_(True))
            .update(
                {"is_active": True, "suspended_by_billing": False, "last_billing_sync": datetime.now()},
                synchronize_session=False,
            )
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info(f"[BILLING] Company {company_id} access restored after payment ({count} users reactivated)")
    return count


def process_auto_suspensions(config=DEFAULT_SUSPENSION_CONFIG, now=None):
    """
    Suspend every company overdue past the grace period.

    Companies beyond ``max_overdue_days`` are never suspended automatically;
    they are reported for manual review. A failure on one company is recorded
    in ``errors`` and the run moves on to the next.
    """
    if not config.auto_suspend_enabled:
        logger.info("[AUTO SUSPENSION] Auto suspension is disabled")
        return {"suspended": 0, "errors": [], "manual_review": []}

    candidates = get_companies_for_auto_suspension(config, now)
    suspended = 0
    errors = []
    manual_review = []

    for company in candidates:
        name = company["company_name"]
        try:
            if company["days_overdue"] <= config.max_overdue_days:
                suspend_company_access(company["company_id"])
                suspended += 1
                logger.info(
                    f"[AUTO SUSPENSION] Suspended {name} "
                    f"({company['days_overdue']} days overdue, ${company['overdue_amount']:.2f})"
                )
            else:
                message = (
                    f"Company {name} is {company['days_overdue']} days overdue "
                    f"(exceeds max {config.max_overdue_days} days) - manual review required"
                )
                errors.append(message)
                manual_review.append(company["company_id"])
                logger.warning(f"[AUTO SUSPENSION SKIP] {message}")
        except Exception as e:
            message = f"Failed to suspend {name}: {e}"
            errors.append(message)
            logger.error(f"[AUTO SUSPENSION ERROR] {message}")

    logger.info(f"[AUTO SUSPENSION COMPLETE] Suspended: {suspended}, Errors: {len(errors)}")
    return {"suspended": suspended, "errors": errors, "manual_review": manual_review}


def suspension_config_from_app(config):
    """Build a SuspensionConfig from Flask app config values"""
    return SuspensionConfig(
        grace_period_days=config.get("BILLING_GRACE_PERIOD_DAYS", DEFAULT_SUSPENSION_CONFIG.grace_period_days),
        max_overdue_days=config.get("BILLING_MAX_OVERDUE_DAYS", DEFAULT_SUSPENSION_CONFIG.max_overdue_days),
        auto_suspend_enabled=config.get("BILLING_AUTO_SUSPEND", DEFAULT_SUSPENSION_CONFIG.auto_suspend_enabled),
    )


def candidate_to_dict(company):
    data = dict(company)
    data["overdue_amount"] = float(company["overdue_amount"])
    return data
