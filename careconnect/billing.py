# billing.py
"""Tiered per-staff billing: revenue breakdowns, cycle dates and pro-rating"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
import logging
import math

from careconnect.errors import UserNotFoundError
from careconnect.models import User, db
from careconnect.rates import get_billing_config
from careconnect.staff import aggregate_role_counts, billing_suspended_company_ids, query_staff_role_counts

logger = logging.getLogger(__name__)

# Payment is due this many days after the cycle starts
PAYMENT_TERMS_DAYS = 14
SECOND_CYCLE_DAY = 15

STATUS_ACTIVE = "active"
STATUS_SUSPENDED = "suspended"
STATUS_CANCELLED = "cancelled"


@dataclass
class StaffLine:
    role: str
    count: int
    monthly_rate: Decimal
    total_monthly: Decimal

    def to_dict(self):
        return {
            "role": self.role,
            "count": self.count,
            "monthly_rate": float(self.monthly_rate),
            "total_monthly": float(self.total_monthly),
        }


@dataclass
class CompanyBilling:
    company_id: str
    company_name: str
    tenant_id: int
    current_cycle_start: datetime
    next_billing_date: datetime
    active_staff: list = field(default_factory=list)
    total_monthly_revenue: Decimal = Decimal("0")
    status: str = STATUS_ACTIVE

    @property
    def staff_count(self):
        return sum(line.count for line in self.active_staff)

    def to_dict(self):
        return {
            "company_id": self.company_id,
            "company_name": self.company_name,
            "tenant_id": self.tenant_id,
            "active_staff": [line.to_dict() for line in self.active_staff],
            "total_monthly_revenue": float(self.total_monthly_revenue),
            "current_cycle_start": self.current_cycle_start.isoformat(),
            "next_billing_date": self.next_billing_date.isoformat(),
            "status": self.status,
        }


@dataclass
class UsageAnalytics:
    total_companies: int
    total_active_staff: int
    total_monthly_revenue: Decimal
    role_distribution: list
    company_breakdown: list

    def to_dict(self):
        return {
            "total_companies": self.total_companies,
            "total_active_staff": self.total_active_staff,
            "total_monthly_revenue": float(self.total_monthly_revenue),
            "role_distribution": [
                {"role": item["role"], "count": item["count"], "revenue": float(item["revenue"])}
                for item in self.role_distribution
            ],
            "company_breakdown": [company.to_dict() for company in self.company_breakdown],
        }


def get_current_cycle_start(date=None):
    """Cycles start on the 1st and the 15th of each month, at local midnight"""
    date = date or datetime.now()
    day = 1 if date.day < SECOND_CYCLE_DAY else SECOND_CYCLE_DAY
    return datetime(date.year, date.month, day)


def get_next_billing_date(cycle_start):
    # Fixed payment terms; the configured cycle length does not move the due date
    return cycle_start + timedelta(days=PAYMENT_TERMS_DAYS)


def calculate_prorated_amount(daily_rate, change_date, cycle_end_date):
    """Charge ``daily_rate`` for every started day left between the change and the cycle end"""
    seconds = (cycle_end_date - change_date).total_seconds()
    remaining_days = max(0, math.ceil(seconds / 86400))
    return daily_rate * remaining_days


def _build_analytics(rows, rate_table, now):
    aggregated = aggregate_role_counts(rows)
    suspended = billing_suspended_company_ids(aggregated.keys()) if aggregated else set()

    cycle_start = get_current_cycle_start(now)
    next_billing_date = get_next_billing_date(cycle_start)

    breakdown = []
    for company_id, entry in aggregated.items():
        company = CompanyBilling(
            company_id=company_id,
            company_name=entry["company_name"],
            tenant_id=entry["tenant_id"],
            current_cycle_start=cycle_start,
            next_billing_date=next_billing_date,
            status=STATUS_SUSPENDED if company_id in suspended else STATUS_ACTIVE,
        )
        for role, count in entry["roles"].items():
            monthly_rate = rate_table.rate_for(role)
            total_monthly = monthly_rate * count
            company.active_staff.append(StaffLine(role, count, monthly_rate, total_monthly))
            company.total_monthly_revenue += total_monthly
        breakdown.append(company)

    distribution = {}
    for company in breakdown:
        for line in company.active_staff:
            item = distribution.setdefault(line.role, {"role": line.role, "count": 0, "revenue": Decimal("0")})
            item["count"] += line.count
            item["revenue"] += line.total_monthly

    return UsageAnalytics(
        total_companies=len(breakdown),
        total_active_staff=sum(company.staff_count for company in breakdown),
        total_monthly_revenue=sum((company.total_monthly_revenue for company in breakdown), Decimal("0")),
        role_distribution=list(distribution.values()),
        company_breakdown=breakdown,
    )


def calculate_tenant_billing(tenant_id, rate_table=None, now=None):
    """Billing analytics restricted to a single tenant"""
    rate_table = rate_table or get_billing_config(now=now)
    rows = query_staff_role_counts(tenant_id=tenant_id)
    return _build_analytics(rows, rate_table, now)


def calculate_all_company_billing(rate_table=None, now=None):
    """Billing analytics across every company with active staff"""
    rate_table = rate_table or get_billing_config(now=now)
    rows = query_staff_role_counts()
    return _build_analytics(rows, rate_table, now)


def calculate_company_billing(company_id, rate_table=None, now=None):
    analytics = calculate_all_company_billing(rate_table, now)
    return next((c for c in analytics.company_breakdown if c.company_id == company_id), None)


def update_staff_billing_status(user_id, is_active, effective_date=None):
    """Activate or deactivate one staff account and stamp the billing sync time"""
    effective_date = effective_date or datetime.now()
    user = db.session.get(User, user_id)
    if user is None:
        raise UserNotFoundError(f"User {user_id} not found")

    user.is_active = bool(is_active)
    # an explicit decision replaces any billing suspension, so restore leaves this user alone
    user.suspended_by_billing = False
    user.last_billing_sync = datetime.now()
    db.session.commit()

    logger.info(f"[BILLING] Staff {user_id} {'activated' if is_active else 'deactivated'} on {effective_date.isoformat()}")
    return user


def generate_billing_summary(rate_table=None, now=None):
    """Plain-text billing report for the whole platform"""
    now = now or datetime.now()
    analytics = calculate_all_company_billing(rate_table, now)

    lines = [
        "=== CareConnect Billing Summary ===",
        f"Generated: {now.isoformat()}",
        "",
        "PLATFORM OVERVIEW:",
        f"- Total Companies: {analytics.total_companies}",
        f"- Total Active Staff: {analytics.total_active_staff}",
        f"- Monthly Revenue: ${analytics.total_monthly_revenue:.2f}",
        "",
        "ROLE DISTRIBUTION:",
    ]
    for item in analytics.role_distribution:
        lines.append(f"- {item['role']}: {item['count']} staff (${item['revenue']:.2f}/month)")

    lines += ["", "COMPANY BREAKDOWN:"]
    for company in analytics.company_breakdown:
        staff = ", ".join(f"{line.count} {line.role}" for line in company.active_staff)
        lines += [
            "",
            f"Company: {company.company_name} ({company.company_id})",
            f"- Monthly Revenue: ${company.total_monthly_revenue:.2f}",
            f"- Next Billing: {company.next_billing_date.date().isoformat()}",
            f"- Staff: {staff}",
        ]

    return "\n".join(lines) + "\n"
