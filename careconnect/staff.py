# staff.py
"""Active staff counts per company and role"""
from collections import OrderedDict, namedtuple

from sqlalchemy import and_, func

from careconnect.models import Company, Tenant, User, db
from careconnect.roles import role_bucket

StaffRow = namedtuple("StaffRow", ["company_id", "company_name", "tenant_id", "role", "count"])
RoleCount = namedtuple("RoleCount", ["company_id", "role", "count"])


def query_staff_role_counts(tenant_id=None):
    """Active users grouped by company, tenant and the role string as stored"""
    query = (
        db.session.query(
            Company.id,
            Company.name,
            Tenant.id,
            User.role,
            func.count(User.id),
        )
        .join(Tenant, Tenant.company_id == Company.id)
        .join(User, and_(User.tenant_id == Tenant.id, User.is_active.is_(True)))
    )
    if tenant_id is not None:
        query = query.filter(Tenant.id == tenant_id)

    rows = query.group_by(Company.id, Company.name, Tenant.id, User.role).all()
    return [StaffRow(*row) for row in rows]


def aggregate_role_counts(rows):
    """
    Re-bucket raw rows by normalized role.

    The database groups on the stored string, so "admin" and "Admin" arrive
    as separate rows; they must end up in a single bucket per company.
    Returns an ordered mapping of company_id -> dict with ``company_name``,
    ``tenant_id`` and ``roles`` (normalized role -> count).
    """
    companies = OrderedDict()
    for row in rows:
        entry = companies.get(row.company_id)
        if entry is None:
            entry = {"company_name": row.company_name, "tenant_id": row.tenant_id, "roles": OrderedDict()}
            companies[row.company_id] = entry
        bucket = role_bucket(row.role)
        entry["roles"][bucket] = entry["roles"].get(bucket, 0) + int(row.count)
    return companies


def role_counts(tenant_id=None):
    aggregated = aggregate_role_counts(query_staff_role_counts(tenant_id))
    return [
        RoleCount(company_id, role, count)
        for company_id, entry in aggregated.items()
        for role, count in entry["roles"].items()
    ]


def billing_suspended_company_ids(company_ids=None):
    """Companies with at least one user deactivated by a billing suspension"""
    query = (
        db.session.query(Tenant.company_id)
        .join(User, User.tenant_id == Tenant.id)
        .filter(User.suspended_by_billing.is_(True))
    )
    if company_ids is not None:
        query = query.filter(Tenant.company_id.in_(list(company_ids)))
    return {company_id for (company_id,) in query.distinct().all()}
