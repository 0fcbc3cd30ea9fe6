from datetime import datetime, timedelta
from decimal import Decimal
from unittest import mock

from careconnect import app, db
from careconnect.models import Company, Invoice, Tenant, User

NOW = datetime(2026, 3, 20, 10, 30)


class DatabaseTestCase:
    """Mixin that gives each test a fresh in-memory schema"""

    def setUp(self):
        app.config['TESTING'] = True
        self.ctx = app.app_context()
        self.ctx.push()
        db.create_all()

    def tearDown(self):
        db.session.remove()
        db.drop_all()
        self.ctx.pop()


def make_company(name="Sunrise Care", company_id=None, staff=None, is_active=True):
    """Company with one tenant and users given as {role: count}"""
    company = Company(id=company_id, name=name) if company_id else Company(name=name)
    db.session.add(company)
    db.session.flush()
    tenant = Tenant(company_id=company.id, name=f"{name} tenant")
    db.session.add(tenant)
    db.session.flush()
    for role, count in (staff or {}).items():
        for i in range(count):
            db.session.add(User(
                tenant_id=tenant.id,
                username=f"{role.lower()}{i}@{tenant.id}",
                role=role,
                is_active=is_active,
            ))
    db.session.commit()
    return company, tenant


def add_legacy_user(tenant_id, role, is_active=True):
    """Insert a user bypassing role validation, as older rows were written"""
    db.session.execute(User.__table__.insert().values(
        tenant_id=tenant_id,
        username=f"legacy-{role}",
        role=role,
        is_active=is_active,
        suspended_by_billing=False,
    ))
    db.session.commit()


def make_invoice(company_id, days_overdue, amount="100.00", status="pending", now=NOW, number=None):
    invoice = Invoice(
        company_id=company_id,
        invoice_number=number or f"INV-{company_id[:8]}-{days_overdue}-{status}",
        issued_at=now - timedelta(days=days_overdue + 14),
        due_date=now - timedelta(days=days_overdue),
        total_amount=Decimal(amount),
        status=status,
    )
    db.session.add(invoice)
    db.session.commit()
    return invoice


def auth_headers():
    return {"Authorization": "Bearer test-token"}


def patch_claims(role, tenant_id=None):
    claims = {"sub": "user-1", "custom:role": role}
    if tenant_id is not None:
        claims["custom:tenant_id"] = str(tenant_id)
    return mock.patch("careconnect.auth.verify_jwt", return_value=claims)
