from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.orm import validates
from datetime import datetime
import uuid

from careconnect.roles import normalize_role

db = SQLAlchemy()


def _new_company_id():
    return str(uuid.uuid4())


class Company(db.Model):
    __tablename__ = "companies"
    id = db.Column(db.String(64), primary_key=True, default=_new_company_id)
    name = db.Column(db.String(200), nullable=False)
    business_address = db.Column(db.String(300))
    primary_contact_name = db.Column(db.String(200))
    primary_contact_email = db.Column(db.String(200))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    tenants = db.relationship("Tenant", back_populates="company")
    invoices = db.relationship("Invoice", back_populates="company")

class Tenant(db.Model):
    __tablename__ = "tenants"
    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.String(64), db.ForeignKey('companies.id'), index=True, nullable=False)
    name = db.Column(db.String(200))
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    company = db.relationship("Company", back_populates="tenants")
    users = db.relationship("User", back_populates="tenant")

class User(db.Model):
    __tablename__ = "users"
    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey('tenants.id'), index=True, nullable=False)
    username = db.Column(db.String(128))
    email = db.Column(db.String(200))
    role = db.Column(db.String(50), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    # set only when billing deactivated the account, so restore leaves other inactive users alone
    suspended_by_billing = db.Column(db.Boolean, default=False, nullable=False)
    last_billing_sync = db.Column(db.DateTime)
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    tenant = db.relationship("Tenant", back_populates="users")

    @validates("role")
    def validate_role(self, key, value):
        role = normalize_role(value)
        if role is None:
            raise ValueError(f"Unknown role: {value!r}")
        return role.value

class Invoice(db.Model):
    __tablename__ = "invoices"
    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.String(64), db.ForeignKey('companies.id'), index=True, nullable=False)
    invoice_number = db.Column(db.String(64), unique=True, nullable=False)
    period_start = db.Column(db.DateTime)
    period_end = db.Column(db.DateTime)
    issued_at = db.Column(db.DateTime, default=datetime.now)
    due_date = db.Column(db.DateTime, nullable=False)
    subtotal = db.Column(db.Numeric(12, 2), default=0)
    gst_amount = db.Column(db.Numeric(12, 2), default=0)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    status = db.Column(db.String(20), default="pending", nullable=False)  # pending / paid / overdue / void
    line_items = db.Column(db.JSON)
    paid_at = db.Column(db.DateTime)
    payment_reference = db.Column(db.String(128))

    company = db.relationship("Company", back_populates="invoices")

class BillingConfiguration(db.Model):
    __tablename__ = "billing_configuration"
    id = db.Column(db.Integer, primary_key=True)
    rates = db.Column(db.JSON)
    cycle_days = db.Column(db.Integer)
    next_billing_date = db.Column(db.DateTime)
    is_active = db.Column(db.Boolean, default=True)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
