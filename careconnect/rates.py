# rates.py
"""Per-role monthly rates and billing cycle configuration"""
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
import logging

from sqlalchemy.exc import SQLAlchemyError

from careconnect.models import BillingConfiguration, db
from careconnect.roles import Role, UNKNOWN_ROLE, normalize_role

logger = logging.getLogger(__name__)

DEFAULT_CYCLE_DAYS = 28


@dataclass(frozen=True)
class RateTable:
    rates: dict
    cycle_days: int = DEFAULT_CYCLE_DAYS
    next_billing_date: datetime = None
    is_active: bool = True

    def rate_for(self, role):
        """Monthly rate for a normalized role; roles without a rate bill at zero"""
        return self.rates.get(role, Decimal("0"))

    def with_next_billing_date(self, now=None):
        if self.next_billing_date is not None:
            return self
        now = now or datetime.now()
        return replace(self, next_billing_date=now + timedelta(days=self.cycle_days))


DEFAULT_RATE_TABLE = RateTable(
    rates={
        Role.SUPPORT_WORKER.value: Decimal("45.00"),
        Role.TEAM_LEADER.value: Decimal("65.00"),
        Role.COORDINATOR.value: Decimal("85.00"),
        Role.ADMIN.value: Decimal("95.00"),
        Role.CONSOLE_MANAGER.value: Decimal("150.00"),
        UNKNOWN_ROLE: Decimal("45.00"),
    },
    cycle_days=DEFAULT_CYCLE_DAYS,
    is_active=True,
)


def _to_rates(raw):
    return {role: Decimal(str(amount)) for role, amount in raw.items()}


def get_billing_config(fallback=DEFAULT_RATE_TABLE, now=None):
    """
    Load the persisted billing configuration.

    Any field missing from the stored row falls back to ``fallback``. When the
    row does not exist or the read fails, ``fallback`` is returned for this
    call only; nothing is cached.
    """
    try:
        config = BillingConfiguration.query.order_by(BillingConfiguration.id).first()
    except SQLAlchemyError as e:
        logger.error(f"[BILLING] Failed to get configuration, using defaults: {e}")
        db.session.rollback()
        return fallback.with_next_billing_date(now)

    if config is None:
        return fallback.with_next_billing_date(now)

    table = RateTable(
        rates=_to_rates(config.rates) if config.rates else fallback.rates,
        cycle_days=config.cycle_days or fallback.cycle_days,
        next_billing_date=config.next_billing_date,
        is_active=config.is_active is not False,
    )
    return table.with_next_billing_date(now)


def canonical_rates(rates):
    """Key rates by canonical role name; unknown role names are rejected"""
    result = {}
    for role, amount in rates.items():
        if str(role).strip().lower() == UNKNOWN_ROLE.lower():
            key = UNKNOWN_ROLE
        else:
            normalized = normalize_role(role)
            if normalized is None:
                raise ValueError(f"Unknown role in rates: {role!r}")
            key = normalized.value
        if key in result:
            raise ValueError(f"Duplicate rate for role {key}")
        result[key] = Decimal(str(amount))
    return result


def save_billing_config(rates=None, cycle_days=None, next_billing_date=None, is_active=None):
    """Create or update the single billing configuration row"""
    if cycle_days is not None and int(cycle_days) <= 0:
        raise ValueError("cycle_days must be positive")
    if rates is not None:
        rates = canonical_rates(rates)

    config = BillingConfiguration.query.order_by(BillingConfiguration.id).first()
    if config is None:
        config = BillingConfiguration()
        db.session.add(config)

    if rates is not None:
        config.rates = {role: float(amount) for role, amount in rates.items()}
    if cycle_days is not None:
        config.cycle_days = int(cycle_days)
    if next_billing_date is not None:
        config.next_billing_date = next_billing_date
    if is_active is not None:
        config.is_active = bool(is_active)

    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info(f"[BILLING] Configuration updated (cycle_days={config.cycle_days}, active={config.is_active})")
    return get_billing_config()


def rate_table_to_dict(table):
    return {
        "rates": {role: float(amount) for role, amount in table.rates.items()},
        "cycle_days": table.cycle_days,
        "next_billing_date": table.next_billing_date.isoformat() if table.next_billing_date else None,
        "is_active": table.is_active,
    }
