class BillingError(Exception):
    """Base error for billing operations"""


class CompanyNotFoundError(BillingError):
    pass


class UserNotFoundError(BillingError):
    pass


class InvoiceNotFoundError(BillingError):
    pass
