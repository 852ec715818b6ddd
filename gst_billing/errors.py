"""
Error taxonomy for the billing engine.

Every failure a caller can see is a BillingError subclass with a
stable machine-readable code and a human-readable message. The API
layer maps the class to an HTTP status; the engine itself never
decides how an error is displayed.
"""


class BillingError(Exception):
    """Base class for all caller-visible engine failures."""

    code = "billing_error"
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_detail(self) -> dict:
        return {"code": self.code, "message": self.message}


# --- Validation: malformed or missing input, rejected before any write ---

class ValidationError(BillingError):
    code = "validation_error"
    status_code = 400


class MissingStateError(ValidationError):
    code = "missing_state"


class InvalidTaxRate(ValidationError):
    code = "invalid_tax_rate"


class NoCustomerAssigned(ValidationError):
    code = "no_customer_assigned"


class MissingUnitPrice(ValidationError):
    code = "missing_unit_price"


class InvalidAmount(ValidationError):
    code = "invalid_amount"


class InvalidJournalLine(ValidationError):
    code = "invalid_journal_line"


class AccountInactive(ValidationError):
    code = "account_inactive"


class PaymentExceedsBalance(ValidationError):
    code = "payment_exceeds_balance"


# --- Not found ---

class NotFoundError(BillingError):
    code = "not_found"
    status_code = 404


class CompanyNotFound(NotFoundError):
    code = "company_not_found"


class CustomerNotFound(NotFoundError):
    code = "customer_not_found"


class ShipmentNotFound(NotFoundError):
    code = "shipment_not_found"


class InvoiceNotFound(NotFoundError):
    code = "invoice_not_found"


class PaymentNotFound(NotFoundError):
    code = "payment_not_found"


class AccountNotFound(NotFoundError):
    code = "account_not_found"


class JournalEntryNotFound(NotFoundError):
    code = "journal_entry_not_found"


# --- Precondition: the record is in the wrong lifecycle state ---

class PreconditionError(BillingError):
    code = "precondition_failed"
    status_code = 409


class InvoiceNotDraft(PreconditionError):
    code = "invoice_not_draft"


class InvoiceNotFinalized(PreconditionError):
    code = "invoice_not_finalized"


class AlreadyCredited(PreconditionError):
    code = "already_credited"


class InvoiceAlreadyPaid(PreconditionError):
    code = "invoice_already_paid"


class SystemAccountImmutable(PreconditionError):
    code = "system_account_immutable"


# --- Conflict: duplicates and lost races ---

class ConflictError(BillingError):
    code = "conflict"
    status_code = 409


class InvoiceAlreadyExists(ConflictError):
    code = "invoice_already_exists"


class NumberingConflict(ConflictError):
    code = "numbering_conflict"


class AlreadyPosted(ConflictError):
    code = "already_posted"


class ConcurrentModification(ConflictError):
    code = "concurrent_modification"


# --- Compliance: statutory rules ---

class ComplianceError(BillingError):
    code = "compliance_violation"
    status_code = 422


class CashLimitExceeded(ComplianceError):
    code = "cash_limit_exceeded"


# --- Ledger invariant ---

class UnbalancedEntryError(BillingError):
    """Debits and credits of a journal entry differ. Never auto-corrected."""

    code = "unbalanced_entry"
    status_code = 422
