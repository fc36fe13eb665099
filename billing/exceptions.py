# billing/exceptions.py


class BillingError(Exception):
    """Base class for recurring billing errors."""
    pass


class InvalidRecurrence(BillingError, ValueError):
    """Frequency / interval / anchor that can't produce a schedule."""
    pass


class DuplicateInvoiceNumber(BillingError):
    """Insert hit the (organization, invoice_number) unique constraint."""

    def __init__(self, organization_id, invoice_number):
        self.organization_id = organization_id
        self.invoice_number = invoice_number
        super().__init__(
            f"Invoice number {invoice_number} already exists for organization {organization_id}"
        )


class TemplateNotFound(BillingError):
    pass


class TenantMismatch(BillingError):
    """A record was referenced from outside the organization that owns it."""
    pass


class TemplateStateError(BillingError):
    pass


class ScheduleConflict(BillingError):
    """
    The template's next_run_date moved between reading it and advancing it.
    Only reachable if the row lock is not honoured by the database.
    """
    pass


class PartialBatchFailure(BillingError):
    """
    Raised by RunDueResult.raise_for_failures() when at least one template
    failed. run_due() itself never raises this; it returns the failures.
    """

    def __init__(self, failures, succeeded: int):
        self.failures = list(failures)
        self.succeeded = succeeded
        ids = ", ".join(str(f.template_id) for f in self.failures)
        super().__init__(
            f"{len(self.failures)} recurring template(s) failed ({ids}); {succeeded} succeeded"
        )


class InvoiceNotFound(BillingError):
    pass


class ExpansionLimitExceeded(BillingError):
    """A schedule needed more steps than allowed to cover a reporting window."""
    pass
