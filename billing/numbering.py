"""
Invoice number allocation.

Numbers look like INV-0001 and grow past four digits (INV-10000) instead of
wrapping. Allocation must happen inside the same transaction that inserts the
invoice: the organization row is locked while the next number is worked out,
and the (organization, invoice_number) unique constraint is the backstop if
two writers still collide.
"""

import logging
import re

from django.db import IntegrityError, transaction
from django.db.models.functions import Length

from .conf import billing_setting
from .exceptions import DuplicateInvoiceNumber
from .models import Invoice, Organization

logger = logging.getLogger(__name__)


def format_invoice_number(sequence: int) -> str:
    prefix = billing_setting("INVOICE_NUMBER_PREFIX")
    width = billing_setting("INVOICE_NUMBER_WIDTH")
    return f"{prefix}{sequence:0{width}d}"


def parse_invoice_number(invoice_number: str) -> int | None:
    """Numeric part of a number in our format, or None for anything else."""
    prefix = billing_setting("INVOICE_NUMBER_PREFIX")
    match = re.fullmatch(re.escape(prefix) + r"(\d+)", invoice_number or "")
    if not match:
        return None
    return int(match.group(1))


def highest_invoice_sequence(organization) -> int:
    """
    Highest sequence among the organization's existing invoice numbers.

    Zero-padded numbers sort correctly as strings only within one length,
    so order by length first (INV-10000 beats INV-9999).
    """
    prefix = billing_setting("INVOICE_NUMBER_PREFIX")
    latest = (
        Invoice.objects
        .filter(
            organization_id=organization.pk,
            invoice_number__regex=r"^" + re.escape(prefix) + r"[0-9]+$",
        )
        .annotate(number_length=Length("invoice_number"))
        .order_by("-number_length", "-invoice_number")
        .values_list("invoice_number", flat=True)
        .first()
    )
    if latest is None:
        return 0
    return parse_invoice_number(latest) or 0


def next_invoice_number(organization) -> str:
    """
    Allocate the next invoice number for `organization`.

    Must be called inside transaction.atomic(); the row lock on the
    organization is held until that transaction ends, which is what makes
    the number exclusive. Nothing is reserved if the caller rolls back.
    """
    if not transaction.get_connection().in_atomic_block:
        raise transaction.TransactionManagementError(
            "next_invoice_number() must run inside the transaction that inserts the invoice."
        )

    locked = Organization.objects.select_for_update().get(pk=organization.pk)

    sequence = max(locked.last_invoice_number, highest_invoice_sequence(locked)) + 1
    Organization.objects.filter(pk=locked.pk).update(last_invoice_number=sequence)

    organization.last_invoice_number = sequence
    return format_invoice_number(sequence)


def insert_invoice(invoice: Invoice) -> Invoice:
    """
    INSERT the invoice, turning a clash on (organization, invoice_number)
    into DuplicateInvoiceNumber. Runs in a savepoint so the caller's
    transaction is still usable afterwards; other integrity errors propagate
    unchanged.
    """
    try:
        with transaction.atomic():
            invoice.save(force_insert=True)
    except IntegrityError as exc:
        clash = Invoice.objects.filter(
            organization_id=invoice.organization_id,
            invoice_number=invoice.invoice_number,
        ).exists()
        if clash:
            logger.warning(
                f"Invoice number {invoice.invoice_number} already taken "
                f"for organization {invoice.organization_id}"
            )
            raise DuplicateInvoiceNumber(invoice.organization_id, invoice.invoice_number) from exc
        raise
    return invoice
