# billing/services/invoicing.py
"""
Manually entered invoices.

Numbers come from the same allocator the recurring runner uses, inside the
same transaction as the insert. A DuplicateInvoiceNumber is handed back to
the caller to retry.
"""

import logging
from decimal import Decimal

from django.db import transaction
from django.utils import timezone

from ..exceptions import InvoiceNotFound, TenantMismatch
from ..models import Invoice, InvoiceItem, InvoiceStatus, build_invoice_items
from ..numbering import insert_invoice, next_invoice_number
from .tenancy import get_for_organization

logger = logging.getLogger(__name__)


def get_invoice(organization, invoice_id) -> Invoice:
    return get_for_organization(Invoice, organization, invoice_id, InvoiceNotFound)


@transaction.atomic
def create_invoice(
    organization,
    contact,
    items,
    due_date=None,
    issue_date=None,
    status=InvoiceStatus.DRAFT,
    paid_at=None,
    tax=Decimal("0.00"),
    notes: str = "",
) -> Invoice:
    if contact is not None and contact.organization_id != organization.pk:
        raise TenantMismatch(f"Contact {contact.pk} does not belong to organization {organization.pk}")

    if status == InvoiceStatus.PAID and paid_at is None:
        paid_at = timezone.now()

    invoice = Invoice(
        organization=organization,
        contact=contact,
        invoice_number=next_invoice_number(organization),
        status=status,
        issue_date=issue_date or timezone.now(),
        due_date=due_date,
        paid_at=paid_at,
        tax=Decimal(str(tax)),
        currency=organization.currency,
        notes=notes,
    )
    insert_invoice(invoice)

    InvoiceItem.objects.bulk_create(build_invoice_items(invoice, items))
    invoice.recompute_totals_from_items()
    invoice.save(update_fields=["subtotal", "total", "updated_at"])

    logger.info(f"Created invoice {invoice.invoice_number} for organization {organization.pk}")
    return invoice


@transaction.atomic
def update_invoice_status(organization, invoice_id, status) -> Invoice:
    """
    Move an invoice to `status`. Marking it PAID stamps paid_at (unless it's
    already set); moving it out of PAID clears paid_at.
    """
    invoice = get_invoice(organization, invoice_id)
    status = InvoiceStatus(status)

    invoice.status = status
    if status == InvoiceStatus.PAID:
        invoice.paid_at = invoice.paid_at or timezone.now()
    else:
        invoice.paid_at = None

    invoice.save(update_fields=["status", "paid_at", "updated_at"])
    return invoice


def replace_invoice_items(organization, invoice_id, items) -> Invoice:
    invoice = get_invoice(organization, invoice_id)
    invoice.replace_items(items)
    return invoice


def delete_invoice(organization, invoice_id) -> None:
    """
    Delete an invoice. Its number is not reused: the organization's
    last_invoice_number counter never goes backwards.
    """
    invoice = get_invoice(organization, invoice_id)
    logger.info(f"Deleting invoice {invoice.invoice_number} for organization {organization.pk}")
    invoice.delete()
