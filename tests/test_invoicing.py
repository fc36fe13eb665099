"""Manual invoice services and model-level date normalization."""

from datetime import date, datetime, timezone as dt_timezone
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError

from billing.exceptions import InvoiceNotFound, TenantMismatch
from billing.models import Expense, ExpenseType, InvoiceStatus, RecurringTemplate
from billing.recurrence import noonify
from billing.services.invoicing import (
    create_invoice,
    get_invoice,
    replace_invoice_items,
    update_invoice_status,
)

pytestmark = pytest.mark.django_db

ITEMS = [{"description": "Aeration", "quantity": 1, "unit_price": "120.00"}]


class TestInvoiceServices:

    def test_paid_on_creation_is_stamped(self, organization, contact):
        invoice = create_invoice(organization, contact, ITEMS, status=InvoiceStatus.PAID)
        assert invoice.paid_at is not None

    def test_status_changes_manage_paid_at(self, organization, contact):
        invoice = create_invoice(organization, contact, ITEMS)

        paid = update_invoice_status(organization, invoice.pk, InvoiceStatus.PAID)
        assert paid.paid_at is not None

        reopened = update_invoice_status(organization, invoice.pk, InvoiceStatus.SENT)
        assert reopened.paid_at is None

    def test_replace_items_recomputes_totals(self, organization, contact):
        invoice = create_invoice(organization, contact, ITEMS)

        replace_invoice_items(organization, invoice.pk, [
            {"description": "Mowing", "quantity": 3, "unit_price": "40.00"},
            {"description": "Edging", "quantity": 1, "unit_price": "15.50"},
        ])

        invoice.refresh_from_db()
        assert invoice.total == Decimal("135.50")
        assert list(invoice.items.values_list("line_number", flat=True)) == [1, 2]

    def test_foreign_contact_is_rejected(self, organization, other_contact):
        with pytest.raises(TenantMismatch):
            create_invoice(organization, other_contact, ITEMS)

    def test_lookup_is_tenant_checked(self, organization, other_organization, contact):
        invoice = create_invoice(organization, contact, ITEMS)

        with pytest.raises(TenantMismatch):
            get_invoice(other_organization, invoice.pk)
        with pytest.raises(InvoiceNotFound):
            get_invoice(organization, 999999)

    def test_issue_date_is_pinned_to_noon(self, organization, contact):
        late_evening = datetime(2026, 3, 9, 23, 45, tzinfo=dt_timezone.utc)
        invoice = create_invoice(organization, contact, ITEMS, issue_date=late_evening)

        invoice.refresh_from_db()
        assert invoice.issue_date == noonify(date(2026, 3, 9))


class TestModelRules:

    def test_template_clean_rejects_end_before_start(self, make_template):
        template = make_template(start_date=date(2026, 3, 1))
        template.end_date = noonify(date(2026, 2, 1))

        with pytest.raises(ValidationError):
            template.full_clean()

    def test_template_clean_rejects_zero_interval(self, make_template):
        template = make_template()
        template.interval = 0

        with pytest.raises(ValidationError):
            template.full_clean()

    def test_recurring_expense_defaults(self, organization):
        expense = Expense.objects.create(
            organization=organization,
            description="Truck lease",
            amount=Decimal("450.00"),
            date=date(2026, 1, 3),
            type=ExpenseType.RECURRING,
        )

        assert expense.frequency == "MONTHLY"
        assert expense.interval == 1
        assert expense.date == noonify(date(2026, 1, 3))

    def test_template_pointer_defaults_to_start(self, organization, contact):
        template = RecurringTemplate.objects.create(
            organization=organization,
            contact=contact,
            name="Direct",
            start_date=date(2026, 5, 1),
            next_run_date=None,
        )
        assert template.next_run_date == noonify(date(2026, 5, 1))
