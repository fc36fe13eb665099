"""Invoice number allocation and the per-organization uniqueness backstop."""

import threading
from decimal import Decimal

import pytest
from django.db import connection, transaction
from django.test import override_settings
from django.utils import timezone

from billing.exceptions import DuplicateInvoiceNumber
from billing.models import Invoice, Organization
from billing.numbering import (
    format_invoice_number,
    highest_invoice_sequence,
    insert_invoice,
    next_invoice_number,
    parse_invoice_number,
)
from billing.services.invoicing import create_invoice, delete_invoice

ITEMS = [{"description": "Mowing", "quantity": 2, "unit_price": "45.00"}]


def _raw_invoice(organization, number):
    return Invoice.objects.create(
        organization=organization,
        invoice_number=number,
        issue_date=timezone.now(),
    )


class TestFormatting:

    def test_format_pads_to_four_digits(self):
        assert format_invoice_number(1) == "INV-0001"
        assert format_invoice_number(42) == "INV-0042"

    def test_format_grows_past_width(self):
        assert format_invoice_number(10000) == "INV-10000"

    def test_parse(self):
        assert parse_invoice_number("INV-0007") == 7
        assert parse_invoice_number("INV-10000") == 10000
        assert parse_invoice_number("PAID-3") is None
        assert parse_invoice_number("INV-12A") is None
        assert parse_invoice_number("") is None

    @override_settings(RECURRING_BILLING={"INVOICE_NUMBER_PREFIX": "FL-", "INVOICE_NUMBER_WIDTH": 6})
    def test_prefix_and_width_are_configurable(self):
        assert format_invoice_number(12) == "FL-000012"
        assert parse_invoice_number("FL-000012") == 12


@pytest.mark.django_db
class TestAllocation:

    def test_first_number(self, organization):
        with transaction.atomic():
            assert next_invoice_number(organization) == "INV-0001"
        organization.refresh_from_db()
        assert organization.last_invoice_number == 1

    def test_sequence_increments(self, organization, contact):
        numbers = [create_invoice(organization, contact, ITEMS).invoice_number for _ in range(3)]
        assert numbers == ["INV-0001", "INV-0002", "INV-0003"]

    def test_highest_sorts_numerically(self, organization):
        _raw_invoice(organization, "INV-9999")
        _raw_invoice(organization, "INV-10000")
        _raw_invoice(organization, "PAID-99999")

        assert highest_invoice_sequence(organization) == 10000
        with transaction.atomic():
            assert next_invoice_number(organization) == "INV-10001"

    def test_picks_up_numbers_entered_outside_allocator(self, organization, contact):
        _raw_invoice(organization, "INV-0041")
        assert create_invoice(organization, contact, ITEMS).invoice_number == "INV-0042"

    def test_numbers_are_per_organization(self, organization, other_organization, contact, other_contact):
        create_invoice(organization, contact, ITEMS)
        create_invoice(organization, contact, ITEMS)

        assert create_invoice(other_organization, other_contact, ITEMS).invoice_number == "INV-0001"

    def test_deleted_number_is_not_reused(self, organization, contact):
        create_invoice(organization, contact, ITEMS)
        newest = create_invoice(organization, contact, ITEMS)

        delete_invoice(organization, newest.pk)

        assert create_invoice(organization, contact, ITEMS).invoice_number == "INV-0003"

    def test_same_number_allowed_across_organizations(self, organization, other_organization):
        _raw_invoice(organization, "INV-0001")
        _raw_invoice(other_organization, "INV-0001")
        assert Invoice.objects.filter(invoice_number="INV-0001").count() == 2


@pytest.mark.django_db
class TestInsertInvoice:

    def test_duplicate_number_raises_typed_error(self, organization):
        _raw_invoice(organization, "INV-0005")
        clash = Invoice(organization=organization, invoice_number="INV-0005", issue_date=timezone.now())

        with transaction.atomic():
            with pytest.raises(DuplicateInvoiceNumber) as excinfo:
                insert_invoice(clash)
            # outer transaction is still usable after the savepoint rollback
            assert Invoice.objects.filter(organization=organization).count() == 1

        assert excinfo.value.invoice_number == "INV-0005"
        assert excinfo.value.organization_id == organization.pk


@pytest.mark.django_db(transaction=True)
class TestConcurrentAllocation:

    def test_parallel_creates_get_distinct_gapless_numbers(self, organization, contact):
        workers = 10
        barrier = threading.Barrier(workers)
        errors = []

        def work():
            try:
                barrier.wait()
                create_invoice(organization, contact, ITEMS)
            except Exception as e:  # collected for the assertion below
                errors.append(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=work) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        numbers = sorted(Invoice.objects.filter(organization=organization).values_list("invoice_number", flat=True))
        assert numbers == [format_invoice_number(n) for n in range(1, workers + 1)]
        assert Organization.objects.get(pk=organization.pk).last_invoice_number == workers

    def test_allocation_outside_transaction_is_refused(self, organization):
        with pytest.raises(transaction.TransactionManagementError):
            next_invoice_number(organization)


@pytest.mark.django_db
def test_create_invoice_totals(organization, contact):
    invoice = create_invoice(organization, contact, ITEMS, tax="9.00")

    assert invoice.subtotal == Decimal("90.00")
    assert invoice.total == Decimal("99.00")
    assert list(invoice.items.values_list("line_number", "amount")) == [(1, Decimal("90.00"))]
