"""
Shared fixtures for the billing test suite.

Everything runs against the SQLite test database configured in
config.settings; no external services are touched.
"""

from datetime import date
from decimal import Decimal

import pytest

from billing.models import Contact, Expense, ExpenseType, Invoice, InvoiceStatus, Organization
from billing.recurrence import noonify
from billing.services.templates import create_recurring_template


# ---------------------------------------------------------------------------
# Tenancy fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def organization(db):
    return Organization.objects.create(name="Forbes Lawn", slug="forbes-lawn")


@pytest.fixture
def other_organization(db):
    return Organization.objects.create(name="Other Co", slug="other-co")


@pytest.fixture
def contact(organization):
    return Contact.objects.create(
        organization=organization,
        first_name="Dana",
        last_name="Whitfield",
        company="Whitfield HOA",
        email="dana@example.com",
    )


@pytest.fixture
def other_contact(other_organization):
    return Contact.objects.create(organization=other_organization, first_name="Sam", last_name="Reyes")


# ---------------------------------------------------------------------------
# Factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_template(organization, contact):
    """Create an ACTIVE template; defaults to 500.00 MONTHLY from 2024-01-15."""

    def _make(
        frequency="MONTHLY",
        interval=1,
        start_date=date(2024, 1, 15),
        end_date=None,
        unit_price="500.00",
        organization=organization,
        contact=contact,
        name="Monthly maintenance",
    ):
        return create_recurring_template(
            organization=organization,
            contact=contact,
            name=name,
            frequency=frequency,
            interval=interval,
            start_date=start_date,
            end_date=end_date,
            items=[{"description": "Lawn maintenance", "quantity": 1, "unit_price": unit_price}],
        )

    return _make


@pytest.fixture
def make_paid_invoice(organization, contact):
    """
    Insert a PAID invoice directly, bypassing the allocator, for
    reconciliation scenarios. Numbers are PAID-<n> so they never collide
    with the INV- sequence.
    """
    counter = {"n": 0}

    def _make(total, issue_date, paid_at=None, contact=contact, organization=organization):
        counter["n"] += 1
        return Invoice.objects.create(
            organization=organization,
            contact=contact,
            invoice_number=f"PAID-{counter['n']}",
            status=InvoiceStatus.PAID,
            issue_date=noonify(issue_date),
            paid_at=noonify(paid_at) if paid_at else None,
            subtotal=Decimal(total),
            total=Decimal(total),
        )

    return _make


@pytest.fixture
def make_expense(organization):
    def _make(
        amount,
        when,
        type=ExpenseType.ONE_TIME,
        category="other",
        tax_category="",
        frequency="",
        interval=None,
        contact=None,
        is_active=True,
        description="Expense",
    ):
        return Expense.objects.create(
            organization=organization,
            contact=contact,
            description=description,
            amount=Decimal(amount),
            date=noonify(when),
            type=type,
            category=category,
            tax_category=tax_category,
            frequency=frequency,
            interval=interval,
            is_active=is_active,
        )

    return _make
