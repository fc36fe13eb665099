"""Tax-year summary and Schedule C category resolution."""

from datetime import date
from decimal import Decimal

import pytest

from billing.categories import (
    MEALS,
    OTHER_EXPENSES,
    UNCATEGORIZED,
    deductible_share,
    get_category_label,
    resolve_tax_category,
)
from billing.services.tax_summary import tax_year_summary


class TestCategories:

    def test_resolve(self):
        assert resolve_tax_category("") == UNCATEGORIZED
        assert resolve_tax_category("Supplies") == "Supplies"
        assert resolve_tax_category("Yacht upkeep") == OTHER_EXPENSES

    def test_deductible_share(self):
        assert deductible_share(MEALS) == Decimal("0.5")
        assert deductible_share("Utilities") == Decimal("1")
        assert deductible_share("") == Decimal("0")

    def test_expense_labels(self):
        assert get_category_label("meals") == "Meals (50% Deductible)"
        assert get_category_label("custom_thing") == "custom_thing"


@pytest.mark.django_db
class TestTaxYearSummary:

    def test_empty_year(self, organization):
        summary = tax_year_summary(organization, 2026)

        assert summary.gross_receipts == Decimal("0")
        assert summary.total_deductions == Decimal("0")
        assert summary.categories == []
        assert summary.uncategorized_count == 0

    def test_receipts_and_deductions(self, organization, make_paid_invoice, make_expense, make_template):
        make_paid_invoice("1000.00", issue_date=date(2026, 3, 1), paid_at=date(2026, 3, 5))
        make_template(start_date=date(2026, 11, 15), unit_price="250.00")

        make_expense("200.00", date(2026, 4, 1), tax_category=MEALS)
        make_expense("300.00", date(2026, 5, 1), tax_category="Supplies")
        make_expense("50.00", date(2026, 6, 1))
        make_expense("40.00", date(2026, 7, 1), tax_category="Yacht upkeep")
        make_expense("999.00", date(2025, 12, 31), tax_category="Supplies")

        summary = tax_year_summary(organization, 2026)

        assert summary.actual_receipts == Decimal("1000.00")
        assert summary.projected_receipts == Decimal("500.00")
        assert summary.gross_receipts == Decimal("1500.00")
        assert summary.total_deductions == Decimal("440.00")
        assert summary.net_profit == Decimal("1060.00")
        assert summary.uncategorized_count == 1
        assert [(c.category, c.count, c.total, c.deductible) for c in summary.categories] == [
            (MEALS, 1, Decimal("200.00"), Decimal("100.00")),
            (OTHER_EXPENSES, 1, Decimal("40.00"), Decimal("40.00")),
            ("Supplies", 1, Decimal("300.00"), Decimal("300.00")),
            (UNCATEGORIZED, 1, Decimal("50.00"), Decimal("0.00")),
        ]

    def test_recurring_expense_counts_every_occurrence(self, organization, make_expense):
        make_expense(
            "120.00",
            date(2025, 6, 1),
            type="RECURRING",
            frequency="MONTHLY",
            interval=1,
            tax_category="Utilities",
        )

        summary = tax_year_summary(organization, 2026)

        (utilities,) = summary.categories
        assert utilities.count == 12
        assert utilities.deductible == Decimal("1440.00")
