# billing/services/tax_summary.py
"""
Tax-year summary (Schedule C style).

Gross receipts are the year's PAID invoices plus the recurring occurrences
still projected for the rest of the year. Expenses are the whole year's
occurrences, grouped by tax category and discounted by the configured
deductible share (e.g. Meals at 50%). Uncategorized expenses are listed but
not deducted.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from ..categories import UNCATEGORIZED, deductible_share, resolve_tax_category
from .reconciliation import gather, money

ZERO = Decimal("0")


@dataclass
class TaxCategoryTotal:
    category: str
    count: int = 0
    total: Decimal = ZERO
    deductible: Decimal = ZERO


@dataclass
class TaxYearSummary:
    year: int
    actual_receipts: Decimal
    projected_receipts: Decimal
    gross_receipts: Decimal
    total_deductions: Decimal
    net_profit: Decimal
    uncategorized_count: int
    categories: list = field(default_factory=list)


def tax_year_summary(organization, year: int) -> TaxYearSummary:
    inputs = gather(organization, date(year, 1, 1), date(year, 12, 31))

    actual = sum((inv.total for inv in inputs.paid_invoices), ZERO)
    projected = sum((p.amount for p in inputs.projections), ZERO)

    grouped = {}
    for occ in inputs.expenses:
        category = resolve_tax_category(occ.tax_category)
        row = grouped.setdefault(category, TaxCategoryTotal(category=category))
        row.count += 1
        row.total += occ.amount
        row.deductible += occ.amount * deductible_share(occ.tax_category)

    total_deductions = sum((row.deductible for row in grouped.values()), ZERO)
    gross = actual + projected

    categories = [
        TaxCategoryTotal(
            category=row.category,
            count=row.count,
            total=money(row.total),
            deductible=money(row.deductible),
        )
        for row in sorted(grouped.values(), key=lambda r: r.category)
    ]

    return TaxYearSummary(
        year=year,
        actual_receipts=money(actual),
        projected_receipts=money(projected),
        gross_receipts=money(gross),
        total_deductions=money(total_deductions),
        net_profit=money(gross - total_deductions),
        uncategorized_count=grouped[UNCATEGORIZED].count if UNCATEGORIZED in grouped else 0,
        categories=categories,
    )
