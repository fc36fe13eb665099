# billing/categories.py
"""
Expense categories and Schedule C tax categories.

These are configuration, not tax advice: the deductible share per tax
category is whatever is listed here.
"""

from decimal import Decimal

# Preset expense categories (value, label)
EXPENSE_CATEGORIES = [
    ("advertising_marketing", "Advertising & Marketing"),
    ("car_vehicle", "Car & Vehicle Expenses"),
    ("commissions_fees", "Commissions & Fees"),
    ("contract_labor", "Contract Labor"),
    ("employee_benefits", "Employee Benefits"),
    ("insurance", "Insurance"),
    ("interest_loans", "Interest (Mortgage/Loans)"),
    ("legal_professional", "Legal & Professional Services"),
    ("office_supplies", "Office Expenses & Supplies"),
    ("rent_lease", "Rent & Lease"),
    ("repairs_maintenance", "Repairs & Maintenance"),
    ("salaries_wages", "Salaries & Wages"),
    ("taxes_licenses", "Taxes & Licenses"),
    ("travel", "Travel"),
    ("meals", "Meals (50% Deductible)"),
    ("utilities", "Utilities"),
    ("software_subscriptions", "Software & Subscriptions"),
    ("depreciation", "Depreciation"),
    ("education_training", "Education & Training"),
    ("home_office", "Home Office"),
    ("other", "Other"),
]

_EXPENSE_LABELS = dict(EXPENSE_CATEGORIES)


def get_category_label(value: str) -> str:
    return _EXPENSE_LABELS.get(value, value)


UNCATEGORIZED = "Uncategorized"
OTHER_EXPENSES = "Other expenses"
MEALS = "Meals (50% limit)"

# Schedule C line -> deductible share
SCHEDULE_C_CATEGORIES = {
    "Advertising": Decimal("1"),
    "Car and truck expenses": Decimal("1"),
    "Commissions and fees": Decimal("1"),
    "Contract labor": Decimal("1"),
    "Depletion": Decimal("1"),
    "Depreciation": Decimal("1"),
    "Employee benefit programs": Decimal("1"),
    "Insurance (other than health)": Decimal("1"),
    "Interest - Mortgage": Decimal("1"),
    "Interest - Other": Decimal("1"),
    "Legal and professional services": Decimal("1"),
    "Office expense": Decimal("1"),
    "Pension and profit-sharing plans": Decimal("1"),
    "Rent or lease - Vehicles/machinery": Decimal("1"),
    "Rent or lease - Other business property": Decimal("1"),
    "Repairs and maintenance": Decimal("1"),
    "Supplies": Decimal("1"),
    "Taxes and licenses": Decimal("1"),
    "Travel": Decimal("1"),
    MEALS: Decimal("0.5"),
    "Utilities": Decimal("1"),
    "Wages": Decimal("1"),
    OTHER_EXPENSES: Decimal("1"),
}


def resolve_tax_category(tax_category: str) -> str:
    """Blank -> Uncategorized; anything not on the list -> Other expenses."""
    if not tax_category:
        return UNCATEGORIZED
    if tax_category in SCHEDULE_C_CATEGORIES:
        return tax_category
    return OTHER_EXPENSES


def deductible_share(tax_category: str) -> Decimal:
    """Fraction of an expense that is deductible; Uncategorized counts for nothing."""
    return SCHEDULE_C_CATEGORIES.get(resolve_tax_category(tax_category), Decimal("0"))
