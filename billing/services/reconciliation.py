"""
Revenue Reconciliation

Builds period financial summaries from two independently produced sources:
  - actual revenue: PAID invoices recognized in the window
  - projected revenue: future occurrences of ACTIVE recurring templates,
    expanded from each template's next_run_date

A projection is dropped when a PAID invoice for the same contact, for the
same amount (within DEDUP_TOLERANCE), landed in the same calendar month. This
is a heuristic: two genuinely separate charges of the same amount to the same
client in one month will hide a projection.

Money is accumulated as raw Decimals and only quantized when the summary is
built. There is no partial result: any error propagates to the caller.
"""

import logging
from collections import defaultdict
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, time, timezone as dt_timezone
from decimal import ROUND_HALF_UP, Decimal

from django.db import transaction
from django.db.models import Q

from ..categories import get_category_label
from ..conf import billing_setting
from ..models import (
    Contact,
    Expense,
    ExpenseType,
    Invoice,
    InvoiceStatus,
    RecurringStatus,
    RecurringTemplate,
)
from ..recurrence import expand

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
CENT = Decimal("0.01")
TENTH = Decimal("0.1")


def money(value) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def month_key(value) -> str:
    if isinstance(value, datetime) and value.tzinfo is not None:
        value = value.astimezone(dt_timezone.utc)
    return f"{value.year}-{value.month:02d}"


def _as_date(value) -> date:
    if isinstance(value, str):
        return date.fromisoformat(value)
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(dt_timezone.utc)
        return value.date()
    return value


def window_bounds(window_start, window_end) -> tuple:
    """Inclusive UTC datetime bounds covering whole days start..end."""
    start = datetime.combine(_as_date(window_start), time.min, tzinfo=dt_timezone.utc)
    end = datetime.combine(_as_date(window_end), time.max, tzinfo=dt_timezone.utc)
    if end < start:
        raise ValueError(f"Window end {window_end} is before window start {window_start}")
    return start, end


def expansion_limit(start, end) -> int:
    """
    Step cap for expanding schedules over [start, end]. Never smaller than
    one step per day of the window, so a daily schedule always fits.
    """
    return max(billing_setting("EXPANSION_LIMIT"), (end - start).days + 2)


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ExpenseOccurrence:
    expense_id: int
    date: datetime
    amount: Decimal
    category: str
    tax_category: str
    contact_id: int | None
    description: str


@dataclass(frozen=True)
class Projection:
    template_id: int
    contact_id: int
    date: datetime
    amount: Decimal


@dataclass
class CategoryTotal:
    category: str
    label: str
    total: Decimal


@dataclass
class MonthlyBucket:
    month: str
    actual_revenue: Decimal = ZERO
    projected_revenue: Decimal = ZERO
    expenses: Decimal = ZERO

    @property
    def revenue(self) -> Decimal:
        return self.actual_revenue + self.projected_revenue


@dataclass
class ClientMargin:
    contact_id: int
    contact_name: str
    company: str
    income: Decimal
    expenses: Decimal
    profit: Decimal
    margin: Decimal


@dataclass
class FinancialSummary:
    window_start: date
    window_end: date
    actual_total: Decimal
    projected_total: Decimal
    total_revenue: Decimal
    expense_total: Decimal
    net_profit: Decimal
    categorized: list = field(default_factory=list)
    monthly: list = field(default_factory=list)
    per_client: list = field(default_factory=list)
    recent_income: list = field(default_factory=list)

    @property
    def has_activity(self) -> bool:
        return bool(self.actual_total or self.projected_total or self.expense_total)

    def as_dict(self) -> dict:
        data = asdict(self)
        data["monthly"] = [
            {**asdict(bucket), "revenue": money(bucket.revenue)} for bucket in self.monthly
        ]
        return data


@dataclass
class ReconciliationInputs:
    """Raw material for a summary, shared with the tax-year report."""
    start: datetime
    end: datetime
    paid_invoices: list
    expenses: list
    projections: list
    suppressed: list


# ---------------------------------------------------------------------------
# Building blocks
# ---------------------------------------------------------------------------

def paid_invoices_in_window(organization, start, end) -> list:
    """PAID invoices recognized in the window: by paid_at, or issue_date when paid_at is unknown."""
    qs = (
        Invoice.objects
        .filter(organization=organization, status=InvoiceStatus.PAID)
        .filter(
            Q(paid_at__range=(start, end))
            | Q(paid_at__isnull=True, issue_date__range=(start, end))
        )
        .select_related("contact")
    )
    return sorted(qs, key=lambda inv: (inv.recognized_at, inv.pk), reverse=True)


def expand_expenses(expenses, window_start, window_end, limit=None) -> list:
    """
    One-time expenses inside the window as-is, active recurring expenses as
    one occurrence per scheduled date in the window, sorted by date.
    """
    if limit is None:
        limit = expansion_limit(window_start, window_end)

    occurrences = []
    for exp in expenses:
        if exp.type == ExpenseType.ONE_TIME:
            dates = [exp.date] if window_start <= exp.date <= window_end else []
        elif exp.type == ExpenseType.RECURRING and exp.is_active:
            dates = expand(
                exp.date, exp.frequency, exp.interval, window_start, window_end, limit, strict=True,
            )
        else:
            continue

        for d in dates:
            occurrences.append(ExpenseOccurrence(
                expense_id=exp.pk,
                date=d,
                amount=exp.amount,
                category=exp.category,
                tax_category=exp.tax_category,
                contact_id=exp.contact_id,
                description=exp.description,
            ))

    occurrences.sort(key=lambda o: (o.date, o.expense_id))
    return occurrences


def expenses_in_window(organization, start, end) -> list:
    qs = Expense.objects.filter(organization=organization).filter(
        Q(type=ExpenseType.ONE_TIME, date__range=(start, end))
        | Q(type=ExpenseType.RECURRING, is_active=True, date__lte=end)
    )
    return expand_expenses(qs, start, end)


def project_templates(organization, start, end) -> list:
    """Occurrences of ACTIVE templates in the window, starting at each next_run_date."""
    limit = expansion_limit(start, end)
    projections = []

    templates = RecurringTemplate.objects.filter(
        organization=organization,
        status=RecurringStatus.ACTIVE,
    )
    for template in templates:
        last = end if template.end_date is None else min(end, template.end_date)
        dates = expand(
            template.next_run_date, template.frequency, template.interval, start, last, limit, strict=True,
        )
        for d in dates:
            projections.append(Projection(
                template_id=template.pk,
                contact_id=template.contact_id,
                date=d,
                amount=template.total,
            ))

    projections.sort(key=lambda p: (p.date, p.template_id))
    return projections


def deduplicate_projections(projections, paid_invoices, tolerance=None) -> tuple:
    """
    Split projections into (surviving, suppressed).

    Suppressed: some PAID invoice has the same contact, a total within
    `tolerance`, and an issue month or paid month equal to the projection's
    month.
    """
    if tolerance is None:
        tolerance = Decimal(str(billing_setting("DEDUP_TOLERANCE")))

    by_contact = defaultdict(list)
    for inv in paid_invoices:
        if inv.contact_id is None:
            continue
        months = {month_key(inv.issue_date)}
        if inv.paid_at is not None:
            months.add(month_key(inv.paid_at))
        by_contact[inv.contact_id].append((inv.total, months))

    surviving, suppressed = [], []
    for proj in projections:
        key = month_key(proj.date)
        covered = any(
            abs(total - proj.amount) <= tolerance and key in months
            for total, months in by_contact.get(proj.contact_id, ())
        )
        (suppressed if covered else surviving).append(proj)

    return surviving, suppressed


def seed_months(start, end) -> dict:
    """
    One empty bucket per calendar month of the window. A window starting in
    January is widened to the whole calendar year.
    """
    last = (end.year, end.month)
    if start.month == 1:
        last = max(last, (start.year, 12))

    buckets = {}
    year, month = start.year, start.month
    while (year, month) <= last:
        key = f"{year}-{month:02d}"
        buckets[key] = MonthlyBucket(month=key)
        month += 1
        if month > 12:
            year, month = year + 1, 1
    return buckets


def gather(organization, window_start, window_end) -> ReconciliationInputs:
    start, end = window_bounds(window_start, window_end)
    with transaction.atomic():
        paid = paid_invoices_in_window(organization, start, end)
        expenses = expenses_in_window(organization, start, end)
        projections = project_templates(organization, start, end)

    surviving, suppressed = deduplicate_projections(projections, paid)
    if suppressed:
        logger.debug(
            f"Organization {organization.pk}: {len(suppressed)} projected occurrence(s) "
            f"already covered by paid invoices"
        )
    return ReconciliationInputs(
        start=start,
        end=end,
        paid_invoices=paid,
        expenses=expenses,
        projections=surviving,
        suppressed=suppressed,
    )


def _client_margins(paid_invoices, expenses) -> list:
    income = defaultdict(lambda: ZERO)
    costs = defaultdict(lambda: ZERO)
    contacts = {}

    for inv in paid_invoices:
        if inv.contact_id is None:
            continue
        income[inv.contact_id] += inv.total
        contacts[inv.contact_id] = inv.contact

    for occ in expenses:
        if occ.contact_id is None:
            continue
        costs[occ.contact_id] += occ.amount

    missing = set(costs) - set(contacts)
    if missing:
        contacts.update(Contact.objects.in_bulk(missing))

    margins = []
    for contact_id in set(income) | set(costs):
        contact = contacts.get(contact_id)
        if contact is None:
            continue
        inc = income[contact_id]
        exp = costs[contact_id]
        profit = inc - exp
        margin = (profit / inc * 100) if inc > 0 else ZERO
        margins.append(ClientMargin(
            contact_id=contact_id,
            contact_name=contact.display_name,
            company=contact.company,
            income=money(inc),
            expenses=money(exp),
            profit=money(profit),
            margin=Decimal(margin).quantize(TENTH, rounding=ROUND_HALF_UP),
        ))

    margins.sort(key=lambda m: (-m.profit, m.contact_id))
    return margins


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------

def summarize(organization, window_start, window_end) -> FinancialSummary:
    """
    P&L for [window_start, window_end] (dates, inclusive): actual paid revenue,
    surviving projections, expenses by category, monthly buckets and
    per-client margins.
    """
    inputs = gather(organization, window_start, window_end)
    buckets = seed_months(inputs.start, inputs.end)

    actual_total = ZERO
    for inv in inputs.paid_invoices:
        actual_total += inv.total
        bucket = buckets.get(month_key(inv.recognized_at))
        if bucket is not None:
            bucket.actual_revenue += inv.total

    projected_total = ZERO
    for proj in inputs.projections:
        projected_total += proj.amount
        bucket = buckets.get(month_key(proj.date))
        if bucket is not None:
            bucket.projected_revenue += proj.amount

    expense_total = ZERO
    by_category = defaultdict(lambda: ZERO)
    for occ in inputs.expenses:
        expense_total += occ.amount
        by_category[occ.category] += occ.amount
        bucket = buckets.get(month_key(occ.date))
        if bucket is not None:
            bucket.expenses += occ.amount

    categorized = sorted(
        (
            CategoryTotal(category=cat, label=get_category_label(cat), total=money(total))
            for cat, total in by_category.items()
        ),
        key=lambda c: (-c.total, c.category),
    )

    monthly = [
        MonthlyBucket(
            month=b.month,
            actual_revenue=money(b.actual_revenue),
            projected_revenue=money(b.projected_revenue),
            expenses=money(b.expenses),
        )
        for b in sorted(buckets.values(), key=lambda b: b.month)
    ]

    limit = billing_setting("RECENT_INCOME_LIMIT")
    recent_income = [
        {
            "id": inv.pk,
            "invoice_number": inv.invoice_number,
            "contact_name": inv.contact.display_name if inv.contact else "Unknown",
            "amount": money(inv.total),
            "paid_at": inv.recognized_at,
        }
        for inv in inputs.paid_invoices[:limit]
    ]

    total_revenue = actual_total + projected_total
    return FinancialSummary(
        window_start=inputs.start.date(),
        window_end=inputs.end.date(),
        actual_total=money(actual_total),
        projected_total=money(projected_total),
        total_revenue=money(total_revenue),
        expense_total=money(expense_total),
        net_profit=money(total_revenue - expense_total),
        categorized=categorized,
        monthly=monthly,
        per_client=_client_margins(inputs.paid_invoices, inputs.expenses),
        recent_income=recent_income,
    )


def client_margins(organization, window_start, window_end) -> list:
    """
    Profitability per client: paid income minus attributed expenses.
    Projections are not included.
    """
    start, end = window_bounds(window_start, window_end)
    with transaction.atomic():
        paid = paid_invoices_in_window(organization, start, end)
        expenses = expenses_in_window(organization, start, end)
    return _client_margins(paid, expenses)
