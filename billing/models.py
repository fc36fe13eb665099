"""
Billing Models

Model hierarchy:
1. Organization (tenant) → Contact
2. RecurringTemplate → RecurringTemplateItem
3. Invoice → InvoiceItem  (invoices generated from a template point back at it)
4. Expense (one-time or recurring)

All schedule and invoice dates are stored as aware datetimes pinned to
12:00 UTC (see billing.recurrence.noonify) so comparing them against "today"
never slips across a day boundary.
"""

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import models, transaction
from django.utils import timezone

from .conf import billing_setting
from .exceptions import InvalidRecurrence
from .recurrence import Frequency, noonify, validate_recurrence

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def _default_currency():
    return billing_setting("DEFAULT_CURRENCY")


# ============================================================================
# TENANCY & CONTACTS
# ============================================================================

class Organization(models.Model):
    """
    A tenant. Every billing record hangs off exactly one organization.
    """
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=200, unique=True)
    currency = models.CharField(max_length=3, default=_default_currency)

    # Highest invoice sequence ever handed out. Never decreases, so deleting
    # the newest invoice doesn't free its number.
    last_invoice_number = models.PositiveIntegerField(
        default=0,
        help_text="Last allocated invoice sequence (INV-000N).",
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name


class Contact(models.Model):
    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="contacts",
    )
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True)
    company = models.CharField(max_length=200, blank=True)
    email = models.EmailField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["last_name", "first_name"]

    def __str__(self):
        return self.display_name

    @property
    def display_name(self):
        return f"{self.first_name} {self.last_name}".strip()


# ============================================================================
# RECURRING TEMPLATES
# ============================================================================

class RecurringStatus(models.TextChoices):
    ACTIVE = "ACTIVE", "Active"
    PAUSED = "PAUSED", "Paused"
    CANCELLED = "CANCELLED", "Cancelled"
    COMPLETED = "COMPLETED", "Completed"


class RecurringTemplate(models.Model):
    """
    Recurring invoice template.

    next_run_date is the schedule pointer: the next occurrence that has NOT
    been turned into an Invoice yet. Only the runner moves it, inside the same
    transaction that creates the invoice for the occurrence it points at.
    """
    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="recurring_templates",
    )
    contact = models.ForeignKey(
        Contact,
        on_delete=models.PROTECT,
        related_name="recurring_templates",
    )

    name = models.CharField(max_length=200)

    # --- Schedule ---
    frequency = models.CharField(
        max_length=10,
        choices=Frequency.choices,
        default=Frequency.MONTHLY,
    )
    interval = models.PositiveIntegerField(
        default=1,
        help_text="Every N units of the frequency (e.g. 2 + MONTHLY = every other month).",
    )
    start_date = models.DateTimeField()
    next_run_date = models.DateTimeField(
        help_text="Next occurrence not yet invoiced.",
    )
    end_date = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Template completes once the schedule moves past this date.",
    )
    status = models.CharField(
        max_length=10,
        choices=RecurringStatus.choices,
        default=RecurringStatus.ACTIVE,
    )

    # --- Cached totals (recomputed from items) ---
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    currency = models.CharField(max_length=3, default=_default_currency)

    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["status", "next_run_date"], name="billing_tmpl_status_next_idx"),
            models.Index(fields=["organization", "status"], name="billing_tmpl_org_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(interval__gte=1),
                name="recurring_template_interval_positive",
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.get_frequency_display()}, every {self.interval})"

    def save(self, *args, **kwargs):
        self.start_date = noonify(self.start_date)
        self.next_run_date = noonify(self.next_run_date or self.start_date)
        self.end_date = noonify(self.end_date)
        super().save(*args, **kwargs)

    def clean(self):
        super().clean()
        try:
            validate_recurrence(self.frequency, self.interval)
        except InvalidRecurrence as e:
            raise ValidationError({"interval": str(e)})
        if self.start_date and self.next_run_date and noonify(self.next_run_date) < noonify(self.start_date):
            raise ValidationError({"next_run_date": "Next run date cannot be before the start date."})
        if self.start_date and self.end_date and noonify(self.end_date) < noonify(self.start_date):
            raise ValidationError({"end_date": "End date cannot be before the start date."})

    def recompute_totals_from_items(self):
        """Recalculate line amounts, subtotal and total from the template's items."""
        items = list(self.items.all())
        for item in items:
            item.recompute_amount()
            item.save(update_fields=["amount"])

        self.subtotal = sum((i.amount for i in items), ZERO)
        self.total = (self.subtotal + (self.tax or ZERO)).quantize(CENT)


class RecurringTemplateItem(models.Model):
    template = models.ForeignKey(
        RecurringTemplate,
        related_name="items",
        on_delete=models.CASCADE,
    )
    line_number = models.PositiveIntegerField(default=1)
    description = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("1.00"))
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)

    class Meta:
        ordering = ["line_number", "id"]

    def __str__(self):
        return f"{self.description} ({self.amount})"

    def recompute_amount(self):
        self.amount = (self.quantity * self.unit_price).quantize(CENT)


# ============================================================================
# INVOICES
# ============================================================================

class InvoiceStatus(models.TextChoices):
    DRAFT = "DRAFT", "Draft"
    SENT = "SENT", "Sent"
    PAID = "PAID", "Paid"
    OVERDUE = "OVERDUE", "Overdue"
    CANCELLED = "CANCELLED", "Cancelled"


class Invoice(models.Model):
    """
    An issued (or draft) invoice.

    Invoices generated by the runner carry recurring_template; manually
    entered ones don't. Either way the line items are a snapshot owned by
    the invoice and never follow later template edits.
    """
    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="invoices",
    )
    contact = models.ForeignKey(
        Contact,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="invoices",
    )
    recurring_template = models.ForeignKey(
        RecurringTemplate,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="invoices",
        help_text="Template this invoice was generated from, if any.",
    )

    invoice_number = models.CharField(
        max_length=50,
        help_text="Visible invoice number (e.g. INV-0007).",
    )
    status = models.CharField(
        max_length=10,
        choices=InvoiceStatus.choices,
        default=InvoiceStatus.DRAFT,
    )

    issue_date = models.DateTimeField()
    due_date = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)

    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    tax = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    total = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    currency = models.CharField(max_length=3, default=_default_currency)

    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-issue_date", "-id"]
        indexes = [
            models.Index(fields=["organization", "status", "paid_at"], name="billing_inv_org_paid_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["organization", "invoice_number"],
                name="uniq_invoice_number_per_organization",
            ),
            models.UniqueConstraint(
                fields=["recurring_template", "issue_date"],
                condition=models.Q(recurring_template__isnull=False),
                name="uniq_invoice_per_template_occurrence",
            ),
        ]

    def __str__(self):
        return f"Invoice {self.invoice_number}"

    def save(self, *args, **kwargs):
        self.issue_date = noonify(self.issue_date or timezone.now())
        self.due_date = noonify(self.due_date)
        super().save(*args, **kwargs)

    @property
    def recognized_at(self):
        """When this invoice counts as revenue: paid_at, else issue_date."""
        return self.paid_at or self.issue_date

    def recompute_totals_from_items(self):
        items = list(self.items.all())
        self.subtotal = sum((i.amount for i in items), ZERO)
        self.total = (self.subtotal + (self.tax or ZERO)).quantize(CENT)

    @transaction.atomic
    def replace_items(self, items):
        """
        Swap the whole line-item set for `items` (dicts with description,
        quantity, unit_price) and recompute totals. Items are never edited
        in place.
        """
        self.items.all().delete()
        InvoiceItem.objects.bulk_create(build_invoice_items(self, items))
        self.recompute_totals_from_items()
        self.save(update_fields=["subtotal", "total", "updated_at"])


class InvoiceItem(models.Model):
    invoice = models.ForeignKey(
        Invoice,
        related_name="items",
        on_delete=models.CASCADE,
    )
    line_number = models.PositiveIntegerField(default=1)
    description = models.CharField(max_length=255)
    quantity = models.DecimalField(max_digits=10, decimal_places=2, default=Decimal("1.00"))
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)
    amount = models.DecimalField(max_digits=12, decimal_places=2, default=ZERO)

    class Meta:
        ordering = ["line_number", "id"]

    def __str__(self):
        return f"{self.description} ({self.amount})"


def build_invoice_items(invoice, items):
    """Unsaved InvoiceItem rows for `invoice` from item dicts or template items."""
    rows = []
    for n, item in enumerate(items, start=1):
        if isinstance(item, dict):
            description = item["description"]
            quantity = Decimal(str(item.get("quantity", 1)))
            unit_price = Decimal(str(item.get("unit_price", 0)))
        else:
            description = item.description
            quantity = item.quantity
            unit_price = item.unit_price
        rows.append(InvoiceItem(
            invoice=invoice,
            line_number=n,
            description=description,
            quantity=quantity,
            unit_price=unit_price,
            amount=(quantity * unit_price).quantize(CENT),
        ))
    return rows


# ============================================================================
# EXPENSES
# ============================================================================

class ExpenseType(models.TextChoices):
    ONE_TIME = "ONE_TIME", "One-time"
    RECURRING = "RECURRING", "Recurring"


class Expense(models.Model):
    """
    One-time or recurring expense. For recurring expenses `date` is the
    anchor of the schedule; deactivating stops it without deleting history.
    """
    organization = models.ForeignKey(
        Organization,
        on_delete=models.CASCADE,
        related_name="expenses",
    )
    contact = models.ForeignKey(
        Contact,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="expenses",
        help_text="Client this cost is attributed to (for per-client margins).",
    )

    description = models.CharField(max_length=255)
    vendor = models.CharField(max_length=200, blank=True)
    amount = models.DecimalField(max_digits=12, decimal_places=2)
    date = models.DateTimeField()

    type = models.CharField(
        max_length=10,
        choices=ExpenseType.choices,
        default=ExpenseType.ONE_TIME,
    )
    category = models.CharField(max_length=100, default="other")
    tax_category = models.CharField(
        max_length=100,
        blank=True,
        help_text="Schedule C line this expense is deducted under.",
    )

    frequency = models.CharField(
        max_length=10,
        choices=Frequency.choices,
        blank=True,
    )
    interval = models.PositiveIntegerField(null=True, blank=True)
    is_active = models.BooleanField(default=True)

    notes = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-date", "-id"]
        indexes = [
            models.Index(fields=["organization", "type", "date"], name="billing_exp_org_type_date_idx"),
        ]

    def __str__(self):
        return f"{self.description} ({self.amount})"

    def save(self, *args, **kwargs):
        self.date = noonify(self.date)
        if self.type == ExpenseType.RECURRING:
            self.frequency = self.frequency or Frequency.MONTHLY
            self.interval = self.interval or 1
        super().save(*args, **kwargs)

    def clean(self):
        super().clean()
        if self.type == ExpenseType.RECURRING:
            try:
                validate_recurrence(self.frequency or Frequency.MONTHLY, self.interval or 1)
            except InvalidRecurrence as e:
                raise ValidationError({"interval": str(e)})
