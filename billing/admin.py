# billing/admin.py

from django.contrib import admin, messages

from .exceptions import BillingError
from .models import (
    Contact,
    Expense,
    Invoice,
    InvoiceItem,
    Organization,
    RecurringTemplate,
    RecurringTemplateItem,
)
from .services.recurring_runner import RecurringBillingRunner
from .services.templates import cancel_template, pause_template, resume_template


@admin.register(Organization)
class OrganizationAdmin(admin.ModelAdmin):
    list_display = ("name", "slug", "currency", "last_invoice_number", "created_at")
    search_fields = ("name", "slug")
    prepopulated_fields = {"slug": ("name",)}
    readonly_fields = ("last_invoice_number", "created_at")


@admin.register(Contact)
class ContactAdmin(admin.ModelAdmin):
    list_display = ("display_name", "company", "email", "organization")
    list_filter = ("organization",)
    search_fields = ("first_name", "last_name", "company", "email")


class RecurringTemplateItemInline(admin.TabularInline):
    model = RecurringTemplateItem
    extra = 1
    fields = ("line_number", "description", "quantity", "unit_price", "amount")
    readonly_fields = ("amount",)


@admin.register(RecurringTemplate)
class RecurringTemplateAdmin(admin.ModelAdmin):
    list_display = (
        "name",
        "organization",
        "contact",
        "frequency",
        "interval",
        "next_run_date",
        "end_date",
        "status",
        "total",
    )
    list_filter = ("status", "frequency", "organization")
    search_fields = ("name", "contact__first_name", "contact__last_name", "contact__company")
    date_hierarchy = "next_run_date"
    inlines = [RecurringTemplateItemInline]
    readonly_fields = ("subtotal", "total", "created_at", "updated_at")
    actions = ["catch_up_now", "pause_selected", "resume_selected", "cancel_selected"]

    fieldsets = (
        ("Template", {
            "fields": ("organization", "contact", "name", "notes"),
        }),
        ("Schedule", {
            "fields": ("frequency", "interval", "start_date", "next_run_date", "end_date", "status"),
        }),
        ("Totals", {
            "fields": ("subtotal", "tax", "total", "currency"),
        }),
        ("Audit", {
            "fields": ("created_at", "updated_at"),
        }),
    )

    def save_related(self, request, form, formsets, change):
        super().save_related(request, form, formsets, change)
        template = form.instance
        template.recompute_totals_from_items()
        template.save(update_fields=["subtotal", "total", "updated_at"])

    @admin.action(description="Catch up now (generate due invoices)")
    def catch_up_now(self, request, queryset):
        runner = RecurringBillingRunner()
        generated = 0
        for template in queryset:
            try:
                result = runner.catch_up(template)
            except BillingError as e:
                self.message_user(request, f"{template}: {e}", level=messages.ERROR)
                continue
            generated += result.generated
            if result.error is not None:
                self.message_user(request, f"{template}: {result.error}", level=messages.ERROR)
            if result.capped:
                self.message_user(request, f"{template}: catch-up limit reached, run again", level=messages.WARNING)
        self.message_user(request, f"Generated {generated} invoice(s).", level=messages.SUCCESS)

    def _transition(self, request, queryset, action, verb):
        done = 0
        for template in queryset:
            try:
                action(template.organization, template.pk)
                done += 1
            except BillingError as e:
                self.message_user(request, f"{template}: {e}", level=messages.ERROR)
        self.message_user(request, f"{verb} {done} template(s).", level=messages.SUCCESS)

    @admin.action(description="Pause selected templates")
    def pause_selected(self, request, queryset):
        self._transition(request, queryset, pause_template, "Paused")

    @admin.action(description="Resume selected templates")
    def resume_selected(self, request, queryset):
        self._transition(request, queryset, resume_template, "Resumed")

    @admin.action(description="Cancel selected templates")
    def cancel_selected(self, request, queryset):
        self._transition(request, queryset, cancel_template, "Cancelled")


class InvoiceItemInline(admin.TabularInline):
    model = InvoiceItem
    extra = 0
    fields = ("line_number", "description", "quantity", "unit_price", "amount")
    readonly_fields = ("line_number", "description", "quantity", "unit_price", "amount")

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = (
        "invoice_number",
        "organization",
        "contact",
        "issue_date",
        "due_date",
        "status",
        "total",
        "paid_at",
        "recurring_template",
    )
    list_filter = ("status", "organization", "issue_date")
    search_fields = ("invoice_number", "contact__first_name", "contact__last_name", "contact__company")
    date_hierarchy = "issue_date"
    inlines = [InvoiceItemInline]

    # Numbers come from the allocator only.
    readonly_fields = (
        "invoice_number",
        "recurring_template",
        "subtotal",
        "total",
        "created_at",
        "updated_at",
    )

    def has_add_permission(self, request):
        return False


@admin.register(Expense)
class ExpenseAdmin(admin.ModelAdmin):
    list_display = (
        "description",
        "organization",
        "amount",
        "date",
        "type",
        "frequency",
        "interval",
        "category",
        "tax_category",
        "is_active",
    )
    list_filter = ("type", "is_active", "category", "organization")
    search_fields = ("description", "vendor")
    date_hierarchy = "date"
