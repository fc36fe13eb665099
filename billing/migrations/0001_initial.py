from decimal import Decimal

import django.db.models.deletion
from django.db import migrations, models

import billing.models


FREQUENCY_CHOICES = [
    ("DAILY", "Daily"),
    ("WEEKLY", "Weekly"),
    ("MONTHLY", "Monthly"),
    ("YEARLY", "Yearly"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Organization",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("slug", models.SlugField(max_length=200, unique=True)),
                ("currency", models.CharField(default=billing.models._default_currency, max_length=3)),
                ("last_invoice_number", models.PositiveIntegerField(default=0, help_text="Last allocated invoice sequence (INV-000N).")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "ordering": ["name"],
            },
        ),
        migrations.CreateModel(
            name="Contact",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("first_name", models.CharField(max_length=100)),
                ("last_name", models.CharField(blank=True, max_length=100)),
                ("company", models.CharField(blank=True, max_length=200)),
                ("email", models.EmailField(blank=True, max_length=254)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("organization", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="contacts", to="billing.organization")),
            ],
            options={
                "ordering": ["last_name", "first_name"],
            },
        ),
        migrations.CreateModel(
            name="RecurringTemplate",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=200)),
                ("frequency", models.CharField(choices=FREQUENCY_CHOICES, default="MONTHLY", max_length=10)),
                ("interval", models.PositiveIntegerField(default=1, help_text="Every N units of the frequency (e.g. 2 + MONTHLY = every other month).")),
                ("start_date", models.DateTimeField()),
                ("next_run_date", models.DateTimeField(help_text="Next occurrence not yet invoiced.")),
                ("end_date", models.DateTimeField(blank=True, help_text="Template completes once the schedule moves past this date.", null=True)),
                ("status", models.CharField(choices=[("ACTIVE", "Active"), ("PAUSED", "Paused"), ("CANCELLED", "Cancelled"), ("COMPLETED", "Completed")], default="ACTIVE", max_length=10)),
                ("subtotal", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("tax", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("total", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("currency", models.CharField(default=billing.models._default_currency, max_length=3)),
                ("notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("contact", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="recurring_templates", to="billing.contact")),
                ("organization", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="recurring_templates", to="billing.organization")),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [
                    models.Index(fields=["status", "next_run_date"], name="billing_tmpl_status_next_idx"),
                    models.Index(fields=["organization", "status"], name="billing_tmpl_org_status_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(condition=models.Q(interval__gte=1), name="recurring_template_interval_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="RecurringTemplateItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("line_number", models.PositiveIntegerField(default=1)),
                ("description", models.CharField(max_length=255)),
                ("quantity", models.DecimalField(decimal_places=2, default=Decimal("1.00"), max_digits=10)),
                ("unit_price", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("template", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="items", to="billing.recurringtemplate")),
            ],
            options={
                "ordering": ["line_number", "id"],
            },
        ),
        migrations.CreateModel(
            name="Invoice",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("invoice_number", models.CharField(help_text="Visible invoice number (e.g. INV-0007).", max_length=50)),
                ("status", models.CharField(choices=[("DRAFT", "Draft"), ("SENT", "Sent"), ("PAID", "Paid"), ("OVERDUE", "Overdue"), ("CANCELLED", "Cancelled")], default="DRAFT", max_length=10)),
                ("issue_date", models.DateTimeField()),
                ("due_date", models.DateTimeField(blank=True, null=True)),
                ("paid_at", models.DateTimeField(blank=True, null=True)),
                ("subtotal", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("tax", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("total", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("currency", models.CharField(default=billing.models._default_currency, max_length=3)),
                ("notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("contact", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="invoices", to="billing.contact")),
                ("organization", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="invoices", to="billing.organization")),
                ("recurring_template", models.ForeignKey(blank=True, help_text="Template this invoice was generated from, if any.", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="invoices", to="billing.recurringtemplate")),
            ],
            options={
                "ordering": ["-issue_date", "-id"],
                "indexes": [
                    models.Index(fields=["organization", "status", "paid_at"], name="billing_inv_org_paid_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(fields=("organization", "invoice_number"), name="uniq_invoice_number_per_organization"),
                    models.UniqueConstraint(condition=models.Q(recurring_template__isnull=False), fields=("recurring_template", "issue_date"), name="uniq_invoice_per_template_occurrence"),
                ],
            },
        ),
        migrations.CreateModel(
            name="InvoiceItem",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("line_number", models.PositiveIntegerField(default=1)),
                ("description", models.CharField(max_length=255)),
                ("quantity", models.DecimalField(decimal_places=2, default=Decimal("1.00"), max_digits=10)),
                ("unit_price", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("invoice", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="items", to="billing.invoice")),
            ],
            options={
                "ordering": ["line_number", "id"],
            },
        ),
        migrations.CreateModel(
            name="Expense",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("description", models.CharField(max_length=255)),
                ("vendor", models.CharField(blank=True, max_length=200)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("date", models.DateTimeField()),
                ("type", models.CharField(choices=[("ONE_TIME", "One-time"), ("RECURRING", "Recurring")], default="ONE_TIME", max_length=10)),
                ("category", models.CharField(default="other", max_length=100)),
                ("tax_category", models.CharField(blank=True, help_text="Schedule C line this expense is deducted under.", max_length=100)),
                ("frequency", models.CharField(blank=True, choices=FREQUENCY_CHOICES, max_length=10)),
                ("interval", models.PositiveIntegerField(blank=True, null=True)),
                ("is_active", models.BooleanField(default=True)),
                ("notes", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("contact", models.ForeignKey(blank=True, help_text="Client this cost is attributed to (for per-client margins).", null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="expenses", to="billing.contact")),
                ("organization", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="expenses", to="billing.organization")),
            ],
            options={
                "ordering": ["-date", "-id"],
                "indexes": [
                    models.Index(fields=["organization", "type", "date"], name="billing_exp_org_type_date_idx"),
                ],
            },
        ),
    ]
