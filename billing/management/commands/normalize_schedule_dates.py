from django.core.management.base import BaseCommand
from django.db import transaction

from billing.models import Expense, Invoice, RecurringTemplate
from billing.recurrence import noonify

# model -> date fields that must sit at 12:00 UTC
DATE_FIELDS = [
    (RecurringTemplate, ["start_date", "next_run_date", "end_date"]),
    (Invoice, ["issue_date", "due_date"]),
    (Expense, ["date"]),
]


class Command(BaseCommand):
    help = "Re-pin stored schedule/invoice/expense dates to 12:00 UTC (rows written before normalization)."

    def add_arguments(self, parser):
        parser.add_argument("--commit", action="store_true", help="Actually write. Default is dry-run.")

    def handle(self, *args, **options):
        commit = options["commit"]
        total = 0

        with transaction.atomic():
            for model, fields in DATE_FIELDS:
                changed = 0
                for row in model.objects.only("pk", *fields):
                    updates = {}
                    for name in fields:
                        value = getattr(row, name)
                        fixed = noonify(value)
                        if value is not None and fixed != value:
                            updates[name] = fixed
                    if not updates:
                        continue
                    changed += 1
                    if commit:
                        # .update() so save() hooks and auto_now stay out of it
                        model.objects.filter(pk=row.pk).update(**updates)

                total += changed
                self.stdout.write(f"{model.__name__}: {changed} row(s) off noon UTC")

        if commit:
            self.stdout.write(self.style.SUCCESS(f"Normalized {total} row(s)."))
        else:
            self.stdout.write(self.style.NOTICE(f"Dry run: {total} row(s) would change. Re-run with --commit."))
